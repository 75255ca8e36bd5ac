"""元数据探测与容器映射测试，ffprobe 以 monkeypatch 代替。"""

from pathlib import Path

import ffmpeg
import pytest

from cortefacil.core import InvalidInputError, MediaDecodeError
from cortefacil.extract import guess_mime_type, load_source, probe_duration, resolve_container


def _video(tmp_path: Path, name: str = "clip.mp4") -> Path:
    path = tmp_path / name
    path.write_bytes(b"\x00" * 16)
    return path


def test_resolve_container_ignores_codec_parameters() -> None:
    fmt = resolve_container('video/webm;codecs="vp9,opus"')

    assert fmt.muxer == "webm"
    assert fmt.extension == "webm"


def test_resolve_container_mp4_is_fragmented() -> None:
    assert "frag_keyframe" in resolve_container("video/mp4").muxer_options["movflags"]


def test_resolve_container_unknown() -> None:
    with pytest.raises(MediaDecodeError):
        resolve_container("video/x-unknown")


def test_guess_mime_type_by_extension() -> None:
    assert guess_mime_type("a.ts") == "video/mp2t"
    assert guess_mime_type("b.MKV") == "video/x-matroska"
    assert guess_mime_type("c.mp4") == "video/mp4"


def test_load_source_reads_format_duration(monkeypatch, tmp_path) -> None:
    path = _video(tmp_path)
    monkeypatch.setattr(ffmpeg, "probe", lambda *_, **__: {"format": {"duration": "125.5"}, "streams": []})

    source = load_source(path)

    assert source.mime_type == "video/mp4"
    assert source.duration == 125.5
    assert source.size == 16
    assert source.name == "clip.mp4"


def test_load_source_uses_stream_duration_when_format_lacks_it(monkeypatch, tmp_path) -> None:
    path = _video(tmp_path, "rec.webm")
    payload = {"format": {"duration": "N/A"}, "streams": [{"duration": "12.0"}, {"duration": "12.4"}]}
    monkeypatch.setattr(ffmpeg, "probe", lambda *_, **__: payload)

    assert load_source(path).duration == 12.4


def test_probe_falls_back_to_opencv(monkeypatch, tmp_path) -> None:
    path = _video(tmp_path, "rec.webm")
    monkeypatch.setattr(ffmpeg, "probe", lambda *_, **__: {"format": {}, "streams": []})
    monkeypatch.setattr("cortefacil.extract.probe._probe_duration_opencv", lambda _path: 42.0)

    assert probe_duration(path) == 42.0


def test_probe_error_is_decode_error(monkeypatch, tmp_path) -> None:
    path = _video(tmp_path)

    def broken_probe(*_args, **_kwargs):
        raise ffmpeg.Error("ffprobe", b"", b"moov atom not found")

    monkeypatch.setattr(ffmpeg, "probe", broken_probe)

    with pytest.raises(MediaDecodeError, match="moov atom"):
        load_source(path)


def test_load_source_rejects_non_video(tmp_path) -> None:
    path = tmp_path / "notes.txt"
    path.write_text("hello")

    with pytest.raises(InvalidInputError):
        load_source(path)
    with pytest.raises(InvalidInputError):
        load_source(path, "audio/mpeg")


def test_load_source_missing_file(tmp_path) -> None:
    with pytest.raises(InvalidInputError):
        load_source(tmp_path / "missing.mp4")
