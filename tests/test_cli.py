"""CLI 行为测试。"""

import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

from cortefacil.cli import app
from cortefacil.core import BlobStore, MediaDecodeError, SourceVideo
from cortefacil.pipeline import HighlightPipeline

runner = CliRunner()


@pytest.fixture
def video(tmp_path: Path) -> Path:
    path = tmp_path / "match.mp4"
    path.write_bytes(b"fake")
    return path


def _stub_source(monkeypatch, duration: float):
    def fake_load_source(video_path, mime_type=None, *, name=None, config=None):
        path = Path(video_path)
        return SourceVideo(path=path, name=path.name, mime_type="video/mp4", duration=duration, size=4)

    monkeypatch.setattr("cortefacil.cli.load_source", fake_load_source)


def _stub_pipeline(monkeypatch, store: BlobStore, extractor) -> None:
    def factory(config, **_kwargs):
        return HighlightPipeline(config, blob_store=store, extractor=extractor)

    monkeypatch.setattr("cortefacil.cli.HighlightPipeline", factory)


def test_probe_prints_json(monkeypatch, video):
    _stub_source(monkeypatch, 150.0)

    result = runner.invoke(app, ["probe", str(video)])

    assert result.exit_code == 0, result.output
    payload = json.loads(result.output)
    assert payload["duration"] == 150.0
    assert payload["duration_label"] == "02:30"
    assert payload["mime_type"] == "video/mp4"


def test_plan_lists_windows(monkeypatch, video):
    _stub_source(monkeypatch, 150.0)

    result = runner.invoke(app, ["plan", str(video), "-s", "100", "-l", "10"])

    assert result.exit_code == 0, result.output
    assert "3 个关键时刻" in result.output
    assert "总步数 5" in result.output
    assert "moment=00:37 start=00:32 duration=00:10" in result.output


def test_highlight_writes_clip_and_segments(monkeypatch, video, tmp_path, blob_store, make_extractor):
    _stub_source(monkeypatch, 50.0)
    _stub_pipeline(monkeypatch, blob_store, make_extractor(blob_store))
    output = tmp_path / "out" / "clip.mp4"
    segments_dir = tmp_path / "segments"

    result = runner.invoke(
        app,
        [
            "highlight",
            str(video),
            "-s",
            "100",
            "-l",
            "10",
            "-o",
            str(output),
            "--segments-dir",
            str(segments_dir),
        ],
    )

    assert result.exit_code == 0, result.output
    assert "Processing complete!" in result.output
    assert output.read_bytes() == b"seg0" * 6
    assert (segments_dir / "segment_00_00-20.mp4").read_bytes() == b"seg0"
    assert blob_store.live_count() == 0


def test_highlight_rejects_out_of_range_sensitivity(monkeypatch, video):
    _stub_source(monkeypatch, 50.0)

    result = runner.invoke(app, ["highlight", str(video), "-s", "101"])

    assert result.exit_code == 2


def test_highlight_with_no_segments_fails(monkeypatch, video, tmp_path, blob_store, make_extractor):
    _stub_source(monkeypatch, 50.0)
    extractor = make_extractor(blob_store, fail_at=0, error=MediaDecodeError("corrupt"))
    _stub_pipeline(monkeypatch, blob_store, extractor)
    config = tmp_path / "skip.yaml"
    config.write_text("highlight:\n  skip_failed_segments: true\n")

    result = runner.invoke(
        app,
        ["highlight", str(video), "--config", str(config), "-o", str(tmp_path / "clip.mp4")],
    )

    assert result.exit_code == 1
    assert not (tmp_path / "clip.mp4").exists()
    assert blob_store.live_count() == 0


def test_highlight_decode_failure_exit_code(monkeypatch, video, tmp_path, blob_store, make_extractor):
    _stub_source(monkeypatch, 50.0)
    extractor = make_extractor(blob_store, fail_at=0, error=MediaDecodeError("corrupt"))
    _stub_pipeline(monkeypatch, blob_store, extractor)

    result = runner.invoke(app, ["highlight", str(video), "-o", str(tmp_path / "clip.mp4")])

    assert result.exit_code == 1
    assert blob_store.live_count() == 0


def test_highlight_bad_env_override_exit_code(monkeypatch, video):
    _stub_source(monkeypatch, 50.0)
    monkeypatch.setenv("CORTEFACIL_SENSITIVITY", "150")

    result = runner.invoke(app, ["highlight", str(video)])

    assert result.exit_code == 2
    assert "输入非法" in result.output
