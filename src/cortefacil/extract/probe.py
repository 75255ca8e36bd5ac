"""源视频元数据探测：ffprobe 优先，容器缺时长时回退 OpenCV 帧数估算。"""

from __future__ import annotations

import mimetypes
from pathlib import Path
from typing import Any, Dict, Optional

import cv2
import ffmpeg

from cortefacil.core.config import ExtractConfig
from cortefacil.core.datamodels import SourceVideo
from cortefacil.core.errors import InvalidInputError, MediaDecodeError
from cortefacil.core.logging_utils import get_logger

from .formats import CONTAINERS, resolve_container

logger = get_logger(__name__)

_EXTENSION_MIME = {f".{fmt.extension}": fmt.mime_type for fmt in CONTAINERS.values()}


def guess_mime_type(path: str | Path) -> Optional[str]:
    suffix = Path(path).suffix.lower()
    if suffix in _EXTENSION_MIME:
        return _EXTENSION_MIME[suffix]
    guessed, _ = mimetypes.guess_type(str(path))
    return guessed


def _duration_from_probe(payload: Dict[str, Any]) -> float:
    fmt_duration = payload.get("format", {}).get("duration")
    if fmt_duration not in (None, "N/A"):
        return float(fmt_duration)
    durations = [
        float(stream["duration"])
        for stream in payload.get("streams", [])
        if stream.get("duration") not in (None, "N/A")
    ]
    return max(durations) if durations else 0.0


def _probe_duration_opencv(video_path: Path) -> float:
    capture = cv2.VideoCapture(str(video_path))
    if not capture.isOpened():
        return 0.0
    try:
        fps = capture.get(cv2.CAP_PROP_FPS) or 0.0
        frame_count = capture.get(cv2.CAP_PROP_FRAME_COUNT) or 0.0
        if fps <= 0:
            return 0.0
        return float(frame_count / fps)
    finally:
        capture.release()


def probe_duration(video_path: str | Path, *, ffprobe_binary: str = "ffprobe") -> float:
    """返回时长（秒）；文件无法解析时抛 MediaDecodeError。"""

    path = Path(video_path)
    duration = 0.0
    try:
        duration = _duration_from_probe(ffmpeg.probe(str(path), cmd=ffprobe_binary))
    except ffmpeg.Error as exc:
        stderr = exc.stderr.decode("utf-8", errors="replace") if exc.stderr else ""
        raise MediaDecodeError(f"无法解析视频 {path}: {stderr.strip()}") from exc
    except FileNotFoundError:
        logger.warning("%s not found, falling back to OpenCV probe", ffprobe_binary)

    if duration <= 0:
        duration = _probe_duration_opencv(path)
    if duration <= 0:
        raise MediaDecodeError(f"无法确定视频时长: {path}")
    return duration


def load_source(
    video_path: str | Path,
    mime_type: Optional[str] = None,
    *,
    name: Optional[str] = None,
    config: Optional[ExtractConfig] = None,
) -> SourceVideo:
    """校验文件类型并探测时长，构造不可变的 SourceVideo。"""

    cfg = config or ExtractConfig()
    path = Path(video_path)
    if not path.is_file():
        raise InvalidInputError(f"视频文件不存在: {path}")

    display_name = name or path.name
    resolved_mime = mime_type or guess_mime_type(display_name) or guess_mime_type(path)
    if not resolved_mime or not resolved_mime.startswith("video/"):
        raise InvalidInputError(f"请选择有效的视频文件: {display_name} ({resolved_mime or 'unknown'})")
    resolve_container(resolved_mime)

    duration = probe_duration(path, ffprobe_binary=cfg.ffprobe_binary)
    source = SourceVideo(
        path=path,
        name=display_name,
        mime_type=resolved_mime.split(";", 1)[0].strip().lower(),
        duration=duration,
        size=path.stat().st_size,
    )
    logger.info("loaded %s (%s, %.2fs)", source.name, source.mime_type, source.duration)
    return source
