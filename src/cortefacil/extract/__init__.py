"""Step2: 元数据探测与实时播放采集。"""

from .extractor import CaptureChunk, SegmentExtractor, spawn_ffmpeg
from .formats import ContainerFormat, resolve_container
from .probe import guess_mime_type, load_source, probe_duration

__all__ = [
    "CaptureChunk",
    "SegmentExtractor",
    "spawn_ffmpeg",
    "ContainerFormat",
    "resolve_container",
    "guess_mime_type",
    "load_source",
    "probe_duration",
]
