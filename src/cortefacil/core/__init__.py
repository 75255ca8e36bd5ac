"""核心模块入口，聚合数据模型、配置、异常与 blob 工具供各步骤复用。"""

from .blobs import BlobStore, MediaBlob
from .config import HighlightSettings, PipelineConfig, load_config, resolve_settings
from .datamodels import ExtractedSegment, FinalClip, Phase, ProgressEvent, SourceVideo, format_timestamp
from .errors import (
    CancelledByUser,
    EmptyCaptureError,
    FormatMismatchError,
    HighlightError,
    InvalidInputError,
    MediaDecodeError,
)
from .logging_utils import get_logger, setup_logging

__all__ = [
    "BlobStore",
    "MediaBlob",
    "HighlightSettings",
    "PipelineConfig",
    "load_config",
    "resolve_settings",
    "ExtractedSegment",
    "FinalClip",
    "Phase",
    "ProgressEvent",
    "SourceVideo",
    "format_timestamp",
    "CancelledByUser",
    "EmptyCaptureError",
    "FormatMismatchError",
    "HighlightError",
    "InvalidInputError",
    "MediaDecodeError",
    "get_logger",
    "setup_logging",
]
