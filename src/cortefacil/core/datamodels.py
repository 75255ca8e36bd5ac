"""核心数据结构定义，覆盖源视频、片段、成片与进度事件。"""

from __future__ import annotations

import math
from dataclasses import asdict, dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List

from .blobs import MediaBlob


def format_timestamp(seconds: float) -> str:
    """秒数格式化为 ``MM:SS``，用于片段预览；分钟数不封顶。"""

    total = max(0, int(math.floor(seconds)))
    minutes, secs = divmod(total, 60)
    return f"{minutes:02d}:{secs:02d}"


@dataclass(slots=True, frozen=True)
class SourceVideo:
    """源视频句柄：加载后不可变，由单次流水线独占。"""

    path: Path
    name: str
    mime_type: str
    duration: float
    size: int = 0

    @property
    def stem(self) -> str:
        return Path(self.name).stem

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["path"] = str(self.path)
        return payload


@dataclass(slots=True)
class ExtractedSegment:
    """单个采集片段。

    ``duration`` 为实际墙钟采集时长（已夹紧到源视频范围内），
    ``nominal_duration`` 为请求窗口时长，拼接阶段默认以它做时长计算。
    """

    blob: MediaBlob
    start: float
    duration: float
    nominal_duration: float
    moment: float
    index: int

    @property
    def end(self) -> float:
        return self.start + self.duration

    @property
    def mime_type(self) -> str:
        return self.blob.mime_type

    def to_dict(self) -> Dict[str, Any]:
        return {
            "index": self.index,
            "moment": self.moment,
            "start": self.start,
            "duration": self.duration,
            "nominal_duration": self.nominal_duration,
            "start_label": format_timestamp(self.start),
            "duration_label": format_timestamp(self.duration),
            "mime_type": self.mime_type,
            "size": self.blob.size,
            "handle": self.blob.handle,
        }


@dataclass(slots=True)
class FinalClip:
    """拼接成片：单个 blob 加建议文件名。"""

    blob: MediaBlob
    file_name: str
    segments: List[ExtractedSegment] = field(default_factory=list)
    duration: float = 0.0
    actual_duration: float = 0.0

    @property
    def mime_type(self) -> str:
        return self.blob.mime_type

    @property
    def is_empty(self) -> bool:
        return not self.segments

    def to_dict(self) -> Dict[str, Any]:
        return {
            "file_name": self.file_name,
            "mime_type": self.mime_type,
            "duration": self.duration,
            "actual_duration": self.actual_duration,
            "segment_order": [segment.index for segment in self.segments],
            "size": self.blob.size,
        }


class Phase(str, Enum):
    """进度阶段，仅用于展示。"""

    ANALYZING = "analyzing"
    EXTRACTING_SEGMENTS = "extracting_segments"
    COMPILING = "compiling"
    FINISHED = "finished"


@dataclass(slots=True, frozen=True)
class ProgressEvent:
    step: int
    total_steps: int
    percent: float
    phase: Phase
    label: str

    @property
    def completed(self) -> bool:
        return self.step >= self.total_steps

    def to_dict(self) -> Dict[str, Any]:
        return {
            "step": self.step,
            "total_steps": self.total_steps,
            "percent": self.percent,
            "phase": self.phase.value,
            "label": self.label,
        }
