from __future__ import annotations

# 本模块负责：
# 1) 按总时长区间 [min_total, max_total] 决定片段的循环次数与截断位置；
# 2) 校验所有片段 mime type 一致；
# 3) 按顺序拼接片段字节，生成带建议文件名的成片 blob。
#
# 时长计算默认使用每个片段的请求窗口时长（nominal），保证循环与截断的算术可复现；
# 配置 duration_basis=actual 时改用实测采集时长。

import itertools
import math
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Sequence

from cortefacil.core.blobs import BlobStore
from cortefacil.core.config import DurationBasis, HighlightConfig
from cortefacil.core.datamodels import ExtractedSegment, FinalClip
from cortefacil.core.errors import FormatMismatchError, MediaDecodeError
from cortefacil.core.logging_utils import get_logger
from cortefacil.extract.formats import resolve_container

logger = get_logger(__name__)

_EPSILON = 1e-9


@dataclass(slots=True)
class AssemblyPlan:
    """拼接计划。

    - segments: 最终按序拼接的片段（循环后可能包含重复对象）。
    - repeats: 整个序列被循环的次数，未循环时为 1。
    - dropped: 截断阶段丢弃的片段数。
    - raw_total/total: 循环前与最终的总时长（按 basis 计算）。
    """

    segments: List[ExtractedSegment]
    repeats: int
    dropped: int
    raw_total: float
    total: float


def segment_length(segment: ExtractedSegment, basis: DurationBasis = "nominal") -> float:
    return segment.nominal_duration if basis == "nominal" else segment.duration


def plan_segments(
    segments: Sequence[ExtractedSegment],
    min_total: float,
    max_total: float,
    basis: DurationBasis = "nominal",
) -> AssemblyPlan:
    """纯函数：先整体循环补足下限，再截断到上限，保持原始顺序。"""

    ordered = list(segments)
    if not ordered:
        return AssemblyPlan(segments=[], repeats=0, dropped=0, raw_total=0.0, total=0.0)

    raw_total = sum(segment_length(segment, basis) for segment in ordered)
    repeats = 1
    if 0 < raw_total < min_total:
        repeats = math.ceil(min_total / raw_total)
        ordered = ordered * repeats
    elif raw_total <= 0:
        logger.warning("segments have no measurable duration, skipping repetition")

    total = raw_total * repeats
    dropped = 0
    if total > max_total:
        # 取最长的合法前缀，等长片段时即 floor(max_total / d) 个
        kept: List[ExtractedSegment] = []
        cumulative = 0.0
        for segment in ordered:
            length = segment_length(segment, basis)
            if cumulative + length > max_total + _EPSILON:
                break
            kept.append(segment)
            cumulative += length
        dropped = len(ordered) - len(kept)
        ordered = kept
        total = cumulative

    return AssemblyPlan(segments=ordered, repeats=repeats, dropped=dropped, raw_total=raw_total, total=total)


def suggested_file_name(prefix: str, source_name: str, extension: str) -> str:
    return f"{prefix}_{Path(source_name).stem}.{extension}"


class ClipAssembler:
    """成片拼接器，参数来自 ``HighlightConfig``。"""

    def __init__(
        self,
        *,
        min_total: float = 60.0,
        max_total: float = 180.0,
        basis: DurationBasis = "nominal",
        output_prefix: str = "processed",
    ) -> None:
        self.min_total = min_total
        self.max_total = max_total
        self.basis = basis
        self.output_prefix = output_prefix

    @classmethod
    def from_config(cls, config: HighlightConfig) -> "ClipAssembler":
        return cls(
            min_total=config.min_total_seconds,
            max_total=config.max_total_seconds,
            basis=config.duration_basis,
            output_prefix=config.output_prefix,
        )

    def plan(self, segments: Sequence[ExtractedSegment]) -> AssemblyPlan:
        return plan_segments(segments, self.min_total, self.max_total, self.basis)

    def assemble(
        self,
        segments: Sequence[ExtractedSegment],
        *,
        blob_store: BlobStore,
        owner: str,
        source_name: str,
        mime_type: Optional[str] = None,
    ) -> FinalClip:
        """拼接成片；空片段列表得到零时长的空成片。"""

        mime = self._shared_mime_type(segments, mime_type)
        plan = self.plan(segments)
        blob = blob_store.create(
            itertools.chain.from_iterable(segment.blob.iter_chunks() for segment in plan.segments),
            mime_type=mime,
            owner=owner,
        )
        clip = FinalClip(
            blob=blob,
            file_name=suggested_file_name(self.output_prefix, source_name, self._extension(mime, source_name)),
            segments=plan.segments,
            duration=plan.total,
            actual_duration=sum(segment.duration for segment in plan.segments),
        )
        logger.info(
            "assembled %s: %d segments (x%d, %d dropped), %.2fs",
            clip.file_name,
            len(plan.segments),
            plan.repeats,
            plan.dropped,
            clip.duration,
        )
        return clip

    @staticmethod
    def _shared_mime_type(segments: Sequence[ExtractedSegment], fallback: Optional[str]) -> str:
        mime_types = {segment.mime_type for segment in segments}
        if len(mime_types) > 1:
            raise FormatMismatchError(f"segments have mixed mime types: {sorted(mime_types)}")
        if mime_types:
            mime = mime_types.pop()
            if fallback is not None and fallback != mime:
                raise FormatMismatchError(f"segment mime type {mime} differs from source {fallback}")
            return mime
        return fallback or "application/octet-stream"

    @staticmethod
    def _extension(mime_type: str, source_name: str) -> str:
        try:
            return resolve_container(mime_type).extension
        except MediaDecodeError:
            return Path(source_name).suffix.lstrip(".") or "bin"
