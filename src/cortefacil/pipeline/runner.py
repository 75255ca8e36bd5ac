"""流水线编排：采样 -> 逐段采集 -> 拼接，过程中产出进度事件。

运行状态集中在 ``PipelineContext`` 中逐阶段传递，UI 层只读取它的投影。
``HighlightPipeline.run`` 是异步生成器：惰性、有限、不可重启；挂起点只有采集步骤。
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, List, Optional, Union

from cortefacil.assemble import ClipAssembler
from cortefacil.core.blobs import BlobStore
from cortefacil.core.config import HighlightSettings, PipelineConfig
from cortefacil.core.datamodels import ExtractedSegment, FinalClip, ProgressEvent, SourceVideo
from cortefacil.core.errors import CancelledByUser, EmptyCaptureError, MediaDecodeError
from cortefacil.core.logging_utils import get_logger
from cortefacil.extract import SegmentExtractor
from cortefacil.sampling import sample_key_moments, segment_window

from .progress import ProgressReporter, total_steps_for

logger = get_logger(__name__)

EventCallback = Callable[[ProgressEvent], Union[None, Awaitable[None]]]


class RunStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    DONE = "done"
    FAILED = "failed"
    CANCELLED = "cancelled"


@dataclass
class PipelineContext:
    """单次运行的全部可变状态。"""

    source: SourceVideo
    settings: HighlightSettings
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex)
    moments: List[float] = field(default_factory=list)
    segments: List[ExtractedSegment] = field(default_factory=list)
    result: Optional[FinalClip] = None
    status: RunStatus = RunStatus.PENDING
    error: Optional[str] = None
    last_event: Optional[ProgressEvent] = None
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event, repr=False)

    def cancel(self) -> None:
        """请求中止；正在进行的采集会立即停止。"""

        self.cancel_event.set()

    @property
    def cancel_requested(self) -> bool:
        return self.cancel_event.is_set()

    @property
    def finished(self) -> bool:
        return self.status in {RunStatus.DONE, RunStatus.FAILED, RunStatus.CANCELLED}

    def to_dict(self) -> dict:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "error": self.error,
            "source": self.source.to_dict(),
            "settings": self.settings.model_dump(),
            "moments": list(self.moments),
            "segments": [segment.to_dict() for segment in self.segments],
            "result": self.result.to_dict() if self.result else None,
            "progress": self.last_event.to_dict() if self.last_event else None,
        }


class HighlightPipeline:
    """把采样、采集与拼接串起来；同一时间每个源视频只允许一个采集会话。"""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        blob_store: Optional[BlobStore] = None,
        extractor: Optional[SegmentExtractor] = None,
        assembler: Optional[ClipAssembler] = None,
    ) -> None:
        self.config = config
        self.blob_store = blob_store or BlobStore(spool_max_bytes=config.blobs.spool_max_bytes)
        self.extractor = extractor or SegmentExtractor(config.extract, self.blob_store)
        self.assembler = assembler or ClipAssembler.from_config(config.highlight)

    def new_context(self, source: SourceVideo, settings: Optional[HighlightSettings] = None) -> PipelineContext:
        return PipelineContext(source=source, settings=settings or self.config.highlight.default_settings())

    async def run(self, context: PipelineContext) -> AsyncIterator[ProgressEvent]:
        if context.status is not RunStatus.PENDING:
            raise RuntimeError(f"run {context.run_id} already started")
        context.status = RunStatus.RUNNING
        log = logging.LoggerAdapter(logger, {"run_id": context.run_id})
        source = context.source
        settings = context.settings

        try:
            context.moments = sample_key_moments(source.duration, settings.sensitivity)
            reporter = ProgressReporter(total_steps_for(len(context.moments)))
            log.info("%s: %d key moments sampled", source.name, len(context.moments))
            yield self._emit(context, reporter.on_step(0))
            yield self._emit(context, reporter.on_step(1))

            for index, moment in enumerate(context.moments):
                self._check_cancel(context)
                start, window = segment_window(moment, settings.base_segment_duration, source.duration)
                try:
                    segment = await self.extractor.extract(
                        source,
                        start,
                        window,
                        owner=context.run_id,
                        index=index,
                        moment=moment,
                        cancel_event=context.cancel_event,
                    )
                except (MediaDecodeError, EmptyCaptureError) as exc:
                    if not self.config.highlight.skip_failed_segments:
                        raise
                    log.warning("segment #%d skipped: %s", index, exc)
                else:
                    context.segments.append(segment)
                yield self._emit(context, reporter.on_step(2 + index))

            self._check_cancel(context)
            if not context.segments:
                log.warning("%s: no segments extracted, result is empty", source.name)
            context.result = self.assembler.assemble(
                context.segments,
                blob_store=self.blob_store,
                owner=context.run_id,
                source_name=source.name,
                mime_type=source.mime_type,
            )
            context.status = RunStatus.DONE
            log.info("%s: finished, %s (%.1fs)", source.name, context.result.file_name, context.result.duration)
            yield self._emit(context, reporter.on_step(reporter.total_steps))
        except CancelledByUser:
            self._abort(context, RunStatus.CANCELLED, None)
            raise
        except (asyncio.CancelledError, GeneratorExit):
            if context.status is RunStatus.RUNNING:
                self._abort(context, RunStatus.CANCELLED, None)
            raise
        except Exception as exc:
            self._abort(context, RunStatus.FAILED, exc)
            raise

    async def run_to_completion(
        self,
        context: PipelineContext,
        on_event: Optional[EventCallback] = None,
    ) -> FinalClip:
        """消费全部进度事件并返回成片。"""

        async for event in self.run(context):
            if on_event is not None:
                outcome = on_event(event)
                if asyncio.iscoroutine(outcome):
                    await outcome
        assert context.result is not None
        return context.result

    def dismiss(self, context: PipelineContext) -> int:
        """用户关闭结果或开始新运行时调用，释放该运行的全部 blob。"""

        if context.status is RunStatus.RUNNING:
            context.cancel()
        released = self.blob_store.release_owner(context.run_id)
        context.segments = []
        context.result = None
        return released

    @staticmethod
    def _emit(context: PipelineContext, event: ProgressEvent) -> ProgressEvent:
        context.last_event = event
        return event

    @staticmethod
    def _check_cancel(context: PipelineContext) -> None:
        if context.cancel_requested:
            raise CancelledByUser(f"run {context.run_id} cancelled")

    def _abort(self, context: PipelineContext, status: RunStatus, exc: Optional[BaseException]) -> None:
        released = self.blob_store.release_owner(context.run_id)
        context.segments = []
        context.result = None
        context.status = status
        context.error = str(exc) if exc is not None else None
        extra = {"run_id": context.run_id}
        if status is RunStatus.FAILED:
            logger.error("run %s failed: %s (released %d blobs)", context.run_id, exc, released, extra=extra)
        else:
            logger.info("run %s cancelled (released %d blobs)", context.run_id, released, extra=extra)
