"""基于实时播放采集的片段提取。

ffmpeg 以 ``-re`` 按原生速率从 ``start`` 开始读取源视频，stream copy 写入管道；
读取协程把到达的数据块连同时间偏移追加到缓冲区。墙钟时间满 ``duration`` 秒后
终止进程、收尽剩余输出并拼成一个 blob。

这不是帧精确裁剪：结束点取决于墙钟计时与进程调度，几十到几百毫秒的漂移属于预期，
片段上记录的是实测时长而非请求时长。
"""

from __future__ import annotations

import asyncio
import contextlib
import math
from dataclasses import dataclass
from typing import Awaitable, Callable, List, Optional, Sequence, Tuple

import ffmpeg

from cortefacil.core.blobs import BlobStore
from cortefacil.core.config import ExtractConfig
from cortefacil.core.datamodels import ExtractedSegment, SourceVideo
from cortefacil.core.errors import CancelledByUser, EmptyCaptureError, InvalidInputError, MediaDecodeError
from cortefacil.core.logging_utils import get_logger

from .formats import resolve_container

logger = get_logger(__name__)

SpawnFn = Callable[[Sequence[str]], Awaitable[asyncio.subprocess.Process]]

_STDERR_TAIL_BYTES = 4096


async def spawn_ffmpeg(args: Sequence[str]) -> asyncio.subprocess.Process:
    return await asyncio.create_subprocess_exec(
        *args,
        stdin=asyncio.subprocess.DEVNULL,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )


@dataclass(slots=True)
class CaptureChunk:
    """采集缓冲中的一个数据块，offset 为相对采集开始的秒数。"""

    offset: float
    data: bytes


class SegmentExtractor:
    """一次只驱动一个播放采集会话；调用方负责串行调用。"""

    def __init__(
        self,
        config: ExtractConfig,
        blob_store: BlobStore,
        *,
        spawn: Optional[SpawnFn] = None,
    ) -> None:
        self._config = config
        self._blob_store = blob_store
        self._spawn = spawn or spawn_ffmpeg

    @staticmethod
    def clamp_window(source: SourceVideo, start_time: float, duration: float) -> Tuple[float, float]:
        """把请求窗口夹紧到源视频内，返回 (start, duration)。"""

        if not math.isfinite(start_time):
            raise InvalidInputError(f"start_time must be finite, got {start_time!r}")
        if not math.isfinite(duration) or duration <= 0:
            raise InvalidInputError(f"duration must be positive, got {duration!r}")
        start = max(0.0, float(start_time))
        if start >= source.duration:
            # 起点越过末尾时整体回退，保证窗口仍有内容
            start = max(0.0, source.duration - duration)
        window = min(float(duration), source.duration - start)
        return start, window

    def build_command(self, source: SourceVideo, start: float) -> List[str]:
        container = resolve_container(source.mime_type)
        stream = ffmpeg.input(str(source.path), ss=f"{start:.3f}", re=None)
        output_kwargs = {"format": container.muxer, "vcodec": self._config.video_codec}
        output_kwargs.update(container.muxer_options)
        if self._config.capture_audio:
            output_kwargs["acodec"] = self._config.audio_codec
        else:
            output_kwargs["an"] = None
        out = ffmpeg.output(stream, "pipe:1", **output_kwargs).global_args(
            "-hide_banner", "-nostdin", "-loglevel", "error"
        )
        return ffmpeg.compile(out, cmd=self._config.ffmpeg_binary)

    async def extract(
        self,
        source: SourceVideo,
        start_time: float,
        duration: float,
        *,
        owner: str,
        index: int = 0,
        moment: Optional[float] = None,
        cancel_event: Optional[asyncio.Event] = None,
    ) -> ExtractedSegment:
        start, window = self.clamp_window(source, start_time, duration)
        args = self.build_command(source, start)
        loop = asyncio.get_running_loop()
        logger.debug("capture #%d: %s", index, " ".join(args))

        try:
            process = await self._spawn(args)
        except FileNotFoundError as exc:
            raise MediaDecodeError(f"ffmpeg 不可用: {self._config.ffmpeg_binary}") from exc

        started = loop.time()
        chunks: List[CaptureChunk] = []
        stderr_tail = bytearray()
        reader = asyncio.create_task(self._read_stdout(process, chunks, started))
        stderr_reader = asyncio.create_task(self._read_stderr(process, stderr_tail))
        cancel_waiter = asyncio.create_task(cancel_event.wait()) if cancel_event is not None else None
        try:
            waiters = {reader} if cancel_waiter is None else {reader, cancel_waiter}
            done, _ = await asyncio.wait(waiters, timeout=window, return_when=asyncio.FIRST_COMPLETED)
            stopped_at = loop.time()
            if cancel_waiter is not None and cancel_waiter in done:
                raise CancelledByUser(f"capture #{index} cancelled")

            stopped_by_timer = reader not in done
            if stopped_by_timer:
                await self._stop(process)
            await reader
            returncode = await process.wait()
            await stderr_reader
        finally:
            await self._cleanup(process, reader, stderr_reader, cancel_waiter)

        detail = stderr_tail.decode("utf-8", errors="replace").strip()
        if not stopped_by_timer and returncode != 0:
            raise MediaDecodeError(f"播放失败 {source.name} (exit {returncode}): {detail}")

        captured = any(chunk.data for chunk in chunks)
        # -loglevel error 下 stderr 只会出现错误信息
        if detail and not captured:
            raise MediaDecodeError(f"播放失败 {source.name}: {detail}")
        if detail:
            logger.warning("capture #%d of %s reported errors: %s", index, source.name, detail)
        if not captured:
            raise EmptyCaptureError(f"capture #{index} of {source.name} produced no data")

        elapsed = max(0.0, stopped_at - started)
        measured = min(elapsed, source.duration - start)
        blob = self._blob_store.create(
            (chunk.data for chunk in chunks),
            mime_type=source.mime_type,
            owner=owner,
        )
        logger.info(
            "segment #%d captured: start=%.2fs requested=%.2fs measured=%.2fs (%d chunks, %d bytes)",
            index,
            start,
            window,
            measured,
            len(chunks),
            blob.size,
        )
        return ExtractedSegment(
            blob=blob,
            start=start,
            duration=measured,
            nominal_duration=window,
            moment=moment if moment is not None else start + window / 2,
            index=index,
        )

    async def _read_stdout(
        self,
        process: asyncio.subprocess.Process,
        chunks: List[CaptureChunk],
        started: float,
    ) -> None:
        assert process.stdout is not None
        loop = asyncio.get_running_loop()
        while True:
            data = await process.stdout.read(self._config.chunk_size)
            if not data:
                break
            chunks.append(CaptureChunk(offset=loop.time() - started, data=data))

    @staticmethod
    async def _read_stderr(process: asyncio.subprocess.Process, tail: bytearray) -> None:
        if process.stderr is None:
            return
        while True:
            data = await process.stderr.read(1024)
            if not data:
                break
            tail.extend(data)
            del tail[:-_STDERR_TAIL_BYTES]

    async def _stop(self, process: asyncio.subprocess.Process) -> None:
        """先 SIGTERM 让 muxer 收尾，超时再 kill。"""

        if process.returncode is not None:
            return
        with contextlib.suppress(ProcessLookupError):
            process.terminate()
        try:
            await asyncio.wait_for(process.wait(), timeout=self._config.stop_timeout_seconds)
        except asyncio.TimeoutError:
            logger.warning("ffmpeg did not stop within %.1fs, killing", self._config.stop_timeout_seconds)
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()

    async def _cleanup(
        self,
        process: asyncio.subprocess.Process,
        *tasks: Optional[asyncio.Task],
    ) -> None:
        if process.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                process.kill()
            await process.wait()
        for task in tasks:
            if task is None or task.done():
                continue
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
