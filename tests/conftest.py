"""共享 fixture：内存 blob store、假源视频、免 ffmpeg 的假采集器。"""

from __future__ import annotations

from pathlib import Path
from typing import Callable, List, Optional, Tuple

import pytest

from cortefacil.core import BlobStore, ExtractedSegment, SourceVideo


class FakeExtractor:
    """按请求窗口立即返回片段，不启动 ffmpeg。"""

    def __init__(
        self,
        blob_store: BlobStore,
        *,
        fail_at: Optional[int] = None,
        error: Optional[Exception] = None,
        payload: bytes = b"seg",
    ) -> None:
        self.blob_store = blob_store
        self.fail_at = fail_at
        self.error = error
        self.payload = payload
        self.calls: List[Tuple[float, float]] = []

    async def extract(self, source, start_time, duration, *, owner, index=0, moment=None, cancel_event=None):
        self.calls.append((start_time, duration))
        if self.fail_at is not None and index == self.fail_at:
            assert self.error is not None
            raise self.error
        blob = self.blob_store.create(
            [self.payload + str(index).encode()],
            mime_type=source.mime_type,
            owner=owner,
        )
        return ExtractedSegment(
            blob=blob,
            start=start_time,
            duration=duration,
            nominal_duration=duration,
            moment=moment if moment is not None else start_time,
            index=index,
        )


@pytest.fixture
def blob_store():
    store = BlobStore(spool_max_bytes=1024)
    yield store
    store.release_all()


@pytest.fixture
def make_source(tmp_path: Path) -> Callable[..., SourceVideo]:
    def _make(duration: float = 50.0, name: str = "match.mp4", mime_type: str = "video/mp4") -> SourceVideo:
        path = tmp_path / name
        path.write_bytes(b"fake")
        return SourceVideo(path=path, name=name, mime_type=mime_type, duration=duration, size=4)

    return _make


@pytest.fixture
def make_extractor() -> Callable[..., FakeExtractor]:
    return FakeExtractor
