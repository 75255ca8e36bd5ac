"""临时媒体 blob 的登记与释放。

每个 blob 由 ``SpooledTemporaryFile`` 承载（小于阈值时在内存，超出后落盘），
并以 ``blob:<uuid>`` 句柄登记到 ``BlobStore``。句柄归属某次运行（owner），
运行结束、被新运行取代或用户关闭结果时必须显式释放，避免资源随重复运行无限增长。
"""

from __future__ import annotations

import tempfile
import threading
import uuid
from typing import BinaryIO, Callable, Dict, Iterable, Iterator, List, Optional

from .logging_utils import get_logger

logger = get_logger(__name__)

ReleaseHook = Callable[["MediaBlob"], None]


class MediaBlob:
    """只读字节资源，释放后不可再读取。

    底层文件只有一个读写位置，多个读者（并发下载、拼接）各自记录偏移，
    每次 seek+read 都在 blob 自己的锁内完成，互不干扰。
    """

    def __init__(self, handle: str, mime_type: str, owner: str, backing: BinaryIO, size: int) -> None:
        self.handle = handle
        self.mime_type = mime_type
        self.owner = owner
        self.size = size
        self._backing: Optional[BinaryIO] = backing
        self._io_lock = threading.Lock()

    @property
    def released(self) -> bool:
        return self._backing is None

    def _read_at(self, offset: int, length: int) -> bytes:
        with self._io_lock:
            if self._backing is None:
                raise ValueError(f"blob {self.handle} 已释放")
            self._backing.seek(offset)
            return self._backing.read(length)

    def read(self) -> bytes:
        return self._read_at(0, self.size)

    def iter_chunks(self, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """按块读取，供拼接或 HTTP 流式下载使用。"""

        if self.released:
            raise ValueError(f"blob {self.handle} 已释放")
        return self._chunks(chunk_size)

    def _chunks(self, chunk_size: int) -> Iterator[bytes]:
        offset = 0
        while offset < self.size:
            chunk = self._read_at(offset, min(chunk_size, self.size - offset))
            if not chunk:
                break
            offset += len(chunk)
            yield chunk

    def copy_to(self, target: BinaryIO) -> None:
        for chunk in self.iter_chunks():
            target.write(chunk)

    def _close(self) -> None:
        with self._io_lock:
            if self._backing is not None:
                self._backing.close()
                self._backing = None

    def __repr__(self) -> str:
        state = "released" if self.released else "live"
        return f"MediaBlob({self.handle}, {self.mime_type}, {self.size}B, {state})"


class BlobStore:
    """blob 登记表：创建、按句柄或 owner 释放、统计存活数量。"""

    def __init__(self, *, spool_max_bytes: int = 32 * 1024 * 1024) -> None:
        self._spool_max_bytes = spool_max_bytes
        self._blobs: Dict[str, MediaBlob] = {}
        self._hooks: List[ReleaseHook] = []
        self._lock = threading.Lock()

    def create(self, chunks: Iterable[bytes], *, mime_type: str, owner: str) -> MediaBlob:
        backing = tempfile.SpooledTemporaryFile(max_size=self._spool_max_bytes)
        size = 0
        try:
            for chunk in chunks:
                backing.write(chunk)
                size += len(chunk)
        except BaseException:
            backing.close()
            raise
        handle = f"blob:{uuid.uuid4().hex}"
        blob = MediaBlob(handle, mime_type, owner, backing, size)  # type: ignore[arg-type]
        with self._lock:
            self._blobs[handle] = blob
        logger.debug("created %s for %s", handle, owner)
        return blob

    def get(self, handle: str) -> Optional[MediaBlob]:
        with self._lock:
            return self._blobs.get(handle)

    def release(self, blob: MediaBlob | str) -> bool:
        """释放单个 blob；重复释放返回 False。"""

        handle = blob if isinstance(blob, str) else blob.handle
        with self._lock:
            target = self._blobs.pop(handle, None)
        if target is None:
            return False
        self._finalize(target)
        return True

    def release_owner(self, owner: str) -> int:
        """释放某次运行持有的全部 blob，返回释放数量。"""

        with self._lock:
            handles = [handle for handle, blob in self._blobs.items() if blob.owner == owner]
            targets = [self._blobs.pop(handle) for handle in handles]
        for target in targets:
            self._finalize(target)
        if targets:
            logger.debug("released %d blobs owned by %s", len(targets), owner)
        return len(targets)

    def release_all(self) -> int:
        with self._lock:
            targets = list(self._blobs.values())
            self._blobs.clear()
        for target in targets:
            self._finalize(target)
        return len(targets)

    def live_count(self, owner: Optional[str] = None) -> int:
        with self._lock:
            if owner is None:
                return len(self._blobs)
            return sum(1 for blob in self._blobs.values() if blob.owner == owner)

    def add_release_hook(self, hook: ReleaseHook) -> None:
        with self._lock:
            self._hooks.append(hook)

    def _finalize(self, blob: MediaBlob) -> None:
        blob._close()
        with self._lock:
            hooks = list(self._hooks)
        for hook in hooks:
            hook(blob)
