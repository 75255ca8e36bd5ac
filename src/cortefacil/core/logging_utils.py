"""轻量日志工具，便于后续切换更复杂的观测方案。"""

from __future__ import annotations

import logging
from typing import Callable, Optional


def setup_logging(level: str = "INFO") -> None:
    """设置全局日志级别，默认 INFO，可在 CLI 入口覆盖。"""

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
    )


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """获取模块专属 logger，统一挂在 cortefacil 命名空间下。"""

    return logging.getLogger(name or "cortefacil")


class SSELogHandler(logging.Handler):
    """将日志消息转发到 SSE 的 handler，可按 run_id 过滤。"""

    def __init__(
        self,
        emit_callback: Callable[[str, logging.LogRecord], None],
        *,
        run_id: Optional[str] = None,
    ) -> None:
        super().__init__()
        self._emit_callback = emit_callback
        self._run_id = run_id

    def emit(self, record: logging.LogRecord) -> None:
        if self._run_id is not None and getattr(record, "run_id", None) != self._run_id:
            return
        try:
            message = record.getMessage()
            self._emit_callback(message, record)
        except Exception:
            self.handleError(record)


def attach_sse_handler(
    logger: logging.Logger,
    emit_callback: Callable[[str, logging.LogRecord], None],
    *,
    run_id: Optional[str] = None,
    level: int = logging.INFO,
) -> logging.Handler:
    """挂载 SSE handler，并返回 handler 以便运行结束后移除。"""

    handler = SSELogHandler(emit_callback, run_id=run_id)
    handler.setLevel(level)
    logger.addHandler(handler)
    return handler
