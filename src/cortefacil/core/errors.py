"""流水线异常体系，上层（CLI / server）按类型区分失败与用户取消。"""

from __future__ import annotations


class HighlightError(RuntimeError):
    """所有流水线异常的基类。"""


class InvalidInputError(HighlightError, ValueError):
    """时长、灵敏度或片段长度非法，在任何处理开始前抛出。"""


class MediaDecodeError(HighlightError):
    """源视频无法播放（损坏、格式不支持或 ffmpeg 不可用）。"""


class EmptyCaptureError(HighlightError):
    """采集会话没有产出任何字节。"""


class FormatMismatchError(HighlightError):
    """拼接时片段的 mime type 不一致。"""


class CancelledByUser(HighlightError):
    """用户主动中止运行；不是失败，资源已释放。"""
