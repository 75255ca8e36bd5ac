"""Step1: 关键时刻采样模块入口。"""

from .sampler import moment_count, sample_key_moments, segment_window

__all__ = [
    "moment_count",
    "sample_key_moments",
    "segment_window",
]
