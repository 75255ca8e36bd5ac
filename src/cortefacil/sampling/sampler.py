"""关键时刻采样：按灵敏度与总时长在时间轴上均匀取点。"""

from __future__ import annotations

import math
from typing import List, Tuple

from cortefacil.core.errors import InvalidInputError


def _check_inputs(duration: float, sensitivity: int) -> None:
    if not math.isfinite(duration) or duration <= 0:
        raise InvalidInputError(f"duration must be positive, got {duration!r}")
    if isinstance(sensitivity, bool) or not isinstance(sensitivity, int):
        raise InvalidInputError(f"sensitivity must be an integer, got {sensitivity!r}")
    if not 0 <= sensitivity <= 100:
        raise InvalidInputError(f"sensitivity must be within [0, 100], got {sensitivity}")


def moment_count(duration: float, sensitivity: int) -> int:
    """每分钟按灵敏度比例取点，至少 1 个。"""

    _check_inputs(duration, sensitivity)
    return math.floor((sensitivity / 100) * (duration / 60)) + 1


def sample_key_moments(duration: float, sensitivity: int) -> List[float]:
    """返回严格递增、落在 (0, duration) 内的时间戳列表。"""

    count = moment_count(duration, sensitivity)
    interval = duration / (count + 1)
    moments: List[float] = []
    for i in range(1, count + 1):
        timestamp = i * interval
        # 浮点误差可能让最后一个点落到末尾
        if timestamp >= duration:
            continue
        moments.append(timestamp)
    return moments


def segment_window(moment: float, base_duration: float, source_duration: float) -> Tuple[float, float]:
    """以关键时刻为中心取窗口，返回 (start, duration)，窗口不越出源视频。"""

    if base_duration <= 0:
        raise InvalidInputError(f"base_duration must be positive, got {base_duration!r}")
    duration = min(float(base_duration), source_duration)
    latest_start = max(0.0, source_duration - duration)
    start = min(max(moment - duration / 2, 0.0), latest_start)
    return start, duration
