"""进度换算：步数 -> 百分比 + 阶段文案。仅用于展示，不参与流程判断。"""

from __future__ import annotations

from typing import Dict

from cortefacil.core.datamodels import Phase, ProgressEvent

PHASE_LABELS: Dict[Phase, str] = {
    Phase.ANALYZING: "Analyzing audio...",
    Phase.EXTRACTING_SEGMENTS: "Detecting scene changes...",
    Phase.COMPILING: "Creating cuts...",
    Phase.FINISHED: "Finishing processing...",
}
COMPLETE_LABEL = "Processing complete!"


def phase_for_percent(percent: float) -> Phase:
    if percent <= 30:
        return Phase.ANALYZING
    if percent <= 60:
        return Phase.EXTRACTING_SEGMENTS
    if percent <= 90:
        return Phase.COMPILING
    return Phase.FINISHED


def total_steps_for(moment_count: int) -> int:
    """一步分析、每个片段一步、一步拼接。"""

    return 2 + moment_count


class ProgressReporter:
    def __init__(self, total_steps: int) -> None:
        if total_steps < 1:
            raise ValueError("total_steps must be positive")
        self.total_steps = total_steps

    def on_step(self, current_step: int) -> ProgressEvent:
        if not 0 <= current_step <= self.total_steps:
            raise ValueError(f"step {current_step} outside [0, {self.total_steps}]")
        percent = min(100.0, max(0.0, 100.0 * current_step / self.total_steps))
        phase = phase_for_percent(percent)
        label = COMPLETE_LABEL if current_step == self.total_steps else PHASE_LABELS[phase]
        return ProgressEvent(
            step=current_step,
            total_steps=self.total_steps,
            percent=percent,
            phase=phase,
            label=label,
        )
