"""Step4: 流水线编排与进度换算。"""

from .progress import COMPLETE_LABEL, PHASE_LABELS, ProgressReporter, phase_for_percent, total_steps_for
from .runner import HighlightPipeline, PipelineContext, RunStatus

__all__ = [
    "COMPLETE_LABEL",
    "PHASE_LABELS",
    "ProgressReporter",
    "phase_for_percent",
    "total_steps_for",
    "HighlightPipeline",
    "PipelineContext",
    "RunStatus",
]
