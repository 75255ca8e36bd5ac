"""进度换算测试。"""

import pytest

from cortefacil.core import Phase
from cortefacil.pipeline import COMPLETE_LABEL, PHASE_LABELS, ProgressReporter, phase_for_percent, total_steps_for


@pytest.mark.parametrize(
    "percent, phase",
    [
        (0, Phase.ANALYZING),
        (30, Phase.ANALYZING),
        (30.01, Phase.EXTRACTING_SEGMENTS),
        (60, Phase.EXTRACTING_SEGMENTS),
        (75, Phase.COMPILING),
        (90, Phase.COMPILING),
        (90.5, Phase.FINISHED),
        (100, Phase.FINISHED),
    ],
)
def test_phase_thresholds(percent: float, phase: Phase) -> None:
    assert phase_for_percent(percent) is phase


def test_steps_map_to_percent() -> None:
    reporter = ProgressReporter(total_steps_for(3))

    events = [reporter.on_step(step) for step in range(reporter.total_steps + 1)]

    assert reporter.total_steps == 5
    assert [event.percent for event in events] == [0.0, 20.0, 40.0, 60.0, 80.0, 100.0]
    assert events[2].phase is Phase.EXTRACTING_SEGMENTS
    assert events[2].label == PHASE_LABELS[Phase.EXTRACTING_SEGMENTS]
    assert events[-1].label == COMPLETE_LABEL
    assert events[-1].completed
    assert not events[-2].completed


def test_out_of_range_step() -> None:
    reporter = ProgressReporter(3)

    with pytest.raises(ValueError):
        reporter.on_step(4)
    with pytest.raises(ValueError):
        ProgressReporter(0)


def test_event_payload() -> None:
    payload = ProgressReporter(4).on_step(1).to_dict()

    assert payload == {
        "step": 1,
        "total_steps": 4,
        "percent": 25.0,
        "phase": "analyzing",
        "label": PHASE_LABELS[Phase.ANALYZING],
    }
