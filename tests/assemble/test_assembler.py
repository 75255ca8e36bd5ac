"""成片拼接测试：循环、截断、顺序与 mime 校验。"""

import math

import pytest

from cortefacil.assemble import ClipAssembler, plan_segments, suggested_file_name
from cortefacil.core import BlobStore, ExtractedSegment, FormatMismatchError


def _segment(store: BlobStore, index: int, nominal: float = 10.0, actual=None, mime: str = "video/mp4") -> ExtractedSegment:
    blob = store.create([f"<{index}>".encode()], mime_type=mime, owner="run")
    return ExtractedSegment(
        blob=blob,
        start=index * 20.0,
        duration=nominal if actual is None else actual,
        nominal_duration=nominal,
        moment=index * 20.0 + nominal / 2,
        index=index,
    )


def test_empty_plan() -> None:
    plan = plan_segments([], 60, 180)

    assert plan.segments == []
    assert plan.total == 0.0


def test_repetition_cycles_whole_sequence(blob_store) -> None:
    segments = [_segment(blob_store, i, nominal=7.0) for i in range(2)]

    plan = plan_segments(segments, 60, 180)

    raw = 14.0
    assert plan.repeats == math.ceil(60 / raw)
    assert plan.total == pytest.approx(math.ceil(60 / raw) * raw)
    assert plan.total >= 60
    assert [s.index for s in plan.segments] == [0, 1] * 5


def test_truncation_keeps_leading_segments(blob_store) -> None:
    segments = [_segment(blob_store, i, nominal=45.0) for i in range(6)]

    plan = plan_segments(segments, 60, 180)

    assert len(plan.segments) == math.floor(180 / 45)
    assert [s.index for s in plan.segments] == [0, 1, 2, 3]
    assert plan.total == 180.0
    assert plan.dropped == 2


def test_truncation_to_floor_of_max_over_length(blob_store) -> None:
    segments = [_segment(blob_store, i, nominal=7.0) for i in range(30)]

    plan = plan_segments(segments, 60, 180)

    assert plan.repeats == 1
    assert len(plan.segments) == math.floor(180 / 7)
    assert plan.total <= 180


def test_within_bounds_untouched(blob_store) -> None:
    segments = [_segment(blob_store, i, nominal=30.0) for i in range(4)]

    plan = plan_segments(segments, 60, 180)

    assert plan.segments == segments
    assert plan.total == 120.0


def test_actual_basis_uses_measured_duration(blob_store) -> None:
    segments = [_segment(blob_store, 0, nominal=10.0, actual=9.5)]

    nominal = plan_segments(segments, 60, 180, "nominal")
    actual = plan_segments(segments, 60, 180, "actual")

    assert len(nominal.segments) == 6
    assert len(actual.segments) == 7
    assert actual.total == pytest.approx(66.5)


def test_assemble_concatenates_in_order(blob_store) -> None:
    segments = [_segment(blob_store, i, nominal=20.0) for i in range(2)]
    assembler = ClipAssembler()

    clip = assembler.assemble(segments, blob_store=blob_store, owner="run", source_name="gameplay.mp4")
    again = assembler.assemble(segments, blob_store=blob_store, owner="run", source_name="gameplay.mp4")

    assert clip.blob.read() == b"<0><1><0><1>"
    assert clip.duration == again.duration == 80.0
    assert [s.index for s in clip.segments] == [s.index for s in again.segments]
    assert clip.file_name == "processed_gameplay.mp4"
    assert clip.mime_type == "video/mp4"


def test_assemble_empty_gives_zero_duration_clip(blob_store) -> None:
    clip = ClipAssembler().assemble(
        [], blob_store=blob_store, owner="run", source_name="rec.webm", mime_type="video/webm"
    )

    assert clip.is_empty
    assert clip.duration == 0.0
    assert clip.blob.size == 0
    assert clip.file_name == "processed_rec.webm"


def test_mixed_mime_types_rejected(blob_store) -> None:
    segments = [_segment(blob_store, 0), _segment(blob_store, 1, mime="video/webm")]

    with pytest.raises(FormatMismatchError):
        ClipAssembler().assemble(segments, blob_store=blob_store, owner="run", source_name="a.mp4")
    assert blob_store.live_count() == 2


def test_segment_mime_must_match_source(blob_store) -> None:
    segments = [_segment(blob_store, 0)]

    with pytest.raises(FormatMismatchError):
        ClipAssembler().assemble(
            segments, blob_store=blob_store, owner="run", source_name="a.webm", mime_type="video/webm"
        )


def test_suggested_file_name() -> None:
    assert suggested_file_name("highlights", "my.trip.MOV", "mov") == "highlights_my.trip.mov"
