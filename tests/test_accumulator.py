"""Tests for ordered transcript accumulation."""

from __future__ import annotations

import itertools

import pytest

from soapscribe.core.pipeline.accumulator import TranscriptAccumulator
from soapscribe.core.pipeline.state import SessionState
from soapscribe.data.models import TranscriptSegment
from soapscribe.errors import TranscriptConflictError

WORDS = ["Patient", "has", "a fever.", "No", "cough."]


def _accumulator(max_out_of_order: int = 8) -> TranscriptAccumulator:
    state = SessionState()
    state.begin()
    return TranscriptAccumulator(state, max_out_of_order=max_out_of_order)


def _segment(index: int, text: str | None = None) -> TranscriptSegment:
    return TranscriptSegment(sequence_index=index, text=text or WORDS[index])


@pytest.mark.parametrize("order", list(itertools.permutations(range(4))))
def test_current_text_follows_index_order_for_any_arrival_order(order) -> None:
    accumulator = _accumulator()

    for index in order:
        accumulator.apply(_segment(index))

    assert accumulator.current_text() == "Patient has a fever. No"
    assert accumulator.state.ordering_violations == []


def test_out_of_order_segment_is_held_back() -> None:
    accumulator = _accumulator()

    assert accumulator.apply(_segment(1)) is False
    assert accumulator.current_text() == ""
    assert accumulator.buffered == 1

    assert accumulator.apply(_segment(0)) is True
    assert accumulator.current_text() == "Patient has"
    assert accumulator.buffered == 0


def test_skipped_index_closes_the_gap() -> None:
    accumulator = _accumulator()

    accumulator.apply(_segment(2))
    accumulator.apply(_segment(0))
    assert accumulator.current_text() == "Patient"

    assert accumulator.skip(1) is True
    assert accumulator.current_text() == "Patient a fever."


def test_reapplying_identical_segment_is_a_no_op() -> None:
    accumulator = _accumulator()
    accumulator.apply(_segment(0))
    accumulator.apply(_segment(1))

    assert accumulator.apply(_segment(0)) is False
    assert accumulator.current_text() == "Patient has"
    assert len(accumulator.state.segments) == 2


def test_conflicting_text_for_filled_index_fails_fast() -> None:
    accumulator = _accumulator()
    accumulator.apply(_segment(0))

    with pytest.raises(TranscriptConflictError):
        accumulator.apply(_segment(0, "Doctor"))


def test_tolerance_overflow_flushes_in_arrival_order() -> None:
    accumulator = _accumulator(max_out_of_order=2)

    accumulator.apply(_segment(3))
    accumulator.apply(_segment(1))
    assert accumulator.current_text() == ""

    assert accumulator.apply(_segment(2)) is True

    assert accumulator.current_text() == "No has a fever."
    violation = accumulator.state.ordering_violations[0]
    assert violation.missing == [0]
    assert violation.flushed == [3, 1, 2]
    assert accumulator.next_expected == 4


def test_late_segment_after_flush_is_appended_with_violation() -> None:
    accumulator = _accumulator(max_out_of_order=1)
    accumulator.apply(_segment(1))
    accumulator.apply(_segment(2))

    assert accumulator.apply(_segment(0)) is True

    assert accumulator.current_text() == "has a fever. Patient"
    assert len(accumulator.state.ordering_violations) == 2


def test_flush_applies_remaining_segments_in_index_order() -> None:
    accumulator = _accumulator()
    accumulator.apply(_segment(4))
    accumulator.apply(_segment(2))

    assert accumulator.flush() is True

    assert accumulator.current_text() == "a fever. cough."
    assert accumulator.state.ordering_violations[0].missing == [0, 1, 3]
    assert accumulator.flush() is False


def test_surrounding_whitespace_is_stripped_and_blank_text_is_a_skip() -> None:
    accumulator = _accumulator()

    assert accumulator.apply(_segment(0, "  Patient \n")) is True
    assert accumulator.apply(_segment(2, "a fever.")) is False
    assert accumulator.apply(_segment(1, " ")) is True

    assert accumulator.current_text() == "Patient a fever."
    assert accumulator.buffered == 0
    assert accumulator.apply(_segment(0, "Patient")) is False
