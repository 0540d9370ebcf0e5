"""Tests for regeneration pacing."""

from __future__ import annotations

from typing import List

import pytest

from soapscribe.core.pipeline.scheduler import RegenerationScheduler
from soapscribe.core.pipeline.state import SessionState
from soapscribe.data.models import RegenerationRequest, TranscriptSegment
from soapscribe.errors import SessionStateError


class _Clock:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class _Harness:
    def __init__(self, debounce: float = 5.0) -> None:
        self.clock = _Clock()
        self.state = SessionState()
        self.state.begin()
        self.dispatched: List[RegenerationRequest] = []
        self.wakes: List[float] = []
        self.scheduler = RegenerationScheduler(
            self.state,
            self.dispatched.append,
            debounce_seconds=debounce,
            wake=self.wakes.append,
            clock=self.clock,
        )
        self._index = 0

    def say(self, text: str):
        self.state.append_segment(TranscriptSegment(sequence_index=self._index, text=text))
        self._index += 1
        return self.scheduler.on_transcript_growth()

    def succeed(self, request: RegenerationRequest):
        self.state.reflected_transcript = request.input_transcript
        return self.scheduler.on_request_finished(request.token, True)


def test_first_request_waits_for_debounce_from_session_start() -> None:
    harness = _Harness()

    assert harness.say("Patient") is None
    assert harness.wakes == [pytest.approx(5.0)]
    assert harness.scheduler.desired

    harness.clock.now += 5.0
    request = harness.scheduler.on_debounce_elapsed()

    assert request is not None
    assert request.input_transcript == "Patient"
    assert harness.state.pending_token == request.token


def test_request_uses_transcript_at_issue_time() -> None:
    harness = _Harness()
    harness.say("Patient")
    harness.say("has")
    harness.say("a fever.")

    harness.clock.now += 5.0
    request = harness.scheduler.on_debounce_elapsed()

    assert request.input_transcript == "Patient has a fever."
    assert len(harness.wakes) == 1


def test_at_most_one_request_in_flight() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")

    for word in ["has", "a", "fever"]:
        harness.clock.now += 10.0
        assert harness.say(word) is None

    assert harness.dispatched == [first]
    assert harness.scheduler.desired
    with pytest.raises(SessionStateError):
        harness.state.mark_in_flight("other")


def test_completion_issues_deferred_request_with_latest_transcript() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")
    harness.say("has")
    harness.clock.now += 6.0

    second = harness.succeed(first)

    assert second is not None
    assert second.input_transcript == "Patient has"
    assert second.previous_note is None


def test_debounce_floor_between_requests() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")
    harness.clock.now += 1.0
    harness.say("has")

    assert harness.succeed(first) is None
    assert harness.wakes[-1] == pytest.approx(4.0)

    harness.clock.now += 4.0
    second = harness.scheduler.on_debounce_elapsed()

    assert second.issued_at - first.issued_at >= 5.0


def test_failure_retries_on_next_tick() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")
    harness.clock.now += 1.0

    assert harness.scheduler.on_request_finished(first.token, False) is None
    assert harness.scheduler.desired

    harness.clock.now += 4.0
    retry = harness.scheduler.on_debounce_elapsed()

    assert retry.input_transcript == "Patient"


def test_stale_completion_is_ignored() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    request = harness.say("Patient")

    assert harness.scheduler.on_request_finished("not-the-token", True) is None
    assert harness.state.pending_token == request.token


def test_finalize_forces_request_without_debounce() -> None:
    harness = _Harness()
    harness.say("Patient")

    final = harness.scheduler.finalize()

    assert final is not None and final.forced
    assert not harness.scheduler.done

    harness.succeed(final)
    assert harness.scheduler.done


def test_finalize_waits_for_in_flight_request() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")
    harness.say("has")

    assert harness.scheduler.finalize() is None
    assert not harness.scheduler.done

    final = harness.succeed(first)

    assert final.forced
    assert final.input_transcript == "Patient has"
    harness.succeed(final)
    assert harness.scheduler.done
    assert len(harness.dispatched) == 2


def test_finalize_skips_request_when_note_is_current() -> None:
    harness = _Harness()
    harness.clock.now += 5.0
    first = harness.say("Patient")
    harness.succeed(first)

    assert harness.scheduler.finalize() is None
    assert harness.scheduler.done


def test_finalize_with_empty_transcript_is_done_immediately() -> None:
    harness = _Harness()

    assert harness.scheduler.finalize() is None
    assert harness.scheduler.done
    assert harness.dispatched == []


def test_failed_final_request_is_not_retried() -> None:
    harness = _Harness()
    harness.say("Patient")
    final = harness.scheduler.finalize()

    assert harness.scheduler.on_request_finished(final.token, False) is None
    assert harness.scheduler.done
