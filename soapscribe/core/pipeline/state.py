"""Mutable state of one recording session and its observer fan-out."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Union

from ...data.models import Note, OrderingViolation, SessionPhase, TranscriptSegment
from ...errors import SessionStateError
from ...logging import get_logger

LOGGER = get_logger(__name__)

_TRANSITIONS = {
    SessionPhase.IDLE: {SessionPhase.RECORDING},
    SessionPhase.RECORDING: {SessionPhase.STOPPING},
    SessionPhase.STOPPING: {SessionPhase.STOPPED},
    SessionPhase.STOPPED: {SessionPhase.RECORDING},
}


@dataclass(frozen=True)
class TranscriptUpdated:
    text: str


@dataclass(frozen=True)
class NoteUpdated:
    note: Note


@dataclass(frozen=True)
class RegenerationFinished:
    token: str
    succeeded: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class PhaseChanged:
    phase: SessionPhase


SessionEvent = Union[TranscriptUpdated, NoteUpdated, RegenerationFinished, PhaseChanged]


class SessionState:
    """Transcript, current note and lifecycle phase of the active session.

    Each mutating method is one atomic transition from the point of view of
    subscribers: they receive an event only after the change is complete.
    """

    def __init__(self) -> None:
        self.phase = SessionPhase.IDLE
        self.segments: List[TranscriptSegment] = []
        self.current_note: Optional[Note] = None
        self.pending_token: Optional[str] = None
        self.reflected_transcript = ""
        self.ordering_violations: List[OrderingViolation] = []
        self.started_at: Optional[datetime] = None
        self._subscribers: List[asyncio.Queue] = []

    @property
    def transcript_text(self) -> str:
        return " ".join(segment.text for segment in self.segments).strip()

    def transition(self, phase: SessionPhase) -> None:
        if phase not in _TRANSITIONS[self.phase]:
            raise SessionStateError(f"Cannot move session from {self.phase.value} to {phase.value}")
        LOGGER.info("Session %s -> %s", self.phase.value, phase.value)
        self.phase = phase
        self._publish(PhaseChanged(phase))

    def begin(self) -> None:
        """Clear the previous session and enter ``Recording``."""

        if SessionPhase.RECORDING not in _TRANSITIONS[self.phase]:
            raise SessionStateError(f"Cannot start a session while {self.phase.value}")
        self.segments = []
        self.current_note = None
        self.pending_token = None
        self.reflected_transcript = ""
        self.ordering_violations = []
        self.started_at = datetime.now(timezone.utc)
        self.transition(SessionPhase.RECORDING)

    def reset(self) -> None:
        self.phase = SessionPhase.IDLE
        self.segments = []
        self.current_note = None
        self.pending_token = None
        self.reflected_transcript = ""
        self.ordering_violations = []
        self.started_at = None
        self._publish(PhaseChanged(SessionPhase.IDLE))

    def append_segment(self, segment: TranscriptSegment) -> None:
        if self.phase not in (SessionPhase.RECORDING, SessionPhase.STOPPING):
            raise SessionStateError(f"Cannot append transcript while {self.phase.value}")
        self.segments.append(segment)
        self._publish(TranscriptUpdated(self.transcript_text))

    def record_violation(self, violation: OrderingViolation) -> None:
        self.ordering_violations.append(violation)

    def mark_in_flight(self, token: str) -> None:
        if self.pending_token is not None:
            raise SessionStateError(
                f"Regeneration {self.pending_token} is still in flight; refusing {token}"
            )
        self.pending_token = token

    def clear_in_flight(self, token: str) -> None:
        if self.pending_token != token:
            raise SessionStateError(f"Regeneration {token} is not the one in flight")
        self.pending_token = None

    def commit_note(self, note: Note, reflected_transcript: str) -> None:
        self.current_note = note
        self.reflected_transcript = reflected_transcript
        self._publish(NoteUpdated(note))

    def regeneration_finished(self, token: str, succeeded: bool, error: Optional[str] = None) -> None:
        self._publish(RegenerationFinished(token, succeeded, error))

    def snapshot(self) -> Dict[str, Any]:
        return {
            "phase": self.phase.value,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "transcript": self.transcript_text,
            "segments": [segment.model_dump() for segment in self.segments],
            "note": self.current_note.to_wire() if self.current_note else None,
            "regeneration_in_flight": self.pending_token is not None,
            "ordering_violations": len(self.ordering_violations),
        }

    def subscribe(self) -> asyncio.Queue:
        queue: asyncio.Queue = asyncio.Queue()
        self._subscribers.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue) -> None:
        if queue in self._subscribers:
            self._subscribers.remove(queue)

    def _publish(self, event: SessionEvent) -> None:
        for queue in list(self._subscribers):
            queue.put_nowait(event)


__all__ = [
    "NoteUpdated",
    "PhaseChanged",
    "RegenerationFinished",
    "SessionEvent",
    "SessionState",
    "TranscriptUpdated",
]
