"""Messages carried on the session's internal channel.

Every producer (transcription tasks, generation tasks, debounce timers, the
stop request) posts one of these; a single consumer applies them in order.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from ...data.models import TranscriptResult


@dataclass(frozen=True)
class SegmentTranscribed:
    result: TranscriptResult


@dataclass(frozen=True)
class NoteCandidate:
    token: str
    document: Any


@dataclass(frozen=True)
class RegenerationCompleted:
    token: str
    succeeded: bool
    error: Optional[str] = None


@dataclass(frozen=True)
class DebounceElapsed:
    pass


@dataclass(frozen=True)
class StopRequested:
    pass


__all__ = [
    "DebounceElapsed",
    "NoteCandidate",
    "RegenerationCompleted",
    "SegmentTranscribed",
    "StopRequested",
]
