"""Server-sent event framing and the session event stream."""

from __future__ import annotations

import asyncio
import json
from typing import Any, AsyncIterator, Optional

from ..core.pipeline.state import (
    NoteUpdated,
    PhaseChanged,
    RegenerationFinished,
    SessionEvent,
    TranscriptUpdated,
)
from ..data.models import SessionPhase


def format_sse(data: Any, event: Optional[str] = None) -> str:
    """Frame one event. Non-string payloads are sent as JSON."""

    payload = data if isinstance(data, str) else json.dumps(data)
    lines = []
    if event:
        lines.append(f"event: {event}")
    lines.extend(f"data: {line}" for line in payload.split("\n"))
    return "\n".join(lines) + "\n\n"


def encode_session_event(event: SessionEvent) -> str:
    if isinstance(event, NoteUpdated):
        return format_sse(event.note.to_wire())
    if isinstance(event, TranscriptUpdated):
        return format_sse({"transcript": event.text}, event="transcript")
    if isinstance(event, RegenerationFinished):
        return format_sse(
            {"token": event.token, "succeeded": event.succeeded, "error": event.error},
            event="regeneration",
        )
    if isinstance(event, PhaseChanged):
        return format_sse({"phase": event.phase.value}, event="phase")
    raise TypeError(f"Unknown session event: {event!r}")


async def session_event_stream(queue: asyncio.Queue) -> AsyncIterator[str]:
    """Relay events from a state subscription until the session is stopped."""

    while True:
        event = await queue.get()
        yield encode_session_event(event)
        if isinstance(event, PhaseChanged) and event.phase in (SessionPhase.STOPPED, SessionPhase.IDLE):
            yield format_sse("completed", event="done")
            return


__all__ = ["encode_session_event", "format_sse", "session_event_stream"]
