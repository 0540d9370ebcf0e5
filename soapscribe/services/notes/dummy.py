"""Dummy notes generator for offline usage."""

from __future__ import annotations

import asyncio
import json
from datetime import datetime, timezone
from typing import AsyncIterator

from ...data.models import RegenerationRequest
from .base import NotesService

PLACEHOLDER = "[no information]"


class DummyNotesService(NotesService):
    """Echo the transcript into the subjective section, a few characters at a time."""

    name = "dummy"

    def __init__(self, token_size: int = 8) -> None:
        self.token_size = max(1, token_size)
        self.requests: list[RegenerationRequest] = []

    def build_document(self, request: RegenerationRequest) -> dict:
        details = request.details
        previous = request.previous_note
        if previous is not None:
            visit = previous.metadata.visit_timestamp.isoformat()
        else:
            visit = datetime.now(timezone.utc).isoformat()
        return {
            "metadata": {
                "patient_name": details.patient_name if details else None,
                "clinician_name": details.clinician_name if details else None,
                "visit_datetime": visit,
                "chief_complaint": details.chief_complaint if details else None,
                "medications_list": list(details.medications) if details else [],
            },
            "subjective": request.input_transcript or PLACEHOLDER,
            "objective": PLACEHOLDER,
            "assessment": PLACEHOLDER,
            "plan": PLACEHOLDER,
            "diff": [],
        }

    async def stream_note(self, request: RegenerationRequest) -> AsyncIterator[str]:
        self.requests.append(request)
        text = json.dumps(self.build_document(request))
        for start in range(0, len(text), self.token_size):
            await asyncio.sleep(0)
            yield text[start : start + self.token_size]


__all__ = ["DummyNotesService"]
