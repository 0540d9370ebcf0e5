"""Exception hierarchy shared by the capture, transcription and note pipeline."""

from __future__ import annotations

from typing import Optional


class ScribeError(RuntimeError):
    """Base class for soapscribe runtime failures."""


class AudioResourceError(ScribeError):
    """Raised when the audio input cannot be acquired or opened."""


class TranscriptionError(ScribeError):
    """Raised by transcription backends for a single chunk."""

    kind = "service_unavailable"

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ServiceUnavailable(TranscriptionError):
    """The transcription oracle was unreachable, timed out or returned a 5xx."""

    kind = "service_unavailable"


class InvalidAudio(TranscriptionError):
    """The transcription oracle rejected the audio payload."""

    kind = "invalid_audio"


class AuthError(TranscriptionError):
    """The transcription oracle rejected our credentials."""

    kind = "auth_error"


class GenerationError(ScribeError):
    """Base class for failures of a single note regeneration round."""


class GenerationTransportError(GenerationError):
    """The generation oracle was unreachable or answered with an error status."""


class GenerationParseError(GenerationError):
    """The token stream ended without ever forming a valid JSON document."""


class ReconciliationInvariantError(ScribeError):
    """A decoded document could not be turned into a valid note."""


class TranscriptConflictError(ValueError):
    """A sequence index was re-applied with different text."""


class SessionStateError(ScribeError):
    """Raised on an illegal session lifecycle transition."""


__all__ = [
    "AudioResourceError",
    "AuthError",
    "GenerationError",
    "GenerationParseError",
    "GenerationTransportError",
    "InvalidAudio",
    "ReconciliationInvariantError",
    "ScribeError",
    "ServiceUnavailable",
    "SessionStateError",
    "TranscriptConflictError",
    "TranscriptionError",
]
