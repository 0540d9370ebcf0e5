"""Per-chunk transcription with a bounded wait and typed failures."""

from __future__ import annotations

import asyncio

from ...data.models import AudioChunk, TranscriptResult
from ...errors import ServiceUnavailable, TranscriptionError
from ...logging import get_logger
from .base import TranscriptionService

LOGGER = get_logger(__name__)


class TranscriptionClient:
    """Wrap a :class:`TranscriptionService` so that ``transcribe`` never raises.

    A call that does not answer within ``timeout`` seconds counts as
    ``service_unavailable``. Empty speech is a successful, empty result.
    """

    def __init__(self, service: TranscriptionService, timeout: float = 15.0) -> None:
        self.service = service
        self.timeout = timeout

    async def transcribe(self, chunk: AudioChunk) -> TranscriptResult:
        if not chunk.data:
            return TranscriptResult(
                sequence_index=chunk.sequence_index,
                failure="invalid_audio",
                detail="empty audio buffer",
            )
        try:
            text = await asyncio.wait_for(self.service.recognize(chunk), timeout=self.timeout)
        except asyncio.TimeoutError:
            error: TranscriptionError = ServiceUnavailable(
                f"no response within {self.timeout:.1f}s"
            )
        except TranscriptionError as exc:
            error = exc
        except Exception as exc:
            LOGGER.exception("Transcription backend crashed on chunk %s", chunk.sequence_index)
            return TranscriptResult(
                sequence_index=chunk.sequence_index,
                failure="service_unavailable",
                detail=str(exc),
            )
        else:
            return TranscriptResult(sequence_index=chunk.sequence_index, text=(text or "").strip())

        LOGGER.warning(
            "Transcription of chunk %s failed (%s): %s",
            chunk.sequence_index,
            error.kind,
            error,
        )
        return TranscriptResult(
            sequence_index=chunk.sequence_index,
            failure=error.kind,
            detail=str(error),
        )

    async def aclose(self) -> None:
        await self.service.aclose()


__all__ = ["TranscriptionClient"]
