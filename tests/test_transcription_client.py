"""Tests for the per-chunk transcription wrapper."""

from __future__ import annotations

import asyncio

from soapscribe.data.models import AudioChunk, AudioEncoding
from soapscribe.errors import AuthError
from soapscribe.services.transcription.base import TranscriptionService
from soapscribe.services.transcription.client import TranscriptionClient
from soapscribe.services.transcription.dummy import DummyTranscriptionService


def _chunk(index: int = 0, data: bytes = b"pcm") -> AudioChunk:
    return AudioChunk(
        sequence_index=index,
        data=data,
        encoding=AudioEncoding(sample_rate=16_000, channels=1),
        frames=16_000,
    )


class _FailingService(TranscriptionService):
    def __init__(self, error: Exception) -> None:
        self.error = error
        self.calls = 0

    async def recognize(self, chunk: AudioChunk) -> str:
        self.calls += 1
        raise self.error


class _SlowService(TranscriptionService):
    async def recognize(self, chunk: AudioChunk) -> str:
        await asyncio.sleep(1.0)
        return "too late"


def test_transcribe_returns_stripped_text() -> None:
    client = TranscriptionClient(DummyTranscriptionService(["  Patient  "]))

    result = asyncio.run(client.transcribe(_chunk()))

    assert result.ok
    assert result.sequence_index == 0
    assert result.text == "Patient"


def test_empty_speech_is_a_successful_result() -> None:
    client = TranscriptionClient(DummyTranscriptionService(["hello"]))

    result = asyncio.run(client.transcribe(_chunk(index=5)))

    assert result.ok
    assert result.text == ""


def test_typed_failure_is_returned_not_raised() -> None:
    service = _FailingService(AuthError("rejected", 401))
    client = TranscriptionClient(service)

    result = asyncio.run(client.transcribe(_chunk(index=2)))

    assert not result.ok
    assert result.failure == "auth_error"
    assert result.sequence_index == 2
    assert service.calls == 1


def test_timeout_counts_as_service_unavailable() -> None:
    client = TranscriptionClient(_SlowService(), timeout=0.01)

    result = asyncio.run(client.transcribe(_chunk()))

    assert result.failure == "service_unavailable"
    assert "no response" in (result.detail or "")


def test_empty_buffer_is_invalid_audio_without_a_call() -> None:
    service = _FailingService(AssertionError("should not be called"))
    client = TranscriptionClient(service)

    result = asyncio.run(client.transcribe(_chunk(data=b"")))

    assert result.failure == "invalid_audio"
    assert service.calls == 0


def test_unexpected_backend_error_is_service_unavailable() -> None:
    service = _FailingService(ConnectionResetError("socket closed"))
    client = TranscriptionClient(service)

    result = asyncio.run(client.transcribe(_chunk(index=4)))

    assert not result.ok
    assert result.failure == "service_unavailable"
    assert result.sequence_index == 4
    assert result.detail == "socket closed"
