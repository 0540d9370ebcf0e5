from __future__ import annotations

import asyncio
from types import SimpleNamespace

import httpx
import openai
import pytest

from soapscribe.config import Settings
from soapscribe.data.models import AudioChunk, AudioEncoding
from soapscribe.errors import AuthError, InvalidAudio, ServiceUnavailable
from soapscribe.services.transcription.openai_client import OpenAITranscriptionService


def _status_error(cls, status_code: int, message: str):
    request = httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
    response = httpx.Response(status_code, request=request)
    return cls(message, response=response, body=None)


def _chunk() -> AudioChunk:
    return AudioChunk(
        sequence_index=3,
        data=b"RIFF fake audio",
        encoding=AudioEncoding(sample_rate=48_000, channels=1),
        frames=48_000,
    )


def _make_service(create) -> OpenAITranscriptionService:
    client = SimpleNamespace(audio=SimpleNamespace(transcriptions=SimpleNamespace(create=create)))
    return OpenAITranscriptionService(model="test-model", client=client, settings=Settings())


def test_recognize_uploads_chunk_as_named_wav() -> None:
    calls: list[dict] = []

    async def create(**kwargs):
        calls.append(kwargs)
        return SimpleNamespace(text="patient reports a cough")

    service = _make_service(create)
    text = asyncio.run(service.recognize(_chunk()))

    assert text == "patient reports a cough"
    assert calls[0]["model"] == "test-model"
    assert calls[0]["file"] == ("chunk-00003.wav", b"RIFF fake audio", "audio/wav")
    assert calls[0]["response_format"] == "json"


def test_recognize_falls_back_to_text_format() -> None:
    formats: list[str] = []

    async def create(model, file, response_format):
        formats.append(response_format)
        if response_format != "text":
            raise _status_error(
                openai.BadRequestError, 400, f"response_format '{response_format}' is unsupported"
            )
        return "Mock transcript from text response"

    text = asyncio.run(_make_service(create).recognize(_chunk()))

    assert formats == ["json", "text"]
    assert text == "Mock transcript from text response"


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (lambda: _status_error(openai.AuthenticationError, 401, "bad key"), AuthError),
        (lambda: _status_error(openai.BadRequestError, 400, "corrupt file"), InvalidAudio),
        (lambda: _status_error(openai.InternalServerError, 503, "overloaded"), ServiceUnavailable),
        (lambda: _status_error(openai.RateLimitError, 429, "slow down"), ServiceUnavailable),
        (
            lambda: openai.APIConnectionError(
                request=httpx.Request("POST", "https://api.openai.com/v1/audio/transcriptions")
            ),
            ServiceUnavailable,
        ),
    ],
)
def test_recognize_maps_client_errors(error, expected) -> None:
    async def create(**kwargs):
        raise error()

    with pytest.raises(expected):
        asyncio.run(_make_service(create).recognize(_chunk()))
