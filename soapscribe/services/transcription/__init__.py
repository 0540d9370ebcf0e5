"""Transcription services."""

from .base import TranscriptionService
from .client import TranscriptionClient
from .dummy import DummyTranscriptionService

__all__ = ["DummyTranscriptionService", "TranscriptionClient", "TranscriptionService"]
