"""Audio capture package."""

from .base import AudioCapture, AudioResourceError, CaptureInfo
from .chunker import AudioChunker

__all__ = ["AudioCapture", "AudioChunker", "AudioResourceError", "CaptureInfo"]
