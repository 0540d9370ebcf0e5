"""Audio capture abstractions."""

from __future__ import annotations

import abc
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ...data.models import AudioEncoding
from ...errors import AudioResourceError


@dataclass
class CaptureInfo:
    """Metadata about a capture input."""

    name: str
    sample_rate: int
    channels: int
    device: Optional[str] = None

    def encoding(self) -> AudioEncoding:
        return AudioEncoding(sample_rate=self.sample_rate, channels=self.channels)


class AudioCapture(abc.ABC):
    """Abstract capture stream that yields float32 numpy blocks of shape (frames, channels)."""

    info: CaptureInfo

    @abc.abstractmethod
    def start(self) -> None:
        """Acquire the input device and start streaming.

        Raises :class:`AudioResourceError` when the device is unavailable.
        """

    @abc.abstractmethod
    def stop(self) -> None:
        """Stop the underlying capture stream."""

    @abc.abstractmethod
    def close(self) -> None:
        """Release all resources associated with the stream."""

    @abc.abstractmethod
    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        """Return the next available block or ``None`` if none ready."""


__all__ = ["AudioCapture", "AudioResourceError", "CaptureInfo"]
