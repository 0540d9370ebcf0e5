"""Audio processing utilities."""

from __future__ import annotations

import io
import wave
from typing import Tuple

import numpy as np

from ..data.models import AudioEncoding


def to_int16(data: np.ndarray) -> np.ndarray:
    if data.ndim == 1:
        data = data[:, np.newaxis]
    clipped = np.clip(data, -1.0, 1.0)
    return (clipped * 32767.0).astype(np.int16)


def encode_wav(data: np.ndarray, sample_rate: int) -> bytes:
    """Return ``data`` (float samples in [-1, 1]) as a 16-bit PCM WAV payload."""

    int16 = to_int16(data)
    buffer = io.BytesIO()
    with wave.open(buffer, "wb") as wf:
        wf.setnchannels(int16.shape[1])
        wf.setsampwidth(2)
        wf.setframerate(sample_rate)
        wf.writeframes(int16.tobytes())
    return buffer.getvalue()


def decode_wav(payload: bytes) -> Tuple[np.ndarray, int]:
    """Inverse of :func:`encode_wav`; returns float32 samples shaped (frames, channels)."""

    with wave.open(io.BytesIO(payload), "rb") as wf:
        frames = wf.readframes(wf.getnframes())
        channels = wf.getnchannels()
        sample_rate = wf.getframerate()
    data = np.frombuffer(frames, dtype=np.int16).astype(np.float32)
    data = data.reshape(-1, channels)
    data /= 32767.0
    return data, sample_rate


def sniff_encoding(payload: bytes) -> AudioEncoding:
    """Read the encoding tag from a WAV header.

    Raises ``wave.Error`` (or ``EOFError``) when ``payload`` is not a WAV file.
    """

    with wave.open(io.BytesIO(payload), "rb") as wf:
        if wf.getsampwidth() != 2:
            raise wave.Error(f"Unsupported sample width: {wf.getsampwidth() * 8} bits")
        return AudioEncoding(sample_rate=wf.getframerate(), channels=wf.getnchannels())


__all__ = ["decode_wav", "encode_wav", "sniff_encoding", "to_int16"]
