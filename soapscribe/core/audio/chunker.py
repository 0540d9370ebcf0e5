"""Segment a live capture stream into ordered, gap-free chunks."""

from __future__ import annotations

import asyncio
import contextlib
from typing import AsyncIterator, List, Optional

import numpy as np

from ...data.models import AudioChunk, AudioEncoding
from ...errors import AudioResourceError
from ...logging import get_logger
from ...utils.audio import encode_wav
from .base import AudioCapture

LOGGER = get_logger(__name__)


class AudioChunker:
    """Turn an :class:`AudioCapture` into a lazy sequence of :class:`AudioChunk`.

    Every chunk holds exactly ``chunk_seconds`` worth of frames except the last
    one emitted after :meth:`stop`, which carries whatever tail is left. Frames
    are sliced out of one running buffer, so the end of chunk N is always
    followed by the start of chunk N+1.

    The capture device is acquired by :meth:`open` and released by
    :meth:`close`; :meth:`chunks` always closes it on the way out, including on
    errors and early exit of the consumer.
    """

    def __init__(
        self,
        capture: AudioCapture,
        chunk_seconds: float,
        poll_interval: float = 0.05,
    ) -> None:
        if chunk_seconds <= 0:
            raise ValueError("chunk_seconds must be positive")
        self._capture = capture
        self.chunk_seconds = chunk_seconds
        self.poll_interval = poll_interval
        self._stop_event = asyncio.Event()
        self._opened = False
        self._closed = False
        self._pending: List[np.ndarray] = []
        self._pending_frames = 0
        self._next_index = 0
        self._frames_per_chunk = 0
        self._encoding: Optional[AudioEncoding] = None
        self.frames_captured = 0
        self.frames_emitted = 0

    @property
    def is_open(self) -> bool:
        return self._opened and not self._closed

    @property
    def encoding(self) -> Optional[AudioEncoding]:
        return self._encoding

    def open(self) -> None:
        if self._opened:
            return
        try:
            self._capture.start()
        except AudioResourceError:
            with contextlib.suppress(Exception):
                self._capture.close()
            raise
        except Exception as exc:
            with contextlib.suppress(Exception):
                self._capture.close()
            raise AudioResourceError(
                f"Failed to open audio input {self._capture.info.name}: {exc}"
            ) from exc

        self._opened = True
        info = self._capture.info
        self._encoding = info.encoding()
        self._frames_per_chunk = max(int(round(info.sample_rate * self.chunk_seconds)), 1)
        LOGGER.info(
            "Capturing %s at %s Hz, %s channel(s), %.2fs chunks",
            info.name,
            info.sample_rate,
            info.channels,
            self.chunk_seconds,
        )

    def stop(self) -> None:
        """Ask the capture loop to flush its tail and finish."""

        self._stop_event.set()

    def close(self) -> None:
        if not self._opened or self._closed:
            return
        self._closed = True
        with contextlib.suppress(Exception):
            self._capture.stop()
        with contextlib.suppress(Exception):
            self._capture.close()
        LOGGER.debug("Released audio input %s", self._capture.info.name)

    async def chunks(self) -> AsyncIterator[AudioChunk]:
        self.open()
        try:
            while not self._stop_event.is_set():
                block = self._capture.read(timeout=0)
                if block is None:
                    with contextlib.suppress(asyncio.TimeoutError):
                        await asyncio.wait_for(self._stop_event.wait(), timeout=self.poll_interval)
                    continue
                self._buffer(block)
                while self._pending_frames >= self._frames_per_chunk:
                    yield self._emit(self._frames_per_chunk)
                await asyncio.sleep(0)

            with contextlib.suppress(Exception):
                self._capture.stop()
            while True:
                block = self._capture.read(timeout=0)
                if block is None:
                    break
                self._buffer(block)
            while self._pending_frames >= self._frames_per_chunk:
                yield self._emit(self._frames_per_chunk)
            if self._pending_frames:
                yield self._emit(self._pending_frames)
        finally:
            self.close()

    def _buffer(self, block: np.ndarray) -> None:
        data = np.asarray(block, dtype=np.float32)
        if data.ndim == 1:
            data = data[:, np.newaxis]
        if data.shape[0] == 0:
            return
        self._pending.append(data)
        self._pending_frames += data.shape[0]
        self.frames_captured += data.shape[0]

    def _emit(self, frames: int) -> AudioChunk:
        assert self._encoding is not None
        data = np.concatenate(self._pending, axis=0)
        head, tail = data[:frames], data[frames:]
        self._pending = [tail] if tail.shape[0] else []
        self._pending_frames = tail.shape[0]

        chunk = AudioChunk(
            sequence_index=self._next_index,
            data=encode_wav(head, self._encoding.sample_rate),
            encoding=self._encoding,
            frames=head.shape[0],
        )
        self._next_index += 1
        self.frames_emitted += chunk.frames
        return chunk


__all__ = ["AudioChunker"]
