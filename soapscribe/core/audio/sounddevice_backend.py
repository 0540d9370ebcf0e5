"""Microphone capture powered by sounddevice/PortAudio."""

from __future__ import annotations

import contextlib
import queue
from typing import List, Optional

import numpy as np

from ...logging import get_logger
from .base import AudioCapture, AudioResourceError, CaptureInfo

LOGGER = get_logger(__name__)

FALLBACK_SAMPLE_RATES = (48_000, 44_100, 32_000, 24_000, 22_050, 16_000, 8_000)


class SoundDeviceCapture(AudioCapture):
    """Capture stream using the sounddevice library.

    PortAudio invokes :meth:`_callback` on its own thread; blocks are handed to
    the event loop side through a thread-safe queue and picked up by
    :meth:`read`.
    """

    def __init__(
        self,
        info: CaptureInfo,
        device: Optional[int | str] = None,
        block_size: int = 1024,
        dtype: str = "float32",
    ) -> None:
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:  # pragma: no cover - depends on PortAudio install
            raise AudioResourceError("sounddevice with a working PortAudio is required for capture") from exc

        self._sd = sd
        self.info = info
        self._device = device
        self._block_size = block_size
        self._dtype = dtype
        self._queue: queue.Queue[np.ndarray] = queue.Queue()
        self._stream: Optional[sd.InputStream] = None
        self._device_info: Optional[dict] = None

    def _callback(self, indata, frames, time_info, status) -> None:  # pragma: no cover - executed in runtime
        if status:
            LOGGER.warning("sounddevice status: %s", status)
        self._queue.put(indata.copy())

    def start(self) -> None:
        if self._stream is not None:
            return
        LOGGER.info("Opening microphone %s for %s", self._device, self.info.name)

        last_error: Optional[Exception] = None
        for sample_rate in self._sample_rate_candidates():
            try:
                stream = self._sd.InputStream(
                    samplerate=sample_rate,
                    channels=self.info.channels,
                    dtype=self._dtype,
                    blocksize=self._block_size,
                    device=self._device,
                    callback=self._callback,
                )
            except self._sd.PortAudioError as exc:  # pragma: no cover - depends on runtime device
                last_error = exc
                if "sample rate" in str(exc).lower():
                    LOGGER.warning("Device %s rejected %s Hz: %s", self._device, sample_rate, exc)
                    continue
                raise AudioResourceError(str(exc)) from exc

            try:
                stream.start()
            except self._sd.PortAudioError as exc:  # pragma: no cover - depends on runtime device
                last_error = exc
                with contextlib.suppress(Exception):
                    stream.close()
                LOGGER.warning("Failed to start %s at %s Hz: %s", self._device, sample_rate, exc)
                continue

            self._stream = stream
            if sample_rate != self.info.sample_rate:
                LOGGER.warning(
                    "Adjusted sample rate for %s from %s Hz to %s Hz",
                    self.info.name,
                    self.info.sample_rate,
                    sample_rate,
                )
            self.info.sample_rate = sample_rate
            return

        message = f"Failed to open microphone {self._device}: no supported sample rate"
        if last_error is not None:
            message = f"{message} ({last_error})"
        raise AudioResourceError(message) from last_error

    def stop(self) -> None:
        if self._stream is not None:
            LOGGER.info("Stopping capture for %s", self.info.name)
            self._stream.stop()

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def read(self, timeout: Optional[float] = None) -> Optional[np.ndarray]:
        try:
            if timeout is None or timeout <= 0:
                return self._queue.get_nowait()
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def _sample_rate_candidates(self) -> List[int]:
        candidates: List[int] = []
        if self.info.sample_rate > 0:
            candidates.append(int(self.info.sample_rate))

        device_info = self._query_device_info()
        if device_info:
            raw = device_info.get("default_samplerate")
            with contextlib.suppress(TypeError, ValueError):
                default_rate = int(float(raw))
                if default_rate > 0 and default_rate not in candidates:
                    candidates.append(default_rate)

        for rate in FALLBACK_SAMPLE_RATES:
            if rate not in candidates:
                candidates.append(rate)
        return candidates

    def _query_device_info(self) -> Optional[dict]:
        if self._device_info is not None:
            return self._device_info
        try:  # pragma: no cover - depends on runtime availability
            info = self._sd.query_devices(self._device, "input")
        except Exception as exc:  # pragma: no cover - depends on runtime availability
            LOGGER.debug("Failed to query device info for %s: %s", self._device, exc)
            return None
        if int(info.get("max_input_channels") or 0) <= 0:
            raise AudioResourceError(f"Device {self._device} has no input channels")
        self._device_info = info
        return info


__all__ = ["FALLBACK_SAMPLE_RATES", "SoundDeviceCapture"]
