"""Factory helpers for constructing audio capture instances."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from ...config import Settings, get_settings
from ...logging import get_logger
from .base import AudioCapture, AudioResourceError, CaptureInfo

LOGGER = get_logger(__name__)


@dataclass
class CaptureRequest:
    """Description of the microphone the user asked for."""

    device: Optional[str]
    sample_rate: int
    channels: int
    name: str = "microphone"

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None, device: Optional[str] = None) -> "CaptureRequest":
        settings = settings or get_settings()
        return cls(
            device=device if device is not None else settings.default_mic_device,
            sample_rate=settings.sample_rate,
            channels=settings.channels,
        )


def _parse_device(device: Optional[str]) -> Optional[int | str]:
    if device is None:
        return None
    device = device.strip()
    if not device:
        return None
    if device.isdigit():
        return int(device)
    return device


def create_capture(request: CaptureRequest) -> AudioCapture:
    """Create the sounddevice-backed capture for ``request``.

    Nothing is opened here; the device is only acquired by ``start()``.
    """

    from .sounddevice_backend import SoundDeviceCapture

    device = _parse_device(request.device)
    info = CaptureInfo(
        name=request.name,
        sample_rate=request.sample_rate,
        channels=request.channels,
        device="default" if device is None else str(device),
    )
    LOGGER.debug("Creating capture for device %s", info.device)
    return SoundDeviceCapture(info=info, device=device)


__all__ = ["AudioResourceError", "CaptureRequest", "create_capture"]
