from __future__ import annotations

import sys

import numpy as np
import pytest

from soapscribe.config import Settings
from soapscribe.core.audio.factory import CaptureRequest, create_capture
from soapscribe.core.audio.sounddevice_backend import SoundDeviceCapture
from soapscribe.errors import AudioResourceError


class _PortAudioError(Exception):
    pass


class _FakeSoundDevice:
    PortAudioError = _PortAudioError

    def __init__(self, rejected_rates=(), inputs: int = 1) -> None:
        self.rejected_rates = set(rejected_rates)
        self.inputs = inputs
        self.streams: list["_FakeStream"] = []

    def query_devices(self, device=None, kind=None):
        return {"name": "Fake Mic", "max_input_channels": self.inputs, "default_samplerate": 44_100.0}

    def InputStream(self, samplerate, channels, dtype, blocksize, device, callback):  # noqa: N802
        if samplerate in self.rejected_rates:
            raise _PortAudioError("Invalid sample rate")
        stream = _FakeStream(samplerate, callback)
        self.streams.append(stream)
        return stream


class _FakeStream:
    def __init__(self, samplerate, callback) -> None:
        self.samplerate = samplerate
        self.callback = callback
        self.started = False
        self.closed = False

    def start(self) -> None:
        self.started = True

    def stop(self) -> None:
        self.started = False

    def close(self) -> None:
        self.closed = True


def test_capture_request_from_settings_uses_defaults() -> None:
    settings = Settings(sample_rate=16_000, channels=1, default_mic_device="3")

    request = CaptureRequest.from_settings(settings)

    assert request.device == "3"
    assert request.sample_rate == 16_000
    assert CaptureRequest.from_settings(settings, device="USB").device == "USB"


def test_create_capture_parses_numeric_device(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "sounddevice", _FakeSoundDevice())

    capture = create_capture(CaptureRequest(device=" 2 ", sample_rate=16_000, channels=1))

    assert isinstance(capture, SoundDeviceCapture)
    assert capture._device == 2  # pylint: disable=protected-access
    assert capture.info.device == "2"


def test_start_falls_back_to_device_default_rate(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_sd = _FakeSoundDevice(rejected_rates={48_000})
    monkeypatch.setitem(sys.modules, "sounddevice", fake_sd)
    capture = create_capture(CaptureRequest(device=None, sample_rate=48_000, channels=1))

    capture.start()

    assert capture.info.sample_rate == 44_100
    assert fake_sd.streams[-1].started
    assert capture.info.encoding().sample_rate == 44_100


def test_callback_blocks_are_readable(monkeypatch: pytest.MonkeyPatch) -> None:
    fake_sd = _FakeSoundDevice()
    monkeypatch.setitem(sys.modules, "sounddevice", fake_sd)
    capture = create_capture(CaptureRequest(device=None, sample_rate=44_100, channels=1))
    capture.start()

    block = np.ones((4, 1), dtype=np.float32)
    fake_sd.streams[-1].callback(block, 4, None, None)

    assert np.array_equal(capture.read(timeout=0), block)
    assert capture.read(timeout=0) is None
    capture.close()
    assert fake_sd.streams[-1].closed


def test_device_without_inputs_is_a_resource_error(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setitem(sys.modules, "sounddevice", _FakeSoundDevice(inputs=0))
    capture = create_capture(CaptureRequest(device="1", sample_rate=48_000, channels=1))

    with pytest.raises(AudioResourceError):
        capture.start()
