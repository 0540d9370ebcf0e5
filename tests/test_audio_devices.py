"""Tests for audio device utilities."""

from __future__ import annotations

from types import SimpleNamespace

from soapscribe.core.audio import devices


class _FakeSoundDeviceModule:
    def __init__(self) -> None:
        self.default = SimpleNamespace(device=(1, 3))
        self._hostapis = [{"name": "ALSA"}, {"name": "PulseAudio"}]
        self._devices = [
            {"name": "HDMI Output", "max_input_channels": 0, "hostapi": 0, "default_samplerate": 48_000.0},
            {"name": "USB Microphone", "max_input_channels": 1, "hostapi": 1, "default_samplerate": 44_100.0},
            {"name": "Line In", "max_input_channels": 2, "hostapi": 0, "default_samplerate": 48_000.0},
        ]

    def query_hostapis(self, index: int | None = None):  # pragma: no cover - trivial
        if index is None:
            return self._hostapis
        return self._hostapis[index]

    def query_devices(self):  # pragma: no cover - trivial
        return list(self._devices)


def test_list_input_devices_skips_outputs_and_marks_default() -> None:
    results = devices.list_input_devices(_FakeSoundDeviceModule())

    assert [device.name for device in results] == ["USB Microphone", "Line In"]
    assert results[0].id == 1
    assert results[0].hostapi == "PulseAudio"
    assert results[0].is_default is True
    assert results[1].is_default is False


def test_format_device_table_fallback_mentions_portaudio(monkeypatch) -> None:
    monkeypatch.setattr(devices, "list_input_devices", lambda: [])

    message = devices.format_device_table()

    assert message.startswith("No input devices detected.")
    assert "PortAudio" in message


def test_format_device_table_accepts_custom_device_list() -> None:
    custom_devices = [
        devices.DeviceInfo(
            id=7,
            name="Custom Microphone",
            max_input_channels=2,
            default_samplerate=48_000.0,
            hostapi="CoreAudio",
            is_default=True,
        )
    ]

    table = devices.format_device_table(custom_devices)

    assert "Custom Microphone" in table
    assert "  7 |" in table
    assert "48000" in table
    assert table.rstrip().endswith("yes")
