import json
import logging
from pathlib import Path

import pytest

from dmx_timeline import cli
from dmx_timeline.channels import ChannelState
from dmx_timeline.device import DeviceLinkError, DeviceNotFoundError


class _FakeDeviceLink:
    instances: list["_FakeDeviceLink"] = []

    def __init__(self, port=None, *, wait_for_device=False) -> None:
        self.port = port
        self.wait_for_device = wait_for_device
        self.frames: list[ChannelState] = []
        self.blackouts = 0
        self.closed = False
        _FakeDeviceLink.instances.append(self)

    def send_state(self, state: ChannelState) -> None:
        self.frames.append(state)

    def cancel(self) -> None:
        pass

    def blackout(self) -> None:
        self.blackouts += 1

    def close(self) -> None:
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


@pytest.fixture
def show(tmp_path: Path) -> tuple[Path, Path]:
    timeline = tmp_path / "timeline.json"
    presets = tmp_path / "presets.json"
    timeline.write_text(
        json.dumps(
            {
                "duration": 0.2,
                "events": [
                    {"time": 0, "type": "custom", "channels": [255]},
                    {"time": 0.02, "type": "preset", "presetName": "half"},
                ],
            }
        ),
        encoding="utf-8",
    )
    presets.write_text(json.dumps([{"name": "half", "channels": [128, 128]}]), encoding="utf-8")
    return timeline, presets


@pytest.fixture
def fake_device(monkeypatch):
    _FakeDeviceLink.instances = []
    monkeypatch.setattr(cli, "DeviceLink", _FakeDeviceLink)
    monkeypatch.setattr(cli, "COMPLETION_BUFFER_SECONDS", 0.0)
    return _FakeDeviceLink


def test_options_from_args_converts_units() -> None:
    args = cli.build_parser().parse_args(["-s", "12.5", "-l", "-i", "1.5", "-w", "3"])

    options = cli.options_from_args(args)

    assert options.start_time == 12.5
    assert options.loop is True
    assert options.loop_interval_ms == 90_000
    assert options.initial_delay_ms == 3000


def test_parser_rejects_negative_values() -> None:
    with pytest.raises(SystemExit) as excinfo:
        cli.build_parser().parse_args(["-s", "-1"])

    assert excinfo.value.code == 2


def test_main_plays_timeline_to_completion(show, fake_device) -> None:
    timeline, presets = show

    cli.main(["-t", str(timeline), "-p", str(presets), "-d", "/dev/ttyUSB0"])

    (device,) = fake_device.instances
    assert device.port == "/dev/ttyUSB0"
    assert device.closed
    assert device.frames[0][1] == 255
    assert device.frames[-1][1] == 128
    assert device.frames[-1][2] == 128


def test_main_exits_when_timeline_missing(tmp_path: Path, fake_device, caplog) -> None:
    with caplog.at_level(logging.ERROR):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-t", str(tmp_path / "nope.json"), "-p", str(tmp_path / "nope.json")])

    assert excinfo.value.code == 1
    assert "Unable to read timeline file" in caplog.text
    assert fake_device.instances == []


def test_main_exits_on_invalid_timeline(show, fake_device, caplog) -> None:
    timeline, presets = show
    timeline.write_text(json.dumps({"events": []}), encoding="utf-8")

    with caplog.at_level(logging.ERROR):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-t", str(timeline), "-p", str(presets)])

    assert excinfo.value.code == 1
    assert "Invalid timeline format" in caplog.text


def test_main_exits_when_device_missing(show, monkeypatch, caplog) -> None:
    timeline, presets = show

    def _missing(*args, **kwargs):
        raise DeviceNotFoundError("No widget attached for testing")

    monkeypatch.setattr(cli, "DeviceLink", _missing)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-t", str(timeline), "-p", str(presets)])

    assert excinfo.value.code == 1
    assert "No widget attached for testing" in caplog.text


def test_main_exits_when_device_fails_between_loops(show, fake_device, monkeypatch, caplog) -> None:
    timeline, presets = show

    def _failing_blackout(self) -> None:
        raise DeviceLinkError("DMX device became unavailable during write")

    monkeypatch.setattr(_FakeDeviceLink, "blackout", _failing_blackout)

    with caplog.at_level(logging.ERROR):
        with pytest.raises(SystemExit) as excinfo:
            cli.main(["-t", str(timeline), "-p", str(presets), "-l", "-i", "0.001"])

    assert excinfo.value.code == 1
    assert "became unavailable" in caplog.text
    assert fake_device.instances[0].closed


def test_main_uses_default_paths(tmp_path: Path, show, fake_device, monkeypatch) -> None:
    monkeypatch.chdir(show[0].parent)

    cli.main([])

    assert len(fake_device.instances) == 1
