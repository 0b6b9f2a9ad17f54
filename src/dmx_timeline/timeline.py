"""Loading and validation of timeline and preset JSON documents."""

from __future__ import annotations

import json
import logging
import math
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

LOGGER = logging.getLogger(__name__)


class TimelineError(RuntimeError):
    """Raised when a timeline or presets file cannot be loaded."""


class EventType(str, Enum):
    """How an :class:`Event` describes its channel values."""

    CUSTOM = "custom"
    PRESET = "preset"


@dataclass(frozen=True)
class Event:
    """Timestamped instruction moving some channels to new values."""

    time: float
    type: EventType
    channels: Optional[Tuple[int, ...]] = None
    preset_name: Optional[str] = None


@dataclass(frozen=True)
class Preset:
    """Named, reusable partial channel patch."""

    name: str
    channels: Tuple[int, ...]


@dataclass(frozen=True)
class Timeline:
    """Events in file order plus the declared show length in seconds."""

    events: Tuple[Event, ...]
    duration: float


def _read_json(path: Path, *, kind: str) -> Any:
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise TimelineError(f"Unable to read {kind} file {path}: {exc}") from exc
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise TimelineError(f"Invalid JSON in {kind} file {path}: {exc}") from exc


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def _parse_channels(raw: Any, *, where: str) -> Tuple[int, ...]:
    if not isinstance(raw, list):
        raise TimelineError(f"{where}: 'channels' must be a list of integers")
    channels: List[int] = []
    for index, value in enumerate(raw):
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value != int(value):
            raise TimelineError(f"{where}: channel {index + 1} value {value!r} is not an integer")
        channels.append(int(value))
    return tuple(channels)


def _parse_event(raw: Any, index: int) -> Event:
    where = f"event #{index}"
    if not isinstance(raw, dict):
        raise TimelineError(f"{where} must be an object")

    time_value = raw.get("time")
    if not _is_number(time_value) or time_value < 0:
        raise TimelineError(f"{where}: 'time' must be a non-negative number of seconds")

    try:
        event_type = EventType(raw.get("type"))
    except ValueError:
        raise TimelineError(
            f"{where}: 'type' must be 'custom' or 'preset', got {raw.get('type')!r}"
        ) from None

    channels: Optional[Tuple[int, ...]] = None
    preset_name: Optional[str] = None
    if event_type is EventType.CUSTOM:
        if raw.get("channels") is not None:
            channels = _parse_channels(raw["channels"], where=where)
    else:
        preset_name = raw.get("presetName")
        if not isinstance(preset_name, str):
            raise TimelineError(f"{where}: preset events require a 'presetName' string")

    return Event(time=float(time_value), type=event_type, channels=channels, preset_name=preset_name)


def parse_timeline(contents: Any) -> Timeline:
    """Validate decoded JSON *contents* and return a :class:`Timeline`."""

    if not isinstance(contents, dict):
        raise TimelineError("Invalid timeline format. Expected { events: [...], duration: number }")
    events_data = contents.get("events")
    duration = contents.get("duration")
    if not isinstance(events_data, list) or not _is_number(duration) or duration <= 0:
        raise TimelineError("Invalid timeline format. Expected { events: [...], duration: number }")

    events = tuple(_parse_event(raw, index) for index, raw in enumerate(events_data))
    late = [event.time for event in events if event.time > duration]
    if late:
        LOGGER.warning(
            "%d event(s) occur after the timeline duration of %ss (latest at %ss)",
            len(late),
            duration,
            max(late),
        )
    return Timeline(events=events, duration=float(duration))


def parse_presets(contents: Any) -> Dict[str, Preset]:
    """Validate decoded JSON *contents* and return presets keyed by name."""

    if not isinstance(contents, list):
        raise TimelineError("Invalid presets format. Expected [ { name, channels }, ... ]")
    presets: Dict[str, Preset] = {}
    for index, raw in enumerate(contents):
        where = f"preset #{index}"
        if not isinstance(raw, dict):
            raise TimelineError(f"{where} must be an object")
        name = raw.get("name")
        if not isinstance(name, str):
            raise TimelineError(f"{where}: 'name' must be a string")
        channels = _parse_channels(raw.get("channels"), where=where)
        if name in presets:
            LOGGER.warning("Duplicate preset %r ignored; the first definition wins", name)
            continue
        presets[name] = Preset(name=name, channels=channels)
    return presets


def load_timeline(path: str | Path) -> Timeline:
    """Load *path* and return a validated :class:`Timeline`."""

    file_path = Path(path)
    return parse_timeline(_read_json(file_path, kind="timeline"))


def load_presets(path: str | Path) -> Dict[str, Preset]:
    """Load *path* and return presets keyed by name."""

    file_path = Path(path)
    return parse_presets(_read_json(file_path, kind="presets"))


def format_time(seconds: float) -> str:
    """Format *seconds* as ``M:SS.mmm`` for log output."""

    minutes = int(seconds // 60)
    remaining = int(seconds % 60)
    milliseconds = math.floor((seconds % 1) * 1000)
    return f"{minutes}:{remaining:02d}.{milliseconds:03d}"


__all__ = [
    "Event",
    "EventType",
    "Preset",
    "Timeline",
    "TimelineError",
    "format_time",
    "load_presets",
    "load_timeline",
    "parse_presets",
    "parse_timeline",
]
