"""Resolve sparse timeline events into full-universe playback steps."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterable, List, Mapping, Optional, Sequence

from .channels import ChannelState, apply_patch
from .timeline import Event, EventType, Preset

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class PlaybackStep:
    """Fade to ``target`` over ``duration_ms`` milliseconds."""

    target: ChannelState
    duration_ms: float


def _event_patch(event: Event, presets: Mapping[str, Preset]) -> Optional[Sequence[int]]:
    if event.type is EventType.CUSTOM:
        return event.channels
    if event.type is EventType.PRESET:
        preset = presets.get(event.preset_name) if event.preset_name is not None else None
        if preset is None:
            LOGGER.debug(
                "Preset %r referenced at %ss not found; leaving channels unchanged",
                event.preset_name,
                event.time,
            )
            return None
        return preset.channels
    return None


def apply_event(state: ChannelState, event: Event, presets: Mapping[str, Preset]) -> ChannelState:
    """Return *state* patched with the channels *event* sets."""

    return apply_patch(state, _event_patch(event, presets))


def resolve(
    events: Iterable[Event],
    presets: Mapping[str, Preset],
    duration: float,
    start_time: float = 0.0,
) -> List[PlaybackStep]:
    """Build the step sequence that plays the timeline from *start_time* to *duration*.

    The first step is the state in effect at *start_time* with a zero
    duration.  Each later event becomes a step whose duration is the gap
    since the previous event, and a final hold pads the sequence out to
    *duration*.
    """

    ordered = sorted(events, key=lambda event: event.time)

    seed_event: Optional[Event] = None
    for event in ordered:
        if event.time > start_time:
            break
        seed_event = event

    current = ChannelState.zeros()
    if seed_event is not None:
        current = apply_event(current, seed_event, presets)

    steps = [PlaybackStep(target=current, duration_ms=0.0)]

    last_event_time = start_time
    for event in ordered:
        if event.time <= start_time:
            continue
        step_duration_ms = (event.time - last_event_time) * 1000
        current = apply_event(current, event, presets)
        steps.append(PlaybackStep(target=current, duration_ms=step_duration_ms))
        last_event_time = event.time

    if last_event_time < duration:
        steps.append(PlaybackStep(target=current, duration_ms=(duration - last_event_time) * 1000))

    return steps


def total_duration_ms(steps: Iterable[PlaybackStep]) -> float:
    return sum(step.duration_ms for step in steps)


__all__ = ["PlaybackStep", "apply_event", "resolve", "total_duration_ms"]
