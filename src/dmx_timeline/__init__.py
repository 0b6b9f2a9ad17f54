"""Timed DMX lighting playback from declarative JSON timelines.

A timeline is a sparse list of events, each patching some channels of a
512-channel universe.  :func:`~dmx_timeline.resolver.resolve` turns it into
full-universe playback steps and
:class:`~dmx_timeline.player.PlaybackController` drives those steps through a
:class:`~dmx_timeline.scheduler.FrameScheduler` to the DMX widget::

    from dmx_timeline import DeviceLink, FrameScheduler, PlaybackController
"""

from __future__ import annotations

__version__ = "1.0.0"

from .channels import CHANNEL_COUNT, ChannelState, apply_patch, blackout, interpolate
from .device import DeviceLink, DeviceLinkError, DeviceNotFoundError, encode_frame
from .player import PlaybackController, PlaybackOptions, PlaybackState
from .resolver import PlaybackStep, resolve
from .scheduler import FrameScheduler, PlaybackHandle
from .shutdown import ShutdownCoordinator
from .timeline import (
    Event,
    EventType,
    Preset,
    Timeline,
    TimelineError,
    load_presets,
    load_timeline,
)

__all__ = [
    "CHANNEL_COUNT",
    "ChannelState",
    "apply_patch",
    "blackout",
    "interpolate",
    "DeviceLink",
    "DeviceLinkError",
    "DeviceNotFoundError",
    "encode_frame",
    "PlaybackController",
    "PlaybackOptions",
    "PlaybackState",
    "PlaybackStep",
    "resolve",
    "FrameScheduler",
    "PlaybackHandle",
    "ShutdownCoordinator",
    "Event",
    "EventType",
    "Preset",
    "Timeline",
    "TimelineError",
    "load_presets",
    "load_timeline",
]
