"""Playback lifecycle: initial delay, resolution, looping and halting."""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Iterable, List, Mapping, Optional, Protocol

from .resolver import PlaybackStep, resolve
from .scheduler import PlaybackHandle
from .timeline import Event, Preset, Timeline, format_time

LOGGER = logging.getLogger(__name__)

COMPLETION_BUFFER_SECONDS = 0.5

Resolver = Callable[[Iterable[Event], Mapping[str, Preset], float, float], List[PlaybackStep]]


class Scheduler(Protocol):
    def run(self, steps: Iterable[PlaybackStep]) -> PlaybackHandle: ...

    def run_loop(self, steps: Iterable[PlaybackStep]) -> PlaybackHandle: ...

    def stop(self) -> None: ...


class BlackoutTarget(Protocol):
    def blackout(self) -> None: ...


class PlaybackState(str, Enum):
    IDLE = "idle"
    DELAYING = "delaying"
    RESOLVING = "resolving"
    PLAYING = "playing"
    COMPLETING = "completing"
    PAUSED_BETWEEN_LOOPS = "paused_between_loops"
    LOOPING = "looping"
    TERMINATED = "terminated"


@dataclass(frozen=True)
class PlaybackOptions:
    """How a timeline should be played.

    ``start_time`` is a one-time seek in seconds: only the first iteration
    honours it, every loop after that restarts from zero.
    """

    loop: bool = False
    loop_interval_ms: float = 0.0
    initial_delay_ms: float = 0.0
    start_time: float = 0.0

    def __post_init__(self) -> None:
        for name in ("loop_interval_ms", "initial_delay_ms", "start_time"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must not be negative")


class PlaybackController:
    """Drive a timeline through the frame scheduler until completion or halt."""

    def __init__(
        self,
        scheduler: Scheduler,
        device: BlackoutTarget,
        timeline: Timeline,
        presets: Mapping[str, Preset],
        options: PlaybackOptions = PlaybackOptions(),
        *,
        resolver: Resolver = resolve,
        completion_buffer: float = COMPLETION_BUFFER_SECONDS,
    ) -> None:
        self._scheduler = scheduler
        self._device = device
        self._timeline = timeline
        self._presets = presets
        self._options = options
        self._resolver = resolver
        self._completion_buffer = max(completion_buffer, 0.0)

        self._lock = threading.RLock()
        self._halted = threading.Event()
        self._handle: Optional[PlaybackHandle] = None
        self._state = PlaybackState.IDLE
        self.iterations = 0

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def halted(self) -> bool:
        return self._halted.is_set()

    @property
    def handle(self) -> Optional[PlaybackHandle]:
        return self._handle

    def run(self) -> bool:
        """Play the timeline; return ``True`` on completion, ``False`` when halted."""

        options = self._options
        try:
            if options.initial_delay_ms > 0:
                self._state = PlaybackState.DELAYING
                LOGGER.info("Waiting %s seconds before starting...", options.initial_delay_ms / 1000)
                if self._halted.wait(options.initial_delay_ms / 1000):
                    return False

            start_time = options.start_time
            while True:
                if not self._begin_iteration(start_time):
                    return False

                if options.loop and options.loop_interval_ms <= 0:
                    self._state = PlaybackState.LOOPING
                    self._halted.wait()
                    return False

                expected = max(self._timeline.duration - start_time, 0.0) + self._completion_buffer
                if self._halted.wait(expected):
                    return False

                if not options.loop:
                    self._state = PlaybackState.COMPLETING
                    LOGGER.info("Playback completed")
                    return True

                if not self._pause_between_loops():
                    return False
                start_time = 0.0
        finally:
            self._state = PlaybackState.TERMINATED

    def halt(self) -> None:
        """Stop playback and prevent any further iteration from starting."""

        with self._lock:
            self._halted.set()
            handle = self._handle
            self._handle = None
        if handle is not None:
            handle.stop()
        self._scheduler.stop()

    def _begin_iteration(self, start_time: float) -> bool:
        with self._lock:
            if self._halted.is_set():
                return False
            self._state = PlaybackState.RESOLVING
            LOGGER.info("Creating playback (starting at %s)...", format_time(start_time))
            steps = self._resolver(
                self._timeline.events,
                self._presets,
                self._timeline.duration,
                start_time,
            )
            self._state = PlaybackState.PLAYING
            LOGGER.info("Starting playback (duration: %ss)...", self._timeline.duration)
            if self._options.loop and self._options.loop_interval_ms <= 0:
                self._handle = self._scheduler.run_loop(steps)
            else:
                self._handle = self._scheduler.run(steps)
            self.iterations += 1
            if self._halted.is_set():
                self._handle.stop()
                return False
        return True

    def _pause_between_loops(self) -> bool:
        interval_ms = self._options.loop_interval_ms
        with self._lock:
            if self._halted.is_set():
                return False
            self._state = PlaybackState.PAUSED_BETWEEN_LOOPS
            LOGGER.info(
                "Playback completed. Pausing for %s minutes before next loop...",
                interval_ms / 60000,
            )
            handle = self._handle
            self._handle = None
        if handle is not None:
            handle.stop()
        with self._lock:
            if self._halted.is_set():
                return False
            self._device.blackout()
        return not self._halted.wait(interval_ms / 1000)


__all__ = [
    "COMPLETION_BUFFER_SECONDS",
    "PlaybackController",
    "PlaybackOptions",
    "PlaybackState",
]
