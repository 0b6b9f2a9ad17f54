"""Timed transmission of resolved playback steps to the DMX device."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, List, Optional, Protocol

from .channels import ChannelState, interpolate
from .resolver import PlaybackStep

LOGGER = logging.getLogger(__name__)

DEFAULT_FPS = 30.0
STOP_TIMEOUT_SECONDS = 2.0


class FrameSink(Protocol):
    def send_state(self, state: ChannelState) -> None: ...


class PlaybackHandle:
    """Background worker that fades through a step sequence."""

    def __init__(
        self,
        *,
        sink: FrameSink,
        steps: Iterable[PlaybackStep],
        fps: float = DEFAULT_FPS,
        loop: bool = False,
        clock: Callable[[], float] = time.monotonic,
        stop_timeout: float = STOP_TIMEOUT_SECONDS,
    ) -> None:
        self._sink = sink
        self._steps: List[PlaybackStep] = list(steps)
        self._cycle_ms = sum(step.duration_ms for step in self._steps)
        self._stop_timeout = stop_timeout
        self._frame_interval = 1.0 / max(fps, 1.0)
        self._loop = loop
        self._clock = clock
        self._stop_event = threading.Event()
        self._finished = threading.Event()
        self._current: Optional[ChannelState] = None
        self._thread = threading.Thread(target=self._run, name="DMXPlayback", daemon=True)

    @property
    def steps(self) -> List[PlaybackStep]:
        return list(self._steps)

    @property
    def is_running(self) -> bool:
        return self._thread.is_alive()

    def start(self) -> None:
        if self._thread.is_alive() or self._finished.is_set() or self._stop_event.is_set():
            return
        self._thread.start()

    def stop(self) -> None:
        self._stop_event.set()
        if not self._thread.is_alive():
            self._finished.set()
        elif self._thread is not threading.current_thread():
            self._thread.join(self._stop_timeout)
            if self._thread.is_alive():
                LOGGER.warning(
                    "Playback thread still busy %.1fs after stop; leaving it to finish",
                    self._stop_timeout,
                )

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until playback ends on its own or is stopped."""

        return self._finished.wait(timeout)

    def _run(self) -> None:
        try:
            if not self._steps:
                return
            while self.play_once():
                if not self._loop:
                    return
                if self._cycle_ms <= 0:
                    LOGGER.debug("Sequence has no duration; holding the final frame")
                    return
        except Exception:
            LOGGER.exception("Playback aborted after a device error")
        finally:
            self._finished.set()

    def play_once(self) -> bool:
        """Play the sequence once; return ``False`` when stopped part-way."""

        step_start = self._clock()
        for step in self._steps:
            if self._stop_event.is_set():
                return False
            step_end = step_start + step.duration_ms / 1000.0
            if not self._fade(step, step_start, step_end):
                return False
            step_start = step_end
        return not self._stop_event.is_set()

    def _fade(self, step: PlaybackStep, step_start: float, step_end: float) -> bool:
        origin = self._current if self._current is not None else step.target
        span = step_end - step_start
        while True:
            now = self._clock()
            if span <= 0 or now >= step_end:
                self._send(step.target)
                return not self._stop_event.is_set()
            frame = interpolate(origin, step.target, (now - step_start) / span)
            self._send(frame)
            wait_for = min(self._frame_interval, step_end - now)
            if self._stop_event.wait(max(wait_for, 0.0)):
                return False

    def _send(self, state: ChannelState) -> None:
        if self._stop_event.is_set():
            return
        if state == self._current:
            return
        self._sink.send_state(state)
        self._current = state


class FrameScheduler:
    """Run step sequences one at a time against a frame sink."""

    def __init__(
        self,
        sink: FrameSink,
        *,
        fps: float = DEFAULT_FPS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._sink = sink
        self._fps = fps
        self._clock = clock
        self._lock = threading.RLock()
        self._active: Optional[PlaybackHandle] = None

    @property
    def active(self) -> Optional[PlaybackHandle]:
        return self._active

    def run(self, steps: Iterable[PlaybackStep]) -> PlaybackHandle:
        return self._start(steps, loop=False)

    def run_loop(self, steps: Iterable[PlaybackStep]) -> PlaybackHandle:
        return self._start(steps, loop=True)

    def stop(self) -> None:
        with self._lock:
            handle = self._active
            self._active = None
        if handle is not None:
            handle.stop()
            LOGGER.debug("Stopped active playback")

    def _start(self, steps: Iterable[PlaybackStep], *, loop: bool) -> PlaybackHandle:
        self.stop()
        handle = PlaybackHandle(
            sink=self._sink,
            steps=steps,
            fps=self._fps,
            loop=loop,
            clock=self._clock,
        )
        with self._lock:
            self._active = handle
            handle.start()
        LOGGER.debug("Started playback of %d steps (loop=%s)", len(handle.steps), loop)
        return handle


__all__ = ["DEFAULT_FPS", "FrameScheduler", "FrameSink", "PlaybackHandle", "STOP_TIMEOUT_SECONDS"]
