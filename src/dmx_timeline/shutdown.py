"""Signal-driven shutdown that always leaves the rig dark."""

from __future__ import annotations

import logging
import signal
import sys
import threading
import time
from typing import Any, Callable, Dict, Optional, Protocol, Sequence

LOGGER = logging.getLogger(__name__)

SHUTDOWN_GRACE_SECONDS = 0.5

DEFAULT_SIGNALS: tuple[int, ...] = tuple(
    sig
    for sig in (
        signal.SIGINT,
        signal.SIGTERM,
        getattr(signal, "SIGQUIT", None),
    )
    if sig is not None
)


class Haltable(Protocol):
    def halt(self) -> None: ...


class ShutdownTarget(Protocol):
    def cancel(self) -> None: ...

    def blackout(self) -> None: ...


class ShutdownCoordinator:
    """Halt playback, black out every channel and exit when a signal arrives.

    Construct one at startup, :meth:`attach` the running controller and
    :meth:`register` the handlers.  :meth:`trigger` can be called directly to
    exercise the same path without delivering a real signal.
    """

    def __init__(
        self,
        device: ShutdownTarget,
        *,
        grace_period: float = SHUTDOWN_GRACE_SECONDS,
        exit_func: Callable[[int], Any] = sys.exit,
        sleep: Callable[[float], None] = time.sleep,
        signals: Sequence[int] = DEFAULT_SIGNALS,
    ) -> None:
        self._device = device
        self._grace_period = max(grace_period, 0.0)
        self._exit = exit_func
        self._sleep = sleep
        self._signals = tuple(signals)
        self._lock = threading.RLock()
        self._controller: Optional[Haltable] = None
        self._previous_handlers: Dict[int, Any] = {}
        self._triggered = False

    @property
    def triggered(self) -> bool:
        return self._triggered

    def attach(self, controller: Optional[Haltable]) -> None:
        with self._lock:
            self._controller = controller

    def register(self) -> None:
        for signum in self._signals:
            if signum in self._previous_handlers:
                continue
            self._previous_handlers[signum] = signal.signal(signum, self._handle_signal)

    def unregister(self) -> None:
        while self._previous_handlers:
            signum, previous = self._previous_handlers.popitem()
            signal.signal(signum, previous)

    def __enter__(self) -> "ShutdownCoordinator":
        self.register()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unregister()

    def _handle_signal(self, signum: int, frame: Any) -> None:
        try:
            name = signal.Signals(signum).name
        except ValueError:
            name = str(signum)
        LOGGER.info("Received %s", name)
        self.trigger(signum)

    def trigger(self, signum: Optional[int] = None) -> None:
        with self._lock:
            if self._triggered:
                LOGGER.debug("Shutdown already in progress; ignoring signal %s", signum)
                return
            self._triggered = True
            controller = self._controller

        LOGGER.info("Stopping playback...")
        # Release any reconnect wait first so the playback thread can be joined
        # and the blackout below is a single attempt.
        self._device.cancel()
        if controller is not None:
            try:
                controller.halt()
            except Exception:
                LOGGER.exception("Failed to halt playback cleanly")

        try:
            self._device.blackout()
        except Exception:
            LOGGER.exception("Failed to send blackout frame")
        else:
            LOGGER.info("All DMX channels set to 0")

        self._sleep(self._grace_period)
        LOGGER.info("Playback stopped")
        self._exit(0)


__all__ = ["DEFAULT_SIGNALS", "SHUTDOWN_GRACE_SECONDS", "ShutdownCoordinator"]
