"""Serial link to an Enttec DMX USB Pro compatible widget."""

from __future__ import annotations

import logging
import threading
from typing import Any, Iterable, Optional, Sequence, Tuple

from .channels import ChannelState, blackout

LOGGER = logging.getLogger(__name__)

START_OF_MESSAGE = 0x7E
END_OF_MESSAGE = 0xE7
SEND_DMX_LABEL = 6
DMX_START_CODE = 0x00

DEFAULT_BAUDRATE = 250000
DEFAULT_VENDOR_ID = 0x0403
DEFAULT_PRODUCT_IDS: Tuple[int, ...] = (0x6001,)


class DeviceNotFoundError(RuntimeError):
    """Raised when no DMX widget can be located."""


class DeviceLinkError(RuntimeError):
    """Raised when the DMX widget stops accepting frames."""


def _clamp_byte(value: int) -> int:
    return max(0, min(0xFF, int(value)))


def encode_frame(state: ChannelState) -> bytes:
    """Wrap *state* in an Enttec "Output Only Send DMX" message."""

    payload = bytes((DMX_START_CODE, *(_clamp_byte(value) for value in state.values)))
    length = len(payload)
    header = bytes((START_OF_MESSAGE, SEND_DMX_LABEL, length & 0xFF, (length >> 8) & 0xFF))
    return header + payload + bytes((END_OF_MESSAGE,))


def _require_serial() -> Tuple[Any, Any]:
    try:
        import serial
        from serial.tools import list_ports
    except ModuleNotFoundError as exc:  # pragma: no cover - import guard
        raise ModuleNotFoundError(
            "pyserial is required to talk to the DMX widget. "
            "Install it with 'pip install pyserial'."
        ) from exc
    return serial, list_ports


class DeviceLink:
    """Send full-universe frames to the DMX widget."""

    def __init__(
        self,
        port: Optional[str] = None,
        *,
        baudrate: int = DEFAULT_BAUDRATE,
        timeout: float = 1.0,
        vendor_id: int = DEFAULT_VENDOR_ID,
        product_ids: Sequence[int] = DEFAULT_PRODUCT_IDS,
        wait_for_device: bool = False,
        poll_interval: float = 1.0,
        connect: bool = True,
    ) -> None:
        self.port = port
        self.baudrate = baudrate
        self.timeout = timeout
        self.vendor_id = vendor_id
        self.product_ids = tuple(product_ids)
        self._wait_for_device = wait_for_device
        self._poll_interval = max(poll_interval, 0.1)

        self.connection: Any = None
        self._serial: Any = None
        self._lock = threading.RLock()
        self._cancelled = threading.Event()
        self.last_state: Optional[ChannelState] = None

        if connect:
            self.connect()

    @property
    def is_connected(self) -> bool:
        return self.connection is not None

    @property
    def cancelled(self) -> bool:
        return self._cancelled.is_set()

    def cancel(self) -> None:
        """Stop waiting for the widget.

        Any reconnect loop in progress gives up, and from now on every send
        makes a single attempt and raises :class:`DeviceLinkError` on failure.
        """

        self._cancelled.set()

    def connect(self) -> None:
        """Locate the widget and open its serial port."""

        if self.connection is not None:
            return

        serial_mod, list_ports = _require_serial()
        self._serial = serial_mod

        wait_logged = False
        while True:
            port = self.port or self._find_port(list_ports.comports())
            if port is not None:
                try:
                    connection = serial_mod.Serial(
                        port=port,
                        baudrate=self.baudrate,
                        bytesize=serial_mod.EIGHTBITS,
                        parity=serial_mod.PARITY_NONE,
                        stopbits=serial_mod.STOPBITS_TWO,
                        timeout=self.timeout,
                        write_timeout=self.timeout,
                    )
                except serial_mod.SerialException as exc:
                    if not self._wait_for_device:
                        raise DeviceNotFoundError(f"Unable to open DMX device {port}: {exc}") from exc
                    LOGGER.debug("Opening %s failed: %s", port, exc)
                else:
                    break
            elif not self._wait_for_device:
                raise DeviceNotFoundError(
                    "Unable to locate a DMX USB widget. "
                    "Ensure the device is connected or pass its path explicitly."
                )
            if self._cancelled.is_set():
                raise DeviceLinkError("Gave up waiting for the DMX device")
            if not wait_logged:
                LOGGER.info("DMX device not available. Waiting for it to become available...")
                wait_logged = True
            self._cancelled.wait(self._poll_interval)

        if wait_logged:
            LOGGER.info("DMX device detected. Continuing.")
        LOGGER.info("DMX initialized on %s", port)
        self.connection = connection

    def _find_port(self, ports: Iterable[Any]) -> Optional[str]:
        """Return the first serial port whose USB IDs match the widget."""

        for info in ports:
            if getattr(info, "vid", None) != self.vendor_id:
                continue
            if self.product_ids and getattr(info, "pid", None) not in self.product_ids:
                continue
            LOGGER.debug("Found DMX widget %s (%s)", info.device, getattr(info, "description", ""))
            return info.device
        return None

    def send_state(self, state: ChannelState) -> None:
        """Transmit *state* as a single DMX frame."""

        frame = encode_frame(state)
        with self._lock:
            while True:
                if self.connection is None:
                    self.connect()
                try:
                    self.connection.write(frame)
                    self.connection.flush()
                except Exception as exc:
                    if self._handle_write_error(exc):
                        continue
                    raise
                self.last_state = state
                return

    def blackout(self) -> None:
        """Force every channel to zero."""

        self.send_state(blackout())

    def _handle_write_error(self, exc: Exception) -> bool:
        serial_error = getattr(self._serial, "SerialException", None)
        if serial_error is None or not isinstance(exc, serial_error):
            return False
        message = f"DMX device became unavailable during write: {exc}"
        if not self._wait_for_device or self._cancelled.is_set():
            raise DeviceLinkError(message) from exc
        LOGGER.warning("%s Waiting for it to reconnect...", message)
        self.close()
        return True

    def close(self) -> None:
        with self._lock:
            if self.connection is None:
                return
            try:
                self.connection.close()
            except Exception:  # pragma: no cover - best effort cleanup
                LOGGER.warning("Failed to close DMX serial port", exc_info=True)
            self.connection = None

    def __enter__(self) -> "DeviceLink":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


__all__ = [
    "DeviceLink",
    "DeviceLinkError",
    "DeviceNotFoundError",
    "encode_frame",
]
