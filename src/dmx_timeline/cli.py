"""Play DMX timelines from JSON files."""

from __future__ import annotations

import argparse
import logging
from pathlib import Path
from typing import Iterable, Optional

from . import __version__
from .device import DeviceLink, DeviceLinkError, DeviceNotFoundError
from .player import COMPLETION_BUFFER_SECONDS, PlaybackController, PlaybackOptions
from .scheduler import DEFAULT_FPS, FrameScheduler
from .shutdown import ShutdownCoordinator
from .timeline import TimelineError, load_presets, load_timeline

LOGGER = logging.getLogger(__name__)


def _non_negative_float(value: str) -> float:
    try:
        number = float(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"{value!r} is not a number") from None
    if number < 0:
        raise argparse.ArgumentTypeError(f"{value!r} must not be negative")
    return number


def _positive_float(value: str) -> float:
    number = _non_negative_float(value)
    if number == 0:
        raise argparse.ArgumentTypeError(f"{value!r} must be greater than zero")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="dmx-timeline", description=__doc__)
    parser.add_argument(
        "-t",
        "--timeline",
        type=Path,
        default=None,
        help="Path to timeline JSON file (default: ./timeline.json)",
    )
    parser.add_argument(
        "-p",
        "--presets",
        type=Path,
        default=None,
        help="Path to presets JSON file (default: ./presets.json)",
    )
    parser.add_argument(
        "-d",
        "--device",
        default=None,
        help="DMX device path (default: first attached Enttec-compatible widget)",
    )
    parser.add_argument(
        "-s", "--start", type=_non_negative_float, default=0.0, help="Start time in seconds"
    )
    parser.add_argument("-l", "--loop", action="store_true", help="Loop the timeline")
    parser.add_argument(
        "-i",
        "--interval",
        type=_non_negative_float,
        default=0.0,
        help="Pause interval between loops in minutes",
    )
    parser.add_argument(
        "-w",
        "--wait",
        type=_non_negative_float,
        default=0.0,
        help="Initial delay before starting the playback in seconds",
    )
    parser.add_argument(
        "--fps", type=_positive_float, default=DEFAULT_FPS, help="Frames per second sent to the device"
    )
    parser.add_argument(
        "--wait-for-device",
        action="store_true",
        help="Keep polling until the DMX device appears instead of failing",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Logging verbosity (DEBUG, INFO, WARNING, ERROR)",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def options_from_args(args: argparse.Namespace) -> PlaybackOptions:
    return PlaybackOptions(
        loop=args.loop,
        loop_interval_ms=args.interval * 60 * 1000,
        initial_delay_ms=args.wait * 1000,
        start_time=args.start,
    )


def main(argv: Optional[Iterable[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    log_level = getattr(logging, str(args.log_level).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    options = options_from_args(args)
    timeline_path = args.timeline or Path.cwd() / "timeline.json"
    presets_path = args.presets or Path.cwd() / "presets.json"

    if options.loop:
        LOGGER.info("Loop enabled")
    if options.loop_interval_ms > 0:
        LOGGER.info("Loop interval: %sms", options.loop_interval_ms)
    if options.initial_delay_ms > 0:
        LOGGER.info("Initial delay: %ss", options.initial_delay_ms / 1000)
    LOGGER.info("Loading timeline from: %s", timeline_path)
    LOGGER.info("Loading presets from: %s", presets_path)

    try:
        timeline = load_timeline(timeline_path)
        presets = load_presets(presets_path)
    except TimelineError as exc:
        LOGGER.error("%s", exc)
        raise SystemExit(1) from None

    LOGGER.info(
        "Timeline loaded: %d events, duration: %ss", len(timeline.events), timeline.duration
    )
    LOGGER.info("Presets loaded: %d presets", len(presets))

    try:
        device = DeviceLink(args.device, wait_for_device=args.wait_for_device)
    except (DeviceNotFoundError, ModuleNotFoundError) as exc:
        LOGGER.error("Failed to initialize DMX: %s", exc)
        raise SystemExit(1) from None

    with device:
        scheduler = FrameScheduler(device, fps=args.fps)
        controller = PlaybackController(
            scheduler,
            device,
            timeline,
            presets,
            options,
            completion_buffer=COMPLETION_BUFFER_SECONDS,
        )
        coordinator = ShutdownCoordinator(device)
        coordinator.attach(controller)
        with coordinator:
            try:
                controller.run()
            except DeviceLinkError as exc:
                LOGGER.error("%s", exc)
                raise SystemExit(1) from None
            finally:
                scheduler.stop()


__all__ = ["build_parser", "main", "options_from_args"]


if __name__ == "__main__":  # pragma: no cover - CLI entrypoint
    main()
