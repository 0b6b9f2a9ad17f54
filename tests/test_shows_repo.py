"""Regression coverage for the example shows committed under ``shows/``."""

from __future__ import annotations

from pathlib import Path

import pytest

from dmx_timeline.resolver import resolve, total_duration_ms
from dmx_timeline.timeline import EventType, load_presets, load_timeline

REPO_ROOT = Path(__file__).resolve().parents[1]
SHOWS_DIR = REPO_ROOT / "shows"


def test_example_show_loads_and_resolves() -> None:
    timeline = load_timeline(SHOWS_DIR / "timeline.json")
    presets = load_presets(SHOWS_DIR / "presets.json")

    steps = resolve(timeline.events, presets, timeline.duration)

    assert total_duration_ms(steps) == pytest.approx(timeline.duration * 1000)
    assert len(steps) == len(timeline.events) + 1


def test_example_show_references_known_presets() -> None:
    timeline = load_timeline(SHOWS_DIR / "timeline.json")
    presets = load_presets(SHOWS_DIR / "presets.json")

    referenced = {
        event.preset_name for event in timeline.events if event.type is EventType.PRESET
    }
    assert referenced <= set(presets)
