"""Full-universe channel state used throughout timeline resolution."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterator, Optional, Sequence, Tuple

LOGGER = logging.getLogger(__name__)

CHANNEL_COUNT = 512


def _coerce_value(value: int, channel: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Value for channel {channel} must be an integer") from exc


@dataclass(frozen=True)
class ChannelState:
    """Immutable snapshot of every channel in a DMX universe.

    ``values[0]`` holds channel 1.  The state is always total: every channel
    from 1 to :data:`CHANNEL_COUNT` has a value.
    """

    values: Tuple[int, ...]

    def __post_init__(self) -> None:
        if len(self.values) != CHANNEL_COUNT:
            raise ValueError(
                f"A channel state requires exactly {CHANNEL_COUNT} values, got {len(self.values)}."
            )
        object.__setattr__(
            self,
            "values",
            tuple(_coerce_value(value, index + 1) for index, value in enumerate(self.values)),
        )

    @classmethod
    def zeros(cls) -> "ChannelState":
        return cls(values=(0,) * CHANNEL_COUNT)

    @classmethod
    def from_mapping(cls, levels: Dict[int, int]) -> "ChannelState":
        """Build a state from ``{channel: value}``; missing channels default to 0."""

        values = [0] * CHANNEL_COUNT
        for channel, value in levels.items():
            values[_channel_index(channel)] = value
        return cls(values=tuple(values))

    def __getitem__(self, channel: int) -> int:
        return self.values[_channel_index(channel)]

    def __iter__(self) -> Iterator[int]:
        yield from self.values

    def __len__(self) -> int:
        return CHANNEL_COUNT

    def as_dict(self) -> Dict[int, int]:
        return {index + 1: value for index, value in enumerate(self.values)}

    @property
    def is_dark(self) -> bool:
        return not any(self.values)


def _channel_index(channel: int) -> int:
    if not 1 <= int(channel) <= CHANNEL_COUNT:
        raise ValueError(f"Channel must be between 1 and {CHANNEL_COUNT}, got {channel}.")
    return int(channel) - 1


def apply_patch(state: ChannelState, values: Optional[Sequence[Optional[int]]]) -> ChannelState:
    """Overwrite the channels listed in *values* and keep every other channel.

    Index ``i`` of *values* targets channel ``i + 1``.  ``None`` entries are
    treated as absent.  A missing or empty patch returns *state* unchanged.
    """

    if not values:
        return state
    patched = list(state.values)
    for index, value in enumerate(values):
        if value is None:
            continue
        if index >= CHANNEL_COUNT:
            LOGGER.debug(
                "Ignoring %d patch values beyond channel %d", len(values) - CHANNEL_COUNT, CHANNEL_COUNT
            )
            break
        patched[index] = _coerce_value(value, index + 1)
    return ChannelState(values=tuple(patched))


def blackout() -> ChannelState:
    """Return the state with every channel forced to zero."""

    return ChannelState.zeros()


def interpolate(start: ChannelState, end: ChannelState, ratio: float) -> ChannelState:
    ratio = min(max(ratio, 0.0), 1.0)
    if ratio <= 0.0:
        return start
    if ratio >= 1.0:
        return end
    return ChannelState(
        values=tuple(
            round(first + (second - first) * ratio)
            for first, second in zip(start.values, end.values)
        )
    )


__all__ = [
    "CHANNEL_COUNT",
    "ChannelState",
    "apply_patch",
    "blackout",
    "interpolate",
]
