"""
Edge detection: turn input samples into Down/Up/Twist updates.

``DeviceState`` holds the last known button and encoder snapshots.
``diff_input`` compares a new sample against it and returns the ordered
updates; ``DeviceStateReader`` ties that to a connection and guards the
snapshot with a lock so read-and-diff happens as one step.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterator, Optional

from .device_input import (
    ButtonStateChange,
    DeviceInput,
    EncoderStateChange,
    EncoderTwist,
    InputClassifier,
)
from .errors import BadData

if TYPE_CHECKING:
    from .device_connection import DeviceConnection

log = logging.getLogger(__name__)


# =========================================================================
# Updates
# =========================================================================

@dataclass(frozen=True)
class DeviceStateUpdate:
    index: int


@dataclass(frozen=True)
class ButtonDown(DeviceStateUpdate):
    pass


@dataclass(frozen=True)
class ButtonUp(DeviceStateUpdate):
    pass


@dataclass(frozen=True)
class EncoderDown(DeviceStateUpdate):
    pass


@dataclass(frozen=True)
class EncoderUp(DeviceStateUpdate):
    pass


@dataclass(frozen=True)
class EncoderTwistUpdate(DeviceStateUpdate):
    delta: int


# =========================================================================
# Snapshot + diff
# =========================================================================

@dataclass
class DeviceState:
    """Last known state; buttons include touch points."""
    buttons: list[bool] = field(default_factory=list)
    encoders: list[bool] = field(default_factory=list)

    @classmethod
    def empty(cls, key_count: int, encoder_count: int) -> 'DeviceState':
        return cls(buttons=[False] * key_count, encoders=[False] * encoder_count)


def _diff_states(
    stored: list[bool],
    new: tuple[bool, ...],
    supports_dual_state: bool,
    down: type,
    up: type,
) -> list[DeviceStateUpdate]:
    if len(new) != len(stored):
        raise BadData(
            f"Sample has {len(new)} state(s), device has {len(stored)}"
        )
    updates: list[DeviceStateUpdate] = []
    for index, (theirs, mine) in enumerate(zip(new, stored)):
        if not supports_dual_state:
            # Pulse devices only report presses: synthesize a click
            if theirs:
                updates.append(down(index))
                updates.append(up(index))
        elif theirs != mine:
            updates.append(down(index) if theirs else up(index))
    stored[:] = new
    return updates


def diff_input(
    state: DeviceState,
    sample: DeviceInput,
    supports_dual_state: bool,
) -> list[DeviceStateUpdate]:
    """Apply *sample* to *state* and return the resulting updates.

    Updates are ordered by ascending index.  Twist samples never touch
    the stored snapshots; NoData yields nothing.

    Raises:
        BadData: If a snapshot sample has the wrong length.
    """
    if isinstance(sample, ButtonStateChange):
        return _diff_states(state.buttons, sample.states, supports_dual_state,
                            ButtonDown, ButtonUp)
    if isinstance(sample, EncoderStateChange):
        return _diff_states(state.encoders, sample.states, supports_dual_state,
                            EncoderDown, EncoderUp)
    if isinstance(sample, EncoderTwist):
        return [
            EncoderTwistUpdate(index, delta)
            for index, delta in enumerate(sample.deltas)
            if delta != 0
        ]
    return []


# =========================================================================
# Reader
# =========================================================================

class DeviceStateReader:
    """Reads a connection's input reports and returns edge updates."""

    def __init__(self, device: 'DeviceConnection', classifier: InputClassifier):
        self.device = device
        self.classifier = classifier
        self.states = DeviceState.empty(device.key_count, device.encoder_count)
        self._lock = threading.Lock()

    def read(self, timeout: Optional[float] = None) -> list[DeviceStateUpdate]:
        """Read one report (waiting at most *timeout* seconds) and diff it."""
        sample = self.device.read_input(timeout, self.classifier)
        with self._lock:
            updates = diff_input(self.states, sample, self.device.supports_dual_state)
        if updates:
            log.debug("%s: %s", self.device.serial, updates)
        return updates

    def iter_updates(self, timeout: Optional[float] = None) -> Iterator[list[DeviceStateUpdate]]:
        """Reader loop: yield each non-empty batch until the consumer stops.

        With *timeout* None each read waits for a report; commands sent
        from other threads on the same connection still go out meanwhile.
        Errors end the loop by propagating to the consumer.
        """
        while True:
            updates = self.read(timeout)
            if updates:
                yield updates
