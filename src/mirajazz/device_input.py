"""
Input samples and device-family classifiers.

A raw input report carries one input code (byte 9) and one state byte
(byte 10).  A classifier turns that pair into a structured sample:

    NoData              nothing to report
    ButtonStateChange   full button snapshot
    EncoderStateChange  full encoder-press snapshot
    EncoderTwist        per-encoder twist deltas

Device families differ only in how they number their inputs, so the
stock ``KeymapClassifier`` is driven by a ``Keymap`` table; plain
functions plug in through ``FunctionClassifier``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Union

from .errors import BadData


# =========================================================================
# Samples
# =========================================================================

@dataclass(frozen=True)
class NoData:
    """Heartbeat, empty report, or timeout."""


@dataclass(frozen=True)
class ButtonStateChange:
    states: tuple[bool, ...]


@dataclass(frozen=True)
class EncoderStateChange:
    states: tuple[bool, ...]


@dataclass(frozen=True)
class EncoderTwist:
    deltas: tuple[int, ...]


DeviceInput = Union[NoData, ButtonStateChange, EncoderStateChange, EncoderTwist]


# =========================================================================
# Classifiers
# =========================================================================

class InputClassifier(Protocol):
    """Maps one (input code, state byte) pair to a sample."""

    def classify(self, index: int, state: int) -> DeviceInput: ...


class FunctionClassifier:
    """Adapts a plain ``fn(index, state) -> DeviceInput`` callable."""

    def __init__(self, fn: Callable[[int, int], DeviceInput]):
        self._fn = fn

    def classify(self, index: int, state: int) -> DeviceInput:
        return self._fn(index, state)

    def __repr__(self) -> str:
        return f"FunctionClassifier({getattr(self._fn, '__name__', self._fn)!r})"


@dataclass(frozen=True)
class Keymap:
    """Input code tables for one device family.

    Attributes:
        buttons: input code → 0-based key index.
        encoder_presses: input code → 0-based encoder index.
        twists: input code → (encoder index, delta).
        release_code: code reporting "every button released"
            (dual-state devices), or None when the family has none.
    """
    buttons: dict[int, int] = field(default_factory=dict)
    encoder_presses: dict[int, int] = field(default_factory=dict)
    twists: dict[int, tuple[int, int]] = field(default_factory=dict)
    release_code: Optional[int] = 0

    @classmethod
    def from_dict(cls, data: dict) -> 'Keymap':
        """Build from JSON-style data (string or int keys)."""
        def _codes(table: dict) -> dict:
            return {int(k, 0) if isinstance(k, str) else int(k): v for k, v in table.items()}

        return cls(
            buttons={k: int(v) for k, v in _codes(data.get('buttons', {})).items()},
            encoder_presses={
                k: int(v) for k, v in _codes(data.get('encoder_presses', {})).items()
            },
            twists={
                k: (int(v[0]), int(v[1])) for k, v in _codes(data.get('twists', {})).items()
            },
            release_code=data.get('release_code', 0),
        )


class KeymapClassifier:
    """Table-driven classifier.

    A button or encoder-press code yields a full snapshot with only that
    index set (to ``state != 0``); the release code yields an all-false
    button snapshot; a twist code yields a delta vector with a single
    non-zero entry.  Unknown codes raise ``BadData``.
    """

    def __init__(self, key_count: int, encoder_count: int, keymap: Keymap):
        self.key_count = key_count
        self.encoder_count = encoder_count
        self.keymap = keymap

    def classify(self, index: int, state: int) -> DeviceInput:
        km = self.keymap
        if index in km.buttons:
            return ButtonStateChange(self._one_hot(self.key_count, km.buttons[index], state != 0))
        if index in km.encoder_presses:
            return EncoderStateChange(
                self._one_hot(self.encoder_count, km.encoder_presses[index], state != 0)
            )
        if index in km.twists:
            encoder, delta = km.twists[index]
            self._check(encoder, self.encoder_count)
            deltas = [0] * self.encoder_count
            deltas[encoder] = delta
            return EncoderTwist(tuple(deltas))
        if km.release_code is not None and index == km.release_code:
            return ButtonStateChange((False,) * self.key_count)
        raise BadData(f"Unknown input code 0x{index:02x} (state 0x{state:02x})")

    @classmethod
    def _one_hot(cls, count: int, position: int, value: bool) -> tuple[bool, ...]:
        cls._check(position, count)
        states = [False] * count
        states[position] = value
        return tuple(states)

    @staticmethod
    def _check(position: int, count: int) -> None:
        if not 0 <= position < count:
            raise BadData(f"Keymap index {position} out of range for {count} input(s)")
