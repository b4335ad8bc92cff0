"""Device family profiles and user profile persistence.

Device families are configuration values, not subclasses: a
``DeviceProfile`` carries everything a connection and its reader need.
Extra profiles are read from ~/.config/mirajazz/devices.json
(XDG-compliant) and override built-ins with the same vid/pid.

Usage:
    from mirajazz.conf import profile_for

    profile = profile_for(0x0300, 0x1003)
    device = DeviceConnection.connect_profile(profile, serial)
    reader = device.get_reader(profile.classifier())

devices.json layout::

    [
      {
        "name": "My Deck", "vid": "0x0300", "pid": "0x3001",
        "protocol_variant": "v2", "supports_dual_state": true,
        "key_count": 6, "encoder_count": 0,
        "image_format": {"mode": "jpeg", "size": [72, 72],
                         "rotation": 0, "mirror": "none"},
        "keymap": {"buttons": {"1": 0, "2": 1}}
      }
    ]
"""
from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Optional

from .device_input import Keymap, KeymapClassifier
from .errors import UnrecognizedPID
from .image_codec import ImageFormat, ImageMirroring, ImageMode, ImageRotation
from .types import ProtocolVariant

log = logging.getLogger(__name__)

# =========================================================================
# Config file location (XDG-compliant)
# =========================================================================

_XDG_CONFIG = os.environ.get('XDG_CONFIG_HOME', os.path.expanduser('~/.config'))
CONFIG_DIR = os.path.join(_XDG_CONFIG, 'mirajazz')
PROFILES_PATH = os.path.join(CONFIG_DIR, 'devices.json')


@dataclass(frozen=True)
class DeviceProfile:
    """Everything that differs between device families."""
    name: str
    vid: int
    pid: int
    protocol_variant: ProtocolVariant
    supports_dual_state: bool
    key_count: int
    encoder_count: int
    image_format: ImageFormat = field(default_factory=ImageFormat)
    keymap: Keymap = field(default_factory=Keymap)

    def classifier(self) -> KeymapClassifier:
        return KeymapClassifier(self.key_count, self.encoder_count, self.keymap)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> 'DeviceProfile':
        fmt = data.get('image_format', {})
        return cls(
            name=data.get('name', ''),
            vid=_int(data['vid']),
            pid=_int(data['pid']),
            protocol_variant=ProtocolVariant(data.get('protocol_variant', 'v1')),
            supports_dual_state=bool(data.get('supports_dual_state', False)),
            key_count=int(data.get('key_count', 0)),
            encoder_count=int(data.get('encoder_count', 0)),
            image_format=ImageFormat(
                mode=ImageMode(fmt.get('mode', 'none')),
                size=tuple(fmt.get('size', (0, 0))),
                rotation=ImageRotation(int(fmt.get('rotation', 0))),
                mirror=ImageMirroring(fmt.get('mirror', 'none')),
            ),
            keymap=Keymap.from_dict(data.get('keymap', {})),
        )


def _int(value: Any) -> int:
    return int(value, 0) if isinstance(value, str) else int(value)


# =========================================================================
# Built-in profiles
# =========================================================================

# Ajazz AKP03R: 6 display keys + 3 touch buttons, 3 push encoders
AKP03R = DeviceProfile(
    name="Ajazz AKP03R",
    vid=0x0300,
    pid=0x1003,
    protocol_variant=ProtocolVariant.V2,
    supports_dual_state=False,
    key_count=9,
    encoder_count=3,
    image_format=ImageFormat(ImageMode.JPEG, (60, 60)),
    keymap=Keymap(
        buttons={1: 0, 2: 1, 3: 2, 4: 3, 5: 4, 6: 5, 0x25: 6, 0x30: 7, 0x31: 8},
        encoder_presses={0x33: 0, 0x35: 1, 0x34: 2},
        twists={
            0x90: (0, -1), 0x91: (0, 1),
            0x50: (1, -1), 0x51: (1, 1),
            0x60: (2, -1), 0x61: (2, 1),
        },
    ),
)

# Ajazz AKP153R: 18 display keys, input codes are 1-based key indices
AKP153R = DeviceProfile(
    name="Ajazz AKP153R",
    vid=0x0300,
    pid=0x1020,
    protocol_variant=ProtocolVariant.V1,
    supports_dual_state=False,
    key_count=18,
    encoder_count=0,
    image_format=ImageFormat(
        ImageMode.JPEG, (85, 85), ImageRotation.ROT90, ImageMirroring.BOTH,
    ),
    keymap=Keymap(buttons={code: code - 1 for code in range(1, 19)}),
)

BUILTIN_PROFILES: dict[tuple[int, int], DeviceProfile] = {
    (p.vid, p.pid): p for p in (AKP03R, AKP153R)
}


# =========================================================================
# User profiles
# =========================================================================

def load_user_profiles(path: Optional[str] = None) -> dict[tuple[int, int], DeviceProfile]:
    """Load user profiles.  Returns empty dict on missing/corrupt file."""
    path = path or PROFILES_PATH
    try:
        with open(path, 'r') as f:
            entries = json.load(f)
    except FileNotFoundError:
        return {}
    except (json.JSONDecodeError, OSError) as e:
        log.warning("Ignoring unreadable device profiles %s: %s", path, e)
        return {}

    profiles = {}
    for entry in entries if isinstance(entries, list) else []:
        try:
            profile = DeviceProfile.from_dict(entry)
        except (KeyError, TypeError, ValueError) as e:
            log.warning("Skipping invalid device profile %r: %s", entry, e)
            continue
        profiles[(profile.vid, profile.pid)] = profile
    log.debug("Loaded %d user device profile(s) from %s", len(profiles), path)
    return profiles


def all_profiles(path: Optional[str] = None) -> dict[tuple[int, int], DeviceProfile]:
    profiles = dict(BUILTIN_PROFILES)
    profiles.update(load_user_profiles(path))
    return profiles


def profile_for(vid: int, pid: int, path: Optional[str] = None) -> DeviceProfile:
    """Look up the profile for a vid/pid pair.

    Raises:
        UnrecognizedPID: If no built-in or user profile matches.
    """
    profile = all_profiles(path).get((vid, pid))
    if profile is None:
        raise UnrecognizedPID(f"No device profile for {vid:04X}:{pid:04X}")
    return profile
