"""
Command framing and image paging for Mirabox / Ajazz stream controllers.

``CommandFramer`` builds the fixed-layout ``CRT`` command frames and pads
them to the negotiated report length.  ``ImagePagewriter`` splits an
encoded image into the page reports that follow a ``BAT`` announcement.

Both are pure byte builders; the connection decides when to write.
"""

from __future__ import annotations

import math
from typing import Callable, Iterator

from .constants import (
    BRIGHTNESS_MAX,
    BRIGHTNESS_MIN,
    CLEAR_ALL_KEYS,
    CMD_PREFIX,
    MAX_IMAGE_PAYLOAD,
    OP_BAT,
    OP_CLE,
    OP_CONNECT,
    OP_DIS,
    OP_HAN,
    OP_LIG,
    OP_STP,
    PAGE_HEADER,
)


def report_length(packet_size: int) -> int:
    """Full output report length: report id byte + one packet."""
    return packet_size + 1


def pad_frame(frame: bytes, packet_size: int) -> bytes:
    """Zero-pad *frame* to ``packet_size + 1`` bytes.

    Raises:
        ValueError: If the frame is already longer than one report.
    """
    length = report_length(packet_size)
    if len(frame) > length:
        raise ValueError(
            f"Frame of {len(frame)} bytes exceeds report length {length}"
        )
    return frame.ljust(length, b'\x00')


def clamp_brightness(percent: int) -> int:
    return max(BRIGHTNESS_MIN, min(BRIGHTNESS_MAX, int(percent)))


# =========================================================================
# Command frames
# =========================================================================

class CommandFramer:
    """Builds unpadded command frames.

    Layout::

        [0x00, 'C', 'R', 'T', 0x00, 0x00, <opcode>, <params>]

    Key indices on the wire are 1-based; every builder here takes the
    0-based index the caller uses.
    """

    @staticmethod
    def command(opcode: bytes, params: bytes = b'') -> bytes:
        return CMD_PREFIX + opcode + params

    @staticmethod
    def dis() -> bytes:
        """Handshake part 1 (reset)."""
        return CommandFramer.command(OP_DIS)

    @staticmethod
    def lig_handshake() -> bytes:
        """Handshake part 2: ``LIG`` followed by zero parameters."""
        return CommandFramer.command(OP_LIG, b'\x00' * 4)

    @staticmethod
    def brightness(percent: int) -> bytes:
        """``LIG 00 00 <percent>`` with percent clamped to 0-100."""
        return CommandFramer.command(
            OP_LIG, b'\x00\x00' + bytes([clamp_brightness(percent)]),
        )

    @staticmethod
    def bat(length: int, key: int) -> bytes:
        """Announce *length* bytes of image data for *key*.

        Params::

            [0x00, 0x00, len_hi, len_lo, key + 1]
        """
        if not 0 <= length <= MAX_IMAGE_PAYLOAD:
            raise ValueError(
                f"Image payload of {length} bytes does not fit the BAT length field"
            )
        return CommandFramer.command(
            OP_BAT,
            b'\x00\x00' + length.to_bytes(2, 'big') + bytes([key + 1]),
        )

    @staticmethod
    def cle(key: int) -> bytes:
        """Clear one key, or every key when *key* is 0xFF."""
        target = CLEAR_ALL_KEYS if key == CLEAR_ALL_KEYS else key + 1
        return CommandFramer.command(OP_CLE, b'\x00\x00\x00' + bytes([target]))

    @staticmethod
    def stp() -> bytes:
        return CommandFramer.command(OP_STP)

    @staticmethod
    def han() -> bytes:
        return CommandFramer.command(OP_HAN)

    @staticmethod
    def keep_alive() -> bytes:
        return CommandFramer.command(OP_CONNECT)

    @staticmethod
    def dc() -> bytes:
        """First half of shutdown: ``CLE 00 00 'D' 'C'``."""
        return CommandFramer.command(OP_CLE, b'\x00\x00DC')

    @staticmethod
    def handshake() -> list[bytes]:
        return [CommandFramer.dis(), CommandFramer.lig_handshake()]

    @staticmethod
    def shutdown() -> list[bytes]:
        return [CommandFramer.dc(), CommandFramer.han()]


# =========================================================================
# Image pages
# =========================================================================

class ImagePagewriter:
    """Splits image payloads into page reports.

    Each page is one output report of ``packet_size + 1`` bytes: a 0x00
    header byte followed by up to ``packet_size`` content bytes.  The
    last page is zero-padded.  Pages must reach the device in order and
    one at a time.
    """

    def __init__(self, packet_size: int):
        self.packet_size = packet_size

    @property
    def page_length(self) -> int:
        return report_length(self.packet_size)

    @property
    def payload_per_page(self) -> int:
        return self.page_length - len(PAGE_HEADER)

    def page_count(self, length: int) -> int:
        return math.ceil(length / self.payload_per_page)

    def pages(self, image_data: bytes) -> Iterator[bytes]:
        step = self.payload_per_page
        for offset in range(0, len(image_data), step):
            page = PAGE_HEADER + image_data[offset:offset + step]
            yield page.ljust(self.page_length, b'\x00')

    def write(self, image_data: bytes, write: Callable[[bytes], object]) -> int:
        """Write every page through *write* in order.  Returns page count."""
        count = 0
        for page in self.pages(image_data):
            write(page)
            count += 1
        return count
