"""Tests for CRT command framing and image paging.

Pure byte builders, no transport involved.
"""

import math

import pytest

from mirajazz.constants import (
    CLEAR_ALL_KEYS,
    CMD_PREFIX,
    MAX_IMAGE_PAYLOAD,
    PACKET_SIZE_V1,
    PACKET_SIZE_V2,
)
from mirajazz.device_protocol import (
    CommandFramer,
    ImagePagewriter,
    clamp_brightness,
    pad_frame,
    report_length,
)


# =========================================================================
# Frame layout
# =========================================================================

class TestFramePrefix:
    """Every frame starts [0x00, 'C', 'R', 'T', 0x00, 0x00]."""

    def test_prefix_bytes(self):
        assert CMD_PREFIX == bytes([0x00, 0x43, 0x52, 0x54, 0x00, 0x00])

    @pytest.mark.parametrize("frame", [
        CommandFramer.dis(),
        CommandFramer.lig_handshake(),
        CommandFramer.brightness(50),
        CommandFramer.bat(100, 0),
        CommandFramer.cle(3),
        CommandFramer.stp(),
        CommandFramer.han(),
        CommandFramer.keep_alive(),
        CommandFramer.dc(),
    ])
    def test_all_frames_share_prefix(self, frame):
        assert frame[:6] == CMD_PREFIX


class TestPadFrame:

    def test_pads_to_report_length_v1(self):
        frame = pad_frame(CommandFramer.stp(), PACKET_SIZE_V1)
        assert len(frame) == 513

    def test_pads_to_report_length_v2(self):
        frame = pad_frame(CommandFramer.stp(), PACKET_SIZE_V2)
        assert len(frame) == 1025

    def test_padding_is_zero(self):
        frame = pad_frame(CommandFramer.stp(), PACKET_SIZE_V1)
        assert frame[9:] == b'\x00' * (513 - 9)

    def test_oversized_frame_rejected(self):
        with pytest.raises(ValueError):
            pad_frame(b'\x01' * 600, PACKET_SIZE_V1)

    def test_report_length(self):
        assert report_length(512) == 513


# =========================================================================
# Individual commands (byte-exact)
# =========================================================================

class TestCommands:

    def test_dis(self):
        assert CommandFramer.dis() == bytes(
            [0x00, 0x43, 0x52, 0x54, 0x00, 0x00, 0x44, 0x49, 0x53]
        )

    def test_lig_handshake(self):
        assert CommandFramer.lig_handshake() == bytes([
            0x00, 0x43, 0x52, 0x54, 0x00, 0x00, 0x4c, 0x49, 0x47,
            0x00, 0x00, 0x00, 0x00,
        ])

    def test_brightness(self):
        assert CommandFramer.brightness(42) == bytes([
            0x00, 0x43, 0x52, 0x54, 0x00, 0x00, 0x4c, 0x49, 0x47, 0x00, 0x00, 42,
        ])

    def test_brightness_clamped_high(self):
        assert CommandFramer.brightness(250)[11] == 100

    def test_brightness_clamped_low(self):
        assert CommandFramer.brightness(-5)[11] == 0

    def test_clamp_brightness(self):
        assert clamp_brightness(0) == 0
        assert clamp_brightness(100) == 100
        assert clamp_brightness(101) == 100

    def test_bat_length_and_key(self):
        frame = CommandFramer.bat(0x1234, 4)
        assert frame[6:9] == b'BAT'
        assert frame[9:11] == b'\x00\x00'
        assert frame[11] == 0x12
        assert frame[12] == 0x34
        assert frame[13] == 5  # 1-based key

    def test_bat_rejects_oversized_payload(self):
        with pytest.raises(ValueError):
            CommandFramer.bat(MAX_IMAGE_PAYLOAD + 1, 0)

    def test_cle_single_key(self):
        assert CommandFramer.cle(2) == bytes([
            0x00, 0x43, 0x52, 0x54, 0x00, 0x00, 0x43, 0x4c, 0x45,
            0x00, 0x00, 0x00, 0x03,
        ])

    def test_cle_all_keys(self):
        assert CommandFramer.cle(CLEAR_ALL_KEYS)[12] == 0xFF

    def test_stp(self):
        assert CommandFramer.stp()[6:] == b'STP'

    def test_han(self):
        assert CommandFramer.han()[6:] == b'HAN'

    def test_keep_alive(self):
        assert CommandFramer.keep_alive()[6:] == b'CONNECT'

    def test_dc(self):
        assert CommandFramer.dc() == bytes([
            0x00, 0x43, 0x52, 0x54, 0x00, 0x00, 0x43, 0x4c, 0x45,
            0x00, 0x00, 0x44, 0x43,
        ])

    def test_handshake_order(self):
        assert CommandFramer.handshake() == [
            CommandFramer.dis(), CommandFramer.lig_handshake(),
        ]

    def test_shutdown_order(self):
        assert CommandFramer.shutdown() == [CommandFramer.dc(), CommandFramer.han()]


# =========================================================================
# Image pages
# =========================================================================

class TestImagePagewriter:

    def test_page_geometry_v1(self):
        pager = ImagePagewriter(PACKET_SIZE_V1)
        assert pager.page_length == 513
        assert pager.payload_per_page == 512

    def test_page_geometry_v2(self):
        pager = ImagePagewriter(PACKET_SIZE_V2)
        assert pager.page_length == 1025
        assert pager.payload_per_page == 1024

    @pytest.mark.parametrize("length", [1, 511, 512, 513, 1024, 3000])
    def test_page_count_and_reassembly(self, length):
        pager = ImagePagewriter(PACKET_SIZE_V1)
        data = bytes((i * 7) % 256 for i in range(length))
        pages = list(pager.pages(data))

        assert len(pages) == math.ceil(length / pager.payload_per_page)
        assert len(pages) == pager.page_count(length)
        assert all(len(p) == pager.page_length for p in pages)
        assert all(p[0] == 0x00 for p in pages)
        assert b''.join(p[1:] for p in pages)[:length] == data

    def test_last_page_zero_padded(self):
        pager = ImagePagewriter(PACKET_SIZE_V1)
        pages = list(pager.pages(b'\xff' * 10))
        assert len(pages) == 1
        assert pages[0][1:11] == b'\xff' * 10
        assert pages[0][11:] == b'\x00' * (513 - 11)

    def test_empty_payload_has_no_pages(self):
        pager = ImagePagewriter(PACKET_SIZE_V1)
        assert list(pager.pages(b'')) == []

    def test_write_in_order(self):
        pager = ImagePagewriter(PACKET_SIZE_V1)
        data = bytes([1]) * 512 + bytes([2]) * 512 + bytes([3])
        written = []
        count = pager.write(data, written.append)
        assert count == 3
        assert [p[1] for p in written] == [1, 2, 3]
