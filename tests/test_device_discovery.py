"""Tests for device enumeration and the hot-plug watcher (hidapi mocked)."""

import gc
import threading
from unittest.mock import patch

import pytest

from mirajazz.device_discovery import (
    DeviceConnected,
    DeviceDescriptor,
    DeviceDisconnected,
    DeviceQuery,
    DeviceWatcher,
    extract_str,
    find_device_path,
    list_devices,
)
from mirajazz.errors import TextDecodeError, TransportError, WatcherAlreadyInitialized

QUERY = DeviceQuery(usage_page=0xFFA0, usage_id=0x0001, vendor_id=0x0300, product_id=0x1003)


def _info(serial, vid=0x0300, pid=0x1003, path=b'/dev/hidraw0',
          usage_page=0xFFA0, usage=0x0001):
    return {
        'vendor_id': vid,
        'product_id': pid,
        'serial_number': serial,
        'path': path,
        'usage_page': usage_page,
        'usage': usage,
    }


# =========================================================================
# One-shot enumeration
# =========================================================================

class TestListDevices:

    @patch("mirajazz.device_discovery.hid")
    def test_filters_by_vendor(self, mock_hid):
        mock_hid.enumerate.return_value = [
            _info("A"),
            _info("B", vid=0x5548),
            _info("C", vid=0x1234),
        ]
        assert list_devices([0x0300, 0x5548]) == {
            DeviceDescriptor(0x0300, 0x1003, "A"),
            DeviceDescriptor(0x5548, 0x1003, "B"),
        }

    @patch("mirajazz.device_discovery.hid")
    def test_skips_missing_serial(self, mock_hid):
        mock_hid.enumerate.return_value = [_info(None), _info("")]
        assert list_devices([0x0300]) == set()

    @patch("mirajazz.device_discovery.hid")
    def test_interfaces_collapse(self, mock_hid):
        mock_hid.enumerate.return_value = [
            _info("A", path=b'/dev/hidraw0'),
            _info("A", path=b'/dev/hidraw1', usage_page=1),
        ]
        assert len(list_devices([0x0300])) == 1

    @patch("mirajazz.device_discovery.hid")
    def test_enumeration_failure(self, mock_hid):
        mock_hid.enumerate.side_effect = OSError("no hidapi backend")
        with pytest.raises(TransportError):
            list_devices([0x0300])


class TestFindDevicePath:

    @patch("mirajazz.device_discovery.hid")
    def test_matches_serial(self, mock_hid):
        mock_hid.enumerate.return_value = [
            _info("A", path=b'/dev/hidraw0'),
            _info("B", path=b'/dev/hidraw4'),
        ]
        assert find_device_path(0x0300, 0x1003, "B") == b'/dev/hidraw4'
        mock_hid.enumerate.assert_called_once_with(0x0300, 0x1003)

    @patch("mirajazz.device_discovery.hid")
    def test_not_found(self, mock_hid):
        mock_hid.enumerate.return_value = [_info("A")]
        assert find_device_path(0x0300, 0x1003, "Z") is None


class TestExtractStr:

    def test_strips_nul_padding(self):
        assert extract_str(b'AKP03R\x00\x00') == "AKP03R"

    def test_invalid_utf8(self):
        with pytest.raises(TextDecodeError):
            extract_str(b'\xff\xfe')


class TestDescriptor:

    def test_str(self):
        assert str(DeviceDescriptor(0x0300, 0x1003, "S1")) == "0300:1003 S1"

    def test_ordering(self):
        a = DeviceDescriptor(0x0300, 0x1003, "A")
        b = DeviceDescriptor(0x0300, 0x1003, "B")
        assert sorted([b, a]) == [a, b]


# =========================================================================
# Watcher
# =========================================================================

class TestQuery:

    def test_matches_usage(self):
        assert QUERY.matches(_info("A"))
        assert not QUERY.matches(_info("A", usage=2))
        assert not QUERY.matches(_info("A", pid=0x1020))


@patch("mirajazz.device_discovery.hid")
class TestDeviceWatcher:

    def test_connect_and_disconnect_events(self, mock_hid):
        mock_hid.enumerate.side_effect = [
            [_info("A")],                 # baseline
            [_info("A"), _info("B")],     # B plugged in
            [_info("A"), _info("B")],     # no change
            [_info("B")],                 # A unplugged
        ]
        watcher = DeviceWatcher(poll_interval=0.001)

        with watcher.watch([QUERY]) as events:
            first = next(events)
            second = next(events)

        assert first == DeviceConnected(DeviceDescriptor(0x0300, 0x1003, "B"))
        assert second == DeviceDisconnected(DeviceDescriptor(0x0300, 0x1003, "A"))
        assert not watcher.is_watching

    def test_baseline_not_reported(self, mock_hid):
        mock_hid.enumerate.side_effect = [
            [_info("A")],
            [_info("A"), _info("C"), _info("B")],
        ]
        watcher = DeviceWatcher(poll_interval=0.001)
        with watcher.watch([QUERY]) as events:
            got = [next(events), next(events)]
        assert [e.descriptor.serial for e in got] == ["B", "C"]

    def test_unmatched_interfaces_ignored(self, mock_hid):
        mock_hid.enumerate.side_effect = [
            [],
            [_info("X", usage_page=1)],
            [_info("Y")],
        ]
        watcher = DeviceWatcher(poll_interval=0.001)
        with watcher.watch([QUERY]) as events:
            event = next(events)
        assert event == DeviceConnected(DeviceDescriptor(0x0300, 0x1003, "Y"))

    def test_second_watch_rejected(self, mock_hid):
        mock_hid.enumerate.return_value = []
        watcher = DeviceWatcher(poll_interval=0.001)
        stream = watcher.watch([QUERY])
        try:
            with pytest.raises(WatcherAlreadyInitialized):
                watcher.watch([QUERY])
        finally:
            stream.close()

    def test_watch_again_after_close(self, mock_hid):
        mock_hid.enumerate.return_value = []
        watcher = DeviceWatcher(poll_interval=0.001)
        watcher.watch([QUERY]).close()
        stream = watcher.watch([QUERY])
        assert watcher.is_watching
        stream.close()
        assert stream.closed

    def test_dropped_stream_frees_watcher(self, mock_hid):
        mock_hid.enumerate.return_value = []
        watcher = DeviceWatcher(poll_interval=0.001)
        stream = watcher.watch([QUERY])
        del stream
        gc.collect()
        assert not watcher.is_watching
        watcher.watch([QUERY]).close()

    def test_abandoned_loop_frees_watcher(self, mock_hid):
        mock_hid.enumerate.side_effect = [[], [_info("A")], [_info("A")]]
        watcher = DeviceWatcher(poll_interval=0.001)
        for event in watcher.watch([QUERY]):
            break
        gc.collect()
        assert event == DeviceConnected(DeviceDescriptor(0x0300, 0x1003, "A"))
        assert not watcher.is_watching

    def test_stop_ends_iteration(self, mock_hid):
        mock_hid.enumerate.return_value = []
        watcher = DeviceWatcher(poll_interval=0.01)
        stream = watcher.watch([QUERY])
        timer = threading.Timer(0.05, watcher.stop)
        timer.start()
        try:
            assert list(stream) == []
        finally:
            timer.cancel()
        assert not watcher.is_watching

    def test_enumeration_error_releases_watcher(self, mock_hid):
        mock_hid.enumerate.side_effect = [[], OSError("bus reset")]
        watcher = DeviceWatcher(poll_interval=0.001)
        stream = watcher.watch([QUERY])
        with pytest.raises(TransportError):
            next(stream)
        assert not watcher.is_watching

    def test_baseline_error_releases_watcher(self, mock_hid):
        mock_hid.enumerate.side_effect = OSError("no backend")
        watcher = DeviceWatcher(poll_interval=0.001)
        with pytest.raises(TransportError):
            watcher.watch([QUERY])
        assert not watcher.is_watching
