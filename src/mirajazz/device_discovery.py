#!/usr/bin/env python3
"""
Device discovery and hot-plug watching for Mirabox / Ajazz controllers.

``list_devices`` is a one-shot enumeration through hidapi.
``DeviceWatcher`` polls the enumeration and diffs it against the previous
scan, yielding connect/disconnect events until it is stopped.  Only one
watch may run per watcher instance at a time.

Usage::

    watcher = DeviceWatcher()
    with watcher.watch([DeviceQuery(0xFFA0, 2, 0x0300, 0x1003)]) as events:
        for event in events:
            print(event)
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Generator, Iterable, Optional

import hid

from .constants import DEFAULT_POLL_INTERVAL_S
from .errors import TextDecodeError, TransportError, WatcherAlreadyInitialized

log = logging.getLogger(__name__)


# =========================================================================
# Identity
# =========================================================================

@dataclass(frozen=True, order=True)
class DeviceDescriptor:
    """Identity triple of an enumerated device."""
    vendor_id: int
    product_id: int
    serial: str

    def __str__(self) -> str:
        return f"{self.vendor_id:04X}:{self.product_id:04X} {self.serial}"


def extract_str(data: bytes) -> str:
    """Decode UTF-8 bytes reported by a device, dropping NUL padding."""
    try:
        return bytes(data).decode('utf-8').replace('\0', '')
    except UnicodeDecodeError as e:
        raise TextDecodeError(f"Device string is not valid UTF-8: {e}") from e


def _enumerate(vendor_id: int = 0, product_id: int = 0) -> list[dict[str, Any]]:
    try:
        return list(hid.enumerate(vendor_id, product_id))
    except (OSError, ValueError) as e:
        raise TransportError(f"HID enumeration failed: {e}") from e


def _descriptor(info: dict[str, Any]) -> Optional[DeviceDescriptor]:
    serial = info.get('serial_number')
    if not serial:
        return None
    return DeviceDescriptor(info['vendor_id'], info['product_id'], serial)


def list_devices(vendor_ids: Iterable[int]) -> set[DeviceDescriptor]:
    """Return every visible device whose vendor id is in *vendor_ids*.

    Entries without a serial number are skipped; interfaces of the same
    device collapse into one descriptor.
    """
    wanted = set(vendor_ids)
    devices = set()
    for info in _enumerate():
        if info.get('vendor_id') not in wanted:
            continue
        descriptor = _descriptor(info)
        if descriptor is not None:
            devices.add(descriptor)
    log.debug("Found %d device(s) for vendor ids %s", len(devices),
              ", ".join(f"{v:04X}" for v in sorted(wanted)))
    return devices


def find_device_path(vendor_id: int, product_id: int, serial: str) -> Optional[bytes]:
    """Return the hidapi path of the first interface matching the identity."""
    for info in _enumerate(vendor_id, product_id):
        if info.get('serial_number') == serial:
            return info['path']
    return None


# =========================================================================
# Watching
# =========================================================================

@dataclass(frozen=True)
class DeviceQuery:
    """Selects which HID interfaces the watcher reports."""
    usage_page: int
    usage_id: int
    vendor_id: int
    product_id: int

    def matches(self, info: dict[str, Any]) -> bool:
        return (
            info.get('vendor_id') == self.vendor_id
            and info.get('product_id') == self.product_id
            and info.get('usage_page') == self.usage_page
            and info.get('usage') == self.usage_id
        )


@dataclass(frozen=True)
class DeviceLifecycleEvent:
    descriptor: DeviceDescriptor


@dataclass(frozen=True)
class DeviceConnected(DeviceLifecycleEvent):
    pass


@dataclass(frozen=True)
class DeviceDisconnected(DeviceLifecycleEvent):
    pass


class DeviceEventStream:
    """Iterator over lifecycle events from one watch.

    Closing the stream (leaving its ``with`` block, or dropping the last
    reference to it) ends the watch and frees the watcher for another one.
    """

    def __init__(self, watcher: 'DeviceWatcher', events: Generator[DeviceLifecycleEvent, None, None]):
        self._watcher = watcher
        self._events = events
        self._closed = False

    def __iter__(self) -> 'DeviceEventStream':
        return self

    def __next__(self) -> DeviceLifecycleEvent:
        if self._closed:
            raise StopIteration
        try:
            return next(self._events)
        except Exception:
            self.close()
            raise

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._events.close()
        self._watcher._release()

    @property
    def closed(self) -> bool:
        return self._closed

    def __enter__(self) -> 'DeviceEventStream':
        return self

    def __exit__(self, *exc):
        self.close()

    def __del__(self):
        # An abandoned stream must not keep its watcher busy
        if not getattr(self, '_closed', True):
            self.close()


class DeviceWatcher:
    """Polls HID enumeration and reports devices appearing or vanishing.

    Devices already present when the watch starts form the baseline and
    are not reported.  Between scans the watcher waits on an event, so
    ``stop()`` from any thread wakes it immediately.
    """

    def __init__(self, poll_interval: float = DEFAULT_POLL_INTERVAL_S):
        self.poll_interval = poll_interval
        self._lock = threading.Lock()
        self._active = False
        self._stop = threading.Event()

    @property
    def is_watching(self) -> bool:
        return self._active

    def watch(self, queries: Iterable[DeviceQuery]) -> DeviceEventStream:
        """Start watching.

        Raises:
            WatcherAlreadyInitialized: If a watch is already running.
        """
        queries = list(queries)
        with self._lock:
            if self._active:
                raise WatcherAlreadyInitialized("A watch is already running on this watcher")
            self._active = True
        self._stop.clear()

        try:
            baseline = self._scan(queries)
        except Exception:
            self._release()
            raise

        log.debug("Watcher started: %d quer(ies), %d device(s) present",
                  len(queries), len(baseline))
        return DeviceEventStream(self, self._events(queries, baseline))

    def stop(self) -> None:
        """Ask the running watch to finish after its current wait."""
        self._stop.set()

    def _release(self) -> None:
        with self._lock:
            self._active = False
        log.debug("Watcher stopped")

    def _scan(self, queries: list[DeviceQuery]) -> set[DeviceDescriptor]:
        found = set()
        for info in _enumerate():
            if not any(q.matches(info) for q in queries):
                continue
            descriptor = _descriptor(info)
            if descriptor is not None:
                found.add(descriptor)
        return found

    def _events(
        self,
        queries: list[DeviceQuery],
        known: set[DeviceDescriptor],
    ) -> Generator[DeviceLifecycleEvent, None, None]:
        while not self._stop.wait(self.poll_interval):
            current = self._scan(queries)
            added = sorted(current - known)
            removed = sorted(known - current)
            if added or removed:
                log.debug("Enumeration changed: +%d -%d", len(added), len(removed))
            known = current
            for descriptor in added:
                yield DeviceConnected(descriptor)
            for descriptor in removed:
                yield DeviceDisconnected(descriptor)
