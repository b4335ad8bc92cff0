#!/usr/bin/env python3
"""
HID transport layer for Mirabox / Ajazz stream controllers.

The ``HidTransport`` ABC abstracts raw report I/O so that:
  • Tests can inject a mock transport (no real hardware needed).
  • ``HidApiTransport`` provides real HID via hidapi (hidraw backend).
  • ``PyUsbTransport`` provides an alternative via pyusb (libusb backend),
    talking to the interrupt endpoints directly.

Reports written through a transport always start with the report id byte
(0x00).  A read that returns no bytes means the timeout elapsed.

Linux dependencies:
  • hidapi: ``pip install hidapi`` (wheels bundle libhidapi)
  • pyusb:  ``pip install pyusb``  (needs libusb1, ``apt install libusb-1.0-0``)
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional

import hid
import usb.core
import usb.util

from .constants import REPORT_ID
from .errors import TransportError

log = logging.getLogger(__name__)

# USB interface claimed by the libusb backend
USB_INTERFACE = 0


# =========================================================================
# Abstract HID transport
# =========================================================================

class HidTransport(ABC):
    """Abstract HID report transport, mockable for testing."""

    @abstractmethod
    def open(self) -> None:
        """Open the device."""

    @abstractmethod
    def close(self) -> None:
        """Release the device."""

    @abstractmethod
    def write(self, report: bytes) -> int:
        """Write one output report (report id first).  Returns bytes written."""

    @abstractmethod
    def read(self, length: int, timeout_ms: Optional[int] = None) -> bytes:
        """Read one input report.

        With *timeout_ms* None the read blocks until a report arrives.
        Returns ``b''`` when the timeout elapses first.
        """

    @property
    @abstractmethod
    def is_open(self) -> bool:
        """Whether the device is currently open."""

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, *exc):
        self.close()


# =========================================================================
# Real transport: HIDAPI
# =========================================================================

class HidApiTransport(HidTransport):
    """HID transport using hidapi.

    Opens the hidraw node found during enumeration (``path``) so the
    exact interface that matched vid/pid/serial is used.
    """

    def __init__(self, path: bytes):
        self._path = path
        self._device: Any = None

    def open(self) -> None:
        try:
            device = hid.device()
            device.open_path(self._path)
            device.set_nonblocking(0)  # blocking reads
        except (OSError, ValueError) as e:
            raise TransportError(f"Failed to open HID device {self._path!r}: {e}") from e
        self._device = device
        log.debug("Opened HID device %r", self._path)

    def close(self) -> None:
        if self._device is not None:
            try:
                self._device.close()
            except (OSError, ValueError) as e:
                log.debug("HID close: %s", e)
            self._device = None

    def write(self, report: bytes) -> int:
        if self._device is None:
            raise TransportError("Transport not open")
        try:
            written = self._device.write(report)
        except (OSError, ValueError) as e:
            raise TransportError(f"HID write failed: {e}") from e
        if written < 0:
            raise TransportError(f"HID write failed: {self._device.error()}")
        return written

    def read(self, length: int, timeout_ms: Optional[int] = None) -> bytes:
        if self._device is None:
            raise TransportError("Transport not open")
        try:
            if timeout_ms is None:
                data = self._device.read(length)
            else:
                # hidapi treats 0 as "block"; a zero timeout still means poll once
                data = self._device.read(length, max(int(timeout_ms), 1))
        except (OSError, ValueError) as e:
            raise TransportError(f"HID read failed: {e}") from e
        return bytes(data) if data else b''

    @property
    def is_open(self) -> bool:
        return self._device is not None

    def __repr__(self) -> str:
        return f"HidApiTransport(path={self._path!r})"


# =========================================================================
# Real transport: PyUSB  (libusb backend)
# =========================================================================

class PyUsbTransport(HidTransport):
    """HID transport over raw interrupt endpoints using pyusb.

    Useful where the hidraw node is not accessible but libusb is.
    Follows the usual libusb sequence:
    1. Find device by VID/PID/serial
    2. Detach the kernel HID driver, SetConfiguration, ClaimInterface(0)
    3. Interrupt read/write on the auto-detected endpoints

    The report id byte is stripped before an endpoint write; endpoints
    carry the bare packet.
    """

    def __init__(self, vid: int, pid: int, serial: Optional[str] = None):
        self._vid = vid
        self._pid = pid
        self._serial = serial
        self._device: Any = None
        self._ep_out: Optional[int] = None
        self._ep_in: Optional[int] = None

    def open(self) -> None:
        kwargs: dict[str, Any] = {'idVendor': self._vid, 'idProduct': self._pid}
        if self._serial:
            kwargs['serial_number'] = self._serial

        try:
            device = usb.core.find(**kwargs)
            if device is None:
                raise TransportError(
                    f"USB device not found: VID={self._vid:#06x} PID={self._pid:#06x}"
                )
            try:
                if device.is_kernel_driver_active(USB_INTERFACE):
                    device.detach_kernel_driver(USB_INTERFACE)
                    log.debug("Detached kernel driver from interface %d", USB_INTERFACE)
            except (NotImplementedError, usb.core.USBError) as e:
                log.debug("Kernel driver detach: %s", e)
            device.set_configuration()
            usb.util.claim_interface(device, USB_INTERFACE)
        except usb.core.USBError as e:
            raise TransportError(f"Failed to open USB device: {e}") from e

        self._device = device
        self._detect_endpoints()
        if self._ep_out is None or self._ep_in is None:
            self.close()
            raise TransportError("USB device has no interrupt IN/OUT endpoint pair")

    def _detect_endpoints(self) -> None:
        """Pick the first IN and OUT endpoint on interface 0."""
        cfg = self._device.get_active_configuration()
        intf = cfg[(USB_INTERFACE, 0)]
        for ep in intf:
            direction = usb.util.endpoint_direction(ep.bEndpointAddress)
            if direction == usb.util.ENDPOINT_OUT and self._ep_out is None:
                self._ep_out = ep.bEndpointAddress
            elif direction == usb.util.ENDPOINT_IN and self._ep_in is None:
                self._ep_in = ep.bEndpointAddress
        log.debug(
            "Auto-detected endpoints: OUT=0x%02x IN=0x%02x",
            self._ep_out or 0, self._ep_in or 0,
        )

    def close(self) -> None:
        if self._device is not None:
            try:
                usb.util.release_interface(self._device, USB_INTERFACE)
                usb.util.dispose_resources(self._device)
            except usb.core.USBError as e:
                log.debug("USB release: %s", e)
            self._device = None
        self._ep_out = None
        self._ep_in = None

    def write(self, report: bytes) -> int:
        if self._device is None:
            raise TransportError("Transport not open")
        payload = report[1:] if report[:1] == bytes([REPORT_ID]) else report
        try:
            self._device.write(self._ep_out, payload)
        except usb.core.USBError as e:
            raise TransportError(f"USB write failed: {e}") from e
        return len(report)

    def read(self, length: int, timeout_ms: Optional[int] = None) -> bytes:
        if self._device is None:
            raise TransportError("Transport not open")
        # libusb: timeout 0 waits forever
        timeout = 0 if timeout_ms is None else max(int(timeout_ms), 1)
        try:
            data = self._device.read(self._ep_in, length, timeout=timeout)
        except usb.core.USBTimeoutError:
            return b''
        except usb.core.USBError as e:
            raise TransportError(f"USB read failed: {e}") from e
        return bytes(data)

    @property
    def is_open(self) -> bool:
        return self._device is not None

    @property
    def ep_out(self) -> Optional[int]:
        """Auto-detected OUT endpoint address, or None."""
        return self._ep_out

    @property
    def ep_in(self) -> Optional[int]:
        """Auto-detected IN endpoint address, or None."""
        return self._ep_in

    def __repr__(self) -> str:
        return f"PyUsbTransport(vid={self._vid:#06x}, pid={self._pid:#06x})"
