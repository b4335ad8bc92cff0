#!/usr/bin/env python3
"""
Device connection for Mirabox / Ajazz stream controllers.

``DeviceConnection`` owns one open ``HidTransport`` plus the device's
``ConnectionCapabilities`` and exposes the command surface:

    brightness / clear / image staging + flush / sleep / keep-alive /
    shutdown / input reads

Every operation runs the two-frame handshake (``DIS`` then ``LIG``)
exactly once per connection before doing anything else.  Image writes
are staged and only reach the device on ``flush()``, which sends each
staged image as a ``BAT`` announcement followed by its pages, then one
``STP`` commit.

Locking:
  • transport lock: every report read/write; flush and shutdown hold it
    across their whole frame sequence so nothing interleaves.
  • staging lock: the image cache; taken before the transport lock.
  • init lock: single-flight guard around the handshake.

A blocking input read polls the transport in short slices and releases
the transport lock between them, so commands from other threads still
go out while a reader waits.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Optional, Union

from .constants import (
    BLOCKING_READ_SLICE_S,
    CLEAR_ALL_KEYS,
    INPUT_INDEX_OFFSET,
    INPUT_REPORT_SIZE,
    INPUT_STATE_OFFSET,
    MAX_IMAGE_PAYLOAD,
    PULSE_STATE,
)
from .device_discovery import DeviceDescriptor, find_device_path
from .device_input import DeviceInput, FunctionClassifier, InputClassifier, NoData
from .device_protocol import CommandFramer, ImagePagewriter, pad_frame
from .device_state import DeviceStateReader
from .errors import (
    BadData,
    DeviceNotFoundError,
    ImageTooLarge,
    InvalidKeyIndex,
    MirajazzError,
    PoisonError,
    TransportError,
    UnsupportedOperation,
)
from .hid_transport import HidApiTransport, HidTransport, PyUsbTransport
from .image_codec import ImageFormat, ImageSource, convert_image_with_format
from .types import ConnectionCapabilities, ProtocolVariant

log = logging.getLogger(__name__)

BACKENDS = ('hidapi', 'pyusb')

ClassifierLike = Union[InputClassifier, Callable[[int, int], DeviceInput]]


# =========================================================================
# Image staging
# =========================================================================

@dataclass(frozen=True)
class StagedImage:
    key: int
    image_data: bytes


class ImageStagingCache:
    """Per-key image payloads waiting for the next flush.

    Entries are kept in submission order and never deduplicated.
    Callers hold ``lock`` around every access.
    """

    def __init__(self):
        self.lock = threading.Lock()
        self._entries: list[StagedImage] = []

    def append(self, key: int, image_data: bytes) -> None:
        self._entries.append(StagedImage(key, bytes(image_data)))

    @property
    def entries(self) -> list[StagedImage]:
        return list(self._entries)

    def drop_first(self, count: int) -> None:
        del self._entries[:count]

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)


def _as_classifier(classifier: ClassifierLike) -> InputClassifier:
    if hasattr(classifier, 'classify'):
        return classifier  # type: ignore[return-value]
    return FunctionClassifier(classifier)  # type: ignore[arg-type]


# =========================================================================
# Connection
# =========================================================================

class DeviceConnection:
    """One open stream controller.

    Created by ``connect()`` (or directly with an already-built transport,
    e.g. a mock in tests).  Lives until ``close()``.
    """

    def __init__(
        self,
        descriptor: DeviceDescriptor,
        capabilities: ConnectionCapabilities,
        transport: HidTransport,
    ):
        self.descriptor = descriptor
        self.capabilities = capabilities
        self.transport = transport
        self._pager = ImagePagewriter(capabilities.packet_size)
        self._cache = ImageStagingCache()
        self._io_lock = threading.RLock()
        self._init_lock = threading.Lock()
        self._initialized = False
        self._poisoned = False
        self._commit_pending = False

    # -- Construction ----------------------------------------------------

    @classmethod
    def connect(
        cls,
        vid: int,
        pid: int,
        serial: str,
        protocol_variant: Union[ProtocolVariant, str],
        supports_dual_state: bool,
        key_count: int,
        encoder_count: int,
        backend: str = 'hidapi',
    ) -> 'DeviceConnection':
        """Find the enumerated device with this identity and open it.

        Raises:
            DeviceNotFoundError: If no visible device matches.
            TransportError: If the device cannot be opened.
        """
        if backend not in BACKENDS:
            raise UnsupportedOperation(f"Unknown HID backend {backend!r}")
        capabilities = ConnectionCapabilities.for_variant(
            ProtocolVariant(protocol_variant), supports_dual_state, key_count, encoder_count,
        )
        descriptor = DeviceDescriptor(vid, pid, serial)

        path = find_device_path(vid, pid, serial)
        if path is None:
            raise DeviceNotFoundError(f"No device found for {descriptor}")

        transport: HidTransport
        if backend == 'pyusb':
            transport = PyUsbTransport(vid, pid, serial)
        else:
            transport = HidApiTransport(path)
        transport.open()

        log.debug("Connected to %s (%s, %d keys, %d encoders, %s backend)",
                  descriptor, capabilities.protocol_variant.value,
                  key_count, encoder_count, backend)
        return cls(descriptor, capabilities, transport)

    @classmethod
    def connect_profile(cls, profile: Any, serial: str, backend: str = 'hidapi') -> 'DeviceConnection':
        """Connect using a ``conf.DeviceProfile``."""
        return cls.connect(
            profile.vid, profile.pid, serial,
            profile.protocol_variant, profile.supports_dual_state,
            profile.key_count, profile.encoder_count,
            backend=backend,
        )

    # -- Capabilities ----------------------------------------------------

    @property
    def key_count(self) -> int:
        return self.capabilities.key_count

    @property
    def encoder_count(self) -> int:
        return self.capabilities.encoder_count

    @property
    def serial(self) -> str:
        return self.descriptor.serial

    @property
    def supports_dual_state(self) -> bool:
        return self.capabilities.supports_dual_state

    @property
    def packet_size(self) -> int:
        return self.capabilities.packet_size

    @property
    def protocol_variant(self) -> ProtocolVariant:
        return self.capabilities.protocol_variant

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def poisoned(self) -> bool:
        return self._poisoned

    @property
    def staged_count(self) -> int:
        with self._cache.lock:
            return len(self._cache)

    # -- Initialization --------------------------------------------------

    def initialize(self) -> None:
        """Send the ``DIS`` + ``LIG`` handshake once per connection.

        Concurrent first callers wait for the one handshake in flight.
        If the handshake fails the connection is poisoned: the first
        caller sees the transport error, every later call ``PoisonError``.
        """
        with self._init_lock:
            if self._poisoned:
                raise PoisonError(f"Connection to {self.descriptor} failed during handshake")
            if self._initialized:
                return
            try:
                with self._io_lock:
                    for frame in CommandFramer.handshake():
                        self.write_extended_data(frame)
            except MirajazzError:
                self._poisoned = True
                log.warning("Handshake with %s failed; connection poisoned", self.descriptor)
                raise
            self._initialized = True
            log.debug("Initialized %s", self.descriptor)

    # -- Commands --------------------------------------------------------

    def reset(self) -> None:
        """Full brightness and blank keys."""
        self.initialize()
        self.set_brightness(100)
        self.clear_all_button_images()

    def set_brightness(self, percent: int) -> None:
        """Set brightness, *percent* clamped to 0-100."""
        self.initialize()
        self.write_extended_data(CommandFramer.brightness(percent))

    def clear_button_image(self, key: int) -> None:
        """Blank one key (0xFF blanks every key)."""
        self.initialize()
        if key != CLEAR_ALL_KEYS:
            self._check_key(key)
        self.write_extended_data(CommandFramer.cle(key))

    def clear_all_button_images(self) -> None:
        self.initialize()
        with self._io_lock:
            self.write_extended_data(CommandFramer.cle(CLEAR_ALL_KEYS))
            # v2 devices need STP to commit clearing the screen
            if self.protocol_variant.commits_clear:
                self.write_extended_data(CommandFramer.stp())

    def write_image(self, key: int, image_data: bytes) -> None:
        """Stage an encoded image for *key*.  Nothing is sent until flush()."""
        self._check_key(key)
        if len(image_data) > MAX_IMAGE_PAYLOAD:
            raise ImageTooLarge(
                f"Image for key {key} is {len(image_data)} bytes, limit is {MAX_IMAGE_PAYLOAD}"
            )
        with self._cache.lock:
            self._cache.append(key, image_data)

    def set_button_image(self, key: int, image_format: ImageFormat, image: ImageSource) -> None:
        """Encode *image* for the device and stage it for *key*."""
        self.initialize()
        self._check_key(key)
        self.write_image(key, convert_image_with_format(image_format, image))

    def sleep(self) -> None:
        self.initialize()
        self.write_extended_data(CommandFramer.han())

    def keep_alive(self) -> None:
        """Heartbeat; call periodically so the device stays awake."""
        self.initialize()
        self.write_extended_data(CommandFramer.keep_alive())

    def shutdown(self) -> None:
        self.initialize()
        with self._io_lock:
            for frame in CommandFramer.shutdown():
                self.write_extended_data(frame)

    def flush(self) -> None:
        """Send every staged image in submission order, then commit.

        If a write fails part-way, images already sent leave the cache and
        the rest stay staged; the error propagates.  The next flush resends
        what is left and commits.
        """
        with self._cache.lock:
            self.initialize()
            if not self._cache and not self._commit_pending:
                return

            entries = self._cache.entries
            sent = 0
            try:
                with self._io_lock:
                    for entry in entries:
                        self._send_image(entry.key, entry.image_data)
                        sent += 1
                    self._commit_pending = True
                    self.write_extended_data(CommandFramer.stp())
                    self._commit_pending = False
            except Exception:
                self._cache.drop_first(sent)
                if sent:
                    self._commit_pending = True
                log.warning("Flush to %s aborted after %d of %d image(s)",
                            self.descriptor, sent, len(entries))
                raise

            self._cache.clear()
            log.debug("Flushed %d image(s), %d bytes to %s", len(entries),
                      sum(len(e.image_data) for e in entries), self.descriptor)

    def _send_image(self, key: int, image_data: bytes) -> None:
        self.write_extended_data(CommandFramer.bat(len(image_data), key))
        self._pager.write(image_data, self.write_data)

    # -- Input -----------------------------------------------------------

    def get_reader(self, classifier: ClassifierLike) -> DeviceStateReader:
        """Return a stateful reader; snapshots start all-released."""
        return DeviceStateReader(self, _as_classifier(classifier))

    def read_input(
        self,
        timeout: Optional[float],
        classifier: ClassifierLike,
    ) -> DeviceInput:
        """Read one input report and classify it.

        Args:
            timeout: Seconds to wait, or None to block.  Timing out is
                not an error: it yields ``NoData``.
            classifier: Device-family strategy (or plain function) mapping
                (input code, state byte) to a sample.
        """
        self.initialize()

        if timeout is None:
            data = b''
            while not data:
                data = self.read_data(INPUT_REPORT_SIZE, BLOCKING_READ_SLICE_S)
        else:
            data = self.read_data(INPUT_REPORT_SIZE, timeout)
        if not data or data[0] == 0:
            return NoData()
        if len(data) <= INPUT_STATE_OFFSET:
            raise BadData(f"Short input report ({len(data)} bytes)")

        state = data[INPUT_STATE_OFFSET] if self.supports_dual_state else PULSE_STATE
        return _as_classifier(classifier).classify(data[INPUT_INDEX_OFFSET], state)

    # -- Raw I/O ---------------------------------------------------------

    def read_data(self, length: int, timeout: Optional[float] = None) -> bytes:
        """Read one raw report.  Returns ``b''`` if *timeout* elapses."""
        self._check_open()
        timeout_ms = None if timeout is None else int(timeout * 1000)
        with self._io_lock:
            return self.transport.read(length, timeout_ms)

    def write_data(self, report: bytes) -> None:
        """Write one raw, already-sized report."""
        self._check_open()
        with self._io_lock:
            self.transport.write(report)

    def write_extended_data(self, payload: bytes) -> None:
        """Write *payload* zero-padded to one full report."""
        self.write_data(pad_frame(payload, self.packet_size))

    # -- Lifecycle -------------------------------------------------------

    def close(self) -> None:
        with self._io_lock:
            self.transport.close()
        log.debug("Closed %s", self.descriptor)

    def __enter__(self) -> 'DeviceConnection':
        return self

    def __exit__(self, *exc):
        self.close()

    def __repr__(self) -> str:
        return (f"DeviceConnection({self.descriptor}, "
                f"{self.protocol_variant.value}, keys={self.key_count}, "
                f"encoders={self.encoder_count})")

    # -- Helpers ---------------------------------------------------------

    def _check_key(self, key: int) -> None:
        if not 0 <= key < self.key_count:
            raise InvalidKeyIndex(
                f"Key {key} out of range for {self.key_count} key(s)"
            )

    def _check_open(self) -> None:
        if not self.transport.is_open:
            raise TransportError(f"Connection to {self.descriptor} is closed")
