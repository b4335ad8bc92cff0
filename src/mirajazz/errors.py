"""Exception hierarchy for mirajazz.

Every failure the library reports derives from ``MirajazzError`` so a
caller can catch the whole family with one clause.  Wrapped backend
failures (hidapi, pyusb, Pillow) keep the backend exception as
``__cause__``.
"""


class MirajazzError(Exception):
    """Base class for all errors raised while working with devices."""


class WatcherAlreadyInitialized(MirajazzError):
    """A watch is already running on this watcher instance."""


class DeviceNotFoundError(MirajazzError):
    """No enumerated device matches the requested vid/pid/serial."""


class InvalidDeviceError(MirajazzError):
    """Device identity or capabilities are not usable."""


class TransportError(MirajazzError):
    """The HID backend failed to open, read or write."""


class TextDecodeError(MirajazzError):
    """Bytes reported by the device are not valid UTF-8."""


class ImageCodecError(MirajazzError):
    """The source image could not be decoded or encoded."""


class PoisonError(MirajazzError):
    """The connection failed inside a critical section and is unusable."""


class NoScreen(MirajazzError):
    """There is nowhere to write the image."""


class InvalidKeyIndex(MirajazzError):
    """Key or encoder index is out of range for this device."""


class UnrecognizedPID(MirajazzError):
    """No device profile is known for this vendor/product id pair."""


class UnsupportedOperation(MirajazzError):
    """The device or backend does not support the requested operation."""


class BadData(MirajazzError):
    """The device sent data that could not be classified."""


class ImageTooLarge(MirajazzError, ValueError):
    """Encoded image does not fit the 16-bit BAT length field."""
