"""
mirajazz - Mirabox / Ajazz stream controller driver

Talks to the CRT-protocol family of USB-HID macro keypads (per-key
displays, buttons, push encoders) through hidapi or pyusb.

Features:
- Device discovery and hot-plug watching
- Brightness, clear, sleep, keep-alive and shutdown commands
- Staged key images committed on flush()
- Edge-triggered Down/Up/Twist events from raw input reports

Usage:
    from mirajazz import DeviceConnection, list_devices, profile_for

    for desc in list_devices([0x0300]):
        profile = profile_for(desc.vendor_id, desc.product_id)
        with DeviceConnection.connect_profile(profile, desc.serial) as device:
            device.set_brightness(50)
            device.set_button_image(0, profile.image_format, "key.png")
            device.flush()
            reader = device.get_reader(profile.classifier())
            for updates in reader.iter_updates(timeout=1.0):
                print(updates)
"""

from mirajazz.__version__ import __version__
from mirajazz.conf import DeviceProfile, profile_for
from mirajazz.device_connection import DeviceConnection, ImageStagingCache, StagedImage
from mirajazz.device_discovery import (
    DeviceConnected,
    DeviceDescriptor,
    DeviceDisconnected,
    DeviceLifecycleEvent,
    DeviceQuery,
    DeviceWatcher,
    extract_str,
    list_devices,
)
from mirajazz.device_input import (
    ButtonStateChange,
    DeviceInput,
    EncoderStateChange,
    EncoderTwist,
    FunctionClassifier,
    InputClassifier,
    Keymap,
    KeymapClassifier,
    NoData,
)
from mirajazz.device_protocol import CommandFramer, ImagePagewriter
from mirajazz.device_state import (
    ButtonDown,
    ButtonUp,
    DeviceState,
    DeviceStateReader,
    DeviceStateUpdate,
    EncoderDown,
    EncoderTwistUpdate,
    EncoderUp,
    diff_input,
)
from mirajazz.errors import (
    BadData,
    DeviceNotFoundError,
    ImageCodecError,
    ImageTooLarge,
    InvalidDeviceError,
    InvalidKeyIndex,
    MirajazzError,
    NoScreen,
    PoisonError,
    TextDecodeError,
    TransportError,
    UnrecognizedPID,
    UnsupportedOperation,
    WatcherAlreadyInitialized,
)
from mirajazz.hid_transport import HidApiTransport, HidTransport, PyUsbTransport
from mirajazz.image_codec import (
    ImageFormat,
    ImageMirroring,
    ImageMode,
    ImageRotation,
    convert_image_with_format,
)
from mirajazz.types import ConnectionCapabilities, ProtocolVariant

__all__ = [
    # Version
    "__version__",
    # Connection
    "DeviceConnection",
    "ImageStagingCache",
    "StagedImage",
    "ConnectionCapabilities",
    "ProtocolVariant",
    "DeviceProfile",
    "profile_for",
    # Discovery
    "DeviceDescriptor",
    "DeviceQuery",
    "DeviceWatcher",
    "DeviceLifecycleEvent",
    "DeviceConnected",
    "DeviceDisconnected",
    "list_devices",
    "extract_str",
    # Protocol
    "CommandFramer",
    "ImagePagewriter",
    # Transport
    "HidTransport",
    "HidApiTransport",
    "PyUsbTransport",
    # Input
    "DeviceInput",
    "NoData",
    "ButtonStateChange",
    "EncoderStateChange",
    "EncoderTwist",
    "InputClassifier",
    "FunctionClassifier",
    "Keymap",
    "KeymapClassifier",
    # State
    "DeviceState",
    "DeviceStateReader",
    "DeviceStateUpdate",
    "ButtonDown",
    "ButtonUp",
    "EncoderDown",
    "EncoderUp",
    "EncoderTwistUpdate",
    "diff_input",
    # Images
    "ImageFormat",
    "ImageMode",
    "ImageRotation",
    "ImageMirroring",
    "convert_image_with_format",
    # Errors
    "MirajazzError",
    "WatcherAlreadyInitialized",
    "DeviceNotFoundError",
    "InvalidDeviceError",
    "TransportError",
    "TextDecodeError",
    "ImageCodecError",
    "ImageTooLarge",
    "PoisonError",
    "NoScreen",
    "InvalidKeyIndex",
    "UnrecognizedPID",
    "UnsupportedOperation",
    "BadData",
]
