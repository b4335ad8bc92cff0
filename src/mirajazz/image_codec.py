"""Key image encoding: resize, rotate, mirror, encode.

Pure Python (PIL), no device I/O.  The result of
``convert_image_with_format`` is handed straight to the staging cache.
"""
from __future__ import annotations

import io
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Union

from PIL import Image as PILImage
from PIL import UnidentifiedImageError

from .errors import ImageCodecError, NoScreen, UnsupportedOperation

# Key images are tiny; anything this large is not a key image.
PILImage.MAX_IMAGE_PIXELS = 4096 * 4096

JPEG_QUALITY = 90

ImageSource = Union[PILImage.Image, bytes, bytearray, str, os.PathLike]


class ImageMode(Enum):
    NONE = 'none'
    BMP = 'bmp'
    JPEG = 'jpeg'


class ImageRotation(Enum):
    """Clockwise rotation applied after resizing."""
    ROT0 = 0
    ROT90 = 90
    ROT180 = 180
    ROT270 = 270


class ImageMirroring(Enum):
    NONE = 'none'
    X = 'x'        # left/right flip
    Y = 'y'        # top/bottom flip
    BOTH = 'both'


@dataclass(frozen=True)
class ImageFormat:
    """How a device wants its key images."""
    mode: ImageMode = ImageMode.NONE
    size: tuple[int, int] = (0, 0)
    rotation: ImageRotation = ImageRotation.ROT0
    mirror: ImageMirroring = ImageMirroring.NONE


class ImageCodec:
    """Stateless image transforms."""

    @staticmethod
    def load(source: ImageSource) -> Any:
        """Open *source* (PIL image, encoded bytes, or path) as a PIL Image."""
        if isinstance(source, PILImage.Image):
            return source
        try:
            if isinstance(source, (bytes, bytearray)):
                img = PILImage.open(io.BytesIO(source))
            else:
                img = PILImage.open(source)
            img.load()
        except (OSError, UnidentifiedImageError, PILImage.DecompressionBombError) as e:
            raise ImageCodecError(f"Cannot decode image: {e}") from e
        return img

    @staticmethod
    def apply_rotation(image: Any, rotation: ImageRotation) -> Any:
        """Rotate clockwise.  PIL transposes rotate counter-clockwise."""
        if rotation == ImageRotation.ROT90:
            return image.transpose(PILImage.Transpose.ROTATE_270)
        elif rotation == ImageRotation.ROT180:
            return image.transpose(PILImage.Transpose.ROTATE_180)
        elif rotation == ImageRotation.ROT270:
            return image.transpose(PILImage.Transpose.ROTATE_90)
        return image

    @staticmethod
    def apply_mirror(image: Any, mirror: ImageMirroring) -> Any:
        if mirror in (ImageMirroring.X, ImageMirroring.BOTH):
            image = image.transpose(PILImage.Transpose.FLIP_LEFT_RIGHT)
        if mirror in (ImageMirroring.Y, ImageMirroring.BOTH):
            image = image.transpose(PILImage.Transpose.FLIP_TOP_BOTTOM)
        return image

    @staticmethod
    def encode(image: Any, mode: ImageMode) -> bytes:
        if image.mode != 'RGB':
            image = image.convert('RGB')
        buf = io.BytesIO()
        try:
            if mode == ImageMode.JPEG:
                image.save(buf, format='JPEG', quality=JPEG_QUALITY)
            elif mode == ImageMode.BMP:
                image.save(buf, format='BMP')
            else:
                raise UnsupportedOperation(f"Cannot encode images as {mode}")
        except (OSError, ValueError) as e:
            raise ImageCodecError(f"Cannot encode image as {mode.value}: {e}") from e
        return buf.getvalue()


def convert_image_with_format(image_format: ImageFormat, source: ImageSource) -> bytes:
    """Render *source* into the raw bytes a device key expects.

    Resizes to ``image_format.size`` exactly, then rotates, then mirrors,
    then encodes.

    Raises:
        NoScreen: If the format has no image mode or a zero size.
        ImageCodecError: If Pillow cannot decode or encode the image.
    """
    width, height = image_format.size
    if image_format.mode == ImageMode.NONE or width <= 0 or height <= 0:
        raise NoScreen("Device has no key screen for this image format")

    image = ImageCodec.load(source)
    try:
        image = image.resize((width, height), PILImage.Resampling.NEAREST)
    except (OSError, ValueError) as e:
        raise ImageCodecError(f"Cannot resize image: {e}") from e
    image = ImageCodec.apply_rotation(image, image_format.rotation)
    image = ImageCodec.apply_mirror(image, image_format.mirror)
    return ImageCodec.encode(image, image_format.mode)
