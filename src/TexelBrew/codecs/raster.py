"""Conventional raster containers (PNG, TGA, BMP, TIFF, JPEG, WebP) via Pillow.

These containers store a single level. Pillow decodes the whole image when
the header is read; the pixels are kept in the container's native format
until ``read_data`` hands them over.
"""

import logging
import os
from typing import Dict, Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

from ..core.convert import _byte_view
from ..core.formats import PixelFormat, format_descriptor
from ..core.geometry import LevelGeometry
from ..core.normalize import compress_dynamic_range
from ..core.status import Status
from .base import ImageCodec, check_level_limit

# Pixel-count limits are enforced per image against ImageDescriptor.max_pixels.
Image.MAX_IMAGE_PIXELS = None

logger = logging.getLogger("texel_io.codecs.raster")

_MODE_FORMATS: Dict[str, PixelFormat] = {
    "L": PixelFormat.GRAY8,
    "I;16": PixelFormat.GRAYU16,
    "F": PixelFormat.GRAYF32,
    "RGB": PixelFormat.B8G8R8,
    "RGBA": PixelFormat.A8B8G8R8,
}

_FORMAT_DTYPES = {
    PixelFormat.GRAY8: np.uint8,
    PixelFormat.GRAYU16: np.dtype("<u2"),
    PixelFormat.GRAYF32: np.dtype("<f4"),
}

_CONTAINER_MODES = {
    ".png": {"L", "I;16", "RGB", "RGBA"},
    ".tif": {"L", "I;16", "F", "RGB", "RGBA"},
    ".tiff": {"L", "I;16", "F", "RGB", "RGBA"},
    ".tga": {"L", "RGB", "RGBA"},
    ".bmp": {"L", "RGB"},
    ".jpg": {"L", "RGB"},
    ".jpeg": {"L", "RGB"},
    ".webp": {"RGB", "RGBA"},
}

_SAVE_OPTIONS = {
    ".png": {"optimize": True},
    ".jpg": {"quality": 95},
    ".jpeg": {"quality": 95},
    ".webp": {"quality": 95},
}


def _infer_integer_mode_bit_depth(img: Image.Image, ext: str) -> int:
    """Infer bit depth for Pillow mode ``I`` images.

    Explicit metadata wins over the container default.
    """
    bits_info = img.info.get("bits")
    if isinstance(bits_info, int) and bits_info > 0:
        return bits_info

    # TIFF BitsPerSample tag
    tag_v2 = getattr(img, "tag_v2", None)
    if tag_v2 is not None:
        bits_tag = tag_v2.get(258)
        if isinstance(bits_tag, tuple) and bits_tag:
            bits_tag = bits_tag[0]
        if isinstance(bits_tag, int) and bits_tag > 0:
            return bits_tag

    # TIFF "I" is frequently 16-bit data promoted to "I".
    if ext in (".tif", ".tiff", ".png"):
        return 16
    return 32


def _preferred_mode(fmt, ext: str) -> str:
    """Pick the Pillow mode that stores ``fmt`` best in a container."""
    desc = format_descriptor(fmt)
    allowed = _CONTAINER_MODES.get(ext, _CONTAINER_MODES[".png"])
    if desc.tag == PixelFormat.GRAYF32:
        candidates = ["F", "I;16", "L", "RGB"]
    elif desc.tag == PixelFormat.GRAYU16:
        candidates = ["I;16", "L", "RGB"]
    elif desc.is_gray:
        candidates = ["L", "RGB"]
    elif desc.has_alpha:
        candidates = ["RGBA", "RGB"]
    else:
        candidates = ["RGB", "RGBA"]
    for mode in candidates:
        if mode in allowed:
            return mode
    return sorted(allowed)[0]


class RasterCodec(ImageCodec):
    """Single-level raster images through Pillow."""

    name = "raster"
    extensions = tuple(sorted(_CONTAINER_MODES))
    max_levels = 1

    def reset_state(self) -> None:
        super().reset_state()
        self._pixels: Optional[bytes] = None
        self._compress_source: Optional[PixelFormat] = None

    @staticmethod
    def _ext(image) -> str:
        ext = os.path.splitext(image.file_name or "")[1].lower()
        return ext if ext in _CONTAINER_MODES else ".png"

    def _decode(self, img: Image.Image, ext: str):
        """Return ``(format, ndarray)`` for a loaded Pillow image."""
        mode = img.mode
        if mode.startswith("I;16"):
            return PixelFormat.GRAYU16, np.asarray(img).astype("<u2")
        if mode == "I":
            bits = _infer_integer_mode_bit_depth(img, ext)
            arr = np.asarray(img, dtype=np.float64)
            if bits <= 16:
                logger.debug("Mode I image with %d-bit depth stored as GRAYU16", bits)
                return PixelFormat.GRAYU16, np.clip(arr, 0, 65535).astype("<u2")
            logger.debug("Mode I image with %d-bit depth stored as GRAYF32", bits)
            return PixelFormat.GRAYF32, (arr / float((1 << min(bits, 32)) - 1)).astype("<f4")
        if mode == "F":
            return PixelFormat.GRAYF32, np.asarray(img).astype("<f4")
        if mode in _MODE_FORMATS:
            return _MODE_FORMATS[mode], np.asarray(img)
        if mode == "1":
            target = "L"
        elif mode.endswith(("A", "a")) or "transparency" in img.info:
            target = "RGBA"
        else:
            target = "RGB"
        logger.debug("Converting %s image from %s->%s", ext, mode, target)
        with img.convert(target) as converted:
            return _MODE_FORMATS[target], np.asarray(converted)

    def read_header(self, image) -> Status:
        ext = self._ext(image)
        try:
            with Image.open(image.stream) as img:
                width, height = img.size
                if image.max_pixels > 0 and width * height > image.max_pixels:
                    logger.warning(
                        "Image %s exceeds max_pixels: %d > %d",
                        image.file_name, width * height, image.max_pixels,
                    )
                    return Status.ALLOCATION_FAILURE
                img.load()
                fmt, arr = self._decode(img, ext)
        except UnidentifiedImageError as exc:
            image.last_error = exc
            logger.error("Unrecognized raster data in %s: %s", image.file_name, exc)
            return Status.FORMAT_ERROR
        except OSError as exc:
            return self._stream_fault(image, exc, "decode")

        self._pixels = np.ascontiguousarray(arr).tobytes()
        logger.debug("Decoded %s: %dx%d as %s", image.file_name, width, height, fmt.name)
        return self._bind(fmt, width, height, 1)

    def read_level(self, image, geo: LevelGeometry) -> bytes:
        pixels, self._pixels = self._pixels, None
        return pixels

    def write_header(self, image, fmt, width: int, height: int, num_levels: int) -> Status:
        limit = check_level_limit(self, num_levels)
        if limit is not None:
            return limit
        ext = self._ext(image)
        mode = _preferred_mode(fmt, ext)
        native = _MODE_FORMATS[mode]
        compress = bool(getattr(getattr(self.config, "export", None),
                                "compress_high_precision", True))
        self._compress_source = None
        if (compress and native == PixelFormat.GRAY8
                and fmt in (PixelFormat.GRAYU16, PixelFormat.GRAYF32)):
            self._compress_source = PixelFormat(fmt)
        if native != fmt:
            logger.info(
                "%s cannot hold %s; storing %s as %s%s",
                ext, PixelFormat(fmt).name, image.file_name or "<stream>", mode,
                " (percentile range compression)" if self._compress_source else "",
            )
        return self._bind(native, width, height, 1)

    def write_data(self, image, buffer, fmt, line_width: int) -> Status:
        if self._compress_source is None or fmt != self._compress_source:
            return super().write_data(image, buffer, fmt, line_width)

        geo = self._chain[self.level]
        dtype = _FORMAT_DTYPES[self._compress_source]
        item = np.dtype(dtype).itemsize
        raw = _byte_view(buffer)
        if line_width < geo.width * item or raw.size < (geo.height - 1) * line_width + geo.width * item:
            logger.error("Buffer too short for %dx%d level", geo.width, geo.height)
            return Status.INVALID_GEOMETRY
        rows = [
            raw[r * line_width:r * line_width + geo.width * item].view(dtype)
            for r in range(geo.height)
        ]
        gray = compress_dynamic_range(np.stack(rows))
        try:
            self.write_level(image, geo, gray.tobytes())
        except OSError as exc:
            return self._stream_fault(image, exc, "write")
        self.level += 1
        return Status.OK

    def write_level(self, image, geo: LevelGeometry, data: bytes) -> None:
        desc = format_descriptor(self.native_format)
        if desc.tag in _FORMAT_DTYPES:
            arr = np.frombuffer(data, dtype=_FORMAT_DTYPES[desc.tag]).reshape(geo.height, geo.width)
            if desc.tag == PixelFormat.GRAYF32:
                arr = arr.astype(np.float32)
            elif desc.tag == PixelFormat.GRAYU16:
                arr = arr.astype(np.uint16)
        else:
            arr = np.frombuffer(data, dtype=np.uint8).reshape(
                geo.height, geo.width, desc.stride_bytes
            )

        ext = self._ext(image)
        pil_format = Image.registered_extensions().get(ext, "PNG")
        with Image.fromarray(np.array(arr)) as img:
            img.save(image.stream, format=pil_format, **_SAVE_OPTIONS.get(ext, {}))
        logger.debug("Saved %s (%dx%d, %s)", image.file_name, geo.width, geo.height, img.mode)
