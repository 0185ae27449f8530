"""Shared read/write plumbing for container codecs.

A codec instance is bound to one ``ImageDescriptor``. It keeps the
stream-side geometry (the format and level layout stored in the container)
and moves one level at a time between the stream and a caller buffer,
running the format converter whenever the caller asks for another format.
"""

import logging
from enum import Enum
from typing import List, Optional, Tuple

from ..core.convert import filter_format
from ..core.formats import PixelFormat, format_descriptor
from ..core.geometry import LevelGeometry, mip_chain
from ..core.image import MAX_LEVELS
from ..core.status import Status

logger = logging.getLogger("texel_io.codecs")


class OpenMode(Enum):
    """Direction a codec is created for."""

    READ = "read"
    WRITE = "write"


class ImageCodec:
    """Base codec: subclasses implement header parsing and level transport."""

    name = "base"
    extensions: Tuple[str, ...] = ()
    max_levels = 1

    def __init__(self, mode: OpenMode = OpenMode.READ, config=None):
        self.mode = mode
        self.config = config
        self.reset_state()

    def reset_state(self) -> None:
        self.native_format = PixelFormat.UNKNOWN
        self.width = 0
        self.height = 0
        self.num_levels = 0
        self.level = 0
        self._chain: List[LevelGeometry] = []

    def _bind(self, fmt, width: int, height: int, num_levels: int) -> Status:
        """Record the stream-side geometry of the container."""
        if num_levels > MAX_LEVELS:
            logger.error("Invalid %s geometry: %d levels exceeds %d", self.name, num_levels, MAX_LEVELS)
            return Status.INVALID_GEOMETRY
        try:
            chain = mip_chain(width, height, max(num_levels, 1), fmt, packed=True)
        except ValueError as exc:
            logger.error("Invalid %s geometry: %s", self.name, exc)
            return Status.INVALID_GEOMETRY
        self.native_format = PixelFormat(fmt)
        self.width = width
        self.height = height
        self.num_levels = max(num_levels, 1)
        self.level = 0
        self._chain = chain
        return Status.OK

    @staticmethod
    def _extent(geo: LevelGeometry, fmt) -> Tuple[int, int]:
        """Return ``(pixel_count, rows)`` to hand to the converter for one level."""
        if format_descriptor(fmt).is_compressed:
            return geo.data_width, geo.line_count
        return geo.width, geo.height

    def _stream_fault(self, image, exc: BaseException, action: str) -> Status:
        image.last_error = exc
        logger.error(
            "%s failed to %s %s (level %d): %s",
            self.name, action, image.file_name or "<stream>", self.level, exc,
        )
        return Status.STREAM_FAULT

    # -- contract -------------------------------------------------------

    def read_header(self, image) -> Status:
        raise NotImplementedError

    def write_header(self, image, fmt, width: int, height: int, num_levels: int) -> Status:
        raise NotImplementedError

    def read_level(self, image, geo: LevelGeometry) -> bytes:
        """Return the packed bytes of one level in ``native_format``."""
        raise NotImplementedError

    def write_level(self, image, geo: LevelGeometry, data: bytes) -> None:
        """Store the packed bytes of one level in ``native_format``."""
        raise NotImplementedError

    # -- generic data path ---------------------------------------------

    def read_data(self, image, buffer, fmt, line_width: int) -> Status:
        geo = self._chain[self.level]
        try:
            raw = self.read_level(image, geo)
        except OSError as exc:
            return self._stream_fault(image, exc, "read")
        if raw is None or len(raw) < geo.size:
            got = 0 if raw is None else len(raw)
            return self._stream_fault(
                image, EOFError(f"truncated level data: {got} of {geo.size} bytes"), "read"
            )

        pixel_count, rows = self._extent(geo, self.native_format)
        status = filter_format(
            buffer, fmt, line_width,
            raw, self.native_format, geo.line_stride,
            pixel_count, rows,
        )
        if status.ok:
            self.level += 1
        return status

    def write_data(self, image, buffer, fmt, line_width: int) -> Status:
        geo = self._chain[self.level]
        packed = bytearray(geo.size)
        pixel_count, rows = self._extent(geo, self.native_format)
        status = filter_format(
            packed, self.native_format, geo.line_stride,
            buffer, fmt, line_width,
            pixel_count, rows,
        )
        if not status.ok:
            return status
        try:
            self.write_level(image, geo, bytes(packed))
        except OSError as exc:
            return self._stream_fault(image, exc, "write")
        self.level += 1
        return Status.OK


def check_level_limit(codec: ImageCodec, num_levels: int) -> Optional[Status]:
    """Return ``INVALID_GEOMETRY`` when ``num_levels`` exceeds what the codec stores."""
    if num_levels > codec.max_levels:
        logger.error(
            "%s stores at most %d level(s), %d requested",
            codec.name, codec.max_levels, num_levels,
        )
        return Status.INVALID_GEOMETRY
    return None
