"""Image descriptor -- geometry, owned pixel buffer and codec relay."""

import logging
from typing import List, Optional, Tuple

from .convert import filter_format, flip_rb24
from .formats import PixelFormat, format_descriptor
from .geometry import LevelGeometry, level_count, mip_chain
from .status import Status

logger = logging.getLogger("texel_io.image")

# Level counts are stored in one byte by the container formats.
MAX_LEVELS = 255

DEFAULT_MAX_PIXELS = 67108864  # 8192x8192


class ImageDescriptor:
    """Mutable state of one image and its mip chain.

    The pixel buffer is owned by the descriptor and is released by
    ``close()``, by ``reset()`` and when leaving a ``with`` block. The stream
    is borrowed: the descriptor reads and writes through it but never closes
    it. ``num_levels == 0`` means the chain is generated elsewhere; storage
    then covers level 0 only.
    """

    def __init__(self, codec=None, file_name: str = "",
                 row_alignment: int = 1, max_pixels: int = DEFAULT_MAX_PIXELS):
        self.codec = codec
        self.file_name = file_name
        self.row_alignment = row_alignment
        self.max_pixels = max_pixels
        self.stream = None
        self.last_error: Optional[BaseException] = None
        self._clear_geometry()

    def _clear_geometry(self):
        self.buffer: Optional[bytearray] = None
        self.width = 0
        self.height = 0
        self.data_width = 0
        self.data_height = 0
        self.line_stride = 0
        self.line_count = 0
        self.pixel_stride = 0
        self.format = PixelFormat.UNKNOWN
        self.num_levels = 0
        self.current_level = 0
        self._chain: List[LevelGeometry] = []
        self._alignment = self.row_alignment

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
        return False

    def __repr__(self):
        return (
            f"ImageDescriptor({self.file_name!r}, {self.width}x{self.height}, "
            f"{self.format.name}, levels={self.num_levels})"
        )

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def data_size(self) -> int:
        return self.line_stride * self.line_count

    @property
    def has_alpha(self) -> bool:
        if self.format == PixelFormat.UNKNOWN:
            return False
        return format_descriptor(self.format).has_alpha

    @property
    def levels(self) -> List[LevelGeometry]:
        return list(self._chain)

    def reset(self, width: int, height: int, fmt, levels: int = 1,
              allocate: bool = False, row_alignment: Optional[int] = None,
              max_pixels: Optional[int] = None) -> Status:
        """Fix the geometry and optionally allocate the buffer.

        Any previous buffer is released first; the bound stream is kept.
        """
        desc = format_descriptor(fmt)
        alignment = self.row_alignment if row_alignment is None else row_alignment
        limit = self.max_pixels if max_pixels is None else max_pixels
        self._clear_geometry()

        if width <= 0 or height <= 0:
            logger.error("Invalid image size %dx%d for %s", width, height, self.file_name)
            return Status.INVALID_GEOMETRY
        if not 0 <= levels <= MAX_LEVELS or levels > level_count(width, height):
            logger.error(
                "Invalid level count %d for %dx%d (full chain has %d levels)",
                levels, width, height, level_count(width, height),
            )
            return Status.INVALID_GEOMETRY
        if limit > 0 and width * height > limit:
            logger.warning(
                "Image %s exceeds max_pixels: %d > %d",
                self.file_name, width * height, limit,
            )
            return Status.ALLOCATION_FAILURE

        try:
            chain = mip_chain(width, height, max(levels, 1), desc.tag, alignment)
        except ValueError as exc:
            logger.error("Invalid geometry for %s: %s", self.file_name, exc)
            return Status.INVALID_GEOMETRY

        base = chain[0]
        self.width = width
        self.height = height
        self.data_width = base.data_width
        self.data_height = sum(geo.data_height for geo in chain)
        self.line_stride = base.line_stride
        self.line_count = sum(geo.line_count for geo in chain)
        self.pixel_stride = desc.stride_bytes
        self.format = desc.tag
        self.num_levels = levels
        self._chain = chain
        self._alignment = alignment

        if allocate:
            try:
                self.buffer = bytearray(self.data_size)
            except (MemoryError, OverflowError) as exc:
                logger.error(
                    "Failed to allocate %d bytes for %s: %s",
                    self.data_size, self.file_name, exc,
                )
                self.last_error = exc
                self._clear_geometry()
                return Status.ALLOCATION_FAILURE
        logger.debug(
            "Reset %s: %dx%d %s, %d level(s), stride %d, %d bytes%s",
            self.file_name or "<image>", width, height, desc.tag.name, levels,
            self.line_stride, self.data_size, " allocated" if allocate else "",
        )
        return Status.OK

    def select_level(self, level: int) -> Status:
        if not 0 <= level < max(self.num_levels, 1) or not self._chain:
            logger.error("Mip level %d out of range (levels=%d)", level, self.num_levels)
            return Status.INVALID_GEOMETRY
        self.current_level = level
        return Status.OK

    def level_geometry(self, level: Optional[int] = None) -> Optional[LevelGeometry]:
        """Return geometry of ``level`` (default: current level), or None if out of range."""
        if level is None:
            level = self.current_level
        if not 0 <= level < len(self._chain):
            logger.error("Mip level %d out of range (levels=%d)", level, self.num_levels)
            return None
        return self._chain[level]

    def data_sizes(self, level: int) -> Tuple[int, int, int]:
        """Return ``(byte size, width, height)`` of a level; zeros if out of range."""
        geo = self.level_geometry(level)
        if geo is None:
            return 0, 0, 0
        return geo.size, geo.width, geo.height

    def level_view(self, level: Optional[int] = None) -> Optional[memoryview]:
        """Writable view of one level inside the owned buffer."""
        geo = self.level_geometry(level)
        if geo is None or self.buffer is None:
            return None
        return memoryview(self.buffer)[geo.offset:geo.end]

    # ------------------------------------------------------------------
    # Buffer ownership
    # ------------------------------------------------------------------

    def detach_buffer(self) -> Optional[bytearray]:
        """Hand the buffer to the caller; the descriptor no longer owns it."""
        buf, self.buffer = self.buffer, None
        return buf

    def transfer_to(self, other: "ImageDescriptor") -> None:
        """Move geometry and buffer into ``other`` and close this descriptor."""
        other.close()
        for name in ("width", "height", "data_width", "data_height", "line_stride",
                     "line_count", "pixel_stride", "format", "num_levels",
                     "current_level", "_chain", "_alignment"):
            setattr(other, name, getattr(self, name))
        other.buffer = self.detach_buffer()
        self.close()

    def close(self) -> None:
        """Release the buffer and detach (but do not close) the stream."""
        self._clear_geometry()
        self.stream = None
        if self.codec is not None and hasattr(self.codec, "reset_state"):
            self.codec.reset_state()

    def convert(self, fmt) -> Status:
        """Re-express the owned buffer in ``fmt`` using a freshly allocated buffer."""
        target = format_descriptor(fmt)
        if self.buffer is None:
            logger.error("Cannot convert %s: no pixel buffer allocated", self.file_name)
            return Status.INVALID_GEOMETRY
        if target.tag == self.format:
            return Status.OK

        old_buffer, old_format, old_chain = self.buffer, self.format, self._chain
        try:
            chain = mip_chain(self.width, self.height, len(old_chain),
                              target.tag, self._alignment)
            new_buffer = bytearray(chain[0].line_stride * sum(g.line_count for g in chain))
        except (MemoryError, OverflowError) as exc:
            self.last_error = exc
            logger.error("Failed to allocate conversion buffer for %s: %s", self.file_name, exc)
            return Status.ALLOCATION_FAILURE

        for src_geo, dst_geo in zip(old_chain, chain):
            status = filter_format(
                memoryview(new_buffer)[dst_geo.offset:dst_geo.end], target.tag,
                dst_geo.line_stride,
                memoryview(old_buffer)[src_geo.offset:src_geo.end], old_format,
                src_geo.line_stride,
                src_geo.width, src_geo.height,
            )
            if not status.ok:
                return status

        self.buffer = new_buffer
        self.format = target.tag
        self.pixel_stride = target.stride_bytes
        self.data_width = chain[0].data_width
        self.data_height = sum(geo.data_height for geo in chain)
        self.line_stride = chain[0].line_stride
        self.line_count = sum(geo.line_count for geo in chain)
        self._chain = chain
        logger.debug("Converted %s from %s to %s", self.file_name, old_format.name, target.tag.name)
        return Status.OK

    def swap_red_blue(self) -> Status:
        """Flip red/blue of a 24-bit buffer in place (R8G8B8 <-> B8G8R8)."""
        flipped = {
            PixelFormat.R8G8B8: PixelFormat.B8G8R8,
            PixelFormat.B8G8R8: PixelFormat.R8G8B8,
        }.get(self.format)
        if flipped is None or self.buffer is None:
            logger.error(
                "Red/blue swap needs an allocated 24-bit buffer, got %s", self.format.name
            )
            return Status.UNSUPPORTED_CONVERSION
        view = memoryview(self.buffer)
        for geo in self._chain:
            for row in range(geo.line_count):
                start = geo.offset + row * geo.line_stride
                flip_rb24(view[start:start + geo.row_bytes], geo.data_width)
        self.format = flipped
        return Status.OK

    # ------------------------------------------------------------------
    # Stream relay
    # ------------------------------------------------------------------

    def attach_stream(self, stream, file_name: Optional[str] = None) -> None:
        """Borrow ``stream`` for subsequent header/data calls."""
        self.stream = stream
        if file_name is not None:
            self.file_name = file_name
        if self.codec is not None and hasattr(self.codec, "reset_state"):
            self.codec.reset_state()

    def _check_relay(self) -> Status:
        if self.codec is None:
            logger.error("No codec bound to %s", self.file_name or "<image>")
            return Status.STREAM_FAULT
        if self.stream is None:
            logger.error("No stream attached to %s", self.file_name or "<image>")
            return Status.STREAM_FAULT
        return Status.OK

    def _check_data_call(self, fmt, stride: int) -> Status:
        status = self._check_relay()
        if not status.ok:
            return status
        if self.codec.level >= self.codec.num_levels:
            logger.error(
                "Mip level %d requested but %s holds %d level(s)",
                self.codec.level, self.file_name, self.codec.num_levels,
            )
            return Status.INVALID_GEOMETRY
        if stride != format_descriptor(fmt).stride_bytes:
            logger.error(
                "Pixel stride %d does not match %s (%d bytes)",
                stride, PixelFormat(fmt).name, format_descriptor(fmt).stride_bytes,
            )
            return Status.INVALID_GEOMETRY
        return Status.OK

    def read_header(self) -> Status:
        """Populate geometry from the bound stream without allocating pixels."""
        status = self._check_relay()
        if not status.ok:
            return status
        status = self.codec.read_header(self)
        if not status.ok:
            return status
        codec = self.codec
        return self.reset(codec.width, codec.height, codec.native_format,
                          codec.num_levels, allocate=False)

    def read_data(self, buffer, fmt, stride: int, line_width: int) -> Status:
        """Read the next level from the stream into ``buffer`` as ``fmt``."""
        status = self._check_data_call(fmt, stride)
        if not status.ok:
            return status
        self.current_level = self.codec.level
        return self.codec.read_data(self, buffer, fmt, line_width)

    def write_header(self, fmt, width: int, height: int, num_levels: int) -> Status:
        """Start writing a ``width`` x ``height`` image with ``num_levels`` levels."""
        status = self._check_relay()
        if not status.ok:
            return status
        format_descriptor(fmt)
        if self.buffer is None:
            status = self.reset(width, height, fmt, num_levels, allocate=False)
            if not status.ok:
                return status
        elif (width, height) != (self.width, self.height) or num_levels > len(self._chain):
            logger.error(
                "Header %dx%d/%d levels does not match buffered image %dx%d/%d levels",
                width, height, num_levels, self.width, self.height, len(self._chain),
            )
            return Status.INVALID_GEOMETRY
        self.current_level = 0
        return self.codec.write_header(self, fmt, width, height, num_levels)

    def write_data(self, buffer, fmt, stride: int, line_width: int) -> Status:
        """Write the next level from ``buffer`` (laid out as ``fmt``)."""
        status = self._check_data_call(fmt, stride)
        if not status.ok:
            return status
        self.current_level = self.codec.level
        return self.codec.write_data(self, buffer, fmt, line_width)

    def read_all(self) -> Status:
        """Read header and every level into a freshly allocated buffer."""
        status = self.read_header()
        if not status.ok:
            return status
        status = self.reset(self.width, self.height, self.format,
                            self.num_levels, allocate=True)
        if not status.ok:
            return status
        for geo in self._chain:
            status = self.read_data(
                self.level_view(geo.level), self.format, self.pixel_stride, self.line_stride
            )
            if not status.ok:
                return status
        self.current_level = 0
        return Status.OK

    def write_all(self, fmt=None, levels: Optional[int] = None) -> Status:
        """Write the owned buffer to the stream, converting to ``fmt`` on the way."""
        if self.buffer is None:
            logger.error("Nothing to write for %s: no pixel buffer", self.file_name)
            return Status.INVALID_GEOMETRY
        target = self.format if fmt is None else fmt
        count = len(self._chain) if levels is None else levels
        status = self.write_header(target, self.width, self.height, count)
        if not status.ok:
            return status
        for level in range(count):
            status = self.write_data(
                self.level_view(level), self.format, self.pixel_stride, self.line_stride
            )
            if not status.ok:
                return status
        self.current_level = 0
        return Status.OK

    # ------------------------------------------------------------------
    # Debugging
    # ------------------------------------------------------------------

    def dump(self, file_name: str) -> Status:
        """Write the raw buffer verbatim to ``file_name``."""
        if self.buffer is None:
            logger.error("Nothing to dump for %s: no pixel buffer", self.file_name)
            return Status.INVALID_GEOMETRY
        try:
            with open(file_name, "wb") as f:
                f.write(self.buffer)
        except OSError as exc:
            self.last_error = exc
            logger.error("Failed to dump %s to %s: %s", self.file_name, file_name, exc)
            return Status.STREAM_FAULT
        logger.info(
            "Dumped %d raw bytes of %s (%dx%d %s, stride %d) to %s",
            len(self.buffer), self.file_name or "<image>", self.width, self.height,
            self.format.name, self.line_stride, file_name,
        )
        return Status.OK
