"""Mip-chain geometry: per-level sizes, strides and buffer offsets.

Logical sizes halve per level with a floor of 1. Storage sizes of
block-compressed formats are rounded up to the block edge, and their rows
are counted in blocks; the reported ``data_width``/``data_height`` stay in
pixels.
"""

import logging
from dataclasses import dataclass
from typing import List, Tuple

from .formats import format_descriptor

logger = logging.getLogger("texel_io.geometry")


@dataclass(frozen=True)
class LevelGeometry:
    """Geometry of one mip level inside a buffer."""

    level: int
    width: int
    height: int
    data_width: int
    data_height: int
    line_stride: int
    line_count: int
    offset: int
    row_bytes: int

    @property
    def size(self) -> int:
        return self.line_stride * self.line_count

    @property
    def end(self) -> int:
        return self.offset + self.size


def _check_dims(width: int, height: int) -> None:
    if width <= 0 or height <= 0:
        raise ValueError(f"Image dimensions must be > 0, got {width}x{height}")


def level_size(width: int, height: int, level: int) -> Tuple[int, int]:
    """Return the logical size of mip ``level`` for a ``width`` x ``height`` base."""
    _check_dims(width, height)
    if level < 0:
        raise ValueError(f"Mip level must be >= 0, got {level}")
    return max(width >> level, 1), max(height >> level, 1)


def storage_size(width: int, height: int, fmt) -> Tuple[int, int]:
    """Round a logical size up to the format's block edge."""
    edge = format_descriptor(fmt).block_edge
    return -(-width // edge) * edge, -(-height // edge) * edge


def level_count(width: int, height: int) -> int:
    """Number of levels in the full chain down to 1x1."""
    _check_dims(width, height)
    return max(width, height).bit_length()


def row_bytes(data_width: int, fmt) -> int:
    """Tight bytes per storage row (a pixel row, or a block row)."""
    desc = format_descriptor(fmt)
    if desc.is_compressed:
        return (data_width // desc.block_edge) * desc.stride_bytes
    return (data_width * desc.stride_bits + 7) // 8


def line_stride(data_width: int, fmt, alignment: int = 1) -> int:
    """Bytes per stored row, padded to ``alignment``."""
    if alignment < 1 or alignment & (alignment - 1):
        raise ValueError(f"Row alignment must be a power of two, got {alignment}")
    tight = row_bytes(data_width, fmt)
    return (tight + alignment - 1) & ~(alignment - 1)


def mip_chain(width: int, height: int, levels: int, fmt,
              alignment: int = 1, packed: bool = False) -> List[LevelGeometry]:
    """Lay out ``levels`` mip levels in one buffer.

    The default canvas layout stacks levels vertically and gives every level
    the level-0 line stride. ``packed=True`` gives each level its own tight
    stride, which is how container files store them.
    """
    _check_dims(width, height)
    if levels < 1:
        raise ValueError(f"Level count must be >= 1, got {levels}")
    edge = format_descriptor(fmt).block_edge

    base_data_w, _ = storage_size(width, height, fmt)
    canvas_stride = line_stride(base_data_w, fmt, alignment)

    chain = []
    offset = 0
    for level in range(levels):
        w, h = level_size(width, height, level)
        data_w, data_h = storage_size(w, h, fmt)
        tight = row_bytes(data_w, fmt)
        stride = line_stride(data_w, fmt, alignment) if packed else canvas_stride
        geo = LevelGeometry(
            level=level,
            width=w,
            height=h,
            data_width=data_w,
            data_height=data_h,
            line_stride=stride,
            line_count=data_h // edge,
            offset=offset,
            row_bytes=tight,
        )
        chain.append(geo)
        offset += geo.size
    logger.debug(
        "Computed %d-level %s chain for %dx%d (%d bytes)",
        levels, "packed" if packed else "canvas", width, height, offset,
    )
    return chain
