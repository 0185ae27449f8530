"""Core utilities -- re-exports all public symbols for convenience."""

from .formats import (
    UnknownFormatError,
    PixelFormat,
    Channel,
    PixelFormatDescriptor,
    format_descriptor,
    stride_bits,
    stride_bytes,
    has_alpha,
    is_compressed,
    block_edge,
    registered_formats,
    parse_format,
)
from .status import Status
from .geometry import (
    LevelGeometry,
    level_size,
    storage_size,
    level_count,
    row_bytes,
    line_stride,
    mip_chain,
)
from .convert import filter_format, flip_rb24, copy_flip_rb24
from .normalize import find_min_max_percentile, compress_dynamic_range
from .image import DEFAULT_MAX_PIXELS, ImageDescriptor, MAX_LEVELS
from .logging import setup_logging

__all__ = [
    "UnknownFormatError", "PixelFormat", "Channel", "PixelFormatDescriptor",
    "format_descriptor", "stride_bits", "stride_bytes", "has_alpha",
    "is_compressed", "block_edge", "registered_formats", "parse_format",
    "Status",
    "LevelGeometry", "level_size", "storage_size", "level_count",
    "row_bytes", "line_stride", "mip_chain",
    "filter_format", "flip_rb24", "copy_flip_rb24",
    "find_min_max_percentile", "compress_dynamic_range",
    "ImageDescriptor", "MAX_LEVELS", "DEFAULT_MAX_PIXELS",
    "setup_logging",
]
