"""Pixel format conversion and 24-bit red/blue swapping.

Conversions pivot through a float64 RGBA intermediate. Integer channel
fields are normalized by their maximum value; ``GRAYF32`` samples keep their
absolute value. Only the first ``pixel_count`` pixels of each row are
written, so row padding in the destination is left as the caller set it.
"""

import logging
from typing import Tuple

import numpy as np

from .formats import Channel, PixelFormat, PixelFormatDescriptor, format_descriptor
from .status import Status

logger = logging.getLogger("texel_io.convert")

# BT.709 luma weights, used when an RGB source is packed into a gray format.
_LUMA_WEIGHTS = (0.2126, 0.7152, 0.0722)

_RB_SWAP_PAIRS = {
    (PixelFormat.R8G8B8, PixelFormat.B8G8R8),
    (PixelFormat.B8G8R8, PixelFormat.R8G8B8),
}


def _byte_view(buf, writable: bool = False) -> np.ndarray:
    """Return a flat uint8 array sharing memory with ``buf``."""
    view = memoryview(buf)
    if view.ndim != 1 or view.format not in ("B", "b", "c"):
        view = view.cast("B")
    if writable and view.readonly:
        raise TypeError("Destination buffer is read-only")
    return np.frombuffer(view, dtype=np.uint8)


def _field_layout(desc: PixelFormatDescriptor):
    """Yield ``(role, shift, mask)`` for each channel, MSB first."""
    shift = desc.stride_bits
    for role, bits in desc.channels:
        shift -= bits
        yield role, shift, (1 << bits) - 1


def _gather_rows(arr: np.ndarray, stride: int, nbytes: int, rows: int) -> np.ndarray:
    """Copy ``rows`` rows of ``nbytes`` bytes, ``stride`` apart, into a 2D array."""
    if rows == 1:
        return arr[:nbytes].reshape(1, nbytes).copy()
    strided = np.lib.stride_tricks.as_strided(
        arr, shape=(rows, nbytes), strides=(stride, 1), writeable=False
    )
    return np.array(strided)


def _unpack(pixels: np.ndarray, desc: PixelFormatDescriptor) -> Tuple[np.ndarray, np.ndarray]:
    """Decode ``(n, stride_bytes)`` uint8 pixels into RGBA and gray arrays."""
    n = pixels.shape[0]
    rgba = np.zeros((n, 4), dtype=np.float64)
    rgba[:, 3] = 1.0

    if desc.is_float:
        gray = pixels.reshape(-1).view("<f4").astype(np.float64)
        rgba[:, 0] = rgba[:, 1] = rgba[:, 2] = gray
        return rgba, gray

    word = np.zeros(n, dtype=np.uint32)
    for i in range(desc.stride_bytes):
        word |= pixels[:, i].astype(np.uint32) << np.uint32(8 * i)

    gray = None
    for role, shift, mask in _field_layout(desc):
        value = ((word >> np.uint32(shift)) & np.uint32(mask)).astype(np.float64) / mask
        if role is Channel.L:
            gray = value
            rgba[:, 0] = rgba[:, 1] = rgba[:, 2] = value
        else:
            rgba[:, "RGBA".index(role.name)] = value

    if gray is None:
        gray = rgba[:, :3] @ np.asarray(_LUMA_WEIGHTS)
    return rgba, gray


def _pack(rgba: np.ndarray, gray: np.ndarray, desc: PixelFormatDescriptor) -> np.ndarray:
    """Encode RGBA/gray values into ``(n, stride_bytes)`` uint8 pixels."""
    n = rgba.shape[0]
    if desc.is_float:
        return gray.astype("<f4").view(np.uint8).reshape(n, 4)

    word = np.zeros(n, dtype=np.uint32)
    for role, shift, mask in _field_layout(desc):
        source = gray if role is Channel.L else rgba[:, "RGBA".index(role.name)]
        quantized = np.rint(np.clip(source, 0.0, 1.0) * mask).astype(np.uint32)
        word |= quantized << np.uint32(shift)

    out = np.empty((n, desc.stride_bytes), dtype=np.uint8)
    for i in range(desc.stride_bytes):
        out[:, i] = (word >> np.uint32(8 * i)) & np.uint32(0xFF)
    return out


def _scatter_rows(dst: np.ndarray, stride: int, rows_data: np.ndarray) -> None:
    nbytes = rows_data.shape[1]
    for r in range(rows_data.shape[0]):
        off = r * stride
        dst[off:off + nbytes] = rows_data[r]


def filter_format(dst, dst_format, dst_stride: int,
                  src, src_format, src_stride: int,
                  pixel_count: int, rows: int = 1) -> Status:
    """Rewrite ``rows`` rows of ``pixel_count`` pixels from one format to another.

    Args:
        dst: Writable destination buffer.
        dst_format: Destination pixel format tag.
        dst_stride: Destination bytes per row.
        src: Source buffer.
        src_format: Source pixel format tag.
        src_stride: Source bytes per row.
        pixel_count: Pixels per row. For compressed tags, rounded up to
            whole blocks and ``rows`` counts block rows.
        rows: Number of rows.

    Returns:
        ``Status.OK``, ``UNSUPPORTED_CONVERSION`` when a compressed format is
        paired with anything other than itself, or ``INVALID_GEOMETRY`` when
        counts, strides or buffer sizes do not fit.

    """
    src_desc = format_descriptor(src_format)
    dst_desc = format_descriptor(dst_format)
    dst_arr = _byte_view(dst, writable=True)
    src_arr = _byte_view(src)

    if src_desc.is_compressed or dst_desc.is_compressed:
        if src_desc.tag != dst_desc.tag:
            logger.error(
                "Unsupported conversion %s -> %s: block formats need a dedicated codec.",
                src_desc.tag.name, dst_desc.tag.name,
            )
            return Status.UNSUPPORTED_CONVERSION
        units = -(-pixel_count // src_desc.block_edge) if pixel_count > 0 else pixel_count
    else:
        units = pixel_count

    if units < 0 or rows < 0:
        logger.error("Negative pixel/row count: %d x %d", pixel_count, rows)
        return Status.INVALID_GEOMETRY
    if units == 0 or rows == 0:
        return Status.OK

    src_row = units * src_desc.stride_bytes if src_desc.is_compressed else (
        (units * src_desc.stride_bits + 7) // 8
    )
    dst_row = units * dst_desc.stride_bytes if dst_desc.is_compressed else (
        (units * dst_desc.stride_bits + 7) // 8
    )
    if src_stride < src_row or dst_stride < dst_row:
        logger.error(
            "Line stride too small: src %d < %d or dst %d < %d",
            src_stride, src_row, dst_stride, dst_row,
        )
        return Status.INVALID_GEOMETRY
    if (src_arr.size < (rows - 1) * src_stride + src_row
            or dst_arr.size < (rows - 1) * dst_stride + dst_row):
        logger.error(
            "Buffer too short for %d rows (src %d bytes, dst %d bytes)",
            rows, src_arr.size, dst_arr.size,
        )
        return Status.INVALID_GEOMETRY

    if src_desc.tag == dst_desc.tag:
        for r in range(rows):
            dst_arr[r * dst_stride:r * dst_stride + dst_row] = \
                src_arr[r * src_stride:r * src_stride + src_row]
        return Status.OK

    if (src_desc.tag, dst_desc.tag) in _RB_SWAP_PAIRS:
        for r in range(rows):
            copy_flip_rb24(
                dst_arr[r * dst_stride:r * dst_stride + dst_row],
                src_arr[r * src_stride:r * src_stride + src_row],
                units,
            )
        return Status.OK

    src_rows = _gather_rows(src_arr, src_stride, src_row, rows)
    pixels = src_rows.reshape(rows * units, src_desc.stride_bytes)
    rgba, gray = _unpack(pixels, src_desc)
    packed = _pack(rgba, gray, dst_desc)
    _scatter_rows(dst_arr, dst_stride, packed.reshape(rows, dst_row))
    logger.debug(
        "Converted %d x %d pixels %s -> %s",
        units, rows, src_desc.tag.name, dst_desc.tag.name,
    )
    return Status.OK


def _check_rb24(size: int, pixel_count: int, stride: int, name: str) -> int:
    if stride < 3:
        raise ValueError(f"{name} must be >= 3 bytes, got {stride}")
    end = (pixel_count - 1) * stride + 3
    if size < end:
        raise ValueError(
            f"Buffer of {size} bytes is too short for {pixel_count} pixels "
            f"at {name}={stride}"
        )
    return end


def flip_rb24(data, pixel_count: int, stride: int = 3) -> None:
    """Swap bytes 0 and 2 of each 24-bit pixel in place.

    ``stride`` is the byte step between consecutive pixels.
    """
    if pixel_count <= 0:
        return
    arr = _byte_view(data, writable=True)
    end = _check_rb24(arr.size, pixel_count, stride, "stride")
    first = arr[0:end:stride].copy()
    arr[0:end:stride] = arr[2:end:stride]
    arr[2:end:stride] = first


def copy_flip_rb24(dst, src, pixel_count: int,
                   stride_dst: int = 3, stride_src: int = 3) -> None:
    """Copy 24-bit pixels from ``src`` to ``dst`` swapping bytes 0 and 2.

    Bytes past the third byte of each destination pixel are not written.
    """
    if pixel_count <= 0:
        return
    dst_arr = _byte_view(dst, writable=True)
    src_arr = _byte_view(src)
    dst_end = _check_rb24(dst_arr.size, pixel_count, stride_dst, "stride_dst")
    src_end = _check_rb24(src_arr.size, pixel_count, stride_src, "stride_src")
    # Read first: dst and src may share memory.
    red = src_arr[0:src_end:stride_src].copy()
    green = src_arr[1:src_end:stride_src].copy()
    blue = src_arr[2:src_end:stride_src].copy()
    dst_arr[0:dst_end:stride_dst] = blue
    dst_arr[1:dst_end:stride_dst] = green
    dst_arr[2:dst_end:stride_dst] = red
