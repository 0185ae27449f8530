"""Dynamic-range compression for high-precision single-channel data."""

import logging
from typing import Tuple

import numpy as np

logger = logging.getLogger("texel_io.normalize")

_LOW_PERCENTILE = 0.1
_HIGH_PERCENTILE = 0.9


def _as_samples(data, dtype=None) -> np.ndarray:
    if dtype is not None and not isinstance(data, np.ndarray):
        arr = np.frombuffer(memoryview(data).cast("B"), dtype=np.dtype(dtype))
    else:
        arr = np.asarray(data, dtype=dtype)
    arr = arr.reshape(-1)
    if arr.dtype.kind not in "iuf":
        raise TypeError(f"Samples must be integer or float, got dtype {arr.dtype}")
    return arr


def find_min_max_percentile(data, dtype=None) -> Tuple:
    """Pick the samples nearest the 10th and 90th percentile of the value range.

    Percentiles are positions inside ``[min, max]``, not ranks: each sample
    maps to ``(value - min) / (max - min)`` and the samples closest to 0.1
    and 0.9 are returned as-is. Ties keep the first occurrence. An empty or
    constant buffer yields ``(0, 0)``.

    Args:
        data: ndarray, sequence, or raw buffer (requires ``dtype``).
        dtype: Element type when ``data`` is a raw buffer, e.g. ``"<u2"``.

    Returns:
        ``(min_out, max_out)`` as scalars of the sample dtype.

    """
    samples = _as_samples(data, dtype)
    zero = samples.dtype.type(0)
    if samples.size == 0:
        return zero, zero

    valid = samples[~np.isnan(samples)] if samples.dtype.kind == "f" else samples
    if valid.size == 0:
        return zero, zero
    actual_min = float(valid.min())
    actual_max = float(valid.max())
    value_range = actual_max - actual_min
    if value_range == 0:
        logger.debug("Constant buffer of %d samples; no usable range.", samples.size)
        return zero, zero

    position = (samples.astype(np.float64) - actual_min) / value_range
    low_dist = np.abs(position - _LOW_PERCENTILE)
    high_dist = np.abs(position - _HIGH_PERCENTILE)
    # argmin returns the first index of the minimum; NaN must never win.
    if samples.dtype.kind == "f":
        low_dist = np.where(np.isnan(low_dist), np.inf, low_dist)
        high_dist = np.where(np.isnan(high_dist), np.inf, high_dist)
    return samples[int(np.argmin(low_dist))], samples[int(np.argmin(high_dist))]


def compress_dynamic_range(data, dtype=None) -> np.ndarray:
    """Map samples onto 0..255 between the 10th/90th percentile samples."""
    samples = _as_samples(data, dtype)
    shape = np.shape(data) if isinstance(data, np.ndarray) else samples.shape
    low, high = find_min_max_percentile(samples)
    values = samples.astype(np.float64)
    low, high = float(low), float(high)
    if high > low:
        scaled = (values - low) * (255.0 / (high - low))
        out = np.rint(np.clip(np.nan_to_num(scaled, nan=0.0), 0.0, 255.0))
    else:
        out = np.where(values >= high, 255.0, 0.0)
    logger.debug("Compressed %d samples from [%g, %g] to 8 bits", samples.size, low, high)
    return out.astype(np.uint8).reshape(shape)
