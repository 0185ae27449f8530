"""Pixel format registry -- the single table of byte layouts.

Channels are listed from the most-significant bit to the least-significant
bit. Pixels are stored little-endian, so in memory the channel order is
reversed: ``A8R8G8B8`` is laid out as B, G, R, A.
"""

import logging
from dataclasses import dataclass
from enum import Enum, IntEnum
from types import MappingProxyType
from typing import Tuple

logger = logging.getLogger("texel_io.formats")


class UnknownFormatError(LookupError):
    """Raised when a tag outside the registry is queried."""


class PixelFormat(IntEnum):
    """Enumerate pixel format tags."""

    UNKNOWN = 0
    # gray
    A8 = 1
    GRAY8 = 2
    GRAYU16 = 3
    GRAYF32 = 4
    # uncompressed RGB
    R5G6B5 = 5
    R8G8B8 = 6
    R8G8B8A8 = 7
    A8R8G8B8 = 8
    # uncompressed BGR
    B8G8R8 = 9
    B8G8R8A8 = 10
    A8B8G8R8 = 11
    # compressed
    DXT1 = 128
    DXT2 = 129
    DXT3 = 130
    DXT4 = 131
    DXT5 = 132
    ATI2 = 133  # 3Dc


class Channel(Enum):
    """Enumerate channel roles."""

    R = "r"
    G = "g"
    B = "b"
    A = "a"
    L = "l"


@dataclass(frozen=True)
class PixelFormatDescriptor:
    """Layout of one pixel format."""

    tag: PixelFormat
    stride_bits: int
    channels: Tuple[Tuple[Channel, int], ...]
    has_alpha: bool
    is_compressed: bool = False
    is_float: bool = False
    block_edge: int = 1

    @property
    def channel_order(self) -> Tuple[Channel, ...]:
        return tuple(role for role, _ in self.channels)

    @property
    def stride_bytes(self) -> int:
        """Bytes per pixel, or bytes per block for compressed tags."""
        return (self.stride_bits + 7) // 8

    @property
    def is_gray(self) -> bool:
        return self.channel_order == (Channel.L,)


def _plain(tag, *channels, alpha=False, is_float=False):
    return PixelFormatDescriptor(
        tag=tag,
        stride_bits=sum(bits for _, bits in channels),
        channels=tuple(channels),
        has_alpha=alpha,
        is_float=is_float,
    )


def _block(tag, block_bits, *roles, alpha=False):
    return PixelFormatDescriptor(
        tag=tag,
        stride_bits=block_bits,
        channels=tuple((role, 0) for role in roles),
        has_alpha=alpha,
        is_compressed=True,
        block_edge=4,
    )


R, G, B, A, L = Channel.R, Channel.G, Channel.B, Channel.A, Channel.L

_REGISTRY = MappingProxyType({
    d.tag: d for d in (
        _plain(PixelFormat.A8, (A, 8), alpha=True),
        _plain(PixelFormat.GRAY8, (L, 8)),
        _plain(PixelFormat.GRAYU16, (L, 16)),
        _plain(PixelFormat.GRAYF32, (L, 32), is_float=True),
        _plain(PixelFormat.R5G6B5, (R, 5), (G, 6), (B, 5)),
        _plain(PixelFormat.R8G8B8, (R, 8), (G, 8), (B, 8)),
        _plain(PixelFormat.R8G8B8A8, (R, 8), (G, 8), (B, 8), (A, 8), alpha=True),
        _plain(PixelFormat.A8R8G8B8, (A, 8), (R, 8), (G, 8), (B, 8), alpha=True),
        _plain(PixelFormat.B8G8R8, (B, 8), (G, 8), (R, 8)),
        _plain(PixelFormat.B8G8R8A8, (B, 8), (G, 8), (R, 8), (A, 8), alpha=True),
        _plain(PixelFormat.A8B8G8R8, (A, 8), (B, 8), (G, 8), (R, 8), alpha=True),
        _block(PixelFormat.DXT1, 64, R, G, B),
        _block(PixelFormat.DXT2, 128, R, G, B, A, alpha=True),
        _block(PixelFormat.DXT3, 128, R, G, B, A, alpha=True),
        _block(PixelFormat.DXT4, 128, R, G, B, A, alpha=True),
        _block(PixelFormat.DXT5, 128, R, G, B, A, alpha=True),
        _block(PixelFormat.ATI2, 128, R, G),
    )
})

del R, G, B, A, L


def format_descriptor(tag) -> PixelFormatDescriptor:
    """Return the registry entry for ``tag``.

    Raises:
        UnknownFormatError: ``tag`` is ``UNKNOWN`` or not a registered tag.

    """
    try:
        return _REGISTRY[PixelFormat(tag)]
    except (ValueError, KeyError):
        raise UnknownFormatError(f"Unknown pixel format tag: {tag!r}") from None


def stride_bits(tag) -> int:
    """Bits per pixel, or bits per block for compressed tags."""
    return format_descriptor(tag).stride_bits


def stride_bytes(tag) -> int:
    return format_descriptor(tag).stride_bytes


def has_alpha(tag) -> bool:
    return format_descriptor(tag).has_alpha


def is_compressed(tag) -> bool:
    return format_descriptor(tag).is_compressed


def block_edge(tag) -> int:
    """Edge length in pixels of one addressing unit (1 for uncompressed)."""
    return format_descriptor(tag).block_edge


def registered_formats() -> Tuple[PixelFormat, ...]:
    return tuple(_REGISTRY)


def parse_format(name: str) -> PixelFormat:
    """Resolve a case-insensitive format name such as ``"a8r8g8b8"``."""
    key = str(name).strip().upper()
    if key == "3DC":
        key = "ATI2"
    try:
        tag = PixelFormat[key]
    except KeyError:
        raise UnknownFormatError(f"Unknown pixel format name: {name!r}") from None
    # Validates that the name is not UNKNOWN.
    format_descriptor(tag)
    return tag
