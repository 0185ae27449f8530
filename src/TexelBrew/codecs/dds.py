"""DirectDraw Surface (DDS) container codec.

Handles the legacy 124-byte header with mask-described or FourCC pixel
formats, and the DX10 extension header on read. Block-compressed levels are
carried through untouched.
"""

import logging
import struct
from typing import Dict, Optional, Tuple

from ..core.formats import Channel, PixelFormat, format_descriptor, registered_formats
from ..core.geometry import LevelGeometry, level_count, row_bytes, storage_size
from ..core.image import MAX_LEVELS
from ..core.status import Status
from .base import ImageCodec, check_level_limit

logger = logging.getLogger("texel_io.codecs.dds")

DDS_MAGIC = b"DDS "
HEADER_SIZE = 124
DX10_HEADER_SIZE = 20

DDSD_CAPS = 0x1
DDSD_HEIGHT = 0x2
DDSD_WIDTH = 0x4
DDSD_PITCH = 0x8
DDSD_PIXELFORMAT = 0x1000
DDSD_MIPMAPCOUNT = 0x20000
DDSD_LINEARSIZE = 0x80000

DDPF_ALPHAPIXELS = 0x1
DDPF_ALPHA = 0x2
DDPF_FOURCC = 0x4
DDPF_RGB = 0x40
DDPF_LUMINANCE = 0x20000

DDSCAPS_COMPLEX = 0x8
DDSCAPS_TEXTURE = 0x1000
DDSCAPS_MIPMAP = 0x400000

DDSCAPS2_CUBEMAP = 0x200
DDSCAPS2_VOLUME = 0x200000

DDS_DIMENSION_TEXTURE3D = 4
DDS_RESOURCE_MISC_TEXTURECUBE = 0x4

_FOURCC_FORMATS: Dict[bytes, PixelFormat] = {
    b"DXT1": PixelFormat.DXT1,
    b"DXT2": PixelFormat.DXT2,
    b"DXT3": PixelFormat.DXT3,
    b"DXT4": PixelFormat.DXT4,
    b"DXT5": PixelFormat.DXT5,
    b"ATI2": PixelFormat.ATI2,
    b"BC5U": PixelFormat.ATI2,
    # D3DFMT codes stored numerically in the FourCC slot.
    struct.pack("<I", 81): PixelFormat.GRAYU16,   # D3DFMT_L16
    struct.pack("<I", 114): PixelFormat.GRAYF32,  # D3DFMT_R32F
}

_FORMAT_FOURCC: Dict[PixelFormat, bytes] = {
    PixelFormat.DXT1: b"DXT1",
    PixelFormat.DXT2: b"DXT2",
    PixelFormat.DXT3: b"DXT3",
    PixelFormat.DXT4: b"DXT4",
    PixelFormat.DXT5: b"DXT5",
    PixelFormat.ATI2: b"ATI2",
    PixelFormat.GRAYF32: struct.pack("<I", 114),
}

_DXGI_FORMATS: Dict[int, PixelFormat] = {
    28: PixelFormat.A8B8G8R8,   # R8G8B8A8_UNORM
    29: PixelFormat.A8B8G8R8,   # R8G8B8A8_UNORM_SRGB
    41: PixelFormat.GRAYF32,    # R32_FLOAT
    56: PixelFormat.GRAYU16,    # R16_UNORM
    61: PixelFormat.GRAY8,      # R8_UNORM
    65: PixelFormat.A8,         # A8_UNORM
    71: PixelFormat.DXT1,       # BC1_UNORM
    72: PixelFormat.DXT1,       # BC1_UNORM_SRGB
    74: PixelFormat.DXT3,       # BC2_UNORM
    75: PixelFormat.DXT3,       # BC2_UNORM_SRGB
    77: PixelFormat.DXT5,       # BC3_UNORM
    78: PixelFormat.DXT5,       # BC3_UNORM_SRGB
    83: PixelFormat.ATI2,       # BC5_UNORM
    85: PixelFormat.R5G6B5,     # B5G6R5_UNORM
    87: PixelFormat.A8R8G8B8,   # B8G8R8A8_UNORM
    91: PixelFormat.A8R8G8B8,   # B8G8R8A8_UNORM_SRGB
}


def pixel_format_masks(fmt) -> Tuple[int, int, int, int, int, int]:
    """Return ``(flags, bit_count, r, g, b, a)`` describing ``fmt`` in a DDS header."""
    desc = format_descriptor(fmt)
    masks = {"R": 0, "G": 0, "B": 0, "A": 0}
    shift = desc.stride_bits
    for role, bits in desc.channels:
        shift -= bits
        key = "R" if role is Channel.L else role.name
        masks[key] = ((1 << bits) - 1) << shift
    if desc.is_gray:
        flags = DDPF_LUMINANCE
    elif desc.channel_order == (Channel.A,):
        flags = DDPF_ALPHA
    else:
        flags = DDPF_RGB | (DDPF_ALPHAPIXELS if desc.has_alpha else 0)
    return flags, desc.stride_bits, masks["R"], masks["G"], masks["B"], masks["A"]


def _mask_table() -> Dict[Tuple[int, int, int, int, int], PixelFormat]:
    table = {}
    for fmt in registered_formats():
        desc = format_descriptor(fmt)
        if desc.is_compressed or desc.is_float:
            continue
        _, bit_count, r, g, b, a = pixel_format_masks(fmt)
        table[(bit_count, r, g, b, a)] = fmt
    return table


_MASK_FORMATS = _mask_table()


class DDSCodec(ImageCodec):
    """Read and write DDS textures with full mip chains."""

    name = "dds"
    extensions = (".dds",)
    max_levels = 255

    def read_header(self, image) -> Status:
        stream = image.stream
        try:
            raw = stream.read(4 + HEADER_SIZE)
        except OSError as exc:
            return self._stream_fault(image, exc, "read header of")
        if len(raw) < 4 + HEADER_SIZE:
            return self._stream_fault(
                image, EOFError(f"DDS header truncated ({len(raw)} bytes)"), "read header of"
            )
        if raw[:4] != DDS_MAGIC:
            logger.error("DDS has invalid magic bytes: %s", image.file_name)
            return Status.FORMAT_ERROR

        header = raw[4:]
        flags, height, width = struct.unpack_from("<III", header, 4)
        mip_count = struct.unpack_from("<I", header, 24)[0]
        pf_flags = struct.unpack_from("<I", header, 76)[0]
        fourcc = bytes(header[80:84])
        bit_count, r_mask, g_mask, b_mask, a_mask = struct.unpack_from("<IIIII", header, 84)
        caps2 = struct.unpack_from("<I", header, 108)[0]

        if width == 0 or height == 0:
            logger.error("DDS has zero size %dx%d: %s", width, height, image.file_name)
            return Status.FORMAT_ERROR

        if caps2 & (DDSCAPS2_CUBEMAP | DDSCAPS2_VOLUME):
            logger.error("Cube and volume DDS textures are not supported: %s", image.file_name)
            return Status.FORMAT_ERROR

        fmt: Optional[PixelFormat]
        if pf_flags & DDPF_FOURCC and fourcc == b"DX10":
            try:
                dx10 = stream.read(DX10_HEADER_SIZE)
            except OSError as exc:
                return self._stream_fault(image, exc, "read DX10 header of")
            if len(dx10) < DX10_HEADER_SIZE:
                return self._stream_fault(
                    image, EOFError("DDS DX10 header missing/truncated"), "read header of"
                )
            dxgi, dimension, misc, array_size = struct.unpack_from("<IIII", dx10, 0)
            if dimension == DDS_DIMENSION_TEXTURE3D or misc & DDS_RESOURCE_MISC_TEXTURECUBE:
                logger.error("Cube and volume DDS textures are not supported: %s", image.file_name)
                return Status.FORMAT_ERROR
            if array_size > 1:
                logger.error("DDS texture arrays are not supported: %s", image.file_name)
                return Status.FORMAT_ERROR
            fmt = _DXGI_FORMATS.get(dxgi)
            if fmt is None:
                logger.error("Unsupported DXGI format %d in %s", dxgi, image.file_name)
                return Status.FORMAT_ERROR
        elif pf_flags & DDPF_FOURCC:
            fmt = _FOURCC_FORMATS.get(fourcc)
            if fmt is None:
                logger.error("Unsupported DDS FourCC %r in %s", fourcc, image.file_name)
                return Status.FORMAT_ERROR
        else:
            if not pf_flags & (DDPF_ALPHAPIXELS | DDPF_ALPHA):
                a_mask = 0
            fmt = _MASK_FORMATS.get((bit_count, r_mask, g_mask, b_mask, a_mask))
            if fmt is None:
                logger.error(
                    "Unsupported DDS pixel masks in %s: %d bits r=%08X g=%08X b=%08X a=%08X",
                    image.file_name, bit_count, r_mask, g_mask, b_mask, a_mask,
                )
                return Status.FORMAT_ERROR

        levels = mip_count if flags & DDSD_MIPMAPCOUNT and mip_count > 0 else 1
        max_levels = min(MAX_LEVELS, level_count(width, height))
        if levels > max_levels:
            logger.error(
                "DDS declares %d mip levels, at most %d fit %dx%d: %s",
                levels, max_levels, width, height, image.file_name,
            )
            return Status.FORMAT_ERROR
        logger.debug(
            "DDS header %s: %dx%d %s, %d level(s)",
            image.file_name, width, height, fmt.name, levels,
        )
        return self._bind(fmt, width, height, levels)

    def write_header(self, image, fmt, width: int, height: int, num_levels: int) -> Status:
        limit = check_level_limit(self, num_levels)
        if limit is not None:
            return limit
        status = self._bind(fmt, width, height, num_levels)
        if not status.ok:
            return status

        desc = format_descriptor(fmt)
        header = bytearray(HEADER_SIZE)
        flags = DDSD_CAPS | DDSD_HEIGHT | DDSD_WIDTH | DDSD_PIXELFORMAT
        caps = DDSCAPS_TEXTURE
        if self.num_levels > 1:
            flags |= DDSD_MIPMAPCOUNT
            caps |= DDSCAPS_COMPLEX | DDSCAPS_MIPMAP

        if desc.is_compressed:
            flags |= DDSD_LINEARSIZE
            pitch = self._chain[0].size
        else:
            flags |= DDSD_PITCH
            pitch = row_bytes(storage_size(width, height, fmt)[0], fmt)

        struct.pack_into("<IIIIIII", header, 0,
                         HEADER_SIZE, flags, height, width, pitch, 0, self.num_levels)
        struct.pack_into("<I", header, 72, 32)
        fourcc = _FORMAT_FOURCC.get(desc.tag)
        if fourcc is not None:
            struct.pack_into("<I", header, 76, DDPF_FOURCC)
            header[80:84] = fourcc
        else:
            pf_flags, bit_count, r, g, b, a = pixel_format_masks(fmt)
            struct.pack_into("<IIIIIII", header, 76, pf_flags, 0, bit_count, r, g, b, a)
        struct.pack_into("<I", header, 104, caps)

        try:
            image.stream.write(DDS_MAGIC)
            image.stream.write(bytes(header))
        except OSError as exc:
            return self._stream_fault(image, exc, "write header of")
        logger.debug(
            "Wrote DDS header for %s: %dx%d %s, %d level(s)",
            image.file_name, width, height, desc.tag.name, self.num_levels,
        )
        return Status.OK

    def read_level(self, image, geo: LevelGeometry) -> bytes:
        return image.stream.read(geo.size)

    def write_level(self, image, geo: LevelGeometry, data: bytes) -> None:
        image.stream.write(data)
