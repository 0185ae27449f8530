"""Tests for the DDS codec."""

import io
import struct
import unittest

from TexelBrew.codecs import OpenMode, create
from TexelBrew.codecs.dds import (
    DDPF_FOURCC,
    DDSD_MIPMAPCOUNT,
    pixel_format_masks,
)
from TexelBrew.core import PixelFormat, Status


def _write(image, fmt=None, levels=None):
    stream = io.BytesIO()
    image.attach_stream(stream)
    status = image.write_all(fmt, levels)
    return status, stream.getvalue()


def _read(data, name="in.dds"):
    image = create(name, OpenMode.READ)
    image.attach_stream(io.BytesIO(data))
    return image, image.read_all()


def _legacy_header(width, height, pf_flags, fourcc=b"\0\0\0\0", bits=0, masks=(0, 0, 0, 0),
                   mips=0, caps2=0):
    header = bytearray(124)
    flags = 0x1007 | (DDSD_MIPMAPCOUNT if mips else 0)
    struct.pack_into("<IIIIIII", header, 0, 124, flags, height, width, 0, 0, mips)
    struct.pack_into("<II", header, 72, 32, pf_flags)
    header[80:84] = fourcc
    struct.pack_into("<IIIII", header, 84, bits, *masks)
    struct.pack_into("<II", header, 104, 0x1000, caps2)
    return b"DDS " + bytes(header)


class TestDDSRoundTrip(unittest.TestCase):
    def _make(self, fmt, width, height, levels=1):
        image = create("out.dds", OpenMode.WRITE)
        self.assertEqual(image.reset(width, height, fmt, levels, allocate=True), Status.OK)
        image.buffer[:] = bytes(i % 253 for i in range(image.data_size))
        return image

    def test_argb_with_mips(self):
        image = self._make(PixelFormat.A8R8G8B8, 8, 8, levels=4)
        status, data = _write(image)
        self.assertEqual(status, Status.OK)
        self.assertEqual(data[:4], b"DDS ")
        self.assertEqual(len(data), 4 + 124 + 256 + 64 + 16 + 4)
        flags, = struct.unpack_from("<I", data, 8)
        mip_count, = struct.unpack_from("<I", data, 4 + 24)
        self.assertTrue(flags & DDSD_MIPMAPCOUNT)
        self.assertEqual(mip_count, 4)

        back, status = _read(data)
        self.assertEqual(status, Status.OK)
        self.assertEqual(back.format, PixelFormat.A8R8G8B8)
        self.assertEqual(back.num_levels, 4)
        for geo in image.levels:
            view, back_view = image.level_view(geo.level), back.level_view(geo.level)
            for row in range(geo.line_count):
                start = row * geo.line_stride
                self.assertEqual(
                    bytes(back_view[start:start + geo.row_bytes]),
                    bytes(view[start:start + geo.row_bytes]),
                )

    def test_every_mask_format_round_trips(self):
        for fmt in (PixelFormat.A8, PixelFormat.GRAY8, PixelFormat.GRAYU16,
                    PixelFormat.R5G6B5, PixelFormat.R8G8B8, PixelFormat.R8G8B8A8,
                    PixelFormat.B8G8R8, PixelFormat.B8G8R8A8, PixelFormat.A8B8G8R8):
            with self.subTest(fmt=fmt.name):
                image = self._make(fmt, 4, 2)
                status, data = _write(image)
                self.assertEqual(status, Status.OK)
                back, status = _read(data)
                self.assertEqual(status, Status.OK)
                self.assertEqual(back.format, fmt)
                self.assertEqual(bytes(back.buffer), bytes(image.buffer))

    def test_float_gray_uses_fourcc(self):
        image = self._make(PixelFormat.GRAYF32, 2, 2)
        status, data = _write(image)
        self.assertEqual(status, Status.OK)
        pf_flags, = struct.unpack_from("<I", data, 4 + 76)
        self.assertTrue(pf_flags & DDPF_FOURCC)
        back, status = _read(data)
        self.assertEqual(back.format, PixelFormat.GRAYF32)
        self.assertEqual(bytes(back.buffer), bytes(image.buffer))

    def test_block_compressed_passthrough(self):
        image = self._make(PixelFormat.DXT1, 8, 8)
        status, data = _write(image)
        self.assertEqual(status, Status.OK)
        self.assertEqual(data[4 + 80:4 + 84], b"DXT1")
        linear_size, = struct.unpack_from("<I", data, 4 + 16)
        self.assertEqual(linear_size, 32)
        self.assertEqual(len(data), 4 + 124 + 32)
        back, status = _read(data)
        self.assertEqual(status, Status.OK)
        self.assertEqual(back.format, PixelFormat.DXT1)
        self.assertEqual(bytes(back.buffer), bytes(image.buffer))

    def test_converts_on_write(self):
        image = create("out.dds", OpenMode.WRITE)
        image.reset(1, 1, PixelFormat.A8R8G8B8, allocate=True)
        image.buffer[:] = bytes([30, 20, 10, 255])
        status, data = _write(image, PixelFormat.B8G8R8)
        self.assertEqual(status, Status.OK)
        back, status = _read(data)
        self.assertEqual(back.format, PixelFormat.B8G8R8)
        self.assertEqual(list(back.buffer), [10, 20, 30])

    def test_block_target_from_plain_buffer_is_rejected(self):
        image = self._make(PixelFormat.A8R8G8B8, 4, 4)
        status, _ = _write(image, PixelFormat.DXT5)
        self.assertEqual(status, Status.UNSUPPORTED_CONVERSION)


class TestDDSHeaders(unittest.TestCase):
    def test_bad_magic(self):
        _, status = _read(b"XXXX" + bytes(124))
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_truncated_header(self):
        image, status = _read(b"DDS " + bytes(10))
        self.assertEqual(status, Status.STREAM_FAULT)
        self.assertIsInstance(image.last_error, EOFError)

    def test_truncated_level_data(self):
        image = create("out.dds", OpenMode.WRITE)
        image.reset(4, 4, PixelFormat.GRAY8, allocate=True)
        _, data = _write(image)
        _, status = _read(data[:-3])
        self.assertEqual(status, Status.STREAM_FAULT)

    def test_unknown_fourcc(self):
        _, status = _read(_legacy_header(4, 4, DDPF_FOURCC, fourcc=b"BC7X"))
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_unknown_masks(self):
        _, status = _read(_legacy_header(4, 4, 0x40, bits=32, masks=(1, 2, 4, 0)))
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_cubemap_rejected(self):
        _, status = _read(_legacy_header(4, 4, DDPF_FOURCC, fourcc=b"DXT1", caps2=0x200))
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_ati2_alias(self):
        data = _legacy_header(4, 4, DDPF_FOURCC, fourcc=b"BC5U") + bytes(16)
        image, status = _read(data)
        self.assertEqual(status, Status.OK)
        self.assertEqual(image.format, PixelFormat.ATI2)

    def test_dx10_header(self):
        dx10 = struct.pack("<IIIII", 28, 3, 0, 1, 0)
        data = _legacy_header(2, 1, DDPF_FOURCC, fourcc=b"DX10") + dx10 + bytes([1, 2, 3, 4, 5, 6, 7, 8])
        image, status = _read(data)
        self.assertEqual(status, Status.OK)
        self.assertEqual(image.format, PixelFormat.A8B8G8R8)
        self.assertEqual(list(image.buffer), [1, 2, 3, 4, 5, 6, 7, 8])

    def test_dx10_array_rejected(self):
        dx10 = struct.pack("<IIIII", 28, 3, 0, 6, 0)
        _, status = _read(_legacy_header(2, 1, DDPF_FOURCC, fourcc=b"DX10") + dx10)
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_dx10_cubemap_rejected(self):
        dx10 = struct.pack("<IIIII", 71, 3, 0x4, 1, 0)
        _, status = _read(_legacy_header(4, 4, DDPF_FOURCC, fourcc=b"DX10") + dx10)
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_dx10_volume_rejected(self):
        dx10 = struct.pack("<IIIII", 71, 4, 0, 1, 0)
        _, status = _read(_legacy_header(4, 4, DDPF_FOURCC, fourcc=b"DX10") + dx10)
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_zero_size_rejected(self):
        _, status = _read(_legacy_header(0, 4, DDPF_FOURCC, fourcc=b"DXT1"))
        self.assertEqual(status, Status.FORMAT_ERROR)

    def test_oversized_mip_count_rejected(self):
        for mips in (4, 3_000_000, 0xFFFFFFFF):
            with self.subTest(mips=mips):
                data = _legacy_header(4, 4, DDPF_FOURCC, fourcc=b"DXT1", mips=mips)
                image = create("in.dds", OpenMode.READ)
                image.attach_stream(io.BytesIO(data))
                self.assertEqual(image.read_header(), Status.FORMAT_ERROR)
                self.assertEqual(image.codec.num_levels, 0)

    def test_full_mip_count_accepted(self):
        data = _legacy_header(4, 4, DDPF_FOURCC, fourcc=b"DXT1", mips=3)
        image = create("in.dds", OpenMode.READ)
        image.attach_stream(io.BytesIO(data))
        self.assertEqual(image.read_header(), Status.OK)
        self.assertEqual(image.num_levels, 3)

    def test_codec_refuses_too_many_levels(self):
        codec = create("in.dds").codec
        self.assertEqual(codec._bind(PixelFormat.DXT1, 4, 4, 256), Status.INVALID_GEOMETRY)

    def test_header_only_read_does_not_allocate(self):
        data = _legacy_header(8, 4, DDPF_FOURCC, fourcc=b"DXT5", mips=3)
        image = create("in.dds", OpenMode.READ)
        image.attach_stream(io.BytesIO(data))
        self.assertEqual(image.read_header(), Status.OK)
        self.assertIsNone(image.buffer)
        self.assertEqual((image.width, image.height, image.num_levels), (8, 4, 3))


class TestDDSDataCalls(unittest.TestCase):
    def test_level_by_level_read(self):
        image = create("out.dds", OpenMode.WRITE)
        image.reset(4, 4, PixelFormat.GRAY8, levels=3, allocate=True)
        image.buffer[:] = bytes(range(image.data_size))
        _, data = _write(image)

        reader = create("in.dds", OpenMode.READ)
        reader.attach_stream(io.BytesIO(data))
        self.assertEqual(reader.read_header(), Status.OK)
        sizes = [reader.data_sizes(level) for level in range(3)]
        self.assertEqual(sizes, [(16, 4, 4), (8, 2, 2), (4, 1, 1)])

        out = bytearray(4 * 4 * 4)
        self.assertEqual(reader.read_data(out, PixelFormat.A8R8G8B8, 4, 16), Status.OK)
        self.assertEqual(list(out[:4]), [0, 0, 0, 255])
        self.assertEqual(reader.codec.level, 1)
        for _ in range(2):
            self.assertEqual(reader.read_data(out, PixelFormat.GRAY8, 1, 4), Status.OK)
        self.assertEqual(reader.current_level, 2)
        self.assertEqual(reader.read_data(out, PixelFormat.GRAY8, 1, 4), Status.INVALID_GEOMETRY)

    def test_pixel_stride_must_match_format(self):
        image = create("out.dds", OpenMode.WRITE)
        image.reset(2, 2, PixelFormat.GRAY8, allocate=True)
        image.attach_stream(io.BytesIO())
        self.assertEqual(image.write_header(PixelFormat.GRAY8, 2, 2, 1), Status.OK)
        self.assertEqual(
            image.write_data(image.buffer, PixelFormat.GRAY8, 2, 2), Status.INVALID_GEOMETRY
        )

    def test_header_must_match_buffered_image(self):
        image = create("out.dds", OpenMode.WRITE)
        image.reset(2, 2, PixelFormat.GRAY8, allocate=True)
        image.attach_stream(io.BytesIO())
        self.assertEqual(image.write_header(PixelFormat.GRAY8, 4, 4, 1), Status.INVALID_GEOMETRY)

    def test_no_stream(self):
        image = create("out.dds", OpenMode.WRITE)
        self.assertEqual(image.write_header(PixelFormat.GRAY8, 2, 2, 1), Status.STREAM_FAULT)

    def test_stream_errors_become_stream_fault(self):
        class Broken(io.BytesIO):
            def write(self, data):
                raise OSError("disk full")

        image = create("out.dds", OpenMode.WRITE)
        image.reset(2, 2, PixelFormat.GRAY8, allocate=True)
        image.attach_stream(Broken())
        self.assertEqual(image.write_all(), Status.STREAM_FAULT)
        self.assertIsInstance(image.last_error, OSError)


class TestMasks(unittest.TestCase):
    def test_argb_masks(self):
        flags, bits, r, g, b, a = pixel_format_masks(PixelFormat.A8R8G8B8)
        self.assertEqual(bits, 32)
        self.assertEqual((r, g, b, a), (0xFF0000, 0xFF00, 0xFF, 0xFF000000))
        self.assertTrue(flags & 0x1)

    def test_565_masks(self):
        _, bits, r, g, b, a = pixel_format_masks(PixelFormat.R5G6B5)
        self.assertEqual((bits, r, g, b, a), (16, 0xF800, 0x07E0, 0x001F, 0))

    def test_luminance(self):
        flags, bits, r, _, _, _ = pixel_format_masks(PixelFormat.GRAYU16)
        self.assertEqual((flags, bits, r), (0x20000, 16, 0xFFFF))
