"""Tests for CLI argument handling."""

import io
import os
import shutil
import tempfile
import unittest
from unittest import mock

import numpy as np
from PIL import Image

from TexelBrew import cli
from TexelBrew.codecs import OpenMode, create
from TexelBrew.core import PixelFormat, Status


def save_test_png(path, width=16, height=16, channels=3, seed=0):
    """Write a random 8-bit PNG and return its pixels."""
    rng = np.random.default_rng(seed)
    arr = rng.integers(0, 256, size=(height, width, channels), dtype=np.uint8)
    Image.fromarray(arr).save(path)
    return arr


def _run(*argv):
    with mock.patch("TexelBrew.cli.setup_logging"):
        cli.main(list(argv))


def _read(path):
    image = create(path, OpenMode.READ)
    with open(path, "rb") as f:
        image.attach_stream(f)
        status = image.read_all()
    return image, status


class TestCLI(unittest.TestCase):
    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_list_formats(self):
        with mock.patch("sys.stdout", new_callable=io.StringIO) as out:
            _run("--list-formats")
        text = out.getvalue()
        self.assertIn("A8R8G8B8", text)
        self.assertIn("DXT5", text)
        self.assertNotIn("UNKNOWN", text)

    def test_generate_config(self):
        dest = os.path.join(self.tmpdir, "cfg.yaml")
        with mock.patch("sys.stdout", new_callable=io.StringIO):
            _run("--generate-config", "--config", dest)
        self.assertTrue(os.path.exists(dest))

    def test_png_to_dds(self):
        src = os.path.join(self.tmpdir, "albedo.png")
        dst = os.path.join(self.tmpdir, "albedo.dds")
        arr = save_test_png(src, 8, 4)
        _run("-i", src, "-o", dst)
        image, status = _read(dst)
        self.assertEqual(status, Status.OK)
        self.assertEqual(image.format, PixelFormat.B8G8R8)
        self.assertEqual(bytes(image.buffer), arr.tobytes())

    def test_format_override(self):
        src = os.path.join(self.tmpdir, "albedo.png")
        dst = os.path.join(self.tmpdir, "albedo.dds")
        save_test_png(src, 4, 4)
        _run("-i", src, "-o", dst, "-f", "a8r8g8b8")
        image, status = _read(dst)
        self.assertEqual(image.format, PixelFormat.A8R8G8B8)

    def test_dds_back_to_png(self):
        src = os.path.join(self.tmpdir, "albedo.png")
        mid = os.path.join(self.tmpdir, "albedo.dds")
        dst = os.path.join(self.tmpdir, "albedo_out.png")
        arr = save_test_png(src, 4, 4, channels=4)
        _run("-i", src, "-o", mid, "-f", "A8R8G8B8")
        _run("-i", mid, "-o", dst)
        with Image.open(dst) as img:
            self.assertEqual(img.mode, "RGBA")
            np.testing.assert_array_equal(np.asarray(img), arr)

    def test_directory_batch(self):
        in_dir = os.path.join(self.tmpdir, "in")
        out_dir = os.path.join(self.tmpdir, "out")
        os.makedirs(os.path.join(in_dir, "sub"))
        save_test_png(os.path.join(in_dir, "a.png"), 4, 4)
        save_test_png(os.path.join(in_dir, "sub", "b.png"), 4, 4)
        with open(os.path.join(in_dir, "notes.txt"), "w", encoding="utf-8") as f:
            f.write("skip me")
        _run("-i", in_dir, "-o", out_dir)
        self.assertTrue(os.path.exists(os.path.join(out_dir, "a.dds")))
        self.assertTrue(os.path.exists(os.path.join(out_dir, "sub", "b.dds")))

    def test_info(self):
        src = os.path.join(self.tmpdir, "a.png")
        save_test_png(src, 8, 2)
        with mock.patch("sys.stdout", new_callable=io.StringIO) as out:
            _run("-i", src, "--info")
        self.assertIn("8x2 B8G8R8", out.getvalue())

    def test_range(self):
        src = os.path.join(self.tmpdir, "h.png")
        Image.fromarray(np.arange(100, dtype=np.uint16).reshape(10, 10)).save(src)
        with mock.patch("sys.stdout", new_callable=io.StringIO) as out:
            _run("-i", src, "--range")
        self.assertIn("[10, 89]", out.getvalue())

    def test_range_rejects_color(self):
        src = os.path.join(self.tmpdir, "a.png")
        save_test_png(src, 2, 2)
        with self.assertRaises(SystemExit) as ctx:
            _run("-i", src, "--range")
        self.assertEqual(ctx.exception.code, 1)

    def test_dump_requires_enable_flag(self):
        src = os.path.join(self.tmpdir, "a.png")
        save_test_png(src, 2, 2)
        with self.assertRaises(SystemExit) as ctx:
            _run("-i", src, "--dump")
        self.assertEqual(ctx.exception.code, 1)

    def test_dump_writes_raw_file(self):
        src = os.path.join(self.tmpdir, "a.png")
        arr = save_test_png(src, 2, 2)
        dump_dir = os.path.join(self.tmpdir, "dumps")
        cfg = os.path.join(self.tmpdir, "cfg.yaml")
        with open(cfg, "w", encoding="utf-8") as f:
            f.write(f"debug:\n  enable_dump: true\n  dump_dir: '{dump_dir}'\n")
        _run("-i", src, "--dump", "-c", cfg)
        with open(os.path.join(dump_dir, "a_2x2_B8G8R8.raw"), "rb") as f:
            self.assertEqual(f.read(), arr.tobytes())

    def test_missing_input(self):
        with self.assertRaises(SystemExit) as ctx:
            _run("-i", os.path.join(self.tmpdir, "nope.png"), "-o", "x.dds")
        self.assertEqual(ctx.exception.code, 1)

    def test_unknown_format_name(self):
        src = os.path.join(self.tmpdir, "a.png")
        save_test_png(src, 2, 2)
        with mock.patch("sys.stdout", new_callable=io.StringIO):
            with self.assertRaises(SystemExit) as ctx:
                _run("-i", src, "-o", os.path.join(self.tmpdir, "a.dds"), "-f", "BC7")
        self.assertEqual(ctx.exception.code, 1)

    def test_failed_conversion_leaves_no_output(self):
        src = os.path.join(self.tmpdir, "a.png")
        dst = os.path.join(self.tmpdir, "a.dds")
        save_test_png(src, 4, 4)
        with self.assertRaises(SystemExit):
            _run("-i", src, "-o", dst, "-f", "DXT1")
        self.assertFalse(os.path.exists(dst))

    def test_missing_config_file(self):
        with mock.patch("sys.stdout", new_callable=io.StringIO):
            with self.assertRaises(SystemExit) as ctx:
                _run("-c", os.path.join(self.tmpdir, "missing.yaml"), "-i", self.tmpdir)
        self.assertEqual(ctx.exception.code, 1)


class TestConvertFile(unittest.TestCase):
    def test_unknown_output_extension(self):
        self.assertEqual(
            cli.convert_file("a.png", "a.xyz", cli.ImageIOConfig()), Status.FORMAT_ERROR
        )
