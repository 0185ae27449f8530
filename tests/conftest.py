"""Shared test fixtures."""

import shutil
import tempfile

import pytest

from TexelBrew.config import ImageIOConfig
from TexelBrew.core import ImageDescriptor, PixelFormat


@pytest.fixture
def tmp_dir():
    d = tempfile.mkdtemp()
    yield d
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def default_config():
    return ImageIOConfig()


@pytest.fixture
def rgba_image():
    """8x8 A8R8G8B8 descriptor with a full mip chain and a byte ramp."""
    image = ImageDescriptor(file_name="ramp.dds")
    image.reset(8, 8, PixelFormat.A8R8G8B8, levels=4, allocate=True)
    image.buffer[:] = bytes(i % 251 for i in range(image.data_size))
    yield image
    image.close()

