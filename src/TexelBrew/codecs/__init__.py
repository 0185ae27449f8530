"""Container codecs and the factory that binds them to image descriptors."""

import logging
import os
from typing import Dict, List, Optional, Type

from ..core.image import DEFAULT_MAX_PIXELS, ImageDescriptor
from .base import ImageCodec, OpenMode
from .dds import DDSCodec
from .raster import RasterCodec

logger = logging.getLogger("texel_io.codecs")

_CODECS: Dict[str, Type[ImageCodec]] = {}


def register_codec(cls: Type[ImageCodec]) -> Type[ImageCodec]:
    """Register ``cls`` for each of its extensions (later registrations win)."""
    for ext in cls.extensions:
        _CODECS[ext.lower()] = cls
    return cls


def supported_extensions() -> List[str]:
    return sorted(_CODECS)


def codec_for(name: str) -> Optional[Type[ImageCodec]]:
    """Return the codec class handling ``name`` by extension, or None."""
    ext = os.path.splitext(name)[1].lower()
    return _CODECS.get(ext)


def create(name: str, mode: OpenMode = OpenMode.READ, config=None) -> Optional[ImageDescriptor]:
    """Create an image descriptor bound to the codec for ``name``.

    Args:
        name: File name; only its extension selects the codec.
        mode: Whether the descriptor will read or write.
        config: Optional ``ImageIOConfig`` supplying row alignment, pixel
            limits and export options.

    Returns:
        A descriptor with no stream attached, or None for an unknown extension.

    """
    cls = codec_for(name)
    if cls is None:
        logger.error("No codec registered for %s", name)
        return None
    geometry = getattr(config, "geometry", None)
    descriptor = ImageDescriptor(
        codec=cls(mode, config),
        file_name=name,
        row_alignment=getattr(geometry, "row_alignment", 1),
        max_pixels=getattr(geometry, "max_image_pixels", DEFAULT_MAX_PIXELS),
    )
    logger.debug("Created %s %s codec for %s", mode.value, cls.name, name)
    return descriptor


register_codec(DDSCodec)
register_codec(RasterCodec)

__all__ = [
    "ImageCodec", "OpenMode", "DDSCodec", "RasterCodec",
    "register_codec", "supported_extensions", "codec_for", "create",
]
