"""Provide package metadata for `TexelBrew`."""

import logging as _logging

__version__ = "0.3.0"
_logger = _logging.getLogger("texel_io")

__all__ = ["__version__"]
