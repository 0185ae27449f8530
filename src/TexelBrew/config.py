"""Define typed configuration models for TexelBrew tools.

Use `ImageIOConfig` to load, validate, and persist runtime settings.
"""

import dataclasses
import logging
import os
import threading
from dataclasses import dataclass, field

import yaml

from .core.formats import UnknownFormatError, parse_format
from .core.image import DEFAULT_MAX_PIXELS

logger = logging.getLogger("texel_io.config")


@dataclass
class GeometryConfig:
    """Buffer layout and memory limits for decoded images."""

    row_alignment: int = 1
    max_image_pixels: int = DEFAULT_MAX_PIXELS  # 0 disables the limit


@dataclass
class ExportConfig:
    """Settings applied when writing converted images."""

    output_extension: str = ".dds"
    target_format: str = ""  # empty keeps the source format
    compress_high_precision: bool = True


@dataclass
class DebugConfig:
    """Raw buffer dumps for inspecting decoded pixels."""

    enable_dump: bool = False
    dump_dir: str = "./dumps"


_SUPPORTED_CONFIG_VERSION = 1


@dataclass
class ImageIOConfig:
    """Top-level configuration."""

    config_version: int = 1
    log_level: str = "INFO"
    log_file: str = ""

    geometry: GeometryConfig = field(default_factory=GeometryConfig)
    export: ExportConfig = field(default_factory=ExportConfig)
    debug: DebugConfig = field(default_factory=DebugConfig)

    @classmethod
    def from_yaml(cls, path: str) -> "ImageIOConfig":
        """Load configuration from YAML or return defaults."""
        if not os.path.exists(path):
            logger.info("Config file '%s' not found. Using defaults.", path)
            config = cls()
            config.validate()
            return config
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ValueError(
                f"Failed to parse YAML config '{path}': {exc}"
            ) from exc
        if not isinstance(data, dict):
            raise ValueError(
                f"Config file '{path}' must contain a YAML mapping, "
                f"got {type(data).__name__}"
            )
        yaml_version = data.get("config_version", 1)
        if isinstance(yaml_version, int) and yaml_version > _SUPPORTED_CONFIG_VERSION:
            logger.warning(
                "Config file '%s' has config_version=%d, but this build only "
                "supports up to version %d. Some settings may be ignored.",
                path, yaml_version, _SUPPORTED_CONFIG_VERSION,
            )
        config = cls()
        _merge_dict_to_dataclass(config, data)
        try:
            config.validate()
        except ValueError as exc:
            raise ValueError(f"{path}: {exc}") from exc
        return config

    def to_yaml(self, path: str):
        """Write configuration to a YAML file."""
        data = dataclasses.asdict(self)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        ext = os.path.splitext(path)[1]
        tmp_path = f"{path}.tmp.{os.getpid()}.{threading.get_ident()}{ext}"
        try:
            with open(tmp_path, "w", encoding="utf-8") as f:
                yaml.dump(data, f, default_flow_style=False, sort_keys=False)
            os.replace(tmp_path, path)
        finally:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)

    def validate(self):
        """Validate configuration values. Raises ValueError on invalid config."""
        errors = []

        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.log_level.upper() not in valid_log_levels:
            errors.append(
                f"log_level must be one of {sorted(valid_log_levels)}, "
                f"got '{self.log_level}'"
            )

        alignment = self.geometry.row_alignment
        if alignment < 1 or alignment & (alignment - 1):
            errors.append(
                f"geometry.row_alignment must be a power of two >= 1, got {alignment}"
            )
        if self.geometry.max_image_pixels < 0:
            errors.append("geometry.max_image_pixels must be >= 0 (0 = unlimited)")

        ext = self.export.output_extension
        if not ext.startswith(".") or len(ext) < 2:
            errors.append(
                f"export.output_extension must look like '.dds', got '{ext}'"
            )
        if self.export.target_format:
            try:
                parse_format(self.export.target_format)
            except UnknownFormatError as exc:
                errors.append(f"export.target_format: {exc}")

        if self.debug.enable_dump and not self.debug.dump_dir:
            errors.append("debug.dump_dir must be set when debug.enable_dump is true")

        if errors:
            raise ValueError(
                "Configuration validation failed:\n" +
                "\n".join(f"  - {e}" for e in errors)
            )


def _merge_dict_to_dataclass(obj, data: dict, _path: str = ""):
    for key, value in data.items():
        full_key = f"{_path}{key}"
        if not hasattr(obj, key):
            logger.warning("Unknown config key ignored: '%s'", full_key)
            continue
        field_val = getattr(obj, key)
        if dataclasses.is_dataclass(field_val) and isinstance(value, dict):
            _merge_dict_to_dataclass(field_val, value, f"{full_key}.")
            continue
        if value is None and field_val is not None:
            logger.warning(
                "Config key '%s' is null but field default is %s. Using default value.",
                full_key, type(field_val).__name__,
            )
            continue
        expected_type = type(field_val)
        if (not isinstance(value, expected_type)
                and not (expected_type is float and isinstance(value, int))
                and not (expected_type is int
                         and isinstance(value, float)
                         and value == int(value))):
            logger.warning(
                "Config type mismatch for '%s': expected %s, got %s (%r). "
                "Using default value.",
                full_key, expected_type.__name__, type(value).__name__, value,
            )
            continue
        # Promote exact-integer floats to int (e.g. YAML 4.0 -> 4)
        if expected_type is int and isinstance(value, float):
            value = int(value)
        setattr(obj, key, value)
