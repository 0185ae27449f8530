"""Command-line interface for TexelBrew."""

import argparse
import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

from .codecs import OpenMode, create, supported_extensions
from .config import ImageIOConfig
from .core import (
    PixelFormat,
    Status,
    UnknownFormatError,
    compress_dynamic_range,
    find_min_max_percentile,
    format_descriptor,
    parse_format,
    registered_formats,
    setup_logging,
)

logger = logging.getLogger("texel_io")

_SAMPLE_DTYPES = {
    PixelFormat.GRAY8: "u1",
    PixelFormat.GRAYU16: "<u2",
    PixelFormat.GRAYF32: "<f4",
}


def _read_image(path: str, config: ImageIOConfig):
    """Read ``path`` completely; returns ``(descriptor, status)``."""
    image = create(path, OpenMode.READ, config)
    if image is None:
        return None, Status.FORMAT_ERROR
    try:
        with open(path, "rb") as f:
            image.attach_stream(f)
            status = image.read_all()
            image.stream = None
    except OSError as exc:
        logger.error("Cannot open %s: %s", path, exc)
        image.last_error = exc
        status = Status.STREAM_FAULT
    if not status.ok:
        image.close()
    return image, status


def convert_file(src: str, dst: str, config: ImageIOConfig,
                 fmt: Optional[PixelFormat] = None) -> Status:
    """Convert one image file into another container and/or pixel format."""
    writer = create(dst, OpenMode.WRITE, config)
    if writer is None:
        return Status.FORMAT_ERROR
    reader, status = _read_image(src, config)
    if not status.ok:
        return status

    target = reader.format if fmt is None else fmt
    levels = min(len(reader.levels), writer.codec.max_levels)
    reader.transfer_to(writer)

    os.makedirs(os.path.dirname(dst) or ".", exist_ok=True)
    with writer:
        try:
            with open(dst, "wb") as f:
                writer.attach_stream(f)
                status = writer.write_all(target, levels)
        except OSError as exc:
            logger.error("Cannot write %s: %s", dst, exc)
            status = Status.STREAM_FAULT
    if not status.ok:
        if os.path.exists(dst):
            logger.debug("Removing partial output %s", dst)
            os.remove(dst)
        return status
    logger.info("Converted %s -> %s (%s)", src, dst, PixelFormat(target).name)
    return status


def _collect_inputs(path: str) -> List[str]:
    if not os.path.isdir(path):
        return [path]
    exts = set(supported_extensions())
    found = []
    for root, _dirs, files in os.walk(path):
        for name in sorted(files):
            if os.path.splitext(name)[1].lower() in exts:
                found.append(os.path.join(root, name))
    return sorted(found)


def _output_path(src: str, input_root: str, output: str, extension: str) -> str:
    if os.path.isdir(input_root):
        rel = os.path.relpath(src, input_root)
        return os.path.join(output, os.path.splitext(rel)[0] + extension)
    if os.path.isdir(output) or output.endswith(os.sep):
        stem = os.path.splitext(os.path.basename(src))[0]
        return os.path.join(output, stem + extension)
    return output


def _print_formats():
    print(f"{'format':<12} {'bits':>5} {'alpha':>6} {'block':>6}")
    for fmt in registered_formats():
        desc = format_descriptor(fmt)
        print(f"{fmt.name:<12} {desc.stride_bits:>5} "
              f"{'yes' if desc.has_alpha else 'no':>6} "
              f"{desc.block_edge if desc.is_compressed else '-':>6}")


def _print_info(path: str, config: ImageIOConfig) -> Status:
    image = create(path, OpenMode.READ, config)
    if image is None:
        return Status.FORMAT_ERROR
    try:
        f = open(path, "rb")
    except OSError as exc:
        logger.error("Cannot open %s: %s", path, exc)
        return Status.STREAM_FAULT
    with image, f:
        image.attach_stream(f)
        status = image.read_header()
        if not status.ok:
            return status
        print(f"{path}: {image.width}x{image.height} {image.format.name}, "
              f"{image.num_levels} level(s), stride {image.line_stride}, "
              f"{image.data_size} bytes")
        for geo in image.levels:
            print(f"  level {geo.level}: {geo.width}x{geo.height} "
                  f"({geo.size} bytes at +{geo.offset})")
    return Status.OK


def _print_range(path: str, config: ImageIOConfig) -> Status:
    image, status = _read_image(path, config)
    if not status.ok:
        return status
    with image:
        dtype = _SAMPLE_DTYPES.get(image.format)
        if dtype is None:
            logger.error("%s is %s; --range needs a single-channel image",
                         path, image.format.name)
            return Status.UNSUPPORTED_CONVERSION
        geo = image.level_geometry(0)
        row_bytes = geo.row_bytes
        samples = b"".join(
            bytes(image.level_view(0)[r * geo.line_stride:r * geo.line_stride + row_bytes])
            for r in range(geo.line_count)
        )
        low, high = find_min_max_percentile(samples, dtype)
        preview = compress_dynamic_range(samples, dtype)
        print(f"{path}: percentile range [{low}, {high}] "
              f"(8-bit mean {float(preview.mean()):.1f})")
    return Status.OK


def _dump(path: str, config: ImageIOConfig) -> Status:
    if not config.debug.enable_dump:
        logger.error("Raw dumps are disabled; set debug.enable_dump in the config")
        return Status.STREAM_FAULT
    image, status = _read_image(path, config)
    if not status.ok:
        return status
    with image:
        os.makedirs(config.debug.dump_dir, exist_ok=True)
        stem = os.path.splitext(os.path.basename(path))[0]
        target = os.path.join(
            config.debug.dump_dir,
            f"{stem}_{image.width}x{image.height}_{image.format.name}.raw",
        )
        return image.dump(target)


def main(argv: Optional[List[str]] = None):
    """Parse CLI arguments and run the requested action."""
    parser = argparse.ArgumentParser(
        description="Texture container and pixel-format converter",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  TexelBrew -i albedo.png -o albedo.dds -f A8R8G8B8
  TexelBrew -i ./textures -o ./converted
  TexelBrew -i height.dds --info
  TexelBrew -i height.dds --range
  TexelBrew --list-formats
  TexelBrew --generate-config
        """
    )
    parser.add_argument("--input", "-i", help="Input image file or directory")
    parser.add_argument("--output", "-o", help="Output file or directory")
    parser.add_argument("--format", "-f", help="Target pixel format, e.g. A8R8G8B8")
    parser.add_argument("--config", "-c", help="Path to config YAML")
    parser.add_argument("--info", action="store_true",
                        help="Print header geometry and exit")
    parser.add_argument("--range", action="store_true",
                        help="Print the percentile range of a single-channel image")
    parser.add_argument("--dump", action="store_true",
                        help="Write the decoded pixel buffer to debug.dump_dir")
    parser.add_argument("--list-formats", action="store_true",
                        help="List registered pixel formats")
    parser.add_argument("--generate-config", action="store_true",
                        help="Generate default config.yaml")
    parser.add_argument("--log-level",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"])

    args = parser.parse_args(argv)

    if args.list_formats:
        _print_formats()
        return

    if args.generate_config:
        config = ImageIOConfig()
        dest = args.config or args.output or "config.yaml"
        if os.path.isdir(dest):
            dest = os.path.join(dest, "config.yaml")
        config.to_yaml(dest)
        print(f"Generated default {dest}")
        return

    # Early warnings from from_yaml() go to stderr before logging is configured.
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")

    if args.config:
        if not os.path.exists(args.config):
            logger.error("Config file not found: %s", args.config)
            print(f"Error: Config file not found: {args.config}")
            sys.exit(1)
        try:
            config = ImageIOConfig.from_yaml(args.config)
        except ValueError as e:
            logger.error("Invalid config file '%s': %s", args.config, e)
            print(f"Error: Invalid config: {e}")
            sys.exit(1)
    else:
        config = ImageIOConfig()

    if args.log_level:
        config.log_level = args.log_level
    setup_logging(config.log_level, config.log_file or None, force=True)

    if not args.input or not os.path.exists(args.input):
        logger.error("Input not found: %s", args.input)
        print(f"Error: Input not found: {args.input}")
        sys.exit(1)

    fmt = None
    format_name = args.format or config.export.target_format
    if format_name:
        try:
            fmt = parse_format(format_name)
        except UnknownFormatError as e:
            print(f"Error: {e}")
            sys.exit(1)

    inputs = _collect_inputs(args.input)
    if not inputs:
        logger.error("No supported images under %s", args.input)
        sys.exit(1)

    if args.info or args.range or args.dump:
        action = _print_info if args.info else _print_range if args.range else _dump
        failed = [path for path in inputs if not action(path, config).ok]
    else:
        if not args.output:
            print("Error: --output is required for conversion")
            sys.exit(1)
        failed = []
        for src in tqdm(inputs, desc="Converting", unit="img", disable=len(inputs) < 2):
            dst = _output_path(src, args.input, args.output, config.export.output_extension)
            status = convert_file(src, dst, config, fmt)
            if not status.ok:
                logger.error("Failed to convert %s: %s", src, status)
                failed.append(src)

    if failed:
        logger.error("%d of %d file(s) failed", len(failed), len(inputs))
        sys.exit(1)
