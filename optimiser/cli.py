"""Command-line entry points: a whole directory (optimise-images) or one file (optimise-image)."""

import argparse
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from . import markup, pipeline
from .codec import get_codec
from .config import OutputFormat, PipelineConfig, load_config_file, merge_overrides, parse_format
from .errors import ConfigError, OptimiserError


def parse_variant_widths(s: str) -> List[int]:
    try:
        widths = sorted({int(x.strip()) for x in s.split(",") if x.strip()})
    except ValueError:
        raise argparse.ArgumentTypeError("Invalid --widths. Example: 400,800,1200") from None
    if not widths or any(w <= 0 for w in widths):
        raise argparse.ArgumentTypeError("Invalid --widths. Example: 400,800,1200")
    return widths


def parse_format_arg(s: str) -> OutputFormat:
    try:
        return parse_format(s)
    except ConfigError as e:
        raise argparse.ArgumentTypeError(str(e)) from None


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--output", default=None, help="Output directory (default: images-optimized)")
    parser.add_argument("--widths", type=parse_variant_widths, default=None,
                        help="Comma-separated widths to generate (default: 400,800,1200)")
    parser.add_argument("--format", dest="formats", type=parse_format_arg, action="append", default=None,
                        help="Output format and quality, most preferred first; repeatable (default: webp:80 jpeg:85)")
    parser.add_argument("--config", type=Path, default=None, help="JSON config file; flags override its values")
    parser.add_argument("--codec", choices=["pillow", "magick"], default="pillow", help="Image codec to use")
    parser.add_argument("--imagemagick-bin", default=None, help='ImageMagick binary for --codec magick, e.g. "convert" or "magick"')
    parser.add_argument("--url-prefix", default=None, help="Prefix for paths in snippets (default: output directory name)")
    parser.add_argument("--alt", default=None, help="alt text placed in snippets")
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Generate responsive width x format variants for every image under a directory and write <picture> snippets."
    )
    parser.add_argument("--input", default=None, help="Directory scanned recursively for images (default: images)")
    parser.add_argument("--markup", default=None, help="Snippets file to write (default: html-snippets.txt)")
    parser.add_argument("--threads", type=int, default=None, help="Worker threads (default: CPU count)")
    _add_common_arguments(parser)
    return parser


def build_single_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate responsive variants for a single image.")
    parser.add_argument("image", help="Path to the image")
    parser.add_argument("--snippet", action="store_true", help="Print the <picture> snippet for the image")
    _add_common_arguments(parser)
    return parser


def configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        force=True,
    )


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    base: Dict[str, Any] = load_config_file(args.config) if args.config else {}
    values = merge_overrides(base, [
        ("input", getattr(args, "input", None)),
        ("output", args.output),
        ("widths", args.widths),
        ("formats", args.formats),
        ("markup", getattr(args, "markup", None)),
        ("url_prefix", args.url_prefix),
        ("alt", args.alt),
        ("threads", getattr(args, "threads", None)),
    ])
    return PipelineConfig.from_mapping(values)


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    try:
        config = config_from_args(args)
        codec = get_codec(args.codec, args.imagemagick_bin)
        print(f"Optimising images in {config.input_root}")
        report = pipeline.run(config, codec)
    except OptimiserError as e:
        print(f"ERR   {e}", file=sys.stderr)
        return 1

    if not report.results:
        print(f"No images found in: {config.input_root}")
        for line in report.summary_lines():
            print(f"- {line}")
        return 0

    print("Optimisation complete." if not report.failure_count else "Optimisation complete with errors.")
    for line in report.summary_lines():
        print(f"- {line}")
    return 0


def main_single(argv: Optional[Sequence[str]] = None) -> int:
    args = build_single_parser().parse_args(argv)
    configure_logging(args.verbose)

    image_path = Path(args.image)
    if not image_path.is_file():
        print(f"Image not found: {image_path}", file=sys.stderr)
        return 1

    try:
        config = config_from_args(args)
        codec = get_codec(args.codec, args.imagemagick_bin)
        result = pipeline.optimise_single(image_path, config, codec)
    except OptimiserError as e:
        print(f"ERR   {e}", file=sys.stderr)
        return 1

    print("Optimisation complete.")
    print(f"- Original: {result.source_relative_path}")
    print(f"- Variants generated: {len(result.variants)}")
    if result.failures:
        print(f"- Failed variants: {len(result.failures)}")
    print(f"- Output directory: {config.output_root}")
    if args.snippet:
        print()
        print(markup.build_block(result, config.spec, config.prefix, config.alt_text))
    return 0


if __name__ == "__main__":
    sys.exit(main())
