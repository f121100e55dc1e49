"""
Kitbash - Main Entry Point

Command line front end: import sprite fragments, optionally apply a saved
layout, then write a preview and/or the per-layer export.
"""

import argparse
import logging
import sys
from pathlib import Path


logger = logging.getLogger("kitbash")


def parse_size(text: str) -> tuple[int, int]:
    """Parse 'WxH' into a (width, height) tuple."""
    try:
        width, height = (int(part) for part in text.lower().split("x", 1))
    except ValueError:
        raise argparse.ArgumentTypeError(f"Expected WIDTHxHEIGHT, got {text!r}") from None
    if width <= 0 or height <= 0:
        raise argparse.ArgumentTypeError(f"Canvas size must be positive, got {text!r}")
    return (width, height)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kitbash",
        description="Compose sprite fragments on a canvas and export them layer by layer",
    )
    parser.add_argument("images", nargs="+", type=Path, help="Image files, back to front")
    parser.add_argument("--canvas", type=parse_size, help="Canvas size as WxH (default from settings)")
    parser.add_argument("--background", type=str, help="Preview background, e.g. '#202020ff'")
    parser.add_argument("--scale", type=float, help="Export scale, 1 to 10")
    parser.add_argument("--layout", type=Path, help="Layer metadata (data.json) to apply")
    output = parser.add_mutually_exclusive_group()
    output.add_argument("-o", "--output", type=Path, help="Write a ZIP archive")
    output.add_argument("--output-dir", type=Path, help="Write individual PNG files")
    parser.add_argument("--preview", type=Path, help="Write the composited preview PNG")
    parser.add_argument("--settings", type=Path, help="Settings file (default ~/.config/kitbash/settings.json)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    return parser


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for Kitbash.

    Returns:
        Exit code (0 for success, non-zero for errors)
    """
    if sys.version_info < (3, 11):
        print("Error: Kitbash requires Python 3.11 or later")
        return 1

    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    from dataclasses import replace

    from kitbash.core.data_types import Color
    from kitbash.core.errors import KitbashError
    from kitbash.core.metadata import load_metadata
    from kitbash.core.session import Session
    from kitbash.core.settings import load_settings

    settings = load_settings(args.settings)
    if args.canvas:
        settings = replace(settings, canvas_width=args.canvas[0], canvas_height=args.canvas[1])
    try:
        if args.background:
            settings = replace(settings, background_color=Color.parse(args.background))
        session = Session(settings)
    except ValueError as e:
        logger.error("Invalid settings: %s", e)
        return 2

    report = session.import_files(args.images)
    if not report.added:
        logger.error("No images could be imported")
        return 1

    try:
        if args.layout:
            unmatched = session.restore_layout(load_metadata(args.layout))
            for record in unmatched:
                logger.warning("Layout entry %r matched no imported image", record.name)

        if args.preview:
            session.render_preview().to_pil().save(args.preview)
            logger.info("Wrote preview to %s", args.preview)

        if args.output_dir:
            session.export_directory(args.output_dir, args.scale)
        elif args.output or not args.preview:
            session.export_archive(args.output, args.scale)
    except (KitbashError, OSError) as e:
        logger.error("%s", e)
        return 1

    return 0 if report.ok else 1


if __name__ == "__main__":
    sys.exit(main())
