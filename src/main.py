# src/main.py - v1
"""CLI entry point: convert handwritten-note images into one document.

Usage:
    scribbledoc convert <image>... [-o DIR] [--format txt|docx|zip|all]
    scribbledoc providers

Exit codes: 0 success, 1 failure, 2 transcription credential missing,
130 interrupted.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from scribbledoc.version import __version__

if TYPE_CHECKING:
    from scribbledoc.config.settings import Settings

logger = logging.getLogger(__name__)

EXIT_CONFIG_REQUIRED = 2

_IMAGE_SUFFIXES = {".png", ".jpg", ".jpeg", ".webp", ".gif", ".bmp", ".tif", ".tiff", ".heic"}


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if not hasattr(args, "func"):
        parser.print_help()
        return 1

    try:
        return asyncio.run(args.func(args))
    except KeyboardInterrupt:
        logger.info("Interrupted by user")
        return 130
    except Exception as exc:
        logger.error("Fatal error: %s", exc, exc_info=args.verbose)
        return 1


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scribbledoc",
        description=f"scribbledoc v{__version__}: handwritten notes to documents",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command")

    # --- convert ---
    p_convert = subparsers.add_parser(
        "convert", help="Transcribe images in order and export the result",
    )
    p_convert.add_argument(
        "images", nargs="+", type=Path,
        help="Image files or directories (processed in the given order)",
    )
    p_convert.add_argument(
        "-o", "--output", type=Path, default=None,
        help="Output directory (default: OUTPUT_DIR setting)",
    )
    p_convert.add_argument(
        "-f", "--format", dest="formats", action="append",
        choices=["txt", "docx", "zip", "all"], default=None,
        help="Export format; repeatable (default: txt)",
    )
    p_convert.add_argument("--language", default=None, help="Language hint (e.g. eng)")
    p_convert.add_argument(
        "--no-grayscale", action="store_true",
        help="Send colour images instead of contrast-enhanced grayscale",
    )
    p_convert.add_argument("--contrast", type=float, default=None, help="Contrast factor")
    p_convert.add_argument("--title", default=None, help="Document title / base file name")
    p_convert.set_defaults(func=_cmd_convert)

    # --- providers ---
    p_providers = subparsers.add_parser(
        "providers", help="List registered transcription providers",
    )
    p_providers.set_defaults(func=_cmd_providers)

    return parser


async def _cmd_convert(args: argparse.Namespace) -> int:
    """Run one batch over the given images and export."""
    from scribbledoc.api.session import NotesSession
    from scribbledoc.config.settings import Settings

    overrides: dict[str, object] = {}
    if args.output is not None:
        overrides["output_dir"] = args.output
    if args.title:
        overrides["export_title"] = args.title
    settings = Settings(**overrides)  # type: ignore[arg-type]
    _setup_logging(settings, args.verbose)

    paths = _collect_images(args.images)
    if not paths:
        logger.error("No image files found in %s", ", ".join(str(p) for p in args.images))
        return 1

    session = NotesSession(settings=settings)
    session.ocr_config = settings.ocr_config(
        language=args.language,
        grayscale=False if args.no_grayscale else None,
        contrast=args.contrast,
    )
    session.add_images(paths)

    result = await session.start_batch()
    if result.outcome == "config_required":
        logger.error("GOOGLE_API_KEY is not set; add it to the environment or .env")
        return EXIT_CONFIG_REQUIRED

    formats = set(args.formats or ["txt"])
    if "all" in formats:
        formats = {"txt", "docx", "zip"}

    written: list[str] = []
    if "txt" in formats:
        written.append(await session.export_text())
    if "docx" in formats:
        written.append(await session.export_docx())
    if "zip" in formats:
        written.append(await session.export_archive())

    counts = session.counts()
    print("\nBatch complete:")
    print(f"  Pages:      {len(session.items)}")
    print(f"  Completed:  {counts['completed']}")
    print(f"  Errors:     {counts['error']}")
    print(f"  Duration:   {result.duration_ms / 1000:.1f}s")
    for location in written:
        print(f"  Written:    {location}")
    return 0 if counts["error"] == 0 else 1


async def _cmd_providers(args: argparse.Namespace) -> int:
    from scribbledoc.llm.client_factory import available_providers

    for name in available_providers():
        print(name)
    return 0


def _collect_images(sources: list[Path]) -> list[Path]:
    """Expand directories (sorted by name) and keep image files in order."""
    paths: list[Path] = []
    for source in sources:
        if source.is_dir():
            paths.extend(
                p for p in sorted(source.iterdir())
                if p.is_file() and p.suffix.lower() in _IMAGE_SUFFIXES
            )
        elif source.is_file():
            paths.append(source)
        else:
            logger.warning("Skipping missing path: %s", source)
    return paths


def _setup_logging(settings: Settings, verbose: bool) -> None:
    from scribbledoc.logging.logger import setup_logging

    setup_logging(
        level="DEBUG" if verbose else settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
        rotation=settings.log_rotation,
        retention=settings.log_retention,
    )


if __name__ == "__main__":
    sys.exit(main())
