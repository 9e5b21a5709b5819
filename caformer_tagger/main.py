"""
Main entry point for the CAFormer Tagger command line.
"""

import json
import sys
import argparse
from typing import List, Optional
from rich.console import Console
from rich.table import Table
from .config import settings
from .logging import setup_logging, get_logger
from .metadata import ParseError
from .models import InferenceResult, TagInfo
from .performance_monitor import performance_monitor
from .preprocessing import DecodeError
from .processor import CaformerTagger, fetch_image
from .ranking import TagLookupError
from .tagging_engine import EngineError

# Request-fatal errors: reported per image, other images are still tagged
REQUEST_ERRORS = (DecodeError, ParseError, EngineError, TagLookupError, OSError)


def parse_arguments(argv: Optional[List[str]] = None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CAFormer Tagger - predict booru tags for images with a CAFormer DBv4 ONNX model"
    )

    parser.add_argument(
        "images",
        nargs="*",
        help="Image files to tag"
    )

    parser.add_argument(
        "--url",
        action="append",
        default=[],
        metavar="URL",
        help="Download and tag an image from a URL (repeatable)"
    )

    parser.add_argument(
        "--model",
        default=settings.model_path,
        help="Path to the ONNX model (default: TAGGER_MODEL_PATH)"
    )

    parser.add_argument(
        "--tags",
        default=settings.tags_path,
        help="Path to selected_tags.csv (default: TAGGER_TAGS_PATH)"
    )

    parser.add_argument(
        "--config",
        default=settings.config_path,
        help="Path to config.json holding the output map (default: TAGGER_CONFIG_PATH)"
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Print results as JSON instead of tables"
    )

    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Override log level from configuration"
    )

    return parser.parse_args(argv)


def _tag_table(title: str, tags: List[TagInfo]) -> Table:
    table = Table(title=title, title_justify="left", show_header=False, box=None)
    table.add_column("Tag")
    table.add_column("Score", justify="right")
    for tag in tags:
        table.add_row(tag.label, f"{tag.score:.2%}")
    if not tags:
        table.add_row("[dim](none)[/dim]", "")
    return table


def show_result(console: Console, name: str, result: InferenceResult):
    """Render the top rating and the three tag tables for one result."""
    console.rule(f"[bold]{name}")
    top = result.top_rating()
    if top is not None:
        console.print(f"Top rating: {top}")
    console.print(_tag_table("Rating", result.rating))
    console.print(_tag_table("Character", result.character))
    console.print(_tag_table("General", result.general))


def main(argv: Optional[List[str]] = None):
    """Main entry point."""
    args = parse_arguments(argv)

    # Setup logging
    setup_logging(args.log_level)
    logger = get_logger("main")

    missing = [flag for flag, value in (("--model", args.model), ("--tags", args.tags), ("--config", args.config)) if not value]
    if missing:
        logger.error(f"❌ Missing required input(s): {', '.join(missing)}")
        return 2
    if not args.images and not args.url:
        logger.error("❌ Nothing to tag: pass image paths and/or --url")
        return 2

    console = Console()
    results = {}
    failures = 0

    try:
        tagger = CaformerTagger(args.model, args.tags, args.config)
    except REQUEST_ERRORS as e:
        logger.error(f"❌ Failed to load tagger: {e}")
        return 1

    with tagger:
        sources = [(path, path) for path in args.images]
        for url in args.url:
            data = fetch_image(url)
            if data is None:
                failures += 1
                continue
            sources.append((url, data))

        for name, source in sources:
            try:
                result = tagger.tag_image(source, name=name)
            except REQUEST_ERRORS as e:
                logger.error(f"❌ {name}: {type(e).__name__}: {e}")
                failures += 1
                continue

            if args.json:
                results[name] = result.model_dump()
            else:
                show_result(console, name, result)

    if args.json:
        console.print_json(json.dumps(results))

    performance_monitor.log_performance_summary()
    return 1 if failures else 0


if __name__ == "__main__":
    sys.exit(main())
