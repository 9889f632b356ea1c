# main.py

"""Entry point for storefront_search (TUI or headless CLI)."""

import argparse
import asyncio
import logging
import sys

from storefront_search.config.logging_config import setup_logging

logger = logging.getLogger("storefront_search.main")


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="storefront-search",
        description="Instant product search and collection cache for storefronts.",
        epilog=(
            "Set CATALOG_PATH to search an offline catalog snapshot, "
            "otherwise SUPABASE_URL/SUPABASE_ANON_KEY are used."
        ),
    )
    parser.add_argument(
        "query",
        nargs="?",
        default=None,
        help="Search query. Omit to launch the interactive TUI.",
    )
    parser.add_argument(
        "-c",
        "--category",
        default=None,
        help="Only return products of this category.",
    )
    parser.add_argument(
        "-l",
        "--limit",
        type=int,
        default=None,
        help="Maximum number of results (default: 2000).",
    )
    parser.add_argument(
        "-f",
        "--format",
        choices=["json", "table"],
        default="json",
        dest="output_format",
        help="Output format (default: json).",
    )
    parser.add_argument(
        "--collection",
        default=None,
        metavar="HANDLE",
        help="Load one collection instead of searching.",
    )
    parser.add_argument(
        "--preload",
        default=None,
        metavar="HANDLES",
        help="Comma-separated collection handles to preload.",
    )
    parser.add_argument(
        "--stats",
        nargs="?",
        const="",
        default=None,
        metavar="HANDLES",
        help="Warm the index and print cache statistics.",
    )
    parser.add_argument(
        "--health",
        action="store_true",
        default=False,
        help="Run a connectivity health check on the collection store.",
    )
    return parser


def _run_tui() -> None:
    """Launch the interactive Textual TUI."""
    from storefront_search.ui.app import StorefrontSearchApp

    try:
        app = StorefrontSearchApp()
        app.run()
    except Exception:
        logger.critical("Fatal error during TUI run", exc_info=True)
        raise
    finally:
        logger.info("storefront_search TUI shutting down")


def _run(args: argparse.Namespace) -> int:
    """Dispatch a headless command and return its exit code."""
    from storefront_search.cli import runner

    if args.health:
        return asyncio.run(runner.run_health_check())
    if args.preload is not None:
        return asyncio.run(runner.run_preload(args.preload))
    if args.stats is not None:
        return asyncio.run(runner.run_stats(args.stats))
    if args.collection is not None:
        return asyncio.run(
            runner.cli_load_collection(args.collection, args.output_format)
        )
    return asyncio.run(
        runner.cli_search(
            query=args.query,
            category=args.category,
            limit=args.limit,
            output_format=args.output_format,
        )
    )


def main() -> None:
    """Route to TUI (no args) or a headless command."""
    log_file = setup_logging()
    logger.info("storefront_search starting, log file: %s", log_file)

    parser = _build_parser()
    args = parser.parse_args()

    headless = (
        args.query is not None
        or args.health
        or args.preload is not None
        or args.stats is not None
        or args.collection is not None
    )
    if not headless:
        _run_tui()
        return
    sys.exit(_run(args))


if __name__ == "__main__":
    main()
