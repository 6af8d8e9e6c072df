"""
Command-line access to the resolution engine.

Usage:
    overlay-translator resolve "Withdraw-10" --category action --lang RU
    overlay-translator resolve "Hello there" --offline
    overlay-translator stats
"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from pydantic import ValidationError

from .config import TranslatorConfig, configure_logging, load_config
from .glossary.models import Category
from .service import TranslationService


CLI_IDENTITY = "cli"


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments.

    Returns:
        Parsed arguments namespace
    """
    parser = argparse.ArgumentParser(
        prog="overlay-translator",
        description="Resolve UI strings through glossary, cache and remote translation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Glossary/cache only
  overlay-translator resolve "Talk-to" --category action --offline

  # Fall back to the remote service (needs OVERLAY_TRANSLATOR_API_KEY)
  overlay-translator resolve "Welcome to the bank." --category dialogue

  # Show glossary and cache sizes
  overlay-translator stats --lang DE
        """,
    )
    parser.add_argument("--env-file", type=Path, default=None, help="Path to a .env file")
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL (e.g. DEBUG)")

    sub = parser.add_subparsers(dest="command", required=True)

    resolve = sub.add_parser("resolve", help="Translate one text")
    resolve.add_argument("text", help="Source text")
    resolve.add_argument(
        "--category",
        default=Category.DEFAULT.value,
        help=f"One of: {', '.join(c.value for c in Category)} (default: default)",
    )
    resolve.add_argument("--lang", default=None, help="Target language code (default: config)")
    resolve.add_argument("--glossary-dir", type=Path, default=None, help="Glossary directory")
    resolve.add_argument("--offline", action="store_true", help="Never call the remote service")

    stats = sub.add_parser("stats", help="Show glossary and cache sizes")
    stats.add_argument("--lang", default=None, help="Target language code (default: config)")
    stats.add_argument("--glossary-dir", type=Path, default=None, help="Glossary directory")

    return parser.parse_args(argv)


async def _resolve(service: TranslationService, text: str, category: Category, offline: bool) -> str:
    if offline:
        return service.lookup(text, category) or text

    service.request(CLI_IDENTITY, text, category)
    await service.dispatcher.join()
    translated = text
    for applied in service.drain():
        if applied.identity == CLI_IDENTITY:
            translated = applied.translated
    await service.close()
    return translated


def _print_stats(service: TranslationService) -> None:
    print(f"Target language: {service.target_language}")
    print("Glossary entries:")
    for category in Category:
        print(f"  {category.value:<10} {service.store.size(category)}")
    stats = service.cache.get_stats()
    print(f"Cache: {stats.total_entries}/{stats.capacity} entries ({service.cache.path})")
    print(f"Remote translation: {'configured' if service.config.has_credentials else 'not configured'}")


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the overlay-translator command."""
    args = parse_args(argv)

    try:
        config: TranslatorConfig = load_config(
            args.env_file,
            target_language=args.lang,
            glossary_dir=args.glossary_dir,
            log_level=args.log_level,
        )
    except ValidationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level)

    service = TranslationService(config)
    service.start()

    if args.command == "stats":
        _print_stats(service)
        return 0

    category = Category.parse(args.category)
    translated = asyncio.run(_resolve(service, args.text, category, args.offline))
    print(translated)
    return 0


if __name__ == "__main__":
    sys.exit(main())
