"""Command-line runner for event aggregation.

Usage:
    # Fetch from every platform
    eventsync --city Mumbai

    # Specific platforms, five events each, duplicates removed
    eventsync --city Mumbai --platform allevents --platform explara --limit 5 --dedupe

    # Full sync (validate + dedupe + in-memory store) for several cities
    eventsync --city Mumbai --city Pune --sync

    # Machine-readable output
    eventsync --city Pune --json
"""

import argparse
import asyncio
import json
import sys
from dataclasses import asdict
from typing import List, Optional

import structlog

from eventsync.config import settings
from eventsync.core.logging import configure_logging
from eventsync.scrapers.aggregator import AggregatorResult, EventAggregator, get_aggregator_stats
from eventsync.scrapers.base import FetchConfig
from eventsync.scrapers.register_adapters import create_adapter_factory
from eventsync.services.deduplicator import deduplicate
from eventsync.services.event_sync_service import EventSyncService, InMemoryEventRepository

logger = structlog.get_logger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="eventsync",
        description="Fetch, validate and deduplicate event listings.",
    )
    parser.add_argument("--city", action="append", required=True, help="City to fetch (repeatable)")
    parser.add_argument("--limit", type=int, default=20, help="Max events per platform (default: 20)")
    parser.add_argument(
        "--platform",
        action="append",
        dest="platforms",
        help="Platform key to include (repeatable, default: all)",
    )
    parser.add_argument("--dedupe", action="store_true", help="Remove duplicate events")
    parser.add_argument("--sync", action="store_true", help="Run the full sync pipeline")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    parser.add_argument("--log-level", default=None, help=f"Log level (default: {settings.LOG_LEVEL})")
    return parser


def print_summary(city: str, result: AggregatorResult, removed: int) -> None:
    """Print a per-platform result table and totals."""
    print("\n" + "=" * 60)
    print(f"  Events for {city}")
    print("=" * 60)
    print(f"{'Platform':<16} {'Events':>7}  Status")
    print("-" * 60)
    for r in result.platform_results:
        status = "ok" if r.success else f"error: {r.error}"
        print(f"{r.platform:<16} {len(r.events):>7}  {status}")
    print("-" * 60)

    stats = get_aggregator_stats(result)
    print(f"{'Total':<16} {stats.total:>7}")
    if removed:
        print(f"{'Duplicates':<16} {removed:>7}  removed")
    if stats.by_category:
        by_category = ", ".join(f"{k}={v}" for k, v in sorted(stats.by_category.items()))
        print(f"Categories: {by_category}")
    print("=" * 60)


async def run(args: argparse.Namespace) -> int:
    factory = create_adapter_factory()
    try:
        aggregator = EventAggregator.from_factory(factory, args.platforms)

        if args.sync:
            service = EventSyncService(
                aggregator,
                InMemoryEventRepository(),
                scraper_logger=factory.scraper_logger,
                limit=args.limit,
            )
            stats = await service.sync_events(args.city)
            if args.json:
                print(json.dumps(asdict(stats), indent=2, ensure_ascii=False))
            else:
                print(factory.scraper_logger.generate_report())
                print(
                    f"Synced {stats.inserted} new, {stats.updated} updated, "
                    f"{stats.invalid_events} invalid, {stats.duplicates_removed} duplicates"
                )
            return 0 if stats.success else 1

        any_events = False
        output = []
        for city in args.city:
            result = await aggregator.fetch_all(FetchConfig(city=city, limit=args.limit))
            removed = 0
            if args.dedupe:
                deduped = deduplicate(result.all_events)
                removed = len(deduped.removed)
                result.all_events = deduped.events
                result.total_events = len(deduped.events)
            any_events = any_events or result.success

            if args.json:
                output.append({"city": city, "duplicates_removed": removed, **asdict(result)})
            else:
                print_summary(city, result, removed)

        if args.json:
            print(json.dumps(output, indent=2, ensure_ascii=False))
        return 0 if any_events else 1
    finally:
        await factory.aclose()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    if args.limit < 0:
        print("--limit must be non-negative", file=sys.stderr)
        return 2

    configure_logging(level=args.log_level)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        logger.warning("interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
