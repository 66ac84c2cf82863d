"""Manual scraper runner.

Scrapes one or more target URLs, merges the results into the configured
deal store and prints what was found. With --schedule, keeps running and
re-scrapes every target periodically.

Usage:
    python scripts/run_scraper.py https://www.dealabs.com/groupe/lego
    python scripts/run_scraper.py URL1 URL2 --concurrency 2 --limit 5
    python scripts/run_scraper.py --backend sql --schedule --interval 30
    python scripts/run_scraper.py --query most-commented
"""

import argparse
import asyncio
import json
import sys
from typing import List, Optional

import structlog

from brickdeals.config import settings
from brickdeals.core.exceptions import PersistenceError
from brickdeals.core.logging import configure_logging
from brickdeals.scrapers.base import DealRecord
from brickdeals.scrapers.scheduler import ScraperScheduler
from brickdeals.scrapers.scraper_service import ScraperService
from brickdeals.schemas.deal import DealDocument
from brickdeals.services.deal_store import create_store
from brickdeals.services.query_service import DealQueryService

logger = structlog.get_logger("run_scraper")

QUERIES = ("most-commented", "cheapest", "newest", "recent")


def _print_records(url: str, records: List[DealRecord], limit: int) -> None:
    print(f"\n{'=' * 70}")
    print(f"  {url}")
    print(f"  {len(records)} deal(s)")
    print(f"{'=' * 70}\n")

    for i, record in enumerate(records[:limit], 1):
        print(f"[{i}] {record.title}")
        shipping = " (free shipping)" if record.free_shipping else ""
        print(f"    Price: {record.price:.2f} EUR{shipping}")
        if record.set_number:
            print(f"    Set: {record.set_number}")
        print(f"    Temperature: {record.temperature}  Comments: {record.comments_count}")
        if record.posted_date:
            print(f"    Posted: {record.posted_date.isoformat()}")
        print(f"    URL: {record.link}")
        print()


async def run_once(urls: List[str], concurrency: int, limit: int, as_json: bool) -> int:
    store = await create_store()
    service = ScraperService(store)

    results = await service.scrape_many(urls, concurrency=concurrency)

    if as_json:
        payload = {
            url: [DealDocument.from_record(r).to_json_dict() for r in records]
            for url, records in results.items()
        }
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        for url, records in results.items():
            _print_records(url, records, limit)

    return 0 if any(results.values()) else 1


async def run_query(name: str, limit: int, as_json: bool) -> int:
    queries = DealQueryService(await create_store())

    if name == "most-commented":
        records = await queries.most_commented(limit=limit)
    elif name == "cheapest":
        records = await queries.sorted_by_price(ascending=True, limit=limit)
    elif name == "newest":
        records = await queries.sorted_by_date(limit=limit)
    else:
        records = (await queries.recent())[:limit]

    if as_json:
        print(json.dumps([DealDocument.from_record(r).to_json_dict() for r in records], ensure_ascii=False, indent=2))
    else:
        _print_records(f"query: {name}", records, limit)
    return 0


async def run_scheduled(urls: List[str], interval: int) -> int:
    store = await create_store()
    scheduler = ScraperScheduler(ScraperService(store))
    scheduler.load_target_jobs(urls, interval_minutes=interval)
    scheduler.start()

    try:
        await asyncio.Event().wait()
    finally:
        await scheduler.stop()
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Parse arguments and run the scraper."""
    parser = argparse.ArgumentParser(
        description="Scrape LEGO deals into the deal store",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python scripts/run_scraper.py https://www.dealabs.com/groupe/lego
  python scripts/run_scraper.py https://www.vinted.fr/catalog?search_text=lego --limit 5
  python scripts/run_scraper.py --schedule --interval 30
        """,
    )

    parser.add_argument(
        "urls",
        nargs="*",
        help="Target URLs (default: SCRAPE_TARGETS from the environment)",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=settings.SCRAPE_CONCURRENCY,
        help=f"Scrapes in flight (default: {settings.SCRAPE_CONCURRENCY})",
    )
    parser.add_argument(
        "--limit",
        type=int,
        default=10,
        help="Maximum number of deals to display per URL (default: 10)",
    )
    parser.add_argument(
        "--backend",
        choices=["json", "sql"],
        help="Store backend (default: STORE_BACKEND)",
    )
    parser.add_argument("--json", action="store_true", help="Print results as JSON")
    parser.add_argument("--query", choices=QUERIES, help="Query the store instead of scraping")
    parser.add_argument("--schedule", action="store_true", help="Keep running on a schedule")
    parser.add_argument(
        "--interval",
        type=int,
        default=settings.SCRAPE_INTERVAL_MINUTES,
        help=f"Minutes between scheduled runs (default: {settings.SCRAPE_INTERVAL_MINUTES})",
    )
    parser.add_argument("--log-level", help="Log level (default: LOG_LEVEL)")

    args = parser.parse_args(argv)

    configure_logging(level=args.log_level)
    if args.backend:
        settings.STORE_BACKEND = args.backend

    if args.query:
        coro = run_query(args.query, args.limit, args.json)
    else:
        urls = args.urls or settings.get_scrape_targets()
        if not urls:
            parser.error("no target URLs given and SCRAPE_TARGETS is empty")
        if args.schedule:
            coro = run_scheduled(urls, args.interval)
        else:
            coro = run_once(urls, args.concurrency, args.limit, args.json)

    try:
        return asyncio.run(coro)
    except PersistenceError as e:
        logger.error("store_failure", error=e.message)
        return 2
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
