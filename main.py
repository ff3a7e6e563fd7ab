# main.py
"""
Command line entry point for the crawl engine.

    python main.py crawl --source-id 1 --limit 5 --depth 1
    python main.py test-selector https://example.com "h2 a" --role list
    python main.py schedule
"""
import argparse
import asyncio
import json
import signal
import sys

from loguru import logger

from crawl_engine.core import CrawlEngine
from crawl_engine.interfaces import BackendType, SelectorRole, ValidationError
from crawl_engine.models import CrawlOptions
from crawl_engine.scheduler import CrawlScheduler
from crawl_engine.storage import load_storage_from_yaml
from monitoring import CrawlMetrics
from utils import CrawlerSettings, configure_logging


def build_engine(settings: CrawlerSettings):
    storage = load_storage_from_yaml(settings.sources_config_path)
    engine = CrawlEngine(storage, settings=settings, metrics=CrawlMetrics(metrics_dir=settings.metrics_dir))
    return storage, engine


async def run_crawl_command(settings: CrawlerSettings, args) -> int:
    _, engine = build_engine(settings)
    options = CrawlOptions(
        limit=args.limit,
        crawl_depth=args.depth,
        full_content=not args.no_full_content,
        wait_time=args.wait_time,
        timeout=args.timeout,
        follow_links=not args.no_follow_links,
    )

    try:
        result = await engine.run_crawl(args.source_id, options)
    except ValidationError as e:
        for error in e.errors:
            logger.error(f"❌ {error}")
        return 2
    finally:
        await engine.close()

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
    return 0 if result.success else 1


async def run_test_selector_command(settings: CrawlerSettings, args) -> int:
    _, engine = build_engine(settings)
    try:
        result = await engine.test_selector(
            args.url,
            args.expression,
            role=args.role,
            backend_type=args.backend,
            wait_time=args.wait_time,
            timeout=args.timeout,
        )
    finally:
        await engine.close()

    print(json.dumps(result.to_dict(), indent=2, ensure_ascii=False, default=str))
    return 0 if result.success else 1


async def run_schedule_command(settings: CrawlerSettings) -> int:
    storage, engine = build_engine(settings)
    scheduler = CrawlScheduler(engine, storage, settings)

    started = await scheduler.load_schedules()
    if started == 0:
        logger.warning("⚠️ No active schedules found, nothing to run")
        await engine.close()
        return 1

    for job in scheduler.list_jobs():
        logger.info(f"📅 {job['kind']} schedule {job['id']} '{job['cron_expression']}' next run {job['next_run']}")

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, scheduler.stop)
        except NotImplementedError:
            # Windows event loops do not support signal handlers
            pass

    try:
        await scheduler.run_forever()
        await scheduler.wait_idle()
    finally:
        await engine.close()
        logger.info(f"📊 Final metrics: {engine.metrics.get_stats()['running_metrics']}")
        engine.metrics.save_daily_metrics()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Multi-source news crawl engine")
    subparsers = parser.add_subparsers(dest="command", required=True)

    crawl = subparsers.add_parser("crawl", help="Crawl one source once and print the result")
    crawl.add_argument("--source-id", type=int, required=True, help="ID of the source to crawl")
    crawl.add_argument("--limit", type=int, default=10, help="Maximum list items to process (1-100)")
    crawl.add_argument("--depth", type=int, default=0, help="Internal link hops to follow (0-5)")
    crawl.add_argument("--wait-time", type=int, default=3000, help="List page settle delay in ms")
    crawl.add_argument("--timeout", type=int, default=60000, help="Navigation timeout in ms")
    crawl.add_argument("--no-full-content", action="store_true", help="Store titles and links only")
    crawl.add_argument("--no-follow-links", action="store_true", help="Do not follow internal links")

    test = subparsers.add_parser("test-selector", help="Check a CSS selector against a live page")
    test.add_argument("url")
    test.add_argument("expression")
    test.add_argument("--role", default=SelectorRole.LIST.value,
                      choices=[role.value for role in SelectorRole])
    test.add_argument("--backend", default=BackendType.BROWSER.value,
                      help="browser or static-html")
    test.add_argument("--wait-time", type=int, default=3000)
    test.add_argument("--timeout", type=int, default=20000)

    subparsers.add_parser("schedule", help="Run all active schedules until interrupted")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    settings = CrawlerSettings.from_env()
    configure_logging(settings.log_level, settings.log_dir)

    if args.command == "crawl":
        return asyncio.run(run_crawl_command(settings, args))
    if args.command == "test-selector":
        return asyncio.run(run_test_selector_command(settings, args))
    logger.info("🚀 Starting crawl scheduler...")
    return asyncio.run(run_schedule_command(settings))


if __name__ == "__main__":
    sys.exit(main())
