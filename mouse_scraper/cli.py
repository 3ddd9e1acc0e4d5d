"""Command-line interface for the park catalog scraper"""

import argparse
import asyncio
import sys
import time
from itertools import product
from pathlib import Path
from typing import Any, Dict, List, Optional

import aiofiles
import orjson
from loguru import logger
from tqdm.asyncio import tqdm

from .browser_backends import create_auto_backend, create_browser_backend
from .catalog import CatalogService
from .config import ScraperConfig
from .exceptions import MouseScraperError
from .finder_client import FinderClient
from .logging_config import setup_logging
from .models import DataSource, Destination, EntityKind
from .orchestrator import AcquisitionOrchestrator
from .session_manager import SessionManager
from .storage import JsonCacheStore, JsonSessionStore
from .wiki_client import WikiClient

DESTINATION_CHOICES = [d.value for d in Destination]
KIND_CHOICES = [k.value for k in EntityKind]


async def create_catalog(config: ScraperConfig) -> CatalogService:
    """Wire the services together; the caller owns shutdown via ``close()``"""
    if config.browser_backend == "auto":
        backend = await create_auto_backend(config.cdp_endpoint, headless=config.headless)
    else:
        backend = create_browser_backend(
            config.browser_backend, config.cdp_endpoint, headless=config.headless
        )

    session_manager = SessionManager(JsonSessionStore(config.data_dir), backend, config)
    await session_manager.initialize()

    wiki = WikiClient(config)
    finder = FinderClient(session_manager, config)
    orchestrator = AcquisitionOrchestrator(session_manager, finder, wiki, config)

    return CatalogService(
        orchestrator, JsonCacheStore(config.data_dir), session_manager, wiki, config
    )


async def write_json(data: Any, output: Optional[Path]) -> None:
    """Write JSON to a file, or stdout when no file is given"""
    payload = orjson.dumps(data, option=orjson.OPT_INDENT_2)
    if output is None:
        sys.stdout.write(payload.decode("utf-8") + "\n")
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    async with aiofiles.open(output, "wb") as f:
        await f.write(payload)
    logger.info(f"💾 Wrote {output} ({len(payload)/1024:.1f}KB)")


async def run_fetch(catalog: CatalogService, args: argparse.Namespace) -> int:
    destination = Destination(args.destination)
    kind = EntityKind(args.type)

    page = await catalog.get_entities(
        kind, destination, args.park, use_cache=not args.no_cache
    )

    origin = "cache" if page.cached else "live"
    logger.success(
        f"✓ {len(page.entities)} {kind.value} for {destination.value} "
        f"(source: {page.source}, {origin})"
    )
    await write_json(
        {"source": page.source, "cached": page.cached, "data": page.entities},
        Path(args.output) if args.output else None,
    )
    return 0


async def run_sync(catalog: CatalogService, args: argparse.Namespace) -> int:
    """Refresh every entity family for the selected destinations"""
    destinations = [Destination(d) for d in (args.destination or DESTINATION_CHOICES)]
    combos = list(product(destinations, EntityKind))

    logger.info("=" * 80)
    logger.info("🚀 CATALOG SYNC")
    logger.info("=" * 80)
    logger.info(f"Destinations:  {', '.join(d.value for d in destinations)}")
    logger.info(f"Entity types:  {', '.join(k.value for k in EntityKind)}")
    logger.info("=" * 80)

    async def sync_one(destination: Destination, kind: EntityKind) -> Dict[str, Any]:
        try:
            page = await catalog.get_entities(kind, destination, use_cache=False)
        except Exception as e:
            logger.error(f"❌ {kind.value}/{destination.value} failed: {e}")
            return {"ok": False, "count": 0, "source": None}
        return {"ok": True, "count": len(page.entities), "source": page.source}

    start_time = time.time()
    stats = {"successful": 0, "failed": 0, "entities": 0, "fallback": 0}

    for coro in tqdm.as_completed(
        [sync_one(d, k) for d, k in combos],
        total=len(combos),
        desc="Sync",
        unit="type",
        colour="green",
    ):
        result = await coro
        if result["ok"]:
            stats["successful"] += 1
            stats["entities"] += result["count"]
            if result["source"] != DataSource.DISNEY.value:
                stats["fallback"] += 1
        else:
            stats["failed"] += 1

    elapsed = time.time() - start_time
    logger.info("")
    logger.info("=" * 80)
    logger.success(f"✓ Sync complete in {elapsed:.1f}s")
    logger.info(f"  Successful:     {stats['successful']}/{len(combos)}")
    logger.info(f"  Failed:         {stats['failed']}")
    logger.info(f"  From fallback:  {stats['fallback']}")
    logger.info(f"  Entities:       {stats['entities']}")
    logger.info("=" * 80)

    return 0 if stats["successful"] else 1


async def run_status(catalog: CatalogService, args: argparse.Namespace) -> int:
    health = await catalog.get_health()

    logger.info("=" * 60)
    logger.info("Session status")
    logger.info("=" * 60)
    for destination, status in health.items():
        if not status["has_session"]:
            logger.info(f"  {destination}: no session")
            continue
        marker = "✓" if status["is_valid"] else "✗"
        logger.info(
            f"  {destination}: {marker} expires {status['expires_at']} "
            f"(errors: {status['error_count']})"
        )
        if status["last_error"]:
            logger.info(f"      last error: {status['last_error']}")
    logger.info("=" * 60)

    await write_json(health, Path(args.output) if args.output else None)
    return 0


async def run_refresh(catalog: CatalogService, args: argparse.Namespace) -> int:
    destination = Destination(args.destination)
    session = await catalog.session_manager.refresh_session(destination)
    if session is None:
        logger.error(f"❌ Could not establish a session for {destination.value}")
        return 1

    logger.success(
        f"✓ Session for {destination.value} refreshed, expires {session.expires_at}"
    )
    return 0


async def run_entity(catalog: CatalogService, args: argparse.Namespace) -> int:
    entity = await catalog.get_entity_by_id(args.id)
    if entity is None:
        logger.error(f"Entity {args.id} not found")
        return 1
    await write_json(entity, Path(args.output) if args.output else None)
    return 0


async def run_destinations(catalog: CatalogService, args: argparse.Namespace) -> int:
    await write_json([d.to_dict() for d in catalog.get_destinations()], None)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="mouse-scraper",
        description="Theme park catalog scraper with browser-derived sessions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    config_group = parser.add_argument_group("Configuration")
    config_group.add_argument("--data-dir", type=str, help="Session and cache directory")
    config_group.add_argument(
        "--browser",
        type=str,
        choices=["camoufox", "cdp", "auto"],
        help="Browser backend for session establishment",
    )
    config_group.add_argument(
        "--no-headless", action="store_true", help="Visible browser mode"
    )
    config_group.add_argument("--verbose", action="store_true", help="Debug logging")
    config_group.add_argument("--log-file", type=str, help="Log file path")

    subparsers = parser.add_subparsers(dest="command", required=True)

    fetch = subparsers.add_parser("fetch", help="Fetch one entity type")
    fetch.add_argument("--destination", required=True, choices=DESTINATION_CHOICES)
    fetch.add_argument("--type", required=True, choices=KIND_CHOICES)
    fetch.add_argument("--park", type=str, help="Restrict to one park id")
    fetch.add_argument("--output", type=str, help="Write JSON here instead of stdout")
    fetch.add_argument("--no-cache", action="store_true", help="Bypass the cache")

    sync = subparsers.add_parser("sync", help="Refresh all entity types")
    sync.add_argument(
        "--destination",
        nargs="+",
        choices=DESTINATION_CHOICES,
        help="Destinations to sync (default: all)",
    )

    status = subparsers.add_parser("status", help="Show session health")
    status.add_argument("--output", type=str, help="Write JSON here instead of stdout")

    refresh = subparsers.add_parser("refresh", help="Force a new browser session")
    refresh.add_argument("--destination", required=True, choices=DESTINATION_CHOICES)

    entity = subparsers.add_parser("entity", help="Look up a single entity by id")
    entity.add_argument("--id", required=True, type=str)
    entity.add_argument("--output", type=str, help="Write JSON here instead of stdout")

    subparsers.add_parser("destinations", help="List destinations and parks")

    return parser


def config_from_args(args: argparse.Namespace) -> ScraperConfig:
    overrides: Dict[str, Any] = {}
    if args.data_dir:
        overrides["data_dir"] = Path(args.data_dir)
    if args.browser:
        overrides["browser_backend"] = args.browser
    if args.no_headless:
        overrides["headless"] = False
    if args.verbose:
        overrides["verbose"] = True
    return ScraperConfig.from_env(**overrides)


async def dispatch(catalog: CatalogService, args: argparse.Namespace) -> int:
    if args.command == "fetch":
        return await run_fetch(catalog, args)
    if args.command == "sync":
        return await run_sync(catalog, args)
    if args.command == "status":
        return await run_status(catalog, args)
    if args.command == "refresh":
        return await run_refresh(catalog, args)
    if args.command == "entity":
        return await run_entity(catalog, args)
    return await run_destinations(catalog, args)


def main(argv: Optional[List[str]] = None) -> None:
    """Main CLI entry point"""
    args = build_parser().parse_args(argv)
    config = config_from_args(args)

    log_file = (
        Path(args.log_file) if args.log_file else config.data_dir / "logs" / "mouse_scraper.log"
    )
    setup_logging(verbose=config.verbose, log_file=log_file)

    logger.debug(f"Data directory: {config.data_dir} (browser: {config.browser_backend})")

    async def run() -> int:
        catalog = await create_catalog(config)
        try:
            return await dispatch(catalog, args)
        finally:
            await catalog.close()

    try:
        exit_code = asyncio.run(run())
    except KeyboardInterrupt:
        logger.warning("Interrupted by user")
        sys.exit(1)
    except MouseScraperError as e:
        logger.error(f"❌ {e}")
        sys.exit(1)
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
