"""
Command-line interface for crypto-tracker.

Provides commands to run the collection loop and the resolution worker,
administer the source catalog, inspect collected records, initialize the
database, and run diagnostic checks.

Usage:
    crypto-tracker init-db          # Create tables and seed default sources
    crypto-tracker ingest           # Run the collection loop
    crypto-tracker collect          # Collect due sources once
    crypto-tracker resolve          # Run the resolution worker
    crypto-tracker sources list     # Show the source catalog
    crypto-tracker info stats market_info
    crypto-tracker health           # Check service health
"""

import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator

import click

from src.config.settings import get_settings
from src.observability.logging import setup_logging
from src.observability.metrics import get_metrics

RECORD_TYPES = click.Choice(["project_info", "market_info"])


def _echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str, ensure_ascii=False))


def _echo_result(result: Any) -> None:
    """Print an AdminResult; exit non-zero on failure."""
    if result.success:
        _echo_json(result.data)
        return

    click.echo(click.style(f"Error ({result.status_code}): {result.error}", fg="red"), err=True)
    if result.data:
        _echo_json(result.data)
    sys.exit(1)


@asynccontextmanager
async def _admin_service(with_queue: bool = False) -> AsyncIterator[Any]:
    """AdminService wired to the database (and, if asked, the resolution queue)."""
    from src.admin.service import AdminService
    from src.collectors.registry import build_default_registry
    from src.ingestion.deduplication import IdempotentWriter
    from src.ingestion.repository import RawInfoRepository
    from src.resolution.queue import ResolutionQueue
    from src.services.ingestion_service import IngestionCoordinator
    from src.sources.service import SourcesService
    from src.storage.database import Database

    db = Database()
    await db.connect()
    queue = None

    try:
        if with_queue:
            queue = ResolutionQueue()
            await queue.connect()

        sources = SourcesService(db)
        raw_repo = RawInfoRepository(db)
        registry = build_default_registry()
        coordinator = IngestionCoordinator(
            sources, IdempotentWriter(raw_repo), queue=queue, registry=registry
        )
        yield AdminService(sources, raw_repo, registry, coordinator)
    finally:
        if queue is not None:
            await queue.close()
        await db.close()


def _install_signal_handlers(stop) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, lambda: asyncio.create_task(stop()))


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
def main(debug: bool) -> None:
    """Crypto Tracker - feed ingestion and LLM entity resolution."""
    setup_logging("DEBUG" if debug else None)


@main.command("init-db")
@click.option("--seed/--no-seed", default=True, help="Seed default sources into an empty catalog")
def init_db(seed: bool) -> None:
    """Initialize the database schema."""
    from src.entities.repository import ProjectRepository
    from src.ingestion.repository import RawInfoRepository
    from src.sources.service import SourcesService
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            sources = SourcesService(db)
            await sources.repository.create_table()
            await RawInfoRepository(db).create_table()
            await ProjectRepository(db).create_table()

            if seed:
                await sources.ensure_seeded()

            click.echo("Database initialized successfully")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=None, type=int, help="Metrics server port")
@click.option("--interval", default=None, type=float, help="Seconds between collection runs")
def ingest(metrics: bool, metrics_port: int | None, interval: float | None) -> None:
    """Run the collection loop until interrupted."""
    from src.collectors.registry import build_default_registry
    from src.ingestion.deduplication import IdempotentWriter
    from src.ingestion.repository import RawInfoRepository
    from src.resolution.queue import ResolutionQueue
    from src.services.ingestion_service import IngestionCoordinator
    from src.sources.service import SourcesService
    from src.storage.database import Database

    async def run():
        db = Database()
        queue = ResolutionQueue()
        await db.connect()
        await queue.connect()

        if metrics:
            get_metrics().start_server(port=metrics_port)

        coordinator = IngestionCoordinator(
            SourcesService(db),
            IdempotentWriter(RawInfoRepository(db)),
            queue=queue,
            registry=build_default_registry(),
        )
        _install_signal_handlers(coordinator.stop)

        try:
            await coordinator.run_forever(poll_interval=interval)
        finally:
            await queue.close()
            await db.close()

    asyncio.run(run())


@main.command()
@click.option("--source", "source_key", default=None, help="Collect only this source (e.g. market_info:rss:coindesk)")
def collect(source_key: str | None) -> None:
    """Collect due sources once, or one source regardless of schedule.

    Example:
        crypto-tracker collect
        crypto-tracker collect --source project_info:coingecko
    """

    async def run():
        async with _admin_service(with_queue=True) as admin:
            result = await admin.trigger_collection(source_key)
        _echo_result(result)

    asyncio.run(run())


@main.command()
@click.option("--metrics/--no-metrics", default=True, help="Enable metrics server")
@click.option("--metrics-port", default=8001, help="Metrics server port")
@click.option("--concurrency", default=None, type=int, help="Records resolved concurrently")
def resolve(metrics: bool, metrics_port: int, concurrency: int | None) -> None:
    """Run the resolution worker.

    Consumes record references from the resolution stream, runs the
    tool-use conversation for each, and applies the entity operations.

    Example:
        crypto-tracker resolve
        crypto-tracker resolve --concurrency 2
    """
    from src.resolution.config import ResolutionConfig
    from src.resolution.worker import ResolutionWorker

    async def run():
        config = ResolutionConfig()
        if concurrency is not None:
            config = config.model_copy(update={"max_concurrency": concurrency})
        worker = ResolutionWorker(config=config)

        if metrics:
            get_metrics().start_server(port=metrics_port)

        _install_signal_handlers(worker.stop)
        await worker.start()

    asyncio.run(run())


@main.command()
@click.option("--dry-run", is_flag=True, help="Show count without deleting")
def cleanup(dry_run: bool) -> None:
    """Remove market info records past their expiry.

    Example:
        crypto-tracker cleanup --dry-run
    """
    from src.ingestion.repository import RawInfoRepository
    from src.storage.database import Database

    async def run():
        db = Database()
        await db.connect()

        try:
            count = await RawInfoRepository(db).delete_expired(dry_run=dry_run)
            if dry_run:
                click.echo(f"\nDry run - would delete {count} expired records")
                click.echo("\nRun without --dry-run to actually delete.")
            else:
                click.echo(f"\nDeleted {count} expired records")
        finally:
            await db.close()

    asyncio.run(run())


@main.command()
def health() -> None:
    """Check health of all dependencies."""
    import structlog
    logger = structlog.get_logger()

    async def check():
        from src.resolution.config import ResolutionConfig

        results: dict[str, bool] = {}
        depths: dict[str, int] = {}

        try:
            from src.resolution.queue import ResolutionQueue
            queue = ResolutionQueue()
            await queue.connect()
            results["redis"] = await queue.health_check()
            if results["redis"]:
                depths = {
                    "stream": await queue.get_stream_length(),
                    "pending": await queue.get_pending_count(),
                    "dead_letter": await queue.get_dlq_length(),
                }
            await queue.close()
        except Exception as e:
            results["redis"] = False
            logger.error("Redis health check failed", error=str(e))

        try:
            from src.storage.database import Database
            db = Database()
            await db.connect()
            results["postgres"] = await db.health_check()
            await db.close()
        except Exception as e:
            results["postgres"] = False
            logger.error("Postgres health check failed", error=str(e))

        config = ResolutionConfig()
        key = config.openai_api_key if config.provider == "openai" else config.anthropic_api_key
        results[f"{config.provider}_configured"] = key is not None

        click.echo("\nHealth Check Results:")
        click.echo("-" * 40)

        all_healthy = True
        for name, status in results.items():
            icon = "✓" if status else "✗"
            color = "green" if status else "red"
            click.echo(click.style(f"  {icon} {name}: {status}", fg=color))
            if name in ("redis", "postgres") and not status:
                all_healthy = False

        if depths:
            click.echo("\nResolution queue:")
            for name, depth in depths.items():
                click.echo(f"  {name}: {depth}")

        click.echo("-" * 40)

        if all_healthy:
            click.echo(click.style("All core services healthy!", fg="green"))
            sys.exit(0)
        else:
            click.echo(click.style("Some services unhealthy!", fg="red"))
            sys.exit(1)

    asyncio.run(check())


# ── Source catalog ──────────────────────────────────────────


@main.group()
def sources() -> None:
    """Administer the source catalog."""


@sources.command("list")
@click.option("--type", "record_type", type=RECORD_TYPES, default=None, help="Filter by record type")
def sources_list(record_type: str | None) -> None:
    """List sources, ordered by type then priority."""

    async def run():
        async with _admin_service() as admin:
            result = await admin.list_sources(record_type)

        if not result.success:
            _echo_result(result)

        click.echo(f"\n{result.data['total']} sources")
        click.echo("=" * 72)
        for s in result.data["data"]:
            state = click.style("on ", fg="green") if s["enabled"] else click.style("off", fg="red")
            last = s.get("last_collect_status") or "never"
            click.echo(
                f"  {state} {s['type']}:{s['source_id']:20s} "
                f"p={s['priority']:<4} every {s['interval_minutes']}m  last={last}"
            )

    asyncio.run(run())


@sources.command("show")
@click.argument("source_key")
def sources_show(source_key: str) -> None:
    """Show one source, e.g. market_info:rss:coindesk."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.get_source(source_key))

    asyncio.run(run())


@sources.command("add")
@click.argument("payload_file", type=click.File("r"))
def sources_add(payload_file) -> None:
    """Create a source from a JSON file (or - for stdin)."""

    async def run():
        try:
            payload = json.load(payload_file)
        except json.JSONDecodeError as e:
            click.echo(click.style(f"Invalid JSON: {e}", fg="red"), err=True)
            sys.exit(1)

        async with _admin_service() as admin:
            _echo_result(await admin.create_source(payload))

    asyncio.run(run())


@sources.command("toggle")
@click.argument("source_key")
def sources_toggle(source_key: str) -> None:
    """Enable or disable a source."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.toggle_source(source_key))

    asyncio.run(run())


@sources.command("delete")
@click.argument("source_key")
@click.confirmation_option(prompt="Delete this source?")
def sources_delete(source_key: str) -> None:
    """Delete a source."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.delete_source(source_key))

    asyncio.run(run())


@sources.command("test")
@click.argument("source_key")
def sources_test(source_key: str) -> None:
    """Validate a source's collector config and probe its upstream."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.test_source(source_key))

    asyncio.run(run())


# ── Collected records ──────────────────────────────────────


@main.group()
def info() -> None:
    """Inspect collected project and market info records."""


@info.command("list")
@click.argument("record_type", type=RECORD_TYPES)
@click.option("--source", default=None, help="Filter by source id")
@click.option(
    "--status",
    default=None,
    type=click.Choice(["pending", "processing", "processed", "failed"]),
    help="Filter by processing status",
)
@click.option("--limit", default=20, help="Page size")
@click.option("--offset", default=0, help="Records to skip")
def info_list(
    record_type: str,
    source: str | None,
    status: str | None,
    limit: int,
    offset: int,
) -> None:
    """List records newest first."""

    async def run():
        async with _admin_service() as admin:
            result = await admin.list_records(
                record_type, source=source, status=status, limit=limit, offset=offset
            )

        if not result.success:
            _echo_result(result)

        page = result.data
        click.echo(f"\nShowing {len(page['data'])} of {page['total']} records")
        click.echo("=" * 72)
        for r in page["data"]:
            label = r.get("title") or r.get("name") or ""
            click.echo(f"  [{r['processed_status']:10s}] {r['id']}  {label[:60]}")
        if page["has_more"]:
            click.echo(f"\n  More: --offset {offset + limit}")

    asyncio.run(run())


@info.command("show")
@click.argument("record_type", type=RECORD_TYPES)
@click.argument("record_id")
def info_show(record_type: str, record_id: str) -> None:
    """Show one record."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.get_record(record_type, record_id))

    asyncio.run(run())


@info.command("stats")
@click.argument("record_type", type=RECORD_TYPES)
def info_stats(record_type: str) -> None:
    """Record counts per processing status."""

    async def run():
        async with _admin_service() as admin:
            _echo_result(await admin.record_stats(record_type))

    asyncio.run(run())


if __name__ == "__main__":
    main()
