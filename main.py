from __future__ import annotations

import asyncio
import logging
from typing import Optional, Tuple

import aiohttp
import typer
from sqlalchemy.ext.asyncio import AsyncEngine

from core.config_loader import Settings, load_settings
from core.exceptions import MidgardHistoryError
from core.families import Family
from core.scheduler import IngestionScheduler, build_default_jobs
from core.walker import IngestionWalker
from data_ingestion.api.midgard_client import MidgardClient
from database.models.base import get_async_engine
from database.sql_engine import HistoryRecordStore
from database.watermark import SQLWatermarkStore
from utils.logger import setup_logger
from utils.time_utils import format_timestamp

app = typer.Typer(help="Mirror Midgard history into a local store and serve it.")

LOGGER = logging.getLogger("midgard_history.main")


def build_scheduler(
    settings: Settings,
    engine: AsyncEngine,
    session: aiohttp.ClientSession,
) -> Tuple[IngestionScheduler, HistoryRecordStore]:
    """Wire client, store, walker and watermark into a scheduler."""
    store = HistoryRecordStore(engine)
    client = MidgardClient(session, base_url=settings.midgard_base_url)
    walker = IngestionWalker(
        client, store, inter_page_delay=settings.inter_page_delay_seconds
    )
    scheduler = IngestionScheduler(
        walker,
        SQLWatermarkStore(engine),
        build_default_jobs(settings.depth_pools),
        interval=settings.ingestion_interval,
        initial_watermark=settings.initial_watermark,
    )
    return scheduler, store


async def _serve_async(run_now: bool) -> None:  # pragma: no cover - process wiring
    from api.http_app import create_app, start_http_server
    from history.query_engine import HistoryQueryEngine

    settings = load_settings()
    setup_logger(settings)
    LOGGER.info("System starting up…")

    engine = get_async_engine(settings)
    runner = None
    try:
        async with aiohttp.ClientSession() as session:
            scheduler, store = build_scheduler(settings, engine, session)
            await store.create_schema()
            runner = await start_http_server(
                create_app(HistoryQueryEngine(store)),
                settings.http_host,
                settings.http_port,
            )
            await scheduler.run_forever(run_immediately=run_now)
    finally:
        LOGGER.info("Shutdown initiated; stopping services…")
        if runner is not None:
            await runner.cleanup()
        await engine.dispose()
        LOGGER.info("Shutdown complete.")


async def _ingest_once_async() -> int:
    settings = load_settings()
    setup_logger(settings)
    engine = get_async_engine(settings)
    try:
        async with aiohttp.ClientSession() as session:
            scheduler, store = build_scheduler(settings, engine, session)
            await store.create_schema()
            report = await scheduler.run_tick()
    finally:
        await engine.dispose()
    for label, error in report.failures:
        LOGGER.error("Job '%s' failed: %s", label, error)
    return 0 if report.ok else 1


async def _backfill_async(
    family: Family, from_time: int, pool: Optional[str], interval: Optional[str]
) -> int:
    settings = load_settings()
    setup_logger(settings)
    engine = get_async_engine(settings)
    try:
        async with aiohttp.ClientSession() as session:
            store = HistoryRecordStore(engine)
            await store.create_schema()
            client = MidgardClient(session, base_url=settings.midgard_base_url)
            walker = IngestionWalker(
                client, store, inter_page_delay=settings.inter_page_delay_seconds
            )
            try:
                report = await walker.run(
                    family, interval or settings.ingestion_interval, from_time, pool=pool
                )
            except MidgardHistoryError:
                return 1
    finally:
        await engine.dispose()
    LOGGER.info(
        "Backfill of %s finished at %s (%d records stored)",
        report.family,
        format_timestamp(report.cursor),
        report.stored,
    )
    return 0


async def _init_db_async() -> None:
    settings = load_settings()
    setup_logger(settings)
    engine = get_async_engine(settings)
    try:
        await HistoryRecordStore(engine).create_schema()
    finally:
        await engine.dispose()
    LOGGER.info("History tables created at %s", engine.url.render_as_string(hide_password=True))


@app.command()
def serve(
    run_now: bool = typer.Option(
        False, "--run-now", help="Run one ingestion tick immediately on startup."
    ),
) -> None:  # pragma: no cover - process wiring
    """Start the hourly ingestion scheduler and the history HTTP API."""
    try:
        asyncio.run(_serve_async(run_now))
    except KeyboardInterrupt:
        pass


@app.command("ingest-once")
def ingest_once() -> None:
    """Run a single ingestion tick from the stored watermark and advance it."""
    raise typer.Exit(code=asyncio.run(_ingest_once_async()))


@app.command()
def backfill(
    family: Family = typer.Option(..., "--family", help="History family to walk."),
    from_time: int = typer.Option(..., "--from", help="Start cursor (unix seconds)."),
    pool: Optional[str] = typer.Option(None, "--pool", help="Pool, required for depth."),
    interval: Optional[str] = typer.Option(None, "--interval", help="Upstream interval."),
) -> None:
    """Walk one family from --from up to now without touching the watermark."""
    if family is Family.DEPTH and not pool:
        raise typer.BadParameter("--pool is required for depth history")
    raise typer.Exit(code=asyncio.run(_backfill_async(family, from_time, pool, interval)))


@app.command("init-db")
def init_db() -> None:
    """Create the history tables if they do not exist."""
    asyncio.run(_init_db_async())


if __name__ == "__main__":
    app()
