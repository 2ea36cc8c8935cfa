from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import (
    DEPTH_POOLS,
    INGESTION_INTERVAL,
    INITIAL_WATERMARK,
    SCHEDULER_MISFIRE_GRACE_SECONDS,
)
from core.families import Family
from core.walker import WalkReport
from utils.time_utils import format_timestamp, get_current_unix_utc

LOGGER = logging.getLogger(__name__)

Job = Tuple[Family, Optional[str]]


def build_default_jobs(depth_pools: Iterable[str] = DEPTH_POOLS) -> List[Job]:
    """One depth job per pool plus the three pool-independent families."""
    jobs: List[Job] = [(Family.DEPTH, pool) for pool in depth_pools]
    jobs.extend(
        [
            (Family.SWAPS, None),
            (Family.EARNINGS, None),
            (Family.RUNEPOOL, None),
        ]
    )
    return jobs


def job_key(family: Family | str, pool: Optional[str] = None) -> str:
    """Watermark key and log label of one job, e.g. ``depth:BTC.BTC``."""
    name = Family(family).value
    return f"{name}:{pool}" if pool else name


@dataclass
class TickReport:
    tick_start: int
    watermarks: Dict[str, int] = field(default_factory=dict)
    reports: List[WalkReport] = field(default_factory=list)
    failures: List[Tuple[str, str]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class IngestionScheduler:
    """Hourly driver running one walker per job from that job's watermark.

    Every tick reads the watermark of each job, walks all jobs concurrently,
    and then stores the tick's start time as the new watermark of each job
    that succeeded. A failed job keeps its old watermark, so the next tick
    walks its gap again.
    """

    def __init__(
        self,
        walker: Any,
        watermark_store: Any,
        jobs: Optional[Sequence[Job]] = None,
        *,
        interval: str = INGESTION_INTERVAL,
        initial_watermark: int = INITIAL_WATERMARK,
        clock: Callable[[], int] = get_current_unix_utc,
    ) -> None:
        self._walker = walker
        self._watermark_store = watermark_store
        self.jobs: List[Job] = list(jobs) if jobs is not None else build_default_jobs()
        self.interval = interval
        self._initial_watermark = int(initial_watermark)
        self._clock = clock
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def run_tick(self) -> TickReport:
        tick_start = int(self._clock())
        report = TickReport(tick_start=tick_start)
        for family, pool in self.jobs:
            key = job_key(family, pool)
            stored = await self._watermark_store.read(key)
            report.watermarks[key] = self._initial_watermark if stored is None else stored
        LOGGER.info(
            "Ingestion tick started at %s; walking %d jobs",
            format_timestamp(tick_start),
            len(self.jobs),
        )

        results = await asyncio.gather(
            *(
                self._walker.run(
                    family, self.interval, report.watermarks[job_key(family, pool)], pool=pool
                )
                for family, pool in self.jobs
            ),
            return_exceptions=True,
        )

        succeeded: List[str] = []
        for (family, pool), result in zip(self.jobs, results):
            key = job_key(family, pool)
            if isinstance(result, BaseException):
                report.failures.append((key, f"{result.__class__.__name__}: {result}"))
                LOGGER.error(
                    "Job '%s' failed this tick; it resumes from %s next tick: %s",
                    key,
                    format_timestamp(report.watermarks[key]),
                    result,
                )
            else:
                report.reports.append(result)
                succeeded.append(key)

        for key in succeeded:
            await self._watermark_store.write(key, tick_start)
        if report.failures:
            LOGGER.warning(
                "Ingestion tick completed with %d failures", len(report.failures)
            )
        else:
            LOGGER.info("Ingestion tick completed successfully for all jobs.")
        return report

    async def _scheduled_tick(self) -> None:
        try:
            await self.run_tick()
        except Exception:  # noqa: BLE001
            # Watermark persistence failed; unwritten jobs resume from their old value.
            LOGGER.exception("Ingestion tick aborted")

    def start(self) -> AsyncIOScheduler:
        """Register the hourly cron job and start the scheduler."""
        if self._scheduler is not None:
            return self._scheduler
        scheduler = AsyncIOScheduler(timezone="UTC")
        scheduler.add_job(
            self._scheduled_tick,
            "cron",
            minute=0,
            second=0,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=SCHEDULER_MISFIRE_GRACE_SECONDS,
            id="midgard_ingestion_tick",
        )
        scheduler.start()
        self._scheduler = scheduler
        LOGGER.info("Ingestion scheduler started (hourly at minute 0 UTC)")
        return scheduler

    def shutdown(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            LOGGER.info("Ingestion scheduler stopped")

    async def run_forever(self, run_immediately: bool = False) -> None:
        """Start the cron job and block until ``shutdown`` is called."""
        self._stop_event = asyncio.Event()
        self.start()
        if run_immediately:
            await self._scheduled_tick()
        try:
            await self._stop_event.wait()
        finally:
            self.shutdown()
