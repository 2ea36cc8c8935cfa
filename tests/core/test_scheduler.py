from __future__ import annotations

import asyncio
from typing import Any, List, Optional

import pytest

from core.exceptions import StoreWriteError, TransportError
from core.families import Family
from core.scheduler import IngestionScheduler, build_default_jobs, job_key
from core.walker import WalkReport, WalkState
from database.watermark import InMemoryWatermarkStore


class FakeWalker:
    def __init__(self, fail: Optional[dict] = None) -> None:
        self.fail = fail or {}
        self.calls: List[tuple] = []

    async def run(self, family, interval, cursor, pool=None):
        self.calls.append((family, interval, cursor, pool))
        await asyncio.sleep(0)
        if family in self.fail:
            raise self.fail[family]
        return WalkReport(
            family=Family(family).value,
            pool=pool,
            start_cursor=cursor,
            cursor=cursor + 3600,
            state=WalkState.DONE,
        )


class FailingWatermarkStore(InMemoryWatermarkStore):
    async def write(self, key: str, value: int) -> None:
        raise StoreWriteError("disk full")


def test_default_jobs_cover_every_family():
    jobs = build_default_jobs(["BTC.BTC", "ETH.ETH"])

    assert (Family.DEPTH, "BTC.BTC") in jobs
    assert (Family.DEPTH, "ETH.ETH") in jobs
    assert {f for f, _ in jobs} == set(Family)


@pytest.mark.asyncio
async def test_tick_walks_all_jobs_from_initial_watermark():
    walker = FakeWalker()
    watermark = InMemoryWatermarkStore()
    scheduler = IngestionScheduler(
        walker, watermark, initial_watermark=1000, clock=lambda: 5000
    )

    report = await scheduler.run_tick()

    assert report.ok
    assert set(report.watermarks.values()) == {1000}
    assert len(report.reports) == 4
    assert {c[2] for c in walker.calls} == {1000}
    assert {c[1] for c in walker.calls} == {"hour"}
    assert await watermark.read("runepool") == 5000


@pytest.mark.asyncio
async def test_persisted_watermark_takes_precedence():
    walker = FakeWalker()
    scheduler = IngestionScheduler(
        walker,
        InMemoryWatermarkStore(initial=4000),
        [(Family.SWAPS, None)],
        initial_watermark=1000,
        clock=lambda: 9000,
    )

    report = await scheduler.run_tick()

    assert walker.calls == [(Family.SWAPS, "hour", 4000, None)]
    assert report.tick_start == 9000


@pytest.mark.asyncio
async def test_family_failure_is_isolated_and_keeps_its_watermark():
    walker = FakeWalker(fail={Family.EARNINGS: TransportError("HTTP 500")})
    watermark = InMemoryWatermarkStore(initial=1000)
    scheduler = IngestionScheduler(walker, watermark, clock=lambda: 7200)

    report = await scheduler.run_tick()

    assert not report.ok
    assert report.failures == [("earnings", "TransportError: HTTP 500")]
    assert len(report.reports) == 3
    assert await watermark.read("swaps") == 7200
    assert await watermark.read("depth:BTC.BTC") == 7200
    assert await watermark.read("earnings") == 1000


@pytest.mark.asyncio
async def test_failed_family_rewalks_its_gap_next_tick():
    walker = FakeWalker(fail={Family.SWAPS: TransportError("HTTP 503")})
    now = {"t": 7200}
    watermark = InMemoryWatermarkStore(initial=3600)
    scheduler = IngestionScheduler(
        walker,
        watermark,
        [(Family.SWAPS, None), (Family.RUNEPOOL, None)],
        clock=lambda: now["t"],
    )

    await scheduler.run_tick()
    walker.fail = {}
    now["t"] = 10800
    report = await scheduler.run_tick()

    swaps_cursors = [c[2] for c in walker.calls if c[0] is Family.SWAPS]
    runepool_cursors = [c[2] for c in walker.calls if c[0] is Family.RUNEPOOL]
    assert swaps_cursors == [3600, 3600]
    assert runepool_cursors == [3600, 7200]
    assert report.ok
    assert await watermark.read("swaps") == 10800


@pytest.mark.asyncio
async def test_depth_pools_keep_separate_watermarks():
    walker = FakeWalker()
    watermark = InMemoryWatermarkStore(initial=0)
    await watermark.write("depth:ETH.ETH", 3600)
    scheduler = IngestionScheduler(
        walker,
        watermark,
        [(Family.DEPTH, "BTC.BTC"), (Family.DEPTH, "ETH.ETH")],
        clock=lambda: 7200,
    )

    report = await scheduler.run_tick()

    assert report.watermarks == {"depth:BTC.BTC": 0, "depth:ETH.ETH": 3600}
    assert sorted((c[3], c[2]) for c in walker.calls) == [("BTC.BTC", 0), ("ETH.ETH", 3600)]


def test_job_key():
    assert job_key(Family.SWAPS) == "swaps"
    assert job_key("depth", "BTC.BTC") == "depth:BTC.BTC"


@pytest.mark.asyncio
async def test_next_tick_starts_from_previous_tick_start():
    walker = FakeWalker()
    now = {"t": 7200}
    watermark = InMemoryWatermarkStore(initial=3600)
    scheduler = IngestionScheduler(
        walker, watermark, [(Family.RUNEPOOL, None)], clock=lambda: now["t"]
    )

    await scheduler.run_tick()
    now["t"] = 10800
    await scheduler.run_tick()

    assert [c[2] for c in walker.calls] == [3600, 7200]


@pytest.mark.asyncio
async def test_scheduled_tick_logs_watermark_failure(caplog):
    scheduler = IngestionScheduler(
        FakeWalker(), FailingWatermarkStore(initial=0), [(Family.SWAPS, None)], clock=lambda: 1
    )

    await scheduler._scheduled_tick()

    assert "Ingestion tick aborted" in caplog.text


@pytest.mark.asyncio
async def test_start_registers_hourly_cron_job():
    scheduler = IngestionScheduler(FakeWalker(), InMemoryWatermarkStore(), [])

    aps = scheduler.start()
    try:
        job = aps.get_job("midgard_ingestion_tick")
        assert job is not None
        fields = {f.name: str(f) for f in job.trigger.fields}
        assert fields["minute"] == "0"
        assert fields["second"] == "0"
        assert job.max_instances == 1
    finally:
        scheduler.shutdown()


@pytest.mark.asyncio
async def test_run_forever_returns_after_shutdown():
    scheduler = IngestionScheduler(FakeWalker(), InMemoryWatermarkStore(), [])

    task = asyncio.create_task(scheduler.run_forever())
    while scheduler._stop_event is None:
        await asyncio.sleep(0)
    scheduler.shutdown()
    await asyncio.wait_for(task, timeout=1)

    assert task.done()
