from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine

from core.exceptions import StoreReadError, StoreWriteError
from core.families import Family
from database.sql_engine import HistoryFilter, HistoryRecordStore

HOUR = 3600


def _runepool(start: int, count: float = 1.0, **extra):
    record = {
        "start_time": start,
        "end_time": start + HOUR,
        "depth": None,
        "count": count,
        "units": 10.0,
    }
    record.update(extra)
    return record


def _earnings(start: int, pools):
    return {
        "start_time": start,
        "end_time": start + HOUR,
        "block_rewards": 1.0,
        "avg_node_count": 100.0,
        "bonding_earnings": 2.0,
        "liquidity_earnings": 3.0,
        "liquidity_fees": 4.0,
        "rune_price_usd": 1.5,
        "pools": pools,
    }


def _pool(name: str, start: int, **extra):
    child = {
        "pool": name,
        "start_time": start,
        "end_time": start + HOUR,
        "asset_liquidity_fees": 1.0,
        "rune_liquidity_fees": 2.0,
        "total_liquidity_fees_rune": 3.0,
        "saver_earning": 4.0,
        "rewards": 5.0,
        "earnings": 6.0,
    }
    child.update(extra)
    return child


@pytest_asyncio.fixture
async def store(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/history.db")
    history_store = HistoryRecordStore(engine)
    await history_store.create_schema()
    yield history_store
    await engine.dispose()


@pytest.mark.asyncio
async def test_insert_many_and_scan_in_storage_order(store):
    records = [_runepool(2 * HOUR, 3.0), _runepool(0, 1.0), _runepool(HOUR, 2.0)]

    result = await store.insert_many(Family.RUNEPOOL, records)
    rows = await store.scan(Family.RUNEPOOL)

    assert result.succeeded == 3
    assert result.failed == 0
    assert [r["count"] for r in rows] == [3.0, 1.0, 2.0]
    assert rows[0]["depth"] is None


@pytest.mark.asyncio
async def test_duplicates_are_appended(store):
    await store.insert_many("runepool", [_runepool(0, 1.0)])
    await store.insert_many("runepool", [_runepool(0, 5.0)])

    assert await store.count("runepool") == 2


@pytest.mark.asyncio
async def test_bad_record_does_not_abort_batch(store):
    bad = _runepool(HOUR)
    del bad["count"]

    result = await store.insert_many(Family.RUNEPOOL, [_runepool(0), bad, _runepool(2 * HOUR)])

    assert result.succeeded == 2
    assert result.failed == 1
    index, error = result.errors[0]
    assert index == 1
    assert isinstance(error, StoreWriteError)
    assert await store.count(Family.RUNEPOOL) == 2


@pytest.mark.asyncio
async def test_empty_batch_is_a_no_op(store):
    result = await store.insert_many(Family.SWAPS, [])

    assert result.succeeded == 0
    assert result.failed == 0


@pytest.mark.asyncio
async def test_scan_filters(store):
    depth = {
        "asset_depth": 1.0,
        "rune_depth": 1.0,
        "asset_price": 1.0,
        "asset_price_usd": 1.0,
        "liquidity_units": 1.0,
        "members_count": 1.0,
        "synth_units": 1.0,
        "synth_supply": 1.0,
        "units": 1.0,
        "luvi": 1.0,
    }
    records = [
        {"pool": "BTC.BTC", "start_time": 0, "end_time": HOUR, **depth},
        {"pool": "BTC.BTC", "start_time": HOUR, "end_time": 2 * HOUR, **depth},
        {"pool": "BTC.BTC", "start_time": 2 * HOUR, "end_time": 3 * HOUR, **depth},
        {"pool": "ETH.ETH", "start_time": HOUR, "end_time": 2 * HOUR, **depth},
    ]
    await store.insert_many(Family.DEPTH, records)

    flt = HistoryFilter(pool="BTC.BTC", start_time_gte=HOUR, end_time_lte=2 * HOUR)
    rows = await store.scan(Family.DEPTH, flt)

    assert [(r["pool"], r["start_time"]) for r in rows] == [("BTC.BTC", HOUR)]
    assert await store.count(Family.DEPTH, HistoryFilter(pool="ETH.ETH")) == 1


@pytest.mark.asyncio
async def test_earnings_children_reference_their_parent(store):
    records = [
        _earnings(0, [_pool("BTC.BTC", 0), _pool("ETH.ETH", 0)]),
        _earnings(HOUR, [_pool("BTC.BTC", HOUR)]),
    ]

    result = await store.insert_many(Family.EARNINGS, records)
    parents = await store.scan(Family.EARNINGS)
    children = await store.scan_pool_earnings([p["id"] for p in parents])

    assert result.succeeded == 2
    assert result.pools_succeeded == 3
    assert [c["pool"] for c in children[parents[0]["id"]]] == ["BTC.BTC", "ETH.ETH"]
    assert [c["pool"] for c in children[parents[1]["id"]]] == ["BTC.BTC"]


@pytest.mark.asyncio
async def test_child_failure_keeps_parent(store):
    broken = _pool("ETH.ETH", 0)
    del broken["rewards"]

    result = await store.insert_earnings([_earnings(0, [_pool("BTC.BTC", 0), broken])])

    assert result.succeeded == 1
    assert result.pools_succeeded == 1
    assert result.pools_failed == 1
    assert result.pool_errors[0][0] == 0
    assert await store.count(Family.EARNINGS) == 1


@pytest.mark.asyncio
async def test_scan_pool_earnings_with_no_ids(store):
    assert await store.scan_pool_earnings([]) == {}


@pytest.mark.asyncio
async def test_read_failure_is_wrapped(tmp_path):
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/empty.db")
    try:
        with pytest.raises(StoreReadError):
            await HistoryRecordStore(engine).scan(Family.SWAPS)
    finally:
        await engine.dispose()
