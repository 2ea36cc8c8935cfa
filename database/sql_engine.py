from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import Table, func, insert, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine

from core.exceptions import StoreReadError, StoreWriteError
from core.families import Family
from database.models.base import Base
from database.models.history import (
    DepthPriceHistory,
    EarningsHistory,
    EarningsHistoryPool,
    RunePoolMembersUnitsHistory,
    SwapsHistory,
)

LOGGER = logging.getLogger(__name__)

MODEL_BY_FAMILY = {
    Family.DEPTH: DepthPriceHistory,
    Family.SWAPS: SwapsHistory,
    Family.EARNINGS: EarningsHistory,
    Family.RUNEPOOL: RunePoolMembersUnitsHistory,
}


@dataclass(frozen=True)
class HistoryFilter:
    """Row filter shared by scan and count."""

    pool: Optional[str] = None
    start_time_gte: Optional[int] = None
    end_time_lte: Optional[int] = None


@dataclass
class InsertResult:
    succeeded: int = 0
    errors: List[Tuple[int, StoreWriteError]] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.errors)


@dataclass
class EarningsInsertResult(InsertResult):
    pools_succeeded: int = 0
    pool_errors: List[Tuple[int, StoreWriteError]] = field(default_factory=list)

    @property
    def pools_failed(self) -> int:
        return len(self.pool_errors)


class HistoryRecordStore:
    """Append-only asynchronous store for normalized history records.

    Designed for dependency injection: callers provide an existing SQLAlchemy
    AsyncEngine. Each public call runs in its own transaction(s); no state is
    shared across calls, so the ingestion scheduler and the query path can
    use one instance concurrently.
    """

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def create_schema(self) -> None:
        """Create all history tables (no-op for tables that already exist)."""
        async with self._engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)

    @staticmethod
    def _table(family: Family | str) -> Table:
        return MODEL_BY_FAMILY[Family(family)].__table__

    @staticmethod
    def _row(table: Table, record: Mapping[str, Any]) -> Dict[str, Any]:
        columns = {c.name for c in table.columns if c.name != "id"}
        return {k: v for k, v in record.items() if k in columns}

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #
    async def insert_many(
        self, family: Family | str, records: Sequence[Mapping[str, Any]]
    ) -> InsertResult:
        """Insert records with unordered, partial-failure semantics.

        The whole batch is tried as one multi-row insert first. If that
        fails, every record is retried in its own transaction so a single
        bad row cannot take the rest of the batch down. Failures are
        returned and logged, never raised.
        """
        family = Family(family)
        if family is Family.EARNINGS:
            return await self.insert_earnings(records)

        table = self._table(family)
        rows = [self._row(table, r) for r in records]
        result = InsertResult()
        if not rows:
            return result

        try:
            async with self._engine.begin() as conn:
                await conn.execute(insert(table), rows)
            result.succeeded = len(rows)
        except SQLAlchemyError as exc:
            LOGGER.warning(
                "Bulk insert into %s failed (%s); retrying record by record",
                table.name,
                exc.__class__.__name__,
            )
            async with self._engine.connect() as conn:
                for index, row in enumerate(rows):
                    try:
                        await self._insert_one(conn, table, row)
                        result.succeeded += 1
                    except StoreWriteError as err:
                        result.errors.append((index, err))

        for index, err in result.errors:
            LOGGER.error("Error inserting %s record %d: %s", family.value, index, err)
        LOGGER.info(
            "Batch complete: %d %s records inserted successfully, %d failed",
            result.succeeded,
            family.value,
            result.failed,
        )
        return result

    async def insert_earnings(
        self, records: Sequence[Mapping[str, Any]]
    ) -> EarningsInsertResult:
        """Insert earnings parents one by one, then their pool children.

        Each parent needs its generated id before its children can reference
        it. A child failure is reported but does not roll back the parent.
        """
        parent_table = self._table(Family.EARNINGS)
        child_table = EarningsHistoryPool.__table__
        result = EarningsInsertResult()
        if not records:
            return result

        async with self._engine.connect() as conn:
            for index, record in enumerate(records):
                try:
                    parent_id = await self._insert_one(
                        conn, parent_table, self._row(parent_table, record)
                    )
                except StoreWriteError as err:
                    result.errors.append((index, err))
                    LOGGER.error("Error inserting earnings record %d: %s", index, err)
                    continue
                result.succeeded += 1

                for child in record.get("pools") or []:
                    row = self._row(child_table, child)
                    row["earnings_id"] = parent_id
                    try:
                        await self._insert_one(conn, child_table, row)
                        result.pools_succeeded += 1
                    except StoreWriteError as err:
                        result.pool_errors.append((index, err))
                        LOGGER.error(
                            "Error inserting pool earnings for record %d: %s", index, err
                        )

        LOGGER.info(
            "Batch complete: %d earnings records inserted successfully, %d failed",
            result.succeeded,
            result.failed,
        )
        LOGGER.info(
            "Pool entries: %d inserted successfully, %d failed",
            result.pools_succeeded,
            result.pools_failed,
        )
        return result

    @staticmethod
    async def _insert_one(
        conn: AsyncConnection, table: Table, row: Mapping[str, Any]
    ) -> Any:
        try:
            async with conn.begin():
                res = await conn.execute(insert(table).values(**row))
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"{table.name}: {exc.__class__.__name__}: {exc}") from exc
        pk = res.inserted_primary_key
        return pk[0] if pk else None

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #
    @staticmethod
    def _where(table: Table, flt: HistoryFilter) -> List[Any]:
        clauses: List[Any] = []
        if flt.pool is not None and "pool" in table.c:
            clauses.append(table.c.pool == flt.pool)
        if flt.start_time_gte is not None:
            clauses.append(table.c.start_time >= flt.start_time_gte)
        if flt.end_time_lte is not None:
            clauses.append(table.c.end_time <= flt.end_time_lte)
        return clauses

    async def scan(
        self, family: Family | str, flt: HistoryFilter = HistoryFilter()
    ) -> List[Dict[str, Any]]:
        """Return matching rows in natural storage (insertion) order."""
        table = self._table(family)
        stmt = select(table).where(*self._where(table, flt)).order_by(table.c.id)
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                return [dict(row._mapping) for row in result]
        except SQLAlchemyError as exc:
            raise StoreReadError(f"Scan of {table.name} failed: {exc}") from exc

    async def count(
        self, family: Family | str, flt: HistoryFilter = HistoryFilter()
    ) -> int:
        table = self._table(family)
        stmt = select(func.count()).select_from(table).where(*self._where(table, flt))
        try:
            async with self._engine.connect() as conn:
                return int((await conn.execute(stmt)).scalar_one())
        except SQLAlchemyError as exc:
            raise StoreReadError(f"Count of {table.name} failed: {exc}") from exc

    async def scan_pool_earnings(
        self, earnings_ids: Iterable[int]
    ) -> Dict[int, List[Dict[str, Any]]]:
        """Fetch pool breakdown rows grouped by their parent earnings id."""
        ids = sorted({int(i) for i in earnings_ids})
        grouped: Dict[int, List[Dict[str, Any]]] = {i: [] for i in ids}
        if not ids:
            return grouped
        table = EarningsHistoryPool.__table__
        stmt = (
            select(table)
            .where(table.c.earnings_id.in_(ids))
            .order_by(table.c.earnings_id, table.c.id)
        )
        try:
            async with self._engine.connect() as conn:
                result = await conn.execute(stmt)
                for row in result:
                    data = dict(row._mapping)
                    grouped[data["earnings_id"]].append(data)
        except SQLAlchemyError as exc:
            raise StoreReadError(f"Scan of {table.name} failed: {exc}") from exc
        return grouped
