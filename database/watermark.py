"""Persistence port for the ingestion watermarks.

One watermark is kept per ingestion job (``"swaps"``, ``"depth:BTC.BTC"``,
...). The scheduler reads them before a tick and advances only the ones whose
walk succeeded; nothing else touches them.
"""

from __future__ import annotations

import logging
from typing import Dict, Optional, Protocol

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine

from core.exceptions import StoreReadError, StoreWriteError
from database.models.history import IngestionWatermark

LOGGER = logging.getLogger(__name__)


class WatermarkStore(Protocol):
    async def read(self, key: str) -> Optional[int]:
        ...

    async def write(self, key: str, value: int) -> None:
        ...


class InMemoryWatermarkStore:
    """Process-local watermarks; lose state on restart.

    ``initial`` is returned for any key that has not been written yet.
    """

    def __init__(self, initial: Optional[int] = None) -> None:
        self._initial = initial
        self._values: Dict[str, int] = {}

    async def read(self, key: str) -> Optional[int]:
        return self._values.get(key, self._initial)

    async def write(self, key: str, value: int) -> None:
        self._values[key] = int(value)


class SQLWatermarkStore:
    """Watermarks persisted as rows of ``ingestion_watermarks`` keyed by job."""

    def __init__(self, engine: AsyncEngine) -> None:
        self._engine = engine

    async def read(self, key: str) -> Optional[int]:
        table = IngestionWatermark.__table__
        stmt = select(table.c.last_end_time).where(table.c.name == key)
        try:
            async with self._engine.connect() as conn:
                value = (await conn.execute(stmt)).scalar_one_or_none()
        except SQLAlchemyError as exc:
            raise StoreReadError(f"Reading watermark '{key}' failed: {exc}") from exc
        return int(value) if value is not None else None

    async def write(self, key: str, value: int) -> None:
        table = IngestionWatermark.__table__
        try:
            async with self._engine.begin() as conn:
                res = await conn.execute(
                    update(table)
                    .where(table.c.name == key)
                    .values(last_end_time=int(value))
                )
                if res.rowcount == 0:
                    await conn.execute(
                        table.insert().values(name=key, last_end_time=int(value))
                    )
        except SQLAlchemyError as exc:
            raise StoreWriteError(f"Writing watermark '{key}' failed: {exc}") from exc
        LOGGER.info("Watermark '%s' advanced to %d", key, int(value))
