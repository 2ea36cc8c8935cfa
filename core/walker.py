"""Resumable backfill-then-follow walk over one Midgard history family.

A single ``run`` pages forward from a cursor to "now": fetch, normalize,
store, advance. It is safe to call again with any historical cursor since
duplicate rows are resolved at query time.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

from config import API_CLIENT_SETTINGS, INTER_PAGE_DELAY_SECONDS
from core.exceptions import DecodeError, MidgardHistoryError, TransportError
from core.families import Family, get_family
from core.normalizer import normalize_intervals
from utils.time_utils import format_timestamp, get_current_unix_utc, parse_unix_seconds

LOGGER = logging.getLogger(__name__)

_RETRY_CFG = API_CLIENT_SETTINGS.get("TENACITY_RETRY", {})


class WalkState(str, Enum):
    FETCHING = "fetching"
    NORMALIZING = "normalizing"
    STORING = "storing"
    ADVANCING = "advancing"
    DONE = "done"
    FAILED = "failed"


@dataclass
class WalkReport:
    family: str
    pool: Optional[str]
    start_cursor: int
    cursor: int
    pages: int = 0
    stored: int = 0
    store_errors: int = 0
    field_errors: int = 0
    dropped: int = 0
    state: WalkState = WalkState.FETCHING
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is WalkState.DONE


class IngestionWalker:
    """Drive the fetch/normalize/store/advance loop for any family.

    Parameters
    ----------
    client:
        Object exposing ``fetch_page(family, interval, from_time, pool=None)``.
    store:
        ``HistoryRecordStore`` (or anything with the same ``insert_many``).
    inter_page_delay:
        Seconds to pause between consecutive pages.
    clock:
        Returns the current unix time in seconds.
    max_attempts:
        Fetch attempts per page before the walk is declared failed.
    """

    def __init__(
        self,
        client: Any,
        store: Any,
        *,
        inter_page_delay: float = INTER_PAGE_DELAY_SECONDS,
        clock: Callable[[], int] = get_current_unix_utc,
        max_attempts: int = int(_RETRY_CFG.get("STOP_MAX_ATTEMPT", 3)),
        retry_wait_min: float = float(_RETRY_CFG.get("WAIT_MIN", 1)),
        retry_wait_max: float = float(_RETRY_CFG.get("WAIT_MAX", 30)),
    ) -> None:
        self._client = client
        self._store = store
        self._delay = max(0.0, float(inter_page_delay))
        self._clock = clock
        self._max_attempts = max(1, int(max_attempts))
        self._wait = wait_random_exponential(
            multiplier=retry_wait_min, min=retry_wait_min, max=retry_wait_max
        )

    async def _sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)

    async def _fetch_page(
        self, family: Family, interval: str, cursor: int, pool: Optional[str]
    ) -> Any:
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self._max_attempts),
            wait=self._wait,
            retry=retry_if_exception_type(TransportError),
            sleep=self._sleep,
            reraise=True,
        ):
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    LOGGER.warning(
                        "Retrying %s page from %d (attempt %d/%d)",
                        family.value,
                        cursor,
                        attempt.retry_state.attempt_number,
                        self._max_attempts,
                    )
                return await self._client.fetch_page(
                    family, interval, cursor, pool=pool
                )

    @staticmethod
    def _page_end_time(page: Any) -> int:
        try:
            return parse_unix_seconds(page.meta.end_time)
        except (TypeError, ValueError) as exc:
            raise DecodeError(
                f"Unparsable meta.endTime {page.meta.end_time!r}"
            ) from exc

    async def run(
        self,
        family: Family | str,
        interval: str,
        cursor: int,
        pool: Optional[str] = None,
    ) -> WalkReport:
        """Walk ``family`` from ``cursor`` until upstream reaches now.

        Transport and decode failures mark the walk FAILED and are re-raised
        after logging so the caller can isolate them.
        """
        descriptor = get_family(family)
        cursor = int(cursor)
        report = WalkReport(
            family=descriptor.name, pool=pool, start_cursor=cursor, cursor=cursor
        )
        LOGGER.info(
            "Starting %s walk from %s (interval=%s, pool=%s)",
            descriptor.name,
            format_timestamp(cursor),
            interval,
            pool,
        )

        try:
            while True:
                report.state = WalkState.FETCHING
                page = await self._fetch_page(
                    descriptor.family, interval, report.cursor, pool
                )
                if not page.intervals:
                    report.state = WalkState.DONE
                    break
                report.pages += 1

                report.state = WalkState.NORMALIZING
                batch = normalize_intervals(descriptor, page.intervals, pool=pool)
                report.field_errors += batch.field_error_count
                report.dropped += batch.dropped_count

                report.state = WalkState.STORING
                result = await self._store.insert_many(descriptor.family, batch.records)
                report.stored += result.succeeded
                report.store_errors += result.failed + getattr(result, "pools_failed", 0)

                report.state = WalkState.ADVANCING
                end_time = self._page_end_time(page)
                previous = report.cursor
                report.cursor = max(previous, end_time)
                if end_time >= self._clock():
                    report.state = WalkState.DONE
                    break
                if end_time <= previous:
                    # Refetching from the same cursor would return the same page.
                    raise DecodeError(
                        f"meta.endTime {end_time} does not advance past cursor {previous}"
                    )
                await self._sleep(self._delay)
        except MidgardHistoryError as exc:
            report.state = WalkState.FAILED
            report.error = f"{exc.__class__.__name__}: {exc}"
            LOGGER.error(
                "%s walk failed at cursor %d after %d pages: %s",
                descriptor.name,
                report.cursor,
                report.pages,
                report.error,
            )
            raise

        LOGGER.info(
            "Finished %s walk: %d pages, %d stored, %d store errors, "
            "%d field errors, %d dropped, cursor=%s",
            descriptor.name,
            report.pages,
            report.stored,
            report.store_errors,
            report.field_errors,
            report.dropped,
            format_timestamp(report.cursor),
        )
        return report
