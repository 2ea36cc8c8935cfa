from __future__ import annotations

import logging
import math
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd

from core.exceptions import NotFoundError, ValidationError
from core.families import Family, FamilyDescriptor, get_family
from core.intervals import bucket_starts, seconds_per_interval
from database.sql_engine import HistoryFilter
from history.query_params import HistoryQueryParams
from history.summaries import build_meta
from utils.time_utils import get_current_unix_utc

LOGGER = logging.getLogger(__name__)

_ROW_ID = "_row_id"


def _native(value: Any) -> Any:
    if value is None:
        return None
    if isinstance(value, (float, np.floating)):
        return None if math.isnan(value) else float(value)
    if isinstance(value, np.integer):
        return int(value)
    return value


class HistoryQueryEngine:
    """Bucketed, paginated reads over the mirrored history tables.

    Raw rows are scanned in storage order, assigned to fixed-width buckets,
    and collapsed so that each field keeps the last non-null value seen in
    its bucket. Sorting and pagination are applied to the collapsed buckets,
    and the ``meta`` block is computed over the returned page only.
    """

    def __init__(
        self, store: Any, clock: Callable[[], int] = get_current_unix_utc
    ) -> None:
        self._store = store
        self._clock = clock

    @staticmethod
    def sortable_fields(descriptor: FamilyDescriptor) -> Sequence[str]:
        return ("startTime", "endTime") + descriptor.output_names

    def _window(
        self,
        descriptor: FamilyDescriptor,
        params: HistoryQueryParams,
        pool: Optional[str],
    ) -> HistoryFilter:
        if params.from_time is not None:
            start_gte = int(params.from_time)
        else:
            length = seconds_per_interval(params.interval_name)
            start_gte = int(self._clock()) - params.effective_count * length
        return HistoryFilter(
            pool=pool if descriptor.pool_scoped else None,
            start_time_gte=start_gte,
            end_time_lte=params.to_time,
        )

    @staticmethod
    def group_buckets(
        descriptor: FamilyDescriptor, rows: List[Dict[str, Any]], interval: str
    ) -> pd.DataFrame:
        """Collapse raw rows into one line per bucket (per-field last value).

        Returned frame columns: ``startTime``, ``endTime``, every upstream
        field name of the family and ``_row_id`` (id of the bucket's last
        raw row), ordered by ``startTime`` ascending.
        """
        out_columns = ["startTime", "endTime", *descriptor.output_names, _ROW_ID]
        if not rows:
            return pd.DataFrame(columns=out_columns)

        length = seconds_per_interval(interval)
        frame = pd.DataFrame.from_records(rows)
        for column in descriptor.columns:
            if column not in frame.columns:
                frame[column] = np.nan
        frame["_bucket"] = bucket_starts(frame["end_time"], interval)
        frame[list(descriptor.columns)] = frame[list(descriptor.columns)].astype("float64")

        # last() skips nulls: each field keeps its last non-null value in the bucket.
        grouped = (
            frame.groupby("_bucket", sort=True)[[*descriptor.columns, "id"]]
            .last()
            .reset_index()
        )
        grouped = grouped.rename(
            columns={
                "_bucket": "startTime",
                "id": _ROW_ID,
                **{f.column: f.api_name for f in descriptor.fields},
            }
        )
        grouped["startTime"] = grouped["startTime"].astype("int64")
        grouped["endTime"] = grouped["startTime"] + length
        return grouped[out_columns]

    async def query(
        self,
        family: Family | str,
        params: HistoryQueryParams | Mapping[str, Any],
        pool: Optional[str] = None,
    ) -> Dict[str, Any]:
        descriptor = get_family(family)
        if not isinstance(params, HistoryQueryParams):
            params = HistoryQueryParams.parse(params)
        if descriptor.pool_scoped and not pool:
            raise ValidationError(f"A pool is required for {descriptor.name} history")
        if params.sort_by not in self.sortable_fields(descriptor):
            raise ValidationError(
                f"Invalid sort_by '{params.sort_by}' for {descriptor.name} history"
            )

        flt = self._window(descriptor, params, pool)
        rows = await self._store.scan(descriptor.family, flt)
        buckets = self.group_buckets(descriptor, rows, params.interval_name)
        total_records = len(buckets)

        sort_keys = [params.sort_by]
        if params.sort_by != "startTime":
            sort_keys.append("startTime")
        ordered = buckets.sort_values(
            by=sort_keys, ascending=params.ascending, kind="mergesort"
        )
        page = ordered.iloc[params.skip : params.skip + params.limit]
        if page.empty:
            raise NotFoundError(f"No {descriptor.name} history found")

        intervals: List[Dict[str, Any]] = []
        row_ids: List[int] = []
        for record in page.to_dict(orient="records"):
            row_ids.append(int(record.pop(_ROW_ID)))
            item = {key: _native(value) for key, value in record.items()}
            item["startTime"] = int(item["startTime"])
            item["endTime"] = int(item["endTime"])
            intervals.append(item)

        if descriptor.child_fields:
            children = await self._store.scan_pool_earnings(row_ids)
            for item, row_id in zip(intervals, row_ids):
                item["pools"] = [
                    {
                        "pool": child["pool"],
                        **{f.api_name: _native(child.get(f.column)) for f in descriptor.child_fields},
                    }
                    for child in children.get(row_id, [])
                ]

        LOGGER.debug(
            "%s query returned %d of %d buckets (page %d)",
            descriptor.name,
            len(intervals),
            total_records,
            params.page,
        )
        return {
            "intervals": intervals,
            "meta": build_meta(descriptor.family, intervals),
            "pagination": {
                "currentPage": params.page,
                "totalPages": params.total_pages(total_records),
                "totalRecords": total_records,
                "limit": params.limit,
                "sortBy": params.sort_by,
                "order": params.order,
            },
        }
