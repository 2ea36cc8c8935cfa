"""Convert raw Midgard intervals (decimal strings) into typed records.

String numerics never leave this module: every record produced here carries
``int`` timestamps and ``float`` (or ``None`` for nullable fields) values.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from core.exceptions import FieldParseError, KeyParseError
from core.families import FamilyDescriptor, FieldSpec
from utils.time_utils import parse_unix_seconds

LOGGER = logging.getLogger(__name__)


@dataclass
class NormalizedBatch:
    """Outcome of normalizing one upstream page."""

    records: List[Dict[str, Any]] = field(default_factory=list)
    field_errors: List[FieldParseError] = field(default_factory=list)
    dropped: List[Tuple[int, KeyParseError]] = field(default_factory=list)

    @property
    def field_error_count(self) -> int:
        return len(self.field_errors)

    @property
    def dropped_count(self) -> int:
        return len(self.dropped)


def parse_float(value: Any) -> float:
    """Parse an upstream decimal string.

    Empty or missing values are 0.0. Malformed values raise FieldParseError
    so the caller can count them before substituting 0.0.
    """
    if value is None:
        return 0.0
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    text = str(value).strip()
    if not text:
        return 0.0
    try:
        parsed = float(text)
    except ValueError as exc:
        raise FieldParseError(f"Unparsable numeric value {value!r}") from exc
    if math.isnan(parsed) or math.isinf(parsed):
        raise FieldParseError(f"Non-finite numeric value {value!r}")
    return parsed


def _parse_fields(
    raw: Mapping[str, Any],
    specs: Sequence[FieldSpec],
    errors: List[FieldParseError],
) -> Dict[str, Optional[float]]:
    values: Dict[str, Optional[float]] = {}
    for spec in specs:
        raw_value = raw.get(spec.api_name)
        if spec.nullable and (raw_value is None or str(raw_value).strip() == ""):
            values[spec.column] = None
            continue
        try:
            values[spec.column] = parse_float(raw_value)
        except FieldParseError as exc:
            errors.append(FieldParseError(f"{spec.api_name}: {exc}"))
            values[spec.column] = None if spec.nullable else 0.0
    return values


def _parse_keys(raw: Mapping[str, Any]) -> Tuple[int, int]:
    try:
        start_time = parse_unix_seconds(raw.get("startTime"))
        end_time = parse_unix_seconds(raw.get("endTime"))
    except (TypeError, ValueError) as exc:
        raise KeyParseError(f"Invalid startTime/endTime: {exc}") from exc
    if start_time >= end_time:
        raise KeyParseError(
            f"startTime {start_time} is not before endTime {end_time}"
        )
    return start_time, end_time


def normalize_intervals(
    descriptor: FamilyDescriptor,
    intervals: Sequence[Mapping[str, Any]],
    pool: Optional[str] = None,
) -> NormalizedBatch:
    """Normalize one page of raw intervals for ``descriptor``.

    Records with unparsable keys are dropped; a bad numeric field is
    recorded as an error and replaced by 0.0, the record is kept.
    """
    batch = NormalizedBatch()
    for index, raw in enumerate(intervals):
        try:
            start_time, end_time = _parse_keys(raw)
        except KeyParseError as exc:
            batch.dropped.append((index, exc))
            continue

        record: Dict[str, Any] = {"start_time": start_time, "end_time": end_time}
        if descriptor.pool_scoped:
            record["pool"] = pool
        record.update(_parse_fields(raw, descriptor.fields, batch.field_errors))

        if descriptor.child_fields:
            children = []
            for child in raw.get("pools") or []:
                child_record: Dict[str, Any] = {
                    "pool": str(child.get("pool", "")).strip(),
                    "start_time": start_time,
                    "end_time": end_time,
                }
                child_record.update(
                    _parse_fields(child, descriptor.child_fields, batch.field_errors)
                )
                children.append(child_record)
            record["pools"] = children

        batch.records.append(record)

    if batch.field_errors or batch.dropped:
        LOGGER.warning(
            "Normalized %s page with %d field errors and %d dropped records",
            descriptor.name,
            batch.field_error_count,
            batch.dropped_count,
        )
    return batch
