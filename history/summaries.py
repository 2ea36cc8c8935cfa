"""Per-family ``meta`` blocks computed over one returned page of buckets.

Every builder receives the projected intervals in their final (sorted and
paginated) order; "first" and "last" refer to that order.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

from core.families import Family, get_family

EARNINGS_SUMMED_FIELDS = (
    "blockRewards",
    "bondingEarnings",
    "liquidityEarnings",
    "liquidityFees",
)
EARNINGS_AVERAGED_FIELDS = ("avgNodeCount", "runePriceUSD")


def _num(value: Optional[float]) -> float:
    return float(value) if value is not None else 0.0


def decimal_str(value: Optional[float]) -> str:
    """Render a float the way Midgard renders decimal strings."""
    number = _num(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def depth_meta(intervals: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    first, last = intervals[0], intervals[-1]
    return {
        "startTime": first["startTime"],
        "endTime": last["endTime"],
        "startAssetDepth": decimal_str(first.get("assetDepth")),
        "endAssetDepth": decimal_str(last.get("assetDepth")),
        "startRuneDepth": decimal_str(first.get("runeDepth")),
        "endRuneDepth": decimal_str(last.get("runeDepth")),
        "startLPUnits": decimal_str(first.get("units")),
        "endLPUnits": decimal_str(last.get("units")),
        "startMemberCount": int(_num(first.get("membersCount"))),
        "endMemberCount": int(_num(last.get("membersCount"))),
        "startSynthUnits": decimal_str(first.get("synthUnits")),
        "endSynthUnits": decimal_str(last.get("synthUnits")),
        "priceShiftLoss": _num(first.get("assetPrice")) - _num(last.get("assetPrice")),
        "luviIncrease": _num(last.get("luvi")) - _num(first.get("luvi")),
    }


def earnings_meta(intervals: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    """Sum additive fields and average intensive ones across the page."""
    meta: Dict[str, Any] = {}
    for name in EARNINGS_SUMMED_FIELDS + EARNINGS_AVERAGED_FIELDS:
        meta[name] = sum(_num(row.get(name)) for row in intervals)
    for name in EARNINGS_AVERAGED_FIELDS:
        meta[name] = meta[name] / len(intervals)
    meta["startTime"] = intervals[0]["startTime"]
    meta["endTime"] = intervals[-1]["endTime"]
    return meta


def swaps_meta(intervals: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    # Snapshot of the first bucket on the page; counts are whole numbers.
    first = intervals[0]
    meta: Dict[str, Any] = {
        "startTime": first["startTime"],
        "endTime": intervals[-1]["endTime"],
    }
    for name in get_family(Family.SWAPS).output_names:
        value = _num(first.get(name))
        meta[name] = int(value) if name.endswith("Count") else value
    return meta


def runepool_meta(intervals: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
    first, last = intervals[0], intervals[-1]
    return {
        "startTime": first["startTime"],
        "endTime": last["endTime"],
        "startCount": decimal_str(first.get("count")),
        "endCount": decimal_str(last.get("count")),
        "startUnits": decimal_str(first.get("units")),
        "endUnits": decimal_str(last.get("units")),
    }


META_BUILDERS: Dict[Family, Callable[[Sequence[Mapping[str, Any]]], Dict[str, Any]]] = {
    Family.DEPTH: depth_meta,
    Family.EARNINGS: earnings_meta,
    Family.SWAPS: swaps_meta,
    Family.RUNEPOOL: runepool_meta,
}


def build_meta(family: Family | str, intervals: List[Mapping[str, Any]]) -> Dict[str, Any]:
    if not intervals:
        return {}
    return META_BUILDERS[Family(family)](intervals)
