"""Descriptors for the four mirrored Midgard history families.

One parameterised pipeline serves every family: the descriptor carries the
upstream URL path, the numeric field list (upstream camelCase name mapped to
the snake_case column), and whether the family is scoped to a pool.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

__all__ = [
    "Family",
    "FamilyDescriptor",
    "FieldSpec",
    "FAMILIES",
    "POOL_EARNINGS_FIELDS",
    "get_family",
]


def _to_snake(api_name: str) -> str:
    name = re.sub(r"USD$", "Usd", api_name)
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


@dataclass(frozen=True)
class FieldSpec:
    api_name: str
    column: str
    nullable: bool = False

    @classmethod
    def of(cls, api_name: str, nullable: bool = False) -> "FieldSpec":
        return cls(api_name=api_name, column=_to_snake(api_name), nullable=nullable)


class Family(str, Enum):
    DEPTH = "depth"
    SWAPS = "swaps"
    EARNINGS = "earnings"
    RUNEPOOL = "runepool"


@dataclass(frozen=True)
class FamilyDescriptor:
    family: Family
    path: str
    fields: Tuple[FieldSpec, ...]
    pool_scoped: bool = False
    child_fields: Tuple[FieldSpec, ...] = field(default_factory=tuple)

    @property
    def name(self) -> str:
        return self.family.value

    @property
    def columns(self) -> Tuple[str, ...]:
        return tuple(f.column for f in self.fields)

    @property
    def output_names(self) -> Tuple[str, ...]:
        return tuple(f.api_name for f in self.fields)

    def url_path(self, pool: Optional[str] = None) -> str:
        if self.pool_scoped:
            if not pool:
                raise ValueError(f"Family '{self.name}' requires a pool")
            return self.path.format(pool=pool)
        return self.path


_DEPTH_FIELDS = tuple(
    FieldSpec.of(n)
    for n in (
        "assetDepth",
        "runeDepth",
        "assetPrice",
        "assetPriceUSD",
        "liquidityUnits",
        "membersCount",
        "synthUnits",
        "synthSupply",
        "units",
        "luvi",
    )
)

_SWAP_CATEGORIES = ("toAsset", "toRune", "toTrade", "fromTrade", "synthMint", "synthRedeem")


def _swap_fields() -> Tuple[FieldSpec, ...]:
    names = []
    for suffix in ("Count", "Volume", "VolumeUSD", "Fees"):
        names.extend(f"{cat}{suffix}" for cat in _SWAP_CATEGORIES)
        names.append(f"total{suffix}")
    names.extend(f"{cat}AverageSlip" for cat in _SWAP_CATEGORIES)
    names.append("averageSlip")
    names.append("runePriceUSD")
    return tuple(FieldSpec.of(n) for n in names)


_EARNINGS_FIELDS = tuple(
    FieldSpec.of(n)
    for n in (
        "blockRewards",
        "avgNodeCount",
        "bondingEarnings",
        "liquidityEarnings",
        "liquidityFees",
        "runePriceUSD",
    )
)

POOL_EARNINGS_FIELDS = tuple(
    FieldSpec.of(n)
    for n in (
        "assetLiquidityFees",
        "runeLiquidityFees",
        "totalLiquidityFeesRune",
        "saverEarning",
        "rewards",
        "earnings",
    )
)

_RUNEPOOL_FIELDS = (
    FieldSpec.of("depth", nullable=True),
    FieldSpec.of("count"),
    FieldSpec.of("units"),
)

FAMILIES: Dict[Family, FamilyDescriptor] = {
    Family.DEPTH: FamilyDescriptor(
        family=Family.DEPTH,
        path="/v2/history/depths/{pool}",
        fields=_DEPTH_FIELDS,
        pool_scoped=True,
    ),
    Family.SWAPS: FamilyDescriptor(
        family=Family.SWAPS,
        path="/v2/history/swaps",
        fields=_swap_fields(),
    ),
    Family.EARNINGS: FamilyDescriptor(
        family=Family.EARNINGS,
        path="/v2/history/earnings",
        fields=_EARNINGS_FIELDS,
        child_fields=POOL_EARNINGS_FIELDS,
    ),
    Family.RUNEPOOL: FamilyDescriptor(
        family=Family.RUNEPOOL,
        path="/v2/history/runepool",
        fields=_RUNEPOOL_FIELDS,
    ),
}


def get_family(family: str | Family) -> FamilyDescriptor:
    """Resolve a family name ("depth", "swaps", ...) to its descriptor."""
    try:
        return FAMILIES[Family(family)]
    except ValueError as exc:
        raise ValueError(f"Unknown history family: {family!r}") from exc
