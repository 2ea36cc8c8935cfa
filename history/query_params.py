from __future__ import annotations

import math
from typing import Any, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError

from config import DEFAULT_PAGE_LIMIT, DEFAULT_QUERY_COUNT, MAX_PAGE_LIMIT, MAX_QUERY_COUNT
from core.exceptions import ValidationError
from core.intervals import DEFAULT_INTERVAL, SECONDS_PER_INTERVAL, is_valid_interval

PAIR_REQUIRED_MESSAGE = "Both interval and count must be provided together"


class HistoryQueryParams(BaseModel):
    """Query-string parameters shared by every history endpoint."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    interval: Optional[str] = None
    count: Optional[int] = None
    from_time: Optional[int] = Field(default=None, alias="from")
    to_time: Optional[int] = Field(default=None, alias="to")
    page: int = 1
    limit: int = DEFAULT_PAGE_LIMIT
    sort_by: str = "startTime"
    order: str = "asc"

    @field_validator("interval")
    @classmethod
    def _known_interval(cls, value: Optional[str]) -> Optional[str]:
        if value is not None and not is_valid_interval(value):
            allowed = ", ".join(SECONDS_PER_INTERVAL)
            raise ValueError(f"Invalid interval '{value}'; expected one of {allowed}")
        return value

    @field_validator("count")
    @classmethod
    def _count_in_range(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and not 1 <= value <= MAX_QUERY_COUNT:
            raise ValueError(f"count must be between 1 and {MAX_QUERY_COUNT}")
        return value

    @field_validator("page")
    @classmethod
    def _page_positive(cls, value: int) -> int:
        if value < 1:
            raise ValueError("page must be >= 1")
        return value

    @field_validator("limit")
    @classmethod
    def _clamp_limit(cls, value: int) -> int:
        return max(1, min(value, MAX_PAGE_LIMIT))

    @field_validator("order", mode="before")
    @classmethod
    def _normalize_order(cls, value: Any) -> str:
        order = str(value).strip().lower()
        if order not in ("asc", "desc"):
            raise ValueError("order must be 'asc' or 'desc'")
        return order

    @classmethod
    def parse(cls, raw: Mapping[str, Any]) -> "HistoryQueryParams":
        """Build params from a query-string mapping.

        Empty values count as absent. Any problem is raised as the
        application's ValidationError so the HTTP layer can answer 400.
        """
        data = {
            k: v
            for k, v in raw.items()
            if v is not None and not (isinstance(v, str) and not v.strip())
        }
        if ("interval" in data) != ("count" in data):
            raise ValidationError(PAIR_REQUIRED_MESSAGE)
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            details = []
            for err in exc.errors():
                loc = ".".join(str(part) for part in err.get("loc", ()))
                msg = str(err.get("msg", "")).removeprefix("Value error, ")
                details.append(f"{loc}: {msg}" if loc else msg)
            raise ValidationError("; ".join(details)) from exc

    @property
    def interval_name(self) -> str:
        return self.interval or DEFAULT_INTERVAL

    @property
    def effective_count(self) -> int:
        return self.count or DEFAULT_QUERY_COUNT

    @property
    def ascending(self) -> bool:
        return self.order == "asc"

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.limit

    def total_pages(self, total_records: int) -> int:
        return int(math.ceil(total_records / self.limit))
