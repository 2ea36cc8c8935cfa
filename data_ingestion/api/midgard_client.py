from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

import aiohttp
from pydantic import BaseModel, ConfigDict, Field
from pydantic import ValidationError as PydanticValidationError

from config import (
    HTTP_CONNECT_TIMEOUT_SECONDS,
    HTTP_TOTAL_TIMEOUT_SECONDS,
    MIDGARD_BASE_URL,
    MIDGARD_PAGE_COUNT,
)
from core.exceptions import DecodeError, TransportError
from core.families import Family, get_family

from .base_client import BaseAPIClient


class RawMeta(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True, extra="allow", coerce_numbers_to_str=True
    )

    start_time: Optional[str] = Field(default=None, alias="startTime")
    end_time: str = Field(alias="endTime")


class RawPage(BaseModel):
    """One upstream page: ``meta`` plus the raw (string-valued) intervals."""

    model_config = ConfigDict(extra="allow")

    meta: RawMeta
    intervals: List[Dict[str, Any]] = Field(default_factory=list)


class MidgardClient(BaseAPIClient):
    """Client for the Midgard ``/v2/history/*`` endpoints.

    fetch_data kwargs:
    - family: one of {"depth", "swaps", "earnings", "runepool"}.
    - interval: Midgard interval name ("5min", "hour", "day", ...).
    - from_time: unix seconds, inclusive lower bound of the page.
    - pool: required for depth ("BTC.BTC").
    - count: page size, capped at 400.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        base_url: str = MIDGARD_BASE_URL,
        page_count: int = MIDGARD_PAGE_COUNT,
        client_id: str | None = None,
        rate_limit_per_sec: float | None = None,
    ) -> None:
        super().__init__(
            session, client_id=client_id, rate_limit_per_sec=rate_limit_per_sec
        )
        self.base_url = base_url.rstrip("/")
        self.page_count = max(1, min(int(page_count), MIDGARD_PAGE_COUNT))
        self._timeout = aiohttp.ClientTimeout(
            total=HTTP_TOTAL_TIMEOUT_SECONDS, connect=HTTP_CONNECT_TIMEOUT_SECONDS
        )

    async def fetch_page(
        self,
        family: Family | str,
        interval: str,
        from_time: int,
        pool: Optional[str] = None,
        count: Optional[int] = None,
    ) -> RawPage:
        return await self.fetch_data(
            family=family,
            interval=interval,
            from_time=from_time,
            pool=pool,
            count=count,
        )

    async def _build_request(self, **kwargs: Any) -> Tuple[str, Dict[str, Any]]:
        descriptor = get_family(kwargs["family"])
        url = f"{self.base_url}{descriptor.url_path(kwargs.get('pool'))}"
        count = kwargs.get("count") or self.page_count
        params: Dict[str, Any] = {
            "interval": str(kwargs["interval"]),
            "from": int(kwargs["from_time"]),
            "count": max(1, min(int(count), MIDGARD_PAGE_COUNT)),
        }
        return url, params

    async def _send_request(self, url: str, params: Dict[str, Any]) -> Any:
        headers = {"Accept": "application/json"}
        if self.client_id:
            headers["x-client-id"] = self.client_id
        async with self.session.get(
            url, params=params, headers=headers, timeout=self._timeout
        ) as resp:
            if resp.status < 200 or resp.status >= 300:
                body = await resp.text()
                raise TransportError(
                    f"GET {url} returned HTTP {resp.status}: {body[:200]}"
                )
            try:
                return await resp.json(content_type=None)
            except (ValueError, aiohttp.ContentTypeError) as exc:
                raise DecodeError(f"GET {url} returned invalid JSON: {exc}") from exc

    def _parse_response(self, response: Any) -> RawPage:
        if not isinstance(response, dict):
            raise DecodeError(
                f"Expected a JSON object, got {type(response).__name__}"
            )
        try:
            return RawPage.model_validate(response)
        except PydanticValidationError as exc:
            raise DecodeError(f"Unexpected page shape: {exc}") from exc


__all__ = ["MidgardClient", "RawMeta", "RawPage"]
