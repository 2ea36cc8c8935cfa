from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import aiohttp
import pytest

from core.exceptions import DecodeError, TransportError
from core.families import Family
from data_ingestion.api.midgard_client import MidgardClient, RawPage


class _FakeResponse:
    def __init__(self, status: int = 200, payload: Any = None, body: str = "") -> None:
        self.status = status
        self._payload = payload
        self._body = body

    async def json(self, content_type: Optional[str] = None) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload

    async def text(self) -> str:
        return self._body

    async def __aenter__(self) -> "_FakeResponse":
        return self

    async def __aexit__(self, *exc: Any) -> bool:
        return False


class _FakeSession:
    def __init__(self, response: _FakeResponse) -> None:
        self.response = response
        self.calls: List[Dict[str, Any]] = []

    def get(self, url: str, **kwargs: Any) -> _FakeResponse:
        self.calls.append({"url": url, **kwargs})
        return self.response


@pytest.fixture(autouse=True)
def fast_sleep(monkeypatch):
    async def _no_sleep(duration: float):
        return None

    monkeypatch.setattr(asyncio, "sleep", _no_sleep)


def _page(intervals: List[Dict[str, Any]], end_time: Any = "1700003600") -> Dict[str, Any]:
    return {"meta": {"startTime": "1700000000", "endTime": end_time}, "intervals": intervals}


@pytest.mark.asyncio
async def test_fetch_page_builds_depth_url_and_params():
    session = _FakeSession(_FakeResponse(payload=_page([{"startTime": "1", "endTime": "2"}])))
    client = MidgardClient(session, base_url="https://midgard.test/")

    page = await client.fetch_page(Family.DEPTH, "hour", 1700000000, pool="BTC.BTC")

    assert isinstance(page, RawPage)
    assert page.meta.end_time == "1700003600"
    assert len(page.intervals) == 1
    call = session.calls[0]
    assert call["url"] == "https://midgard.test/v2/history/depths/BTC.BTC"
    assert call["params"] == {"interval": "hour", "from": 1700000000, "count": 400}
    assert isinstance(call["timeout"], aiohttp.ClientTimeout)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "family,path",
    [
        (Family.SWAPS, "/v2/history/swaps"),
        (Family.EARNINGS, "/v2/history/earnings"),
        (Family.RUNEPOOL, "/v2/history/runepool"),
    ],
)
async def test_fetch_page_paths_for_global_families(family, path):
    session = _FakeSession(_FakeResponse(payload=_page([])))
    client = MidgardClient(session, base_url="https://midgard.test")

    await client.fetch_page(family, "day", 1600000000)

    assert session.calls[0]["url"] == f"https://midgard.test{path}"


@pytest.mark.asyncio
async def test_count_is_capped_at_page_maximum():
    session = _FakeSession(_FakeResponse(payload=_page([])))
    client = MidgardClient(session)

    await client.fetch_page("swaps", "hour", 0, count=1000)

    assert session.calls[0]["params"]["count"] == 400


@pytest.mark.asyncio
async def test_depth_without_pool_is_rejected():
    client = MidgardClient(_FakeSession(_FakeResponse(payload=_page([]))))

    with pytest.raises(ValueError):
        await client.fetch_page(Family.DEPTH, "hour", 0)


@pytest.mark.asyncio
async def test_non_2xx_is_transport_error():
    session = _FakeSession(_FakeResponse(status=502, body="bad gateway"))
    client = MidgardClient(session)

    with pytest.raises(TransportError, match="502"):
        await client.fetch_page(Family.SWAPS, "hour", 0)


@pytest.mark.asyncio
async def test_invalid_json_is_decode_error():
    session = _FakeSession(_FakeResponse(payload=ValueError("not json")))
    client = MidgardClient(session)

    with pytest.raises(DecodeError):
        await client.fetch_page(Family.SWAPS, "hour", 0)


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "payload",
    [
        [],
        {"intervals": []},
        {"meta": {}, "intervals": []},
        {"meta": {"endTime": "1"}, "intervals": "nope"},
    ],
)
async def test_shape_mismatch_is_decode_error(payload):
    client = MidgardClient(_FakeSession(_FakeResponse(payload=payload)))

    with pytest.raises(DecodeError):
        await client.fetch_page(Family.RUNEPOOL, "hour", 0)


@pytest.mark.asyncio
async def test_numeric_end_time_is_kept_as_string():
    client = MidgardClient(_FakeSession(_FakeResponse(payload=_page([], end_time=1700003600))))

    page = await client.fetch_page(Family.RUNEPOOL, "hour", 0)

    assert page.meta.end_time == "1700003600"


@pytest.mark.asyncio
async def test_client_id_header_sent_when_configured():
    session = _FakeSession(_FakeResponse(payload=_page([])))
    client = MidgardClient(session, client_id="mirror-test")

    await client.fetch_page(Family.SWAPS, "hour", 0)

    assert session.calls[0]["headers"]["x-client-id"] == "mirror-test"
