from __future__ import annotations

import abc
import asyncio
import logging
import time
from typing import Any, Dict, Tuple

import aiohttp
import pybreaker

from config import API_CLIENT_SETTINGS
from core.exceptions import DecodeError, TransportError

LOGGER = logging.getLogger(__name__)


class _RecordedFailure(Exception):
    """Raised inside the breaker to account for a failed downstream call."""


class _OpenedAtListener(pybreaker.CircuitBreakerListener):
    """Tracks when the breaker last opened so calls can be gated cheaply."""

    def __init__(self) -> None:
        self.opened_at = 0.0

    def state_change(self, cb: Any, old_state: Any, new_state: Any) -> None:
        if getattr(new_state, "name", None) == pybreaker.STATE_OPEN:
            self.opened_at = time.monotonic()


class BaseAPIClient(abc.ABC):
    """Abstract base class for upstream history API clients.

    Subclasses implement request construction, sending, and response parsing.
    A single shared aiohttp.ClientSession must be supplied by the caller.

    The client issues exactly one request per ``fetch_data`` call and never
    retries on its own; retry policy belongs to the caller. Transport-level
    failures (network, timeout, non-2xx, open circuit) surface as
    TransportError, shape mismatches as DecodeError.
    """

    def __init__(
        self,
        session: aiohttp.ClientSession,
        *,
        client_id: str | None = None,
        rate_limit_per_sec: float | None = None,
    ) -> None:
        self.client_id = client_id or ""
        self.session = session
        # Simple rate limit state
        self._min_interval = 1.0 / rate_limit_per_sec if rate_limit_per_sec else 0.0
        self._last_request_ts = 0.0

        cb_cfg = API_CLIENT_SETTINGS.get("CIRCUIT_BREAKER", {})
        self._reset_timeout = int(cb_cfg.get("RESET_TIMEOUT", 60))
        self._breaker_listener = _OpenedAtListener()
        self._breaker = pybreaker.CircuitBreaker(
            fail_max=int(cb_cfg.get("FAIL_MAX", 5)),
            reset_timeout=self._reset_timeout,
            listeners=[self._breaker_listener],
        )

    @property
    def breaker_state(self) -> str:
        return self._breaker.current_state

    async def _rate_limit_wait(self) -> None:
        if self._min_interval <= 0:
            return
        elapsed = time.monotonic() - self._last_request_ts
        sleep_for = self._min_interval - elapsed
        if sleep_for > 0:
            await asyncio.sleep(sleep_for)

    def _check_breaker(self) -> None:
        if self._breaker.current_state != pybreaker.STATE_OPEN:
            return
        if time.monotonic() - self._breaker_listener.opened_at < self._reset_timeout:
            LOGGER.warning("Circuit breaker OPEN for %s", self.__class__.__name__)
            raise TransportError(f"Circuit breaker open for {self.__class__.__name__}")

    def _record_success(self) -> None:
        try:
            self._breaker.call(lambda: True)
        except pybreaker.CircuitBreakerError:
            pass

    def _record_failure(self) -> None:
        def _raise() -> None:
            raise _RecordedFailure("downstream failure recorded by breaker")

        try:
            self._breaker.call(_raise)
        except (_RecordedFailure, pybreaker.CircuitBreakerError):
            pass

    async def fetch_data(self, **kwargs: Any) -> Any:
        """Orchestrate one request/parse cycle behind the circuit breaker."""
        url, params = await self._build_request(**kwargs)

        await self._rate_limit_wait()
        self._check_breaker()

        try:
            response = await self._send_request(url, params)
        except DecodeError:
            # The transport worked; the payload is the problem.
            self._record_success()
            raise
        except TransportError:
            self._record_failure()
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            self._record_failure()
            raise TransportError(
                f"Request to {url} failed: {exc.__class__.__name__}: {exc}"
            ) from exc
        finally:
            self._last_request_ts = time.monotonic()

        self._record_success()
        return self._parse_response(response)

    @abc.abstractmethod
    async def _build_request(self, **kwargs: Any) -> Tuple[str, Dict[str, Any]]:
        """Return (url, params) for the API call."""

    @abc.abstractmethod
    async def _send_request(self, url: str, params: Dict[str, Any]) -> Any:
        """Perform HTTP request with shared session and return decoded JSON."""

    @abc.abstractmethod
    def _parse_response(self, response: Any) -> Any:
        """Parse the decoded JSON into the client's typed response."""
