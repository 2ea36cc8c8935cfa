"""Thin aiohttp.web adapter over the history query engine.

All endpoints are read-only. Errors are answered with the
``{"error": ..., "status": ...}`` envelope; internal details stay in logs.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from aiohttp import web

from core.exceptions import NotFoundError, ValidationError
from core.families import Family
from history.query_engine import HistoryQueryEngine

LOGGER = logging.getLogger(__name__)

Handler = Callable[[web.Request], Awaitable[web.StreamResponse]]


def error_response(message: str, status: int) -> web.Response:
    return web.json_response({"error": message, "status": status}, status=status)


@web.middleware
async def error_middleware(request: web.Request, handler: Handler) -> web.StreamResponse:
    try:
        return await handler(request)
    except web.HTTPException:
        raise
    except ValidationError as exc:
        LOGGER.info("Rejected %s: %s", request.path_qs, exc)
        return error_response(str(exc), ValidationError.status)
    except NotFoundError as exc:
        return error_response(str(exc), NotFoundError.status)
    except Exception:  # noqa: BLE001
        LOGGER.exception("Unhandled error serving %s", request.path_qs)
        return error_response("Internal server error", 500)


class HistoryAPI:
    """Request handlers for the ``/api/history`` routes."""

    def __init__(self, engine: HistoryQueryEngine) -> None:
        self._engine = engine

    async def root(self, request: web.Request) -> web.Response:
        return web.json_response(
            {
                "service": "midgard-history",
                "endpoints": [
                    "/api/history/depth/{pool}",
                    "/api/history/swaps",
                    "/api/history/earnings",
                    "/api/history/runepool",
                ],
            }
        )

    async def health(self, request: web.Request) -> web.Response:
        return web.json_response({"status": "ok"})

    async def _history(
        self, request: web.Request, family: Family, pool: Optional[str] = None
    ) -> web.Response:
        params: Dict[str, Any] = dict(request.query)
        result = await self._engine.query(family, params, pool=pool)
        return web.json_response(result)

    async def get_depth_history(self, request: web.Request) -> web.Response:
        return await self._history(request, Family.DEPTH, pool=request.match_info["pool"])

    async def get_swaps_history(self, request: web.Request) -> web.Response:
        return await self._history(request, Family.SWAPS)

    async def get_earnings_history(self, request: web.Request) -> web.Response:
        return await self._history(request, Family.EARNINGS)

    async def get_runepool_history(self, request: web.Request) -> web.Response:
        return await self._history(request, Family.RUNEPOOL)


def create_app(engine: HistoryQueryEngine) -> web.Application:
    api = HistoryAPI(engine)
    app = web.Application(middlewares=[error_middleware])
    app.router.add_get("/", api.root)
    app.router.add_get("/health", api.health)
    app.router.add_get("/api/history/depth/{pool}", api.get_depth_history)
    app.router.add_get("/api/history/swaps", api.get_swaps_history)
    app.router.add_get("/api/history/earnings", api.get_earnings_history)
    app.router.add_get("/api/history/runepool", api.get_runepool_history)
    return app


async def start_http_server(app: web.Application, host: str, port: int) -> web.AppRunner:
    """Bind ``app`` and return the runner; call ``runner.cleanup()`` to stop."""
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    LOGGER.info("History API listening on http://%s:%d", host, port)
    return runner
