# vcpin/web/health.py
from __future__ import annotations

import logging
from typing import Callable

from aiohttp import web

from vcpin.core.timecore import now_utc_ms

log = logging.getLogger(__name__)


def build_app(supervisor=None, *, clock: Callable[[], int] = now_utc_ms) -> web.Application:
    """Tiny health-check app: GET / -> OK, GET /health -> JSON."""

    async def index(_request: web.Request) -> web.Response:
        return web.Response(status=200, text="OK")

    async def health(_request: web.Request) -> web.Response:
        payload = {"ok": True, "ts": clock()}
        if supervisor is not None:
            payload["voice"] = supervisor.phase.value
        return web.json_response(payload)

    app = web.Application()
    app.router.add_get("/", index)
    app.router.add_get("/health", health)
    return app


async def start_health_server(app: web.Application, port: int, host: str = "0.0.0.0") -> web.AppRunner:
    runner = web.AppRunner(app)
    await runner.setup()
    site = web.TCPSite(runner, host, port)
    await site.start()
    log.info("[WEB] Listening on :%s", port)
    return runner
