from contextlib import asynccontextmanager
from pathlib import Path
from typing import Optional

import structlog
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import HTMLResponse, JSONResponse, PlainTextResponse, RedirectResponse, Response, StreamingResponse
from fastapi.staticfiles import StaticFiles
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel
from slowapi import Limiter, _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from error_handling.errors import AdminAuthError, StatisticsFetchError
from .live import QueueSink
from .portal import PortalService

logger = structlog.get_logger()


class AdminRequest(BaseModel):
    password: Optional[str] = None


def _html(body: Optional[str]) -> HTMLResponse:
    if body is None:
        raise HTTPException(status_code=404, detail="Not Found")
    return HTMLResponse(body)


def create_app(service: PortalService, manage_lifecycle: bool = True) -> FastAPI:
    """Build the portal website around a portal service."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if manage_lifecycle:
            await service.start()
        try:
            yield
        finally:
            if manage_lifecycle:
                await service.stop()

    app = FastAPI(title="Pool Portal", version="1.0.0", lifespan=lifespan)
    app.state.service = service
    limiter = Limiter(key_func=get_remote_address)
    app.state.limiter = limiter
    app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

    website = service.portal_config.website
    page_cache = service.page_cache

    @app.exception_handler(AdminAuthError)
    async def admin_auth_handler(request: Request, exc: AdminAuthError):
        logger.warning("admin_auth_failed", path=request.url.path)
        return JSONResponse(status_code=401, content={"error": "Incorrect Password"})

    @app.exception_handler(StatisticsFetchError)
    async def stats_unavailable_handler(request: Request, exc: StatisticsFetchError):
        logger.warning("request_stats_failed", path=request.url.path, error=str(exc))
        return Response(status_code=503)

    @app.get("/donate/{coin}/{address}")
    async def donate(coin: str, address: str):
        return RedirectResponse(
            url=f"{website.donate_protocol}:{address}",
            status_code=301,
            headers={"X-Robots-Tag": "none"}
        )

    @app.get("/get-page", response_class=HTMLResponse)
    async def get_page(id: str = ""):
        return _html(page_cache.get_raw(id))

    @app.get("/workers/{address}", response_class=HTMLResponse)
    async def miner_page(address: str):
        address = address.split(".")[0]
        balances = await service.stats.get_balance_by_address(address)
        return _html(page_cache.render_scoped("miner-statistics", balances))

    @app.get("/payout/{address}", response_class=PlainTextResponse)
    async def payout(address: str):
        return PlainTextResponse(str(await service.stats.get_payout(address)))

    @app.get("/shares", response_class=HTMLResponse)
    async def shares():
        coins = await service.stats.get_coins()
        return _html(page_cache.render_scoped("user_shares", coins))

    @app.get("/usershares/{coin}", response_class=HTMLResponse)
    async def user_shares(coin: str):
        totals = await service.stats.get_coin_totals(coin)
        return _html(page_cache.render_scoped("user_shares", totals))

    @app.get("/key.html", response_class=HTMLResponse)
    async def key_page():
        if service.key_page.body is None:
            return HTMLResponse("", status_code=503)
        return HTMLResponse(service.key_page.body)

    @app.get("/api/live_stats")
    async def live_stats(request: Request):
        sink = QueueSink()
        connection_id = service.broadcaster.subscribe(sink)

        async def events():
            try:
                yield "\n"
                async for data in sink.stream():
                    yield data
            finally:
                service.broadcaster.unsubscribe(connection_id)
                await sink.close()

        return StreamingResponse(
            events(),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"}
        )

    @app.post("/api/admin/{method}")
    @limiter.limit("10/minute")
    async def admin(request: Request, method: str, body: AdminRequest):
        if not website.admin_center.enabled:
            raise HTTPException(status_code=404, detail="Not Found")
        if body.password != website.admin_center.password:
            raise AdminAuthError("incorrect admin password")

        if method == "pools":
            return {"result": {name: pool.template_context() for name, pool in service.pool_configs.items()}}
        raise HTTPException(status_code=404, detail="Not Found")

    @app.get("/metrics")
    async def metrics():
        """Prometheus metrics endpoint."""
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)

    dist_dir = Path(website.templates_dir) / "dist"
    if dist_dir.is_dir():
        app.mount("/dist", StaticFiles(directory=str(dist_dir)), name="dist")

    @app.get("/", response_class=HTMLResponse)
    async def index():
        return _html(page_cache.get(""))

    @app.get("/{page}", response_class=HTMLResponse)
    async def route(page: str):
        if page.endswith(".html"):
            page = page[:-len(".html")]
        return _html(page_cache.get(page))

    return app
