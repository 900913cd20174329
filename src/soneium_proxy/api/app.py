"""FastAPI application factory.

Routes:
- `/api/soneium`: routed proxy (calculator / tx-per-season / bonus)
- `/api/portal/{path}`: whitelisted portal passthrough
- `/health`: liveness

All method handling (OPTIONS preflight, 405) lives in ProxyHandler so that
error responses carry the same CORS headers as successful ones.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, Response

from soneium_proxy.core.config import Settings
from soneium_proxy.core.config import settings as default_settings
from soneium_proxy.core.logging import setup_logger
from soneium_proxy.proxy.client import UpstreamClient
from soneium_proxy.proxy.errors import ClientDisconnectedError
from soneium_proxy.proxy.handler import ProxyHandler
from soneium_proxy.proxy.types import ProxyResponse

PROXY_METHODS = ["GET", "OPTIONS", "HEAD", "POST", "PUT", "PATCH", "DELETE"]

# nginx convention for "client closed request"
CLIENT_CLOSED_REQUEST = 499


def _to_response(resp: ProxyResponse) -> Response:
    return Response(content=resp.body, status_code=resp.status_code, headers=resp.headers)


def create_app(
    settings: Settings | None = None,
    *,
    transport: httpx.AsyncBaseTransport | None = None,
) -> FastAPI:
    settings = settings or default_settings
    logger = setup_logger("soneium_proxy", settings.log_level)
    client = UpstreamClient.from_settings(settings, transport=transport)
    handler = ProxyHandler(settings=settings, client=client, logger=logger)

    @asynccontextmanager
    async def lifespan(_: FastAPI) -> AsyncIterator[None]:
        try:
            yield
        finally:
            await client.aclose()

    app = FastAPI(title="Soneium Proxy", version="0.1.0", lifespan=lifespan)

    @app.get("/health")
    def health():
        return {"status": "ok", "service": "soneium-proxy"}

    @app.api_route("/api/soneium", methods=PROXY_METHODS)
    async def soneium(request: Request) -> Response:
        try:
            resp = await handler.handle(
                request.method,
                request.query_params,
                request.headers,
                is_disconnected=request.is_disconnected,
            )
        except ClientDisconnectedError:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return _to_response(resp)

    @app.api_route("/api/portal/{path:path}", methods=PROXY_METHODS)
    async def portal(path: str, request: Request) -> Response:
        try:
            resp = await handler.handle_portal(
                request.method,
                path,
                request.query_params,
                request.url.query,
                request.headers,
                is_disconnected=request.is_disconnected,
            )
        except ClientDisconnectedError:
            return Response(status_code=CLIENT_CLOSED_REQUEST)
        return _to_response(resp)

    return app
