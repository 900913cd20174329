from __future__ import annotations

import json
from typing import Any

from soneium_proxy.core.config import Settings
from soneium_proxy.proxy.errors import ClientInputError, SelfProxyError, UpstreamTransportError
from soneium_proxy.proxy.types import (
    ProxyResponse,
    SeasonSelection,
    UpstreamResponse,
    UpstreamTarget,
)

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "*",
    "Vary": "Origin",
}


def cors_headers() -> dict[str, str]:
    return dict(CORS_HEADERS)


def json_response(status_code: int, payload: Any) -> ProxyResponse:
    headers = cors_headers()
    headers["Content-Type"] = JSON_CONTENT_TYPE
    body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return ProxyResponse(status_code=status_code, headers=headers, body=body)


def preflight_response() -> ProxyResponse:
    return ProxyResponse(status_code=204, headers=cors_headers())


def method_not_allowed() -> ProxyResponse:
    resp = json_response(405, {"error": "Method Not Allowed"})
    resp.headers["Allow"] = "GET, OPTIONS"
    return resp


def client_input_error(exc: ClientInputError) -> ProxyResponse:
    payload: dict[str, Any] = {"error": exc.reason, "detail": exc.message}
    if exc.allowed is not None:
        payload["allowed"] = exc.allowed
    return json_response(400, payload)


def self_proxy_error(exc: SelfProxyError) -> ProxyResponse:
    return json_response(400, {"error": "self_proxy", "detail": str(exc), "target": exc.target})


def bad_gateway(exc: UpstreamTransportError) -> ProxyResponse:
    return json_response(502, {"error": "Bad gateway", "detail": str(exc)})


def relay_upstream(
    upstream: UpstreamResponse,
    target: UpstreamTarget,
    settings: Settings,
    *,
    selection: SeasonSelection | None = None,
    body: bytes | None = None,
    extra_headers: dict[str, str] | None = None,
) -> ProxyResponse:
    """Relay the upstream status with either its own body or a locally shaped one.

    When `body` is given the content type is forced to JSON; otherwise the
    upstream content type is copied.
    """
    headers = cors_headers()
    headers["Cache-Control"] = settings.cache_control()
    if body is None:
        headers["Content-Type"] = upstream.content_type or JSON_CONTENT_TYPE
        body = upstream.body
    else:
        headers["Content-Type"] = JSON_CONTENT_TYPE
    if settings.expose_target_header:
        headers["X-Proxy-Target"] = target.url
    if selection is not None:
        headers["X-Calc-Season-Requested"] = str(selection.season)
        headers["X-Calc-Match"] = selection.match_label
    if extra_headers:
        headers.update(extra_headers)
    return ProxyResponse(status_code=upstream.status_code, headers=headers, body=body)
