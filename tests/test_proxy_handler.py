from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx

from soneium_proxy.core.config import Settings
from soneium_proxy.proxy.client import UpstreamClient
from soneium_proxy.proxy.errors import ClientDisconnectedError
from soneium_proxy.proxy.handler import ProxyHandler
from soneium_proxy.proxy.types import ProxyResponse

ADDR = "0x" + "c" * 40
SEASONS = [{"season": 1, "points": 100}, {"season": 2, "points": 250}]


def _settings(**overrides: Any) -> Settings:
    base: dict[str, Any] = {
        "calculator_url": "https://calc.example.test/api/calc",
        "tx_per_season_url": "https://tx.example.test/api/tx",
        "bonus_url": "https://bonus.example.test/api/bonus",
        "default_season": 2,
    }
    base.update(overrides)
    return Settings(_env_file=None, **base)


def _run(
    params: dict[str, str],
    *,
    body: bytes = json.dumps(SEASONS).encode(),
    status: int = 200,
    content_type: str = "application/json",
    method: str = "GET",
    headers: dict[str, str] | None = None,
    settings: Settings | None = None,
) -> tuple[ProxyResponse, list[httpx.Request]]:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(status, content=body, headers={"content-type": content_type})

    async def go() -> ProxyResponse:
        settings_ = settings or _settings()
        async with UpstreamClient.from_settings(
            settings_, transport=httpx.MockTransport(handler)
        ) as client:
            proxy = ProxyHandler(settings=settings_, client=client)
            return await proxy.handle(method, params, headers or {"host": "proxy.example.test"})

    return asyncio.run(go()), seen


def _assert_cors(resp: ProxyResponse) -> None:
    assert resp.headers["Access-Control-Allow-Origin"] == "*"
    assert "GET" in resp.headers["Access-Control-Allow-Methods"]
    assert resp.headers["Access-Control-Allow-Headers"]
    assert resp.headers["Vary"] == "Origin"


def test_calculator_hit_returns_matching_record() -> None:
    resp, seen = _run({"address": ADDR, "season": "1"})

    assert resp.status_code == 200
    assert json.loads(resp.body) == {"season": 1, "points": 100}
    assert resp.headers["Content-Type"].startswith("application/json")
    assert resp.headers["X-Calc-Match"] == "hit"
    assert resp.headers["X-Calc-Season-Requested"] == "1"
    assert resp.headers["Cache-Control"] == "s-maxage=60, stale-while-revalidate=300"
    _assert_cors(resp)
    # season filtering is local, never sent upstream
    assert "season" not in seen[0].url.params


def test_calculator_uses_default_season() -> None:
    resp, _ = _run({"address": ADDR})
    assert json.loads(resp.body) == {"season": 2, "points": 250}
    assert resp.headers["X-Calc-Season-Requested"] == "2"


def test_calculator_miss_returns_literal_zero() -> None:
    resp, _ = _run({"address": ADDR, "season": "9"})

    assert resp.status_code == 200
    assert resp.body == b"0"
    assert resp.headers["X-Calc-Match"] == "miss"
    assert resp.headers["X-Calc-Season-Requested"] == "9"


def test_calculator_raw_is_byte_for_byte() -> None:
    body = b'[ {"season": 1},\n {"season": 7} ]'
    resp, _ = _run({"address": ADDR, "season": "9", "raw": "true"}, body=body)

    assert resp.body == body
    assert resp.headers["Content-Type"] == "application/json"
    assert "X-Calc-Match" not in resp.headers


def test_calculator_non_json_body_fails_open() -> None:
    resp, _ = _run({"address": ADDR}, body=b"<html>maintenance</html>", content_type="text/html")

    assert resp.status_code == 200
    assert resp.body == b"<html>maintenance</html>"
    assert resp.headers["Content-Type"] == "text/html"
    assert resp.headers["X-Calc-Match"] == "passthrough"


def test_upstream_error_status_relayed_verbatim() -> None:
    resp, _ = _run({"address": ADDR}, status=503, body=b'{"error":"down"}')

    assert resp.status_code == 503
    assert resp.body == b'{"error":"down"}'
    assert "X-Calc-Match" not in resp.headers


def test_tx_default_season_visible_in_target_header() -> None:
    resp, seen = _run({"type": "tx", "address": ADDR}, settings=_settings(tx_default_season=3))

    assert resp.headers["X-Proxy-Target"] == (
        f"https://tx.example.test/api/tx?address={ADDR}&season=3"
    )
    assert seen[0].url.params["season"] == "3"
    assert json.loads(resp.body) == SEASONS


def test_target_header_can_be_disabled() -> None:
    resp, _ = _run(
        {"type": "bonus", "address": ADDR}, settings=_settings(expose_target_header=False)
    )
    assert resp.status_code == 200
    assert "X-Proxy-Target" not in resp.headers


def test_invalid_address_rejected_without_upstream_call() -> None:
    for kind in ("calculator", "tx", "bonus"):
        resp, seen = _run({"type": kind, "address": "0x1234", "season": "1", "raw": "1"})
        assert resp.status_code == 400
        assert json.loads(resp.body)["error"] == "invalid_address"
        _assert_cors(resp)
        assert seen == []


def test_invalid_type_lists_allowed() -> None:
    resp, _ = _run({"type": "nope", "address": ADDR})
    payload = json.loads(resp.body)
    assert resp.status_code == 400
    assert payload["error"] == "invalid_type"
    assert "tx-per-season" in payload["allowed"]


def test_self_proxy_refused_before_fetch() -> None:
    settings = _settings(calculator_url="https://proxy.example.test/api/soneium")
    resp, seen = _run(
        {"address": ADDR},
        headers={"x-forwarded-host": "proxy.example.test", "host": "internal:8000"},
        settings=settings,
    )

    assert resp.status_code == 400
    payload = json.loads(resp.body)
    assert payload["error"] == "self_proxy"
    assert payload["target"] == f"https://proxy.example.test/api/soneium?address={ADDR}"
    assert seen == []


def test_self_proxy_spy_on_fetch() -> None:
    calls: list[Any] = []

    class SpyClient(UpstreamClient):
        async def fetch(self, target):  # type: ignore[override]
            calls.append(target)
            raise AssertionError("fetch must not be called")

    async def go() -> ProxyResponse:
        settings = _settings(bonus_url="https://Proxy.Example.Test/api/bonus")
        async with SpyClient() as client:
            proxy = ProxyHandler(settings=settings, client=client)
            return await proxy.handle(
                "GET", {"type": "bonus", "address": ADDR}, {"Host": "proxy.example.test"}
            )

    resp = asyncio.run(go())
    assert resp.status_code == 400
    assert calls == []


def test_options_and_method_gate() -> None:
    resp, seen = _run({}, method="OPTIONS")
    assert resp.status_code == 204
    assert resp.body == b""
    _assert_cors(resp)

    resp, seen = _run({"address": ADDR}, method="POST")
    assert resp.status_code == 405
    assert json.loads(resp.body) == {"error": "Method Not Allowed"}
    _assert_cors(resp)
    assert seen == []


def test_transport_failure_yields_502() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("Connection refused", request=request)

    async def go() -> ProxyResponse:
        settings = _settings()
        async with UpstreamClient.from_settings(
            settings, transport=httpx.MockTransport(handler)
        ) as client:
            return await ProxyHandler(settings=settings, client=client).handle(
                "GET", {"address": ADDR}, {}
            )

    resp = asyncio.run(go())
    payload = json.loads(resp.body)
    assert resp.status_code == 502
    assert payload["error"] == "Bad gateway"
    assert "Connection refused" in payload["detail"]
    assert set(payload) == {"error", "detail"}
    _assert_cors(resp)


def test_repeated_requests_are_identical() -> None:
    first, _ = _run({"address": ADDR, "season": "1"})
    second, _ = _run({"address": ADDR, "season": "1"})
    assert first.status_code == second.status_code
    assert first.body == second.body


def test_client_disconnect_cancels_fetch() -> None:
    cancelled = asyncio.Event()

    class SlowClient(UpstreamClient):
        async def fetch(self, target):  # type: ignore[override]
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

    async def is_disconnected() -> bool:
        return True

    async def go() -> None:
        settings = _settings(disconnect_poll_s=0.01)
        async with SlowClient() as client:
            proxy = ProxyHandler(settings=settings, client=client)
            try:
                await proxy.handle("GET", {"address": ADDR}, {}, is_disconnected=is_disconnected)
            except ClientDisconnectedError:
                pass
            else:
                raise AssertionError("expected ClientDisconnectedError")
            await asyncio.wait_for(cancelled.wait(), timeout=1)

    asyncio.run(go())
