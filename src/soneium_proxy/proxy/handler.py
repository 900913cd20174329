from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field

from soneium_proxy.core.config import Settings
from soneium_proxy.proxy import relay
from soneium_proxy.proxy.client import UpstreamClient
from soneium_proxy.proxy.errors import (
    ClientDisconnectedError,
    ClientInputError,
    SelfProxyError,
    UpstreamBodyError,
    UpstreamTransportError,
)
from soneium_proxy.proxy.shaper import parse_season_records, render_selection, select_season
from soneium_proxy.proxy.targets import (
    assert_not_self_proxy,
    inbound_host,
    resolve_portal_target,
    resolve_target,
)
from soneium_proxy.proxy.types import (
    ProxyRequest,
    ProxyResponse,
    RequestType,
    UpstreamResponse,
    UpstreamTarget,
)
from soneium_proxy.proxy.validator import parse_proxy_request

DisconnectCheck = Callable[[], Awaitable[bool]]


@dataclass
class ProxyHandler:
    """
    Framework-agnostic request orchestration:
    validate -> resolve target -> self-proxy guard -> fetch -> shape -> relay.

    Every path, including errors, produces a ProxyResponse carrying CORS headers.
    """

    settings: Settings
    client: UpstreamClient
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger(__name__))

    async def handle(
        self,
        method: str,
        params: Mapping[str, str],
        headers: Mapping[str, str],
        *,
        is_disconnected: DisconnectCheck | None = None,
    ) -> ProxyResponse:
        early = self._method_gate(method)
        if early is not None:
            return early

        try:
            request = parse_proxy_request(params)
            target = resolve_target(request, self.settings)
        except ClientInputError as e:
            self.logger.info("Rejected request: %s (%s)", e.reason, e.message)
            return relay.client_input_error(e)

        upstream = await self._forward(target, headers, is_disconnected)
        if isinstance(upstream, ProxyResponse):
            return upstream

        if request.request_type is RequestType.CALCULATOR and not request.want_raw:
            return self._shape_calculator(request, target, upstream)
        return relay.relay_upstream(upstream, target, self.settings)

    async def handle_portal(
        self,
        method: str,
        path: str,
        params: Mapping[str, str],
        raw_query: str,
        headers: Mapping[str, str],
        *,
        is_disconnected: DisconnectCheck | None = None,
    ) -> ProxyResponse:
        early = self._method_gate(method)
        if early is not None:
            return early

        try:
            target = resolve_portal_target(path, params, raw_query, self.settings)
        except ClientInputError as e:
            self.logger.info("Rejected portal request: %s (%s)", e.reason, e.message)
            return relay.client_input_error(e)

        upstream = await self._forward(target, headers, is_disconnected)
        if isinstance(upstream, ProxyResponse):
            return upstream
        return relay.relay_upstream(upstream, target, self.settings)

    # -----------------------------
    # Steps
    # -----------------------------

    def _method_gate(self, method: str) -> ProxyResponse | None:
        method = method.upper()
        if method == "OPTIONS":
            return relay.preflight_response()
        if method != "GET":
            return relay.method_not_allowed()
        return None

    async def _forward(
        self,
        target: UpstreamTarget,
        headers: Mapping[str, str],
        is_disconnected: DisconnectCheck | None,
    ) -> UpstreamResponse | ProxyResponse:
        lowered = {k.lower(): v for k, v in headers.items()}
        try:
            assert_not_self_proxy(target, inbound_host(lowered))
        except SelfProxyError as e:
            self.logger.warning("Self-proxy refused: target=%s host=%s", e.target, e.host)
            return relay.self_proxy_error(e)

        self.logger.info("Proxying GET %s", target.url)
        try:
            upstream = await self._fetch(target, is_disconnected)
        except UpstreamTransportError as e:
            self.logger.warning("Upstream unreachable: %s (%s)", target.url, e)
            return relay.bad_gateway(e)

        self.logger.info("Upstream %s -> %s", target.url, upstream.status_code)
        return upstream

    async def _fetch(
        self, target: UpstreamTarget, is_disconnected: DisconnectCheck | None
    ) -> UpstreamResponse:
        if is_disconnected is None:
            return await self.client.fetch(target)

        task = asyncio.ensure_future(self.client.fetch(target))
        try:
            while True:
                done, _ = await asyncio.wait({task}, timeout=self.settings.disconnect_poll_s)
                if done:
                    return task.result()
                if await is_disconnected():
                    self.logger.info("Client disconnected; aborting %s", target.url)
                    raise ClientDisconnectedError(f"Client went away while fetching {target.url}")
        finally:
            if not task.done():
                task.cancel()

    def _shape_calculator(
        self,
        request: ProxyRequest,
        target: UpstreamTarget,
        upstream: UpstreamResponse,
    ) -> ProxyResponse:
        season = request.season if request.season is not None else self.settings.default_season

        if not upstream.ok:
            return relay.relay_upstream(upstream, target, self.settings)

        try:
            records = parse_season_records(upstream.body)
        except UpstreamBodyError:
            self.logger.info("Calculator body not JSON; relaying unmodified (%s)", target.url)
            return relay.relay_upstream(
                upstream,
                target,
                self.settings,
                extra_headers={
                    "X-Calc-Season-Requested": str(season),
                    "X-Calc-Match": "passthrough",
                },
            )

        selection = select_season(records, season)
        return relay.relay_upstream(
            upstream,
            target,
            self.settings,
            selection=selection,
            body=render_selection(selection),
        )
