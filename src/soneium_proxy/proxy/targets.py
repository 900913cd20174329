from __future__ import annotations

from collections.abc import Mapping

from soneium_proxy.core.config import Settings
from soneium_proxy.proxy.errors import ClientInputError, SelfProxyError
from soneium_proxy.proxy.types import ProxyRequest, RequestType, UpstreamTarget
from soneium_proxy.proxy.validator import parse_address

PORTAL_PATHS = frozenset({"profile/tx-per-season", "profile/bonus-dapp"})


def base_url_for(request_type: RequestType, settings: Settings) -> str:
    if request_type is RequestType.CALCULATOR:
        return settings.calculator_url
    if request_type is RequestType.TX_PER_SEASON:
        return settings.tx_per_season_url
    return settings.bonus_url


def resolve_target(request: ProxyRequest, settings: Settings) -> UpstreamTarget:
    """Map a validated request onto one of the configured upstream URLs.

    Only the transactions kind sends a season upstream; the calculator kind
    filters seasons locally after the fetch.
    """
    params: dict[str, str] = {"address": request.address}
    if request.request_type is RequestType.TX_PER_SEASON:
        season = request.season if request.season is not None else settings.effective_tx_season()
        params["season"] = str(season)

    return UpstreamTarget(
        base_url=base_url_for(request.request_type, settings),
        query_params=params,
    )


def resolve_portal_target(
    path: str,
    params: Mapping[str, str],
    raw_query: str,
    settings: Settings,
) -> UpstreamTarget:
    """Whitelisted `/api/portal/<path>` passthrough; the query string is forwarded as-is."""
    joined = "/".join(seg for seg in path.split("/") if seg).lower()
    if joined not in PORTAL_PATHS:
        allowed = sorted(PORTAL_PATHS)
        raise ClientInputError("path", f"Disallowed path {path!r}", allowed=allowed)

    parse_address((params.get("address") or "").strip())

    base = settings.portal_base_url.rstrip("/")
    return UpstreamTarget(base_url=f"{base}/{joined}", raw_query=raw_query)


def inbound_host(headers: Mapping[str, str]) -> str | None:
    """The host the caller addressed: X-Forwarded-Host (first hop) or Host."""
    forwarded = headers.get("x-forwarded-host")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first.lower()
    host = headers.get("host")
    if host:
        return host.strip().lower()
    return None


def _strip_default_port(host: str) -> str:
    name, sep, port = host.rpartition(":")
    if sep and port in ("80", "443"):
        return name
    return host


def assert_not_self_proxy(target: UpstreamTarget, host: str | None) -> None:
    if host and target.host == _strip_default_port(host):
        raise SelfProxyError(target.url, host)
