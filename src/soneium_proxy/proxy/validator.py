from __future__ import annotations

import re
from collections.abc import Mapping

from soneium_proxy.proxy.errors import ClientInputError
from soneium_proxy.proxy.types import ProxyRequest, RequestType

_address_re = re.compile(r"^0x[0-9a-f]{40}$", re.IGNORECASE)
_season_re = re.compile(r"^[0-9]{1,18}$")

TYPE_ALIASES: dict[str, RequestType] = {
    "calculator": RequestType.CALCULATOR,
    "base": RequestType.CALCULATOR,
    "tx": RequestType.TX_PER_SEASON,
    "tx-per-season": RequestType.TX_PER_SEASON,
    "transactions": RequestType.TX_PER_SEASON,
    "bonus": RequestType.BONUS,
    "bonus-dapp": RequestType.BONUS,
}

_TRUTHY = {"1", "true"}


def _get(params: Mapping[str, str], key: str) -> str | None:
    value = params.get(key)
    if value is None:
        return None
    return value.strip()


def is_valid_address(value: str | None) -> bool:
    return value is not None and _address_re.match(value) is not None


def parse_request_type(value: str | None) -> RequestType:
    if not value:
        return RequestType.CALCULATOR
    request_type = TYPE_ALIASES.get(value.lower())
    if request_type is None:
        allowed = sorted(TYPE_ALIASES)
        raise ClientInputError(
            "type",
            f"Unsupported type {value!r}; expected one of: {', '.join(allowed)}",
            allowed=allowed,
        )
    return request_type


def parse_address(value: str | None) -> str:
    if not value:
        raise ClientInputError("address", "Missing required parameter 'address'")
    if not is_valid_address(value):
        raise ClientInputError("address", "address must be 0x followed by 40 hex digits")
    return value


def parse_season(value: str | None) -> int | None:
    """Blank means absent; anything else must be a non-negative base-10 integer."""
    if not value:
        return None
    if _season_re.match(value) is None:
        raise ClientInputError("season", f"season must be a non-negative integer, got {value!r}")
    return int(value, 10)


def parse_flag(value: str | None) -> bool:
    return value is not None and value.lower() in _TRUTHY


def parse_proxy_request(params: Mapping[str, str]) -> ProxyRequest:
    """Validate raw query parameters into a ProxyRequest.

    `type` wins over its legacy alias `up`. Raises ClientInputError naming the
    offending field.
    """
    raw_type = _get(params, "type")
    if raw_type is None:
        raw_type = _get(params, "up")
    request_type = parse_request_type(raw_type)

    address = parse_address(_get(params, "address"))

    season = None
    if request_type.accepts_season:
        season = parse_season(_get(params, "season"))

    want_raw = request_type is RequestType.CALCULATOR and parse_flag(_get(params, "raw"))

    return ProxyRequest(
        request_type=request_type,
        address=address,
        season=season,
        want_raw=want_raw,
    )
