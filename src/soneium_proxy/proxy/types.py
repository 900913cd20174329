from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import urlencode, urlsplit

Json = Any

DEFAULT_PORTS = {"http": 80, "https": 443}


class RequestType(str, Enum):
    CALCULATOR = "calculator"
    TX_PER_SEASON = "tx-per-season"
    BONUS = "bonus"

    @property
    def accepts_season(self) -> bool:
        return self in (RequestType.CALCULATOR, RequestType.TX_PER_SEASON)


@dataclass(frozen=True)
class ProxyRequest:
    request_type: RequestType
    address: str
    season: int | None = None
    want_raw: bool = False


@dataclass(frozen=True)
class UpstreamTarget:
    """
    A whitelisted upstream base URL plus the query parameters to attach.
    `base_url` always comes from Settings, never from request input.
    """

    base_url: str
    query_params: Mapping[str, str] = field(default_factory=dict)
    raw_query: str | None = None

    @property
    def url(self) -> str:
        query = self.raw_query
        if query is None:
            query = urlencode(list(self.query_params.items()))
        if not query:
            return self.base_url
        sep = "&" if "?" in self.base_url else "?"
        return f"{self.base_url}{sep}{query}"

    @property
    def host(self) -> str:
        """`hostname[:port]`, lower-cased; the scheme's default port is dropped."""
        parts = urlsplit(self.base_url)
        host = (parts.hostname or "").lower()
        if parts.port is not None and parts.port != DEFAULT_PORTS.get(parts.scheme):
            host = f"{host}:{parts.port}"
        return host


@dataclass(frozen=True)
class UpstreamResponse:
    status_code: int
    content_type: str | None
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 300


@dataclass(frozen=True)
class SeasonSelection:
    season: int
    matched: bool
    value: Json

    @property
    def match_label(self) -> str:
        return "hit" if self.matched else "miss"


@dataclass(frozen=True)
class ProxyResponse:
    status_code: int
    headers: dict[str, str]
    body: bytes = b""
