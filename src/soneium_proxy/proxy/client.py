from __future__ import annotations

from dataclasses import dataclass, field
from typing import Mapping

import httpx

from soneium_proxy.core.config import Settings
from soneium_proxy.proxy.errors import UpstreamTransportError
from soneium_proxy.proxy.types import UpstreamResponse, UpstreamTarget


@dataclass
class UpstreamClient:
    """
    Single-shot GET client for the whitelisted upstreams.

    - Uses one underlying httpx.AsyncClient for connection pooling.
    - Follows redirects, never retries.
    - Transport failures surface as UpstreamTransportError.
    """

    user_agent: str = "Soneium-Proxy/1.0"
    timeout_s: float = 15.0
    connect_timeout_s: float = 5.0
    headers: Mapping[str, str] = field(default_factory=dict)

    transport: httpx.AsyncBaseTransport | None = None

    def __post_init__(self) -> None:
        default_headers = {"Accept": "application/json", "User-Agent": self.user_agent}
        default_headers.update(self.headers)
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout_s, connect=self.connect_timeout_s),
            headers=default_headers,
            follow_redirects=True,
            transport=self.transport,
        )

    @classmethod
    def from_settings(
        cls, settings: Settings, *, transport: httpx.AsyncBaseTransport | None = None
    ) -> UpstreamClient:
        return cls(
            user_agent=settings.user_agent,
            timeout_s=settings.http_timeout_s,
            connect_timeout_s=settings.connect_timeout_s,
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> UpstreamClient:
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()

    async def fetch(self, target: UpstreamTarget) -> UpstreamResponse:
        """GET the target and return status, content type and body verbatim."""
        try:
            resp = await self._client.get(target.url)
        except httpx.HTTPError as e:
            raise UpstreamTransportError(str(e) or type(e).__name__) from e

        return UpstreamResponse(
            status_code=resp.status_code,
            content_type=resp.headers.get("content-type"),
            body=resp.content,
        )
