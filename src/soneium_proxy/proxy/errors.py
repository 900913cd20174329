from __future__ import annotations

from collections.abc import Sequence


class ProxyError(RuntimeError):
    """Base exception for proxy failures."""


class ClientInputError(ProxyError):
    """A query parameter (or portal path) failed validation."""

    def __init__(
        self, field: str, message: str, *, allowed: Sequence[str] | None = None
    ) -> None:
        super().__init__(message)
        self.field = field
        self.message = message
        self.allowed = list(allowed) if allowed is not None else None

    @property
    def reason(self) -> str:
        return f"invalid_{self.field}"


class SelfProxyError(ProxyError):
    """Resolved upstream host is this service's own host."""

    def __init__(self, target: str, host: str) -> None:
        super().__init__(f"Refusing to proxy to own host {host!r}")
        self.target = target
        self.host = host


class UpstreamTransportError(ProxyError):
    """DNS/connect/timeout/protocol failures talking to the upstream."""


class UpstreamBodyError(ProxyError):
    """Upstream body was not the JSON the shaper expected."""


class ClientDisconnectedError(ProxyError):
    """Inbound client went away before the upstream answered."""
