from __future__ import annotations

import asyncio

import typer

from soneium_proxy.core.config import settings
from soneium_proxy.core.logging import setup_logger
from soneium_proxy.proxy.client import UpstreamClient
from soneium_proxy.proxy.handler import ProxyHandler
from soneium_proxy.proxy.types import ProxyResponse

app = typer.Typer(no_args_is_help=True, help="Soneium portal CORS proxy.")


@app.command("serve")
def serve_cmd(
    host: str = typer.Option("127.0.0.1", "--host", help="Interface to bind."),
    port: int = typer.Option(8000, "--port", help="Port to bind."),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes (dev)."),
) -> None:
    """Run the proxy under uvicorn."""

    import uvicorn

    uvicorn.run(
        "soneium_proxy.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=settings.log_level.lower(),
    )


async def _fetch_once(params: dict[str, str]) -> ProxyResponse:
    logger = setup_logger("soneium_proxy", settings.log_level)
    async with UpstreamClient.from_settings(settings) as client:
        handler = ProxyHandler(settings=settings, client=client, logger=logger)
        return await handler.handle("GET", params, {})


@app.command("fetch")
def fetch_cmd(
    address: str = typer.Option(..., "--address", help="EVM address (0x + 40 hex digits)."),
    request_type: str = typer.Option(
        "calculator", "--type", help="calculator | tx-per-season | bonus (aliases accepted)."
    ),
    season: int | None = typer.Option(None, "--season", min=0, help="Season number."),
    raw: bool = typer.Option(False, "--raw", help="Skip season selection (calculator only)."),
    show_headers: bool = typer.Option(False, "--headers", help="Print response headers."),
) -> None:
    """Run a single request through the proxy pipeline and print the result."""

    params = {"type": request_type, "address": address}
    if season is not None:
        params["season"] = str(season)
    if raw:
        params["raw"] = "1"

    resp = asyncio.run(_fetch_once(params))

    typer.echo(f"HTTP {resp.status_code}")
    if show_headers:
        for key, value in resp.headers.items():
            typer.echo(f"{key}: {value}")
    typer.echo(resp.body.decode("utf-8", errors="replace"))

    if resp.status_code >= 400:
        raise typer.Exit(code=1)


@app.command("config")
def config_cmd() -> None:
    """Print the effective configuration."""

    for key, value in settings.model_dump().items():
        typer.echo(f"{key}={value}")
    typer.echo(f"effective_tx_season={settings.effective_tx_season()}")
