"""
CLI: ``govgate serve`` - start the gateway.
"""

from __future__ import annotations

import typer

from govgate.cli.utils import console


def serve(
    host: str | None = typer.Option(None, "--host", "-h", help="Bind address (default from settings)"),
    port: int | None = typer.Option(None, "--port", "-p", help="Bind port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on changes"),
    workers: int = typer.Option(1, "--workers", "-w", help="Number of workers"),
    log_level: str = typer.Option("info", "--log-level"),
) -> None:
    """Start the gateway HTTP server."""
    import uvicorn

    from govgate.core.settings import GatewaySettings

    settings = GatewaySettings()
    host = host or settings.host
    port = port or settings.port
    if workers > 1:
        console.print(
            "[yellow]Breakers, idempotency keys and rate limits are per process; "
            "each worker keeps its own.[/yellow]"
        )

    console.print(f"[bold green]Starting govgate[/bold green] on {host}:{port}")
    uvicorn.run(
        "govgate.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers,
        log_level=log_level,
    )
