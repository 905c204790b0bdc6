"""``hotswap serve`` — run the deployment server in the foreground."""

from __future__ import annotations

import logging
from pathlib import Path

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from hotswap.config import ServerSettings

console = Console()


def configure_logging(level: str) -> None:
    """Route all log records through Rich at *level*."""
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True, show_path=False)],
        force=True,
    )


def serve_cmd(
    port: int = typer.Option(
        None, "--port", "-p", help="Control-plane port (default: HOTSWAP_UPLOAD_PORT or 7899)."
    ),
    host: str = typer.Option(None, "--host", help="Control-plane bind address."),
    deployments_dir: Path = typer.Option(
        None, "--deployments-dir", "-d", help="Where artifacts are unpacked."
    ),
    log_level: str = typer.Option(None, "--log-level", help="Logging level."),
) -> None:
    """Run the deployment server until SIGINT/SIGTERM.

    Restores the last recorded deployment at startup, then accepts uploads
    on ``POST /upload`` and answers ``GET /status``.
    """
    overrides = {
        key: value
        for key, value in {
            "upload_port": port,
            "upload_host": host,
            "deployments_dir": deployments_dir,
            "log_level": log_level,
        }.items()
        if value is not None
    }
    settings = ServerSettings(**overrides)
    configure_logging(settings.log_level)

    from hotswap.server.runner import DeployServer

    server = DeployServer(settings)
    server.bind()

    console.print(
        Panel(
            "\n".join([
                "[bold green]Deployment server started[/bold green]",
                "",
                f"[bold]Upload port:[/bold]     {settings.upload_port}",
                f"[bold]Deployments:[/bold]     {settings.deployments_dir}",
                f"[bold]State file:[/bold]      {settings.state_path}",
                "",
                f"[dim]Status: http://localhost:{settings.upload_port}/status[/dim]",
            ]),
            title="[bold]Hotswap[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
    server.serve()
