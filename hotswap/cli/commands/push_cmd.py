"""``hotswap push`` — build, pack and upload the current project.

Reads ``deploy.json``, runs its build command, packs the dist directory and
uploads it to the deployment server.
"""

from __future__ import annotations

import time
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from hotswap.client.push import PushError, push

console = Console()


def push_cmd(
    project_dir: Path = typer.Option(
        Path("."), "--project-dir", "-C", help="Project directory containing deploy.json."
    ),
    config_path: Path = typer.Option(
        None, "--config", "-c", help="Path to deploy.json (default: <project-dir>/deploy.json)."
    ),
    skip_build: bool = typer.Option(
        False, "--skip-build", help="Upload the existing dist directory without building."
    ),
) -> None:
    """Build the project and deploy it to the server."""
    started = time.monotonic()
    try:
        result = push(project_dir.resolve(), config_path=config_path, skip_build=skip_build)
    except PushError as exc:
        console.print(f"[red]Deploy failed:[/red] {exc}")
        raise typer.Exit(code=1)

    duration = time.monotonic() - started
    console.print(
        Panel(
            "\n".join([
                "[bold green]Deployed![/bold green]",
                "",
                f"[bold]Version:[/bold]   {result.get('hash')}",
                f"[bold]Port:[/bold]      {result.get('port')}",
                f"[bold]Server:[/bold]    {result.get('duration')}s",
                f"[bold]Total:[/bold]     {duration:.2f}s",
            ]),
            title="[bold]Hotswap[/bold]",
            border_style="green",
            padding=(1, 2),
        )
    )
