"""``hotswap status`` — query a running deployment server."""

from __future__ import annotations

import requests
import typer
from rich.console import Console
from rich.table import Table

from hotswap.config import ClientSettings

console = Console()


def status_cmd(
    server: str = typer.Option(
        None, "--server", "-s", help="Server URL (default: HOTSWAP_SERVER_URL)."
    ),
) -> None:
    """Show the active deployment of a running server."""
    url = (server or ClientSettings().server_url).rstrip("/")
    try:
        response = requests.get(f"{url}/status", timeout=10)
        response.raise_for_status()
    except requests.RequestException as exc:
        console.print(f"[red]Cannot reach {url}:[/red] {exc}")
        raise typer.Exit(code=1)

    data = response.json()
    current = data.get("currentDeployment")

    table = Table(title=f"Deployment server {url}", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row(
        "Current deployment",
        f"[green]{current}[/green]" if current else "[dim]none[/dim]",
    )
    table.add_row("Upload port", str(data.get("uploadPort")))
    table.add_row("Deployments dir", str(data.get("deploymentsDir")))
    table.add_row("Uptime", f"{float(data.get('uptime', 0)):.1f}s")
    console.print(table)
