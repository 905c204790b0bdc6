"""``hotswap versions`` / ``hotswap prune`` — inspect and clean stored artifacts.

Both commands work directly on the deployments directory of the local host;
they do not talk to a running server.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.table import Table

from hotswap.config import ServerSettings
from hotswap.core.artifact_store import ArtifactStore
from hotswap.core.state_ledger import StateLedger

console = Console()


def _open(deployments_dir: Path | None) -> tuple[ArtifactStore, str | None]:
    overrides = {"deployments_dir": deployments_dir} if deployments_dir else {}
    settings = ServerSettings(**overrides)
    store = ArtifactStore(settings.deployments_dir)
    record = StateLedger(settings.state_path).load()
    return store, record.version if record else None


def versions_cmd(
    deployments_dir: Path = typer.Option(
        None, "--deployments-dir", "-d", help="Deployments directory."
    ),
) -> None:
    """List stored versions, newest first."""
    store, active = _open(deployments_dir)
    infos = store.list_versions()
    if not infos:
        console.print("[dim]No versions stored.[/dim]")
        return

    table = Table(title=f"Versions in {store.root}")
    table.add_column("Version", style="cyan")
    table.add_column("Size", justify="right")
    table.add_column("Modified (UTC)")
    table.add_column("Recorded", justify="center")
    for info in infos:
        table.add_row(
            info.version,
            f"{info.size_bytes / 1024 / 1024:.2f} MB",
            info.modified_at.strftime("%Y-%m-%d %H:%M:%S"),
            "[green]Yes[/green]" if info.version == active else "",
        )
    console.print(table)


def prune_cmd(
    keep: int = typer.Option(3, "--keep", "-k", min=0, help="Newest versions to keep."),
    deployments_dir: Path = typer.Option(
        None, "--deployments-dir", "-d", help="Deployments directory."
    ),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation."),
) -> None:
    """Delete old versions, always keeping the recorded one."""
    store, active = _open(deployments_dir)
    candidates = [i for i in store.list_versions() if i.version != active][keep:]
    if not candidates:
        console.print("[dim]Nothing to prune.[/dim]")
        return

    for info in candidates:
        console.print(f"  {info.version}")
    if not yes and not typer.confirm(f"Delete {len(candidates)} version(s)?"):
        raise typer.Abort()

    for info in candidates:
        store.remove(info.version)
    console.print(f"[green]Removed {len(candidates)} version(s).[/green]")
