"""Main Typer application — imports and registers all CLI commands.

Entry point: ``hotswap`` (configured via pyproject.toml console_scripts).
"""

from __future__ import annotations

import typer

from hotswap.cli.commands.push_cmd import push_cmd
from hotswap.cli.commands.serve import serve_cmd
from hotswap.cli.commands.status import status_cmd
from hotswap.cli.commands.versions import prune_cmd, versions_cmd

app = typer.Typer(
    name="hotswap",
    help="Hotswap: push a build to a long-running host and swap it in.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
)

# Register subcommands
app.command(name="serve", help="Run the deployment server.")(serve_cmd)
app.command(name="push", help="Build, pack and upload the current project.")(push_cmd)
app.command(name="status", help="Show the active deployment of a server.")(status_cmd)
app.command(name="versions", help="List stored versions.")(versions_cmd)
app.command(name="prune", help="Delete old stored versions.")(prune_cmd)


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
