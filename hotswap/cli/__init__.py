"""Hotswap CLI — Typer-based command-line interface.

Provides the ``hotswap`` command with subcommands for running the deployment
server, pushing a build, querying status and managing stored versions.

All output uses Rich for formatted terminal display.
"""
