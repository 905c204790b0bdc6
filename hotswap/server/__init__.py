"""Hotswap control plane — the HTTP boundary in front of the lifecycle manager."""

from hotswap.server.app import create_app
from hotswap.server.runner import DeployServer

__all__ = ["DeployServer", "create_app"]
