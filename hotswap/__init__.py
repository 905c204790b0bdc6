"""Hotswap: push-to-deploy for a long-running Python host.

An operator uploads a pre-built artifact; the host unpacks it under a unique
version, stops the running application, starts the new one and records what
is live so the same version comes back after a restart.
"""

__version__ = "0.1.0"
__description__ = "Push-to-deploy host that hot-swaps application artifacts"

from hotswap.core.lifecycle import DeploymentManager
from hotswap.cli.app import app as cli

__all__ = ["DeploymentManager", "cli", "__version__"]
