"""Hotswap push client — operator-side build, pack and upload."""

from hotswap.client.push import (
    BuildError,
    DeployConfigError,
    PushError,
    UploadError,
    generate_version,
    push,
)

__all__ = [
    "BuildError",
    "DeployConfigError",
    "PushError",
    "UploadError",
    "generate_version",
    "push",
]
