"""Hotswap data models — all Pydantic v2, all frozen (immutable)."""

from hotswap.models.artifacts import ArtifactInfo
from hotswap.models.control import StatusReport, UploadFailure, UploadResult
from hotswap.models.descriptor import (
    DeploymentDescriptor,
    SlotState,
    check_entrypoint,
    check_version,
)
from hotswap.models.project import DeployConfig, DeployTarget

__all__ = [
    # artifacts
    "ArtifactInfo",
    # descriptor
    "DeploymentDescriptor",
    "SlotState",
    "check_entrypoint",
    "check_version",
    # control plane
    "StatusReport",
    "UploadFailure",
    "UploadResult",
    # client project
    "DeployConfig",
    "DeployTarget",
]
