"""Deployment descriptor — the unit of information needed to start an instance.

On disk and on the wire the version identifier travels under the key
``hash``; in Python it is ``version``.
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from pathlib import PurePosixPath

from pydantic import BaseModel, ConfigDict, Field, field_validator

_FORBIDDEN_VERSION_CHARS = ("/", "\\", "\x00")


def check_version(version: str) -> str:
    """Return *version* if it is usable as a single directory name.

    Raises
    ------
    ValueError
        If the version is empty, contains a path separator or NUL, or starts
        with ``.`` (reserved for the state file and staging directories).
    """
    if not version or not version.strip():
        raise ValueError("version must not be empty")
    if version.startswith(".") or any(c in version for c in _FORBIDDEN_VERSION_CHARS):
        raise ValueError(f"version {version!r} is not a valid directory name")
    return version


def check_entrypoint(entrypoint: str) -> str:
    """Return *entrypoint* if it is a relative path that stays inside its artifact."""
    if not entrypoint or not entrypoint.strip():
        raise ValueError("entrypoint must not be empty")
    path = PurePosixPath(entrypoint)
    if path.is_absolute() or "\\" in entrypoint:
        raise ValueError(f"entrypoint {entrypoint!r} must be a relative path")
    if ".." in path.parts:
        raise ValueError(f"entrypoint {entrypoint!r} escapes the artifact directory")
    return entrypoint


class SlotState(str, Enum):
    """Lifecycle of the single deployment slot."""

    EMPTY = "empty"
    DEPLOYING = "deploying"
    ACTIVE = "active"
    STOPPING = "stopping"


class DeploymentDescriptor(BaseModel):
    """``{version, port, entrypoint, timestamp}`` for one deployable instance.

    Examples
    --------
    >>> d = DeploymentDescriptor(version="v1", port=3000, entrypoint="app.py")
    >>> d.model_dump(mode="json", by_alias=True)["hash"]
    'v1'
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    version: str = Field(alias="hash")
    port: int = Field(ge=1, le=65535)
    entrypoint: str
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    @field_validator("version")
    @classmethod
    def _valid_version(cls, value: str) -> str:
        return check_version(value)

    @field_validator("entrypoint")
    @classmethod
    def _valid_entrypoint(cls, value: str) -> str:
        return check_entrypoint(value)

    def to_record(self) -> dict:
        """Serialize to the persisted ``{hash, port, entrypoint, timestamp}`` form."""
        return self.model_dump(mode="json", by_alias=True)
