"""Artifact directory metadata."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

from pydantic import BaseModel, ConfigDict


class ArtifactInfo(BaseModel):
    """Metadata for one materialized version — the files live on disk."""

    model_config = ConfigDict(frozen=True)

    version: str
    path: Path
    size_bytes: int
    modified_at: datetime
