"""Client-side project configuration, read from ``deploy.json``.

Example ``deploy.json``::

    {
        "name": "my-service",
        "build": "python -m build_site --out dist",
        "deploy": {
            "dist": "dist",
            "entrypoint": "app.py",
            "port": 3000,
            "server": "http://deploy-host:7899"
        }
    }
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator

from hotswap.models.descriptor import check_entrypoint


class DeployTarget(BaseModel):
    """The ``deploy`` section of ``deploy.json``."""

    model_config = ConfigDict(frozen=True)

    dist: str
    entrypoint: str
    port: int = Field(ge=1, le=65535)
    server: str | None = None

    @field_validator("entrypoint")
    @classmethod
    def _valid_entrypoint(cls, value: str) -> str:
        return check_entrypoint(value)


class DeployConfig(BaseModel):
    """Top-level ``deploy.json`` document."""

    model_config = ConfigDict(frozen=True)

    name: str
    build: str
    deploy: DeployTarget
