"""Control-plane response payloads."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field

HASH_HEADER = "X-Deploy-Hash"
PORT_HEADER = "X-Deploy-Port"
ENTRYPOINT_HEADER = "X-Deploy-Entrypoint"


class UploadResult(BaseModel):
    """Body of a successful ``POST /upload``."""

    model_config = ConfigDict(frozen=True)

    success: bool = True
    hash: str
    port: int
    message: str = "Deployment succeeded"
    duration: str  # seconds, two decimals


class UploadFailure(BaseModel):
    """Body of a failed ``POST /upload``."""

    model_config = ConfigDict(frozen=True)

    success: bool = False
    error: str


class StatusReport(BaseModel):
    """Body of ``GET /status``."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    current_deployment: str | None = Field(alias="currentDeployment")
    upload_port: int = Field(alias="uploadPort")
    deployments_dir: str = Field(alias="deploymentsDir")
    uptime: float
