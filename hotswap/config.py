"""Server and client configuration — env-driven.

Centralized settings using pydantic-settings.  Reads from a ``.env`` file and
``HOTSWAP_*`` environment variables.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_UPLOAD_PORT = 7899
DEFAULT_SERVER_URL = f"http://localhost:{DEFAULT_UPLOAD_PORT}"
STATE_FILE_NAME = ".state.json"


class ServerSettings(BaseSettings):
    """Deployment server configuration with environment variable overrides.

    Examples
    --------
    Override via environment::

        export HOTSWAP_UPLOAD_PORT=9000
        export HOTSWAP_DEPLOYMENTS_DIR=/data/deployments
        export HOTSWAP_STOP_GRACE_SECONDS=10

    Or via .env file::

        HOTSWAP_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HOTSWAP_",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Control plane
    upload_host: str = "0.0.0.0"
    upload_port: int = Field(default=DEFAULT_UPLOAD_PORT, ge=0, le=65535)
    max_upload_bytes: int = 512 * 1024 * 1024

    # Application instances
    app_host: str = "0.0.0.0"
    stop_grace_seconds: float = Field(default=5.0, gt=0)
    start_timeout_seconds: float = Field(default=30.0, gt=0)

    # Storage paths
    deployments_dir: Path = Path("deployments")
    state_file: Path | None = None

    @field_validator("deployments_dir")
    @classmethod
    def _absolute_deployments_dir(cls, value: Path) -> Path:
        return value.expanduser().resolve()

    @property
    def state_path(self) -> Path:
        """Location of the persisted state record."""
        if self.state_file is not None:
            return self.state_file
        return self.deployments_dir / STATE_FILE_NAME


class ClientSettings(BaseSettings):
    """Settings for the push client.

    The server URL is read from ``HOTSWAP_SERVER_URL``, falling back to the
    older ``DEPLOY_SERVER_URL``.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="HOTSWAP_",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    server_url: str = Field(
        default=DEFAULT_SERVER_URL,
        validation_alias=AliasChoices("HOTSWAP_SERVER_URL", "DEPLOY_SERVER_URL"),
    )
    upload_timeout_seconds: float = 300.0
