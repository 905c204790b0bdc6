"""Push client — build, pack and upload an artifact to a deployment server.

Pipeline::

    deploy.json -> build command -> tar.gz of dist/ -> version id -> POST /upload

The version id is ``<UTC timestamp>_<first 12 hex of sha256(archive)>``, e.g.
``2026-10-18T05-04-00_3f2a9c1b7d0e``.
"""

from __future__ import annotations

import hashlib
import json
import logging
import subprocess
import tarfile
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

import requests
from pydantic import ValidationError as ModelValidationError

from hotswap.config import ClientSettings
from hotswap.core.errors import HotswapError
from hotswap.models.control import ENTRYPOINT_HEADER, HASH_HEADER, PORT_HEADER
from hotswap.models.project import DeployConfig

logger = logging.getLogger(__name__)

CONFIG_FILE_NAME = "deploy.json"


class PushError(HotswapError):
    """Base class for push client failures."""


class DeployConfigError(PushError):
    """Raised when ``deploy.json`` is missing or invalid."""


class BuildError(PushError):
    """Raised when the build command fails or produces no dist directory."""


class UploadError(PushError):
    """Raised when the server rejects the upload or cannot be reached."""


def load_deploy_config(path: Path) -> DeployConfig:
    """Read and validate a ``deploy.json`` file."""
    if not path.exists():
        raise DeployConfigError(f"{CONFIG_FILE_NAME} not found: {path}")
    try:
        raw = json.loads(path.read_text(encoding="utf-8"))
        config = DeployConfig.model_validate(raw)
    except (json.JSONDecodeError, ModelValidationError) as exc:
        raise DeployConfigError(f"Invalid {path}: {exc}") from exc
    logger.info("Loaded deploy config for %s", config.name)
    return config


def run_build(command: str, cwd: Path) -> float:
    """Run the project's build command through the shell; return its duration."""
    logger.info("Running build: %s", command)
    started = time.monotonic()
    result = subprocess.run(command, shell=True, cwd=cwd)
    if result.returncode != 0:
        raise BuildError(f"Build command exited with code {result.returncode}")
    return time.monotonic() - started


def pack_dist(dist: Path, output: Path) -> int:
    """Pack the contents of *dist* into a gzip tarball; return its size in bytes."""
    if not dist.is_dir():
        raise BuildError(f"Build output not found: {dist}")
    with tarfile.open(output, "w:gz") as tar:
        for item in sorted(dist.iterdir()):
            tar.add(item, arcname=item.name)
    size = output.stat().st_size
    logger.info("Packed %s into %s (%.2f MB)", dist, output, size / 1024 / 1024)
    return size


def generate_version(content: bytes, now: datetime | None = None) -> str:
    """Derive a unique version id from the archive bytes and the current time."""
    now = now or datetime.now(timezone.utc)
    stamp = now.strftime("%Y-%m-%dT%H-%M-%S")
    digest = hashlib.sha256(content).hexdigest()[:12]
    return f"{stamp}_{digest}"


def resolve_server_url(config: DeployConfig, settings: ClientSettings | None = None) -> str:
    """``deploy.server`` wins over ``HOTSWAP_SERVER_URL`` and the default."""
    if config.deploy.server:
        return config.deploy.server.rstrip("/")
    return (settings or ClientSettings()).server_url.rstrip("/")


def upload(
    archive: bytes,
    version: str,
    config: DeployConfig,
    server_url: str,
    *,
    timeout: float = 300.0,
) -> dict[str, Any]:
    """POST the archive to ``<server_url>/upload`` and return the JSON reply."""
    headers = {
        "Content-Type": "application/gzip",
        HASH_HEADER: version,
        PORT_HEADER: str(config.deploy.port),
        ENTRYPOINT_HEADER: config.deploy.entrypoint,
    }
    logger.info("Uploading %s to %s", version, server_url)
    try:
        response = requests.post(
            f"{server_url}/upload", data=archive, headers=headers, timeout=timeout
        )
    except requests.RequestException as exc:
        raise UploadError(f"Could not reach {server_url}: {exc}") from exc

    if not response.ok:
        raise UploadError(f"Upload failed: {response.status_code} {response.text}")
    return response.json()


def push(
    project_dir: Path,
    *,
    config_path: Path | None = None,
    skip_build: bool = False,
    settings: ClientSettings | None = None,
) -> dict[str, Any]:
    """Run the full build → pack → upload pipeline for *project_dir*.

    Returns the server's JSON reply.
    """
    settings = settings or ClientSettings()
    config = load_deploy_config(config_path or project_dir / CONFIG_FILE_NAME)

    if not skip_build:
        run_build(config.build, project_dir)

    dist = (project_dir / config.deploy.dist).resolve()
    with tempfile.TemporaryDirectory(prefix="hotswap-push-") as tmp:
        archive_path = Path(tmp) / f"deploy-{int(time.time() * 1000)}.tar.gz"
        pack_dist(dist, archive_path)
        archive = archive_path.read_bytes()

    version = generate_version(archive)
    return upload(
        archive,
        version,
        config,
        resolve_server_url(config, settings),
        timeout=settings.upload_timeout_seconds,
    )
