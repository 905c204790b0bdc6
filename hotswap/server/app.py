"""Control-plane HTTP application (Flask).

Routes:
- ``POST /upload`` — deploy a gzip tar artifact described by ``X-Deploy-*`` headers.
- ``GET /status``  — report the active version and server facts.
Anything else answers ``404 Not Found``.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime

from flask import Flask, Response, jsonify, request
from werkzeug.exceptions import MethodNotAllowed, NotFound, RequestEntityTooLarge

from hotswap.config import ServerSettings
from hotswap.core.errors import HotswapError, ValidationError
from hotswap.core.lifecycle import DeploymentManager
from hotswap.models.control import (
    ENTRYPOINT_HEADER,
    HASH_HEADER,
    PORT_HEADER,
    StatusReport,
    UploadFailure,
    UploadResult,
)
from hotswap.models.descriptor import check_entrypoint, check_version

logger = logging.getLogger(__name__)


def parse_deploy_headers(headers) -> tuple[str, int, str]:
    """Extract ``(version, port, entrypoint)`` from upload headers.

    Raises
    ------
    ValidationError
        If a header is missing or its value is unusable.
    """
    version = headers.get(HASH_HEADER, "").strip()
    port_raw = headers.get(PORT_HEADER, "").strip()
    entrypoint = headers.get(ENTRYPOINT_HEADER, "").strip()

    missing = [
        name
        for name, value in (
            (HASH_HEADER, version),
            (PORT_HEADER, port_raw),
            (ENTRYPOINT_HEADER, entrypoint),
        )
        if not value
    ]
    if missing:
        raise ValidationError(f"Missing deploy headers: {', '.join(missing)}")

    if not (port_raw.isascii() and port_raw.isdigit()):
        raise ValidationError(f"Invalid port number: {port_raw!r}")
    port = int(port_raw)
    if not 1 <= port <= 65535:
        raise ValidationError(f"Port out of range: {port}")

    try:
        check_version(version)
        check_entrypoint(entrypoint)
    except ValueError as exc:
        raise ValidationError(str(exc)) from exc

    return version, port, entrypoint


def _plain(text: str, status: int) -> Response:
    return Response(text, status=status, mimetype="text/plain")


def create_app(
    manager: DeploymentManager,
    settings: ServerSettings,
    *,
    started_at: float | None = None,
) -> Flask:
    """Build the control-plane Flask application around *manager*."""
    app = Flask(__name__)
    app.config["MAX_CONTENT_LENGTH"] = settings.max_upload_bytes
    app.config["DEBUG"] = settings.debug
    boot = started_at if started_at is not None else time.monotonic()

    @app.post("/upload")
    def upload() -> Response | tuple[Response, int]:
        started = time.monotonic()
        logger.info("Deploy request received at %s", datetime.now().isoformat(timespec="seconds"))

        try:
            version, port, entrypoint = parse_deploy_headers(request.headers)
        except ValidationError as exc:
            logger.error("Rejected upload: %s", exc)
            return _plain(str(exc), 400)

        archive = request.get_data(cache=False)
        logger.info(
            "Upload for %s: %.2f MB, port %d, entrypoint %s",
            version,
            len(archive) / 1024 / 1024,
            port,
            entrypoint,
        )

        try:
            descriptor = manager.deploy(version, archive, port, entrypoint)
        except ValidationError as exc:
            logger.error("Rejected upload: %s", exc)
            return _plain(str(exc), 400)
        except HotswapError as exc:
            logger.error("Deploy of %s failed: %s", version, exc)
            return jsonify(UploadFailure(error=str(exc)).model_dump()), 500
        except Exception as exc:
            logger.exception("Deploy of %s failed unexpectedly", version)
            return jsonify(UploadFailure(error=str(exc) or type(exc).__name__).model_dump()), 500

        duration = f"{time.monotonic() - started:.2f}"
        logger.info("Deploy of %s succeeded in %ss", version, duration)
        result = UploadResult(hash=descriptor.version, port=descriptor.port, duration=duration)
        return jsonify(result.model_dump())

    @app.get("/status")
    def status() -> Response:
        current = manager.current
        report = StatusReport(
            current_deployment=current.version if current else None,
            upload_port=settings.upload_port,
            deployments_dir=str(manager.store.root),
            uptime=round(time.monotonic() - boot, 3),
        )
        return jsonify(report.model_dump(by_alias=True))

    @app.errorhandler(NotFound)
    @app.errorhandler(MethodNotAllowed)
    def not_found(exc: Exception) -> Response:
        logger.info("Unknown request: %s %s", request.method, request.path)
        return _plain("Not Found", 404)

    @app.errorhandler(RequestEntityTooLarge)
    def too_large(exc: RequestEntityTooLarge) -> Response:
        logger.error("Rejected upload larger than %d bytes", settings.max_upload_bytes)
        return _plain("Upload too large", 413)

    return app
