"""Process supervisor — owns at most one running application instance.

The supervisor never stops an instance on its own when starting another one:
"stop old" and "start new" are separate, separately failable steps driven by
the lifecycle manager.  Instances are served in-process by a threaded
werkzeug server on a daemon thread.
"""

from __future__ import annotations

import logging
import socket
import threading
import time
from pathlib import Path
from typing import Any

from werkzeug.serving import BaseWSGIServer, make_server

from hotswap.core.artifact_store import ArtifactStore
from hotswap.core.errors import (
    AppLoadError,
    BindError,
    EntrypointNotFoundError,
    InstanceStopError,
    StartTimeoutError,
)
from hotswap.core.loader import WSGIApp, load_module, module_name_for, resolve_handler, unload_modules
from hotswap.models.descriptor import DeploymentDescriptor

logger = logging.getLogger(__name__)


class ActiveInstance:
    """Handle to the running application: its descriptor, listener and stop capability.

    Parameters
    ----------
    descriptor:
        The descriptor the instance was started from.
    directory:
        The artifact directory the application was loaded from.
    server:
        The bound werkzeug server.
    """

    def __init__(
        self,
        descriptor: DeploymentDescriptor,
        directory: Path,
        server: BaseWSGIServer,
    ) -> None:
        self.descriptor = descriptor
        self.directory = directory
        self._server = server
        self._stopped = False
        self._thread = threading.Thread(
            target=server.serve_forever,
            name=f"hotswap-app-{descriptor.version}",
            daemon=True,
        )

    @property
    def port(self) -> int:
        return self.descriptor.port

    @property
    def running(self) -> bool:
        return self._thread.is_alive() and not self._stopped

    def serve(self) -> None:
        self._thread.start()

    def stop(self, grace_seconds: float) -> None:
        """Shut the listener down, waiting at most *grace_seconds* before forcing it.

        Safe to call more than once.

        Raises
        ------
        InstanceStopError
            If the listening socket could not be closed.
        """
        if self._stopped:
            return
        self._stopped = True

        if self._thread.is_alive():
            started = time.monotonic()
            threading.Thread(
                target=self._server.shutdown,
                name=f"hotswap-stop-{self.descriptor.version}",
                daemon=True,
            ).start()
            self._thread.join(grace_seconds)
            if self._thread.is_alive():
                logger.warning(
                    "Instance %s did not stop within %.1fs; forcing listener closed",
                    self.descriptor.version,
                    grace_seconds,
                )
            else:
                logger.debug(
                    "Instance %s stopped in %.2fs",
                    self.descriptor.version,
                    time.monotonic() - started,
                )

        try:
            self._server.server_close()
        except OSError as exc:
            raise InstanceStopError(
                f"Could not release port {self.port} for {self.descriptor.version}: {exc}"
            ) from exc
        finally:
            unload_modules(self.directory)


class ProcessSupervisor:
    """Starts and stops the single application instance.

    Parameters
    ----------
    store:
        Artifact store used to locate each version's directory.
    host:
        Interface application instances bind to.
    stop_grace_seconds:
        How long ``stop()`` waits for the serving loop before forcing it.
    start_timeout_seconds:
        Upper bound on loading an application's entrypoint.
    """

    def __init__(
        self,
        store: ArtifactStore,
        *,
        host: str = "0.0.0.0",
        stop_grace_seconds: float = 5.0,
        start_timeout_seconds: float = 30.0,
    ) -> None:
        self._store = store
        self._host = host
        self._stop_grace = stop_grace_seconds
        self._start_timeout = start_timeout_seconds
        self._active: ActiveInstance | None = None

    @property
    def active(self) -> ActiveInstance | None:
        return self._active

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    def stop(self) -> None:
        """Stop the active instance, if any.  No-op when nothing is running."""
        instance = self._active
        if instance is None:
            return
        self._active = None
        logger.info(
            "Stopping instance %s on port %d", instance.descriptor.version, instance.port
        )
        instance.stop(self._stop_grace)
        logger.info("Instance %s stopped", instance.descriptor.version)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    def start(self, descriptor: DeploymentDescriptor) -> ActiveInstance:
        """Load and serve the application described by *descriptor*.

        The caller must ``stop()`` the previous instance first; this method
        replaces the handle without stopping it.  On any failure every module
        loaded from the artifact directory is evicted again.

        Raises
        ------
        EntrypointNotFoundError
            If the entrypoint file is missing from the artifact directory.
        AppLoadError
            If the entrypoint fails to import or exposes no request handler
            (``StartTimeoutError`` if loading exceeds the start timeout).
        BindError
            If the port cannot be bound.
        """
        directory = self._store.path_for(descriptor.version)
        entrypoint = directory / descriptor.entrypoint
        logger.info(
            "Starting version %s from %s on port %d",
            descriptor.version,
            entrypoint,
            descriptor.port,
        )
        if not entrypoint.is_file():
            raise EntrypointNotFoundError(f"Entrypoint not found: {entrypoint}")

        try:
            app = self._load(entrypoint, descriptor.version, directory)
            server = self._bind(app, descriptor.port)
        except Exception:
            unload_modules(directory)
            raise

        instance = ActiveInstance(descriptor, directory, server)
        instance.serve()
        self._active = instance
        logger.info(
            "Version %s serving at http://localhost:%d", descriptor.version, descriptor.port
        )
        return instance

    def _load(self, entrypoint: Path, version: str, directory: Path) -> WSGIApp:
        outcome: dict[str, Any] = {}
        abandoned = threading.Event()

        def _worker() -> None:
            try:
                module = load_module(entrypoint, module_name_for(version))
                outcome["app"] = resolve_handler(module)
            except Exception as exc:
                outcome["error"] = exc
            finally:
                if abandoned.is_set():
                    # The start already failed; drop whatever the late load registered.
                    unload_modules(directory)
                    logger.warning("Abandoned load of %s finished; modules evicted", entrypoint)

        loader = threading.Thread(target=_worker, name=f"hotswap-load-{version}", daemon=True)
        loader.start()
        loader.join(self._start_timeout)
        if loader.is_alive():
            abandoned.set()
            raise StartTimeoutError(
                f"Loading {entrypoint} exceeded {self._start_timeout:.1f}s"
            )
        if "error" in outcome:
            raise outcome["error"]
        if "app" not in outcome:
            raise AppLoadError(f"Loading {entrypoint} ended without a request handler")
        return outcome["app"]

    def _bind(self, app: WSGIApp, port: int) -> BaseWSGIServer:
        family = socket.AF_INET6 if ":" in self._host else socket.AF_INET
        try:
            listener = socket.create_server((self._host, port), family=family)
        except OSError as exc:
            raise BindError(f"Cannot bind {self._host}:{port}: {exc}") from exc
        try:
            return make_server(self._host, port, app, threaded=True, fd=listener.fileno())
        finally:
            # make_server duplicates the descriptor.
            listener.close()
