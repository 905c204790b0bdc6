"""Deployment server process — wires settings, recovery and the control plane.

``serve()`` blocks until SIGINT/SIGTERM, then stops the active instance and
closes the control-plane listener.  The persisted state is left in place so
the next boot restores the same version.
"""

from __future__ import annotations

import logging
import signal
import threading
import time
from types import FrameType

from werkzeug.serving import BaseWSGIServer, make_server

from hotswap.config import ServerSettings
from hotswap.core.lifecycle import DeploymentManager
from hotswap.core.recovery import RecoveryInitializer
from hotswap.server.app import create_app

logger = logging.getLogger(__name__)


class DeployServer:
    """The long-running host process.

    Parameters
    ----------
    settings:
        Server configuration.
    manager:
        Optional pre-built manager; built from *settings* when omitted.
    """

    def __init__(
        self,
        settings: ServerSettings,
        manager: DeploymentManager | None = None,
    ) -> None:
        self.settings = settings
        self.manager = manager or DeploymentManager.from_settings(settings)
        self.recovery = RecoveryInitializer(self.manager)
        self.started_at = time.monotonic()
        self.app = create_app(self.manager, settings, started_at=self.started_at)
        self._server: BaseWSGIServer | None = None

    def bind(self) -> BaseWSGIServer:
        """Bind the control-plane listener."""
        self._server = make_server(
            self.settings.upload_host,
            self.settings.upload_port,
            self.app,
            threaded=True,
        )
        return self._server

    def serve(self, *, install_signal_handlers: bool = True) -> None:
        """Start recovery, then serve uploads until asked to stop."""
        logger.info("Initializing deployment server")
        server = self._server or self.bind()
        if install_signal_handlers:
            signal.signal(signal.SIGINT, self._handle_signal)
            signal.signal(signal.SIGTERM, self._handle_signal)

        logger.info("Upload server listening on port %d", server.port)
        logger.info("Deployments directory: %s", self.manager.store.root)
        logger.info("Status: http://localhost:%d/status", server.port)

        self.recovery.start_background()
        try:
            server.serve_forever()
        finally:
            self.close()

    def stop(self) -> None:
        """Ask the serving loop to exit; safe to call from any thread."""
        if self._server is not None:
            threading.Thread(
                target=self._server.shutdown, name="hotswap-shutdown", daemon=True
            ).start()

    def close(self) -> None:
        logger.info("Shutting down deployment server")
        self.manager.shutdown()
        if self._server is not None:
            self._server.server_close()
            self._server = None
        logger.info("Deployment server closed")

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        logger.info("Received %s, shutting down", signal.Signals(signum).name)
        self.stop()
