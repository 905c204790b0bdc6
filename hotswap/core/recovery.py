"""Startup recovery — restores the last deployment after a host restart."""

from __future__ import annotations

import logging
import threading

from hotswap.core.lifecycle import DeploymentManager
from hotswap.models.descriptor import DeploymentDescriptor

logger = logging.getLogger(__name__)


class RecoveryInitializer:
    """Runs ``DeploymentManager.recover()`` exactly once.

    Recovery may run while the control plane already accepts uploads; the
    manager's lock serializes it against any concurrent deploy.
    """

    def __init__(self, manager: DeploymentManager) -> None:
        self._manager = manager
        self._guard = threading.Lock()
        self._done = False
        self.result: DeploymentDescriptor | None = None

    @property
    def done(self) -> bool:
        return self._done

    def run(self) -> DeploymentDescriptor | None:
        """Recover the recorded deployment; later calls are no-ops."""
        with self._guard:
            if self._done:
                logger.debug("Recovery already ran; ignoring repeat call")
                return self.result
            self._done = True

        logger.info("Checking for a previous deployment to restore...")
        self.result = self._manager.recover()
        return self.result

    def start_background(self) -> threading.Thread:
        """Run recovery on a daemon thread and return it."""
        thread = threading.Thread(target=self.run, name="hotswap-recovery", daemon=True)
        thread.start()
        return thread
