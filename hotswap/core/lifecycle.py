"""Deployment lifecycle manager — the central coordinator for swaps.

The DeploymentManager wires together the ArtifactStore, ProcessSupervisor and
StateLedger and owns the single deployment slot.  ``deploy()``, ``recover()``
and ``shutdown()`` run inside one mutual-exclusion region; ``current`` and
``state`` are plain attribute reads and may be momentarily stale.

Deploy sequence (each step runs only if the previous one succeeded):
1. Materialize the archive under its version.
2. Stop the current instance (best-effort, failures are logged).
3. Start the new instance.  On failure the slot is left empty.
4. Persist the descriptor.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timezone

from pydantic import ValidationError as ModelValidationError

from hotswap.config import ServerSettings
from hotswap.core.artifact_store import ArtifactStore
from hotswap.core.errors import ValidationError
from hotswap.core.state_ledger import StateLedger
from hotswap.core.supervisor import ProcessSupervisor
from hotswap.models.descriptor import DeploymentDescriptor, SlotState

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeploymentManager:
    """Orchestrates materialize → stop → start → persist for the single slot.

    Parameters
    ----------
    store:
        Where artifacts are unpacked.
    supervisor:
        Owner of the running instance.
    ledger:
        Durable record of the last successful deploy.
    clock:
        Source of deploy timestamps; defaults to UTC now.
    """

    def __init__(
        self,
        store: ArtifactStore,
        supervisor: ProcessSupervisor,
        ledger: StateLedger,
        *,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.supervisor = supervisor
        self.ledger = ledger
        self._clock = clock
        self._lock = threading.Lock()
        self._current: DeploymentDescriptor | None = None
        self._state = SlotState.EMPTY

    @classmethod
    def from_settings(cls, settings: ServerSettings) -> DeploymentManager:
        """Build a manager and its collaborators from server settings."""
        store = ArtifactStore(settings.deployments_dir)
        supervisor = ProcessSupervisor(
            store,
            host=settings.app_host,
            stop_grace_seconds=settings.stop_grace_seconds,
            start_timeout_seconds=settings.start_timeout_seconds,
        )
        return cls(store, supervisor, StateLedger(settings.state_path))

    # ------------------------------------------------------------------
    # Lock-free reads
    # ------------------------------------------------------------------

    @property
    def current(self) -> DeploymentDescriptor | None:
        """Descriptor of the instance currently serving traffic, if any."""
        return self._current

    @property
    def state(self) -> SlotState:
        return self._state

    # ------------------------------------------------------------------
    # Deploy
    # ------------------------------------------------------------------

    def deploy(
        self, version: str, archive_bytes: bytes, port: int, entrypoint: str
    ) -> DeploymentDescriptor:
        """Swap the running instance for *version* and persist it.

        Returns the finalized descriptor.  Any failure propagates and the
        remaining steps do not run; a start failure leaves no instance active
        and the ledger unchanged.
        """
        descriptor = self._build_descriptor(version, port, entrypoint)

        with self._lock:
            previous_state = self._state
            self._state = SlotState.DEPLOYING
            logger.info(
                "Deploying version %s (port %d, entrypoint %s)", version, port, entrypoint
            )

            # 1. Materialize
            try:
                self.store.materialize(version, archive_bytes)
            except Exception:
                self._state = previous_state
                raise

            # 2. Stop the old instance; a failure here never blocks the new one
            try:
                self.supervisor.stop()
            except Exception:
                logger.exception(
                    "Failed to stop previous instance %s; continuing with deploy",
                    self._current.version if self._current else None,
                )
            self._current = None

            # 3. Start the new instance
            try:
                self.supervisor.start(descriptor)
            except Exception:
                self._state = SlotState.EMPTY
                logger.error("Version %s failed to start; no instance is active", version)
                raise

            # 4. Persist
            try:
                self.ledger.persist(descriptor)
            except Exception:
                logger.error(
                    "Could not persist state for %s; stopping the new instance", version
                )
                self._stop_quietly()
                self._state = SlotState.EMPTY
                raise

            self._current = descriptor
            self._state = SlotState.ACTIVE
            logger.info("Version %s is active on port %d", version, port)
            return descriptor

    def _build_descriptor(
        self, version: str, port: int, entrypoint: str
    ) -> DeploymentDescriptor:
        try:
            return DeploymentDescriptor(
                version=version,
                port=port,
                entrypoint=entrypoint,
                timestamp=self._clock(),
            )
        except ModelValidationError as exc:
            reasons = "; ".join(err["msg"] for err in exc.errors())
            raise ValidationError(f"Invalid deployment: {reasons}") from exc

    # ------------------------------------------------------------------
    # Recover
    # ------------------------------------------------------------------

    def recover(self) -> DeploymentDescriptor | None:
        """Re-activate the last persisted deployment, if its artifact is present.

        Never raises: failures are logged and ``None`` is returned so the
        control plane keeps accepting uploads.
        """
        with self._lock:
            record = self.ledger.load()
            if record is None:
                logger.info("No previous deployment recorded")
                return None

            if not self.store.exists(record.version):
                logger.warning(
                    "Artifact for recorded version %s is missing at %s; skipping recovery",
                    record.version,
                    self.store.path_for(record.version),
                )
                return None

            if self._current is not None:
                logger.info(
                    "Version %s already active; skipping recovery of %s",
                    self._current.version,
                    record.version,
                )
                return None

            self._state = SlotState.DEPLOYING
            logger.info("Recovering version %s on port %d", record.version, record.port)
            try:
                self.supervisor.start(record)
            except Exception:
                self._state = SlotState.EMPTY
                logger.exception("Failed to recover version %s", record.version)
                return None

            self._current = record
            self._state = SlotState.ACTIVE
            logger.info("Recovered version %s", record.version)
            return record

    # ------------------------------------------------------------------
    # Shutdown
    # ------------------------------------------------------------------

    def shutdown(self) -> None:
        """Stop the active instance; the ledger keeps it for the next boot."""
        with self._lock:
            if self.supervisor.active is None:
                return
            self._state = SlotState.STOPPING
            self._stop_quietly()
            self._current = None
            self._state = SlotState.EMPTY

    def _stop_quietly(self) -> None:
        try:
            self.supervisor.stop()
        except Exception:
            logger.exception("Failed to stop instance")
