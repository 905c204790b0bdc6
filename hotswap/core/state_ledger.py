"""Single-record state ledger — the last successfully started descriptor.

Design:
- One mutable cell, not a log: ``persist()`` overwrites the record wholesale.
- Crash-safe writes: temp file in the same directory, fsync, atomic rename.
- A corrupt record is logged and reported as "no prior state"; it never
  prevents the server from starting.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError as ModelValidationError

from hotswap.core.errors import LedgerCorruptError
from hotswap.models.descriptor import DeploymentDescriptor

logger = logging.getLogger(__name__)


class StateLedger:
    """Durable store for the active ``DeploymentDescriptor``.

    Parameters
    ----------
    path:
        Path to the JSON record file.  Its parent directory is created if it
        does not exist.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._path.parent.mkdir(parents=True, exist_ok=True)

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Write
    # ------------------------------------------------------------------

    def persist(self, descriptor: DeploymentDescriptor) -> None:
        """Replace the record with *descriptor*, flushed to disk before returning."""
        payload = json.dumps(descriptor.to_record(), indent=2) + "\n"
        tmp_path: Path | None = None
        try:
            with tempfile.NamedTemporaryFile(
                "w",
                encoding="utf-8",
                dir=str(self._path.parent),
                prefix=f".{self._path.name}.",
                delete=False,
            ) as f:
                tmp_path = Path(f.name)
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self._path)
            _fsync_directory(self._path.parent)
        finally:
            if tmp_path is not None and tmp_path.exists():
                tmp_path.unlink()
        logger.info("State saved to %s (version %s)", self._path, descriptor.version)

    def clear(self) -> None:
        """Remove the record, if any."""
        self._path.unlink(missing_ok=True)

    # ------------------------------------------------------------------
    # Read
    # ------------------------------------------------------------------

    def load(self) -> DeploymentDescriptor | None:
        """Return the persisted descriptor, or None if absent or unreadable."""
        try:
            return self._read()
        except LedgerCorruptError:
            logger.warning(
                "Ignoring unreadable state record at %s", self._path, exc_info=True
            )
            return None

    def _read(self) -> DeploymentDescriptor | None:
        if not self._path.exists():
            return None
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
            descriptor = DeploymentDescriptor.model_validate(raw)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, ModelValidationError) as exc:
            raise LedgerCorruptError(
                f"Corrupt state record at {self._path}: {exc}"
            ) from exc
        logger.info(
            "Loaded state record: version=%s port=%d entrypoint=%s timestamp=%s",
            descriptor.version,
            descriptor.port,
            descriptor.entrypoint,
            descriptor.timestamp.isoformat(),
        )
        return descriptor


def _fsync_directory(directory: Path) -> None:
    """Flush *directory*'s entries so a completed rename survives a crash."""
    fd = os.open(directory, os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)
