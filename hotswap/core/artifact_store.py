"""Versioned artifact store — one unpacked directory per deployment version.

Storage layout: {root}/{version}/...
Re-uploading a version replaces its directory wholesale.  Nothing is removed
automatically; ``remove()`` exists for explicit operator cleanup.
"""

from __future__ import annotations

import gzip
import io
import logging
import os
import shutil
import tarfile
import tempfile
import zlib
from datetime import datetime, timezone
from pathlib import Path

from hotswap.core.errors import ArtifactStorageError, ExtractionError, ValidationError
from hotswap.models.artifacts import ArtifactInfo
from hotswap.models.descriptor import check_version

logger = logging.getLogger(__name__)

_STAGING_PREFIX = ".staging-"


class ArtifactStore:
    """Filesystem store of unpacked artifacts, keyed by version.

    Parameters
    ----------
    root:
        Directory holding one subdirectory per version.  Created if missing.
    """

    def __init__(self, root: Path) -> None:
        self._root = Path(root)
        self._root.mkdir(parents=True, exist_ok=True)

    @property
    def root(self) -> Path:
        return self._root

    def path_for(self, version: str) -> Path:
        """Return the artifact directory for *version* (it may not exist)."""
        try:
            check_version(version)
        except ValueError as exc:
            raise ValidationError(str(exc)) from exc
        return self._root / version

    def exists(self, version: str) -> bool:
        """Check if a materialized directory exists for *version*."""
        return self.path_for(version).is_dir()

    # ------------------------------------------------------------------
    # Materialize
    # ------------------------------------------------------------------

    def materialize(self, version: str, archive_bytes: bytes) -> Path:
        """Unpack a gzip-compressed tar stream into the directory for *version*.

        The archive is extracted into a staging directory first and renamed
        into place, so the previous contents of the version survive a failed
        extraction.

        Raises
        ------
        ValidationError
            If *version* is not usable as a directory name.
        ExtractionError
            If the bytes are not a valid gzip tar archive or contain unsafe
            members (absolute paths, ``..``, devices, escaping links).
        ArtifactStorageError
            If the filesystem refuses the write.
        """
        target = self.path_for(version)
        if not archive_bytes:
            raise ExtractionError(f"Archive for version {version!r} is empty")

        try:
            staging = Path(
                tempfile.mkdtemp(prefix=f"{_STAGING_PREFIX}{version}-", dir=self._root)
            )
        except OSError as exc:
            raise ArtifactStorageError(
                f"Cannot create staging directory in {self._root}: {exc}"
            ) from exc

        try:
            self._extract(archive_bytes, staging)
            if target.exists():
                logger.info("Replacing existing artifact directory %s", target)
                shutil.rmtree(target)
            os.replace(staging, target)
        except OSError as exc:
            raise ArtifactStorageError(
                f"Failed to write artifact for version {version!r}: {exc}"
            ) from exc
        finally:
            if staging.exists():
                shutil.rmtree(staging, ignore_errors=True)

        logger.info(
            "Materialized version %s (%.2f MB) at %s",
            version,
            len(archive_bytes) / 1024 / 1024,
            target,
        )
        return target

    @staticmethod
    def _extract(archive_bytes: bytes, destination: Path) -> None:
        try:
            with tarfile.open(fileobj=io.BytesIO(archive_bytes), mode="r:gz") as tar:
                tar.extractall(destination, filter="data")
        except (tarfile.TarError, EOFError, zlib.error, gzip.BadGzipFile) as exc:
            raise ExtractionError(f"Invalid artifact archive: {exc}") from exc

    # ------------------------------------------------------------------
    # Inspect and clean up
    # ------------------------------------------------------------------

    def list_versions(self) -> list[ArtifactInfo]:
        """List materialized versions, newest first."""
        infos: list[ArtifactInfo] = []
        for entry in self._root.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            size = sum(f.stat().st_size for f in entry.rglob("*") if f.is_file())
            infos.append(
                ArtifactInfo(
                    version=entry.name,
                    path=entry,
                    size_bytes=size,
                    modified_at=datetime.fromtimestamp(
                        entry.stat().st_mtime, tz=timezone.utc
                    ),
                )
            )
        return sorted(infos, key=lambda i: i.modified_at, reverse=True)

    def remove(self, version: str) -> None:
        """Delete the artifact directory for *version*."""
        path = self.path_for(version)
        if not path.is_dir():
            raise FileNotFoundError(f"Artifact not found: {version}")
        shutil.rmtree(path)
        logger.info("Removed artifact directory %s", path)
