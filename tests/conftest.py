"""Shared test fixtures for Hotswap."""

from __future__ import annotations

import io
import socket
import tarfile
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest

from hotswap.config import ServerSettings
from hotswap.core.artifact_store import ArtifactStore
from hotswap.core.lifecycle import DeploymentManager
from hotswap.core.state_ledger import StateLedger
from hotswap.core.supervisor import ProcessSupervisor

LOCALHOST = "127.0.0.1"


def fetch_app_source(label: str) -> str:
    """Source of a minimal fetch-style application answering with *label*."""
    return (
        "from werkzeug.wrappers import Response\n"
        "\n"
        "def fetch(request):\n"
        f"    return Response('hello from {label}', mimetype='text/plain')\n"
    )


def build_archive(files: dict[str, str | bytes]) -> bytes:
    """Build a gzip tar archive in memory from ``{relative_path: content}``."""
    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz") as tar:
        for name, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(name=name)
            info.size = len(data)
            info.mode = 0o644
            tar.addfile(info, io.BytesIO(data))
    return buf.getvalue()


def free_port() -> int:
    """Return a loopback port that is currently unbound."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind((LOCALHOST, 0))
        return s.getsockname()[1]


@pytest.fixture
def tmp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory for test artifacts."""
    return tmp_path


@pytest.fixture
def deployments_dir(tmp_dir: Path) -> Path:
    return tmp_dir / "deployments"


@pytest.fixture
def store(deployments_dir: Path) -> ArtifactStore:
    """Provide a fresh ArtifactStore in a temp directory."""
    return ArtifactStore(deployments_dir)


@pytest.fixture
def ledger(deployments_dir: Path) -> StateLedger:
    """Provide a StateLedger writing next to the artifacts."""
    return StateLedger(deployments_dir / ".state.json")


@pytest.fixture
def make_supervisor(store: ArtifactStore) -> Iterator[Callable[..., ProcessSupervisor]]:
    """Factory fixture: supervisors bound to loopback, stopped at teardown."""
    created: list[ProcessSupervisor] = []

    def _factory(**overrides) -> ProcessSupervisor:
        options = {
            "host": LOCALHOST,
            "stop_grace_seconds": 2.0,
            "start_timeout_seconds": 5.0,
        }
        options.update(overrides)
        supervisor = ProcessSupervisor(store, **options)
        created.append(supervisor)
        return supervisor

    yield _factory
    for supervisor in created:
        supervisor.stop()


@pytest.fixture
def supervisor(make_supervisor: Callable[..., ProcessSupervisor]) -> ProcessSupervisor:
    return make_supervisor()


@pytest.fixture
def manager(
    store: ArtifactStore, supervisor: ProcessSupervisor, ledger: StateLedger
) -> Iterator[DeploymentManager]:
    """Provide a DeploymentManager wired to the test store, supervisor and ledger."""
    mgr = DeploymentManager(store, supervisor, ledger)
    yield mgr
    mgr.shutdown()


@pytest.fixture
def settings(deployments_dir: Path) -> ServerSettings:
    """Provide server settings rooted in the temp directory."""
    return ServerSettings(
        deployments_dir=deployments_dir,
        upload_host=LOCALHOST,
        upload_port=0,
        app_host=LOCALHOST,
        stop_grace_seconds=2.0,
        start_timeout_seconds=5.0,
    )


@pytest.fixture
def port() -> int:
    return free_port()


@pytest.fixture
def app_archive() -> Callable[[str], bytes]:
    """Factory fixture: archive with a fetch-style ``app.py`` answering *label*."""

    def _factory(label: str = "v1", entrypoint: str = "app.py") -> bytes:
        return build_archive({entrypoint: fetch_app_source(label)})

    return _factory
