"""Tests for DeploymentManager — the materialize → stop → start → persist sequence."""

from __future__ import annotations

import threading
from collections.abc import Callable
from datetime import datetime, timezone

import pytest
import requests

from conftest import LOCALHOST, build_archive, free_port
from hotswap.core.artifact_store import ArtifactStore
from hotswap.core.errors import (
    AppLoadError,
    EntrypointNotFoundError,
    ExtractionError,
    HotswapError,
    InstanceStopError,
    ValidationError,
)
from hotswap.core.lifecycle import DeploymentManager
from hotswap.core.state_ledger import StateLedger
from hotswap.core.supervisor import ProcessSupervisor
from hotswap.models.descriptor import DeploymentDescriptor, SlotState


def _body(port: int) -> str:
    return requests.get(f"http://{LOCALHOST}:{port}/", timeout=5).text


class TestDeploy:
    def test_first_deploy(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes], port: int
    ):
        descriptor = manager.deploy("v1", app_archive("v1"), port, "app.py")

        assert manager.current == descriptor
        assert manager.state is SlotState.ACTIVE
        assert _body(port) == "hello from v1"
        assert ledger.load() == descriptor

    def test_timestamp_comes_from_clock(
        self, store: ArtifactStore, supervisor: ProcessSupervisor, ledger: StateLedger,
        app_archive: Callable[..., bytes], port: int,
    ):
        fixed = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        mgr = DeploymentManager(store, supervisor, ledger, clock=lambda: fixed)
        try:
            assert mgr.deploy("v1", app_archive("v1"), port, "app.py").timestamp == fixed
            assert ledger.load().timestamp == fixed
        finally:
            mgr.shutdown()

    def test_swap_to_new_version(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes]
    ):
        port_a, port_b = free_port(), free_port()
        manager.deploy("v1", app_archive("v1"), port_a, "app.py")
        manager.deploy("v2", app_archive("v2"), port_b, "app.py")

        assert manager.current.version == "v2"
        assert _body(port_b) == "hello from v2"
        with pytest.raises(requests.ConnectionError):
            _body(port_a)
        assert ledger.load().version == "v2"

    def test_swap_on_same_port(self, manager: DeploymentManager, app_archive: Callable[..., bytes], port: int):
        manager.deploy("v1", app_archive("v1"), port, "app.py")
        manager.deploy("v2", app_archive("v2"), port, "app.py")
        assert _body(port) == "hello from v2"

    def test_redeploy_same_version(self, manager: DeploymentManager, app_archive: Callable[..., bytes], port: int):
        manager.deploy("v1", app_archive("first"), port, "app.py")
        manager.deploy("v1", app_archive("second"), port, "app.py")
        assert _body(port) == "hello from second"

    @pytest.mark.parametrize(
        ("version", "port", "entrypoint"),
        [("", 3000, "app.py"), ("../x", 3000, "app.py"), ("v1", 0, "app.py"), ("v1", 3000, "/abs.py")],
    )
    def test_invalid_descriptor_touches_nothing(
        self, manager: DeploymentManager, store: ArtifactStore, ledger: StateLedger,
        version: str, port: int, entrypoint: str,
    ):
        with pytest.raises(ValidationError):
            manager.deploy(version, build_archive({"app.py": "x"}), port, entrypoint)
        assert store.list_versions() == []
        assert ledger.load() is None
        assert manager.state is SlotState.EMPTY


class TestDeployFailures:
    def test_bad_archive_keeps_running_instance(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes], port: int
    ):
        manager.deploy("v1", app_archive("v1"), port, "app.py")
        with pytest.raises(ExtractionError):
            manager.deploy("v2", b"not an archive", free_port(), "app.py")

        assert manager.current.version == "v1"
        assert manager.state is SlotState.ACTIVE
        assert _body(port) == "hello from v1"
        assert ledger.load().version == "v1"

    def test_start_failure_leaves_slot_empty(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes], port: int
    ):
        manager.deploy("v1", app_archive("v1"), port, "app.py")
        with pytest.raises(EntrypointNotFoundError):
            manager.deploy("v2", app_archive("v2"), free_port(), "missing.py")

        assert manager.current is None
        assert manager.state is SlotState.EMPTY
        assert manager.supervisor.active is None
        assert ledger.load().version == "v1"
        with pytest.raises(requests.ConnectionError):
            _body(port)

    def test_load_failure_is_start_failure(
        self, manager: DeploymentManager, ledger: StateLedger, port: int
    ):
        with pytest.raises(AppLoadError):
            manager.deploy("v1", build_archive({"app.py": "raise SystemError('x')\n"}), port, "app.py")
        assert manager.state is SlotState.EMPTY
        assert ledger.load() is None

    def test_stop_failure_does_not_block_deploy(
        self, manager: DeploymentManager, app_archive: Callable[..., bytes],
        monkeypatch: pytest.MonkeyPatch, caplog: pytest.LogCaptureFixture,
    ):
        port_a, port_b = free_port(), free_port()
        manager.deploy("v1", app_archive("v1"), port_a, "app.py")
        old_instance = manager.supervisor.active

        original_stop = ProcessSupervisor.stop

        def failing_stop(self):
            original_stop(self)
            raise InstanceStopError("simulated")

        monkeypatch.setattr(ProcessSupervisor, "stop", failing_stop)
        manager.deploy("v2", app_archive("v2"), port_b, "app.py")
        monkeypatch.setattr(ProcessSupervisor, "stop", original_stop)

        assert manager.current.version == "v2"
        assert not old_instance.running
        assert "Failed to stop previous instance v1" in caplog.text

    def test_persist_failure_stops_new_instance(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes],
        port: int, monkeypatch: pytest.MonkeyPatch,
    ):
        def failing_persist(descriptor: DeploymentDescriptor) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(ledger, "persist", failing_persist)
        with pytest.raises(OSError, match="disk full"):
            manager.deploy("v1", app_archive("v1"), port, "app.py")

        assert manager.current is None
        assert manager.state is SlotState.EMPTY
        assert manager.supervisor.active is None
        with pytest.raises(requests.ConnectionError):
            _body(port)

    def test_failures_are_hotswap_errors(self, manager: DeploymentManager):
        with pytest.raises(HotswapError):
            manager.deploy("v1", b"junk", free_port(), "app.py")


class TestConcurrency:
    def test_concurrent_deploys_leave_one_instance(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes]
    ):
        versions = [f"v{i}" for i in range(4)]
        ports = {v: free_port() for v in versions}
        errors: list[BaseException] = []

        def _deploy(version: str) -> None:
            try:
                manager.deploy(version, app_archive(version), ports[version], "app.py")
            except BaseException as exc:  # pragma: no cover - surfaced below
                errors.append(exc)

        threads = [threading.Thread(target=_deploy, args=(v,)) for v in versions]
        for t in threads:
            t.start()
        for t in threads:
            t.join(30)

        assert errors == []
        winner = manager.current.version
        assert ledger.load().version == winner
        assert _body(ports[winner]) == f"hello from {winner}"
        for version in versions:
            if version != winner:
                with pytest.raises(requests.ConnectionError):
                    _body(ports[version])


class TestRecover:
    def test_nothing_recorded(self, manager: DeploymentManager):
        assert manager.recover() is None
        assert manager.state is SlotState.EMPTY

    def test_restores_recorded_version(
        self, store: ArtifactStore, ledger: StateLedger, app_archive: Callable[..., bytes],
        make_supervisor: Callable[..., ProcessSupervisor], port: int,
    ):
        first = DeploymentManager(store, make_supervisor(), ledger)
        recorded = first.deploy("v1", app_archive("v1"), port, "app.py")
        first.shutdown()

        second = DeploymentManager(store, make_supervisor(), ledger)
        try:
            assert second.recover() == recorded
            assert second.current == recorded
            assert second.state is SlotState.ACTIVE
            assert _body(port) == "hello from v1"
        finally:
            second.shutdown()

    def test_missing_artifact_is_skipped(
        self, manager: DeploymentManager, ledger: StateLedger, port: int
    ):
        ledger.persist(DeploymentDescriptor(version="gone", port=port, entrypoint="app.py"))
        assert manager.recover() is None
        assert manager.state is SlotState.EMPTY

    def test_corrupt_ledger_is_skipped(self, manager: DeploymentManager, ledger: StateLedger):
        ledger.path.parent.mkdir(parents=True, exist_ok=True)
        ledger.path.write_text("{not json")
        assert manager.recover() is None

    def test_start_failure_is_logged_not_raised(
        self, manager: DeploymentManager, store: ArtifactStore, ledger: StateLedger,
        port: int, caplog: pytest.LogCaptureFixture,
    ):
        store.materialize("v1", build_archive({"app.py": "NOTHING = None\n"}))
        ledger.persist(DeploymentDescriptor(version="v1", port=port, entrypoint="app.py"))

        assert manager.recover() is None
        assert manager.state is SlotState.EMPTY
        assert "Failed to recover version v1" in caplog.text

    def test_skips_when_already_active(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes], port: int
    ):
        deployed = manager.deploy("v1", app_archive("v1"), port, "app.py")
        assert manager.recover() is None
        assert manager.current == deployed


class TestShutdown:
    def test_shutdown_keeps_ledger(
        self, manager: DeploymentManager, ledger: StateLedger, app_archive: Callable[..., bytes], port: int
    ):
        manager.deploy("v1", app_archive("v1"), port, "app.py")
        manager.shutdown()

        assert manager.current is None
        assert manager.state is SlotState.EMPTY
        assert ledger.load().version == "v1"
        with pytest.raises(requests.ConnectionError):
            _body(port)

    def test_shutdown_when_idle(self, manager: DeploymentManager):
        manager.shutdown()
        assert manager.state is SlotState.EMPTY
