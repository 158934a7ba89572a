"""
Unit tests for the container lifecycle manager.
"""
import logging

import pytest

from fakes import LocalProcessEngine, PYTHON_PROFILE
from polyrun.config.engine import EngineConfig
from polyrun.exceptions import ContainerCreateError, ContainerStartError
from polyrun.runtime.lifecycle import ContainerManager
from polyrun.runtime.staging import stage


@pytest.fixture
def workspace(sandbox_root):
    return stage("print('hi')", PYTHON_PROFILE, sandbox_root)


class TestAcquire:
    def test_creates_and_starts(self, local_engine, workspace):
        manager = ContainerManager(local_engine, EngineConfig())
        handle = manager.acquire(workspace, PYTHON_PROFILE)

        assert handle.container_id in local_engine.created
        assert local_engine.is_running(handle.container_id)
        assert handle.workspace_path == workspace.path
        assert handle.image == "python:3.11-slim"
        assert handle.created_at > 0

        kwargs = local_engine.create_kwargs[0]
        assert kwargs["workspace"] == workspace.path
        assert kwargs["workdir"] == "/app"
        assert kwargs["memory_limit_bytes"] == 512 * 1024 * 1024
        assert kwargs["command"] == ("sleep", "3600")
        assert kwargs["labels"] == {"polyrun": "sandbox"}
        assert kwargs["name"].startswith("polyrun-")

    def test_memory_override(self, local_engine, workspace):
        manager = ContainerManager(local_engine, EngineConfig())
        manager.acquire(workspace, PYTHON_PROFILE, memory_limit_bytes=64 * 1024 * 1024)
        assert local_engine.create_kwargs[0]["memory_limit_bytes"] == 64 * 1024 * 1024

    def test_create_failure_removes_partial_container(self, workspace):
        engine = LocalProcessEngine(fail_create=True)
        manager = ContainerManager(engine, EngineConfig())
        with pytest.raises(ContainerCreateError, match="Unable to find image"):
            manager.acquire(workspace, PYTHON_PROFILE)
        assert engine.remove_attempts == [engine.create_kwargs[0]["name"]]
        assert engine.containers == {}

    def test_start_failure_removes_container(self, workspace):
        engine = LocalProcessEngine(fail_start=True)
        manager = ContainerManager(engine, EngineConfig())
        with pytest.raises(ContainerStartError, match="OCI runtime"):
            manager.acquire(workspace, PYTHON_PROFILE)
        assert engine.removed == engine.created
        assert engine.containers == {}


class TestRelease:
    def test_release_is_idempotent(self, local_engine, workspace):
        manager = ContainerManager(local_engine, EngineConfig())
        handle = manager.acquire(workspace, PYTHON_PROFILE)
        manager.release(handle)
        manager.release(handle)
        assert handle.released
        assert local_engine.remove_attempts == [handle.container_id]
        assert local_engine.containers == {}

    def test_release_failure_is_logged(self, workspace, caplog):
        engine = LocalProcessEngine(fail_remove=True)
        manager = ContainerManager(engine, EngineConfig())
        handle = manager.acquire(workspace, PYTHON_PROFILE)
        with caplog.at_level(logging.WARNING):
            manager.release(handle)
        assert "Failed to clean up container" in caplog.text
        assert handle.released
