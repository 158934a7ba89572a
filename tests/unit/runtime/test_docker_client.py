"""
Unit tests for the docker CLI engine.
"""
import subprocess
from unittest.mock import MagicMock, patch

import pytest

from polyrun.exceptions import DockerCommandError, EngineUnavailableError
from polyrun.runtime.docker import DockerCLIEngine, PopenExecProcess


def _completed(stdout="", stderr="", returncode=0):
    return MagicMock(stdout=stdout, stderr=stderr, returncode=returncode)


@pytest.fixture
def run_mock():
    with patch("polyrun.runtime.docker.subprocess.run") as mock:
        mock.return_value = _completed()
        yield mock


class TestDockerCLIEngine:
    def test_create_isolates_network_and_caps_memory(self, run_mock):
        run_mock.return_value = _completed(stdout="abc123\n")
        engine = DockerCLIEngine(pids_limit=64)
        container_id = engine.create(
            "python:3.11-slim",
            name="polyrun-test",
            workspace="/tmp/sandbox/exec_1",
            workdir="/app",
            memory_limit_bytes=536870912,
            command=("sleep", "3600"),
            labels={"polyrun": "sandbox"},
        )
        assert container_id == "abc123"

        argv = run_mock.call_args[0][0]
        assert argv[:4] == ["docker", "create", "--name", "polyrun-test"]
        assert argv[argv.index("--network") + 1] == "none"
        assert "--memory=536870912b" in argv
        assert "--memory-swap=536870912b" in argv
        assert "--pids-limit=64" in argv
        assert argv[argv.index("--volume") + 1] == "/tmp/sandbox/exec_1:/app:rw"
        assert argv[argv.index("--workdir") + 1] == "/app"
        assert argv[argv.index("--label") + 1] == "polyrun=sandbox"
        assert argv[-3:] == ["python:3.11-slim", "sleep", "3600"]

    def test_create_takes_last_line_as_id(self, run_mock):
        run_mock.return_value = _completed(stdout="Pulling from library/python\nDigest: sha256:1\nfeed42\n")
        engine = DockerCLIEngine()
        container_id = engine.create(
            "python:3.11-slim", name="n", workspace="/w", workdir="/app",
            memory_limit_bytes=1, command=("sleep", "1"), labels={},
        )
        assert container_id == "feed42"

    def test_failure_raises_docker_command_error(self, run_mock):
        run_mock.return_value = _completed(stderr="Error response from daemon: boom", returncode=1)
        with pytest.raises(DockerCommandError, match="docker start failed with exit code 1") as exc_info:
            DockerCLIEngine().start("abc")
        assert exc_info.value.returncode == 1
        assert "boom" in exc_info.value.stderr

    def test_missing_binary(self, run_mock):
        run_mock.side_effect = FileNotFoundError()
        with pytest.raises(DockerCommandError, match="not found"):
            DockerCLIEngine(binary="nodocker").start("abc")

    def test_control_command_timeout(self, run_mock):
        run_mock.side_effect = subprocess.TimeoutExpired(["docker"], 1)
        with pytest.raises(DockerCommandError, match="timed out"):
            DockerCLIEngine(command_timeout=1).start("abc")

    def test_remove_forces(self, run_mock):
        DockerCLIEngine().remove("abc")
        assert run_mock.call_args[0][0] == ["docker", "rm", "--force", "--volumes", "abc"]

    def test_remove_missing_container_is_ignored(self, run_mock):
        run_mock.return_value = _completed(stderr="Error: No such container: abc", returncode=1)
        DockerCLIEngine().remove("abc")

    def test_remove_other_failure_raises(self, run_mock):
        run_mock.return_value = _completed(stderr="removal in progress", returncode=1)
        with pytest.raises(DockerCommandError):
            DockerCLIEngine().remove("abc")

    def test_is_running(self, run_mock):
        run_mock.return_value = _completed(stdout="true\n")
        assert DockerCLIEngine().is_running("abc")
        run_mock.return_value = _completed(stderr="Error: No such object: abc\nError: No such container: abc", returncode=1)
        assert not DockerCLIEngine().is_running("abc")

    def test_list_containers_filters_by_label(self, run_mock):
        run_mock.return_value = _completed(stdout="id1\nid2\n\n")
        ids = DockerCLIEngine().list_containers({"polyrun": "sandbox"}, include_stopped=True)
        assert ids == ["id1", "id2"]
        argv = run_mock.call_args[0][0]
        assert "--all" in argv
        assert argv[argv.index("--filter") + 1] == "label=polyrun=sandbox"

    def test_ping_failure_raises_unavailable(self, run_mock):
        run_mock.return_value = _completed(stderr="Cannot connect to the Docker daemon", returncode=1)
        with pytest.raises(EngineUnavailableError):
            DockerCLIEngine().ping()

    def test_pull_uses_pull_timeout(self, run_mock):
        DockerCLIEngine(pull_timeout=123).pull("ruby:3.2-slim")
        assert run_mock.call_args[0][0] == ["docker", "pull", "--quiet", "ruby:3.2-slim"]
        assert run_mock.call_args[1]["timeout"] == 123

    def test_exec_spawns_docker_exec(self):
        with patch("polyrun.runtime.docker.subprocess.Popen") as popen:
            process = DockerCLIEngine().exec("abc", ("python", "main.py"), "/app")
        argv = popen.call_args[0][0]
        assert argv == ["docker", "exec", "--workdir", "/app", "abc", "python", "main.py"]
        assert popen.call_args[1]["stdin"] == subprocess.DEVNULL
        assert isinstance(process, PopenExecProcess)

    def test_exec_spawn_failure(self):
        with patch("polyrun.runtime.docker.subprocess.Popen", side_effect=OSError("no fork")):
            with pytest.raises(DockerCommandError, match="no fork"):
                DockerCLIEngine().exec("abc", ("true",), "/app")


class TestPopenExecProcess:
    def test_wait_returns_none_on_timeout(self):
        popen = MagicMock()
        popen.wait.side_effect = subprocess.TimeoutExpired(["docker"], 1)
        assert PopenExecProcess(popen).wait(timeout=1) is None

    def test_kill_only_when_running(self):
        popen = MagicMock()
        popen.poll.return_value = 0
        PopenExecProcess(popen).kill()
        popen.kill.assert_not_called()
