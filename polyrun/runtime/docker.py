"""
Container engine connection.

``ContainerEngine`` is the narrow interface the lifecycle manager and executor
need from a container runtime. ``DockerCLIEngine`` implements it on top of the
``docker`` command line client, which talks to the local daemon socket. Tests
substitute their own engine.
"""
import logging
import subprocess
from abc import ABC, abstractmethod
from typing import BinaryIO, Dict, List, Optional, Sequence

from polyrun.config.defaults import DOCKER_DEFAULTS
from polyrun.exceptions import DockerCommandError, EngineUnavailableError

logger = logging.getLogger(__name__)

# Prefix the docker client writes to stderr when the daemon cannot start an
# exec'd command (missing binary, bad permissions). Exit code is 126 or 127.
EXEC_FAILED_MARKER = "OCI runtime exec failed"
EXEC_FAILED_CODES = (126, 127)


class ExecProcess(ABC):
    """A command running inside a container, with its output pipes."""

    stdout: BinaryIO
    stderr: BinaryIO

    @abstractmethod
    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for exit. Returns the exit code, or None if ``timeout`` elapsed."""
        pass

    @abstractmethod
    def kill(self) -> None:
        """Stop waiting on the command. Safe to call after exit."""
        pass

    @property
    @abstractmethod
    def returncode(self) -> Optional[int]:
        pass


class ContainerEngine(ABC):
    @abstractmethod
    def ping(self) -> str:
        """Return the engine server version, raising if it is unreachable."""
        pass

    @abstractmethod
    def create(
        self,
        image: str,
        *,
        name: str,
        workspace: str,
        workdir: str,
        memory_limit_bytes: int,
        command: Sequence[str],
        labels: Dict[str, str],
    ) -> str:
        """Create a stopped, network-less container and return its id."""
        pass

    @abstractmethod
    def start(self, container_id: str) -> None:
        pass

    @abstractmethod
    def exec(self, container_id: str, command: Sequence[str], workdir: str) -> ExecProcess:
        pass

    @abstractmethod
    def remove(self, container_id: str) -> None:
        """Force-remove a container, killing it if running. Missing ids are ignored."""
        pass

    @abstractmethod
    def is_running(self, container_id: str) -> bool:
        pass

    @abstractmethod
    def list_containers(self, labels: Dict[str, str], include_stopped: bool = False) -> List[str]:
        pass

    @abstractmethod
    def pull(self, image: str) -> None:
        pass

    def close(self) -> None:
        """Release the engine connection."""
        pass


class PopenExecProcess(ExecProcess):
    def __init__(self, process: subprocess.Popen):
        self._process = process
        self.stdout = process.stdout
        self.stderr = process.stderr

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        try:
            return self._process.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None

    def kill(self) -> None:
        if self._process.poll() is None:
            self._process.kill()
            self._process.wait()

    @property
    def returncode(self) -> Optional[int]:
        return self._process.returncode


class DockerCLIEngine(ContainerEngine):
    """Talks to the Docker daemon through the ``docker`` CLI."""

    def __init__(
        self,
        binary: str = DOCKER_DEFAULTS.binary,
        command_timeout: float = DOCKER_DEFAULTS.command_timeout,
        pull_timeout: float = DOCKER_DEFAULTS.pull_timeout,
        pids_limit: Optional[int] = DOCKER_DEFAULTS.pids_limit,
    ):
        self.binary = binary
        self.command_timeout = command_timeout
        self.pull_timeout = pull_timeout
        self.pids_limit = pids_limit

    def _run(self, args: Sequence[str], timeout: Optional[float] = None) -> str:
        argv = [self.binary, *args]
        timeout = self.command_timeout if timeout is None else timeout
        try:
            completed = subprocess.run(argv, capture_output=True, text=True, timeout=timeout)
        except FileNotFoundError as e:
            raise DockerCommandError(argv, None, f"{self.binary} not found") from e
        except subprocess.TimeoutExpired as e:
            raise DockerCommandError(argv, None, f"timed out after {timeout}s") from e
        except OSError as e:
            raise DockerCommandError(argv, None, str(e)) from e
        if completed.returncode != 0:
            raise DockerCommandError(argv, completed.returncode, completed.stderr)
        return completed.stdout.strip()

    def ping(self) -> str:
        try:
            return self._run(["version", "--format", "{{.Server.Version}}"])
        except DockerCommandError as e:
            raise EngineUnavailableError(str(e)) from e

    def create(
        self,
        image: str,
        *,
        name: str,
        workspace: str,
        workdir: str,
        memory_limit_bytes: int,
        command: Sequence[str],
        labels: Dict[str, str],
    ) -> str:
        args = ["create", "--name", name]
        for key, value in labels.items():
            args.extend(["--label", f"{key}={value}"])
        args.extend([
            "--network", "none",
            f"--memory={memory_limit_bytes}b",
            f"--memory-swap={memory_limit_bytes}b",
            "--security-opt", "no-new-privileges",
        ])
        if self.pids_limit:
            args.append(f"--pids-limit={self.pids_limit}")
        args.extend(["--volume", f"{workspace}:{workdir}:rw", "--workdir", workdir])
        args.append(image)
        args.extend(command)
        output = self._run(args)
        # docker may print pull progress before the id; the id is the last line.
        return output.splitlines()[-1].strip() if output else name

    def start(self, container_id: str) -> None:
        self._run(["start", container_id])

    def exec(self, container_id: str, command: Sequence[str], workdir: str) -> ExecProcess:
        argv = [self.binary, "exec", "--workdir", workdir, container_id, *command]
        try:
            process = subprocess.Popen(
                argv,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
            )
        except OSError as e:
            raise DockerCommandError(argv, None, str(e)) from e
        return PopenExecProcess(process)

    def remove(self, container_id: str) -> None:
        try:
            self._run(["rm", "--force", "--volumes", container_id])
        except DockerCommandError as e:
            if e.no_such_container:
                return
            raise

    def is_running(self, container_id: str) -> bool:
        try:
            state = self._run(["inspect", "--format", "{{.State.Running}}", container_id])
        except DockerCommandError as e:
            if e.no_such_container:
                return False
            raise
        return state.lower() == "true"

    def list_containers(self, labels: Dict[str, str], include_stopped: bool = False) -> List[str]:
        args = ["ps", "--quiet", "--no-trunc"]
        if include_stopped:
            args.append("--all")
        for key, value in labels.items():
            args.extend(["--filter", f"label={key}={value}"])
        return [line for line in self._run(args).splitlines() if line.strip()]

    def pull(self, image: str) -> None:
        logger.info(f"Pulling image: {image}")
        self._run(["pull", "--quiet", image], timeout=self.pull_timeout)
