"""
Execution executor.

Runs a profile's command sequence inside an acquired container and races it
against a single wall-clock deadline. Whichever finishes first decides the
outcome:

- the command exits: ``completed`` (any exit code),
- the deadline passes: the container is removed at once and the outcome is
  ``timed-out`` with whatever output was captured so far,
- the command could not be run at all: ``failed-to-start``.

For two-phase profiles a non-zero compile exit ends the sequence and the
compiler output becomes the result.
"""
import logging
import time
from typing import Optional

from polyrun.config.engine import EngineConfig
from polyrun.exceptions import DockerCommandError
from polyrun.runtime.collector import OutputCollector, Stream
from polyrun.runtime.docker import EXEC_FAILED_CODES, EXEC_FAILED_MARKER, ContainerEngine
from polyrun.runtime.lifecycle import ContainerHandle, ContainerManager
from polyrun.runtime.models import CompletionKind, ExecutionOutcome
from polyrun.runtime.registry import LanguageProfile

logger = logging.getLogger(__name__)


class Executor:
    def __init__(
        self,
        engine: ContainerEngine,
        manager: ContainerManager,
        config: Optional[EngineConfig] = None,
    ):
        self.engine = engine
        self.manager = manager
        self.config = config or manager.config

    def run(
        self,
        handle: ContainerHandle,
        profile: LanguageProfile,
        timeout_seconds: float,
    ) -> ExecutionOutcome:
        collector = OutputCollector(self.config.output_limit_bytes)
        start = time.monotonic()
        deadline = start + timeout_seconds
        exit_code: Optional[int] = None

        for phase, command in enumerate(profile.commands):
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return self._timed_out(handle, None, collector, start, exit_code)

            try:
                process = self.engine.exec(handle.container_id, command, self.config.workdir)
            except DockerCommandError as e:
                logger.error(f"Exec failed in container {handle.container_id[:12]}: {e}")
                collector.feed(Stream.STDERR, str(e).encode("utf-8", errors="replace"))
                return self._outcome(CompletionKind.FAILED_TO_START, collector, start, None)

            stderr_mark = collector.size(Stream.STDERR)
            collector.attach(process.stdout, process.stderr)
            exit_code = process.wait(timeout=remaining)
            if exit_code is None:
                return self._timed_out(handle, process, collector, start, exit_code)

            if not collector.join(self.config.kill_grace):
                logger.debug(f"Output readers still open after exit in {handle.container_id[:12]}")

            if self._exec_refused(exit_code, collector.since(Stream.STDERR, stderr_mark)):
                logger.error(
                    f"Container {handle.container_id[:12]} could not start {command[0]!r} (exit {exit_code})"
                )
                return self._outcome(CompletionKind.FAILED_TO_START, collector, start, exit_code)

            if exit_code != 0 and not self._container_running(handle):
                logger.warning(
                    f"Container {handle.container_id[:12]} is not running; "
                    f"command {command[0]!r} exited {exit_code}"
                )
                return self._outcome(CompletionKind.FAILED_TO_START, collector, start, exit_code)

            if exit_code != 0 and phase < len(profile.commands) - 1:
                logger.debug(f"Compile step for {profile.key} exited {exit_code}; skipping run step")
                break

        return self._outcome(CompletionKind.COMPLETED, collector, start, exit_code)

    @staticmethod
    def _exec_refused(exit_code: int, phase_stderr: str) -> bool:
        # A user program may exit 127 itself; only docker's own message counts.
        return exit_code in EXEC_FAILED_CODES and phase_stderr.lstrip().startswith(EXEC_FAILED_MARKER)

    def _container_running(self, handle: ContainerHandle) -> bool:
        try:
            return self.engine.is_running(handle.container_id)
        except DockerCommandError as e:
            logger.debug(f"Could not inspect {handle.container_id[:12]}: {e}")
            return True

    def _timed_out(
        self,
        handle: ContainerHandle,
        process,
        collector: OutputCollector,
        start: float,
        exit_code: Optional[int],
    ) -> ExecutionOutcome:
        logger.info(f"Execution in {handle.container_id[:12]} timed out; removing container")
        self.manager.release(handle)
        if process is not None:
            process.kill()
        collector.join(self.config.kill_grace)
        return self._outcome(CompletionKind.TIMED_OUT, collector, start, exit_code)

    @staticmethod
    def _outcome(
        kind: CompletionKind,
        collector: OutputCollector,
        start: float,
        exit_code: Optional[int],
    ) -> ExecutionOutcome:
        return ExecutionOutcome(
            stdout=collector.stdout,
            stderr=collector.stderr,
            completion_kind=kind,
            elapsed_ms=(time.monotonic() - start) * 1000,
            truncated=collector.truncated,
            exit_code=exit_code,
        )
