"""
Code execution engine.

``CodeExecutionEngine.execute`` is the single entry point: resolve the
language, stage the source, acquire a container, run, and tear everything down
again before returning. Setup failures raise; anything that happens once the
user program is running is reported in the returned ``ExecutionOutcome``.

Engines are constructed explicitly and own their container engine connection::

    with CodeExecutionEngine() as engine:
        outcome = engine.execute("print('hi')", "python")
"""
import asyncio
import logging
import uuid
from dataclasses import replace
from typing import Dict, List, Optional

from polyrun.config.engine import EngineConfig
from polyrun.exceptions import (
    CleanupWarning,
    EngineClosedError,
    EngineError,
    EngineUnavailableError,
    PolyrunError,
)
from polyrun.observability import metrics
from polyrun.runtime.docker import ContainerEngine, DockerCLIEngine
from polyrun.runtime.executor import Executor
from polyrun.runtime.lifecycle import ContainerHandle, ContainerManager
from polyrun.runtime.models import ExecutionOptions, ExecutionOutcome, ExecutionRequest
from polyrun.runtime.registry import LanguageRegistry, default_registry
from polyrun.runtime.staging import staged

logger = logging.getLogger(__name__)

INSTANCE_LABEL = "polyrun.engine"


class CodeExecutionEngine:
    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        client: Optional[ContainerEngine] = None,
        registry: Optional[LanguageRegistry] = None,
    ):
        self.config = config or EngineConfig()
        self.client = client or DockerCLIEngine(
            binary=self.config.docker_binary,
            command_timeout=self.config.command_timeout,
            pull_timeout=self.config.pull_timeout,
            pids_limit=self.config.pids_limit,
        )
        self.registry = registry or default_registry()
        self.instance_id = uuid.uuid4().hex[:12]
        self.labels: Dict[str, str] = {**self.config.labels, INSTANCE_LABEL: self.instance_id}
        self.manager = ContainerManager(self.client, replace(self.config, labels=self.labels))
        self.executor = Executor(self.client, self.manager)
        self._closed = False

    def __enter__(self) -> "CodeExecutionEngine":
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    @property
    def closed(self) -> bool:
        return self._closed

    def initialize(self) -> str:
        """Check the container engine is reachable. Returns its server version.

        Raises:
            EngineUnavailableError: If the daemon does not answer.
        """
        self._check_open()
        try:
            version = self.client.ping()
        except EngineUnavailableError:
            raise
        except PolyrunError as e:
            raise EngineUnavailableError(str(e)) from e
        logger.info(f"Execution engine {self.instance_id} ready (docker {version}); {self.config.describe()}")
        return version

    def is_available(self) -> bool:
        try:
            self.client.ping()
            return True
        except PolyrunError:
            return False

    def build_request(
        self,
        code: str,
        language: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionRequest:
        options = options or ExecutionOptions()
        return ExecutionRequest(
            code=code,
            language=language,
            timeout_ms=options.timeout_ms or self.config.timeout_ms,
            memory_limit_bytes=options.memory_limit_bytes or self.config.memory_limit_bytes,
        )

    def execute(
        self,
        code: str,
        language: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionOutcome:
        """Run ``code`` in a fresh container and return its outcome.

        Args:
            code: Source text, written verbatim to the language's source file.
            language: A registered language key or alias.
            options: Optional timeout and memory overrides.

        Returns:
            The outcome. Non-zero exits and timeouts are outcomes, not errors.

        Raises:
            UnsupportedLanguageError: Unknown language; nothing was created.
            StagingIOError: The workspace could not be written; no container was created.
            ContainerCreateError: The container could not be created.
            ContainerStartError: The container was created but did not start.
        """
        self._check_open()
        try:
            profile = self.registry.resolve(language)
        except EngineError as e:
            metrics.record_setup_failure("unknown", type(e).__name__)
            raise
        request = self.build_request(code, language, options)

        logger.info(f"Executing {profile.key} code in sandbox (timeout={request.timeout_ms}ms)")
        with metrics.ExecutionTimer(profile.key) as timer:
            try:
                with staged(request.code, profile, self.config.sandbox_root) as workspace:
                    handle: Optional[ContainerHandle] = None
                    try:
                        handle = self.manager.acquire(workspace, profile, request.memory_limit_bytes)
                        outcome = self.executor.run(handle, profile, request.timeout_seconds)
                    finally:
                        if handle is not None:
                            self.manager.release(handle)
            except EngineError as e:
                metrics.record_setup_failure(profile.key, type(e).__name__)
                raise

            timer.outcome = outcome.completion_kind.value
            timer.truncated = outcome.truncated

        logger.info(
            f"{profile.key} execution {outcome.completion_kind.value} in {outcome.elapsed_ms:.0f}ms "
            f"(exit={outcome.exit_code}, truncated={outcome.truncated})"
        )
        return replace(outcome, language=profile.key)

    async def execute_async(
        self,
        code: str,
        language: str,
        options: Optional[ExecutionOptions] = None,
    ) -> ExecutionOutcome:
        """Run ``execute`` on a worker thread. The timeout is the only way to stop it."""
        return await asyncio.to_thread(self.execute, code, language, options)

    def pull_images(self, languages: Optional[List[str]] = None) -> Dict[str, bool]:
        """Pull the images for ``languages`` (all registered ones by default).

        Failures are logged and reported as False; they do not stop the loop.
        """
        self._check_open()
        keys = languages if languages is not None else self.registry.languages()
        images: List[str] = []
        for key in keys:
            image = self.registry.resolve(key).image
            if image not in images:
                images.append(image)

        results: Dict[str, bool] = {}
        for image in images:
            try:
                self.client.pull(image)
                results[image] = True
                logger.info(f"Successfully pulled: {image}")
            except PolyrunError as e:
                results[image] = False
                logger.warning(f"Failed to pull image {image}: {e}")
        return results

    def list_containers(self) -> List[str]:
        """Ids of running containers created by this engine."""
        return self.client.list_containers(self.labels)

    def close(self) -> None:
        """Remove any container this engine still owns and release the connection."""
        if self._closed:
            return
        self._closed = True
        try:
            leftovers = self.client.list_containers(self.labels, include_stopped=True)
        except PolyrunError as e:
            logger.warning(str(CleanupWarning("engine", self.instance_id, str(e))))
            leftovers = []
        for container_id in leftovers:
            try:
                self.client.remove(container_id)
            except PolyrunError as e:
                logger.warning(str(CleanupWarning("container", container_id, str(e))))
                metrics.record_cleanup_warning("container")
        self.client.close()
        logger.info(f"Execution engine {self.instance_id} closed")

    def _check_open(self) -> None:
        if self._closed:
            raise EngineClosedError()
