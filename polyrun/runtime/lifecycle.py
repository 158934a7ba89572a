"""
Container lifecycle manager.

Every ``acquire`` creates exactly one container and every acquired handle is
removed exactly once by ``release``. A failed ``acquire`` removes whatever it
managed to create before raising.
"""
import logging
import threading
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional

from polyrun.config.engine import EngineConfig
from polyrun.exceptions import (
    CleanupWarning,
    ContainerCreateError,
    ContainerStartError,
    DockerCommandError,
)
from polyrun.observability import metrics
from polyrun.runtime.docker import ContainerEngine
from polyrun.runtime.registry import LanguageProfile
from polyrun.runtime.staging import Workspace

logger = logging.getLogger(__name__)


@dataclass
class ContainerHandle:
    container_id: str
    workspace_path: str
    image: str
    created_at: float = field(default_factory=time.time)
    name: Optional[str] = None
    _released: bool = field(default=False, repr=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @property
    def released(self) -> bool:
        return self._released

    def mark_released(self) -> bool:
        """Flip the handle to released. Returns False if it already was."""
        with self._lock:
            if self._released:
                return False
            self._released = True
            return True


class ContainerManager:
    def __init__(self, engine: ContainerEngine, config: Optional[EngineConfig] = None):
        self.engine = engine
        self.config = config or EngineConfig()

    def acquire(
        self,
        workspace: Workspace,
        profile: LanguageProfile,
        memory_limit_bytes: Optional[int] = None,
    ) -> ContainerHandle:
        """Create and start a keep-alive container bound to ``workspace``.

        Raises:
            ContainerCreateError: If the engine could not create the container.
            ContainerStartError: If the container was created but would not start.
        """
        memory = memory_limit_bytes or self.config.memory_limit_bytes
        name = f"polyrun-{uuid.uuid4().hex[:16]}"

        try:
            container_id = self.engine.create(
                profile.image,
                name=name,
                workspace=workspace.path,
                workdir=self.config.workdir,
                memory_limit_bytes=memory,
                command=self.config.keepalive_command,
                labels=self.config.labels,
            )
        except DockerCommandError as e:
            # The daemon may have registered the name before failing.
            self._force_remove(name)
            logger.error(f"Container create failed for {profile.image}: {e}")
            raise ContainerCreateError(profile.image, e.stderr or str(e)) from e
        except BaseException:
            self._force_remove(name)
            raise

        handle = ContainerHandle(
            container_id=container_id,
            workspace_path=workspace.path,
            image=profile.image,
            name=name,
        )
        logger.debug(f"Created container {container_id[:12]} ({profile.image}, memory={memory}B)")

        try:
            self.engine.start(container_id)
        except DockerCommandError as e:
            self.release(handle)
            logger.error(f"Container start failed for {container_id[:12]}: {e}")
            raise ContainerStartError(container_id, e.stderr or str(e)) from e
        except BaseException:
            self.release(handle)
            raise

        logger.debug(f"Started container {container_id[:12]}")
        return handle

    def release(self, handle: ContainerHandle) -> None:
        """Force-remove the container. Idempotent; never raises."""
        if not handle.mark_released():
            return
        self._force_remove(handle.container_id)

    def _force_remove(self, container_id: str) -> None:
        try:
            self.engine.remove(container_id)
        except Exception as e:
            warning = CleanupWarning("container", container_id, str(e))
            logger.warning(str(warning))
            metrics.record_cleanup_warning("container")
            return
        logger.debug(f"Removed container {container_id[:12]}")
