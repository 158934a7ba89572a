"""
Engine configuration.

An ``EngineConfig`` is passed explicitly to ``CodeExecutionEngine``; there is
no process-wide configuration object.
"""
from dataclasses import dataclass, field
from typing import Dict, Tuple

from polyrun.config.defaults import ENGINE_DEFAULTS, DOCKER_DEFAULTS


@dataclass
class EngineConfig:
    timeout_ms: int = ENGINE_DEFAULTS.timeout_ms
    memory_limit_bytes: int = ENGINE_DEFAULTS.memory_limit_bytes
    output_limit_bytes: int = ENGINE_DEFAULTS.output_limit_bytes
    sandbox_root: str = ENGINE_DEFAULTS.sandbox_root
    docker_binary: str = DOCKER_DEFAULTS.binary
    workdir: str = DOCKER_DEFAULTS.workdir
    keepalive_command: Tuple[str, ...] = DOCKER_DEFAULTS.keepalive_command
    labels: Dict[str, str] = field(
        default_factory=lambda: {DOCKER_DEFAULTS.label_key: DOCKER_DEFAULTS.label_value}
    )
    pids_limit: int = DOCKER_DEFAULTS.pids_limit
    command_timeout: float = DOCKER_DEFAULTS.command_timeout
    pull_timeout: float = DOCKER_DEFAULTS.pull_timeout
    kill_grace: float = DOCKER_DEFAULTS.kill_grace

    def __post_init__(self):
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.memory_limit_bytes < ENGINE_DEFAULTS.min_memory_limit_bytes:
            raise ValueError(
                f"memory_limit_bytes must be at least {ENGINE_DEFAULTS.min_memory_limit_bytes}, "
                f"got {self.memory_limit_bytes}"
            )
        if self.output_limit_bytes <= 0:
            raise ValueError(f"output_limit_bytes must be positive, got {self.output_limit_bytes}")
        self.keepalive_command = tuple(self.keepalive_command)

    def describe(self) -> str:
        return (
            f"timeout={self.timeout_ms}ms, memory={self.memory_limit_bytes}B, "
            f"output_limit={self.output_limit_bytes}B, sandbox_root={self.sandbox_root}"
        )
