"""
Centralized configuration defaults for polyrun.

This module provides a single source of truth for all default configurations
used across the execution engine.
"""
import os
import tempfile
from dataclasses import dataclass
from typing import Tuple

MIB = 1024 * 1024


@dataclass(frozen=True)
class EngineDefaults:
    """Default limits for a single execution."""
    timeout_ms: int = 300_000
    memory_limit_bytes: int = 512 * MIB
    min_memory_limit_bytes: int = 6 * MIB  # docker rejects anything smaller
    output_limit_bytes: int = 1 * MIB  # per stream
    sandbox_root: str = os.path.join(tempfile.gettempdir(), "polyrun", "sandbox")
    workspace_prefix: str = "exec_"


@dataclass(frozen=True)
class DockerDefaults:
    """Default container engine settings."""
    binary: str = "docker"
    workdir: str = "/app"
    keepalive_command: Tuple[str, ...] = ("sleep", "3600")
    label_key: str = "polyrun"
    label_value: str = "sandbox"
    pids_limit: int = 256
    command_timeout: float = 60.0  # seconds, for create/start/rm/ps
    pull_timeout: float = 300.0  # seconds
    kill_grace: float = 5.0  # seconds to drain pipes after a forced removal


@dataclass(frozen=True)
class CliDefaults:
    log_level: str = "INFO"
    metrics_exporter: str = "none"


ENGINE_DEFAULTS = EngineDefaults()
DOCKER_DEFAULTS = DockerDefaults()
CLI_DEFAULTS = CliDefaults()
