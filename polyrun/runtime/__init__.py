"""
Isolated code execution runtime.

A request flows leaf-first through the components below:

- registry: language key -> image, source filename, command sequence
- staging: source text -> ephemeral workspace directory
- lifecycle: workspace -> running, network-less container
- executor: container -> outcome, racing the command against a deadline
- collector: bounded stdout/stderr capture used by the executor
- engine: ties the above together and guarantees teardown
"""

from polyrun.runtime.models import (
    CompletionKind,
    ExecutionOptions,
    ExecutionRequest,
    ExecutionOutcome,
)
from polyrun.runtime.registry import (
    LanguageProfile,
    LanguageRegistry,
    DEFAULT_PROFILES,
    default_registry,
)
from polyrun.runtime.staging import Workspace, stage, discard, staged
from polyrun.runtime.docker import ContainerEngine, ExecProcess, DockerCLIEngine
from polyrun.runtime.collector import OutputCollector, Stream
from polyrun.runtime.lifecycle import ContainerHandle, ContainerManager
from polyrun.runtime.executor import Executor
from polyrun.runtime.engine import CodeExecutionEngine

__all__ = [
    # Models
    "CompletionKind",
    "ExecutionOptions",
    "ExecutionRequest",
    "ExecutionOutcome",
    # Registry
    "LanguageProfile",
    "LanguageRegistry",
    "DEFAULT_PROFILES",
    "default_registry",
    # Staging
    "Workspace",
    "stage",
    "discard",
    "staged",
    # Container engine
    "ContainerEngine",
    "ExecProcess",
    "DockerCLIEngine",
    # Execution
    "OutputCollector",
    "Stream",
    "ContainerHandle",
    "ContainerManager",
    "Executor",
    "CodeExecutionEngine",
]
