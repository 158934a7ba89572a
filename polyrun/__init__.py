"""
polyrun - Run untrusted code in disposable, network-isolated containers.
"""
from polyrun.runtime import (
    CodeExecutionEngine,
    CompletionKind,
    ExecutionOptions,
    ExecutionOutcome,
    LanguageProfile,
    LanguageRegistry,
    default_registry,
)
from polyrun.config import EngineConfig
from polyrun.exceptions import (
    PolyrunError,
    EngineError,
    UnsupportedLanguageError,
    StagingIOError,
    ContainerCreateError,
    ContainerStartError,
    EngineUnavailableError,
    CleanupWarning,
)

__version__ = "1.0.0"

__all__ = [
    "CodeExecutionEngine",
    "CompletionKind",
    "ExecutionOptions",
    "ExecutionOutcome",
    "LanguageProfile",
    "LanguageRegistry",
    "default_registry",
    "EngineConfig",
    "PolyrunError",
    "EngineError",
    "UnsupportedLanguageError",
    "StagingIOError",
    "ContainerCreateError",
    "ContainerStartError",
    "EngineUnavailableError",
    "CleanupWarning",
]
