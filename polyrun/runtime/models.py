"""
Request and outcome types for a single execution.
"""
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional

from polyrun.config.defaults import ENGINE_DEFAULTS


class CompletionKind(str, Enum):
    COMPLETED = "completed"
    TIMED_OUT = "timed-out"
    FAILED_TO_START = "failed-to-start"


@dataclass(frozen=True)
class ExecutionOptions:
    """Per-call overrides. ``None`` means use the engine configuration."""
    timeout_ms: Optional[int] = None
    memory_limit_bytes: Optional[int] = None

    def __post_init__(self):
        if self.timeout_ms is not None and self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if (
            self.memory_limit_bytes is not None
            and self.memory_limit_bytes < ENGINE_DEFAULTS.min_memory_limit_bytes
        ):
            raise ValueError(
                f"memory_limit_bytes must be at least {ENGINE_DEFAULTS.min_memory_limit_bytes}, "
                f"got {self.memory_limit_bytes}"
            )


@dataclass(frozen=True)
class ExecutionRequest:
    code: str
    language: str
    timeout_ms: int
    memory_limit_bytes: int

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class ExecutionOutcome:
    stdout: str
    stderr: str
    completion_kind: CompletionKind
    elapsed_ms: float
    truncated: bool = False
    exit_code: Optional[int] = None
    language: Optional[str] = None

    @property
    def completed(self) -> bool:
        return self.completion_kind == CompletionKind.COMPLETED

    @property
    def timed_out(self) -> bool:
        return self.completion_kind == CompletionKind.TIMED_OUT

    def format(self) -> str:
        """Render stdout and stderr as one labelled report."""
        parts = []
        if self.stdout:
            parts.append(f"STDOUT:\n{self.stdout}\n")
        if self.stderr:
            parts.append(f"STDERR:\n{self.stderr}\n")
        if self.timed_out:
            parts.append(f"Execution timed out after {self.elapsed_ms:.0f}ms\n")
        return "".join(parts) if parts else "No output"

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["completion_kind"] = self.completion_kind.value
        return data


__all__ = [
    "CompletionKind",
    "ExecutionOptions",
    "ExecutionRequest",
    "ExecutionOutcome",
]
