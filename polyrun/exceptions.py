"""
Custom exception hierarchy for polyrun.
"""
from typing import Optional, Dict, Any, List


class PolyrunError(Exception):
    """Base exception for all polyrun errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} - Details: {self.details}"
        return self.message


class EngineError(PolyrunError):
    """Base exception for setup-phase failures surfaced to the caller."""
    pass


class UnsupportedLanguageError(EngineError):
    def __init__(self, language: str, supported: Optional[List[str]] = None):
        details = {"language": language}
        if supported:
            details["supported"] = supported
        super().__init__(f"Unsupported language: {language}", details)
        self.language = language


class StagingIOError(EngineError):
    def __init__(self, path: str, cause: Optional[str] = None):
        message = f"Failed to stage workspace: {path}"
        if cause:
            message = f"{message} - {cause}"
        super().__init__(message, {"path": path, "cause": cause})
        self.path = path
        self.cause = cause


class ContainerCreateError(EngineError):
    def __init__(self, image: str, cause: Optional[str] = None):
        message = f"Failed to create container from image {image}"
        if cause:
            message = f"{message} - {cause}"
        super().__init__(message, {"image": image, "cause": cause})
        self.image = image
        self.cause = cause


class ContainerStartError(EngineError):
    def __init__(self, container_id: str, cause: Optional[str] = None):
        message = f"Failed to start container {container_id}"
        if cause:
            message = f"{message} - {cause}"
        super().__init__(message, {"container_id": container_id, "cause": cause})
        self.container_id = container_id
        self.cause = cause


class EngineUnavailableError(EngineError):
    def __init__(self, cause: Optional[str] = None):
        super().__init__("Container engine is not available.", {"cause": cause} if cause else {})
        self.cause = cause


class EngineClosedError(EngineError):
    def __init__(self):
        super().__init__("Execution engine is closed. Create a new engine to run code.")


class DockerCommandError(PolyrunError):
    """Raised when a docker CLI invocation exits non-zero or cannot be spawned."""

    def __init__(self, argv: List[str], returncode: Optional[int], stderr: str = ""):
        stderr = (stderr or "").strip()
        subcommand = argv[1] if len(argv) > 1 else ""
        message = f"docker {subcommand} failed"
        if returncode is not None:
            message = f"{message} with exit code {returncode}"
        if stderr:
            message = f"{message}: {stderr}"
        super().__init__(message)
        self.argv = argv
        self.returncode = returncode
        self.stderr = stderr

    @property
    def no_such_container(self) -> bool:
        stderr = self.stderr.lower()
        return "no such container" in stderr or "no such object" in stderr


class CleanupWarning(PolyrunError):
    """Teardown failure. Logged only, never raised to callers."""

    def __init__(self, resource: str, target: str, cause: Optional[str] = None):
        message = f"Failed to clean up {resource} {target}"
        if cause:
            message = f"{message} - {cause}"
        super().__init__(message, {"resource": resource, "target": target})
        self.resource = resource
        self.target = target
        self.cause = cause
