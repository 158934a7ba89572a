"""
Code staging: writes source code into a fresh workspace directory.
"""
import logging
import os
import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator

from polyrun.config.defaults import ENGINE_DEFAULTS
from polyrun.exceptions import StagingIOError, CleanupWarning
from polyrun.observability import metrics
from polyrun.runtime.registry import LanguageProfile

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Workspace:
    path: str
    source_file: str

    @property
    def exists(self) -> bool:
        return os.path.isdir(self.path)


def stage(
    code: str,
    profile: LanguageProfile,
    sandbox_root: str = ENGINE_DEFAULTS.sandbox_root,
) -> Workspace:
    """Create a uniquely named directory under ``sandbox_root`` holding ``code``.

    Raises:
        StagingIOError: If the directory or source file cannot be written. Any
            partially created directory is removed first.
    """
    root = os.path.abspath(sandbox_root)
    try:
        os.makedirs(root, mode=0o700, exist_ok=True)
        # mkdtemp creates the workspace 0700; only the owner may touch the source.
        path = tempfile.mkdtemp(prefix=ENGINE_DEFAULTS.workspace_prefix, dir=root)
    except OSError as e:
        raise StagingIOError(root, str(e)) from e

    source_file = os.path.join(path, profile.filename)
    try:
        with open(source_file, "w", encoding="utf-8", newline="") as f:
            f.write(code)
    except OSError as e:
        shutil.rmtree(path, ignore_errors=True)
        raise StagingIOError(source_file, str(e)) from e

    logger.debug(f"Staged {profile.key} source at {source_file}")
    return Workspace(path=path, source_file=source_file)


def discard(workspace: Workspace) -> None:
    """Remove a workspace directory. Failures are logged, never raised."""
    try:
        shutil.rmtree(workspace.path)
    except FileNotFoundError:
        return
    except OSError as e:
        warning = CleanupWarning("workspace", workspace.path, str(e))
        logger.warning(str(warning))
        metrics.record_cleanup_warning("workspace")
        return
    logger.debug(f"Removed workspace {workspace.path}")


@contextmanager
def staged(
    code: str,
    profile: LanguageProfile,
    sandbox_root: str = ENGINE_DEFAULTS.sandbox_root,
) -> Iterator[Workspace]:
    """Stage ``code`` for the duration of the block, then discard it."""
    workspace = stage(code, profile, sandbox_root)
    try:
        yield workspace
    finally:
        discard(workspace)
