"""Fatal error classes raised by the build pipeline."""
from __future__ import annotations

from pathlib import Path


class BuildError(RuntimeError):
    """Base class for every unrecoverable build failure."""


class WorkspaceError(BuildError):
    """Raised when the workspace or one of its modules cannot be located."""


class DefinitionError(BuildError):
    """Raised when a ``BUILD.py`` file violates the definition grammar."""

    def __init__(self, path: Path | str, message: str):
        super().__init__(message)
        self.path = Path(path)


class ResolutionError(BuildError):
    """Raised for unknown targets, empty wildcards and unknown flags."""


class ToolchainError(BuildError):
    """Raised when the synthesized driver fails to run."""


class ExecutorError(BuildError):
    """Raised when the external build executor exits unsuccessfully."""
