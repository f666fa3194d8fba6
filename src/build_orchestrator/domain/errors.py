from __future__ import annotations
"""Fault taxonomy for build runs.

Every error raised by the core carries a `FaultKind`. The scheduler uses it at
the project task boundary to decide between failing one project and stopping
the run; anything that is not a `BuildError` (or an operational `OSError`) is
treated as a programming fault and re-raised.
"""

import subprocess
from enum import Enum


class FaultKind(str, Enum):
    FATAL_RUN = "fatal_run"
    FATAL_PROJECT = "fatal_project"
    RECOVERABLE = "recoverable"


class BuildError(RuntimeError):
    """Base error for operational build faults."""

    default_kind = FaultKind.FATAL_PROJECT

    def __init__(
        self,
        message: str,
        *,
        kind: FaultKind | None = None,
        project: str | None = None,
        branch: str | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind
        self.project = project
        self.branch = branch


class VcsError(BuildError):
    """Raised by `VcsPort` adapters when a version-control operation fails."""


class CloneError(BuildError):
    default_kind = FaultKind.FATAL_RUN


class RepositoryOpenError(BuildError):
    default_kind = FaultKind.FATAL_RUN


class FetchError(BuildError):
    default_kind = FaultKind.RECOVERABLE


class SyncError(BuildError):
    pass


class CheckoutError(SyncError):
    pass


class MergeConflictError(SyncError):
    pass


class UnexpectedMergeAnalysisError(SyncError):
    pass


class ScriptError(BuildError):
    def __init__(self, message: str, *, exit_code: int | None = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.exit_code = exit_code


class ArtifactPublishError(BuildError):
    default_kind = FaultKind.FATAL_RUN


def classify_fault(error: BaseException) -> FaultKind | None:
    """Return the fault kind of an operational error, or `None` for programming faults."""
    if isinstance(error, BuildError):
        return error.kind
    if isinstance(error, (OSError, subprocess.SubprocessError)):
        return FaultKind.FATAL_PROJECT
    return None
