from __future__ import annotations
"""Core domain entities shared by use cases, plugins and adapters.

Project configuration is immutable once loaded; results are plain value
objects collected by the scheduler and printed by the CLI.
"""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path

from .errors import FaultKind


WILDCARD_BRANCH = "*"


@dataclass(frozen=True, slots=True)
class ProjectSpec:
    """One configured project, immutable once loaded.

    Attributes:
        url: Remote URL that `VcsPort.clone` can clone from.
        path: Local path segment under `<home>/projects`; also the project name
            used under `<home>/artifacts`.
        artifacts: Artifact sub-path, relative to the project working copy.
        branches: Branch names in build order, or `("*",)` for every branch.
        scripts: Script templates run in order for every branch.
        plugins: Plugin allow-list; empty means every loaded plugin.
        shell: Run scripts through `/bin/sh -c` instead of plain tokenization.
    """

    url: str
    path: str
    artifacts: str
    branches: tuple[str, ...]
    scripts: tuple[str, ...] = ()
    plugins: tuple[str, ...] = ()
    shell: bool = False

    @property
    def is_wildcard(self) -> bool:
        return bool(self.branches) and self.branches[0] == WILDCARD_BRANCH

    def hook_data(self) -> ProjectHookData:
        """Return a mutable copy handed to project-level plugin hooks."""
        return ProjectHookData(
            url=self.url,
            path=self.path,
            artifacts=self.artifacts,
            branches=list(self.branches),
            scripts=list(self.scripts),
        )

    def with_hook_data(self, data: ProjectHookData) -> ProjectSpec:
        """Return a new `ProjectSpec` carrying whatever a pre-project hook rewrote."""
        return replace(
            self,
            url=data.url,
            path=data.path,
            artifacts=data.artifacts,
            branches=tuple(data.branches),
            scripts=tuple(data.scripts),
        )


@dataclass(slots=True)
class ProjectHookData:
    """Mutable project view passed by reference to project hooks.

    A `pre_project` hook may rewrite any field (typically `branches`) before
    synchronization proceeds.
    """

    url: str
    path: str
    artifacts: str
    branches: list[str]
    scripts: list[str]


@dataclass(slots=True)
class ArtifactHookData:
    """Mutable artifact location passed to `pre_artifacts`.

    The publisher moves whatever `path` points at once the hooks return.
    """

    path: Path


@dataclass(frozen=True, slots=True)
class RunContext:
    """Process-wide run settings, read-only after startup.

    Shared by every project task without locking.
    """

    home_dir: Path
    working_dir: Path
    async_mode: bool
    core_version: str
    build_time: str
    build_timestamp: datetime

    @property
    def projects_dir(self) -> Path:
        return self.home_dir / "projects"

    @property
    def artifacts_dir(self) -> Path:
        return self.home_dir / "artifacts"


@dataclass(frozen=True, slots=True)
class RepositoryHandle:
    """Opaque handle to an opened working copy, owned by one project task."""

    path: Path


@dataclass(frozen=True, slots=True)
class SyncOutcome:
    fresh_clone: bool
    description: str = ""


class SyncAction(str, Enum):
    """What `VcsSynchronizer.sync_head` did to bring a branch to its remote tip."""

    UP_TO_DATE = "up_to_date"
    FAST_FORWARD = "fast_forward"
    MERGED = "merged"
    SKIPPED = "skipped"


@dataclass(slots=True)
class BranchResult:
    """Outcome of one branch iteration; never persisted."""

    branch: str
    description: str = ""
    artifacts_published: bool = False
    artifact_path: Path | None = None
    sync_action: SyncAction | None = None


@dataclass(slots=True)
class ProjectResult:
    """Per-project execution snapshot returned by the scheduler."""

    project: str
    success: bool
    fresh_clone: bool = False
    branches: tuple[BranchResult, ...] = ()
    error: str | None = None
    fault_kind: FaultKind | None = None
    duration_seconds: float = 0.0


@dataclass(slots=True)
class BuildRunSummary:
    """Run-level summary for one scheduler invocation."""

    home_dir: Path
    async_mode: bool
    projects: tuple[ProjectResult, ...] = field(default_factory=tuple)
    halted: bool = False

    @property
    def failed_projects(self) -> int:
        return sum(1 for item in self.projects if not item.success)

    @property
    def successful_projects(self) -> int:
        return len(self.projects) - self.failed_projects

    @property
    def fatal(self) -> bool:
        """Whether any project failed with a fault that is fatal to the run."""
        return any(item.fault_kind is FaultKind.FATAL_RUN for item in self.projects)
