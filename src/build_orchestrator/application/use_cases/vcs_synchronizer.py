from __future__ import annotations
"""Application use case bringing a project's working copy to each branch tip.

Per project the synchronizer walks:

    Absent -> Cloning -> Open -> Fetching -> MergeAnalysis
        -> {UpToDate | Merging | FastForwarding} -> BranchReady

`open_project` covers clone/open, the project builder then calls `fetch`,
`checkout_branch` and `sync_head` once per configured branch. Fetching happens
per branch so that long multi-branch builds still pick up remote updates.
"""

from dataclasses import dataclass
import logging
from pathlib import Path
from typing import Callable

from build_orchestrator.domain.entities import (
    ProjectSpec,
    RepositoryHandle,
    RunContext,
    SyncAction,
    SyncOutcome,
)
from build_orchestrator.domain.errors import (
    CheckoutError,
    CloneError,
    FetchError,
    MergeConflictError,
    RepositoryOpenError,
    SyncError,
    UnexpectedMergeAnalysisError,
    VcsError,
)
from build_orchestrator.domain.ports import BUILD_CHECKOUT_STRATEGY, CheckoutStrategy, MergeAnalysis, VcsPort


LOGGER = logging.getLogger(__name__)

REMOTE_NAME = "origin"

WildcardPolicy = Callable[[VcsPort, RepositoryHandle], list[str]]


def all_remote_branches(vcs: VcsPort, handle: RepositoryHandle) -> list[str]:
    """Default wildcard policy: every branch tracked under `refs/remotes/origin`."""
    return vcs.list_remote_branches(handle)


@dataclass(slots=True)
class VcsSynchronizer:
    """Git state machine for one project at a time.

    The synchronizer itself holds no per-project state, so one instance is
    shared by all project tasks; each task owns the `RepositoryHandle` it gets
    back from `open_project`.
    """

    vcs: VcsPort
    context: RunContext
    wildcard_policy: WildcardPolicy = all_remote_branches

    def working_dir(self, project: ProjectSpec) -> Path:
        return self.context.projects_dir / project.path

    def open_project(self, project: ProjectSpec) -> tuple[RepositoryHandle, SyncOutcome]:
        """Clone the project when absent, open it and enable origin pruning.

        Raises:
            CloneError: The working copy was absent and cloning failed.
            RepositoryOpenError: The working copy could not be opened or configured.
        """
        target = self.working_dir(project)
        fresh = False

        if not target.exists():
            LOGGER.info(
                "project working copy does not exist, creating clone",
                extra={"event": "vcs.clone.start", "project": project.path, "local_path": str(target)},
            )
            try:
                self.vcs.clone(project.url, target)
            except VcsError as error:
                raise CloneError(
                    f"Failed to clone {project.url} into {target}: {error}",
                    project=project.path,
                ) from error
            fresh = True

        LOGGER.info(
            "opening repository",
            extra={"event": "vcs.open", "project": project.path, "local_path": str(target)},
        )
        try:
            handle = self.vcs.open(target)
            self.vcs.set_config(handle, f"remote.{REMOTE_NAME}.prune", "true")
        except VcsError as error:
            raise RepositoryOpenError(
                f"Failed to open repository at {target}: {error}",
                project=project.path,
            ) from error

        return handle, SyncOutcome(fresh_clone=fresh)

    def resolve_branches(self, handle: RepositoryHandle, project: ProjectSpec) -> list[str]:
        """Return the branches to build, expanding an unresolved wildcard.

        Raises:
            SyncError: The wildcard policy failed or found no branches.
        """
        if not project.is_wildcard:
            return list(project.branches)

        try:
            branches = list(self.wildcard_policy(self.vcs, handle))
        except VcsError as error:
            raise SyncError(
                f"Failed to expand wildcard branch list: {error}",
                project=project.path,
            ) from error

        if not branches:
            raise SyncError("Wildcard branch list expanded to no branches", project=project.path)

        LOGGER.info(
            "wildcard branch list expanded",
            extra={"event": "vcs.branches.wildcard", "project": project.path, "branches": branches},
        )
        return branches

    def fetch(self, handle: RepositoryHandle, project: ProjectSpec) -> None:
        """Fetch from origin, creating it from the project URL when missing.

        Raises:
            FetchError: Recoverable; the caller may continue with local refs.
        """
        try:
            if self.vcs.lookup_remote(handle, REMOTE_NAME) is None:
                LOGGER.debug(
                    "remote does not exist, creating it from the project url",
                    extra={"event": "vcs.remote.create", "project": project.path, "remote": REMOTE_NAME},
                )
                self.vcs.create_remote(handle, REMOTE_NAME, project.url)
            self.vcs.fetch(handle, REMOTE_NAME)
        except VcsError as error:
            raise FetchError(
                f"Failed to fetch changes from {REMOTE_NAME}: {error}",
                project=project.path,
            ) from error

        LOGGER.debug("fetched changes", extra={"event": "vcs.fetch.success", "project": project.path})

    def checkout_branch(self, handle: RepositoryHandle, project: ProjectSpec, branch: str) -> None:
        """Materialize `branch` locally (tracking `origin/<branch>`) and check it out.

        Raises:
            CheckoutError: Any step failed; fatal for the project.
        """
        try:
            remote_target = self.vcs.resolve_remote_branch(handle, branch)
            local_target = self.vcs.local_branch_target(handle, branch)
            if local_target is None:
                LOGGER.debug(
                    "creating local branch from remote",
                    extra={"event": "vcs.branch.create", "project": project.path, "branch": branch},
                )
                self.vcs.create_branch(handle, branch, remote_target)
                self.vcs.set_upstream(handle, branch, f"{REMOTE_NAME}/{branch}")
                local_target = remote_target

            self.vcs.checkout_tree(handle, local_target, BUILD_CHECKOUT_STRATEGY)
            self.vcs.set_head(handle, f"refs/heads/{branch}")
        except VcsError as error:
            raise CheckoutError(
                f"Failed to checkout branch {branch}: {error}",
                project=project.path,
                branch=branch,
            ) from error

    def sync_head(self, handle: RepositoryHandle, project: ProjectSpec) -> SyncAction:
        """Bring the checked out branch to its remote-tracking tip.

        Raises:
            MergeConflictError: A real merge produced conflicts; nothing is committed.
            UnexpectedMergeAnalysisError: The analysis matched no known disposition.
            SyncError: Any VCS step failed.
        """
        head = self.vcs.head(handle)
        branch = head.branch if head is not None else None
        if head is None or branch is None:
            LOGGER.warning(
                "HEAD is detached or unborn; skipping sync",
                extra={"event": "vcs.sync.skipped", "project": project.path},
            )
            return SyncAction.SKIPPED

        try:
            remote_target = self.vcs.resolve_remote_branch(handle, branch)
            analysis = self.vcs.merge_analysis(handle, remote_target)

            if analysis & MergeAnalysis.UP_TO_DATE:
                action = SyncAction.UP_TO_DATE
            elif analysis & MergeAnalysis.FAST_FORWARD:
                self.vcs.checkout_tree(handle, remote_target, CheckoutStrategy.SAFE)
                self.vcs.set_reference(handle, head.name, remote_target)
                self.vcs.set_head(handle, head.name)
                action = SyncAction.FAST_FORWARD
            elif analysis & MergeAnalysis.NORMAL:
                self._merge(handle, project, branch, head.target, remote_target)
                action = SyncAction.MERGED
            else:
                LOGGER.error(
                    "unexpected merge analysis result",
                    extra={
                        "event": "vcs.sync.unexpected",
                        "project": project.path,
                        "branch": branch,
                        "analysis": analysis.value,
                    },
                )
                raise UnexpectedMergeAnalysisError(
                    f"Unexpected merge analysis result {analysis.value}",
                    project=project.path,
                    branch=branch,
                )
        except VcsError as error:
            raise SyncError(
                f"Failed to sync branch {branch} with remote: {error}",
                project=project.path,
                branch=branch,
            ) from error

        LOGGER.info(
            "branch synchronized",
            extra={"event": "vcs.sync.completed", "project": project.path, "branch": branch, "action": action.value},
        )
        return action

    def describe(self, handle: RepositoryHandle, project: ProjectSpec, branch: str) -> str:
        try:
            return self.vcs.describe_workdir(handle)
        except VcsError as error:
            LOGGER.error(
                "failed to describe working directory",
                extra={"event": "vcs.describe.failed", "project": project.path, "branch": branch, "error": str(error)},
            )
            return ""

    def _merge(
        self,
        handle: RepositoryHandle,
        project: ProjectSpec,
        branch: str,
        local_target: str,
        remote_target: str,
    ) -> None:
        has_conflicts = self.vcs.merge(handle, remote_target)
        if has_conflicts:
            self.vcs.abort_merge(handle)
            raise MergeConflictError(
                "Conflicts encountered. Please resolve them",
                project=project.path,
                branch=branch,
            )

        tree = self.vcs.write_tree(handle)
        self.vcs.create_commit(
            handle,
            tree,
            [local_target, remote_target],
            f"Merge remote-tracking branch '{REMOTE_NAME}/{branch}'",
        )
        self.vcs.cleanup_state(handle)
