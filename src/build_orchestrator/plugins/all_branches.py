from __future__ import annotations
"""Plugin expanding the `*` branch wildcard to every branch on the remote."""

import logging
import subprocess
from pathlib import Path
from typing import Callable

from build_orchestrator.domain.entities import WILDCARD_BRANCH, ProjectHookData, RunContext
from build_orchestrator.domain.ports import OUTPUT_ENCODING

from .base import BuildPlugin


LOGGER = logging.getLogger(__name__)


class AllBranchesPlugin(BuildPlugin):
    """Rewrite a wildcard branch list with `git ls-remote --heads origin`.

    Only works for projects that already have a working copy; on the first run
    the wildcard is left in place and the core wildcard policy applies.
    """

    def __init__(
        self,
        *,
        git_executable: str = "git",
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
    ) -> None:
        self._git_executable = git_executable
        self._runner = runner
        self._projects_dir: Path | None = None

    @property
    def name(self) -> str:
        return "all-branches"

    def pre_projects(self, context: RunContext) -> None:
        self._projects_dir = context.projects_dir

    def pre_project(self, project: ProjectHookData) -> None:
        if not project.branches or project.branches[0] != WILDCARD_BRANCH:
            LOGGER.debug(
                "project is not configured for all branches",
                extra={"event": "plugin.all_branches.skip", "project": project.path},
            )
            return
        if self._projects_dir is None:
            return

        project_dir = self._projects_dir / project.path
        if not project_dir.is_dir():
            LOGGER.info(
                "no working copy yet; leaving wildcard to the core policy",
                extra={"event": "plugin.all_branches.no_workdir", "project": project.path},
            )
            return

        completed = self._runner(
            [self._git_executable, "ls-remote", "--heads", "-q", "origin"],
            cwd=str(project_dir),
            check=False,
            encoding=OUTPUT_ENCODING,
            errors="replace",
            capture_output=True,
        )
        if completed.returncode != 0:
            LOGGER.warning(
                "failed to enumerate remote branches",
                extra={
                    "event": "plugin.all_branches.failed",
                    "project": project.path,
                    "details": (completed.stderr or "").strip(),
                },
            )
            return

        branches = parse_ls_remote_heads(completed.stdout or "")
        if not branches:
            return

        LOGGER.info(
            "remote branches enumerated",
            extra={"event": "plugin.all_branches.expanded", "project": project.path, "branches": branches},
        )
        project.branches[:] = branches


def parse_ls_remote_heads(output: str) -> list[str]:
    prefix = "refs/heads/"
    branches: list[str] = []
    for line in output.splitlines():
        parts = line.strip().split("\t")
        if len(parts) != 2 or not parts[1].startswith(prefix):
            continue
        branches.append(parts[1][len(prefix):])
    return branches
