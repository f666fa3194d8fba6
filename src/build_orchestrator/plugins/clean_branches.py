from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Callable

from build_orchestrator.domain.ports import OUTPUT_ENCODING

from .base import BuildPlugin


LOGGER = logging.getLogger(__name__)


class CleanBranchesPlugin(BuildPlugin):
    """Remove untracked files (`git clean -d -f`) before each branch build."""

    def __init__(
        self,
        *,
        git_executable: str = "git",
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
    ) -> None:
        self._git_executable = git_executable
        self._runner = runner

    @property
    def name(self) -> str:
        return "clean-branches"

    def pre_branch(self, project_dir: Path, branch: str, description: str) -> None:
        completed = self._runner(
            [self._git_executable, "clean", "-d", "-f"],
            cwd=str(project_dir),
            check=False,
            encoding=OUTPUT_ENCODING,
            errors="replace",
            capture_output=True,
        )
        if completed.returncode != 0:
            LOGGER.warning(
                "git clean failed",
                extra={
                    "event": "plugin.clean_branches.failed",
                    "branch": branch,
                    "project_dir": str(project_dir),
                    "details": (completed.stderr or "").strip(),
                },
            )
            return
        LOGGER.info(
            "working copy cleaned",
            extra={"event": "plugin.clean_branches.cleaned", "branch": branch, "project_dir": str(project_dir)},
        )
