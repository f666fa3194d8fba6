from __future__ import annotations
"""Application use case scheduling project builds and isolating their failures."""

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import time
from typing import Sequence

from build_orchestrator.application.use_cases.project_builder import ProjectBuilder
from build_orchestrator.domain.entities import BranchResult, BuildRunSummary, ProjectResult, ProjectSpec, RunContext
from build_orchestrator.domain.errors import FaultKind, classify_fault
from build_orchestrator.plugins.base import LifecycleHook
from build_orchestrator.plugins.pipeline import PluginPipeline


LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class ProjectScheduler:
    """Core orchestration use case.

    Responsibilities:
    - fire `pre_projects` / `post_projects` once from the calling thread
    - run every project through `ProjectBuilder`, one thread per project in
      async mode, in configuration order otherwise
    - classify faults at the project task boundary: operational faults fail
      only their project, programming faults are logged and re-raised
    - join all project tasks before returning a `BuildRunSummary`
    """

    builder: ProjectBuilder
    plugins: PluginPipeline
    context: RunContext
    max_workers: int | None = None
    stop_on_error: bool = False

    def run(self, projects: Sequence[ProjectSpec]) -> BuildRunSummary:
        """Process every project to completion.

        Args:
            projects: Projects in configuration order.

        Returns:
            `BuildRunSummary` with one `ProjectResult` per processed project.
        """
        started = time.monotonic()
        LOGGER.info(
            "processing projects",
            extra={
                "event": "scheduler.started",
                "working_dir": str(self.context.working_dir),
                "home_dir": str(self.context.home_dir),
                "async": self.context.async_mode,
                "project_count": len(projects),
            },
        )

        self.plugins.fire(LifecycleHook.PRE_PROJECTS, self.context)

        halted = False
        if self.context.async_mode:
            results = self._run_parallel(projects)
        else:
            results, halted = self._run_sequential(projects)

        self.plugins.fire(LifecycleHook.POST_PROJECTS, self.context)

        summary = BuildRunSummary(
            home_dir=self.context.home_dir,
            async_mode=self.context.async_mode,
            projects=tuple(results),
            halted=halted,
        )
        LOGGER.info(
            "finished processing all configured projects",
            extra={
                "event": "scheduler.completed",
                "project_count": len(summary.projects),
                "successful_projects": summary.successful_projects,
                "failed_projects": summary.failed_projects,
                "halted": halted,
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return summary

    def _run_parallel(self, projects: Sequence[ProjectSpec]) -> list[ProjectResult]:
        if not projects:
            return []

        workers = min(self.max_workers or len(projects), len(projects))
        LOGGER.debug(
            "asynchronous mode enabled: projects will be built in parallel",
            extra={"event": "scheduler.parallel", "max_workers": workers},
        )
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="project") as pool:
            futures = [pool.submit(self._process_project, project) for project in projects]

        # Leaving the executor joins every task; programming faults re-raise here.
        return [future.result() for future in futures]

    def _run_sequential(self, projects: Sequence[ProjectSpec]) -> tuple[list[ProjectResult], bool]:
        LOGGER.debug(
            "asynchronous mode disabled: projects will be built in sequence",
            extra={"event": "scheduler.sequential"},
        )
        results: list[ProjectResult] = []
        for project in projects:
            result = self._process_project(project)
            results.append(result)
            if result.success:
                continue
            if self.stop_on_error or result.fault_kind is FaultKind.FATAL_RUN:
                LOGGER.error(
                    "project failed; remaining projects will not be processed",
                    extra={
                        "event": "scheduler.halted",
                        "project": result.project,
                        "fault_kind": result.fault_kind.value if result.fault_kind else None,
                        "stop_on_error": self.stop_on_error,
                        "skipped_projects": len(projects) - len(results),
                    },
                )
                return results, True
        return results, False

    def _process_project(self, project: ProjectSpec) -> ProjectResult:
        started = time.monotonic()
        branch_results: list[BranchResult] = []
        LOGGER.info(
            "processing project",
            extra={
                "event": "scheduler.project.start",
                "project": project.path,
                "url": project.url,
                "async": self.context.async_mode,
            },
        )

        try:
            outcome = self.builder.build(project, branch_results)
        except Exception as error:  # noqa: BLE001
            kind = classify_fault(error)
            if kind is None:
                LOGGER.critical(
                    "project processing caused a programming fault",
                    exc_info=True,
                    extra={"event": "scheduler.project.crashed", "project": project.path, "error": str(error)},
                )
                raise

            LOGGER.exception(
                "project processing failed",
                extra={
                    "event": "scheduler.project.failed",
                    "project": project.path,
                    "branch": getattr(error, "branch", None),
                    "fault_kind": kind.value,
                    "error": str(error),
                },
            )
            return ProjectResult(
                project=project.path,
                success=False,
                branches=tuple(branch_results),
                error=str(error),
                fault_kind=kind,
                duration_seconds=round(time.monotonic() - started, 3),
            )

        LOGGER.info(
            "processing project completed",
            extra={"event": "scheduler.project.completed", "project": project.path, "fresh_clone": outcome.fresh_clone},
        )
        return ProjectResult(
            project=project.path,
            success=True,
            fresh_clone=outcome.fresh_clone,
            branches=tuple(branch_results),
            duration_seconds=round(time.monotonic() - started, 3),
        )
