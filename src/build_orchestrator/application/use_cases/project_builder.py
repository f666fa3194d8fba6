from __future__ import annotations
"""Application use case building every configured branch of one project."""

from dataclasses import dataclass
import logging
from pathlib import Path
import time

from build_orchestrator.application.use_cases.artifact_publisher import ArtifactPublisher
from build_orchestrator.application.use_cases.vcs_synchronizer import VcsSynchronizer
from build_orchestrator.domain.entities import ArtifactHookData, BranchResult, ProjectSpec, RepositoryHandle, SyncOutcome
from build_orchestrator.domain.errors import FetchError, ScriptError
from build_orchestrator.domain.ports import FileSystemPort, ScriptOutput, ScriptRunnerPort
from build_orchestrator.domain.scripts import render_script, tokenize
from build_orchestrator.plugins.base import LifecycleHook
from build_orchestrator.plugins.pipeline import PluginPipeline


LOGGER = logging.getLogger(__name__)

STDOUT_LOG_TEMPLATE = "build-stdout_{index}.log"
STDERR_LOG_TEMPLATE = "build-stderr_{index}.log"


@dataclass(slots=True)
class ProjectBuilder:
    """Per-project procedure shared by sequential and parallel scheduling.

    Responsibilities:
    - fire project hooks around the build (post hook fires on failure too)
    - clone/open the working copy through `VcsSynchronizer`
    - per branch, in configured order: fetch, checkout, sync, describe
    - run scripts in configured order and keep their output as log files
    - publish artifacts through `ArtifactPublisher`

    Faults propagate to the caller; classification happens in the scheduler.
    """

    synchronizer: VcsSynchronizer
    script_runner: ScriptRunnerPort
    publisher: ArtifactPublisher
    filesystem: FileSystemPort
    plugins: PluginPipeline

    def build(self, project: ProjectSpec, branch_results: list[BranchResult]) -> SyncOutcome:
        """Build one project, appending a `BranchResult` per completed branch.

        Args:
            project: Project as configured.
            branch_results: Receives results as branches complete, so callers
                still see partial progress when a later branch fails.

        Returns:
            The `SyncOutcome` of the clone/open step.
        """
        hooks = self.plugins.for_project(project.plugins)
        hook_data = project.hook_data()
        hooks.fire(LifecycleHook.PRE_PROJECT, hook_data, project=project.path)
        try:
            effective = project.with_hook_data(hook_data)
            return self._build(effective, hooks, branch_results)
        finally:
            hooks.fire(LifecycleHook.POST_PROJECT, hook_data, project=project.path)

    def _build(
        self,
        project: ProjectSpec,
        hooks: PluginPipeline,
        branch_results: list[BranchResult],
    ) -> SyncOutcome:
        started = time.monotonic()
        handle, outcome = self.synchronizer.open_project(project)
        outcome = SyncOutcome(
            fresh_clone=outcome.fresh_clone,
            description=self.synchronizer.describe(handle, project, ""),
        )
        branches = self.synchronizer.resolve_branches(handle, project)
        LOGGER.debug(
            "branch processing configured",
            extra={"event": "builder.branches.configured", "project": project.path, "branches": branches},
        )

        for index, branch in enumerate(branches, start=1):
            branch_started = time.monotonic()
            LOGGER.info(
                "processing branch",
                extra={"event": "builder.branch.start", "project": project.path, "branch": branch, "index": index},
            )
            if index > 1 or not outcome.fresh_clone:
                self._fetch(handle, project, branch)

            branch_results.append(self._build_branch(handle, project, branch, hooks))
            LOGGER.info(
                "completed branch",
                extra={
                    "event": "builder.branch.completed",
                    "project": project.path,
                    "branch": branch,
                    "index": index,
                    "duration_seconds": round(time.monotonic() - branch_started, 3),
                },
            )

        LOGGER.info(
            "completed project branches",
            extra={
                "event": "builder.project.completed",
                "project": project.path,
                "branch_count": len(branches),
                "duration_seconds": round(time.monotonic() - started, 3),
            },
        )
        return outcome

    def _fetch(self, handle: RepositoryHandle, project: ProjectSpec, branch: str) -> None:
        try:
            self.synchronizer.fetch(handle, project)
        except FetchError as error:
            LOGGER.warning(
                "failed to fetch changes from remote; continuing with local state",
                extra={"event": "vcs.fetch.failed", "project": project.path, "branch": branch, "error": str(error)},
            )

    def _build_branch(
        self,
        handle: RepositoryHandle,
        project: ProjectSpec,
        branch: str,
        hooks: PluginPipeline,
    ) -> BranchResult:
        project_dir = handle.path

        self.synchronizer.checkout_branch(handle, project, branch)
        action = self.synchronizer.sync_head(handle, project)

        description = self.synchronizer.describe(handle, project, branch)
        if description:
            LOGGER.info(
                "working directory described",
                extra={"event": "builder.branch.described", "project": project.path, "branch": branch, "description": description},
            )

        result = BranchResult(branch=branch, description=description, sync_action=action)
        hooks.fire(LifecycleHook.PRE_BRANCH, project_dir, branch, description, project=project.path, branch=branch)

        self._run_scripts(project_dir, project, branch)

        artifact = ArtifactHookData(path=self.publisher.artifact_source(project_dir, project.artifacts))
        if self.publisher.has_artifacts(project_dir, project.artifacts):
            hooks.fire(LifecycleHook.PRE_ARTIFACTS, artifact, project.path, branch, project=project.path, branch=branch)

        destination = self.publisher.publish(project_dir, project.path, branch, project.artifacts, source=artifact.path)
        if destination is not None:
            result.artifacts_published = True
            result.artifact_path = destination
            hooks.fire(LifecycleHook.POST_ARTIFACTS, destination, project.path, branch, project=project.path, branch=branch)

        hooks.fire(LifecycleHook.POST_BRANCH, project_dir, branch, description, project=project.path, branch=branch)
        return result

    def _run_scripts(self, project_dir: Path, project: ProjectSpec, branch: str) -> None:
        LOGGER.debug(
            "running project scripts",
            extra={"event": "builder.scripts.start", "project": project.path, "branch": branch, "count": len(project.scripts)},
        )
        for index, template in enumerate(project.scripts):
            command_line = render_script(template, project, branch)
            try:
                argv = tokenize(command_line, shell=project.shell)
            except ValueError as error:
                raise ScriptError(
                    f"Script {index} is empty after rendering",
                    project=project.path,
                    branch=branch,
                ) from error

            LOGGER.debug(
                "executing project script",
                extra={
                    "event": "builder.script.run",
                    "project": project.path,
                    "branch": branch,
                    "index": index,
                    "command": command_line,
                },
            )
            try:
                output = self.script_runner.run(project_dir, argv)
            except ScriptError as error:
                error.project, error.branch = project.path, branch
                raise
            self._write_script_logs(project_dir, project, branch, index, output)

            if output.exit_code != 0:
                LOGGER.error(
                    "project script failed",
                    extra={
                        "event": "builder.script.failed",
                        "project": project.path,
                        "branch": branch,
                        "index": index,
                        "command": command_line,
                        "exit_code": output.exit_code,
                        "stderr": output.stderr.strip(),
                    },
                )
                raise ScriptError(
                    f"Script {index} exited with status {output.exit_code}: {command_line}",
                    exit_code=output.exit_code,
                    project=project.path,
                    branch=branch,
                )

    def _write_script_logs(
        self,
        project_dir: Path,
        project: ProjectSpec,
        branch: str,
        index: int,
        output: ScriptOutput,
    ) -> None:
        try:
            self.filesystem.write_text(project_dir / STDOUT_LOG_TEMPLATE.format(index=index), output.stdout)
            self.filesystem.write_text(project_dir / STDERR_LOG_TEMPLATE.format(index=index), output.stderr)
        except OSError as error:
            LOGGER.error(
                "failed to write script logs",
                extra={"event": "builder.script.logs_failed", "project": project.path, "branch": branch, "error": str(error)},
            )
