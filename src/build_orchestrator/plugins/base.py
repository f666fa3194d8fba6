from __future__ import annotations
"""Build plugin contract.

A plugin observes (and may augment) every phase of a build run through ten
lifecycle hooks, fired in this order:

    init -> post_load -> pre_projects -> pre_project -> pre_branch
    -> pre_artifacts -> post_artifacts -> post_branch -> post_project
    -> post_projects

Project, branch and artifact hooks fire from project tasks, which run on
separate threads in async mode. Implementations must therefore be reentrant;
the pipeline does not lock around them.
"""

from enum import Enum
from pathlib import Path

from build_orchestrator.domain.entities import ArtifactHookData, ProjectHookData, RunContext


class LifecycleHook(str, Enum):
    INIT = "init"
    POST_LOAD = "post_load"
    PRE_PROJECTS = "pre_projects"
    PRE_PROJECT = "pre_project"
    PRE_BRANCH = "pre_branch"
    PRE_ARTIFACTS = "pre_artifacts"
    POST_ARTIFACTS = "post_artifacts"
    POST_BRANCH = "post_branch"
    POST_PROJECT = "post_project"
    POST_PROJECTS = "post_projects"


class BuildPlugin:
    """Base class for plugins; every hook defaults to a no-op.

    Implementers override only the hooks they need. Raising from any hook is
    contained by `PluginPipeline`; raising from `init` excludes the plugin
    from the run.
    """

    @property
    def name(self) -> str:
        """Stable plugin name used by per-project allow-lists and logs."""
        return self.__class__.__name__

    def init(self, raw_config: bytes, core_version: str) -> None:
        """Called once after loading with the raw configuration document."""

    def post_load(self, core_version: str, build_time: str) -> None:
        """Called once every configured plugin has been initialized."""

    def pre_projects(self, context: RunContext) -> None:
        """Called once before any project is processed."""

    def pre_project(self, project: ProjectHookData) -> None:
        """Called before a project is synchronized; may rewrite `project`."""

    def pre_branch(self, project_dir: Path, branch: str, description: str) -> None:
        """Called after checkout and sync, before the branch scripts run."""

    def pre_artifacts(self, artifact: ArtifactHookData, project: str, branch: str) -> None:
        """Called before build output is published; may repoint `artifact.path`."""

    def post_artifacts(self, artifact_path: Path, project: str, branch: str) -> None:
        """Called after build output has been published to `artifact_path`."""

    def post_branch(self, project_dir: Path, branch: str, description: str) -> None:
        """Called once a branch has been built."""

    def post_project(self, project: ProjectHookData) -> None:
        """Called after a project finished, whether it succeeded or not."""

    def post_projects(self, context: RunContext) -> None:
        """Called once after every project task has joined."""
