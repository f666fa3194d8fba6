from __future__ import annotations
"""Application use case relocating branch build output into the artifact tree."""

from dataclasses import dataclass
import logging
from pathlib import Path

from build_orchestrator.domain.entities import RunContext
from build_orchestrator.domain.errors import ArtifactPublishError
from build_orchestrator.domain.ports import FileSystemPort


LOGGER = logging.getLogger(__name__)

BUILD_LOG_GLOB = "*.log"


@dataclass(slots=True)
class ArtifactPublisher:
    """Move build output to `<home>/artifacts/<project>/<branch>`.

    The previous destination is removed entirely before the new output is
    moved in, so an interrupted publish can leave an empty destination but
    never a mix of two builds.
    """

    filesystem: FileSystemPort
    context: RunContext

    def destination(self, project: str, branch: str) -> Path:
        return self.context.artifacts_dir / project / branch

    def artifact_source(self, project_dir: Path, artifacts: str) -> Path:
        return project_dir / artifacts

    def has_artifacts(self, project_dir: Path, artifacts: str) -> bool:
        return self.filesystem.path_exists(self.artifact_source(project_dir, artifacts))

    def publish(
        self,
        project_dir: Path,
        project: str,
        branch: str,
        artifacts: str,
        *,
        source: Path | None = None,
    ) -> Path | None:
        """Publish build output for one branch.

        `source` overrides the configured `artifacts` location, for output a
        `pre_artifacts` hook moved elsewhere.

        Returns:
            The destination path, or `None` when the build produced no output.

        Raises:
            ArtifactPublishError: A filesystem step failed.
        """
        if source is None:
            source = self.artifact_source(project_dir, artifacts)
        if not self.filesystem.path_exists(source):
            LOGGER.warning(
                "build artifacts could not be found, maybe the build failed? no build will be published",
                extra={
                    "event": "publisher.artifacts.missing",
                    "project": project,
                    "branch": branch,
                    "expected_path": str(source),
                },
            )
            return None

        destination = self.destination(project, branch)
        LOGGER.info(
            "publishing build artifacts",
            extra={
                "event": "publisher.start",
                "project": project,
                "branch": branch,
                "source": str(source),
                "destination": str(destination),
            },
        )

        try:
            self.filesystem.remove_tree(destination)
            self.filesystem.ensure_directory(destination.parent)
            self.filesystem.move(source, destination)
        except OSError as error:
            raise ArtifactPublishError(
                f"Failed to publish artifacts from {source} to {destination}: {error}",
                project=project,
                branch=branch,
            ) from error

        self._move_build_logs(project_dir, destination, project, branch)

        LOGGER.info(
            "artifact processing completed",
            extra={"event": "publisher.completed", "project": project, "branch": branch, "destination": str(destination)},
        )
        return destination

    def _move_build_logs(self, project_dir: Path, destination: Path, project: str, branch: str) -> None:
        if not destination.is_dir():
            # Single-file artifact: there is no directory to hold the logs.
            LOGGER.debug(
                "artifact is a file; build logs left in the working copy",
                extra={"event": "publisher.logs.skipped", "project": project, "branch": branch},
            )
            return

        try:
            log_files = list(self.filesystem.glob(project_dir, BUILD_LOG_GLOB))
            for log_file in log_files:
                self.filesystem.move(log_file, destination / log_file.name)
        except OSError as error:
            raise ArtifactPublishError(
                f"Failed to move build logs from {project_dir} to {destination}: {error}",
                project=project,
                branch=branch,
            ) from error

        LOGGER.debug(
            "build logs relocated",
            extra={"event": "publisher.logs.moved", "project": project, "branch": branch, "count": len(log_files)},
        )
