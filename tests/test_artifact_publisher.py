from __future__ import annotations

import logging
from pathlib import Path

import pytest

from build_orchestrator.adapters.filesystem.local_filesystem import LocalFileSystemAdapter
from build_orchestrator.application.use_cases.artifact_publisher import ArtifactPublisher
from build_orchestrator.domain.errors import ArtifactPublishError, FaultKind


@pytest.fixture
def publisher(run_context) -> ArtifactPublisher:
    return ArtifactPublisher(filesystem=LocalFileSystemAdapter(), context=run_context)


@pytest.fixture
def project_dir(run_context) -> Path:
    path = run_context.projects_dir / "p1"
    path.mkdir(parents=True)
    return path


def test_destination_layout_is_home_artifacts_project_branch(publisher, run_context) -> None:
    assert publisher.destination("p1", "main") == run_context.home_dir / "artifacts" / "p1" / "main"


def test_missing_artifacts_are_skipped_with_warning(
    publisher, project_dir, run_context, caplog: pytest.LogCaptureFixture
) -> None:
    caplog.set_level(logging.WARNING)

    assert publisher.publish(project_dir, "p1", "main", "out") is None

    assert not (run_context.artifacts_dir / "p1" / "main").exists()
    assert any(getattr(record, "event", None) == "publisher.artifacts.missing" for record in caplog.records)


def test_publish_moves_output_and_build_logs(publisher, project_dir, run_context) -> None:
    (project_dir / "out").mkdir()
    (project_dir / "out" / "marker").write_text("build\n", encoding="utf-8")
    (project_dir / "build-stdout_0.log").write_text("ok\n", encoding="utf-8")
    (project_dir / "build-stderr_0.log").write_text("", encoding="utf-8")

    destination = publisher.publish(project_dir, "p1", "main", "out")

    assert destination == run_context.artifacts_dir / "p1" / "main"
    assert (destination / "marker").read_text(encoding="utf-8") == "build\n"
    assert (destination / "build-stdout_0.log").read_text(encoding="utf-8") == "ok\n"
    assert (destination / "build-stderr_0.log").exists()
    assert not (project_dir / "out").exists()
    assert list(project_dir.glob("*.log")) == []


def test_publish_replaces_previous_destination_entirely(publisher, project_dir, run_context) -> None:
    stale = run_context.artifacts_dir / "p1" / "main"
    stale.mkdir(parents=True)
    (stale / "old.bin").write_text("old", encoding="utf-8")
    (project_dir / "out").mkdir()
    (project_dir / "out" / "new.bin").write_text("new", encoding="utf-8")

    destination = publisher.publish(project_dir, "p1", "main", "out")

    assert sorted(path.name for path in destination.iterdir()) == ["new.bin"]


def test_single_file_artifact_leaves_logs_in_working_copy(publisher, project_dir) -> None:
    (project_dir / "app.tar.gz").write_text("archive", encoding="utf-8")
    (project_dir / "build-stdout_0.log").write_text("ok\n", encoding="utf-8")

    destination = publisher.publish(project_dir, "p1", "main", "app.tar.gz")

    assert destination.is_file()
    assert destination.read_text(encoding="utf-8") == "archive"
    assert (project_dir / "build-stdout_0.log").exists()


def test_branch_names_with_slashes_nest_under_project(publisher, project_dir, run_context) -> None:
    (project_dir / "out").mkdir()

    destination = publisher.publish(project_dir, "p1", "feature/login", "out")

    assert destination == run_context.artifacts_dir / "p1" / "feature" / "login"
    assert destination.is_dir()


def test_filesystem_failure_is_fatal_to_the_run(run_context, project_dir) -> None:
    class BrokenMoveFileSystem(LocalFileSystemAdapter):
        def move(self, source: Path, destination: Path) -> None:
            raise PermissionError(13, "Permission denied", str(destination))

    (project_dir / "out").mkdir()
    publisher = ArtifactPublisher(filesystem=BrokenMoveFileSystem(), context=run_context)

    with pytest.raises(ArtifactPublishError) as excinfo:
        publisher.publish(project_dir, "p1", "main", "out")

    assert excinfo.value.kind is FaultKind.FATAL_RUN
    assert excinfo.value.project == "p1"
    assert excinfo.value.branch == "main"
