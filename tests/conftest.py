from __future__ import annotations

import subprocess
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable

import pytest

from build_orchestrator.domain.entities import ProjectSpec, RunContext


def git(cwd: Path, *args: str) -> str:
    result = subprocess.run(["git", *args], cwd=str(cwd), check=True, text=True, capture_output=True)
    return result.stdout.strip()


@dataclass
class RemoteRepo:
    """Bare repository acting as `origin`, plus a seed clone used to push commits."""

    bare: Path
    seed: Path

    @property
    def url(self) -> str:
        return str(self.bare)

    def commit(self, branch: str, filename: str, content: str, message: str | None = None) -> str:
        current = subprocess.run(
            ["git", "symbolic-ref", "--short", "HEAD"],
            cwd=str(self.seed),
            text=True,
            capture_output=True,
        ).stdout.strip()
        if current != branch:
            exists = subprocess.run(
                ["git", "show-ref", "--verify", "--quiet", f"refs/heads/{branch}"],
                cwd=str(self.seed),
            ).returncode == 0
            if exists:
                git(self.seed, "checkout", branch)
            else:
                git(self.seed, "checkout", "-b", branch)

        target = self.seed / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(content, encoding="utf-8")
        git(self.seed, "add", filename)
        git(self.seed, "commit", "-m", message or f"update {filename} on {branch}")
        git(self.seed, "push", "origin", branch)
        return git(self.seed, "rev-parse", "HEAD")


@pytest.fixture(autouse=True)
def isolated_git(tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path_factory.mktemp("gitconfig") / "config"
    config.write_text(
        "[user]\n"
        "\tname = Build Bot\n"
        "\temail = build-bot@example.com\n"
        "[init]\n"
        "\tdefaultBranch = main\n"
        "[commit]\n"
        "\tgpgsign = false\n"
        "[advice]\n"
        "\tdetachedHead = false\n",
        encoding="utf-8",
    )
    monkeypatch.setenv("GIT_CONFIG_GLOBAL", str(config))
    monkeypatch.setenv("GIT_CONFIG_NOSYSTEM", "1")
    monkeypatch.setenv("GIT_AUTHOR_NAME", "Build Bot")
    monkeypatch.setenv("GIT_AUTHOR_EMAIL", "build-bot@example.com")
    monkeypatch.setenv("GIT_COMMITTER_NAME", "Build Bot")
    monkeypatch.setenv("GIT_COMMITTER_EMAIL", "build-bot@example.com")
    monkeypatch.setenv("GIT_TERMINAL_PROMPT", "0")
    for name in ("BUILD_CONFIG", "BUILD_HOME", "BUILD_ASYNC", "BUILD_STOP_ON_ERROR", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def make_remote(tmp_path: Path) -> Callable[[str], RemoteRepo]:
    def factory(name: str = "p1") -> RemoteRepo:
        bare = tmp_path / "remotes" / f"{name}.git"
        seed = tmp_path / "seeds" / name
        bare.parent.mkdir(parents=True, exist_ok=True)
        seed.parent.mkdir(parents=True, exist_ok=True)

        git(tmp_path, "init", "--bare", "--initial-branch=main", str(bare))
        git(tmp_path, "clone", str(bare), str(seed))
        repo = RemoteRepo(bare=bare, seed=seed)
        repo.commit("main", "README.md", "hello\n", "initial commit")
        return repo

    return factory


@pytest.fixture
def run_context(tmp_path: Path) -> RunContext:
    return RunContext(
        home_dir=tmp_path / "home",
        working_dir=tmp_path,
        async_mode=False,
        core_version="0.0.0-test",
        build_time="test",
        build_timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
    )


@pytest.fixture
def make_project() -> Callable[..., ProjectSpec]:
    def factory(url: str, path: str = "p1", **overrides) -> ProjectSpec:
        values = {
            "url": url,
            "path": path,
            "artifacts": "out",
            "branches": ("main",),
        }
        values.update(overrides)
        return ProjectSpec(**values)

    return factory


@pytest.fixture
def run_git() -> Callable[..., str]:
    return git
