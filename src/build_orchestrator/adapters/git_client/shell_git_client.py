from __future__ import annotations

import logging
import subprocess
from pathlib import Path
from typing import Sequence

from build_orchestrator.domain.entities import RepositoryHandle
from build_orchestrator.domain.errors import VcsError
from build_orchestrator.domain.ports import OUTPUT_ENCODING, CheckoutStrategy, HeadRef, MergeAnalysis, VcsPort


_MERGE_STATE_FILES = ("MERGE_HEAD", "MERGE_MSG", "MERGE_MODE", "AUTO_MERGE")


class ShellGitClientAdapter(VcsPort):
    def __init__(self, *, git_executable: str = "git", timeout_seconds: float | None = None) -> None:
        self._git_executable = git_executable
        self._timeout_seconds = timeout_seconds
        self._logger = logging.getLogger(__name__)

    def clone(self, url: str, local_path: Path) -> RepositoryHandle:
        local_path.parent.mkdir(parents=True, exist_ok=True)
        self._logger.info(
            "cloning repository",
            extra={"event": "git.clone.start", "clone_url": url, "local_path": str(local_path)},
        )
        self._run_git(["clone", url, str(local_path)], cwd=local_path.parent)
        self._logger.info(
            "clone completed",
            extra={"event": "git.clone.success", "local_path": str(local_path)},
        )
        return RepositoryHandle(path=local_path)

    def open(self, local_path: Path) -> RepositoryHandle:
        if not local_path.is_dir():
            raise VcsError(f"Cannot open repository: path does not exist: {local_path}")
        result = self._run_git_allow_fail(["rev-parse", "--is-inside-work-tree"], cwd=local_path)
        if result.returncode != 0 or (result.stdout or "").strip() != "true":
            raise VcsError(f"Cannot open repository: not a git working copy: {local_path}")
        return RepositoryHandle(path=local_path)

    def set_config(self, handle: RepositoryHandle, key: str, value: str) -> None:
        self._run_git(["config", key, value], cwd=handle.path)

    def lookup_remote(self, handle: RepositoryHandle, name: str) -> str | None:
        result = self._run_git_allow_fail(["remote", "get-url", name], cwd=handle.path)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def create_remote(self, handle: RepositoryHandle, name: str, url: str) -> None:
        self._run_git(["remote", "add", name, url], cwd=handle.path)

    def fetch(self, handle: RepositoryHandle, remote: str) -> None:
        self._run_git(["fetch", "--prune", remote], cwd=handle.path)

    def head(self, handle: RepositoryHandle) -> HeadRef | None:
        ref = self._run_git_allow_fail(["symbolic-ref", "-q", "HEAD"], cwd=handle.path)
        if ref.returncode != 0:
            return None
        target = self._run_git_allow_fail(["rev-parse", "--verify", "-q", "HEAD^{commit}"], cwd=handle.path)
        if target.returncode != 0:
            return None
        return HeadRef(name=(ref.stdout or "").strip(), target=(target.stdout or "").strip())

    def resolve_remote_branch(self, handle: RepositoryHandle, name: str) -> str:
        oid = self._resolve_commit(handle.path, f"refs/remotes/origin/{name}")
        if oid is None:
            raise VcsError(f"Remote branch not found: origin/{name}")
        return oid

    def local_branch_target(self, handle: RepositoryHandle, name: str) -> str | None:
        return self._resolve_commit(handle.path, f"refs/heads/{name}")

    def list_remote_branches(self, handle: RepositoryHandle) -> list[str]:
        result = self._run_git(
            ["for-each-ref", "--format=%(refname)", "refs/remotes/origin/"],
            cwd=handle.path,
        )
        prefix = "refs/remotes/origin/"
        branches: list[str] = []
        for line in (result.stdout or "").splitlines():
            ref = line.strip()
            if not ref.startswith(prefix):
                continue
            name = ref[len(prefix):]
            if name and name != "HEAD":
                branches.append(name)
        return branches

    def merge_analysis(self, handle: RepositoryHandle, candidate: str) -> MergeAnalysis:
        head = self.head(handle)
        if head is None:
            return MergeAnalysis.UNBORN
        if head.target == candidate or self._is_ancestor(handle.path, candidate, head.target):
            return MergeAnalysis.UP_TO_DATE
        if self._is_ancestor(handle.path, head.target, candidate):
            return MergeAnalysis.FAST_FORWARD
        return MergeAnalysis.NORMAL

    def merge(self, handle: RepositoryHandle, candidate: str) -> bool:
        result = self._run_git_allow_fail(
            ["merge", "--no-commit", "--no-ff", "--no-edit", candidate],
            cwd=handle.path,
        )
        unmerged = self._run_git(["ls-files", "--unmerged"], cwd=handle.path)
        if (unmerged.stdout or "").strip():
            return True
        if result.returncode != 0:
            details = (result.stderr or result.stdout or "No command output").strip()
            raise VcsError(f"Git merge of {candidate} failed ({result.returncode}): {details}")
        return False

    def abort_merge(self, handle: RepositoryHandle) -> None:
        self._run_git(["merge", "--abort"], cwd=handle.path)

    def write_tree(self, handle: RepositoryHandle) -> str:
        return self._run_git(["write-tree"], cwd=handle.path).stdout.strip()

    def create_commit(
        self,
        handle: RepositoryHandle,
        tree: str,
        parents: Sequence[str],
        message: str,
    ) -> str:
        args = ["commit-tree", tree]
        for parent in parents:
            args.extend(["-p", parent])
        args.extend(["-m", message])
        commit = self._run_git(args, cwd=handle.path).stdout.strip()
        self._run_git(["update-ref", "HEAD", commit], cwd=handle.path)
        return commit

    def cleanup_state(self, handle: RepositoryHandle) -> None:
        for name in _MERGE_STATE_FILES:
            result = self._run_git(["rev-parse", "--git-path", name], cwd=handle.path)
            state_file = handle.path / result.stdout.strip()
            if state_file.is_file():
                state_file.unlink()

    def checkout_tree(self, handle: RepositoryHandle, commitish: str, strategy: CheckoutStrategy) -> None:
        if strategy & (CheckoutStrategy.FORCE | CheckoutStrategy.USE_THEIRS):
            args = ["read-tree", "-u", "--reset", commitish]
        else:
            args = ["read-tree", "-u", "-m", "HEAD", commitish]
        self._run_git(args, cwd=handle.path)
        if strategy & CheckoutStrategy.RECREATE_MISSING:
            self._run_git(["checkout-index", "-a", "-f"], cwd=handle.path)

    def create_branch(self, handle: RepositoryHandle, name: str, target: str) -> None:
        self._run_git(["branch", name, target], cwd=handle.path)

    def set_upstream(self, handle: RepositoryHandle, branch: str, upstream: str) -> None:
        self._run_git(["branch", f"--set-upstream-to={upstream}", branch], cwd=handle.path)

    def set_reference(self, handle: RepositoryHandle, ref: str, target: str) -> None:
        self._run_git(["update-ref", ref, target], cwd=handle.path)

    def set_head(self, handle: RepositoryHandle, ref: str) -> None:
        self._run_git(["symbolic-ref", "HEAD", ref], cwd=handle.path)

    def describe_workdir(self, handle: RepositoryHandle) -> str:
        return self._run_git(["describe", "--all", "--long", "--dirty"], cwd=handle.path).stdout.strip()

    def _resolve_commit(self, cwd: Path, ref: str) -> str | None:
        result = self._run_git_allow_fail(["rev-parse", "--verify", "-q", f"{ref}^{{commit}}"], cwd=cwd)
        if result.returncode != 0:
            return None
        return (result.stdout or "").strip() or None

    def _is_ancestor(self, cwd: Path, ancestor: str, descendant: str) -> bool:
        result = self._run_git_allow_fail(["merge-base", "--is-ancestor", ancestor, descendant], cwd=cwd)
        return result.returncode == 0

    def _run_git_allow_fail(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        command = [self._git_executable, *args]
        try:
            return subprocess.run(
                command,
                cwd=str(cwd),
                check=False,
                encoding=OUTPUT_ENCODING,
                errors="replace",
                capture_output=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as error:
            raise VcsError(
                f"Git executable '{self._git_executable}' was not found in PATH"
            ) from error
        except subprocess.TimeoutExpired as error:
            raise VcsError(
                f"Git command timed out after {self._timeout_seconds}s: {' '.join(command)}"
            ) from error

    def _run_git(self, args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
        command = [self._git_executable, *args]
        try:
            return subprocess.run(
                command,
                cwd=str(cwd),
                check=True,
                encoding=OUTPUT_ENCODING,
                errors="replace",
                capture_output=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as error:
            raise VcsError(
                f"Git executable '{self._git_executable}' was not found in PATH"
            ) from error
        except subprocess.TimeoutExpired as error:
            raise VcsError(
                f"Git command timed out after {self._timeout_seconds}s: {' '.join(command)}"
            ) from error
        except subprocess.CalledProcessError as error:
            stderr = (error.stderr or "").strip()
            stdout = (error.stdout or "").strip()
            details = stderr or stdout or "No command output"
            self._logger.error(
                "git command failed",
                extra={
                    "event": "git.command.error",
                    "command": " ".join(command),
                    "cwd": str(cwd),
                    "return_code": error.returncode,
                    "details": details,
                },
            )
            raise VcsError(
                f"Git command failed ({error.returncode}): {' '.join(command)}\n{details}"
            ) from error
