from __future__ import annotations
"""Hexagonal architecture port interfaces.

Core use cases depend only on these abstractions. Adapters provide concrete
implementations for git, script execution and the filesystem.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Flag, auto
from pathlib import Path
from typing import Iterable, Sequence

from .entities import RepositoryHandle


# Subprocess output is decoded leniently; undecodable bytes become U+FFFD.
OUTPUT_ENCODING = "utf-8"


class MergeAnalysis(Flag):
    """Classification of HEAD against a candidate commit."""

    NONE = 0
    NORMAL = auto()
    UP_TO_DATE = auto()
    FAST_FORWARD = auto()
    UNBORN = auto()


class CheckoutStrategy(Flag):
    """How `VcsPort.checkout_tree` treats local state in the working copy."""

    SAFE = 0
    FORCE = auto()
    RECREATE_MISSING = auto()
    ALLOW_CONFLICTS = auto()
    USE_THEIRS = auto()


# Build checkouts are not developer workspaces: local edits are discardable.
BUILD_CHECKOUT_STRATEGY = (
    CheckoutStrategy.RECREATE_MISSING | CheckoutStrategy.ALLOW_CONFLICTS | CheckoutStrategy.USE_THEIRS
)


@dataclass(frozen=True, slots=True)
class HeadRef:
    """Symbolic HEAD (`refs/heads/<branch>`) and the commit it points at."""

    name: str
    target: str

    @property
    def branch(self) -> str | None:
        prefix = "refs/heads/"
        if self.name.startswith(prefix):
            return self.name[len(prefix):]
        return None


@dataclass(frozen=True, slots=True)
class ScriptOutput:
    exit_code: int
    stdout: str
    stderr: str


class VcsPort(ABC):
    """Version-control capability consumed by `VcsSynchronizer`.

    All operations are synchronous and raise `VcsError` on failure.
    """

    @abstractmethod
    def clone(self, url: str, local_path: Path) -> RepositoryHandle:
        """Clone remote repository into local path."""
        raise NotImplementedError

    @abstractmethod
    def open(self, local_path: Path) -> RepositoryHandle:
        """Open an existing working copy."""
        raise NotImplementedError

    @abstractmethod
    def set_config(self, handle: RepositoryHandle, key: str, value: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def lookup_remote(self, handle: RepositoryHandle, name: str) -> str | None:
        """Return the remote URL, or `None` when no such remote exists."""
        raise NotImplementedError

    @abstractmethod
    def create_remote(self, handle: RepositoryHandle, name: str, url: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def fetch(self, handle: RepositoryHandle, remote: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def head(self, handle: RepositoryHandle) -> HeadRef | None:
        """Return symbolic HEAD, or `None` when HEAD is detached or unborn."""
        raise NotImplementedError

    @abstractmethod
    def resolve_remote_branch(self, handle: RepositoryHandle, name: str) -> str:
        """Return the commit id of `refs/remotes/origin/<name>`."""
        raise NotImplementedError

    @abstractmethod
    def local_branch_target(self, handle: RepositoryHandle, name: str) -> str | None:
        """Return the commit id of `refs/heads/<name>`, or `None` when missing."""
        raise NotImplementedError

    @abstractmethod
    def list_remote_branches(self, handle: RepositoryHandle) -> list[str]:
        """Return branch names tracked under `refs/remotes/origin`."""
        raise NotImplementedError

    @abstractmethod
    def merge_analysis(self, handle: RepositoryHandle, candidate: str) -> MergeAnalysis:
        raise NotImplementedError

    @abstractmethod
    def merge(self, handle: RepositoryHandle, candidate: str) -> bool:
        """Merge `candidate` into the index and working tree without committing.

        Returns:
            `True` when the merge left conflicts in the index.
        """
        raise NotImplementedError

    @abstractmethod
    def abort_merge(self, handle: RepositoryHandle) -> None:
        raise NotImplementedError

    @abstractmethod
    def write_tree(self, handle: RepositoryHandle) -> str:
        raise NotImplementedError

    @abstractmethod
    def create_commit(
        self,
        handle: RepositoryHandle,
        tree: str,
        parents: Sequence[str],
        message: str,
    ) -> str:
        """Create a commit with the default signature and move HEAD to it."""
        raise NotImplementedError

    @abstractmethod
    def cleanup_state(self, handle: RepositoryHandle) -> None:
        """Remove in-progress merge state (MERGE_HEAD and friends)."""
        raise NotImplementedError

    @abstractmethod
    def checkout_tree(self, handle: RepositoryHandle, commitish: str, strategy: CheckoutStrategy) -> None:
        raise NotImplementedError

    @abstractmethod
    def create_branch(self, handle: RepositoryHandle, name: str, target: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_upstream(self, handle: RepositoryHandle, branch: str, upstream: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_reference(self, handle: RepositoryHandle, ref: str, target: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def set_head(self, handle: RepositoryHandle, ref: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def describe_workdir(self, handle: RepositoryHandle) -> str:
        raise NotImplementedError


class ScriptRunnerPort(ABC):
    """Execute one already-tokenized command in a working directory."""

    @abstractmethod
    def run(self, working_dir: Path, argv: Sequence[str]) -> ScriptOutput:
        raise NotImplementedError


class FileSystemPort(ABC):
    """Filesystem operations abstracted for testability and portability."""

    @abstractmethod
    def ensure_directory(self, path: Path) -> None:
        """Ensure target directory exists (create recursively if needed)."""
        raise NotImplementedError

    @abstractmethod
    def path_exists(self, path: Path) -> bool:
        """Return whether a path exists."""
        raise NotImplementedError

    @abstractmethod
    def remove_tree(self, path: Path) -> None:
        """Remove a file or directory tree; no-op when absent."""
        raise NotImplementedError

    @abstractmethod
    def move(self, source: Path, destination: Path) -> None:
        """Move a file or directory, renaming atomically where supported."""
        raise NotImplementedError

    @abstractmethod
    def glob(self, path: Path, pattern: str) -> Iterable[Path]:
        """Yield entries directly under `path` matching `pattern`."""
        raise NotImplementedError

    @abstractmethod
    def write_text(self, path: Path, content: str) -> None:
        raise NotImplementedError
