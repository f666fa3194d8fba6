from __future__ import annotations

import errno
import os
import shutil
from pathlib import Path

from build_orchestrator.domain.ports import FileSystemPort


class LocalFileSystemAdapter(FileSystemPort):
    def ensure_directory(self, path: Path) -> None:
        path.mkdir(parents=True, exist_ok=True)

    def path_exists(self, path: Path) -> bool:
        return path.exists()

    def remove_tree(self, path: Path) -> None:
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path)
        elif path.exists() or path.is_symlink():
            path.unlink()

    def move(self, source: Path, destination: Path) -> None:
        try:
            os.rename(source, destination)
        except OSError as error:
            if error.errno != errno.EXDEV:
                raise
            # Cross-device: copy + delete, not atomic.
            shutil.move(str(source), str(destination))

    def glob(self, path: Path, pattern: str):
        return sorted(path.glob(pattern))

    def write_text(self, path: Path, content: str) -> None:
        path.write_text(content, encoding="utf-8")
