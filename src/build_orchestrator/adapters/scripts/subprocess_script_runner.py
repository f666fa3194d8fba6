from __future__ import annotations
"""Build script execution through `subprocess` (no shell)."""

import subprocess
from pathlib import Path
from typing import Callable, Sequence

from build_orchestrator.domain.errors import ScriptError
from build_orchestrator.domain.ports import OUTPUT_ENCODING, ScriptOutput, ScriptRunnerPort


class SubprocessScriptRunner(ScriptRunnerPort):
    """Run one tokenized build command and capture its output."""

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        runner: Callable[..., subprocess.CompletedProcess[str]] = subprocess.run,
    ) -> None:
        self._timeout_seconds = timeout_seconds
        self._runner = runner

    def run(self, working_dir: Path, argv: Sequence[str]) -> ScriptOutput:
        command = list(argv)
        try:
            completed = self._runner(
                command,
                cwd=str(working_dir),
                check=False,
                encoding=OUTPUT_ENCODING,
                errors="replace",
                capture_output=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as error:
            raise ScriptError(f"Script executable '{command[0]}' was not found in PATH") from error
        except PermissionError as error:
            raise ScriptError(f"Script executable '{command[0]}' is not executable") from error
        except subprocess.TimeoutExpired as error:
            raise ScriptError(
                f"Script timed out after {self._timeout_seconds}s in {working_dir}: {' '.join(command)}"
            ) from error

        return ScriptOutput(
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
