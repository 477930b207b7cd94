"""Execution of the synthesized driver program."""
from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Dict, List, Mapping, Set
import os
import sys

from .command_runner import CommandRunner
from .console import Console
from .driver import MAIN_FILE_NAME
from .errors import ToolchainError

if TYPE_CHECKING:  # pragma: no cover
    from .build import BuildInfo


MODE_TARGETS = "targets"
MODE_FLAGS = "flags"
MODE_NINJA = "ninja"


def _dbuild_import_root() -> str:
    return str(Path(__file__).resolve().parent.parent)


class DriverExecutor:
    """Runs ``main.py`` from the staging tree and captures its output."""

    def __init__(
        self,
        *,
        command_runner: CommandRunner,
        console: Console,
        python: str = sys.executable,
        environment: Mapping[str, str] | None = None,
    ) -> None:
        self._command_runner = command_runner
        self._console = console
        self._python = python
        self._environment = dict(environment or {})

    def command(self, mode: str, info: "BuildInfo") -> List[str]:
        return [
            self._python,
            "-B",
            MAIN_FILE_NAME,
            mode,
            str(info.source_dir),
            str(info.build_output_dir),
            str(info.working_dir),
            *info.build_flags,
        ]

    def environment(self) -> Dict[str, str]:
        env = dict(self._environment)
        python_path = [_dbuild_import_root()]
        inherited = env.get("PYTHONPATH", os.environ.get("PYTHONPATH"))
        if inherited:
            python_path.append(inherited)
        env["PYTHONPATH"] = os.pathsep.join(python_path)
        return env

    def run(self, mode: str, info: "BuildInfo") -> bytes:
        command = self.command(mode, info)
        self._console.debug(f"Running generator: {self._command_runner.format_command(command)}")
        try:
            result = self._command_runner.run(
                command,
                cwd=info.build_files_dir,
                env=self.environment(),
                check=False,
                note=f"generator ({mode})",
            )
        except OSError as exc:
            raise ToolchainError(f"Failed to run generator in mode '{mode}': {exc}.") from exc

        if result.stderr:
            sys.stderr.write(result.stderr.decode("utf-8", errors="replace"))
            sys.stderr.flush()
        if result.returncode != 0:
            raise ToolchainError(
                f"Failed to run generator in mode '{mode}': exit code {result.returncode}."
            )
        return result.stdout

    def _available(self, mode: str, info: "BuildInfo") -> Set[str]:
        output = self.run(mode, info).decode("utf-8")
        return {line for line in output.splitlines() if line}

    def available_targets(self, info: "BuildInfo") -> Set[str]:
        return self._available(MODE_TARGETS, info)

    def available_flags(self, info: "BuildInfo") -> Set[str]:
        return self._available(MODE_FLAGS, info)
