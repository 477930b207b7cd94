"""Build orchestration: configuration isolation, target resolution and Ninja invocation."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Set
import shlex
import zlib

from .command_runner import CommandError, CommandRunner
from .config_loader import WorkspaceSettings
from .console import Console
from .driver import StagedPackage
from .errors import ExecutorError
from .generator import MODE_NINJA, DriverExecutor
from .labels import (
    canonicalize_flags,
    complete_label,
    expand_labels,
    normalize_label,
    split_arguments,
    validate_flags,
)
from .staging import BUILD_DIR_NAME, stage_workspace
from .workspace import DEPS_DIR_NAME, Module, discover_modules


BUILD_CONFIG_PREFIX = "BUILD"
CONFIG_SEPARATOR = "#"
BUILD_FILES_DIR_NAME = "buildfiles"
OUTPUT_DIR_NAME = "output"
NINJA_FILE_NAME = "build.ninja"


def config_name(flags: Iterable[str]) -> str:
    """Name of the build directory isolating the configuration of ``flags``.

    The name only depends on the set of flags: order and repetition do not
    change it.
    """

    canonical = canonicalize_flags(flags)
    checksum = zlib.crc32(CONFIG_SEPARATOR.join(canonical).encode("utf-8"))
    return f"{BUILD_CONFIG_PREFIX}-{checksum:08X}"


@dataclass(slots=True)
class BuildInfo:
    workspace_root: Path
    working_dir: Path
    source_dir: Path
    config_name: str
    build_dir: Path
    build_output_dir: Path
    build_files_dir: Path
    build_flags: List[str] = field(default_factory=list)
    targets: List[str] = field(default_factory=list)
    ninja_targets: List[str] = field(default_factory=list)
    modules: Dict[str, Module] = field(default_factory=dict)
    packages: List[StagedPackage] = field(default_factory=list)


@dataclass(slots=True)
class BuildResult:
    info: BuildInfo
    available_targets: Set[str]
    available_flags: Set[str]
    executed: bool = False


class BuildEngine:
    def __init__(
        self,
        *,
        workspace_root: Path,
        working_dir: Path,
        command_runner: CommandRunner,
        console: Console,
        settings: WorkspaceSettings | None = None,
        verbose: bool = False,
    ) -> None:
        self._workspace_root = workspace_root
        self._working_dir = working_dir
        self._command_runner = command_runner
        self._console = console
        self._settings = settings or WorkspaceSettings()
        self._verbose = verbose
        self._driver = DriverExecutor(
            command_runner=command_runner,
            console=console,
            python=self._settings.python,
            environment=self._settings.environment,
        )

    def prepare(self, args: Sequence[str]) -> BuildInfo:
        """Split ``args``, derive the configuration directory and restage it."""

        raw_targets, raw_flags = split_arguments(args)
        targets = [normalize_label(raw, self._working_dir, self._workspace_root) for raw in raw_targets]
        flags = canonicalize_flags(raw_flags)

        name = config_name(flags)
        build_dir = self._workspace_root / BUILD_DIR_NAME / name
        info = BuildInfo(
            workspace_root=self._workspace_root,
            working_dir=self._working_dir,
            source_dir=self._workspace_root / DEPS_DIR_NAME,
            config_name=name,
            build_dir=build_dir,
            build_output_dir=build_dir / OUTPUT_DIR_NAME,
            build_files_dir=build_dir / BUILD_FILES_DIR_NAME,
            build_flags=flags,
            targets=targets,
        )

        self._console.debug(f"Build flags: '{' '.join(flags)}'.")
        self._console.debug(f"Build config: '{name}'.")
        self._console.debug(f"Source directory: '{info.source_dir}'.")
        self._console.debug(f"Build directory: '{build_dir}'.")

        info.modules = discover_modules(self._workspace_root)
        info.packages = stage_workspace(info.modules, info.build_files_dir, self._console)
        return info

    def build(self, args: Sequence[str]) -> BuildResult:
        info = self.prepare(args)
        self._console.debug(f"Normalized targets: '{', '.join(info.targets)}'.")

        available_flags = self._driver.available_flags(info)
        if info.targets:
            validate_flags(info.build_flags, available_flags)
        available_targets = self._driver.available_targets(info)
        result = BuildResult(info=info, available_targets=available_targets, available_flags=available_flags)

        if not info.targets:
            self._console.debug("No targets specified.")
            self._print_available(available_targets, available_flags)
            return result

        info.ninja_targets = expand_labels(info.targets, available_targets)
        self._console.debug(f"Expanded targets: '{', '.join(info.ninja_targets)}'.")

        self.run_ninja(info)
        result.executed = True
        return result

    def complete(self, partial: str, args: Sequence[str]) -> List[str]:
        info = self.prepare(args)
        return complete_label(
            partial,
            self._working_dir,
            self._workspace_root,
            self._driver.available_targets(info),
            self._driver.available_flags(info),
        )

    def run_ninja(self, info: BuildInfo) -> None:
        """Write the generated Ninja file and run the executor on the resolved labels."""

        content = self._driver.run(MODE_NINJA, info)
        info.build_output_dir.mkdir(parents=True, exist_ok=True)
        ninja_file = info.build_output_dir / NINJA_FILE_NAME
        ninja_file.write_bytes(content)
        self._console.info(f"Wrote '{ninja_file}'.")

        command = shlex.split(self._settings.executor)
        if self._verbose:
            command.append("-v")
        command.extend(info.ninja_targets)
        self._console.debug(f"Running executor: {self._command_runner.format_command(command)}")
        try:
            self._command_runner.run(
                command,
                cwd=info.build_output_dir,
                env=self._settings.environment or None,
                stream=True,
                note="executor",
            )
        except CommandError as exc:
            raise ExecutorError(f"Ninja failed: exit code {exc.result.returncode}.") from exc
        except OSError as exc:
            raise ExecutorError(f"Ninja failed: {exc}.") from exc

    @staticmethod
    def _print_available(targets: Iterable[str], flags: Iterable[str]) -> None:
        print("\nAvailable targets:")
        for target in sorted(targets):
            print(f"  //{target}")

        print("\nAvailable flags:")
        for flag in sorted(flags):
            print(f"  {flag}=")
