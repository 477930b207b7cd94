"""Staging of definition files and rule libraries into the isolated build tree."""
from __future__ import annotations

from pathlib import Path
from typing import List, Mapping
import os
import shutil

from .console import Console
from .definitions import DEFINITION_FILE_NAME, parse_definition_file
from .driver import (
    GLUE_FILE_NAME,
    MANIFEST_FILE_NAME,
    StagedPackage,
    render_module_manifest,
    render_package_glue,
    write_driver,
)
from .errors import WorkspaceError
from .workspace import DEPS_DIR_NAME, Module


BUILD_DIR_NAME = "BUILD"
RULES_DIR_NAME = "RULES"
RULE_FILE_SUFFIX = ".py"

_SKIPPED_DIRS = frozenset({BUILD_DIR_NAME, DEPS_DIR_NAME, RULES_DIR_NAME})


def _walk(root: Path):
    def on_error(exc: OSError) -> None:
        raise exc

    return os.walk(root, onerror=on_error, followlinks=True)


def find_definition_files(module: Module) -> List[Path]:
    """Every ``BUILD.py`` of ``module`` outside its ``BUILD/``, ``DEPS/`` and ``RULES/``."""

    found: List[Path] = []
    try:
        for dirpath, dirnames, filenames in _walk(module.path):
            current = Path(dirpath)
            if current == module.path:
                dirnames[:] = [name for name in dirnames if name not in _SKIPPED_DIRS]
            dirnames.sort()
            if DEFINITION_FILE_NAME in filenames:
                found.append(current / DEFINITION_FILE_NAME)
    except OSError as exc:
        raise WorkspaceError(
            f"Failed to search module '{module.name}' for '{DEFINITION_FILE_NAME}' files: {exc}."
        ) from exc
    return found


def _copy_file(source: Path, destination: Path) -> None:
    destination.parent.mkdir(parents=True, exist_ok=True)
    shutil.copyfile(source, destination)


def copy_rule_files(module: Module, staged_dir: Path, console: Console) -> int:
    """Copy the module's rule library verbatim; returns the number of files copied."""

    rules_dir = module.path / RULES_DIR_NAME
    if not rules_dir.is_dir():
        console.debug(f"Module '{module.name}' does not specify any build rules.")
        return 0

    copied = 0
    try:
        for dirpath, dirnames, filenames in _walk(rules_dir):
            dirnames.sort()
            for filename in sorted(filenames):
                if not filename.endswith(RULE_FILE_SUFFIX):
                    continue
                source = Path(dirpath) / filename
                _copy_file(source, staged_dir / source.relative_to(module.path))
                copied += 1
    except OSError as exc:
        raise WorkspaceError(f"Failed to copy rule files for module '{module.name}': {exc}.") from exc
    return copied


def stage_module(
    module: Module,
    modules: Mapping[str, Module],
    buildfiles_dir: Path,
    console: Console,
) -> List[StagedPackage]:
    """Stage one module; returns the packages holding a definition file."""

    console.debug(f"Processing module '{module.name}'.")
    staged_dir = buildfiles_dir / module.import_name
    staged_dir.mkdir(parents=True, exist_ok=True)
    (staged_dir / MANIFEST_FILE_NAME).write_text(
        render_module_manifest(module.name, modules, buildfiles_dir),
        encoding="utf-8",
    )

    packages: List[StagedPackage] = []
    for definition_path in find_definition_files(module):
        console.debug(f"Found build file '{definition_path}'.")
        relative_dir = definition_path.parent.relative_to(module.path).as_posix()
        if relative_dir == ".":
            relative_dir = ""
        if "." in relative_dir:
            raise WorkspaceError(f"Package directory of '{definition_path}' must not contain '.'.")

        definition = parse_definition_file(definition_path)
        package = StagedPackage(
            module=module.name,
            label="/".join(part for part in (module.name, relative_dir) if part),
            import_path=".".join(part for part in (module.import_name, relative_dir.replace("/", ".")) if part),
            targets=list(definition.targets),
        )

        package_dir = staged_dir / relative_dir if relative_dir else staged_dir
        try:
            _copy_file(definition_path, package_dir / DEFINITION_FILE_NAME)
            (package_dir / GLUE_FILE_NAME).write_text(render_package_glue(package), encoding="utf-8")
        except OSError as exc:
            raise WorkspaceError(f"Failed to stage '{definition_path}': {exc}.") from exc
        packages.append(package)

    copy_rule_files(module, staged_dir, console)
    return packages


def stage_workspace(modules: Mapping[str, Module], buildfiles_dir: Path, console: Console) -> List[StagedPackage]:
    """Regenerate the whole staging tree for ``modules``, driver included."""

    if buildfiles_dir.exists():
        shutil.rmtree(buildfiles_dir)
    buildfiles_dir.mkdir(parents=True)

    packages: List[StagedPackage] = []
    for module in modules.values():
        packages.extend(stage_module(module, modules, buildfiles_dir, console))

    write_driver(buildfiles_dir, packages, modules)
    console.info(f"Staged {len(packages)} package(s) from {len(modules)} module(s).")
    return packages
