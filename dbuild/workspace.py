"""Workspace and module discovery."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Dict
import importlib.util
import os
import re
import sys

from .errors import WorkspaceError


MODULE_FILE_NAME = "MODULE"
DEPS_DIR_NAME = "DEPS"

_INVALID_IDENTIFIER_CHARS = re.compile(r"\W")


@dataclass(frozen=True, slots=True)
class Module:
    """A named, path-rooted unit of source."""

    name: str
    path: Path

    @property
    def import_name(self) -> str:
        """Top-level Python package name of the module inside the staging tree."""

        return import_name_for(self.name)


def import_name_for(module_name: str) -> str:
    name = _INVALID_IDENTIFIER_CHARS.sub("_", module_name)
    if not name or name[0].isdigit():
        name = f"_{name}"
    return name


def module_root_for_path(path: Path, *, stop: Path | None = None) -> Path:
    """Return the nearest directory at or above ``path`` holding a ``MODULE`` file.

    The search never continues past ``stop`` when it is given.
    """

    current = Path(os.path.normpath(path))
    while True:
        if (current / MODULE_FILE_NAME).is_file():
            return current
        if stop is not None and current == stop:
            break
        if current.parent == current:
            break
        current = current.parent
    raise WorkspaceError(f"Could not find a module root for '{path}'.")


def _is_importable_elsewhere(import_name: str) -> bool:
    """Whether ``import_name`` already names a package outside the staging tree."""

    if import_name in sys.stdlib_module_names or import_name in sys.builtin_module_names:
        return True
    try:
        spec = importlib.util.find_spec(import_name)
    except (ImportError, ValueError):
        return False
    # Namespace portions have no origin and never win over a regular package.
    return spec is not None and spec.origin is not None


def find_workspace_root(working_dir: Path) -> Path:
    """Return the workspace root for ``working_dir``.

    Modules fetched into ``DEPS/`` belong to the workspace enclosing that
    directory, so running from inside a dependency still builds the whole
    workspace.
    """

    module_root = module_root_for_path(working_dir)
    if module_root.parent.name == DEPS_DIR_NAME:
        return module_root.parent.parent
    return module_root


def discover_modules(workspace_root: Path) -> Dict[str, Module]:
    """Map every module name in the workspace to its :class:`Module`."""

    if not workspace_root.is_dir():
        raise WorkspaceError(f"Workspace root '{workspace_root}' does not exist.")
    if not (workspace_root / MODULE_FILE_NAME).is_file():
        raise WorkspaceError(f"Workspace root '{workspace_root}' does not contain a {MODULE_FILE_NAME} file.")

    modules: Dict[str, Module] = {workspace_root.name: Module(workspace_root.name, workspace_root)}

    deps_dir = workspace_root / DEPS_DIR_NAME
    if deps_dir.is_dir():
        for entry in sorted(deps_dir.iterdir()):
            if not entry.is_dir():
                continue
            if entry.name in modules:
                raise WorkspaceError(
                    f"Dependency '{entry}' has the same name as the root module '{workspace_root}'."
                )
            modules[entry.name] = Module(entry.name, entry)

    seen: Dict[str, str] = {}
    for name, module in modules.items():
        import_name = module.import_name
        if import_name == "dbuild" or _is_importable_elsewhere(import_name):
            raise WorkspaceError(
                f"Module '{name}' clashes with the installed Python package '{import_name}'. "
                "Rename the module directory."
            )
        if import_name in seen:
            raise WorkspaceError(
                f"Modules '{seen[import_name]}' and '{name}' map to the same package name '{import_name}'."
            )
        seen[import_name] = name
    return dict(sorted(modules.items()))
