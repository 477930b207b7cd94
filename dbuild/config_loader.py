"""Loading of the optional workspace settings file."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping
import json
import os
import sys
import tomllib

try:  # Optional dependency for YAML support
    import yaml
except ModuleNotFoundError:  # pragma: no cover - exercised when PyYAML absent
    yaml = None

from .errors import WorkspaceError
from .template import TemplateResolver


SETTINGS_FILE_STEM = "dbuild"

ConfigLoader = Callable[[Any], Mapping[str, Any]]


def _raise_yaml_missing() -> Mapping[str, Any]:
    raise RuntimeError(
        "PyYAML is required to load YAML configuration files. Install with `pip install PyYAML`."
    )


FILE_LOADERS: Dict[str, ConfigLoader] = {
    ".toml": lambda stream: tomllib.load(stream),
    ".json": lambda stream: json.load(stream),
    ".yaml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
    ".yml": lambda stream: yaml.safe_load(stream) if yaml else _raise_yaml_missing(),
}
"""Mapping of file suffixes to loader callables."""


def load_config_file(path: Path) -> Mapping[str, Any]:
    """Load and decode a configuration mapping from ``path``."""

    suffix = path.suffix.lower()
    loader = FILE_LOADERS.get(suffix)
    if loader is None:
        supported = ", ".join(sorted(FILE_LOADERS)) or "<none>"
        raise ValueError(
            f"Unsupported configuration file extension: {suffix}. Supported: {supported}"
        )

    mode = "rb" if suffix == ".toml" else "r"
    kwargs: Dict[str, Any] = {}
    if mode == "r":
        kwargs["encoding"] = "utf-8"

    with path.open(mode, **kwargs) as handle:
        data = loader(handle)

    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Configuration file '{path}' must contain a mapping at the root")

    return data


def find_config_file(directory: Path, stem: str) -> Path | None:
    """Return the single configuration file named ``stem`` in ``directory``."""

    found: Path | None = None
    for suffix in FILE_LOADERS:
        candidate = directory / f"{stem}{suffix}"
        if not candidate.is_file():
            continue
        if found is not None:
            raise ValueError(
                f"Multiple configuration files found for '{stem}': '{found.name}' and '{candidate.name}'. "
                "Only one format per configuration entry is allowed."
            )
        found = candidate
    return found


@dataclass(slots=True)
class WorkspaceSettings:
    executor: str = "ninja"
    python: str = sys.executable
    log_level: str | None = None
    environment: Dict[str, str] = field(default_factory=dict)
    source: Path | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, source: Path | None = None) -> "WorkspaceSettings":
        build_section = data.get("build", {})
        if not isinstance(build_section, Mapping):
            raise TypeError("build section must be a mapping")
        environment_section = data.get("environment", {})
        if not isinstance(environment_section, Mapping):
            raise TypeError("environment section must be a mapping")
        log_level = build_section.get("log_level")
        return cls(
            executor=str(build_section.get("executor", "ninja")),
            python=str(build_section.get("python") or sys.executable),
            log_level=str(log_level) if log_level else None,
            environment={str(key): str(value) for key, value in environment_section.items()},
            source=source,
        )


_SETTINGS_ERRORS: tuple[type[BaseException], ...] = (OSError, ValueError, TypeError, RuntimeError)
if yaml is not None:
    _SETTINGS_ERRORS += (yaml.YAMLError,)


def _template_context(workspace_root: Path, build_dir: Path, env: Mapping[str, str]) -> Dict[str, Any]:
    return {
        "workspace": {"root": str(workspace_root), "build_dir": str(build_dir)},
        "env": dict(env),
    }


def load_workspace_settings(
    workspace_root: Path,
    build_dir: Path,
    *,
    env: Mapping[str, str] | None = None,
) -> WorkspaceSettings:
    """Load ``dbuild.{toml,json,yaml}`` from ``workspace_root`` if present."""

    try:
        path = find_config_file(workspace_root, SETTINGS_FILE_STEM)
        if path is None:
            return WorkspaceSettings()
        raw = load_config_file(path)
        context = _template_context(workspace_root, build_dir, os.environ if env is None else env)
        resolved = TemplateResolver(context).resolve(dict(raw))
        return WorkspaceSettings.from_mapping(resolved, source=path)
    except _SETTINGS_ERRORS as exc:
        raise WorkspaceError(f"Failed to load workspace settings from '{workspace_root}': {exc}") from exc
