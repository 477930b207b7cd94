"""Normalization and expansion of target labels and build flags."""
from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Sequence, Tuple
import posixpath

from .errors import ResolutionError
from .workspace import module_root_for_path


WORKSPACE_MARKER = "//"
WILDCARD = "..."
FLAG_SEPARATOR = "="


def split_arguments(args: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split CLI arguments into target labels and ``name=value`` build flags."""

    targets: List[str] = []
    flags: List[str] = []
    for arg in args:
        if FLAG_SEPARATOR in arg:
            flags.append(arg)
        else:
            targets.append(arg)
    return targets, flags


def normalize_label(raw: str, working_dir: Path, workspace_root: Path | None = None) -> str:
    """Return the workspace-rooted label for a CLI target argument.

    ``//src/path/lib.a`` is read relative to the workspace root from anywhere.
    Anything else is relative to ``working_dir``: running with ``lib.a`` in
    ``<module>/src/path`` is equivalent to ``path/lib.a`` in ``<module>/src``.
    """

    if raw.startswith(WORKSPACE_MARKER):
        return raw.lstrip("/")

    ends_with_slash = raw.endswith("/") or raw == ""
    joined = posixpath.normpath(posixpath.join(Path(working_dir).as_posix(), raw))
    module_root = module_root_for_path(Path(joined), stop=workspace_root)
    prefix = module_root.parent.as_posix()
    label = joined[len(prefix):] if joined.startswith(prefix) else joined
    if ends_with_slash:
        label = f"{label}/"
    return label.lstrip("/")


def is_wildcard(label: str) -> bool:
    return label.endswith(WILDCARD)


def expand_labels(labels: Sequence[str], available: Iterable[str]) -> List[str]:
    """Resolve labels against the available targets.

    Plain labels must name an existing target. A wildcard label expands to
    every target starting with the text before ``...`` and must match at
    least one target.
    """

    known = set(available)
    resolved: set[str] = set()
    for label in labels:
        if not is_wildcard(label):
            if label not in known:
                raise ResolutionError(f"Target '{label}' does not exist.")
            resolved.add(label)
            continue

        prefix = label[: -len(WILDCARD)]
        matches = {target for target in known if target.startswith(prefix)}
        if not matches:
            raise ResolutionError(f"No target is matching pattern '{label}'.")
        resolved.update(matches)
    return sorted(resolved)


def canonicalize_flags(flags: Iterable[str]) -> List[str]:
    """Return the sorted, deduplicated ``name=value`` flag set."""

    values: Dict[str, str] = {}
    for flag in flags:
        name, _, value = flag.partition(FLAG_SEPARATOR)
        name = name.strip()
        value = value.strip()
        if not name:
            raise ResolutionError(f"Flag '{flag}' has no name.")
        if name in values and values[name] != value:
            raise ResolutionError(
                f"Flag '{name}' is set more than once with different values ('{values[name]}' and '{value}')."
            )
        values[name] = value
    return sorted(f"{name}{FLAG_SEPARATOR}{value}" for name, value in values.items())


def flag_name(flag: str) -> str:
    return flag.partition(FLAG_SEPARATOR)[0]


def validate_flags(flags: Iterable[str], available: Iterable[str]) -> None:
    known = set(available)
    for flag in flags:
        name = flag_name(flag)
        if name not in known:
            raise ResolutionError(f"Flag '{name}' does not exist.")


def complete_label(
    partial: str,
    working_dir: Path,
    workspace_root: Path,
    targets: Iterable[str],
    flags: Iterable[str],
) -> List[str]:
    """Shell-completion suggestions for ``partial``.

    Targets are completed one path segment at a time so that directories are
    offered before the labels nested below them.
    """

    suggestions = [f"{name}{FLAG_SEPARATOR}" for name in sorted(flags)]

    normalized = normalize_label(partial, working_dir, workspace_root)
    num_parts = len(normalized.split("/"))
    seen: set[str] = set()
    for target in sorted(targets):
        if not target.startswith(normalized):
            continue
        segments = target.split("/")
        suggestion = "/".join(segments[:num_parts])
        if num_parts < len(segments):
            suggestion = f"{suggestion}/"
        suggestion = partial + suggestion[len(normalized):]
        if suggestion not in seen:
            seen.add(suggestion)
            suggestions.append(suggestion)
    return suggestions
