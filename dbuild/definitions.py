"""Restricted-grammar parsing of ``BUILD.py`` definition files."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List
import ast

from .errors import DefinitionError


DEFINITION_FILE_NAME = "BUILD.py"
ANONYMOUS_NAME = "_"


@dataclass(slots=True)
class DefinitionFile:
    path: Path
    targets: List[str] = field(default_factory=list)


def _invalid(path: Path) -> DefinitionError:
    return DefinitionError(
        path,
        f"'{path}' contains invalid declarations. Only import statements and target assignments are allowed.",
    )


def _is_docstring(node: ast.stmt) -> bool:
    return (
        isinstance(node, ast.Expr)
        and isinstance(node.value, ast.Constant)
        and isinstance(node.value.value, str)
    )


def _assigned_names(target: ast.expr, path: Path) -> Iterator[str]:
    if isinstance(target, ast.Name):
        yield target.id
        return
    if isinstance(target, (ast.Tuple, ast.List)):
        for element in target.elts:
            yield from _assigned_names(element, path)
        return
    raise _invalid(path)


def _declared_names(node: ast.stmt, path: Path) -> Iterator[str]:
    if isinstance(node, (ast.Import, ast.ImportFrom)):
        return
    if isinstance(node, ast.Assign):
        for target in node.targets:
            yield from _assigned_names(target, path)
        return
    if isinstance(node, ast.AnnAssign) and node.value is not None and isinstance(node.target, ast.Name):
        yield node.target.id
        return
    raise _invalid(path)


def parse_definition_source(source: str | bytes, path: Path) -> DefinitionFile:
    """Return the target names declared by a definition file's source.

    Only imports and assignments to plain names are accepted at the top
    level, plus an optional leading docstring.
    """

    try:
        module = ast.parse(source, filename=str(path))
    except (SyntaxError, ValueError) as exc:
        raise DefinitionError(path, f"Failed to parse '{path}': {exc}.") from exc

    body = module.body
    if body and _is_docstring(body[0]):
        body = body[1:]

    definition = DefinitionFile(path=path)
    for node in body:
        for name in _declared_names(node, path):
            if name == ANONYMOUS_NAME:
                raise DefinitionError(
                    path,
                    f"'{path}' contains anonymous target declarations. All targets must have a name.",
                )
            if name in definition.targets:
                raise DefinitionError(path, f"'{path}' declares target '{name}' more than once.")
            definition.targets.append(name)
    return definition


def parse_definition_file(path: Path) -> DefinitionFile:
    try:
        source = path.read_bytes()
    except OSError as exc:
        raise DefinitionError(path, f"Failed to read '{path}': {exc}.") from exc
    return parse_definition_source(source, path)
