"""Placeholder resolution for settings values and generated source files."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping
import re


_PLACEHOLDER_PATTERN = re.compile(r"\{\{([^{}]+)\}\}")


class TemplateError(ValueError):
    """Raised when template resolution fails."""


@dataclass(slots=True)
class TemplateResolver:
    """Resolves ``{{dotted.path}}`` placeholders against a nested mapping.

    Placeholders found inside resolved values are expanded as well; a
    placeholder that refers back to itself raises :class:`TemplateError`.
    """

    context: Mapping[str, Any]
    _cache: dict[str, Any] = field(default_factory=dict, init=False, repr=False)

    def resolve(self, value: Any) -> Any:
        return self._resolve_value(value, stack=[])

    def _resolve_value(self, value: Any, *, stack: list[str]) -> Any:
        if isinstance(value, str):
            return self._substitute(value, stack=stack)
        if isinstance(value, list):
            return [self._resolve_value(item, stack=list(stack)) for item in value]
        if isinstance(value, dict):
            return {key: self._resolve_value(val, stack=list(stack)) for key, val in value.items()}
        return value

    def _substitute(self, text: str, *, stack: list[str]) -> str:
        def replacement(match: re.Match[str]) -> str:
            return str(self._resolve_path(match.group(1).strip(), stack=stack))

        if not _PLACEHOLDER_PATTERN.search(text):
            return text
        return _PLACEHOLDER_PATTERN.sub(replacement, text)

    def _resolve_path(self, path: str, *, stack: list[str]) -> Any:
        if path in self._cache:
            return self._cache[path]
        if path in stack:
            cycle = " -> ".join(stack + [path])
            raise TemplateError(f"Circular dependency detected: {cycle}")

        raw_value = self._lookup_raw(path)
        stack.append(path)
        resolved = self._resolve_value(raw_value, stack=stack)
        stack.pop()
        self._cache[path] = resolved
        return resolved

    def _lookup_raw(self, path: str) -> Any:
        current: Any = self.context
        for part in path.split("."):
            if isinstance(current, Mapping) and part in current:
                current = current[part]
                continue
            raise TemplateError(f"Cannot resolve path '{path}' in template context")
        return current


def render(template: str, context: Mapping[str, Any]) -> str:
    """Substitute the placeholders of ``template`` from ``context`` in one pass.

    Substituted values are inserted verbatim and never scanned for further
    placeholders, so generated sources may embed arbitrary paths.
    """

    resolver = TemplateResolver(context)

    def replacement(match: re.Match[str]) -> str:
        return str(resolver._lookup_raw(match.group(1).strip()))

    return _PLACEHOLDER_PATTERN.sub(replacement, template)
