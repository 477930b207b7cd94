"""Rule-authoring API shared by definition files, rule libraries and the driver.

Definition files only see the package-scoped ``in_``, ``ins`` and ``out``
helpers from their generated glue, and the rule types their rule libraries
export. Rule libraries subclass :class:`BuildRule` and emit
:class:`BuildStep` instances through the context handed to ``build``::

    class Copy(core.BuildRule):
        def __init__(self, src, dst):
            self.src, self.dst = src, dst

        def build(self, ctx):
            ctx.add_build_step(core.BuildStep(
                outs=[self.dst], ins=[self.src], cmd="cp $in $out", descr=f"CP {self.dst}",
            ))

Build flags are declared at import time with :class:`BuildFlag`; their values
become readable once the driver locks them, which happens after the flag
listing but before any rule is built.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple
import abc
import io
import posixpath
import tomllib

from ninja.ninja_syntax import Writer

from . import __version__


class FlagError(RuntimeError):
    """Raised for undeclared, invalid or prematurely read build flags."""


@dataclass(frozen=True, slots=True)
class InPath:
    """A source file addressed as ``<module>/<package>/<name>``."""

    relative: str

    def with_suffix(self, suffix: str) -> "InPath":
        return InPath(posixpath.splitext(self.relative)[0] + suffix)

    def __str__(self) -> str:
        return self.relative


@dataclass(frozen=True, slots=True)
class OutPath:
    """A build output addressed relative to the configuration's output directory."""

    relative: str

    def with_suffix(self, suffix: str) -> "OutPath":
        return OutPath(posixpath.splitext(self.relative)[0] + suffix)

    def __str__(self) -> str:
        return self.relative


class Paths(list):
    """List of paths, as returned by the ``ins`` helper."""


def in_path(package: str, name: str) -> InPath:
    return InPath(posixpath.join(package, name))


def out_path(package: str, name: str) -> OutPath:
    return OutPath(posixpath.join(package, name))


def _as_list(value) -> List:
    if value is None:
        return []
    if isinstance(value, (InPath, OutPath, str)):
        return [value]
    return list(value)


@dataclass(slots=True)
class BuildStep:
    """One edge of the action graph: a command turning ``ins`` into ``outs``."""

    outs: Sequence[OutPath]
    ins: Sequence[InPath | OutPath] = field(default_factory=list)
    cmd: str = ""
    descr: str = ""
    depfile: OutPath | None = None

    def __post_init__(self) -> None:
        self.outs = _as_list(self.outs)
        self.ins = _as_list(self.ins)
        if not self.outs:
            raise ValueError("A build step must declare at least one output")


class BuildRule(abc.ABC):
    """Capability of a target value to produce build steps."""

    @abc.abstractmethod
    def build(self, ctx: "Context") -> None:
        raise NotImplementedError


class BuildFlag:
    """A ``name=value`` build flag declared by a rule library."""

    def __init__(
        self,
        name: str,
        *,
        description: str = "",
        default: str | None = None,
        allowed: Iterable[str] | None = None,
        registry: "FlagRegistry | None" = None,
    ) -> None:
        self.name = name
        self.description = description
        self.default = default
        self.allowed = tuple(allowed) if allowed is not None else None
        self._registry = registry if registry is not None else FLAGS
        self._registry.register(self)

    @property
    def value(self) -> str:
        if not self._registry.locked:
            raise FlagError(f"Flag '{self.name}' was read before build flags were locked.")
        value = self._registry.values.get(self.name, self.default)
        if value is None:
            raise FlagError(f"Flag '{self.name}' must be set (use {self.name}=<value>).")
        return value


class FlagRegistry:
    def __init__(self) -> None:
        self.flags: Dict[str, BuildFlag] = {}
        self.values: Dict[str, str] = {}
        self.locked = False

    def register(self, flag: BuildFlag) -> None:
        if self.locked:
            raise FlagError(f"Flag '{flag.name}' was declared after build flags were locked.")
        if flag.name in self.flags:
            raise FlagError(f"Flag '{flag.name}' is declared more than once.")
        self.flags[flag.name] = flag

    def names(self) -> List[str]:
        return sorted(self.flags)

    def lock(self, args: Iterable[str], *, strict: bool = True) -> None:
        """Freeze flag values from ``name=value`` arguments.

        Unknown names are an error unless ``strict`` is false, in which case
        they are skipped.
        """

        for arg in args:
            name, _, value = arg.partition("=")
            flag = self.flags.get(name)
            if flag is None:
                if not strict:
                    continue
                raise FlagError(f"Flag '{name}' does not exist.")
            if flag.allowed is not None and value not in flag.allowed:
                raise FlagError(
                    f"Flag '{name}' does not accept '{value}'. Allowed: {', '.join(flag.allowed)}"
                )
            self.values[name] = value
        self.locked = True


FLAGS = FlagRegistry()


def lock_build_flags(args: Iterable[str], *, strict: bool = True) -> None:
    FLAGS.lock(args, strict=strict)


class Context(abc.ABC):
    """Explicit registration context handed to every package's ``dbuild_main``."""

    def __init__(
        self,
        *,
        source_dir: str,
        output_dir: str,
        working_dir: str,
        modules: Mapping[str, str],
    ) -> None:
        self.source_dir = source_dir
        self.output_dir = output_dir
        self.working_dir = working_dir
        self.modules = dict(modules)

    def add_target(self, label: str, value: object) -> None:
        """Register ``value`` under ``label`` if it can produce build steps."""

        if isinstance(value, BuildRule):
            self._add_rule(label, value)

    @abc.abstractmethod
    def _add_rule(self, label: str, rule: BuildRule) -> None:
        raise NotImplementedError

    def add_build_step(self, step: BuildStep) -> None:
        """Collect ``step``; contexts that only enumerate targets ignore it."""

    def resolve(self, path: InPath | OutPath | str) -> str:
        """Absolute filesystem path of ``path``."""

        if isinstance(path, OutPath):
            return posixpath.join(self.output_dir, path.relative)
        if isinstance(path, InPath):
            module, _, remainder = path.relative.partition("/")
            root = self.modules.get(module)
            if root is None:
                return posixpath.join(self.source_dir, path.relative)
            return posixpath.join(root, remainder) if remainder else root
        return str(path)

    @abc.abstractmethod
    def finish(self) -> str:
        raise NotImplementedError


class ListTargetsContext(Context):
    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._labels: set[str] = set()

    def _add_rule(self, label: str, rule: BuildRule) -> None:
        self._labels.add(label)

    def finish(self) -> str:
        return "".join(f"{label}\n" for label in sorted(self._labels))


class NinjaContext(Context):
    """Renders every buildable target's steps into a Ninja build file.

    Steps with identical outputs, inputs and command are emitted once so that
    rules shared between targets do not generate duplicate edges.
    """

    def __init__(self, **kwargs) -> None:
        super().__init__(**kwargs)
        self._buffer = io.StringIO()
        self._writer = Writer(self._buffer)
        self._writer.comment("This file is generated. Do not edit this file.")
        self._writer.newline()
        self._steps: Dict[str, Tuple[Tuple[str, ...], str]] = {}
        self._rule_count = 0
        self._target_outputs: List[str] | None = None

    def _add_rule(self, label: str, rule: BuildRule) -> None:
        self._target_outputs = []
        try:
            rule.build(self)
            outputs = sorted(set(self._target_outputs))
        finally:
            self._target_outputs = None
        self._writer.build(label, "phony", outputs)
        self._writer.newline()

    def _iter_new_outputs(self, outs: Sequence[str], ins: Tuple[str, ...], cmd: str) -> Iterator[str]:
        for out in outs:
            existing = self._steps.get(out)
            if existing is None:
                yield out
            elif existing != (ins, cmd):
                raise ValueError(f"Output '{out}' is produced by more than one build step.")

    def add_build_step(self, step: BuildStep) -> None:
        outs = [self.resolve(path) for path in step.outs]
        ins = tuple(self.resolve(path) for path in step.ins)
        if self._target_outputs is not None:
            self._target_outputs.extend(outs)

        new_outputs = list(self._iter_new_outputs(outs, ins, step.cmd))
        if not new_outputs:
            return
        if len(new_outputs) != len(outs):
            raise ValueError(f"Build step '{step.descr or step.cmd}' partially overlaps another step's outputs.")
        for out in outs:
            self._steps[out] = (ins, step.cmd)

        self._rule_count += 1
        rule_name = f"r{self._rule_count}"
        depfile = self.resolve(step.depfile) if step.depfile is not None else None
        self._writer.rule(rule_name, step.cmd, description=step.descr or None, depfile=depfile)
        self._writer.build(outs, rule_name, list(ins))
        self._writer.newline()

    def finish(self) -> str:
        return self._buffer.getvalue()


_CONTEXTS = {
    "targets": ListTargetsContext,
    "ninja": NinjaContext,
}


def make_context(mode: str, **kwargs) -> Context:
    try:
        factory = _CONTEXTS[mode]
    except KeyError:
        raise ValueError(f"Unknown generator mode '{mode}'. Expected one of: flags, {', '.join(_CONTEXTS)}") from None
    return factory(**kwargs)


def verify_manifest(path: Path | str) -> None:
    """Check that the staged manifest pins the running ``dbuild`` version."""

    with Path(path).open("rb") as handle:
        manifest = tomllib.load(handle)
    pinned = f"dbuild=={__version__}"
    dependencies = manifest.get("project", {}).get("dependencies", [])
    if pinned not in dependencies:
        raise RuntimeError(
            f"'{path}' was generated for a different dbuild version (expected '{pinned}')."
        )
