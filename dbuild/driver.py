"""Synthesis of the glue files, manifests and driver program in the staging tree."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Mapping
import json

from . import __version__
from .template import render
from .workspace import Module


GLUE_FILE_NAME = "__init__.py"
MAIN_FILE_NAME = "main.py"
MANIFEST_FILE_NAME = "pyproject.toml"
DEFINITION_MODULE = "BUILD"
DRIVER_PROJECT_NAME = "dbuild-driver"
RULE_CORE_REQUIREMENT = f"dbuild=={__version__}"

GENERATED_HEADER = "# This file is generated. Do not edit this file."

_GLUE_TEMPLATE = '''{{header}}

from dbuild import core

PACKAGE = {{package.label}}


def in_(name):
    return core.in_path(PACKAGE, name)


def ins(*names):
    return core.Paths(in_(name) for name in names)


def out(name):
    return core.out_path(PACKAGE, name)


from . import {{package.definitions}} as _definitions  # noqa: E402


def dbuild_main(ctx):
{{package.registrations}}
'''

_MAIN_TEMPLATE = '''{{header}}

import importlib
import sys
from pathlib import Path

from dbuild import core

MODULES = {
{{driver.modules}}
}

PACKAGES = [
{{driver.packages}}
]


def main(argv):
    packages = [importlib.import_module(name) for name in PACKAGES]

    mode = argv[1]
    if mode == "flags":
        for name in core.FLAGS.names():
            print(name)
        return 0

    core.verify_manifest(Path(__file__).with_name("{{driver.manifest}}"))
    ctx = core.make_context(
        mode,
        source_dir=argv[2],
        output_dir=argv[3],
        working_dir=argv[4],
        modules=MODULES,
    )
    core.lock_build_flags(argv[5:], strict=mode != "targets")
    for package in packages:
        package.dbuild_main(ctx)
    sys.stdout.write(ctx.finish())
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
'''

_MANIFEST_TEMPLATE = '''{{header}}

[project]
name = {{manifest.name}}
version = "0.0.0"
dependencies = [
{{manifest.dependencies}}
]
'''


@dataclass(slots=True)
class StagedPackage:
    """A directory of a module holding one staged definition file."""

    module: str
    label: str
    import_path: str
    targets: List[str] = field(default_factory=list)


def _toml_string(value: str) -> str:
    return json.dumps(value)


def render_package_glue(package: StagedPackage) -> str:
    """Glue registering the package's declared targets with a context."""

    if package.targets:
        lines = [
            f"    ctx.add_target(PACKAGE + {'/' + name!r}, _definitions.{name})"
            for name in package.targets
        ]
    else:
        lines = ["    pass"]
    context = {
        "header": GENERATED_HEADER,
        "package": {
            "label": repr(package.label),
            "definitions": DEFINITION_MODULE,
            "registrations": "\n".join(lines),
        },
    }
    return render(_GLUE_TEMPLATE, context)


def render_module_manifest(name: str, modules: Mapping[str, Module], buildfiles_dir: Path) -> str:
    """Manifest pinning the rule core and every other staged module."""

    dependencies = [RULE_CORE_REQUIREMENT]
    for other in modules.values():
        if other.name == name:
            continue
        location = (buildfiles_dir / other.import_name).resolve().as_uri()
        dependencies.append(f"{other.name} @ {location}")
    context = {
        "header": GENERATED_HEADER,
        "manifest": {
            "name": _toml_string(name),
            "dependencies": "\n".join(f"    {_toml_string(dep)}," for dep in dependencies),
        },
    }
    return render(_MANIFEST_TEMPLATE, context)


def render_driver(packages: Iterable[StagedPackage], modules: Mapping[str, Module]) -> str:
    """Driver importing every staged package and dispatching on its mode argument."""

    module_lines = [f"    {module.name!r}: {str(module.path)!r}," for module in modules.values()]
    package_lines = [f"    {package.import_path!r}," for package in packages]
    context = {
        "header": GENERATED_HEADER,
        "driver": {
            "modules": "\n".join(module_lines),
            "packages": "\n".join(package_lines),
            "manifest": MANIFEST_FILE_NAME,
        },
    }
    return render(_MAIN_TEMPLATE, context)


def write_driver(buildfiles_dir: Path, packages: List[StagedPackage], modules: Mapping[str, Module]) -> Path:
    """Write ``main.py`` and the root manifest; returns the driver path."""

    buildfiles_dir.mkdir(parents=True, exist_ok=True)
    main_path = buildfiles_dir / MAIN_FILE_NAME
    main_path.write_text(render_driver(packages, modules), encoding="utf-8")
    (buildfiles_dir / MANIFEST_FILE_NAME).write_text(
        render_module_manifest(DRIVER_PROJECT_NAME, modules, buildfiles_dir),
        encoding="utf-8",
    )
    return main_path
