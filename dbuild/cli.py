"""Command line interface for dbuild."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable
import sys

from .build import BuildEngine
from .command_runner import CommandError, SubprocessCommandRunner
from .config_loader import WorkspaceSettings, load_workspace_settings
from .console import Console
from .errors import BuildError
from .staging import BUILD_DIR_NAME
from .workspace import find_workspace_root


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="dbuild", description="Generate Ninja build graphs from BUILD.py files")
    parser.add_argument(
        "--log",
        "-l",
        choices=list(Console.LEVELS),
        default=None,
        help="Set log level (default: error, or build.log_level from dbuild.toml)",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug output and verbose Ninja runs")

    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser = subparsers.add_parser("build", help="Build the targets")
    build_parser.add_argument(
        "args",
        nargs="*",
        metavar="target|flag=value",
        help="Targets to build (a trailing '...' selects everything below) and build flags",
    )

    complete_parser = subparsers.add_parser("complete", help="Print shell completions for a partial argument")
    complete_parser.add_argument("partial", help="Argument being completed")
    complete_parser.add_argument("args", nargs="*", help="Arguments already on the command line")

    return parser.parse_args(list(argv))


def _resolve_log_level(args: Namespace, settings: WorkspaceSettings) -> str:
    if args.log:
        return args.log
    if args.verbose:
        return "debug"
    return settings.log_level or "error"


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    working_dir = Path.cwd()
    console = Console(level=args.log or ("debug" if args.verbose else "error"))

    try:
        workspace_root = find_workspace_root(working_dir)
        settings = load_workspace_settings(workspace_root, workspace_root / BUILD_DIR_NAME)
        console = Console(level=_resolve_log_level(args, settings))
        console.debug(f"Workspace root: '{workspace_root}'.")
        if settings.source:
            console.debug(f"Loaded settings from '{settings.source}'.")

        engine = BuildEngine(
            workspace_root=workspace_root,
            working_dir=working_dir,
            command_runner=SubprocessCommandRunner(),
            console=console,
            settings=settings,
            verbose=args.verbose,
        )
        if args.command == "build":
            engine.build(args.args)
            return 0
        if args.command == "complete":
            for suggestion in engine.complete(args.partial, args.args):
                print(suggestion)
            return 0
    except (BuildError, CommandError, ValueError) as exc:
        console.error(str(exc))
        return 1
    raise ValueError(f"Unknown command: {args.command}")


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
