from __future__ import annotations

from contextlib import redirect_stdout
from pathlib import Path
import io
import tempfile
import textwrap
import unittest

from dbuild.build import BuildEngine
from dbuild.command_runner import CommandResult, SubprocessCommandRunner
from dbuild.console import Console
from dbuild.errors import ResolutionError, ToolchainError, WorkspaceError


class ExecutorRecordingRunner(SubprocessCommandRunner):
    """Runs the driver for real and records executor invocations."""

    def __init__(self) -> None:
        self.executor_calls = []

    def run(self, command, **kwargs):
        if command[0] == "ninja":
            self.executor_calls.append((list(command), kwargs.get("cwd")))
            return CommandResult(command=command, returncode=0, stdout=b"", stderr=b"", streamed=True)
        return super().run(command, **kwargs)


RULES_SOURCE = '''
from dbuild import core

MODE = core.BuildFlag("mode", default="debug", allowed=["debug", "release"])


class Copy(core.BuildRule):
    def __init__(self, src, dst):
        self.src = src
        self.dst = dst

    def build(self, ctx):
        ctx.add_build_step(
            core.BuildStep(outs=[self.dst], ins=[self.src], cmd="cp $in $out", descr=f"CP {MODE.value}")
        )
'''


class DriverIntegrationTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name) / "app"
        self._write(self.workspace / "MODULE", "")
        self._write(self.workspace / "src" / "data.txt", "payload\n")
        self._write(
            self.workspace / "src" / "BUILD.py",
            textwrap.dedent(
                """
                from dbt_rules.RULES import copy
                from . import in_, out

                data = copy.Copy(in_("data.txt"), out("data.txt"))
                name = "not a rule"
                """
            ),
        )
        rules = self.workspace / "DEPS" / "dbt-rules"
        self._write(rules / "MODULE", "")
        self._write(rules / "RULES" / "copy.py", RULES_SOURCE)
        self.runner = ExecutorRecordingRunner()

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)

    def _engine(self, working_dir: Path | None = None) -> BuildEngine:
        return BuildEngine(
            workspace_root=self.workspace,
            working_dir=working_dir or self.workspace,
            command_runner=self.runner,
            console=Console(level="none"),
        )

    def test_lists_buildable_targets_and_flags(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            result = self._engine().build([])

        self.assertEqual(result.available_targets, {"app/src/data"})
        self.assertEqual(result.available_flags, {"mode"})
        self.assertIn("  //app/src/data\n", buffer.getvalue())
        self.assertEqual(self.runner.executor_calls, [])

    def test_builds_single_target_with_flag(self) -> None:
        result = self._engine(self.workspace / "src").build(["data", "mode=release"])

        output_dir = self.workspace / "BUILD" / result.info.config_name / "output"
        self.assertEqual(self.runner.executor_calls, [(["ninja", "app/src/data"], output_dir)])

        text = (output_dir / "build.ninja").read_text().replace(" $\n    ", " ")
        self.assertIn("  description = CP release\n", text)
        self.assertIn(f"build {output_dir}/app/src/data.txt: r1 {self.workspace}/src/data.txt\n", text)
        self.assertIn(f"build app/src/data: phony {output_dir}/app/src/data.txt\n", text)

    def test_invalid_flag_value_fails_in_driver(self) -> None:
        with self.assertRaises(ToolchainError):
            self._engine().build(["//app/src/data", "mode=fast"])
        self.assertEqual(self.runner.executor_calls, [])

    def test_unknown_flag_is_rejected(self) -> None:
        with self.assertRaises(ResolutionError):
            self._engine().build(["//app/src/data", "opt=3"])

    def test_unknown_flag_still_lists_targets_and_flags(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            result = self._engine().build(["bogus=1"])

        self.assertFalse(result.executed)
        self.assertIn("  //app/src/data\n", buffer.getvalue())
        self.assertIn("  mode=\n", buffer.getvalue())

    def test_dependency_named_like_installed_package_is_rejected_before_driver_runs(self) -> None:
        (self.workspace / "DEPS" / "dbt-rules").rename(self.workspace / "DEPS" / "ninja")
        with self.assertRaises(WorkspaceError) as ctx:
            self._engine().build(["//app/src/data"])
        self.assertIn("'ninja'", str(ctx.exception))
        self.assertFalse((self.workspace / "BUILD").exists())


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
