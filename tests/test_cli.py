from __future__ import annotations

from contextlib import redirect_stderr, redirect_stdout
from pathlib import Path
import io
import tempfile
import unittest
from unittest.mock import patch

from dbuild import cli
from dbuild.errors import ResolutionError


class CliTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name) / "app"
        (self.workspace / "src").mkdir(parents=True)
        (self.workspace / "MODULE").write_text("")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def _main(self, argv, working_dir: Path | None = None):
        stdout = io.StringIO()
        stderr = io.StringIO()
        with patch.object(cli.Path, "cwd", return_value=working_dir or self.workspace):
            with redirect_stdout(stdout), redirect_stderr(stderr):
                code = cli.main(argv)
        return code, stdout.getvalue(), stderr.getvalue()

    def test_build_passes_arguments_to_engine(self) -> None:
        with patch("dbuild.cli.BuildEngine") as engine_cls:
            code, _, _ = self._main(["build", "lib", "mode=debug"], self.workspace / "src")

        self.assertEqual(code, 0)
        kwargs = engine_cls.call_args.kwargs
        self.assertEqual(kwargs["workspace_root"], self.workspace)
        self.assertEqual(kwargs["working_dir"], self.workspace / "src")
        self.assertFalse(kwargs["verbose"])
        engine_cls.return_value.build.assert_called_once_with(["lib", "mode=debug"])

    def test_complete_prints_one_suggestion_per_line(self) -> None:
        with patch("dbuild.cli.BuildEngine") as engine_cls:
            engine_cls.return_value.complete.return_value = ["mode=", "lib", "src/"]
            code, stdout, _ = self._main(["complete", "", "mode=debug"])

        self.assertEqual(code, 0)
        self.assertEqual(stdout, "mode=\nlib\nsrc/\n")
        engine_cls.return_value.complete.assert_called_once_with("", ["mode=debug"])

    def test_build_errors_are_reported(self) -> None:
        with patch("dbuild.cli.BuildEngine") as engine_cls:
            engine_cls.return_value.build.side_effect = ResolutionError("Target 'app/missing' does not exist.")
            code, _, stderr = self._main(["build", "missing"])

        self.assertEqual(code, 1)
        self.assertIn("[ERROR] Target 'app/missing' does not exist.", stderr)

    def test_missing_workspace_is_reported(self) -> None:
        outside = Path(self.temp_dir.name) / "outside"
        outside.mkdir()
        code, _, stderr = self._main(["build"], outside)
        self.assertEqual(code, 1)
        self.assertIn("[ERROR]", stderr)

    def test_log_level_from_settings_file(self) -> None:
        (self.workspace / "dbuild.toml").write_text('[build]\nlog_level = "debug"\n')
        with patch("dbuild.cli.BuildEngine") as engine_cls:
            code, _, _ = self._main(["build"])

        self.assertEqual(code, 0)
        self.assertTrue(engine_cls.call_args.kwargs["console"].verbose)

    def test_command_line_log_level_wins(self) -> None:
        (self.workspace / "dbuild.toml").write_text('[build]\nlog_level = "debug"\n')
        with patch("dbuild.cli.BuildEngine") as engine_cls:
            code, _, _ = self._main(["--log", "none", "build"])

        self.assertEqual(code, 0)
        self.assertEqual(engine_cls.call_args.kwargs["console"].level_name, "none")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
