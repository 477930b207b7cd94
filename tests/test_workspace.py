from __future__ import annotations

from pathlib import Path
import tempfile
import unittest

from dbuild.errors import WorkspaceError
from dbuild.workspace import (
    Module,
    discover_modules,
    find_workspace_root,
    import_name_for,
    module_root_for_path,
)


class WorkspaceDiscoveryTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name) / "app"
        (self.workspace / "src" / "lib").mkdir(parents=True)
        (self.workspace / "MODULE").write_text("")
        deps = self.workspace / "DEPS"
        for name in ("dbt-rules", "zutil"):
            (deps / name).mkdir(parents=True)
            (deps / name / "MODULE").write_text("")
        (deps / "README").write_text("not a module")

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_module_root_is_nearest_module_file(self) -> None:
        self.assertEqual(module_root_for_path(self.workspace / "src" / "lib"), self.workspace)
        self.assertEqual(module_root_for_path(self.workspace / "DEPS" / "zutil"), self.workspace / "DEPS" / "zutil")

    def test_workspace_root_from_dependency_is_the_enclosing_workspace(self) -> None:
        self.assertEqual(find_workspace_root(self.workspace / "src"), self.workspace)
        self.assertEqual(find_workspace_root(self.workspace / "DEPS" / "zutil"), self.workspace)

    def test_discover_modules_includes_root_and_dependencies(self) -> None:
        modules = discover_modules(self.workspace)
        self.assertEqual(list(modules), ["app", "dbt-rules", "zutil"])
        self.assertEqual(modules["app"], Module("app", self.workspace))
        self.assertEqual(modules["zutil"].path, self.workspace / "DEPS" / "zutil")

    def test_missing_workspace_is_fatal(self) -> None:
        with self.assertRaises(WorkspaceError):
            discover_modules(Path(self.temp_dir.name) / "missing")

    def test_conflicting_import_names_are_rejected(self) -> None:
        (self.workspace / "DEPS" / "dbt_rules").mkdir()
        with self.assertRaises(WorkspaceError):
            discover_modules(self.workspace)

    def test_module_shadowing_installed_package_is_rejected(self) -> None:
        for name in ("ninja", "tomllib", "dbuild"):
            with self.subTest(name=name):
                dep = self.workspace / "DEPS" / name
                dep.mkdir()
                (dep / "MODULE").write_text("")
                with self.assertRaises(WorkspaceError) as ctx:
                    discover_modules(self.workspace)
                self.assertIn(f"'{name}'", str(ctx.exception))
                (dep / "MODULE").unlink()
                dep.rmdir()

    def test_import_names_are_identifiers(self) -> None:
        self.assertEqual(import_name_for("dbt-rules"), "dbt_rules")
        self.assertEqual(import_name_for("3rdparty"), "_3rdparty")
        self.assertEqual(import_name_for("app"), "app")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
