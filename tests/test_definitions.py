from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from dbuild.definitions import parse_definition_file, parse_definition_source
from dbuild.errors import DefinitionError


class DefinitionParserTests(unittest.TestCase):
    def parse(self, source: str):
        return parse_definition_source(textwrap.dedent(source), Path("mod/pkg/BUILD.py"))

    def test_collects_assigned_names_in_order(self) -> None:
        definition = self.parse(
            '''
            """Targets of the demo package."""
            from mod.RULES import cc
            from . import in_, ins, out
            import os

            lib = cc.Library(out=out("libdemo.a"), srcs=ins("a.c", "b.c"))
            tool: cc.Binary = cc.Binary(out=out("tool"), srcs=[in_("main.c")], deps=[lib])
            first = second = cc.Header(in_("demo.h"))
            (left, right) = cc.pair()
            '''
        )
        self.assertEqual(definition.targets, ["lib", "tool", "first", "second", "left", "right"])

    def test_empty_file_declares_nothing(self) -> None:
        self.assertEqual(self.parse("").targets, [])

    def test_function_declaration_is_rejected(self) -> None:
        with self.assertRaises(DefinitionError) as ctx:
            self.parse(
                """
                lib = 1

                def helper():
                    return 2
                """
            )
        self.assertIn("invalid declarations", str(ctx.exception))
        self.assertEqual(ctx.exception.path, Path("mod/pkg/BUILD.py"))

    def test_other_top_level_statements_are_rejected(self) -> None:
        for source in (
            "class Rule:\n    pass\n",
            "print('hello')\n",
            "if True:\n    lib = 1\n",
            "for i in range(3):\n    pass\n",
            "lib = 1\nlib.attr = 2\n",
            "targets = {}\ntargets['a'] = 1\n",
            "lib += 1\n",
            "lib: int\n",
            "first, *rest = [1, 2]\n",
        ):
            with self.subTest(source=source):
                with self.assertRaises(DefinitionError):
                    self.parse(source)

    def test_anonymous_target_is_rejected(self) -> None:
        with self.assertRaises(DefinitionError) as ctx:
            self.parse("_ = object()\n")
        self.assertIn("anonymous", str(ctx.exception))

    def test_anonymous_target_in_tuple_is_rejected(self) -> None:
        with self.assertRaises(DefinitionError):
            self.parse("lib, _ = 1, 2\n")

    def test_duplicate_target_is_rejected(self) -> None:
        with self.assertRaises(DefinitionError) as ctx:
            self.parse("lib = 1\nlib = 2\n")
        self.assertIn("'lib'", str(ctx.exception))

    def test_syntax_error_names_the_file(self) -> None:
        with self.assertRaises(DefinitionError) as ctx:
            self.parse("lib = (\n")
        self.assertIn("mod/pkg/BUILD.py", str(ctx.exception))


class DefinitionFileTests(unittest.TestCase):
    def test_reads_file_from_disk(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            path = Path(temp) / "BUILD.py"
            path.write_text("lib = 1\n")
            self.assertEqual(parse_definition_file(path).targets, ["lib"])

    def test_missing_file_is_a_definition_error(self) -> None:
        with tempfile.TemporaryDirectory() as temp:
            with self.assertRaises(DefinitionError):
                parse_definition_file(Path(temp) / "BUILD.py")


if __name__ == "__main__":  # pragma: no cover
    unittest.main()
