"""
Integration tests for converter.py

Tests discovery, the parallel parse, merge and write pipeline, error
isolation and output directory handling.
"""

import os
import shutil
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from conversion.config import DIAG_PARSE_FAILURE, DIAG_UNMATCHED_DECLARATION
from conversion.converter import (
    ConversionStats,
    convert_directory,
    convert_directory_report,
    convert_files,
    discover_files,
)
from conversion.models import HeaderParseError
from core.conversion_config import OUTPUT_DIR_ENV_VAR, ConversionConfig

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _read_tree(root):
    """Relative path -> text for every file under ``root``."""
    result = {}
    for directory, _, files in os.walk(root):
        for filename in files:
            path = os.path.join(directory, filename)
            with open(path, "r", encoding="utf-8") as f:
                result[os.path.relpath(path, root)] = f.read()
    return result


class TestConversionStats(unittest.TestCase):
    """Test ConversionStats class."""

    def test_creation(self):
        stats = ConversionStats()
        self.assertEqual(stats.files_processed, 0)
        self.assertEqual(stats.files_failed, 0)
        self.assertEqual(stats.classes_converted, 0)
        self.assertEqual(stats.files_written, 0)

    def test_to_dict_and_str(self):
        stats = ConversionStats()
        stats.files_processed = 3
        stats.files_written = 2
        self.assertEqual(stats.to_dict()["files_written"], 2)
        self.assertIn("processed=3", str(stats))


class TestDiscoverFiles(unittest.TestCase):
    """Test header and source discovery."""

    def test_discover(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            for relative in ("a.h", "b.cpp", "notes.txt", "sub/d.hpp", "sub/e.cc",
                             ".git/x.h", "build/y.h", "converted/z.h"):
                path = os.path.join(tmpdir, relative)
                os.makedirs(os.path.dirname(path), exist_ok=True)
                Path(path).write_text("", encoding="utf-8")

            headers, sources = discover_files(tmpdir)
            root = os.path.abspath(tmpdir)
            self.assertEqual(headers, [os.path.join(root, "a.h"), os.path.join(root, "sub", "d.hpp")])
            self.assertEqual(sources, [os.path.join(root, "b.cpp"), os.path.join(root, "sub", "e.cc")])

    def test_empty_directory(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            self.assertEqual(discover_files(tmpdir), ([], []))


class TestConvertDirectory(unittest.TestCase):
    """Test whole-directory conversion of the fixture project."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.input_dir = os.path.join(self._tmp.name, "src")
        os.makedirs(os.path.join(self.input_dir, "split"))
        for name in ("CSample.h", "CSample.cpp", "ISample.h", "Config.h"):
            shutil.copy(FIXTURES_DIR / name, os.path.join(self.input_dir, name))
        for name in ("CSplit.h", "CSplit.cpp", "CSplitExtra.cpp"):
            shutil.copy(FIXTURES_DIR / "split" / name, os.path.join(self.input_dir, "split", name))
        self.output_dir = os.path.join(self._tmp.name, "out")

    def test_outputs_mirror_input_layout(self):
        report = convert_directory_report(self.input_dir, self.output_dir)
        self.assertEqual(
            sorted(_read_tree(self.output_dir)),
            sorted([
                "CSample.cs",
                "CSample.cpp.cs",
                "Config.cs",
                "ISample.cs",
                os.path.join("split", "CSplit.cs"),
                os.path.join("split", "CSplit.cpp.cs"),
                os.path.join("split", "CSplitExtra.cs"),
            ]),
        )
        self.assertEqual(report.output_path, os.path.abspath(self.output_dir))
        self.assertEqual(len(report.generated_files), 7)

    def test_stats(self):
        report = convert_directory_report(self.input_dir, self.output_dir)
        stats = report.stats
        self.assertEqual(stats.files_processed, 7)
        self.assertEqual(stats.files_failed, 0)
        self.assertEqual(stats.classes_converted, 4)
        self.assertEqual(stats.files_written, 7)
        self.assertEqual(stats.parse_errors, 0)
        self.assertEqual(stats.diagnostics, len(report.diagnostics))
        self.assertFalse(report.all_failed)

    def test_generated_text(self):
        convert_directory(self.input_dir, self.output_dir)
        tree = _read_tree(self.output_dir)
        self.assertIn("internal partial class CSample : CBase", tree["CSample.cs"])
        self.assertIn("namespace Converted;", tree["CSample.cs"])
        self.assertIn("public void Second()", tree[os.path.join("split", "CSplitExtra.cs")])
        self.assertIn("public void First()", tree[os.path.join("split", "CSplit.cpp.cs")])
        self.assertIn("public void SetName(string name)", tree["CSample.cpp.cs"])

    def test_idempotent(self):
        """Repeated runs over the same input write byte-identical files."""
        second_output = os.path.join(self._tmp.name, "out2")
        convert_directory(self.input_dir, self.output_dir)
        convert_directory(self.input_dir, second_output, ConversionConfig(max_workers=1))
        self.assertEqual(_read_tree(self.output_dir), _read_tree(second_output))

    def test_config_namespace_and_types(self):
        config = ConversionConfig(namespace="Legacy", type_mappings={"std::string": "String"})
        convert_directory(self.input_dir, self.output_dir, config)
        text = _read_tree(self.output_dir)["CSample.cs"]
        self.assertIn("namespace Legacy;", text)
        self.assertIn("protected String m_name;", text)

    def test_default_output_dir(self):
        with mock.patch.dict(os.environ, {OUTPUT_DIR_ENV_VAR: ""}):
            output = convert_directory(self.input_dir)
            self.assertEqual(output, os.path.join(os.path.abspath(self.input_dir), "converted"))
            self.assertTrue(os.path.isfile(os.path.join(output, "CSample.cs")))
            # The output directory is skipped when converting again
            report = convert_directory_report(self.input_dir)
            self.assertEqual(report.stats.files_processed, 7)

    def test_env_var_output_dir(self):
        target = os.path.join(self._tmp.name, "from_env")
        with mock.patch.dict(os.environ, {OUTPUT_DIR_ENV_VAR: target}):
            self.assertEqual(convert_directory(self.input_dir), os.path.abspath(target))
        self.assertTrue(os.path.isfile(os.path.join(target, "ISample.cs")))

    def test_missing_input(self):
        with self.assertRaises(FileNotFoundError):
            convert_directory(os.path.join(self._tmp.name, "missing"), self.output_dir)


class TestErrorIsolation(unittest.TestCase):
    """Test that one failing file does not stop the run."""

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)
        self.input_dir = self._tmp.name
        shutil.copy(FIXTURES_DIR / "CInline.h", os.path.join(self.input_dir, "CInline.h"))
        shutil.copy(FIXTURES_DIR / "broken" / "CBroken.h", os.path.join(self.input_dir, "CBroken.h"))
        self.output_dir = os.path.join(self.input_dir, "converted")

    def test_continue_on_error(self):
        report = convert_directory_report(self.input_dir, self.output_dir)
        self.assertEqual(report.stats.files_failed, 1)
        self.assertEqual(report.stats.files_processed, 1)
        self.assertEqual(report.stats.files_written, 1)
        failures = [d for d in report.diagnostics if d.kind == DIAG_PARSE_FAILURE]
        self.assertEqual(len(failures), 1)
        self.assertTrue(failures[0].file_path.endswith("CBroken.h"))
        self.assertTrue(os.path.isfile(os.path.join(self.output_dir, "CInline.cs")))

    def test_fail_fast(self):
        with self.assertRaises(HeaderParseError):
            convert_directory_report(self.input_dir, self.output_dir, ConversionConfig(continue_on_error=False))

    def test_all_failed(self):
        os.remove(os.path.join(self.input_dir, "CInline.h"))
        report = convert_directory_report(self.input_dir, self.output_dir)
        self.assertTrue(report.all_failed)
        self.assertEqual(report.generated_files, [])

    def test_missing_file_reported(self):
        missing = os.path.join(self.input_dir, "Gone.h")
        report = convert_files([missing], [], self.output_dir)
        self.assertEqual(report.stats.files_failed, 1)
        self.assertEqual(report.diagnostics[0].kind, "io_failure")


class TestConvertFiles(unittest.TestCase):
    """Test converting an explicit file list."""

    def test_header_without_source(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            header = os.path.join(tmpdir, "CFoo.h")
            Path(header).write_text("class CFoo\n{\npublic:\n    void Run();\n};\n", encoding="utf-8")
            report = convert_files([header], [], os.path.join(tmpdir, "out"))
            self.assertEqual([d.kind for d in report.diagnostics], [DIAG_UNMATCHED_DECLARATION])
            text = Path(report.generated_files[0]).read_text(encoding="utf-8")
            self.assertIn("    public void Run();\n", text)

    def test_header_without_classes_skipped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            header = os.path.join(tmpdir, "Consts.h")
            Path(header).write_text("#define ONLY_A_DEFINE 1\n", encoding="utf-8")
            report = convert_files([header], [], os.path.join(tmpdir, "out"))
            self.assertEqual(report.stats.files_processed, 1)
            self.assertEqual(report.generated_files, [])

    def test_header_with_only_file_scope_code_written(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            header = os.path.join(tmpdir, "Colors.h")
            Path(header).write_text("enum Color { eRed, eGreen };\n", encoding="utf-8")
            report = convert_files([header], [], os.path.join(tmpdir, "out"))
            self.assertEqual(len(report.generated_files), 1)
            text = Path(report.generated_files[0]).read_text(encoding="utf-8")
            self.assertIn("enum Color { eRed, eGreen };\n", text)

    def test_output_name_collision(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            files = {
                "Bar.h": "class CBar\n{\n    int m_x;\n};\n",
                "Foo.h": "class CFoo\n{\npublic:\n    void A();\n    void B();\n};\n",
                "Foo.cpp": "void CFoo::A()\n{\n}\n",
                "Bar.cpp": "void CFoo::B()\n{\n}\n",
            }
            for name, text in files.items():
                Path(tmpdir, name).write_text(text, encoding="utf-8")
            output = os.path.join(tmpdir, "out")
            with self.assertLogs("conversion.converter", level="WARNING"):
                convert_files(
                    [os.path.join(tmpdir, "Bar.h"), os.path.join(tmpdir, "Foo.h")],
                    [os.path.join(tmpdir, "Foo.cpp"), os.path.join(tmpdir, "Bar.cpp")],
                    output,
                )
            self.assertEqual(sorted(os.listdir(output)), ["Bar.cs", "Bar_Foo.cs", "Foo.cs"])
            self.assertIn("class CBar", Path(output, "Bar.cs").read_text(encoding="utf-8"))
            self.assertIn("public void B()", Path(output, "Bar_Foo.cs").read_text(encoding="utf-8"))


if __name__ == "__main__":
    unittest.main()
