"""
Unit tests for parser.py

Tests tree-sitter parser creation, byte parsing, error reporting and file reading.
"""

import codecs
import os
import tempfile
import unittest
from pathlib import Path

from conversion.parser import (
    count_error_nodes,
    create_parser,
    first_error_line,
    parse_bytes,
    parse_file,
    read_source_bytes,
)


class TestParseBytes(unittest.TestCase):
    """Test parsing raw bytes of C++ code."""

    def test_create_parser(self):
        parser = create_parser()
        self.assertIsNotNone(parser.language)

    def test_parse_out_of_line_definition(self):
        tree = parse_bytes(b"int CFoo::Bar(int a) const { return a; }")
        self.assertEqual(tree.root_node.type, "translation_unit")
        self.assertFalse(tree.root_node.has_error)
        self.assertEqual(count_error_nodes(tree), 0)
        self.assertIsNone(first_error_line(tree))

    def test_parse_empty(self):
        tree = parse_bytes(b"")
        self.assertEqual(len(tree.root_node.children), 0)

    def test_parse_invalid_type(self):
        """parse_bytes only accepts bytes."""
        with self.assertRaises(TypeError):
            parse_bytes("void f() {}")

    def test_error_nodes_counted(self):
        tree = parse_bytes(b"void broken() { int x = 10;")
        self.assertTrue(tree.root_node.has_error)
        self.assertGreater(count_error_nodes(tree), 0)
        self.assertEqual(first_error_line(tree), 1)

    def test_first_error_line_after_clean_code(self):
        tree = parse_bytes(b"void a()\n{\n}\n\nvoid b() { int x = 10;")
        self.assertGreaterEqual(first_error_line(tree), 5)


class TestParseFile(unittest.TestCase):
    """Test reading and parsing implementation files from disk."""

    def setUp(self):
        self.fixtures_dir = Path(__file__).parent / "fixtures"

    def test_parse_fixture(self):
        tree, source_bytes = parse_file(str(self.fixtures_dir / "CSample.cpp"))
        self.assertGreater(len(source_bytes), 0)
        self.assertFalse(tree.root_node.has_error)

    def test_missing_file(self):
        with self.assertRaises(FileNotFoundError):
            parse_file(str(self.fixtures_dir / "missing.cpp"))

    def test_byte_order_mark_stripped(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = os.path.join(tmpdir, "CBom.cpp")
            Path(path).write_bytes(codecs.BOM_UTF8 + b"void CBom::Run()\n{\n}\n")
            self.assertEqual(read_source_bytes(path), b"void CBom::Run()\n{\n}\n")
            tree, source_bytes = parse_file(path)
            self.assertTrue(source_bytes.startswith(b"void"))
            self.assertEqual(count_error_nodes(tree), 0)


if __name__ == "__main__":
    unittest.main()
