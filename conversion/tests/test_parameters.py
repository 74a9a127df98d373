"""
Unit tests for parameters.py

Tests parameter block splitting and per-parameter extraction.
"""

import unittest

from conversion.models import CommentPosition
from conversion.parameters import extract_parameter, parse_parameters, split_parameter_blocks


class TestSplitParameterBlocks(unittest.TestCase):
    """Test cutting a parameter list into fragments."""

    def test_simple_split(self):
        blocks = split_parameter_blocks("int a, double b")
        self.assertEqual([b.text for b in blocks], ["int a", "double b"])

    def test_nested_template_commas(self):
        blocks = split_parameter_blocks("std::map<int, int> m, int b")
        self.assertEqual([b.text for b in blocks], ["std::map<int, int> m", "int b"])

    def test_commas_in_default_call(self):
        blocks = split_parameter_blocks("Point p = Point(1, 2), int n = 0")
        self.assertEqual(len(blocks), 2)
        self.assertEqual(blocks[0].text, "Point p = Point(1, 2)")

    def test_comma_in_comment_does_not_split(self):
        blocks = split_parameter_blocks("int a /* x, y */, int b")
        self.assertEqual(len(blocks), 2)
        self.assertEqual(blocks[0].text, "int a /* x, y */")

    def test_trailing_line_comment_belongs_to_previous(self):
        """A line comment after the comma documents the parameter before it."""
        blocks = split_parameter_blocks("int a, // first\n    int b")
        self.assertEqual(len(blocks), 2)
        self.assertEqual(blocks[0].text, "int a // first")
        self.assertEqual(blocks[1].text, "int b")
        self.assertTrue(blocks[1].starts_on_new_line)
        self.assertEqual(blocks[1].leading_indent, "    ")

    def test_empty(self):
        self.assertEqual(split_parameter_blocks(""), [])
        self.assertEqual(split_parameter_blocks("   "), [])


class TestExtractParameter(unittest.TestCase):
    """Test component extraction from a single fragment."""

    def test_const_reference_with_leading_comment(self):
        param = extract_parameter("/* IN*/const T& name")
        self.assertEqual(param.type, "T")
        self.assertEqual(param.name, "name")
        self.assertTrue(param.is_const)
        self.assertTrue(param.is_reference)
        self.assertFalse(param.is_pointer)
        self.assertEqual(len(param.comments), 1)
        self.assertEqual(param.comments[0].text, "/* IN*/")
        self.assertEqual(param.comments[0].position, CommentPosition.BEFORE_TYPE)

    def test_pointer(self):
        param = extract_parameter("double* result")
        self.assertEqual(param.type, "double")
        self.assertEqual(param.name, "result")
        self.assertTrue(param.is_pointer)

    def test_comment_between_type_and_name(self):
        param = extract_parameter("int /*c*/ a")
        self.assertEqual(param.comments[0].position, CommentPosition.AFTER_TYPE)

    def test_comment_after_name(self):
        param = extract_parameter("int a /* c */")
        self.assertEqual(param.name, "a")
        self.assertEqual(param.comments[0].position, CommentPosition.AFTER_NAME)

    def test_default_value(self):
        param = extract_parameter("int b = 2")
        self.assertEqual(param.name, "b")
        self.assertEqual(param.default_value, "2")

    def test_default_call_value(self):
        param = extract_parameter("Point p = Point(1, 2)")
        self.assertEqual(param.type, "Point")
        self.assertEqual(param.default_value, "Point(1, 2)")

    def test_array(self):
        param = extract_parameter("int arr[10]")
        self.assertEqual(param.type, "int[]")
        self.assertEqual(param.name, "arr")

    def test_unnamed(self):
        self.assertEqual(extract_parameter("int").name, "")
        param = extract_parameter("unsigned long")
        self.assertEqual(param.name, "")
        self.assertEqual(param.type, "unsigned long")

    def test_unnamed_reference(self):
        param = extract_parameter("const CString&")
        self.assertEqual(param.name, "")
        self.assertEqual(param.type, "CString")

    def test_function_pointer(self):
        param = extract_parameter("void (*cb)(int)")
        self.assertEqual(param.name, "cb")
        self.assertTrue(param.is_pointer)
        self.assertIn("(*cb)", param.type)

    def test_qualified_template_type(self):
        param = extract_parameter("const std::vector<int>& values")
        self.assertEqual(param.name, "values")
        self.assertEqual(param.type, "std::vector<int>")


class TestParseParameters(unittest.TestCase):
    """Test full parameter list parsing."""

    def test_void_list(self):
        self.assertEqual(parse_parameters("void"), [])
        self.assertEqual(parse_parameters(""), [])

    def test_void_pointer_is_kept(self):
        params = parse_parameters("void* data")
        self.assertEqual(len(params), 1)
        self.assertEqual(params[0].name, "data")

    def test_full_list(self):
        params = parse_parameters("int a, /* OUT */ double* result, int b = 2")
        self.assertEqual([p.name for p in params], ["a", "result", "b"])
        self.assertEqual(params[1].comments[0].text, "/* OUT */")
        self.assertEqual(params[2].default_value, "2")


if __name__ == "__main__":
    unittest.main()
