"""
Unit tests for type_converter.py
"""

import unittest

from conversion.type_converter import TypeConverter, convert_string_literals, split_template_arguments


class TestConvertType(unittest.TestCase):
    """Test C++ to C# type lookup."""

    def setUp(self):
        self.converter = TypeConverter()

    def test_builtin(self):
        self.assertEqual(self.converter.convert_type("int"), "int")
        self.assertEqual(self.converter.convert_type("unsigned int"), "uint")
        self.assertEqual(self.converter.convert_type("unsigned char"), "byte")

    def test_qualifiers_stripped(self):
        self.assertEqual(self.converter.convert_type("const std::string&"), "string")
        self.assertEqual(self.converter.convert_type("double*"), "double")

    def test_template_recursive(self):
        self.assertEqual(self.converter.convert_type("const std::vector<std::string>&"), "List<string>")

    def test_template_two_arguments(self):
        self.assertEqual(
            self.converter.convert_type("std::map<int, std::string>"),
            "Dictionary<int, string>",
        )

    def test_array(self):
        self.assertEqual(self.converter.convert_type("unsigned int[]"), "uint[]")

    def test_unknown_is_identity(self):
        self.assertEqual(self.converter.convert_type("CString"), "CString")
        self.assertEqual(self.converter.convert_type("MyNs::Thing"), "MyNs::Thing")

    def test_empty_is_void(self):
        self.assertEqual(self.converter.convert_type(""), "void")

    def test_custom_mapping(self):
        converter = TypeConverter({"CString": "string"})
        self.assertEqual(converter.convert_type("const CString&"), "string")
        self.assertEqual(self.converter.convert_type("CString"), "CString")

    def test_add_custom_mapping_case_insensitive(self):
        self.converter.add_custom_type_mapping("DWORD", "uint")
        self.assertEqual(self.converter.convert_type("dword"), "uint")


class TestConvertDefaultValue(unittest.TestCase):
    """Test default value and initializer rewriting."""

    def setUp(self):
        self.converter = TypeConverter()

    def test_literals(self):
        self.assertEqual(self.converter.convert_default_value("NULL"), "null")
        self.assertEqual(self.converter.convert_default_value("nullptr"), "null")
        self.assertEqual(self.converter.convert_default_value("TRUE"), "true")

    def test_numeric_suffix_preserved(self):
        self.assertEqual(self.converter.convert_default_value("1.5f"), "1.5f")
        self.assertEqual(self.converter.convert_default_value("10UL"), "10UL")

    def test_tchar_string(self):
        self.assertEqual(self.converter.convert_default_value('_T("abc")'), '"abc"')

    def test_string_contents_untouched(self):
        self.assertEqual(self.converter.convert_default_value('"NULL"'), '"NULL"')

    def test_expression(self):
        self.assertEqual(self.converter.convert_default_value("FALSE || x"), "false || x")

    def test_none(self):
        self.assertEqual(self.converter.convert_default_value(None), "")


class TestHelpers(unittest.TestCase):
    """Test module-level helpers."""

    def test_convert_string_literals(self):
        self.assertEqual(convert_string_literals("_T(\"a\") + _T('b')"), "\"a\" + 'b'")

    def test_split_template_arguments(self):
        self.assertEqual(split_template_arguments("A, B<C, D>"), ["A", "B<C, D>"])


if __name__ == "__main__":
    unittest.main()
