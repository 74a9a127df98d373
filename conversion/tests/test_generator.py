"""
Unit tests for generator.py

Renders merged fixture headers and checks the produced C# text.
"""

import unittest
from pathlib import Path

from conversion.generator import CsGenerator, define_declaration, generate_unit_outputs, has_source_regions
from conversion.header_parser import parse_header_text, parse_header_unit
from conversion.merger import merge_units
from conversion.models import DefineEntity, MethodEntity
from conversion.parameters import extract_parameter
from conversion.source_parser import parse_source_file, parse_source_text
from conversion.type_converter import TypeConverter

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def _render(header_path, source_paths=(), namespace="Legacy", type_converter=None):
    headers = [parse_header_unit(str(header_path))]
    sources = [parse_source_file(str(p)) for p in source_paths]
    merged = merge_units(headers, sources)
    return generate_unit_outputs(merged.headers[0], namespace, type_converter)


def _render_text(header_text, sources=(), namespace="Legacy"):
    merged = merge_units(
        [parse_header_text(header_text, "/src/Test.h")],
        [parse_source_text(text, path) for path, text in sources],
    )
    return generate_unit_outputs(merged.headers[0], namespace)


class TestSampleClass(unittest.TestCase):
    """Test the fully merged CSample fixture."""

    @classmethod
    def setUpClass(cls):
        cls.outputs = _render(FIXTURES_DIR / "CSample.h", [FIXTURES_DIR / "CSample.cpp"])
        cls.text = cls.outputs["CSample"]
        cls.source = cls.outputs["CSample.cpp"]

    def test_units(self):
        """Inline and out-of-line bodies are written to separate units."""
        self.assertEqual(list(self.outputs), ["CSample", "CSample.cpp"])

    def test_file_header(self):
        self.assertTrue(
            self.text.startswith(
                "// CSample.h : sample class with inline and out-of-line methods\n\nnamespace Legacy;\n"
            )
        )
        self.assertTrue(self.text.endswith("}\n"))
        self.assertTrue(self.source.startswith("namespace Legacy;\n\ninternal partial class CSample : CBase\n{\n"))

    def test_class_declaration(self):
        self.assertIn("internal partial class CSample : CBase\n{\n", self.text)

    def test_unit_struct_before_class(self):
        struct = "internal class POINT_T\n{\n    internal int x; // horizontal\n    internal int y;\n}\n"
        self.assertIn(struct, self.text)
        self.assertLess(self.text.index("POINT_T"), self.text.index("class CSample"))
        self.assertNotIn("POINT_T", self.source)

    def test_defines(self):
        self.assertIn("    internal const int SAMPLE_MAX = 10;\n", self.text)
        self.assertIn('    internal const string SAMPLE_NAME = "sample";\n', self.text)
        self.assertNotIn("SAMPLE_MAX", self.source)

    def test_constructor_and_destructor(self):
        self.assertIn("    public CSample()\n    {\n        m_count = 0;\n    }\n", self.source)
        self.assertIn("    ~CSample()\n    {\n    }\n", self.source)
        self.assertNotIn("CSample()", self.text)

    def test_inline_method_with_comment(self):
        self.assertIn(
            "    // Returns the count\n    public int GetCount()\n    {\n        return m_count;\n    }\n",
            self.text,
        )
        self.assertNotIn("GetCount", self.source)

    def test_commented_parameters_one_per_line(self):
        self.assertIn(
            "    // Computes a number\n"
            "    public bool Compute(\n"
            "        int value,\n"
            "        /* OUT */ out double result)\n",
            self.source,
        )

    def test_overload_and_type_mapping(self):
        self.assertIn("    public void SetName(string name)\n", self.source)
        self.assertIn("    public bool Compute(string text)\n    {\n        return !text.empty();\n    }\n", self.source)

    def test_local_struct_stays_in_body(self):
        self.assertIn("        struct Local { int a; };\n        Local l;\n", self.source)
        self.assertNotIn("class Local\n", self.source)

    def test_header_region_stays_with_members(self):
        self.assertIn("    //#region Helpers\n", self.text)
        self.assertIn("    //#endregion\n", self.text)
        self.assertNotIn("//#region", self.source)
        self.assertIn(
            "    public static int Helper(int a, int b = 2)\n"
            "    {\n"
            "        return a + b;\n"
            "    }\n",
            self.source,
        )

    def test_members(self):
        self.assertIn("    protected int m_count; // number of items\n", self.text)
        self.assertIn("    protected string m_name;\n", self.text)
        self.assertIn("    protected static int s_instances = 0;\n", self.text)
        self.assertIn("    protected int[] m_values = new int[4];\n", self.text)
        self.assertNotIn("m_values;", self.source)

    def test_free_function_in_source_unit(self):
        self.assertIn("    private static int Clamp(int v)\n", self.source)
        self.assertNotIn("Clamp(int v)", self.text)

    def test_deterministic(self):
        again = _render(FIXTURES_DIR / "CSample.h", [FIXTURES_DIR / "CSample.cpp"])
        self.assertEqual(again, self.outputs)


class TestPartialUnits(unittest.TestCase):
    """Test a class whose methods are defined inline and across two source files."""

    @classmethod
    def setUpClass(cls):
        split = FIXTURES_DIR / "split"
        cls.outputs = _render(split / "CSplit.h", [split / "CSplit.cpp", split / "CSplitExtra.cpp"])

    def test_units(self):
        self.assertEqual(list(self.outputs), ["CSplit", "CSplit.cpp", "CSplitExtra"])

    def test_main_unit(self):
        main = self.outputs["CSplit"]
        self.assertIn("internal partial class CSplit\n", main)
        self.assertIn("    public int Inline()\n", main)
        self.assertIn("    private int m_x;\n", main)
        self.assertNotIn("First", main)
        self.assertNotIn("Second", main)

    def test_same_stem_source_unit(self):
        self.assertEqual(
            self.outputs["CSplit.cpp"],
            "namespace Legacy;\n"
            "\n"
            "internal partial class CSplit\n"
            "{\n"
            "    public void First()\n"
            "    {\n"
            "        m_x = 1;\n"
            "    }\n"
            "}\n",
        )

    def test_extra_unit(self):
        self.assertEqual(
            self.outputs["CSplitExtra"],
            "namespace Legacy;\n"
            "\n"
            "internal partial class CSplit\n"
            "{\n"
            "    public void Second()\n"
            "    {\n"
            "        m_x = 2;\n"
            "    }\n"
            "}\n",
        )

    def test_source_files_only(self):
        outputs = _render_text(
            "class CFoo\n{\npublic:\n    void A();\n    void B();\nprivate:\n    int m_a;\n};\n",
            [("/src/Alpha.cpp", "void CFoo::A()\n{\n}\n"), ("/src/Beta.cpp", "void CFoo::B()\n{\n}\n")],
        )
        self.assertEqual(list(outputs), ["Test", "Alpha", "Beta"])
        self.assertIn("    private int m_a;\n", outputs["Test"])
        self.assertNotIn("void A()", outputs["Test"])
        self.assertIn("    public void A()\n", outputs["Alpha"])
        self.assertIn("    public void B()\n", outputs["Beta"])

    def test_all_inline_not_partial(self):
        outputs = _render(FIXTURES_DIR / "CInline.h")
        self.assertIn("internal class CInline\n", outputs["CInline"])
        self.assertNotIn("partial", outputs["CInline"])


class TestInterfaces(unittest.TestCase):
    """Test pure-virtual classes rendered as interfaces."""

    def test_interface(self):
        outputs = _render(FIXTURES_DIR / "ISample.h")
        self.assertEqual(
            outputs["ISample"],
            "namespace Legacy;\n"
            "\n"
            "// Sample interface\n"
            "internal interface ISample\n"
            "{\n"
            "    void Run();\n"
            "    int Count();\n"
            "}\n",
        )

    def test_static_methods_go_to_extensions(self):
        outputs = _render_text(
            "class IRunner\n{\npublic:\n    virtual void Run() = 0;\n    static IRunner* Create();\n};\n",
            [("/src/Runner.cpp", "IRunner* IRunner::Create()\n{\n    return 0;\n}\n")],
        )
        text = outputs["Test"]
        self.assertIn("internal interface IRunner\n{\n    void Run();\n}\n", text)
        self.assertIn("internal static class IRunnerExtensions\n{\n    public static IRunner Create()\n", text)

    def test_exported_interface_is_public(self):
        outputs = _render_text("class APP_API IThing\n{\npublic:\n    virtual void Go() = 0;\n};\n")
        self.assertIn("public interface IThing\n", outputs["Test"])


class TestClassShapes(unittest.TestCase):
    """Test class modifiers, structs and preprocessor filtering."""

    def test_struct_with_directives(self):
        text = _render(FIXTURES_DIR / "Config.h")["Config"]
        self.assertIn("internal class Config\n{\n    internal int limit;\n    internal int debugLevel;\n}\n", text)
        self.assertNotIn("CONFIG_LIMIT", text)
        self.assertNotIn("#", text)
        self.assertNotIn("struct", text)

    def test_typedef_struct_of_constants(self):
        text = _render_text(
            "typedef struct\n{\n    agrint lCalcDebTax;\n    agrint lCalcCredTax;\n} GLOBALCONSTANTS;\n"
        )["Test"]
        self.assertEqual(
            text,
            "namespace Legacy;\n"
            "\n"
            "internal class GLOBALCONSTANTS\n"
            "{\n"
            "    internal agrint lCalcDebTax;\n"
            "    internal agrint lCalcCredTax;\n"
            "}\n",
        )

    def test_struct_with_methods_keeps_public(self):
        text = _render_text("struct SCounter\n{\n    int value;\n    int Next() { return ++value; }\n};\n")["Test"]
        self.assertIn("internal class SCounter\n", text)
        self.assertIn("    public int value;\n", text)
        self.assertIn("    public int Next()\n", text)

    def test_file_scope_fragments_in_header_unit(self):
        text = _render_text(
            "enum Color { eRed, eGreen };\n"
            "class CFoo\n{\n    int m_x;\n};\n"
            "inline int Twice(int v) { return v * 2; }\n"
        )["Test"]
        self.assertIn("namespace Legacy;\n\nenum Color { eRed, eGreen };\n\ninternal class CFoo\n", text)
        self.assertTrue(text.endswith("}\n\ninline int Twice(int v) { return v * 2; }\n"))

    def test_fragment_only_header(self):
        text = _render_text("enum Mode { mOn, mOff };\n")["Test"]
        self.assertEqual(text, "namespace Legacy;\n\nenum Mode { mOn, mOff };\n")

    def test_static_class(self):
        text = _render_text("class CUtil\n{\npublic:\n    static int Twice(int v) { return v * 2; }\n    static int s_calls;\n};\n")["Test"]
        self.assertIn("internal static class CUtil\n", text)

    def test_abstract_class(self):
        text = _render_text("class CShape\n{\npublic:\n    virtual double Area() = 0;\nprotected:\n    int m_id;\n};\n")["Test"]
        self.assertIn("internal abstract class CShape\n", text)
        self.assertIn("    public abstract double Area();\n", text)

    def test_unmatched_declaration_rendered_bodyless(self):
        text = _render_text("class CFoo\n{\npublic:\n    virtual void Run(int& count);\n};\n")["Test"]
        self.assertIn("    public virtual void Run(ref int count);\n", text)

    def test_const_members(self):
        text = _render_text(
            "class CFoo\n{\n    static const int MAX = 5;\n    const int m_id;\n    static const char* NAMES[];\n};\n"
        )["Test"]
        self.assertIn("    private const int MAX = 5;\n", text)
        self.assertIn("    private readonly int m_id;\n", text)
        self.assertIn("    private static readonly char[] NAMES;\n", text)

    def test_opaque_fragment_verbatim(self):
        text = _render_text("class CFoo\n{\n    enum Mode { On, Off };\n    int m_mode;\n};\n")["Test"]
        self.assertIn("    enum Mode { On, Off };\n    private int m_mode;\n", text)

    def test_source_regions_balanced(self):
        text = _render_text(
            "class CFoo\n{\npublic:\n    void A();\n    void B();\n};\n",
            [("/src/Test.cpp", "#pragma region Core\nvoid CFoo::A()\n{\n}\nvoid CFoo::B()\n{\n}\n#pragma endregion\n")],
        )["Test"]
        self.assertIn("    #region Core\n", text)
        self.assertIn("    #endregion\n", text)
        self.assertNotIn("//#region", text)

    def test_namespace_and_custom_types(self):
        outputs = _render(
            FIXTURES_DIR / "CSample.h",
            [FIXTURES_DIR / "CSample.cpp"],
            namespace="Legacy.Core",
            type_converter=TypeConverter({"std::string": "String"}),
        )
        self.assertIn("namespace Legacy.Core;\n", outputs["CSample"])
        self.assertIn("    protected String m_name;\n", outputs["CSample"])


class TestHelpers(unittest.TestCase):
    """Test module-level rendering helpers."""

    def test_define_declaration(self):
        self.assertEqual(define_declaration(DefineEntity("X", "10", origin="a.h")), "internal const int X = 10;")
        self.assertEqual(define_declaration(DefineEntity("X", "0x1FL", origin="a.h")), "internal const int X = 0x1F;")
        self.assertEqual(define_declaration(DefineEntity("X", "2.5", origin="a.cpp")), "private const double X = 2.5;")
        self.assertEqual(define_declaration(DefineEntity("X", '"s"', origin="a.cpp")), 'private const string X = "s";')
        self.assertEqual(define_declaration(DefineEntity("X", "(A | B)", origin="a.h")), "// #define X (A | B)")
        self.assertEqual(define_declaration(DefineEntity("X", "", origin="a.h")), "// #define X")

    def test_has_source_regions(self):
        opened = MethodEntity(name="a", region_start="R")
        closed = MethodEntity(name="b", region_end="")
        self.assertTrue(has_source_regions([opened, closed]))
        self.assertFalse(has_source_regions([opened]))
        self.assertFalse(has_source_regions([closed, opened]))

    def test_render_parameter(self):
        generator = CsGenerator()
        self.assertEqual(generator.render_parameter(extract_parameter("int* count = NULL")), "out int count")
        self.assertEqual(generator.render_parameter(extract_parameter("const char* name = NULL")), "char name = null")
        self.assertEqual(generator.render_parameter(extract_parameter("void (*cb)(int)")), "void (*cb)(int)")


if __name__ == "__main__":
    unittest.main()
