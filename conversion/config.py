"""
Configuration constants for C++ to C# structural conversion.

Defines file extensions, tree-sitter node type strings, diagnostic kinds and
the default type table used by the converter.
"""

from typing import Dict, Set, Tuple

# Header file extensions (parsed with the token scanner)
HEADER_EXTENSIONS: Set[str] = {
    ".h",
    ".hpp",
    ".hxx",
}

# Source file extensions (parsed with tree-sitter)
SOURCE_EXTENSIONS: Set[str] = {
    ".cpp",
    ".cc",
    ".cxx",
}

# Directories never descended into during discovery
SKIP_DIRECTORIES: Set[str] = {
    "build",
    "out",
    "bin",
    "obj",
    "node_modules",
    "third_party",
    "converted",
}

# Output defaults
DEFAULT_NAMESPACE: str = "Converted"
OUTPUT_EXTENSION: str = ".cs"
INDENT: str = "    "
TAB_WIDTH: int = 4

# Access levels
ACCESS_PUBLIC: str = "public"
ACCESS_PROTECTED: str = "protected"
ACCESS_PRIVATE: str = "private"
ACCESS_KEYWORDS: Tuple[str, ...] = (ACCESS_PUBLIC, ACCESS_PROTECTED, ACCESS_PRIVATE)

# Aggregate keywords
AGGREGATE_KEYWORDS: Set[str] = {"class", "struct", "union"}

# Method specifiers consumed before the return type
METHOD_SPECIFIERS: Set[str] = {
    "virtual",
    "static",
    "inline",
    "explicit",
    "constexpr",
    "__forceinline",
}

# Trailing method qualifiers accepted after the parameter list
METHOD_TRAILING_QUALIFIERS: Set[str] = {
    "const",
    "override",
    "final",
    "noexcept",
    "volatile",
}

# Member storage specifiers
MEMBER_SPECIFIERS: Set[str] = {"static", "mutable", "const", "volatile", "constexpr"}

# Statements preserved verbatim inside class bodies
OPAQUE_KEYWORDS: Set[str] = {"enum", "friend", "using", "typedef", "template"}

# Calling-convention and export macros ignored in declarations
IGNORED_DECL_MACROS: Set[str] = {
    "__declspec",
    "__stdcall",
    "__cdecl",
    "__fastcall",
    "WINAPI",
    "CALLBACK",
}

# Tree-sitter node types
COMMENT_NODE: str = "comment"
FUNCTION_DEFINITION: str = "function_definition"
NAMESPACE_NODE: str = "namespace_definition"
DECLARATION_NODE: str = "declaration"
AGGREGATE_SPECIFIERS: Set[str] = {
    "struct_specifier",
    "class_specifier",
    "union_specifier",
}
DECLARATOR_WRAPPERS: Set[str] = {
    "pointer_declarator",
    "reference_declarator",
}
CONTAINER_TYPES: Set[str] = {
    "translation_unit",
    "declaration_list",
}
TRANSPARENT_WRAPPERS: Set[str] = {
    "linkage_specification",
}
PREPROCESSOR_CONTAINERS: Set[str] = {
    "preproc_ifdef",
    "preproc_ifndef",
    "preproc_if",
    "preproc_elif",
    "preproc_else",
}

# Diagnostic kinds
DIAG_UNRECOGNIZED_SYNTAX: str = "unrecognized_syntax"
DIAG_AMBIGUOUS_OVERLOAD: str = "ambiguous_overload"
DIAG_UNMATCHED_DECLARATION: str = "unmatched_declaration"
DIAG_UNMATCHED_DEFINITION: str = "unmatched_definition"
DIAG_ORPHAN_DEFINITION: str = "orphan_definition"
DIAG_STRUCTURAL_MISMATCH: str = "structural_mismatch"
DIAG_IO_FAILURE: str = "io_failure"
DIAG_PARSE_FAILURE: str = "parse_failure"

# Interface naming convention: I followed by an upper-case letter
INTERFACE_NAME_PATTERN: str = r"^I[A-Z]"

# Source -> target type table (case-insensitive keys)
DEFAULT_TYPE_MAP: Dict[str, str] = {
    "int": "int",
    "unsigned int": "uint",
    "unsigned": "uint",
    "short": "short",
    "unsigned short": "ushort",
    "long": "int",
    "unsigned long": "uint",
    "long long": "long",
    "unsigned long long": "ulong",
    "__int64": "long",
    "char": "char",
    "unsigned char": "byte",
    "wchar_t": "char",
    "bool": "bool",
    "float": "float",
    "double": "double",
    "void": "void",
    "size_t": "ulong",
    "std::string": "string",
    "std::wstring": "string",
    "string": "string",
    "std::vector": "List",
    "std::list": "List",
    "std::map": "Dictionary",
    "std::unordered_map": "Dictionary",
    "std::set": "HashSet",
    "std::unordered_set": "HashSet",
}

# Default literal rewrites for default values
LITERAL_REWRITES: Dict[str, str] = {
    "NULL": "null",
    "nullptr": "null",
    "TRUE": "true",
    "FALSE": "false",
}
