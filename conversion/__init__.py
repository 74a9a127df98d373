"""
C++ to C# structural conversion.

Headers are scanned with an explicit tokenizer, implementation files are
parsed with tree-sitter, and the two are merged by canonical method signature
before C# units are generated.
"""

from conversion.models import (
    ClassEntity,
    CommentPosition,
    DefineEntity,
    Diagnostic,
    HeaderParseError,
    HeaderUnit,
    MemberEntity,
    MethodEntity,
    ParameterEntity,
    PositionedComment,
    SourceUnit,
    StructEntity,
)
from conversion.parameters import parse_parameters, split_parameter_blocks
from conversion.signature import get_method_signature, normalize_parameter_type
from conversion.header_parser import parse_header_file, parse_header_text, parse_header_unit
from conversion.source_parser import parse_source_file, parse_source_text
from conversion.merger import MergeResult, MergedHeader, merge_units
from conversion.type_converter import TypeConverter
from conversion.generator import CsGenerator, generate_unit_outputs
from conversion.converter import (
    ConversionReport,
    ConversionStats,
    convert_directory,
    convert_directory_report,
    convert_files,
    discover_files,
)

__all__ = [
    # Data models
    "ClassEntity",
    "CommentPosition",
    "DefineEntity",
    "Diagnostic",
    "HeaderParseError",
    "HeaderUnit",
    "MemberEntity",
    "MethodEntity",
    "ParameterEntity",
    "PositionedComment",
    "SourceUnit",
    "StructEntity",
    "ConversionReport",
    "ConversionStats",
    # Parsing
    "parse_parameters",
    "split_parameter_blocks",
    "get_method_signature",
    "normalize_parameter_type",
    "parse_header_file",
    "parse_header_text",
    "parse_header_unit",
    "parse_source_file",
    "parse_source_text",
    # Merge and generation
    "MergeResult",
    "MergedHeader",
    "merge_units",
    "TypeConverter",
    "CsGenerator",
    "generate_unit_outputs",
    # High-level orchestration
    "convert_directory",
    "convert_directory_report",
    "convert_files",
    "discover_files",
]
