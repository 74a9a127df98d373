"""
C++ to C# type name lookup.

A pure lookup service consulted by the generator. Unknown names pass through
unchanged: project type aliases have no universal translation and must be
preserved verbatim.
"""

import logging
import re
from typing import Dict, List, Mapping, Optional

from conversion.config import DEFAULT_TYPE_MAP, LITERAL_REWRITES

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")
_QUALIFIER_RE = re.compile(r"\b(?:const|volatile|struct|class|enum|typename)\b")
_TCHAR_LITERAL_RE = re.compile(r'\b_T\s*\(\s*("(?:[^"\\]|\\.)*")\s*\)')
_TCHAR_CHAR_RE = re.compile(r"\b_T\s*\(\s*('(?:[^'\\]|\\.)*')\s*\)")
_NUMBER_RE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+|\d+)(?:[eE][-+]?\d+)?[fFdDlLuU]*$")
_WORD_OR_STRING_RE = re.compile(r"""('(?:[^'\\]|\\.)*'|"(?:[^"\\]|\\.)*")|\b[A-Za-z_]\w*\b""")


def split_template_arguments(text: str) -> List[str]:
    """Split ``A, B<C, D>`` at top-level commas."""
    arguments = []
    depth = 0
    start = 0
    for index, ch in enumerate(text):
        if ch in "<([":
            depth += 1
        elif ch in ">)]":
            depth -= 1
        elif ch == "," and depth == 0:
            arguments.append(text[start:index].strip())
            start = index + 1
    tail = text[start:].strip()
    if tail:
        arguments.append(tail)
    return arguments


class TypeConverter:
    """Maps C++ type names to C# type names.

    Lookup order: exact (case-insensitive) match on the normalized name,
    then the template head token with arguments converted recursively, then
    identity.

    Example:
        >>> TypeConverter().convert_type("const std::vector<std::string>&")
        'List<string>'
        >>> TypeConverter().convert_type("CString")
        'CString'
    """

    def __init__(self, mappings: Optional[Mapping[str, str]] = None):
        self._type_map: Dict[str, str] = {k.lower(): v for k, v in DEFAULT_TYPE_MAP.items()}
        for source, target in (mappings or {}).items():
            self.add_custom_type_mapping(source, target)

    def add_custom_type_mapping(self, cpp_type: str, cs_type: str) -> None:
        self._type_map[self.normalize(cpp_type).lower()] = cs_type.strip()

    @staticmethod
    def normalize(cpp_type: str) -> str:
        """Strip qualifiers, pointer and reference marks; collapse whitespace."""
        text = _QUALIFIER_RE.sub(" ", cpp_type or "")
        text = text.replace("*", " ").replace("&", " ")
        text = _WHITESPACE_RE.sub(" ", text).strip()
        text = re.sub(r"\s*([<>,:])\s*", r"\1", text)
        return text.replace(",", ", ")

    def convert_type(self, cpp_type: str) -> str:
        normalized = self.normalize(cpp_type)
        if not normalized:
            return "void"

        mapped = self._type_map.get(normalized.lower())
        if mapped is not None:
            return mapped

        if normalized.endswith("[]"):
            return self.convert_type(normalized[:-2]) + "[]"

        open_index = normalized.find("<")
        if open_index > 0 and normalized.endswith(">"):
            head = normalized[:open_index]
            arguments = split_template_arguments(normalized[open_index + 1:-1])
            converted_head = self._type_map.get(head.lower(), head)
            converted_args = ", ".join(self.convert_type(arg) for arg in arguments)
            return f"{converted_head}<{converted_args}>"

        return normalized

    def convert_default_value(self, cpp_value: Optional[str]) -> str:
        """Rewrite a default or initializer expression into C# spelling.

        ``_T("x")`` becomes ``"x"``; ``NULL``/``nullptr``/``TRUE``/``FALSE``
        become their C# literals. Numeric suffixes are preserved.
        """
        if cpp_value is None:
            return ""
        text = cpp_value.strip()
        if _NUMBER_RE.match(text):
            return text
        text = convert_string_literals(text)
        return _WORD_OR_STRING_RE.sub(_rewrite_literal, text)


def _rewrite_literal(match) -> str:
    if match.group(1):
        return match.group(1)
    return LITERAL_REWRITES.get(match.group(0), match.group(0))


def convert_string_literals(text: str) -> str:
    """Unwrap ``_T("...")`` and ``_T('.')`` wrappers."""
    text = _TCHAR_LITERAL_RE.sub(r"\1", text)
    return _TCHAR_CHAR_RE.sub(r"\1", text)
