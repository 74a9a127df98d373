"""
Canonical method signatures used to join header declarations with
out-of-line source definitions.

Overload identity is keyed on the base type of each parameter only:
``const``, pointer and reference qualification collapse into one identity
because the generated C# collapses those passing styles too.
"""

import re
from typing import Iterable

_COMMENT_RE = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_CONST_RE = re.compile(r"\bconst\b")
_MODIFIER_RE = re.compile(r"[&*]")
_WHITESPACE_RE = re.compile(r"\s+")


def normalize_parameter_type(raw_text: str) -> str:
    """Normalize a parameter type to its canonical signature fragment.

    Args:
        raw_text: Type text, optionally qualified and commented.

    Returns:
        Lower-cased base type without ``const``, ``*``, ``&`` or whitespace.

    Example:
        >>> normalize_parameter_type("const CString&")
        'cstring'
        >>> normalize_parameter_type("const T*") == normalize_parameter_type("T")
        True
    """
    text = _COMMENT_RE.sub(" ", raw_text or "")
    text = _CONST_RE.sub(" ", text)
    text = _MODIFIER_RE.sub("", text)
    text = _WHITESPACE_RE.sub("", text)
    return text.lower()


def method_signature_from_parts(name: str, parameter_types: Iterable[str]) -> str:
    """Build ``name(frag1,frag2,...)`` from a method name and raw parameter types."""
    fragments = [normalize_parameter_type(t) for t in parameter_types]
    return f"{name.strip()}({','.join(fragments)})"


def get_method_signature(method) -> str:
    """Compute the canonical signature of a method entity.

    Args:
        method: A ``MethodEntity`` (or any object exposing ``name`` and
            ``parameters`` whose items expose ``type``).

    Returns:
        Canonical signature string, e.g. ``"MethodP1(tdimvalue,agrint)"``.
    """
    return method_signature_from_parts(method.name, [p.type for p in method.parameters])
