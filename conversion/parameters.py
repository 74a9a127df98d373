"""
Parameter list parsing: block splitting and component extraction.

``split_parameter_blocks`` cuts the text between a method's parentheses into
one fragment per parameter; ``extract_parameter`` turns a fragment into a
``ParameterEntity`` with its comments anchored to the type or the name.
"""

import logging
import re
from dataclasses import dataclass
from typing import List, Optional, Tuple

from conversion.models import CommentPosition, ParameterEntity, PositionedComment

logger = logging.getLogger(__name__)

_OPENERS = set("(<[{")
_CLOSERS = set(")>]}")
_MODIFIER_TOKENS = {"*", "&", "&&"}
_QUALIFIER_TOKENS = {"const", "volatile"}
_BUILTIN_TYPE_WORDS = {
    "void", "bool", "char", "wchar_t", "short", "int", "long", "float",
    "double", "signed", "unsigned", "auto",
}
_ELABORATED_KEYWORDS = {"struct", "class", "enum", "union", "typename"}
_IDENT_RE = re.compile(r"[A-Za-z_~]\w*(?:\s*::\s*[A-Za-z_~]\w*)*")
_FUNC_PTR_NAME_RE = re.compile(r"\(\s*[*&^]\s*([A-Za-z_]\w*)\s*\)")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass(frozen=True)
class ParameterBlock:
    """One raw parameter fragment cut from a parameter list.

    Attributes:
        text: Fragment text, stripped.
        starts_on_new_line: Whether a line break precedes the fragment.
        leading_indent: Whitespace between that line break and the fragment.
    """

    text: str
    starts_on_new_line: bool = False
    leading_indent: str = ""


def _make_block(raw: str) -> Optional[ParameterBlock]:
    stripped = raw.strip()
    if not stripped:
        return None
    head = raw[: len(raw) - len(raw.lstrip())]
    starts_on_new_line = "\n" in head
    indent = head.rsplit("\n", 1)[-1].replace("\r", "") if starts_on_new_line else ""
    return ParameterBlock(stripped, starts_on_new_line, indent)


def _comment_end(text: str, i: int) -> int:
    """Offset just past the comment starting at ``i``."""
    if text.startswith("//", i):
        newline = text.find("\n", i)
        return len(text) if newline == -1 else newline
    close = text.find("*/", i + 2)
    return len(text) if close == -1 else close + 2


def _string_end(text: str, i: int) -> int:
    quote = text[i]
    j = i + 1
    while j < len(text):
        if text[j] == "\\":
            j += 2
            continue
        if text[j] == quote:
            return j + 1
        j += 1
    return len(text)


def _trailing_comment_end(text: str, comma: int) -> Optional[int]:
    """End of a comment that belongs to the parameter before ``comma``.

    A line comment right after the comma, or a block comment that closes the
    physical line, documents the preceding parameter.
    """
    j = comma + 1
    while j < len(text) and text[j] in " \t":
        j += 1
    if text.startswith("//", j):
        return _comment_end(text, j)
    if text.startswith("/*", j):
        end = _comment_end(text, j)
        k = end
        while k < len(text) and text[k] in " \t":
            k += 1
        if k >= len(text) or text[k] in "\r\n":
            return end
    return None


def split_parameter_blocks(raw_text: str) -> List[ParameterBlock]:
    """Split a parameter list into per-parameter fragments.

    Commas only split at nesting depth zero, where depth counts ``(``, ``<``,
    ``[`` and ``{``. Commas inside comments and literals never split.

    Args:
        raw_text: Text between the parentheses of a declaration.

    Returns:
        Fragments in order; empty for an empty or blank list.

    Example:
        >>> [b.text for b in split_parameter_blocks("Map<int,int> a, int b")]
        ['Map<int,int> a', 'int b']
    """
    if not raw_text or not raw_text.strip():
        return []

    blocks: List[ParameterBlock] = []
    depth = 0
    start = 0
    i = 0
    length = len(raw_text)

    while i < length:
        ch = raw_text[i]
        if raw_text.startswith("//", i) or raw_text.startswith("/*", i):
            i = _comment_end(raw_text, i)
            continue
        if ch in "\"'":
            i = _string_end(raw_text, i)
            continue
        if ch in _OPENERS:
            depth += 1
        elif ch in _CLOSERS:
            if not (ch == ">" and i > 0 and raw_text[i - 1] == "-"):
                depth = max(0, depth - 1)
        elif ch == "," and depth == 0:
            end = _trailing_comment_end(raw_text, i)
            if end is None:
                block = _make_block(raw_text[start:i])
                start = i + 1
                i += 1
            else:
                block = _make_block(raw_text[start:i] + " " + raw_text[i + 1:end].strip())
                start = end
                i = end
            if block is not None:
                blocks.append(block)
            continue
        i += 1

    tail = _make_block(raw_text[start:])
    if tail is not None:
        blocks.append(tail)
    return blocks


def _comment_spans(text: str) -> List[Tuple[int, int]]:
    spans: List[Tuple[int, int]] = []
    i = 0
    while i < len(text):
        if text.startswith("//", i) or text.startswith("/*", i):
            end = _comment_end(text, i)
            spans.append((i, end))
            i = end
        elif text[i] in "\"'":
            i = _string_end(text, i)
        else:
            i += 1
    return spans


def _find_default_separator(text: str) -> int:
    """Offset of the top-level ``=`` introducing a default value, or -1."""
    depth = 0
    i = 0
    while i < len(text):
        ch = text[i]
        if ch in "\"'":
            i = _string_end(text, i)
            continue
        if ch in "(<[{":
            depth += 1
        elif ch in ")>]}":
            depth = max(0, depth - 1)
        elif ch == "=" and depth == 0:
            prev_ch = text[i - 1] if i else ""
            next_ch = text[i + 1] if i + 1 < len(text) else ""
            if prev_ch not in "=!<>" and next_ch != "=":
                return i
        i += 1
    return -1


def _group_end(text: str, i: int, opener: str, closer: str) -> int:
    depth = 0
    j = i
    while j < len(text):
        if text[j] == opener:
            depth += 1
        elif text[j] == closer:
            depth -= 1
            if depth == 0:
                return j + 1
        j += 1
    return len(text)


def _declarator_tokens(text: str) -> List[Tuple[str, int, int]]:
    """Tokenize a declaration, keeping ``<...>``, ``[...]`` and ``(...)`` whole.

    Template arguments stay attached to the identifier they follow.
    """
    tokens: List[Tuple[str, int, int]] = []
    i = 0
    while i < len(text):
        ch = text[i]
        if ch.isspace():
            i += 1
            continue
        match = _IDENT_RE.match(text, i)
        if match:
            end = match.end()
            j = end
            while j < len(text) and text[j].isspace():
                j += 1
            if j < len(text) and text[j] == "<":
                end = _group_end(text, j, "<", ">")
                tail = re.match(r"\s*::\s*[A-Za-z_]\w*", text[end:])
                if tail:
                    end += tail.end()
            tokens.append((text[i:end], i, end))
            i = end
        elif text.startswith("&&", i):
            tokens.append(("&&", i, i + 2))
            i += 2
        elif text.startswith("...", i):
            tokens.append(("...", i, i + 3))
            i += 3
        elif ch == "[":
            end = _group_end(text, i, "[", "]")
            tokens.append((text[i:end], i, end))
            i = end
        elif ch == "(":
            end = _group_end(text, i, "(", ")")
            tokens.append((text[i:end], i, end))
            i = end
        else:
            tokens.append((ch, i, i + 1))
            i += 1
    return tokens


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _is_identifier(token: str) -> bool:
    return bool(re.fullmatch(r"[A-Za-z_]\w*", token))


def extract_parameter(fragment: str) -> ParameterEntity:
    """Extract type, name, modifiers and positioned comments from a fragment.

    Args:
        fragment: One parameter as produced by ``split_parameter_blocks``.

    Returns:
        The parsed parameter. Unnamed parameters get an empty name.

    Example:
        >>> p = extract_parameter("/* IN*/const T& name")
        >>> (p.type, p.name, p.is_const, p.is_reference)
        ('T', 'name', True, True)
    """
    raw = fragment.strip()

    # Blank comments out in place so offsets stay comparable
    spans = _comment_spans(raw)
    working = raw
    for start, end in spans:
        working = working[:start] + " " * (end - start) + working[end:]

    default_value = None
    separator = _find_default_separator(working)
    declaration = working
    if separator >= 0:
        default_value = _collapse(working[separator + 1:]) or None
        declaration = working[:separator]

    tokens = _declarator_tokens(declaration)
    texts = [t[0] for t in tokens]

    is_const = "const" in texts
    is_reference = "&" in texts
    is_pointer = "*" in texts

    name_index = _find_name_index(texts)
    name = ""
    type_text = ""
    function_pointer = next(
        (t for t in tokens if t[0].startswith("(") and _FUNC_PTR_NAME_RE.match(t[0])), None
    )

    if function_pointer is not None:
        name = _FUNC_PTR_NAME_RE.match(function_pointer[0]).group(1)
        type_text = _collapse(declaration)
        name_start = function_pointer[1]
        is_pointer = True
    else:
        name_start = tokens[name_index][1] if name_index is not None else None
        if name_index is not None:
            name = texts[name_index]
        type_parts = []
        for idx, text in enumerate(texts):
            if idx == name_index:
                continue
            if text in _MODIFIER_TOKENS or text in _QUALIFIER_TOKENS:
                continue
            if text.startswith("["):
                type_parts.append("[]")
                continue
            type_parts.append(_collapse(text))
        type_text = " ".join(type_parts).replace(" []", "[]")

    comments = []
    first_start = tokens[0][1] if tokens else len(working)
    last_end = tokens[-1][2] if tokens else len(working)
    for start, end in spans:
        text = raw[start:end].rstrip()
        if start <= first_start:
            position = CommentPosition.BEFORE_TYPE
        elif name_start is not None and start < name_start:
            position = CommentPosition.AFTER_TYPE
        elif name_start is None and start < last_end:
            position = CommentPosition.AFTER_TYPE
        else:
            position = CommentPosition.AFTER_NAME
        comments.append(PositionedComment(text=text, position=position))

    return ParameterEntity(
        type=type_text,
        name=name,
        is_const=is_const,
        is_pointer=is_pointer,
        is_reference=is_reference,
        comments=tuple(comments),
        default_value=default_value,
        raw_text=fragment,
    )


def _find_name_index(texts: List[str]) -> Optional[int]:
    """Index of the parameter name token, or None for unnamed parameters."""
    significant = [i for i, t in enumerate(texts) if not t.startswith("[")]
    if not significant:
        return None
    last = significant[-1]
    candidate = texts[last]
    if candidate in _MODIFIER_TOKENS or candidate in _QUALIFIER_TOKENS:
        return None
    if not _is_identifier(candidate) or candidate in _BUILTIN_TYPE_WORDS:
        return None
    type_words = [
        i for i in significant
        if i != last and texts[i] not in _QUALIFIER_TOKENS and texts[i] not in _MODIFIER_TOKENS
        and texts[i] not in _ELABORATED_KEYWORDS
    ]
    if not type_words:
        return None
    return last


def parse_parameters(raw_text: str) -> List[ParameterEntity]:
    """Parse a full parameter list.

    Args:
        raw_text: Text between the parentheses of a declaration.

    Returns:
        Parameters in order. ``()`` and ``(void)`` yield an empty list.
    """
    blocks = split_parameter_blocks(raw_text)
    parameters = [extract_parameter(block.text) for block in blocks]
    if len(parameters) == 1 and parameters[0].type == "void" and not parameters[0].name:
        return []
    logger.debug("Parsed %d parameters from %r", len(parameters), raw_text)
    return parameters
