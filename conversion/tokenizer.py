"""
Regex-based tokenizer for C++ header text.

Produces a flat token stream (whitespace dropped) that keeps comments and
preprocessor directives as whole tokens, so the header scanner can attach
comments to constructs and filter directives out before any declaration
shape is matched.
"""

import re
from dataclasses import dataclass
from typing import List, Sequence

COMMENT = "comment"
DIRECTIVE = "directive"
STRING = "string"
CHAR = "char"
IDENT = "ident"
NUMBER = "number"
PUNCT = "punct"

_TOKEN_RE = re.compile(
    r"""
    (?P<ws>[ \t\r\f\v]+)
    |(?P<newline>\n)
    |(?P<line_comment>//[^\n]*)
    |(?P<block_comment>/\*.*?(?:\*/|\Z))
    |(?P<hash>\#(?:\\\r?\n|[^\n])*)
    |(?P<string>(?:L|u8|u|U|_T)?"(?:[^"\\\n]|\\.)*"?)
    |(?P<char>'(?:[^'\\\n]|\\.)*'?)
    |(?P<ident>[A-Za-z_]\w*)
    |(?P<number>\.?\d(?:[eEpP][+-]|[\w.'])*)
    |(?P<punct>::|->\*?|&&|\|\||<<=?|>>=?|==|!=|<=|>=|\+\+|--|[-+*/%&|^]=|\.\.\.|\S)
    """,
    re.VERBOSE | re.DOTALL,
)
_ANY_RE = re.compile(r"(?P<ws>.)", re.DOTALL)


@dataclass(frozen=True)
class Token:
    """A lexical token with its source span.

    Attributes:
        kind: One of the module-level kind constants.
        text: Exact source text of the token.
        start: Offset of the first character.
        end: Offset one past the last character.
        line: 1-indexed line of the first character.
        end_line: 1-indexed line of the last character.
    """

    kind: str
    text: str
    start: int
    end: int
    line: int
    end_line: int

    def is_punct(self, *values: str) -> bool:
        return self.kind == PUNCT and self.text in values

    def is_ident(self, *values: str) -> bool:
        return self.kind == IDENT and (not values or self.text in values)


def tokenize(text: str) -> List[Token]:
    """Split C++ text into tokens.

    A ``#`` only starts a directive when it is the first non-blank character
    of a line; the directive then extends to the end of the line, including
    backslash continuations.

    Args:
        text: Source text.

    Returns:
        Tokens in source order, whitespace excluded.

    Example:
        >>> [t.text for t in tokenize("int a; // c")]
        ['int', 'a', ';', '// c']
    """
    tokens: List[Token] = []
    line = 1
    at_line_start = True
    pos = 0
    length = len(text)

    while pos < length:
        match = _TOKEN_RE.match(text, pos)
        if match is None:
            # Unicode whitespace outside the ASCII set
            match = _ANY_RE.match(text, pos)
        kind = match.lastgroup
        value = match.group()
        end = match.end()
        newlines = value.count("\n")

        if kind == "newline":
            at_line_start = True
        elif kind == "ws":
            pass
        else:
            if kind == "hash" and not at_line_start:
                # Not at line start: stringizing or token pasting
                value = "#"
                end = pos + 1
                newlines = 0
                token_kind = PUNCT
            else:
                token_kind = {
                    "line_comment": COMMENT,
                    "block_comment": COMMENT,
                    "hash": DIRECTIVE,
                    "string": STRING,
                    "char": CHAR,
                    "ident": IDENT,
                    "number": NUMBER,
                }.get(kind, PUNCT)
            tokens.append(Token(token_kind, value, pos, end, line, line + newlines))
            at_line_start = False

        line += newlines
        pos = end

    return tokens


def find_matching(tokens: Sequence[Token], index: int) -> int:
    """Return the index of the bracket closing the one at ``index``.

    Comments, strings and directives are single tokens, so brackets inside
    them never count.

    Raises:
        ValueError: If the bracket is never closed.
    """
    pairs = {"{": "}", "(": ")", "[": "]"}
    opener = tokens[index].text
    closer = pairs[opener]
    depth = 0
    for i in range(index, len(tokens)):
        token = tokens[i]
        if token.kind != PUNCT:
            continue
        if token.text == opener:
            depth += 1
        elif token.text == closer:
            depth -= 1
            if depth == 0:
                return i
    raise ValueError(f"Unbalanced '{opener}' opened on line {tokens[index].line}")


def dedent_block(text: str, tab_width: int = 4) -> str:
    """Expand tabs, trim blank edge lines and remove the common indentation."""
    lines = text.expandtabs(tab_width).split("\n")
    lines = [ln.rstrip() for ln in lines]
    while lines and not lines[0].strip():
        lines.pop(0)
    while lines and not lines[-1].strip():
        lines.pop()
    if not lines:
        return ""
    indents = [len(ln) - len(ln.lstrip(" ")) for ln in lines if ln.strip()]
    common = min(indents) if indents else 0
    return "\n".join(ln[common:] if ln.strip() else "" for ln in lines)
