"""
Header unit scanner.

Walks the token stream of one header and builds the structural model:
classes with their members, method declarations (with inline bodies when
present), nested aggregates, region markers and opaque fragments, plus
unit-level typedef structs and ``#define`` constants.

The scanner is recursive descent over braces: every class body is scanned
between its matching braces, and each statement inside it is classified as
an access specifier, method, member, nested aggregate, directive or opaque
fragment, in that priority order.
"""

import logging
import os
import re
from dataclasses import dataclass, field, replace
from typing import List, Optional, Sequence, Tuple

from conversion.config import (
    ACCESS_KEYWORDS,
    ACCESS_PRIVATE,
    ACCESS_PUBLIC,
    AGGREGATE_KEYWORDS,
    DIAG_UNRECOGNIZED_SYNTAX,
    IGNORED_DECL_MACROS,
    INTERFACE_NAME_PATTERN,
    MEMBER_SPECIFIERS,
    METHOD_SPECIFIERS,
    METHOD_TRAILING_QUALIFIERS,
    OPAQUE_KEYWORDS,
    TAB_WIDTH,
)
from conversion.models import (
    ClassEntity,
    DefineEntity,
    Diagnostic,
    HeaderParseError,
    HeaderUnit,
    MemberEntity,
    MethodEntity,
    OpaqueFragment,
    RegionMarker,
    StructEntity,
)
from conversion.parameters import parse_parameters, split_parameter_blocks
from conversion.tokenizer import (
    COMMENT,
    DIRECTIVE,
    IDENT,
    PUNCT,
    Token,
    dedent_block,
    find_matching,
    tokenize,
)

logger = logging.getLogger(__name__)

_DEFINE_RE = re.compile(r"^#\s*define\s+([A-Za-z_]\w*)(\(?)\s*(.*)$", re.DOTALL)
_PRAGMA_REGION_RE = re.compile(r"^#\s*pragma\s+(region|endregion)\b\s*(.*)$", re.DOTALL)
_TRAILING_COMMENT_RE = re.compile(r"\s*(//.*|/\*.*?\*/)\s*$", re.DOTALL)
_MACRO_NAME_RE = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_SPECIFIER_WORDS_RE = re.compile(r"\b(?:static|mutable|constexpr|const|volatile|inline)\b")
_WHITESPACE_RE = re.compile(r"\s+")
_COMMENT_RE = re.compile(r"/\*.*?\*/|//[^\n]*", re.DOTALL)
_INTERFACE_RE = re.compile(INTERFACE_NAME_PATTERN)


@dataclass
class _AggregateBuilder:
    """Mutable accumulator for one class/struct body while it is scanned."""

    name: str
    is_struct: bool
    access: str
    members: List[MemberEntity] = field(default_factory=list)
    methods: List[MethodEntity] = field(default_factory=list)
    nested: List[StructEntity] = field(default_factory=list)
    fragments: List[OpaqueFragment] = field(default_factory=list)
    regions: List[RegionMarker] = field(default_factory=list)
    directives: List[str] = field(default_factory=list)
    order: int = 0

    def next_order(self) -> int:
        self.order += 1
        return self.order


def _collapse(text: str) -> str:
    return _WHITESPACE_RE.sub(" ", text).strip()


def _strip_trailing_comment(text: str) -> Tuple[str, Optional[str]]:
    match = _TRAILING_COMMENT_RE.search(text)
    if match and not text[: match.start()].count('"') % 2:
        return text[: match.start()].rstrip(), match.group(1).strip()
    return text.rstrip(), None


class _HeaderScanner:
    """Single-use scanner over one header's tokens."""

    def __init__(self, text: str, path: str):
        self.text = text
        self.path = path
        self.tokens: List[Token] = tokenize(text)
        self.diagnostics: List[Diagnostic] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _slice(self, first: int, last: int) -> str:
        """Source text from the start of token ``first`` to the end of ``last``."""
        return self.text[self.tokens[first].start:self.tokens[last].end]

    def _comment_text(self, token: Token) -> str:
        """Comment text with continuation lines re-based to the comment column."""
        line_start = self.text.rfind("\n", 0, token.start) + 1
        column = len(self.text[line_start:token.start].expandtabs(TAB_WIDTH))
        lines = token.text.replace("\r", "").expandtabs(TAB_WIDTH).split("\n")
        result = [lines[0].rstrip()]
        for line in lines[1:]:
            head = line[:column]
            result.append((line[column:] if not head.strip() else line.lstrip()).rstrip())
        return "\n".join(result)

    def _take_postfix(self, index: int, end_token: Token) -> Tuple[Optional[str], int]:
        """Consume a comment that starts on the line ``end_token`` ends on."""
        if (
            index < len(self.tokens)
            and self.tokens[index].kind == COMMENT
            and self.tokens[index].line == end_token.end_line
        ):
            return self._comment_text(self.tokens[index]), index + 1
        return None, index

    def _matching(self, index: int) -> int:
        try:
            return find_matching(self.tokens, index)
        except ValueError as exc:
            raise HeaderParseError(str(exc), self.path, self.tokens[index].line) from exc

    def _find_semicolon(self, index: int, limit: int) -> int:
        """Index of the next ``;`` at brace/paren depth zero, or ``limit``."""
        i = index
        while i < limit:
            token = self.tokens[i]
            if token.kind == PUNCT:
                if token.text in "{([":
                    i = self._matching(i) + 1
                    continue
                if token.text == ";":
                    return i
            i += 1
        return limit

    def _unrecognized(self, text: str, line: int, class_name: Optional[str]) -> None:
        self.diagnostics.append(
            Diagnostic(
                kind=DIAG_UNRECOGNIZED_SYNTAX,
                message=f"Preserved verbatim: {_collapse(text)[:80]}",
                file_path=self.path,
                line=line,
                class_name=class_name,
            )
        )

    # ------------------------------------------------------------------
    # Unit scope
    # ------------------------------------------------------------------

    def scan_unit(self) -> HeaderUnit:
        tokens = self.tokens
        classes: List[ClassEntity] = []
        structs: List[StructEntity] = []
        defines: List[DefineEntity] = []
        directives: List[str] = []
        fragments: List[OpaqueFragment] = []
        file_comments: Tuple[str, ...] = ()
        pending: List[str] = []
        seen_construct = False
        scope_depth = 0
        i = 0

        while i < len(tokens):
            token = tokens[i]

            if token.kind == COMMENT:
                pending.append(self._comment_text(token))
                i += 1
                continue

            if token.kind == DIRECTIVE:
                define = self._parse_define(token, tuple(pending))
                if define is not None:
                    defines.append(define)
                else:
                    directives.append(token.text.strip())
                    if not seen_construct and not defines:
                        file_comments += tuple(pending)
                    elif pending:
                        logger.debug("%s:%d: comments before directive dropped", self.path, token.line)
                pending = []
                i += 1
                continue

            seen_construct = True

            if token.is_ident("namespace"):
                j = i + 1
                while j < len(tokens) and not tokens[j].is_punct("{", ";"):
                    j += 1
                if j < len(tokens) and tokens[j].is_punct("{"):
                    scope_depth += 1
                i = j + 1
                pending = []
                continue

            if token.is_ident("extern") and i + 2 < len(tokens) and tokens[i + 2].is_punct("{"):
                scope_depth += 1
                i += 3
                continue

            if token.is_punct("}"):
                if scope_depth > 0:
                    scope_depth -= 1
                else:
                    logger.debug("%s:%d: unbalanced '}' skipped", self.path, token.line)
                i += 1
                continue

            if token.is_punct(";"):
                i += 1
                continue

            if token.is_ident("typedef") and self._opens_aggregate(i + 1):
                struct, i = self._parse_typedef_aggregate(i, tuple(pending), None, None)
                structs.append(struct)
                pending = []
                continue

            if token.kind == IDENT and token.text in AGGREGATE_KEYWORDS and self._opens_aggregate(i):
                entity, i = self._parse_class(i, tuple(pending))
                classes.append(entity)
                pending = []
                continue

            if (
                token.kind == IDENT
                and token.text in AGGREGATE_KEYWORDS
                and i + 2 < len(tokens)
                and tokens[i + 2].is_punct(";")
            ):
                logger.debug("%s:%d: forward declaration skipped", self.path, token.line)
                pending = []
                i += 3
                continue

            # Free functions and variables, enums, templates, typedefs
            text, next_index = self._verbatim_statement(i, len(tokens))
            if token.text not in OPAQUE_KEYWORDS:
                self._unrecognized(text, token.line, None)
            fragments.append(
                OpaqueFragment(
                    text=text,
                    order=len(fragments),
                    line=token.line,
                    leading_comments=tuple(pending),
                )
            )
            pending = []
            i = next_index

        for entity in classes:
            logger.debug(
                "Parsed class %s: %d members, %d methods",
                entity.name, len(entity.members), len(entity.methods),
            )

        return HeaderUnit(
            path=self.path,
            classes=tuple(classes),
            structs=tuple(structs),
            defines=tuple(defines),
            file_comments=file_comments,
            directives=tuple(directives),
            fragments=tuple(fragments),
            diagnostics=tuple(self.diagnostics),
        )

    def _parse_define(self, token: Token, comments: Tuple[str, ...]) -> Optional[DefineEntity]:
        """Object-like ``#define NAME value``; function-like macros return None."""
        text = token.text.replace("\\\r\n", " ").replace("\\\n", " ").strip()
        match = _DEFINE_RE.match(text)
        if not match or match.group(2):
            return None
        value, _ = _strip_trailing_comment(match.group(3))
        return DefineEntity(
            name=match.group(1),
            value=_collapse(value),
            leading_comments=comments,
            origin=self.path,
            line=token.line,
        )

    def _opens_aggregate(self, index: int) -> bool:
        """Whether the aggregate keyword at ``index`` starts a definition body."""
        tokens = self.tokens
        if index >= len(tokens) or not (tokens[index].kind == IDENT and tokens[index].text in AGGREGATE_KEYWORDS):
            return False
        j = index + 1
        while j < len(tokens):
            token = tokens[j]
            if token.is_punct("(") and tokens[j - 1].kind == IDENT and tokens[j - 1].text in IGNORED_DECL_MACROS:
                j = self._matching(j) + 1
                continue
            if token.is_punct("{"):
                return True
            if token.is_punct(";", "(", ")", "=", "}", "*", "&"):
                return False
            j += 1
        return False

    # ------------------------------------------------------------------
    # Aggregates
    # ------------------------------------------------------------------

    def _parse_aggregate_head(self, index: int):
        """Parse ``class|struct [macros] Name [final] [: bases] {``.

        Preprocessor lines anywhere in the head are collected, not parsed.

        Returns:
            Tuple of (keyword, name, bases, exported, open_brace_index,
            directives).
        """
        tokens = self.tokens
        keyword = tokens[index].text
        j = index + 1
        name = ""
        exported = False
        bases: List[str] = []
        directives: List[str] = []

        while not tokens[j].is_punct("{", ":"):
            token = tokens[j]
            if token.kind == DIRECTIVE:
                directives.append(token.text.strip())
                j += 1
                continue
            if token.kind == IDENT and j + 1 < len(tokens) and tokens[j + 1].is_punct("("):
                close = self._matching(j + 1)
                if "dllexport" in self._slice(j, close):
                    exported = True
                j = close + 1
                continue
            if token.kind == IDENT and token.text != "final":
                if name and _MACRO_NAME_RE.match(name) and name not in IGNORED_DECL_MACROS:
                    exported = True
                name = token.text
            j += 1

        if tokens[j].is_punct(":"):
            j += 1
            current: List[str] = []
            depth = 0
            while not (tokens[j].is_punct("{") and depth == 0):
                token = tokens[j]
                if token.is_punct("<"):
                    depth += 1
                elif token.is_punct(">"):
                    depth -= 1
                if token.kind == DIRECTIVE:
                    directives.append(token.text.strip())
                elif token.is_punct(",") and depth == 0:
                    bases.append("".join(current))
                    current = []
                elif token.kind != COMMENT and token.text not in ACCESS_KEYWORDS and token.text != "virtual":
                    current.append(token.text)
                j += 1
            if current:
                bases.append("".join(current))

        if directives:
            logger.debug("%s:%d: directives in head of '%s' filtered", self.path, tokens[index].line, name)
        return keyword, name, [b for b in bases if b], exported, j, directives

    def _parse_class(self, index: int, comments: Tuple[str, ...]) -> Tuple[ClassEntity, int]:
        keyword, name, bases, exported, open_index, head_directives = self._parse_aggregate_head(index)
        close_index = self._matching(open_index)
        is_struct = keyword != "class"
        interface_named = bool(_INTERFACE_RE.match(name))
        default_access = ACCESS_PUBLIC if (is_struct or interface_named) else ACCESS_PRIVATE

        builder = _AggregateBuilder(name=name, is_struct=is_struct, access=default_access)
        builder.directives.extend(head_directives)
        self._scan_body(builder, open_index, close_index)

        i = close_index + 1
        # Trailing declarators (``} instance;``) are not kept at unit scope
        while i < len(self.tokens) and not self.tokens[i].is_punct(";"):
            if self.tokens[i].kind not in (IDENT, PUNCT, COMMENT):
                break
            if self.tokens[i].kind == COMMENT or self.tokens[i].is_punct("{", "}"):
                break
            i += 1
        if i >= len(self.tokens) or not self.tokens[i].is_punct(";"):
            raise HeaderParseError(
                f"Class '{name}' is not terminated by ';'", self.path, self.tokens[close_index].line
            )
        trailing, i = self._take_postfix(i + 1, self.tokens[i])

        instance_methods = [
            m for m in builder.methods
            if not m.is_static and not m.is_constructor and not m.is_destructor
        ]
        if builder.members:
            is_interface = False
        elif instance_methods:
            is_interface = all(m.is_pure for m in instance_methods)
        else:
            is_interface = interface_named and not builder.methods and not builder.nested

        entity = ClassEntity(
            name=name,
            members=tuple(builder.members),
            methods=tuple(builder.methods),
            nested_structs=tuple(builder.nested),
            base_types=tuple(bases),
            is_interface=is_interface,
            is_struct=is_struct,
            is_exported=exported,
            leading_comments=comments,
            trailing_comment=trailing,
            fragments=tuple(builder.fragments),
            regions=tuple(builder.regions),
            directives=tuple(builder.directives),
            line=self.tokens[index].line,
        )
        return entity, i

    def _parse_typedef_aggregate(
        self,
        index: int,
        comments: Tuple[str, ...],
        access: Optional[str],
        owner: Optional[_AggregateBuilder],
    ) -> Tuple[StructEntity, int]:
        """Parse ``typedef struct [Tag] { ... } Alias;``."""
        keyword_index = index + 1
        _, tag, _, _, open_index, _ = self._parse_aggregate_head(keyword_index)
        close_index = self._matching(open_index)
        semi = self._find_semicolon(close_index + 1, len(self.tokens))
        if semi >= len(self.tokens):
            raise HeaderParseError("typedef is not terminated by ';'", self.path, self.tokens[index].line)
        aliases = [t.text for t in self.tokens[close_index + 1:semi] if t.kind == IDENT]
        name = aliases[0] if aliases else tag

        builder = _AggregateBuilder(name=name, is_struct=True, access=ACCESS_PUBLIC)
        self._scan_body(builder, open_index, close_index)
        struct = StructEntity(
            name=name,
            members=tuple(builder.members),
            text=dedent_block(self._slice(index, semi), TAB_WIDTH),
            fragments=tuple(builder.fragments) + self._methods_as_fragments(builder),
            leading_comments=comments,
            access=access,
            order=owner.next_order() if owner is not None else 0,
            line=self.tokens[index].line,
        )
        return struct, semi + 1

    def _parse_nested_aggregate(
        self, index: int, owner: _AggregateBuilder, comments: Tuple[str, ...]
    ) -> int:
        """Nested ``struct Name { ... } [declarators];`` inside a class body."""
        keyword, name, _, _, open_index, _ = self._parse_aggregate_head(index)
        close_index = self._matching(open_index)
        semi = self._find_semicolon(close_index + 1, len(self.tokens))
        declarators = [t.text for t in self.tokens[close_index + 1:semi] if t.kind == IDENT]
        if not name:
            name = f"Anonymous{self.tokens[index].line}"

        builder = _AggregateBuilder(
            name=name,
            is_struct=keyword != "class",
            access=ACCESS_PRIVATE if keyword == "class" else ACCESS_PUBLIC,
        )
        self._scan_body(builder, open_index, close_index)
        owner.nested.append(
            StructEntity(
                name=name,
                members=tuple(builder.members),
                text=dedent_block(self._slice(index, min(semi, len(self.tokens) - 1)), TAB_WIDTH),
                fragments=tuple(builder.fragments) + self._methods_as_fragments(builder),
                leading_comments=comments,
                access=owner.access,
                order=owner.next_order(),
                line=self.tokens[index].line,
            )
        )
        end_token = self.tokens[min(semi, len(self.tokens) - 1)]
        postfix, next_index = self._take_postfix(semi + 1, end_token)
        for k, declarator in enumerate(declarators):
            owner.members.append(
                MemberEntity(
                    type=name,
                    name=declarator,
                    access=owner.access,
                    postfix_comment=postfix if k == len(declarators) - 1 else None,
                    order=owner.next_order(),
                    line=end_token.line,
                )
            )
        return next_index

    def _methods_as_fragments(self, builder: _AggregateBuilder) -> Tuple[OpaqueFragment, ...]:
        fragments = []
        for method in builder.methods:
            params = ", ".join(p.raw_text for p in method.parameters)
            head = f"{method.return_type} {method.name}({params})".strip()
            if method.body is not None:
                text = head + "\n{\n" + _indent(method.body) + "\n}"
            else:
                text = head + ";"
            fragments.append(OpaqueFragment(text=text, order=method.order, line=method.line))
        return tuple(fragments)

    # ------------------------------------------------------------------
    # Class bodies
    # ------------------------------------------------------------------

    def _scan_body(self, builder: _AggregateBuilder, open_index: int, close_index: int) -> None:
        tokens = self.tokens
        pending: List[str] = []
        i = open_index + 1

        while i < close_index:
            token = tokens[i]

            if token.kind == COMMENT:
                pending.append(self._comment_text(token))
                i += 1
                continue

            if token.kind == DIRECTIVE:
                self._class_directive(builder, token)
                i += 1
                continue

            if token.kind == IDENT and token.text in ACCESS_KEYWORDS and tokens[i + 1].is_punct(":"):
                builder.access = token.text
                i += 2
                continue

            if token.is_punct(";"):
                i += 1
                continue

            comments = tuple(pending)
            pending = []

            if token.is_ident("typedef") and self._opens_aggregate(i + 1):
                struct, i = self._parse_typedef_aggregate(i, comments, builder.access, builder)
                builder.nested.append(struct)
                continue

            if token.kind == IDENT and token.text in AGGREGATE_KEYWORDS and self._opens_aggregate(i):
                i = self._parse_nested_aggregate(i, builder, comments)
                continue

            if token.kind == IDENT and token.text in OPAQUE_KEYWORDS:
                i = self._opaque_statement(builder, i, close_index, comments)
                continue

            if self._is_macro_line(i, close_index):
                close = self._matching(i + 1)
                builder.fragments.append(
                    OpaqueFragment(
                        text=self._slice(i, close),
                        order=builder.next_order(),
                        line=token.line,
                        leading_comments=comments,
                    )
                )
                i = close + 1
                continue

            i = self._declaration(builder, i, close_index, comments)

    def _class_directive(self, builder: _AggregateBuilder, token: Token) -> None:
        """Regions become markers; everything else is filtered metadata."""
        text = token.text.strip()
        match = _PRAGMA_REGION_RE.match(text)
        if match:
            builder.regions.append(
                RegionMarker(
                    is_start=match.group(1) == "region",
                    label=match.group(2).strip(),
                    order=builder.next_order(),
                    line=token.line,
                )
            )
            return
        logger.debug("%s:%d: directive inside '%s' filtered: %s", self.path, token.line, builder.name, text)
        builder.directives.append(text)

    def _is_macro_line(self, index: int, limit: int) -> bool:
        """``DECLARE_SOMETHING(args)`` on its own line, without a terminator."""
        tokens = self.tokens
        token = tokens[index]
        if token.kind != IDENT or not _MACRO_NAME_RE.match(token.text):
            return False
        if index + 1 >= limit or not tokens[index + 1].is_punct("("):
            return False
        close = self._matching(index + 1)
        after = close + 1
        if after >= limit:
            return True
        return not tokens[after].is_punct(";") and tokens[after].line > tokens[close].end_line

    def _verbatim_statement(self, index: int, limit: int) -> Tuple[str, int]:
        """Text of one statement ending at its ``;`` or at its body's closing brace.

        A ``;`` directly after the body belongs to the statement, as does a
        comment on the same line.

        Returns:
            Tuple of (dedented text, index after the statement).
        """
        last, body_open, _ = self._declaration_span(index, limit)
        if body_open is not None and last + 1 < limit and self.tokens[last + 1].is_punct(";"):
            last += 1
        text = dedent_block(self._slice(index, last), TAB_WIDTH)
        postfix, next_index = self._take_postfix(last + 1, self.tokens[last])
        if postfix:
            text = f"{text} {postfix}"
        return text, next_index

    def _opaque_statement(
        self, builder: _AggregateBuilder, index: int, limit: int, comments: Tuple[str, ...]
    ) -> int:
        text, next_index = self._verbatim_statement(index, limit)
        builder.fragments.append(
            OpaqueFragment(
                text=text,
                order=builder.next_order(),
                line=self.tokens[index].line,
                leading_comments=comments,
            )
        )
        return next_index

    def _declaration_span(self, index: int, limit: int):
        """Find where a member or method declaration ends.

        Returns:
            Tuple of (end_index, body_open, body_close). ``end_index`` is the
            terminating ``;`` or the body's closing brace; the body indices
            are None for declarations without a body.
        """
        tokens = self.tokens
        seen_call = False
        in_initializer_list = False
        i = index
        while i < limit:
            token = tokens[i]
            if token.kind != PUNCT:
                i += 1
                continue
            if token.text in "([":
                if token.text == "(" and not in_initializer_list:
                    seen_call = True
                i = self._matching(i) + 1
                continue
            if token.text == ":" and seen_call:
                in_initializer_list = True
            elif token.text == ";":
                return i, None, None
            elif token.text == "{":
                close = self._matching(i)
                brace_init = not seen_call or (
                    in_initializer_list and tokens[i - 1].kind == IDENT
                )
                if brace_init:
                    i = close + 1
                    continue
                return close, i, close
            i += 1
        return limit - 1, None, None

    def _declaration(
        self, builder: _AggregateBuilder, index: int, limit: int, comments: Tuple[str, ...]
    ) -> int:
        end, body_open, body_close = self._declaration_span(index, limit)
        head_end = body_open if body_open is not None else end
        terminated = body_open is not None or self.tokens[end].is_punct(";")

        paren = self._method_paren(index, head_end)
        if terminated and paren is not None:
            method = self._parse_method(builder, index, head_end, paren, body_open, body_close, comments)
            next_index = end + 1
            if body_open is not None and next_index < limit and self.tokens[next_index].is_punct(";"):
                next_index += 1
            postfix, next_index = self._take_postfix(next_index, self.tokens[next_index - 1])
            if method is None:
                logger.debug("%s:%d: deleted function skipped", self.path, self.tokens[index].line)
                return next_index
            if postfix:
                method = replace(method, postfix_comment=postfix)
            builder.methods.append(method)
            return next_index

        elif terminated:
            members = self._parse_members(builder, index, end, comments)
            if members:
                postfix, next_index = self._take_postfix(end + 1, self.tokens[end])
                if postfix:
                    members[-1] = replace(members[-1], postfix_comment=postfix)
                builder.members.extend(members)
                return next_index

        text = dedent_block(self._slice(index, end), TAB_WIDTH)
        postfix, next_index = self._take_postfix(end + 1, self.tokens[end])
        if postfix:
            text = f"{text} {postfix}"
        self._unrecognized(text, self.tokens[index].line, builder.name)
        builder.fragments.append(
            OpaqueFragment(
                text=text,
                order=builder.next_order(),
                line=self.tokens[index].line,
                leading_comments=comments,
            )
        )
        return next_index

    def _method_paren(self, index: int, limit: int) -> Optional[int]:
        """Index of the ``(`` opening a method's parameter list, if any."""
        tokens = self.tokens
        i = index
        while i < limit:
            token = tokens[i]
            if token.is_punct("=", "{"):
                return None
            if token.is_punct("["):
                i = self._matching(i) + 1
                continue
            if token.is_punct("("):
                prev = tokens[i - 1] if i > index else None
                if prev is None:
                    return None
                if prev.kind == IDENT and prev.text in IGNORED_DECL_MACROS | {"alignas", "decltype"}:
                    i = self._matching(i) + 1
                    continue
                if prev.is_ident("operator") and tokens[i + 1].is_punct(")") and tokens[i + 2].is_punct("("):
                    return i + 2
                inner = tokens[i + 1] if i + 1 < limit else None
                if inner is not None and inner.is_punct("*", "&", "^"):
                    # Function pointer member
                    return None
                if prev.kind == IDENT or (prev.kind == PUNCT and tokens[i - 2].is_ident("operator")):
                    return i
                return None
            i += 1
        return None

    def _parse_method(
        self,
        builder: _AggregateBuilder,
        index: int,
        head_end: int,
        paren: int,
        body_open: Optional[int],
        body_close: Optional[int],
        comments: Tuple[str, ...],
    ) -> Optional[MethodEntity]:
        tokens = self.tokens
        is_static = is_virtual = False
        i = index
        while i < paren:
            token = tokens[i]
            if token.kind == IDENT and token.text in METHOD_SPECIFIERS:
                is_static = is_static or token.text == "static"
                is_virtual = is_virtual or token.text == "virtual"
                i += 1
            elif token.kind == IDENT and token.text in IGNORED_DECL_MACROS and tokens[i + 1].is_punct("("):
                i = self._matching(i + 1) + 1
            elif token.kind == COMMENT:
                i += 1
            else:
                break
        type_start = i

        # Name: identifier (or operator / destructor) right before the paren,
        # with any ``Class::`` qualification stripped.
        name_index = paren - 1
        if tokens[name_index].kind == PUNCT and name_index - 1 >= 0 and tokens[name_index - 1].is_ident("operator"):
            name_index -= 1
        elif tokens[name_index].is_punct(")") and tokens[name_index - 2].is_ident("operator"):
            name_index -= 2
        if name_index > type_start and tokens[name_index - 1].is_punct("~"):
            name_index -= 1
        name = "".join(t.text for t in tokens[name_index:paren])
        qualified_start = name_index
        while (
            qualified_start - 2 >= type_start
            and tokens[qualified_start - 1].is_punct("::")
            and tokens[qualified_start - 2].kind == IDENT
        ):
            qualified_start -= 2

        return_type = ""
        if qualified_start > type_start:
            return_type = _collapse(
                self.text[tokens[type_start].start:tokens[qualified_start].start]
            )
            return_type = re.sub(r"\b(?:inline|virtual|static|explicit)\b\s*", "", return_type).strip()

        close_paren = self._matching(paren)
        raw_params = self.text[tokens[paren].end:tokens[close_paren].start]
        parameters = tuple(parse_parameters(raw_params))

        is_const = is_pure = False
        initializers: Tuple[Tuple[str, str], ...] = ()
        j = close_paren + 1
        while j < head_end:
            token = tokens[j]
            if token.kind == IDENT and token.text in METHOD_TRAILING_QUALIFIERS:
                is_const = is_const or token.text == "const"
                if j + 1 < head_end and tokens[j + 1].is_punct("("):
                    j = self._matching(j + 1)
            elif token.is_punct("="):
                value = tokens[j + 1].text if j + 1 < head_end else ""
                if value == "0":
                    is_pure = True
                elif value == "delete":
                    return None
                elif value == "default":
                    body_open = body_open if body_open is not None else -1
                break
            elif token.is_punct(":"):
                initializers = self._initializers(j + 1, head_end)
                break
            j += 1

        if body_open is None:
            body = None
            local_structs: Tuple[StructEntity, ...] = ()
        elif body_open == -1:
            body = ""
            local_structs = ()
        else:
            body = dedent_block(self.text[tokens[body_open].end:tokens[body_close].start], TAB_WIDTH)
            local_structs = self._local_structs(body_open, body_close)

        bare_name = name.lstrip("~")
        return MethodEntity(
            name=name,
            return_type=return_type,
            parameters=parameters,
            access=builder.access,
            is_static=is_static,
            is_const=is_const,
            is_virtual=is_virtual,
            is_pure=is_pure,
            is_constructor=bare_name == builder.name and not name.startswith("~"),
            is_destructor=name.startswith("~"),
            inline_body=body,
            initializers=initializers,
            leading_comments=comments,
            local_structs=local_structs,
            origin=self.path if body is not None else "",
            order=builder.next_order(),
            line=tokens[index].line,
        )

    def _initializers(self, start: int, end: int) -> Tuple[Tuple[str, str], ...]:
        if start >= end:
            return ()
        raw = self.text[self.tokens[start].start:self.tokens[end - 1].end]
        entries = []
        for block in split_parameter_blocks(raw):
            match = re.match(r"^([A-Za-z_][\w:]*)\s*[({](.*)[)}]$", block.text, re.DOTALL)
            if match:
                entries.append((match.group(1), _collapse(match.group(2))))
        return tuple(entries)

    def _local_structs(self, body_open: int, body_close: int) -> Tuple[StructEntity, ...]:
        """Aggregates defined inside an inline body; they stay in the body."""
        tokens = self.tokens
        found = []
        k = body_open + 1
        while k < body_close:
            token = tokens[k]
            if token.kind == IDENT and token.text in AGGREGATE_KEYWORDS and self._opens_aggregate(k):
                keyword, tag, _, _, open_index, _ = self._parse_aggregate_head(k)
                if open_index >= body_close:
                    break
                close_index = self._matching(open_index)
                semi = self._find_semicolon(close_index + 1, body_close)
                start = k - 1 if tokens[k - 1].is_ident("typedef") else k
                trailing = [t.text for t in tokens[close_index + 1:semi] if t.kind == IDENT]
                name = tag or (trailing[0] if trailing else f"Anonymous{token.line}")
                builder = _AggregateBuilder(name=name, is_struct=keyword != "class", access=ACCESS_PUBLIC)
                self._scan_body(builder, open_index, close_index)
                last = min(semi, body_close - 1)
                found.append(
                    StructEntity(
                        name=name,
                        members=tuple(builder.members),
                        is_local=True,
                        text=dedent_block(self._slice(start, last), TAB_WIDTH),
                        line=token.line,
                    )
                )
                k = semi + 1
                continue
            k += 1
        return tuple(found)

    def _parse_members(
        self, builder: _AggregateBuilder, index: int, end: int, comments: Tuple[str, ...]
    ) -> List[MemberEntity]:
        """Parse ``[static] [const] Type name[size] [= value], other;``."""
        tokens = self.tokens
        segments: List[Tuple[int, int]] = []
        depth = 0
        seg_start = index
        seen_init = False
        for k in range(index, end):
            token = tokens[k]
            if token.kind != PUNCT:
                continue
            if token.text in "([{":
                depth += 1
            elif token.text in ")]}":
                depth -= 1
            elif token.text == "=" and depth == 0:
                seen_init = True
            elif token.text == "<" and not seen_init:
                depth += 1
            elif token.text == ">" and not seen_init:
                depth -= 1
            elif token.text == "," and depth == 0:
                segments.append((seg_start, k))
                seg_start = k + 1
                seen_init = False
        segments.append((seg_start, end))

        members: List[MemberEntity] = []
        base_type = None
        flags = {}
        for seg_index, (start, stop) in enumerate(segments):
            parsed = self._parse_declarator(start, stop, base_type is None)
            if parsed is None:
                return []
            type_text, name, array_size, default_value, seg_flags = parsed
            if base_type is None:
                base_type = type_text
                flags = seg_flags
            else:
                seg_flags = dict(flags, is_pointer=seg_flags["is_pointer"], is_reference=seg_flags["is_reference"])
            members.append(
                MemberEntity(
                    type=base_type,
                    name=name,
                    access=builder.access,
                    array_size=array_size,
                    default_value=default_value,
                    is_static=seg_flags["is_static"],
                    is_const=seg_flags["is_const"],
                    is_pointer=seg_flags["is_pointer"],
                    is_reference=seg_flags["is_reference"],
                    leading_comments=comments if seg_index == 0 else (),
                    order=builder.next_order(),
                    line=tokens[start].line,
                )
            )
        return members

    def _parse_declarator(self, start: int, stop: int, with_type: bool):
        tokens = self.tokens
        init_index = None
        name_limit = None
        array_size = None
        k = start
        while k < stop:
            token = tokens[k]
            if token.is_punct("("):
                # Function pointers and direct initialization are not members
                return None
            if token.is_punct("["):
                close = self._matching(k)
                if array_size is None:
                    array_size = _collapse(self.text[token.end:tokens[close].start])
                if name_limit is None:
                    name_limit = k
                k = close + 1
                continue
            if token.is_punct("=", "{", ":"):
                init_index = k
                if name_limit is None:
                    name_limit = k
                break
            k += 1

        if name_limit is None:
            name_limit = stop
        idents = [
            k for k in range(start, name_limit)
            if tokens[k].kind == IDENT and tokens[k].text not in MEMBER_SPECIFIERS
        ]
        if not idents:
            return None
        name_index = idents[-1]
        if with_type and len(idents) < 2:
            return None

        words = [tokens[k].text for k in range(start, name_limit) if tokens[k].kind == IDENT]
        flags = {
            "is_static": "static" in words,
            "is_const": "const" in words or "constexpr" in words,
            "is_pointer": any(tokens[k].is_punct("*") for k in range(start, name_index)),
            "is_reference": any(tokens[k].is_punct("&") for k in range(start, name_index)),
        }

        type_text = ""
        if with_type and name_index > start:
            raw_type = _COMMENT_RE.sub(" ", self.text[tokens[start].start:tokens[name_index - 1].end])
            type_text = _collapse(_SPECIFIER_WORDS_RE.sub(" ", raw_type).replace("*", " ").replace("&", " "))
            type_text = type_text.replace(" ::", "::").replace(":: ", "::")
            type_text = re.sub(r"\s*<\s*", "<", type_text)
            type_text = re.sub(r"\s*>", ">", type_text)
            if not type_text:
                return None

        default_value = None
        if init_index is not None and init_index < stop:
            init_token = tokens[init_index]
            if init_token.is_punct("="):
                default_value = _collapse(self.text[init_token.end:tokens[stop - 1].end]) or None
            elif init_token.is_punct("{"):
                default_value = _collapse(self.text[init_token.start:tokens[stop - 1].end]) or None

        return type_text, tokens[name_index].text, array_size, default_value, flags


def _indent(text: str, prefix: str = "    ") -> str:
    return "\n".join(prefix + line if line else "" for line in text.split("\n"))


def parse_header_text(text: str, path: str = "<memory>") -> HeaderUnit:
    """Parse header text into a ``HeaderUnit``.

    Args:
        text: Full header text.
        path: Path used for diagnostics and origin tracking.

    Returns:
        The parsed unit.

    Raises:
        HeaderParseError: If a class or struct body is never closed.
    """
    return _HeaderScanner(text, path).scan_unit()


def parse_header_unit(path: str) -> HeaderUnit:
    """Read and parse a header file.

    Raises:
        FileNotFoundError: If the file does not exist.
        HeaderParseError: If the header cannot be scanned to completion.
    """
    try:
        with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
            text = f.read()
    except FileNotFoundError:
        logger.error(f"File not found: {path}")
        raise
    except OSError as e:
        logger.error(f"Error reading file {path}: {e}")
        raise

    unit = parse_header_text(text, os.path.abspath(path))
    logger.info("Parsed header %s: %d classes", os.path.basename(path), len(unit.classes))
    return unit


def parse_header_file(path: str) -> List[ClassEntity]:
    """Parse a header file and return its classes in declaration order.

    Example:
        >>> classes = parse_header_file("CSample.h")
        >>> [c.name for c in classes]
        ['StructOne', 'CSomeClass', 'CSample']
    """
    return list(parse_header_unit(path).classes)


def parse_struct_text(text: str, is_local: bool = False) -> Optional[StructEntity]:
    """Parse the text of one aggregate definition into a ``StructEntity``.

    Used for aggregates found by the source parser inside method bodies.
    """
    scanner = _HeaderScanner(text, "<struct>")
    tokens: Sequence[Token] = scanner.tokens
    start = 1 if tokens and tokens[0].is_ident("typedef") else 0
    if not scanner._opens_aggregate(start):
        return None
    keyword, tag, _, _, open_index, _ = scanner._parse_aggregate_head(start)
    close_index = scanner._matching(open_index)
    trailing = [t.text for t in tokens[close_index + 1:] if t.kind == IDENT]
    name = tag or (trailing[0] if trailing else "")
    builder = _AggregateBuilder(name=name, is_struct=keyword != "class", access=ACCESS_PUBLIC)
    scanner._scan_body(builder, open_index, close_index)
    return StructEntity(
        name=name,
        members=tuple(builder.members),
        is_local=is_local,
        text=dedent_block(text, TAB_WIDTH),
        fragments=tuple(builder.fragments),
    )
