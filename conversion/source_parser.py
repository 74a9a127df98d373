"""
Implementation unit parsing.

Walks the tree-sitter AST of one source file and extracts out-of-line method
definitions (``ReturnType Class::Method(...) { ... }``), free functions,
static member initializers, unit-level structs, ``#define`` constants and
``#pragma region`` markers.

Aggregates defined inside a function body are tagged as local and kept on
the owning method; they are never surfaced as unit-level structs.
"""

import logging
import os
import re
from dataclasses import replace
from typing import List, Optional, Tuple
from tree_sitter import Node, Tree

from conversion.config import (
    ACCESS_PRIVATE,
    AGGREGATE_SPECIFIERS,
    COMMENT_NODE,
    CONTAINER_TYPES,
    DECLARATION_NODE,
    DECLARATOR_WRAPPERS,
    FUNCTION_DEFINITION,
    NAMESPACE_NODE,
    PREPROCESSOR_CONTAINERS,
    TAB_WIDTH,
    TRANSPARENT_WRAPPERS,
)
from conversion.header_parser import parse_struct_text
from conversion.models import (
    DefineEntity,
    HeaderParseError,
    MethodEntity,
    SourceUnit,
    StaticMemberInit,
    StructEntity,
)
from conversion.parameters import parse_parameters
from conversion.parser import count_error_nodes, first_error_line, parse_bytes, parse_file
from conversion.tokenizer import dedent_block

logger = logging.getLogger(__name__)

_SPACE_RE = re.compile(r"\s+")
_TEMPLATE_ARGS_RE = re.compile(r"<[^<>]*>")
_REGION_RE = re.compile(r"^(region|endregion)\b\s*(.*)$", re.DOTALL)
_TRAILING_COMMENT_RE = re.compile(r"\s*(//.*|/\*.*?\*/)\s*$", re.DOTALL)


def _text(node: Node, source_bytes: bytes) -> str:
    return source_bytes[node.start_byte:node.end_byte].decode("utf-8", errors="replace")


def _comment_text(node: Node, source_bytes: bytes) -> str:
    """Comment text with continuation lines re-based to the comment column."""
    column = node.start_point.column
    lines = _text(node, source_bytes).replace("\r", "").expandtabs(TAB_WIDTH).split("\n")
    result = [lines[0].rstrip()]
    for line in lines[1:]:
        head = line[:column]
        result.append((line[column:] if not head.strip() else line.lstrip()).rstrip())
    return "\n".join(result)


def get_preceding_comments(node: Node, source_bytes: bytes) -> Tuple[str, ...]:
    """Collect the comments immediately preceding a definition node.

    Walks backward through siblings, allowing at most a one-line gap, and
    stops at a comment that trails the previous construct on its line.

    Args:
        node: The definition node.
        source_bytes: The raw source file bytes.

    Returns:
        Comment texts in source order.
    """
    comments = []
    sibling = node.prev_sibling
    expected_row = node.start_point.row

    while sibling is not None and sibling.type == COMMENT_NODE:
        if expected_row - sibling.end_point.row > 1:
            break
        previous = sibling.prev_sibling
        if previous is not None and previous.type != COMMENT_NODE and previous.end_point.row == sibling.start_point.row:
            break
        comments.append(_comment_text(sibling, source_bytes))
        expected_row = sibling.start_point.row
        sibling = previous

    comments.reverse()
    return tuple(comments)


def _function_declarator(node: Optional[Node]) -> Optional[Node]:
    """Descend through pointer/reference declarators to the function declarator."""
    while node is not None and node.type in DECLARATOR_WRAPPERS:
        node = node.child_by_field_name("declarator")
    if node is not None and node.type == "function_declarator":
        return node
    return None


def split_qualified_name(text: str) -> Tuple[Optional[str], str]:
    """Split ``ns::Class<T>::Method`` into ``("Class", "Method")``.

    Returns:
        Tuple of (class name or None for unqualified names, member name).
    """
    collapsed = _SPACE_RE.sub("", text)
    previous = None
    while previous != collapsed:
        previous = collapsed
        collapsed = _TEMPLATE_ARGS_RE.sub("", collapsed)
    parts = [p for p in collapsed.split("::") if p]
    if not parts:
        return None, collapsed
    if len(parts) == 1:
        return None, parts[0]
    return parts[-2], parts[-1]


def _initializers(node: Node, source_bytes: bytes) -> Tuple[Tuple[str, str], ...]:
    entries = []
    for child in node.children:
        if child.type != "field_initializer_list":
            continue
        for initializer in child.named_children:
            if initializer.type != "field_initializer" or not initializer.named_children:
                continue
            target = initializer.named_children[0]
            value = initializer.named_children[-1]
            value_text = _text(value, source_bytes).strip()
            if value_text[:1] in "({" and value_text[-1:] in ")}":
                value_text = value_text[1:-1]
            entries.append((_text(target, source_bytes), _SPACE_RE.sub(" ", value_text).strip()))
    return tuple(entries)


def _aggregate_name(specifier: Node, statement: Node, source_bytes: bytes) -> str:
    name_node = specifier.child_by_field_name("name")
    if name_node is not None:
        return _text(name_node, source_bytes)
    declarator = statement.child_by_field_name("declarator") if statement is not specifier else None
    if declarator is not None:
        return re.sub(r"[^\w]", "", _text(declarator, source_bytes))
    return f"Anonymous{specifier.start_point.row + 1}"


def _struct_entity(specifier: Node, source_bytes: bytes, is_local: bool) -> StructEntity:
    """Build a StructEntity from an aggregate specifier and its enclosing statement."""
    statement = specifier
    parent = specifier.parent
    if parent is not None and parent.type in (DECLARATION_NODE, "type_definition", "field_declaration"):
        statement = parent
    text = _text(statement, source_bytes)
    if statement is specifier and not text.rstrip().endswith(";"):
        following = specifier.next_sibling
        if following is not None and following.type == ";":
            text += ";"
    name = _aggregate_name(specifier, statement, source_bytes)
    try:
        parsed = parse_struct_text(text, is_local=is_local)
    except HeaderParseError:
        parsed = None
    if parsed is None:
        return StructEntity(
            name=name,
            is_local=is_local,
            text=dedent_block(text, TAB_WIDTH),
            line=specifier.start_point.row + 1,
        )
    return replace(parsed, name=parsed.name or name, line=specifier.start_point.row + 1)


def find_local_structs(body: Node, source_bytes: bytes) -> Tuple[StructEntity, ...]:
    """Find aggregate definitions nested strictly inside a function body.

    Args:
        body: The body node of a function definition.
        source_bytes: The raw source file bytes.

    Returns:
        Local structs in source order.
    """
    found: List[StructEntity] = []
    stack = list(reversed(body.named_children))
    while stack:
        node = stack.pop()
        if node.type in AGGREGATE_SPECIFIERS and node.child_by_field_name("body") is not None:
            if node.start_byte > body.start_byte and node.end_byte < body.end_byte:
                found.append(_struct_entity(node, source_bytes, is_local=True))
            continue
        stack.extend(reversed(node.named_children))
    return tuple(found)


class _SourceCollector:
    """Accumulates the entities of one implementation unit during a walk."""

    def __init__(self, path: str, source_bytes: bytes):
        self.path = path
        self.source_bytes = source_bytes
        self.definitions: List[MethodEntity] = []
        self.free_functions: List[MethodEntity] = []
        self.static_inits: List[StaticMemberInit] = []
        self.structs: List[StructEntity] = []
        self.defines: List[DefineEntity] = []
        self.pending_region: Optional[str] = None
        self.last_kind: Optional[str] = None
        self.order = 0

    def walk(self, node: Node) -> None:
        for child in node.children:
            self.visit(child)

    def visit(self, node: Node) -> None:
        node_type = node.type

        if node_type == FUNCTION_DEFINITION:
            self._function(node)
        elif node_type in ("template_declaration", "ERROR") or node_type in PREPROCESSOR_CONTAINERS:
            self.walk(node)
        elif node_type == NAMESPACE_NODE or node_type in TRANSPARENT_WRAPPERS:
            body = node.child_by_field_name("body")
            if body is not None:
                self.walk(body)
        elif node_type in CONTAINER_TYPES:
            self.walk(node)
        elif node_type == "preproc_def":
            self._define(node)
        elif node_type == "preproc_call":
            self._pragma(node)
        elif node_type in AGGREGATE_SPECIFIERS and node.child_by_field_name("body") is not None:
            self.structs.append(_struct_entity(node, self.source_bytes, is_local=False))
        elif node_type in (DECLARATION_NODE, "type_definition"):
            self._declaration(node)
        elif node_type == "expression_statement":
            self._assignment(node)

    def _function(self, node: Node) -> None:
        source_bytes = self.source_bytes
        declarator = _function_declarator(node.child_by_field_name("declarator"))
        body = node.child_by_field_name("body")
        if declarator is None or body is None:
            logger.debug("%s:%d: function definition without declarator", self.path, node.start_point.row + 1)
            return

        name_node = declarator.child_by_field_name("declarator")
        class_name, method_name = split_qualified_name(_text(name_node, source_bytes))
        return_type = _SPACE_RE.sub(
            " ", source_bytes[node.start_byte:name_node.start_byte].decode("utf-8", errors="replace")
        ).strip()
        return_type = re.sub(r"\b(?:inline|static|virtual)\b\s*", "", return_type).strip()

        params_node = declarator.child_by_field_name("parameters")
        params_text = _text(params_node, source_bytes)[1:-1] if params_node is not None else ""
        is_const = any(
            child.type == "type_qualifier" and _text(child, source_bytes) == "const"
            for child in declarator.children
        )

        body_text = source_bytes[body.start_byte + 1:body.end_byte - 1].decode("utf-8", errors="replace")
        self.order += 1
        method = MethodEntity(
            name=method_name,
            return_type=return_type,
            parameters=tuple(parse_parameters(params_text)),
            access=ACCESS_PRIVATE,
            is_static=class_name is None,
            is_const=is_const,
            is_constructor=class_name is not None and method_name == class_name,
            is_destructor=method_name.startswith("~"),
            out_of_line_body=dedent_block(body_text, TAB_WIDTH),
            class_name=class_name,
            initializers=_initializers(node, source_bytes),
            source_comments=get_preceding_comments(node, source_bytes),
            local_structs=find_local_structs(body, source_bytes),
            origin=self.path,
            region_start=self.pending_region,
            order=self.order,
            line=node.start_point.row + 1,
        )
        self.pending_region = None

        if class_name is None:
            self.free_functions.append(method)
            self.last_kind = "free"
        else:
            self.definitions.append(method)
            self.last_kind = "definition"

    def _define(self, node: Node) -> None:
        name_node = node.child_by_field_name("name")
        value_node = node.child_by_field_name("value")
        if name_node is None:
            return
        value = _text(value_node, self.source_bytes) if value_node is not None else ""
        match = _TRAILING_COMMENT_RE.search(value)
        if match and not value[: match.start()].count('"') % 2:
            value = value[: match.start()]
        self.defines.append(
            DefineEntity(
                name=_text(name_node, self.source_bytes),
                value=_SPACE_RE.sub(" ", value).strip(),
                leading_comments=get_preceding_comments(node, self.source_bytes),
                origin=self.path,
                line=node.start_point.row + 1,
            )
        )

    def _pragma(self, node: Node) -> None:
        directive = node.child_by_field_name("directive")
        argument = node.child_by_field_name("argument")
        if directive is None or argument is None or _text(directive, self.source_bytes).strip() != "#pragma":
            return
        match = _REGION_RE.match(_text(argument, self.source_bytes).strip())
        if not match:
            return
        label = match.group(2).strip()
        if match.group(1) == "region":
            self.pending_region = label
            return
        target = self.definitions if self.last_kind == "definition" else self.free_functions
        if target:
            target[-1] = replace(target[-1], region_end=label)

    def _declaration(self, node: Node) -> None:
        for child in node.named_children:
            if child.type in AGGREGATE_SPECIFIERS and child.child_by_field_name("body") is not None:
                self.structs.append(_struct_entity(child, self.source_bytes, is_local=False))
                return
        for child in node.named_children:
            if child.type != "init_declarator":
                continue
            target = child.child_by_field_name("declarator")
            while target is not None and target.type in DECLARATOR_WRAPPERS | {"array_declarator"}:
                target = target.child_by_field_name("declarator")
            value = child.child_by_field_name("value")
            if target is None or value is None or target.type != "qualified_identifier":
                continue
            class_name, member = split_qualified_name(_text(target, self.source_bytes))
            if class_name is None:
                continue
            self.static_inits.append(
                StaticMemberInit(
                    class_name=class_name,
                    member_name=member,
                    value=_SPACE_RE.sub(" ", _text(value, self.source_bytes)).strip(),
                    line=node.start_point.row + 1,
                )
            )

    def _assignment(self, node: Node) -> None:
        """``Class::member = value;`` written without a type."""
        expression = node.named_children[0] if node.named_children else None
        if expression is None or expression.type != "assignment_expression":
            return
        left = expression.child_by_field_name("left")
        right = expression.child_by_field_name("right")
        if left is None or right is None or left.type != "qualified_identifier":
            return
        class_name, member = split_qualified_name(_text(left, self.source_bytes))
        if class_name is None:
            return
        self.static_inits.append(
            StaticMemberInit(
                class_name=class_name,
                member_name=member,
                value=_SPACE_RE.sub(" ", _text(right, self.source_bytes)).strip(),
                line=node.start_point.row + 1,
            )
        )


def extract_source_unit(tree: Tree, source_bytes: bytes, path: str) -> SourceUnit:
    """Extract the structural content of a parsed implementation unit.

    Args:
        tree: The parsed tree-sitter tree.
        source_bytes: The raw source file bytes.
        path: Path recorded as the origin of every extracted body.

    Returns:
        The unit's definitions, free functions, initializers, structs and defines.
    """
    collector = _SourceCollector(path, source_bytes)
    collector.walk(tree.root_node)
    parse_error_count = count_error_nodes(tree)

    if parse_error_count:
        logger.warning(
            "File %s contains syntax errors (%d error nodes, first at line %d)",
            os.path.basename(path),
            parse_error_count,
            first_error_line(tree),
        )

    return SourceUnit(
        path=path,
        definitions=tuple(collector.definitions),
        free_functions=tuple(collector.free_functions),
        static_inits=tuple(collector.static_inits),
        structs=tuple(collector.structs),
        defines=tuple(collector.defines),
        parse_error_count=parse_error_count,
    )


def parse_source_text(text: str, path: str = "<memory>") -> SourceUnit:
    """Parse implementation text into a ``SourceUnit``."""
    source_bytes = text.encode("utf-8")
    return extract_source_unit(parse_bytes(source_bytes), source_bytes, path)


def parse_source_file(path: str) -> SourceUnit:
    """Read and parse an implementation file.

    Raises:
        FileNotFoundError: If the file does not exist.
        IOError: If the file cannot be read.
    """
    tree, source_bytes = parse_file(path)
    unit = extract_source_unit(tree, source_bytes, os.path.abspath(path))
    logger.info(
        "Parsed source %s: %d definitions, %d free functions",
        os.path.basename(path),
        len(unit.definitions),
        len(unit.free_functions),
    )
    return unit
