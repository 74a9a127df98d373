"""
Tree-sitter front end for C++ implementation units.

Headers never come through here; ``header_parser`` scans them itself. Each
parse builds its own ``Parser`` so worker threads never share one.
"""

import codecs
import logging
from typing import List, Optional, Tuple

import tree_sitter_cpp as tscpp
from tree_sitter import Language, Node, Parser, Tree

logger = logging.getLogger(__name__)

CPP_LANGUAGE = Language(tscpp.language())


def create_parser() -> Parser:
    """A fresh parser bound to the C++ grammar."""
    return Parser(CPP_LANGUAGE)


def _error_nodes(tree: Tree) -> List[Node]:
    if not tree.root_node.has_error:
        return []
    found: List[Node] = []
    stack = [tree.root_node]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            found.append(node)
        if node.has_error:
            stack.extend(node.children)
    return found


def count_error_nodes(tree: Tree) -> int:
    """Number of ``ERROR`` and missing nodes; 0 for a clean parse."""
    return len(_error_nodes(tree))


def first_error_line(tree: Tree) -> Optional[int]:
    """1-based line of the earliest error node, or None for a clean parse."""
    lines = [node.start_point[0] + 1 for node in _error_nodes(tree)]
    return min(lines) if lines else None


def parse_bytes(source: bytes) -> Tree:
    """Parse C++ source bytes.

    Raises:
        TypeError: If ``source`` is text rather than bytes. Node offsets are
            byte offsets, so callers must keep the exact bytes they parsed.
    """
    if not isinstance(source, bytes):
        raise TypeError(f"Source must be bytes, got {type(source).__name__}")

    tree = create_parser().parse(source)
    logger.debug(
        "Parsed %d bytes of C++%s",
        len(source),
        " with syntax errors" if tree.root_node.has_error else "",
    )
    return tree


def read_source_bytes(file_path: str) -> bytes:
    """Raw bytes of an implementation unit, minus any UTF-8 byte order mark.

    Legacy Visual Studio projects often save sources with a BOM, which the
    grammar would otherwise report as an error at line 1.
    """
    with open(file_path, "rb") as f:
        data = f.read()
    if data.startswith(codecs.BOM_UTF8):
        logger.debug("%s: byte order mark stripped", file_path)
        data = data[len(codecs.BOM_UTF8):]
    return data


def parse_file(file_path: str) -> Tuple[Tree, bytes]:
    """Read and parse an implementation unit.

    Returns:
        The tree and the bytes it was built from.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
    """
    try:
        source_bytes = read_source_bytes(file_path)
    except OSError as exc:
        logger.error("Cannot read implementation unit %s: %s", file_path, exc)
        raise
    return parse_bytes(source_bytes), source_bytes
