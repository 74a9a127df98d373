"""
C# code generation from merged class entities.

Renders each merged header into one output text per unit key: the header
stem's unit holds the full class, and every other body origin of a partial
class gets a ``partial class`` unit with the methods defined in that file.
Output is a pure function of the merged model, so repeated runs produce
byte-identical text.
"""

import logging
import re
from collections import OrderedDict
from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, Union

from conversion.config import (
    ACCESS_PRIVATE,
    ACCESS_PUBLIC,
    DEFAULT_NAMESPACE,
    INDENT,
)
from conversion.merger import MergedHeader, origin_unit_keys
from conversion.models import (
    ClassEntity,
    CommentPosition,
    DefineEntity,
    MemberEntity,
    MethodEntity,
    OpaqueFragment,
    ParameterEntity,
    RegionMarker,
    StructEntity,
)
from conversion.type_converter import TypeConverter, convert_string_literals

logger = logging.getLogger(__name__)

_INT_RE = re.compile(r"^[-+]?(?:0[xX][0-9a-fA-F]+|\d+)([uUlL]*)$")
_FLOAT_RE = re.compile(r"^[-+]?(?:\d+\.\d*|\.\d+|\d+[eE][-+]?\d+)(?:[eE][-+]?\d+)?[fFdD]?$")
_STRING_RE = re.compile(r'^(?:_T\s*\(\s*)?"(?:[^"\\]|\\.)*"\s*\)?$')

_PREFIX_POSITIONS = (CommentPosition.BEFORE_TYPE, CommentPosition.AFTER_TYPE)


@dataclass
class _Block:
    """Rendered lines of one class-body item; ``spaced`` blocks get blank lines around them."""

    lines: List[str]
    spaced: bool = False


def _comment_lines(comments: Sequence[str]) -> List[str]:
    lines: List[str] = []
    for comment in comments:
        lines.extend(comment.split("\n"))
    return lines


def _indent_lines(lines: Sequence[str], prefix: str) -> List[str]:
    return [prefix + line if line.strip() else "" for line in lines]


def _join_blocks(blocks: Sequence[_Block]) -> List[str]:
    lines: List[str] = []
    previous: Optional[_Block] = None
    for block in blocks:
        if previous is not None and (previous.spaced or block.spaced):
            lines.append("")
        lines.extend(block.lines)
        previous = block
    return lines


def define_declaration(define: DefineEntity) -> str:
    """Render a ``#define`` as a C# constant, or as a comment when untyped.

    Header defines are ``internal``; source defines are ``private``.
    """
    access = "internal" if define.from_header else ACCESS_PRIVATE
    value = define.value.strip()
    int_match = _INT_RE.match(value)
    if int_match:
        literal = value[: len(value) - len(int_match.group(1))] if int_match.group(1) else value
        return f"{access} const int {define.name} = {literal};"
    if _FLOAT_RE.match(value):
        return f"{access} const double {define.name} = {value};"
    if _STRING_RE.match(value):
        return f"{access} const string {define.name} = {convert_string_literals(value)};"
    return f"// #define {define.name} {value}".rstrip()


def has_source_regions(methods: Sequence[MethodEntity]) -> bool:
    """Whether the source regions of ``methods`` open and close in balance."""
    depth = 0
    for method in methods:
        if method.region_start is not None:
            depth += 1
        if method.region_end is not None:
            depth -= 1
            if depth < 0:
                return False
    return depth == 0


class CsGenerator:
    """Renders merged headers into C# source text.

    Args:
        namespace: File-scoped namespace written at the top of every unit.
        type_converter: Lookup used for member, parameter and return types.
    """

    def __init__(self, namespace: str = DEFAULT_NAMESPACE, type_converter: Optional[TypeConverter] = None):
        self.namespace = namespace
        self.types = type_converter or TypeConverter()

    # ------------------------------------------------------------------
    # Units
    # ------------------------------------------------------------------

    def generate_unit_outputs(self, merged: MergedHeader) -> "OrderedDict[str, str]":
        """Render one merged header.

        File-scope fragments the scanner kept verbatim are written at their
        position among the header's types.

        Returns:
            Output text per unit key, the header stem first.
        """
        main_stem = merged.stem
        bodies: "OrderedDict[str, List[List[str]]]" = OrderedDict()
        bodies[main_stem] = []

        entries: List[Tuple[int, int, Union[ClassEntity, StructEntity, OpaqueFragment]]] = []
        for index, struct in enumerate(merged.structs):
            entries.append((struct.line if index < len(merged.unit.structs) else 1 << 30, index, struct))
        offset = len(entries)
        for index, fragment in enumerate(merged.unit.fragments):
            entries.append((fragment.line, offset + index, fragment))
        offset = len(entries)
        for index, entity in enumerate(merged.classes):
            entries.append((entity.line, offset + index, entity))
        entries.sort(key=lambda e: (e[0], e[1]))

        for _, _, entry in entries:
            if isinstance(entry, StructEntity):
                bodies[main_stem].append(self.render_struct(entry, "internal"))
                continue
            if isinstance(entry, OpaqueFragment):
                bodies[main_stem].append(_comment_lines(entry.leading_comments) + entry.text.split("\n"))
                continue
            if entry.is_interface:
                bodies[main_stem].append(self.render_interface(entry))
                extensions = self.render_interface_extensions(entry)
                if extensions:
                    bodies[main_stem].append(extensions)
                continue
            unit_keys = origin_unit_keys(entry, merged.unit.path) if entry.is_partial else {}
            bodies[main_stem].append(self.render_class(entry, main_stem, True, unit_keys))
            for key in unit_keys.values():
                if key != main_stem:
                    bodies.setdefault(key, []).append(self.render_class(entry, key, False, unit_keys))

        outputs: "OrderedDict[str, str]" = OrderedDict()
        for key, blocks in bodies.items():
            file_comments = merged.unit.file_comments if key == main_stem else ()
            outputs[key] = self._render_file(file_comments, blocks)
        logger.debug("Rendered %s into %d unit(s)", merged.unit.path, len(outputs))
        return outputs

    def _render_file(self, file_comments: Sequence[str], class_blocks: Sequence[List[str]]) -> str:
        lines: List[str] = _comment_lines(file_comments)
        if lines:
            lines.append("")
        lines.append(f"namespace {self.namespace};")
        for block in class_blocks:
            lines.append("")
            lines.extend(block)
        text = "\n".join(line.rstrip() for line in lines)
        return text.rstrip("\n") + "\n"

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def _class_modifiers(self, entity: ClassEntity) -> str:
        if entity.is_struct:
            return ""
        every = list(entity.members) + list(entity.methods) + list(entity.extra_methods)
        if every and all(item.is_static for item in every):
            return "static "
        if any(m.is_pure for m in entity.methods):
            return "abstract "
        return ""

    def _declaration_line(self, entity: ClassEntity) -> str:
        partial = "partial " if entity.is_partial else ""
        bases = f" : {', '.join(entity.base_types)}" if entity.base_types else ""
        return f"internal {self._class_modifiers(entity)}{partial}class {entity.name}{bases}"

    @staticmethod
    def _in_unit(origin: str, key: str, is_main: bool, unit_keys: Mapping[str, str]) -> bool:
        if origin in unit_keys:
            return unit_keys[origin] == key
        return is_main

    def _methods_for_unit(
        self,
        entity: ClassEntity,
        key: str,
        is_main: bool,
        unit_keys: Mapping[str, str],
    ) -> Tuple[List[MethodEntity], List[MethodEntity]]:
        """Split header-ordered methods and extra methods that belong to ``key``."""
        def belongs(method: MethodEntity) -> bool:
            if not entity.is_partial:
                return True
            if not method.has_body or not method.origin:
                return is_main
            return self._in_unit(method.origin, key, is_main, unit_keys)

        methods = [m for m in entity.methods if belongs(m)]
        extras = [m for m in entity.extra_methods if belongs(m)]
        if not is_main:
            methods = sorted(methods + extras, key=lambda m: m.line)
            extras = []
        return methods, extras

    def render_class(
        self,
        entity: ClassEntity,
        key: str,
        is_main: bool = True,
        unit_keys: Optional[Mapping[str, str]] = None,
    ) -> List[str]:
        """Render the part of a class that belongs to the unit ``key``.

        Only the main unit carries members, nested types and header content.
        ``unit_keys`` maps each body origin of a partial class to its unit.
        In a ``struct`` made of data members only, public members render as
        ``internal``.
        """
        unit_keys = unit_keys or {}
        methods, extras = self._methods_for_unit(entity, key, is_main, unit_keys)
        source_regions = has_source_regions(methods + extras)
        data_only = entity.is_struct and not entity.methods and not entity.extra_methods

        blocks: List[_Block] = []
        defines = [
            d for d in entity.defines
            if not entity.is_partial
            or (is_main if d.from_header else self._in_unit(d.origin, key, is_main, unit_keys))
        ]
        for define in defines:
            blocks.append(_Block(_comment_lines(define.leading_comments) + [define_declaration(define)]))

        if is_main:
            items: List[Tuple[int, object]] = [(m.order, m) for m in entity.members]
            items += [(s.order, s) for s in entity.nested_structs]
            items += [(r.order, r) for r in entity.regions]
            items += [(f.order, f) for f in entity.fragments]
            items += [(m.order, m) for m in methods]
            items.sort(key=lambda item: item[0])
            ordered = [item for _, item in items] + extras
        else:
            ordered = list(methods)

        for item in ordered:
            if isinstance(item, MemberEntity):
                access = "internal" if data_only and item.access == ACCESS_PUBLIC else None
                blocks.append(_Block(self.render_member(item, access), spaced=bool(item.leading_comments)))
            elif isinstance(item, StructEntity):
                blocks.append(_Block(self.render_struct(item, item.access or ACCESS_PRIVATE), spaced=True))
            elif isinstance(item, RegionMarker):
                keyword = "#region" if item.is_start else "#endregion"
                blocks.append(_Block([f"//{keyword} {item.label}".rstrip()], spaced=True))
            elif isinstance(item, OpaqueFragment):
                lines = _comment_lines(item.leading_comments) + item.text.split("\n")
                blocks.append(_Block(lines, spaced="\n" in item.text))
            elif isinstance(item, MethodEntity):
                blocks.extend(self.render_method(entity, item, source_regions))

        lines = _comment_lines(entity.leading_comments) if is_main else []
        lines.append(self._declaration_line(entity))
        lines.append("{")
        lines.extend(_indent_lines(_join_blocks(blocks), INDENT))
        closing = "}"
        if is_main and entity.trailing_comment:
            closing = f"}} {entity.trailing_comment}"
        lines.append(closing)
        return lines

    def render_member(self, member: MemberEntity, access: Optional[str] = None) -> List[str]:
        lines = _comment_lines(member.leading_comments)
        cs_type = self.types.convert_type(member.type)
        value = member.default_value
        if value is not None and member.array_size is None and value.startswith("{") and value.endswith("}"):
            value = value[1:-1].strip() or None

        if member.is_const and value is not None:
            modifiers = "const "
        elif member.is_const:
            modifiers = "static readonly " if member.is_static else "readonly "
        else:
            modifiers = "static " if member.is_static else ""

        if member.array_size is not None or (value is not None and value.startswith("{") and member.is_static):
            if modifiers == "const ":
                modifiers = "static readonly "
            declaration = f"{cs_type}[] {member.name}"
            if value is not None:
                declaration += f" = {self.types.convert_default_value(value)}"
            elif member.array_size:
                declaration += f" = new {cs_type}[{member.array_size}]"
        else:
            declaration = f"{cs_type} {member.name}"
            if value is not None:
                declaration += f" = {self.types.convert_default_value(value)}"

        text = f"{access or member.access} {modifiers}{declaration};"
        if member.postfix_comment:
            text += f" {member.postfix_comment}"
        lines.append(text)
        return lines

    def render_struct(self, struct: StructEntity, access: str) -> List[str]:
        """Render a unit-level or nested struct as a class, members in order.

        Public C++ members become ``internal``.
        """
        items: List[Tuple[int, object]] = [(m.order, m) for m in struct.members]
        items += [(f.order, f) for f in struct.fragments]
        items.sort(key=lambda item: item[0])

        body: List[str] = []
        for _, item in items:
            if isinstance(item, MemberEntity):
                body.extend(self.render_member(item, "internal" if item.access == ACCESS_PUBLIC else None))
            else:
                body.extend(_comment_lines(item.leading_comments))
                body.extend(item.text.split("\n"))

        lines = _comment_lines(struct.leading_comments)
        lines.append(f"{access} class {struct.name}")
        lines.append("{")
        lines.extend(_indent_lines(body, INDENT))
        lines.append("}")
        return lines

    # ------------------------------------------------------------------
    # Interfaces
    # ------------------------------------------------------------------

    def render_interface(self, entity: ClassEntity) -> List[str]:
        access = "public" if entity.is_exported else "internal"
        bases = f" : {', '.join(entity.base_types)}" if entity.base_types else ""
        blocks: List[_Block] = []
        for method in entity.methods:
            if method.is_static or method.is_constructor or method.is_destructor:
                continue
            signature = self._signature_lines(
                "", self._return_type(method) + method.name, method.parameters, ";"
            )
            blocks.append(_Block(_comment_lines(method.leading_comments) + signature, spaced=bool(method.leading_comments)))
        body = _join_blocks(blocks)

        lines = _comment_lines(entity.leading_comments)
        lines.append(f"{access} interface {entity.name}{bases}")
        lines.append("{")
        lines.extend(_indent_lines(body, INDENT))
        lines.append(f"}} {entity.trailing_comment}" if entity.trailing_comment else "}")
        return lines

    def render_interface_extensions(self, entity: ClassEntity) -> Optional[List[str]]:
        """Static methods of an interface, hosted by ``{Name}Extensions``."""
        statics = [m for m in entity.methods + entity.extra_methods if m.is_static]
        if not statics:
            return None
        access = "public" if entity.is_exported else "internal"
        blocks: List[_Block] = []
        for method in statics:
            blocks.extend(self.render_method(entity, method, False, access_override="public"))
        lines = [f"{access} static class {entity.name}Extensions", "{"]
        lines.extend(_indent_lines(_join_blocks(blocks), INDENT))
        lines.append("}")
        return lines

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def _return_type(self, method: MethodEntity) -> str:
        if method.is_constructor or method.is_destructor:
            return ""
        return self.types.convert_type(method.return_type) + " "

    def render_parameter(self, parameter: ParameterEntity) -> str:
        """``[out |ref ]Type name[ = default]``."""
        if "(" in parameter.type:
            # Function pointer: the declarator carries the name
            return parameter.type
        modifier = ""
        if parameter.is_pointer and not parameter.is_const:
            modifier = "out "
        elif parameter.is_reference and not parameter.is_const:
            modifier = "ref "
        text = f"{modifier}{self.types.convert_type(parameter.type)}"
        if parameter.name:
            text += f" {parameter.name}"
        if parameter.default_value is not None and not modifier:
            text += f" = {self.types.convert_default_value(parameter.default_value)}"
        return text

    def _signature_lines(
        self, modifiers: str, head: str, parameters: Sequence[ParameterEntity], closer: str
    ) -> List[str]:
        """Single-line signature, or one parameter per line when any carries comments."""
        if not any(p.comments for p in parameters):
            rendered = ", ".join(self.render_parameter(p) for p in parameters)
            return [f"{modifiers}{head}({rendered}){closer}"]

        lines = [f"{modifiers}{head}("]
        for index, parameter in enumerate(parameters):
            prefix = "".join(c.text + " " for c in parameter.comments_at(*_PREFIX_POSITIONS))
            suffix = "".join(" " + c.text for c in parameter.comments_at(CommentPosition.AFTER_NAME))
            separator = "," if index < len(parameters) - 1 else f"){closer}"
            lines.append(f"{INDENT}{prefix}{self.render_parameter(parameter)}{separator}{suffix}")
        return lines

    def _method_modifiers(self, method: MethodEntity, access_override: Optional[str]) -> str:
        if method.is_destructor:
            return ""
        parts = [access_override or method.access]
        if method.is_static:
            parts.append("static")
        elif method.is_pure:
            parts.append("abstract")
        elif method.is_virtual:
            parts.append("virtual")
        return " ".join(parts) + " "

    def render_method(
        self,
        entity: ClassEntity,
        method: MethodEntity,
        source_regions: bool,
        access_override: Optional[str] = None,
    ) -> List[_Block]:
        blocks: List[_Block] = []
        if method.region_start is not None:
            keyword = "#region" if source_regions else "//#region"
            blocks.append(_Block([f"{keyword} {method.region_start}".rstrip()], spaced=True))

        lines = _comment_lines(method.leading_comments) + _comment_lines(method.source_comments)
        name = f"~{entity.name}" if method.is_destructor else (entity.name if method.is_constructor else method.name)
        modifiers = self._method_modifiers(method, access_override)
        head = self._return_type(method) + name

        if not method.has_body:
            lines.extend(self._signature_lines(modifiers, head, method.parameters, ";"))
        else:
            lines.extend(self._signature_lines(modifiers, head, method.parameters, ""))
            lines.append("{")
            body: List[str] = [
                f"{member} = {self.types.convert_default_value(value)};"
                for member, value in method.initializers
            ]
            if method.body:
                if body:
                    body.append("")
                body.extend(convert_string_literals(method.body).split("\n"))
            lines.extend(_indent_lines(body, INDENT))
            lines.append("}")
        if method.postfix_comment:
            lines[-1] = f"{lines[-1]} {method.postfix_comment}"
        blocks.append(_Block(lines, spaced=True))

        if method.region_end is not None:
            keyword = "#endregion" if source_regions else "//#endregion"
            blocks.append(_Block([f"{keyword} {method.region_end}".rstrip()], spaced=True))
        return blocks


def generate_unit_outputs(
    merged: MergedHeader,
    namespace: str = DEFAULT_NAMESPACE,
    type_converter: Optional[TypeConverter] = None,
) -> Dict[str, str]:
    """Render a merged header into C# text keyed by unit stem."""
    return CsGenerator(namespace, type_converter).generate_unit_outputs(merged)
