"""
Structural merge of parsed header and source units.

Merging is a barrier: it runs once every unit has been parsed, because the
split decision and overload matching of a class need all of its definitions.
Header classes are the anchor; source definitions are joined to them by
canonical signature.
"""

import logging
import os
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from conversion.config import (
    ACCESS_PRIVATE,
    ACCESS_PUBLIC,
    DIAG_AMBIGUOUS_OVERLOAD,
    DIAG_ORPHAN_DEFINITION,
    DIAG_STRUCTURAL_MISMATCH,
    DIAG_UNMATCHED_DECLARATION,
    DIAG_UNMATCHED_DEFINITION,
)
from conversion.models import (
    ClassEntity,
    DefineEntity,
    Diagnostic,
    HeaderUnit,
    MethodEntity,
    ParameterEntity,
    SourceUnit,
    StructEntity,
)

logger = logging.getLogger(__name__)


def unit_stem(path: str) -> str:
    """File name without directory and extension (``a/Foo.h`` -> ``Foo``)."""
    return os.path.splitext(os.path.basename(path))[0]


@dataclass(frozen=True)
class MergedHeader:
    """Merged classes of one header, ready for generation.

    Attributes:
        unit: The parsed header unit.
        classes: Merged classes in header order.
        structs: Unit-level structs of the header followed by those of the
            source units whose definitions this header receives.
    """

    unit: HeaderUnit
    classes: Tuple[ClassEntity, ...] = ()
    structs: Tuple[StructEntity, ...] = ()

    @property
    def stem(self) -> str:
        return unit_stem(self.unit.path)


@dataclass(frozen=True)
class MergeResult:
    """Output of ``merge_units``."""

    headers: Tuple[MergedHeader, ...] = ()
    diagnostics: Tuple[Diagnostic, ...] = ()


def body_origins(entity: ClassEntity) -> List[str]:
    """Sorted paths of the files that provide bodies for ``entity``."""
    return sorted({m.origin for m in entity.methods + entity.extra_methods if m.has_body and m.origin})


def origin_unit_keys(entity: ClassEntity, header_path: str) -> "OrderedDict[str, str]":
    """Output unit key for each body origin of a class.

    Every origin file gets a unit of its own. The header stem's unit takes
    the header's inline bodies, or else those of the source file sharing the
    header's stem. Any other origin is keyed by its stem, or by its file name
    when that stem is already taken.

    Returns:
        Origin path -> unit key, the header stem's unit first.
    """
    main_stem = unit_stem(header_path)
    origins = body_origins(entity)
    keys: "OrderedDict[str, str]" = OrderedDict()
    if header_path in origins:
        keys[header_path] = main_stem
    for origin in origins:
        if origin == header_path:
            continue
        stem = unit_stem(origin)
        if stem == main_stem and main_stem not in keys.values():
            keys[origin] = main_stem
            keys.move_to_end(origin, last=False)
        elif stem in keys.values():
            keys[origin] = os.path.basename(origin)
        else:
            keys[origin] = stem
    return keys


def merge_parameters(
    implementation: Sequence[ParameterEntity], declaration: Sequence[ParameterEntity]
) -> Tuple[ParameterEntity, ...]:
    """Combine implementation parameters with header defaults.

    Names, flags and comments come from the implementation; default values
    only exist in the header. A parameter the implementation leaves unnamed
    or uncommented falls back to the header's.
    """
    merged = []
    for index, parameter in enumerate(implementation):
        header_param = declaration[index] if index < len(declaration) else None
        if header_param is None:
            merged.append(parameter)
            continue
        merged.append(
            replace(
                parameter,
                name=parameter.name or header_param.name,
                comments=parameter.comments or header_param.comments,
                default_value=header_param.default_value,
            )
        )
    return tuple(merged)


def merge_method(declaration: MethodEntity, definition: MethodEntity) -> MethodEntity:
    """Attach an out-of-line definition to its header declaration.

    The merged method keeps the header order but takes the source line, so
    split units can list their methods in source file order.
    """
    return replace(
        declaration,
        return_type=declaration.return_type or definition.return_type,
        parameters=merge_parameters(definition.parameters, declaration.parameters),
        is_const=declaration.is_const or definition.is_const,
        out_of_line_body=definition.out_of_line_body,
        class_name=definition.class_name,
        initializers=definition.initializers or declaration.initializers,
        source_comments=definition.source_comments,
        local_structs=definition.local_structs,
        origin=definition.origin,
        region_start=definition.region_start,
        region_end=definition.region_end,
        line=definition.line,
    )


class _Merger:
    """Holds the global indexes built over all parsed units."""

    def __init__(self, header_units: Sequence[HeaderUnit], source_units: Sequence[SourceUnit]):
        self.header_units = sorted(header_units, key=lambda u: u.path)
        self.source_units = sorted(source_units, key=lambda u: u.path)
        self.diagnostics: List[Diagnostic] = []

        # First header wins for duplicated class names
        self.class_owner: Dict[str, int] = {}
        for index, unit in enumerate(self.header_units):
            for entity in unit.classes:
                if entity.name in self.class_owner:
                    logger.debug("Class %s redeclared in %s; first declaration kept", entity.name, unit.path)
                    continue
                self.class_owner[entity.name] = index

        # Definitions per class, in path then document order
        self.definitions: Dict[str, List[MethodEntity]] = {}
        for unit in self.source_units:
            for definition in unit.definitions:
                if definition.class_name not in self.class_owner:
                    self._report(
                        DIAG_ORPHAN_DEFINITION,
                        f"No header declares class '{definition.class_name}'",
                        definition.origin or unit.path,
                        definition.line,
                        definition.class_name,
                        definition.name,
                    )
                    continue
                self.definitions.setdefault(definition.class_name, []).append(definition)

        self.extras: Dict[str, List[MethodEntity]] = {}
        self.source_defines: Dict[str, List[DefineEntity]] = {}
        self.source_structs: Dict[int, List[StructEntity]] = {}
        self.static_inits: Dict[Tuple[str, str], str] = {}
        for unit in self.source_units:
            for init in unit.static_inits:
                self.static_inits.setdefault((init.class_name, init.member_name), init.value)
            self._attach_unit_extras(unit)

    def _report(
        self,
        kind: str,
        message: str,
        file_path: str,
        line: int = 0,
        class_name: Optional[str] = None,
        method_name: Optional[str] = None,
    ) -> None:
        self.diagnostics.append(
            Diagnostic(
                kind=kind,
                message=message,
                file_path=file_path,
                line=line,
                class_name=class_name,
                method_name=method_name,
            )
        )

    def _prefix_class(self, unit: SourceUnit) -> Optional[str]:
        """Longest header class name the unit's stem starts with."""
        stem = unit_stem(unit.path)
        candidates = [name for name in self.class_owner if stem.startswith(name)]
        return max(candidates, key=len) if candidates else None

    def _defining_class(self, unit: SourceUnit) -> Optional[str]:
        """First class with a definition in the unit."""
        return next(
            (d.class_name for d in unit.definitions if d.class_name in self.class_owner), None
        )

    def _attach_unit_extras(self, unit: SourceUnit) -> None:
        """Route free functions, defines and structs of a source unit."""
        function_target = self._prefix_class(unit) or self._defining_class(unit)
        define_target = self._defining_class(unit) or self._prefix_class(unit)

        for function in unit.free_functions:
            if function_target is None:
                self._report(
                    DIAG_ORPHAN_DEFINITION,
                    f"No class receives free function '{function.name}'",
                    unit.path,
                    function.line,
                    method_name=function.name,
                )
                continue
            self.extras.setdefault(function_target, []).append(
                replace(function, access=ACCESS_PRIVATE, is_static=True, class_name=function_target)
            )

        if unit.defines:
            if define_target is None:
                logger.debug("Defines of %s have no receiving class", unit.path)
            else:
                self.source_defines.setdefault(define_target, []).extend(unit.defines)

        target = define_target or function_target
        if unit.structs and target is not None:
            self.source_structs.setdefault(self.class_owner[target], []).extend(unit.structs)

    def merge_class(self, entity: ClassEntity, header_path: str) -> ClassEntity:
        owns = self._owns(entity)
        definitions = self.definitions.get(entity.name, []) if owns else []

        by_signature: "OrderedDict[str, List[int]]" = OrderedDict()
        for index, definition in enumerate(definitions):
            by_signature.setdefault(definition.signature, []).append(index)
        used = set()

        methods: List[MethodEntity] = []
        for method in entity.methods:
            candidates = [i for i in by_signature.get(method.signature, []) if i not in used]

            if method.inline_body is not None:
                if candidates:
                    used.update(candidates)
                    first = definitions[candidates[0]]
                    self._report(
                        DIAG_STRUCTURAL_MISMATCH,
                        f"'{method.signature}' has an inline body and an out-of-line definition; skipped",
                        first.origin,
                        first.line,
                        entity.name,
                        method.name,
                    )
                    continue
                methods.append(method)
                continue

            if method.is_pure:
                methods.append(method)
                continue

            if not candidates:
                self._report(
                    DIAG_UNMATCHED_DECLARATION,
                    f"No definition found for '{method.signature}'",
                    header_path,
                    method.line,
                    entity.name,
                    method.name,
                )
                methods.append(method)
                continue

            used.update(candidates)
            for duplicate in candidates[1:]:
                other = definitions[duplicate]
                self._report(
                    DIAG_AMBIGUOUS_OVERLOAD,
                    f"Duplicate definition of '{method.signature}'; first definition kept",
                    other.origin,
                    other.line,
                    entity.name,
                    method.name,
                )
            methods.append(merge_method(method, definitions[candidates[0]]))

        extras: List[MethodEntity] = []
        for index, definition in enumerate(definitions):
            if index in used:
                continue
            self._report(
                DIAG_UNMATCHED_DEFINITION,
                f"Definition '{definition.signature}' matches no declaration",
                definition.origin,
                definition.line,
                entity.name,
                definition.name,
            )
            extras.append(replace(definition, access=ACCESS_PUBLIC))
        if owns:
            extras.extend(self.extras.get(entity.name, []))

        members = tuple(
            replace(member, default_value=self.static_inits[(entity.name, member.name)])
            if member.is_static and member.default_value is None and (entity.name, member.name) in self.static_inits
            else member
            for member in entity.members
        )

        merged = replace(
            entity,
            members=members,
            methods=tuple(methods),
            extra_methods=tuple(extras),
            defines=entity.defines + tuple(self.source_defines.get(entity.name, []) if owns else ()),
        )

        # Inline bodies originate in the header, matched bodies in their source file
        origins = body_origins(merged)
        if entity.is_interface or len(origins) < 2:
            return merged
        logger.debug("Class %s split across %s", entity.name, [os.path.basename(o) for o in origins])
        return replace(merged, is_partial=True)

    def _owns(self, entity: ClassEntity) -> bool:
        unit = self.header_units[self.class_owner[entity.name]]
        return any(c is entity for c in unit.classes)

    def merge(self) -> MergeResult:
        headers = []
        for index, unit in enumerate(self.header_units):
            classes = [self._with_header_defines(unit, c) for c in unit.classes]
            merged = tuple(self.merge_class(entity, unit.path) for entity in classes)
            headers.append(
                MergedHeader(
                    unit=unit,
                    classes=merged,
                    structs=unit.structs + tuple(self.source_structs.get(index, [])),
                )
            )
        logger.info(
            "Merged %d header units and %d source units (%d diagnostics)",
            len(self.header_units),
            len(self.source_units),
            len(self.diagnostics),
        )
        return MergeResult(headers=tuple(headers), diagnostics=tuple(self.diagnostics))

    def _with_header_defines(self, unit: HeaderUnit, entity: ClassEntity) -> ClassEntity:
        if not unit.defines or not unit.classes:
            if unit.defines:
                logger.debug("Defines of %s have no receiving class", unit.path)
            return entity
        stem = unit_stem(unit.path)
        target = next((c for c in unit.classes if c.name == stem), unit.classes[0])
        if target is not entity:
            return entity
        return replace(entity, defines=unit.defines + entity.defines)


def merge_units(
    header_units: Iterable[HeaderUnit], source_units: Iterable[SourceUnit]
) -> MergeResult:
    """Merge every parsed header and source unit.

    Args:
        header_units: All parsed header units.
        source_units: All parsed source units.

    Returns:
        Merged classes grouped per header, plus merge diagnostics.
    """
    return _Merger(list(header_units), list(source_units)).merge()
