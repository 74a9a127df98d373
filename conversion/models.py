"""
Data models for the C++ structural model and conversion diagnostics.

All entities are frozen: parsers build them once and the merger derives new
instances with ``dataclasses.replace``.
"""

import os
from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from conversion.config import HEADER_EXTENSIONS
from conversion.signature import method_signature_from_parts, normalize_parameter_type


class CommentPosition(str, Enum):
    """Location of a comment relative to the parameter it belongs to."""

    BEFORE_TYPE = "before_type"
    AFTER_TYPE = "after_type"
    AFTER_NAME = "after_name"


@dataclass(frozen=True)
class PositionedComment:
    """A comment anchored to a parameter or member."""

    text: str
    position: CommentPosition

    def to_dict(self) -> Dict[str, Any]:
        return {"text": self.text, "position": self.position.value}


@dataclass(frozen=True)
class ParameterEntity:
    """One parameter of a method declaration or definition.

    Attributes:
        type: Base type with const/pointer/reference stripped.
        name: Parameter name, empty for unnamed parameters.
        is_const: Whether a ``const`` qualifier was present.
        is_pointer: Whether a ``*`` modifier was present.
        is_reference: Whether a single ``&`` modifier was present.
        comments: Comments found inside the fragment, in source order.
        default_value: Default argument expression, if any.
        raw_text: The fragment exactly as split from the parameter list.
    """

    type: str
    name: str = ""
    is_const: bool = False
    is_pointer: bool = False
    is_reference: bool = False
    comments: Tuple[PositionedComment, ...] = ()
    default_value: Optional[str] = None
    raw_text: str = ""

    @property
    def signature(self) -> str:
        """Canonical fragment used for overload identity."""
        return normalize_parameter_type(self.type)

    def comments_at(self, *positions: CommentPosition) -> Tuple[PositionedComment, ...]:
        return tuple(c for c in self.comments if c.position in positions)

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["comments"] = [c.to_dict() for c in self.comments]
        payload["signature"] = self.signature
        return payload


@dataclass(frozen=True)
class MemberEntity:
    """A data member declared in a class or struct body."""

    type: str
    name: str
    access: str
    array_size: Optional[str] = None
    default_value: Optional[str] = None
    is_static: bool = False
    is_const: bool = False
    is_pointer: bool = False
    is_reference: bool = False
    postfix_comment: Optional[str] = None
    leading_comments: Tuple[str, ...] = ()
    order: int = 0
    line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class StructEntity:
    """An aggregate type declared at unit scope, inside a class, or inside a body.

    Local structs (``is_local``) are never promoted: their verbatim ``text``
    stays inside the owning method body.
    """

    name: str
    members: Tuple[MemberEntity, ...] = ()
    is_local: bool = False
    text: str = ""
    fragments: Tuple["OpaqueFragment", ...] = ()
    leading_comments: Tuple[str, ...] = ()
    access: Optional[str] = None
    order: int = 0
    line: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class OpaqueFragment:
    """Verbatim text of a construct no known shape recognised."""

    text: str
    order: int = 0
    line: int = 0
    leading_comments: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RegionMarker:
    """A ``#pragma region`` / ``#pragma endregion`` boundary."""

    is_start: bool
    label: str = ""
    order: int = 0
    line: int = 0


@dataclass(frozen=True)
class DefineEntity:
    """An object-like ``#define`` found at unit scope."""

    name: str
    value: str
    leading_comments: Tuple[str, ...] = ()
    origin: str = ""
    line: int = 0

    @property
    def from_header(self) -> bool:
        return os.path.splitext(self.origin)[1].lower() in HEADER_EXTENSIONS


@dataclass(frozen=True)
class MethodEntity:
    """A method declaration, inline definition or out-of-line definition.

    Attributes:
        name: Unqualified method name (``~Name`` for destructors).
        return_type: Return type text, empty for constructors and destructors.
        parameters: Parsed parameters in declaration order.
        access: Access level in effect at the declaration.
        inline_body: Body text when the header defines the method.
        out_of_line_body: Body text attached from a source unit.
        class_name: Owning class for qualified source definitions.
        initializers: Constructor initializer entries as ``(member, expr)``.
        leading_comments: Comment lines above the header declaration.
        source_comments: Comment lines above the source definition.
        postfix_comment: Comment on the same line as the declaration.
        local_structs: Aggregate types declared inside the body.
        origin: Path of the unit whose text provides the body.
        region_start: Label of a region opened right before the definition.
        region_end: Label of a region closed right after the definition.
        order: Position among the siblings of the owning scope.
        line: 1-indexed line of the declaration.
    """

    name: str
    return_type: str = ""
    parameters: Tuple[ParameterEntity, ...] = ()
    access: str = "private"
    is_static: bool = False
    is_const: bool = False
    is_virtual: bool = False
    is_pure: bool = False
    is_constructor: bool = False
    is_destructor: bool = False
    inline_body: Optional[str] = None
    out_of_line_body: Optional[str] = None
    class_name: Optional[str] = None
    initializers: Tuple[Tuple[str, str], ...] = ()
    leading_comments: Tuple[str, ...] = ()
    source_comments: Tuple[str, ...] = ()
    postfix_comment: Optional[str] = None
    local_structs: Tuple[StructEntity, ...] = ()
    origin: str = ""
    region_start: Optional[str] = None
    region_end: Optional[str] = None
    order: int = 0
    line: int = 0

    @property
    def signature(self) -> str:
        """Canonical overload identity: name plus normalized parameter types."""
        return method_signature_from_parts(self.name, [p.type for p in self.parameters])

    @property
    def body(self) -> Optional[str]:
        return self.inline_body if self.inline_body is not None else self.out_of_line_body

    @property
    def has_body(self) -> bool:
        return self.body is not None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["parameters"] = [p.to_dict() for p in self.parameters]
        payload["signature"] = self.signature
        return payload


@dataclass(frozen=True)
class ClassEntity:
    """A class, struct or interface declared in a header unit.

    ``extra_methods`` holds methods the merger attaches from source units that
    have no header declaration: unmatched definitions and free functions.
    """

    name: str
    members: Tuple[MemberEntity, ...] = ()
    methods: Tuple[MethodEntity, ...] = ()
    extra_methods: Tuple[MethodEntity, ...] = ()
    nested_structs: Tuple[StructEntity, ...] = ()
    base_types: Tuple[str, ...] = ()
    is_interface: bool = False
    is_struct: bool = False
    is_exported: bool = False
    leading_comments: Tuple[str, ...] = ()
    trailing_comment: Optional[str] = None
    fragments: Tuple[OpaqueFragment, ...] = ()
    regions: Tuple[RegionMarker, ...] = ()
    defines: Tuple[DefineEntity, ...] = ()
    directives: Tuple[str, ...] = ()
    is_partial: bool = False
    line: int = 0

    @property
    def base_type(self) -> Optional[str]:
        return self.base_types[0] if self.base_types else None

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["methods"] = [m.to_dict() for m in self.methods]
        payload["extra_methods"] = [m.to_dict() for m in self.extra_methods]
        return payload


@dataclass(frozen=True)
class StaticMemberInit:
    """``Type Class::member = value;`` found in a source unit."""

    class_name: str
    member_name: str
    value: str
    line: int = 0


@dataclass(frozen=True)
class HeaderUnit:
    """Everything parsed from one header file."""

    path: str
    classes: Tuple[ClassEntity, ...] = ()
    structs: Tuple[StructEntity, ...] = ()
    defines: Tuple[DefineEntity, ...] = ()
    file_comments: Tuple[str, ...] = ()
    directives: Tuple[str, ...] = ()
    fragments: Tuple[OpaqueFragment, ...] = ()
    diagnostics: Tuple["Diagnostic", ...] = ()


@dataclass(frozen=True)
class SourceUnit:
    """Everything parsed from one implementation file."""

    path: str
    definitions: Tuple[MethodEntity, ...] = ()
    free_functions: Tuple[MethodEntity, ...] = ()
    static_inits: Tuple[StaticMemberInit, ...] = ()
    structs: Tuple[StructEntity, ...] = ()
    defines: Tuple[DefineEntity, ...] = ()
    parse_error_count: int = 0
    diagnostics: Tuple["Diagnostic", ...] = ()


@dataclass(frozen=True)
class Diagnostic:
    """A non-fatal or per-item fatal finding reported during conversion."""

    kind: str
    message: str
    file_path: str = ""
    line: int = 0
    class_name: Optional[str] = None
    method_name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def __str__(self) -> str:
        location = f"{self.file_path}:{self.line}" if self.line else self.file_path
        return f"[{self.kind}] {location}: {self.message}"


class HeaderParseError(ValueError):
    """Raised when a header unit cannot be scanned to completion."""

    def __init__(self, message: str, path: str = "", line: int = 0):
        self.path = path
        self.line = line
        super().__init__(f"{path}:{line}: {message}" if path else message)
