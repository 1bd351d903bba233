"""
Resolved attribute values of actions.

A value is exactly one of four kinds: a compile-time literal, a raw
code expression (``<%= ... %>``), an expression-language value, or the
body of a ``jsp:attribute`` child.
"""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING, List, Optional

from ..el import ELNodes

if TYPE_CHECKING:  # pragma: no cover
    from ..taglib.model import TagAttributeInfo
    from .variants import NamedAttribute


class AttributeKind(Enum):
    LITERAL = "literal"
    SCRIPT = "script"
    EL = "el"
    NAMED = "named"


class AttributeValue:
    """One attribute of an action after validation."""

    def __init__(
        self,
        tag_attribute_info: Optional["TagAttributeInfo"],
        qname: str,
        uri: Optional[str],
        local_name: str,
        value: Optional[str],
        expression: bool = False,
        el: Optional[ELNodes] = None,
        dynamic: bool = False,
        named_attribute: Optional["NamedAttribute"] = None,
    ):
        self.tag_attribute_info = tag_attribute_info
        self.qname = qname
        self.uri = uri
        self.local_name = local_name
        self.value = value
        self.is_expression = expression
        self.el = el
        self.is_dynamic = dynamic
        self.named_attribute_node = named_attribute

    @classmethod
    def from_named_attribute(cls, na: "NamedAttribute", tai=None, dynamic: bool = False) -> "AttributeValue":
        return cls(tai, na.name or "", None, na.attr_local_name or "", None,
                   dynamic=dynamic, named_attribute=na)

    @property
    def kind(self) -> AttributeKind:
        if self.named_attribute_node is not None:
            return AttributeKind.NAMED
        if self.is_expression:
            return AttributeKind.SCRIPT
        if self.el is not None:
            return AttributeKind.EL
        return AttributeKind.LITERAL

    @property
    def is_named_attribute(self) -> bool:
        return self.named_attribute_node is not None

    @property
    def is_literal(self) -> bool:
        return self.kind is AttributeKind.LITERAL

    @property
    def is_deferred_input(self) -> bool:
        return bool(self.tag_attribute_info and self.tag_attribute_info.deferred_value)

    @property
    def is_deferred_method_input(self) -> bool:
        return bool(self.tag_attribute_info and self.tag_attribute_info.deferred_method)

    @property
    def is_el_interpreter_input(self) -> bool:
        return self.el is not None or self.is_deferred_input or self.is_deferred_method_input

    @property
    def expected_type_name(self) -> str:
        tai = self.tag_attribute_info
        if tai is not None:
            if self.is_deferred_input:
                return tai.expected_type or "object"
            if self.is_deferred_method_input and tai.method_signature:
                sig = tai.method_signature.strip()
                space = sig.find(" ")
                if space > 0:
                    return sig[:space].strip()
        return "object"

    @property
    def parameter_type_names(self) -> List[str]:
        tai = self.tag_attribute_info
        if tai is not None and self.is_deferred_method_input and tai.method_signature:
            sig = tai.method_signature.strip()
            inner = sig[sig.find("(") + 1:]
            inner = inner[:-1]
            if inner.strip():
                return [p.strip() for p in inner.split(",")]
        return []

    def __repr__(self) -> str:
        return f"AttributeValue({self.qname}, {self.kind.value}, {self.value!r})"


__all__ = ["AttributeKind", "AttributeValue"]
