"""
Typed tag library descriptors.

Descriptors are authored as YAML (``*.tld.yaml``) and validated with
pydantic; the same models describe tags implemented by tag files, which
are built from their directives instead of being read from YAML.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, field_validator

from .hooks import TagData, TagExtraInfo, ValidationMessage, VariableInfo, load_object


class BodyContent(str, Enum):
    EMPTY = "empty"
    JSP = "JSP"
    SCRIPTLESS = "scriptless"
    TAGDEPENDENT = "tagdependent"


class VariableScope(str, Enum):
    NESTED = "NESTED"
    AT_BEGIN = "AT_BEGIN"
    AT_END = "AT_END"


CAPABILITIES = frozenset({
    "simple", "iteration", "body", "try_catch_finally", "id_consumer", "dynamic_attributes",
})


class TagAttributeInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    required: bool = False
    rtexprvalue: bool = False
    type: Optional[str] = None
    fragment: bool = False
    deferred_value: bool = False
    deferred_method: bool = False
    expected_type: Optional[str] = None
    method_signature: Optional[str] = None
    description: Optional[str] = None

    def can_be_request_time(self) -> bool:
        return self.rtexprvalue or self.fragment


class TagVariableInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name_given: Optional[str] = None
    name_from_attribute: Optional[str] = None
    class_name: str = "str"
    declare: bool = True
    scope: VariableScope = VariableScope.NESTED


class FunctionInfo(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    function_class: str
    signature: str

    @property
    def method_name(self) -> str:
        """Name between the return type and the opening parenthesis."""
        sig = self.signature.strip()
        start = sig.find(" ")
        end = sig.find("(")
        if start < 0 or end < 0 or end < start:
            raise ValueError(self.signature)
        return sig[start + 1:end].strip()

    @property
    def parameter_types(self) -> List[str]:
        sig = self.signature.strip()
        start = sig.find("(")
        end = sig.rfind(")")
        if start < 0 or end < start:
            raise ValueError(self.signature)
        inner = sig[start + 1:end].strip()
        return [p.strip() for p in inner.split(",")] if inner else []


class TagInfo(BaseModel):
    """Contract of one tag: attributes, variables, body and handler."""

    model_config = ConfigDict(extra="forbid")

    name: str
    handler_class: Optional[str] = None
    body_content: BodyContent = BodyContent.JSP
    capabilities: List[str] = Field(default_factory=list)
    dynamic_attributes: bool = False
    # tag files: page-scoped map receiving undeclared attributes
    dynamic_attributes_map_name: Optional[str] = None
    tei_class: Optional[str] = None
    info: Optional[str] = None
    display_name: Optional[str] = None
    attributes: List[TagAttributeInfo] = Field(default_factory=list)
    variables: List[TagVariableInfo] = Field(default_factory=list)

    _tag_extra_info: Optional[TagExtraInfo] = PrivateAttr(default=None)

    @field_validator("capabilities")
    @classmethod
    def _known_capabilities(cls, v: List[str]) -> List[str]:
        unknown = set(v) - CAPABILITIES
        if unknown:
            raise ValueError(f"unknown capabilities: {sorted(unknown)}")
        return v

    def capability_set(self) -> frozenset:
        return frozenset(self.capabilities)

    def get_tag_extra_info(self) -> Optional[TagExtraInfo]:
        if self._tag_extra_info is None and self.tei_class:
            tei = load_object(self.tei_class)()
            tei.tag_info = self
            self._tag_extra_info = tei
        return self._tag_extra_info

    def set_tag_extra_info(self, tei: Optional[TagExtraInfo]) -> None:
        self._tag_extra_info = tei

    def get_variable_info(self, data: TagData) -> Optional[List[VariableInfo]]:
        tei = self.get_tag_extra_info()
        if tei is None:
            return None
        return list(tei.get_variable_info(data) or [])

    def validate(self, data: TagData) -> List[ValidationMessage]:
        tei = self.get_tag_extra_info()
        if tei is None:
            return []
        return list(tei.validate(data) or [])

    def attribute(self, name: str) -> Optional[TagAttributeInfo]:
        for a in self.attributes:
            if a.name == name:
                return a
        return None


class TagFileRef(BaseModel):
    model_config = ConfigDict(extra="forbid")

    name: str
    path: str


class TagLibraryDescriptor(BaseModel):
    """Root of a ``*.tld.yaml`` file."""

    model_config = ConfigDict(extra="forbid")

    short_name: str
    uri: Optional[str] = None
    tlib_version: str = "1.0"
    jsp_version: str = "2.1"
    info: Optional[str] = None
    validator: Optional[str] = None
    validator_params: Dict[str, Any] = Field(default_factory=dict)
    tags: List[TagInfo] = Field(default_factory=list)
    tag_files: List[TagFileRef] = Field(default_factory=list)
    functions: List[FunctionInfo] = Field(default_factory=list)


__all__ = [
    "BodyContent", "VariableScope", "CAPABILITIES", "TagAttributeInfo",
    "TagVariableInfo", "FunctionInfo", "TagInfo", "TagFileRef",
    "TagLibraryDescriptor",
]
