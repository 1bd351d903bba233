"""
Contract of a tag implemented as a tag file.

The file is parsed in directives-only mode and its ``tag``, ``attribute``
and ``variable`` directives are folded into a ``TagInfo``, which the
page then uses exactly like a descriptor-supplied one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, List, Optional

from ..errors import CompileError
from ..generator.naming import tag_handler_class_name
from ..nodes import AttributeDirective, Node, TagDirective, VariableDirective, Visitor
from ..taglib.model import BodyContent, TagAttributeInfo, TagInfo, TagVariableInfo, VariableScope
from ..validator.directives import boolean_value, check_attributes

if TYPE_CHECKING:  # pragma: no cover
    from ..taglib.library import TagLibraryInfo
    from .controller import ParserController

logger = logging.getLogger(__name__)

TAG_DIRECTIVE_ATTRS = (
    "display-name", "body-content", "dynamic-attributes", "small-icon",
    "large-icon", "description", "example", "pageEncoding", "language",
    "import", "deferredSyntaxAllowedAsLiteral", "trimDirectiveWhitespaces",
    "isELIgnored",
)
ATTRIBUTE_DIRECTIVE_ATTRS = (
    "name", "required", "fragment", "rtexprvalue", "type", "deferredValue",
    "deferredValueType", "deferredMethod", "deferredMethodSignature",
    "description",
)
VARIABLE_DIRECTIVE_ATTRS = (
    "name-given", "name-from-attribute", "alias", "variable-class", "scope",
    "declare", "description",
)

ATTR_NAME = "the name attribute of the attribute directive"
VAR_NAME_GIVEN = "the name-given attribute of the variable directive"
VAR_NAME_FROM = "the name-from-attribute attribute of the variable directive"
VAR_ALIAS = "the alias attribute of the variable directive"
TAG_DYNAMIC = "the dynamic-attributes attribute of the tag directive"

_BODY_CONTENTS = {
    BodyContent.EMPTY.value.lower(): BodyContent.EMPTY,
    BodyContent.TAGDEPENDENT.value.lower(): BodyContent.TAGDEPENDENT,
    BodyContent.SCRIPTLESS.value.lower(): BodyContent.SCRIPTLESS,
}


@dataclass
class _NameEntry:
    type: str
    node: Node
    attr: Optional[TagAttributeInfo] = None


class TagFileDirectiveVisitor(Visitor):
    """Collects the directives of one tag file into a ``TagInfo``."""

    def __init__(self, taglib: "TagLibraryInfo", name: str, path: str):
        self.taglib = taglib
        self.name = name
        self.path = path
        self.body_content: Optional[str] = None
        self.description: Optional[str] = None
        self.display_name: Optional[str] = None
        self.small_icon: Optional[str] = None
        self.large_icon: Optional[str] = None
        self.example: Optional[str] = None
        self.dynamic_attrs_map_name: Optional[str] = None
        self.attributes: List[TagAttributeInfo] = []
        self.variables: List[TagVariableInfo] = []
        self._names: Dict[str, _NameEntry] = {}
        self._names_from: Dict[str, _NameEntry] = {}

    # ------------------------------------------------------------- directives

    def visit_tag_directive(self, n: TagDirective) -> None:
        check_attributes("Tag directive", n, TAG_DIRECTIVE_ATTRS, ())
        self.body_content = self._check_conflict(n, self.body_content, "body-content")
        if self.body_content is not None and self.body_content.lower() not in _BODY_CONTENTS:
            raise CompileError("error.tagdirective.badbodycontent", self.body_content, mark=n.start)
        self.dynamic_attrs_map_name = self._check_conflict(n, self.dynamic_attrs_map_name,
                                                           "dynamic-attributes")
        if self.dynamic_attrs_map_name is not None:
            self._check_unique_name(self.dynamic_attrs_map_name, TAG_DYNAMIC, n)
        self.small_icon = self._check_conflict(n, self.small_icon, "small-icon")
        self.large_icon = self._check_conflict(n, self.large_icon, "large-icon")
        self.description = self._check_conflict(n, self.description, "description")
        self.display_name = self._check_conflict(n, self.display_name, "display-name")
        self.example = self._check_conflict(n, self.example, "example")

    def visit_attribute_directive(self, n: AttributeDirective) -> None:
        check_attributes("Attribute directive", n, ATTRIBUTE_DIRECTIVE_ATTRS, ("name",))

        deferred_value_attr = n.get_attribute_value("deferredValue")
        deferred_value = boolean_value(deferred_value_attr)
        deferred_value_type = n.get_attribute_value("deferredValueType")
        if deferred_value_type is not None:
            if deferred_value_attr is not None and not deferred_value:
                raise CompileError("error.deferredvaluetypewithoutdeferredvalue", mark=n.start)
            deferred_value = True
        elif deferred_value:
            deferred_value_type = "object"
        else:
            deferred_value_type = "str"

        deferred_method_attr = n.get_attribute_value("deferredMethod")
        deferred_method = boolean_value(deferred_method_attr)
        method_signature = n.get_attribute_value("deferredMethodSignature")
        if method_signature is not None:
            if deferred_method_attr is not None and not deferred_method:
                raise CompileError("error.deferredmethodsignaturewithoutdeferredmethod", mark=n.start)
            deferred_method = True
        elif deferred_method:
            method_signature = "void methodname()"

        if deferred_method and deferred_value:
            raise CompileError("error.deferredmethodandvalue", mark=n.start)

        name = n.get_attribute_value("name")
        required = boolean_value(n.get_attribute_value("required"))
        rtexprvalue_attr = n.get_attribute_value("rtexprvalue")
        rtexprvalue = True if rtexprvalue_attr is None else boolean_value(rtexprvalue_attr)
        fragment = boolean_value(n.get_attribute_value("fragment"))
        type_ = n.get_attribute_value("type")
        if fragment:
            if type_ is not None:
                raise CompileError("error.fragmentwithtype", mark=n.start)
            if rtexprvalue_attr is not None:
                raise CompileError("error.fragmentwithrtexprvalue", mark=n.start)
            rtexprvalue = True
        else:
            if type_ is None:
                type_ = "str"
            if deferred_value:
                type_ = "ValueExpression"
            elif deferred_method:
                type_ = "MethodExpression"

        uses_deferred = (deferred_method_attr is not None or deferred_method
                         or deferred_value_attr is not None or deferred_value)
        if self.taglib.required_version in ("2.0", "1.2") and uses_deferred:
            raise CompileError("error.invalid.version", self.path, mark=n.start)

        info = TagAttributeInfo(
            name=name,
            required=required,
            rtexprvalue=rtexprvalue,
            type=type_,
            fragment=fragment,
            deferred_value=deferred_value,
            deferred_method=deferred_method,
            expected_type=deferred_value_type,
            method_signature=method_signature,
            description=n.get_attribute_value("description"),
        )
        self.attributes.append(info)
        self._check_unique_name(name, ATTR_NAME, n, info)

    def visit_variable_directive(self, n: VariableDirective) -> None:
        check_attributes("Variable directive", n, VARIABLE_DIRECTIVE_ATTRS, ())

        name_given = n.get_attribute_value("name-given")
        name_from_attribute = n.get_attribute_value("name-from-attribute")
        if name_given is None and name_from_attribute is None:
            raise CompileError("error.variable.either.name", mark=n.start)
        if name_given is not None and name_from_attribute is not None:
            raise CompileError("error.variable.both.name", mark=n.start)
        alias = n.get_attribute_value("alias")
        if (name_from_attribute is None) != (alias is None):
            raise CompileError("error.variable.alias", mark=n.start)

        class_name = n.get_attribute_value("variable-class") or "str"
        declare_attr = n.get_attribute_value("declare")
        declare = True if declare_attr is None else boolean_value(declare_attr)
        scope = VariableScope.NESTED
        scope_attr = n.get_attribute_value("scope")
        if scope_attr in (VariableScope.AT_BEGIN.value, VariableScope.AT_END.value):
            scope = VariableScope(scope_attr)

        if name_from_attribute is not None:
            # the alias names the variable inside the tag file
            name_given = alias
            self._check_unique_name(name_from_attribute, VAR_NAME_FROM, n)
            self._check_unique_name(alias, VAR_ALIAS, n)
        else:
            self._check_unique_name(name_given, VAR_NAME_GIVEN, n)

        self.variables.append(TagVariableInfo(
            name_given=name_given,
            name_from_attribute=name_from_attribute,
            class_name=class_name,
            declare=declare,
            scope=scope,
        ))

    # ---------------------------------------------------------------- helpers

    @staticmethod
    def _check_conflict(n: Node, old: Optional[str], attr: str) -> Optional[str]:
        value = n.get_attribute_value(attr)
        if value is None:
            return old
        if old is not None and old != value:
            raise CompileError("error.tag.conflict.attr", attr, old, value, mark=n.start)
        return value

    def _check_unique_name(self, name: str, type_: str, n: Node,
                           attr: Optional[TagAttributeInfo] = None) -> None:
        table = self._names_from if type_ == VAR_NAME_FROM else self._names
        entry = table.get(name)
        if entry is None:
            table[name] = _NameEntry(type_, n, attr)
            return
        # the dynamic-attributes name may repeat across tag directives
        if type_ != TAG_DYNAMIC or entry.type != TAG_DYNAMIC:
            line = entry.node.start.line if entry.node.start is not None else 0
            raise CompileError("error.tagfile.nameNotUnique", type_, entry.type, line, mark=n.start)

    def post_check(self) -> None:
        """Every name-from-attribute must name a required, static ``str`` attribute."""
        for key, from_entry in self._names_from.items():
            entry = self._names.get(key)
            if entry is None or entry.attr is None:
                raise CompileError("error.tagfile.nameFrom.noAttribute", key, mark=from_entry.node.start)
            attr = entry.attr
            if attr.type != "str" or not attr.required or attr.can_be_request_time():
                line = entry.node.start.line if entry.node.start is not None else 0
                raise CompileError("error.tagfile.nameFrom.badAttribute", key, line,
                                   mark=from_entry.node.start)

    def get_tag_info(self) -> TagInfo:
        body = _BODY_CONTENTS[self.body_content.lower()] if self.body_content else BodyContent.SCRIPTLESS
        return TagInfo(
            name=self.name,
            handler_class=tag_handler_class_name(self.path, self.taglib.reliable_urn),
            body_content=body,
            capabilities=["simple"],
            dynamic_attributes=self.dynamic_attrs_map_name is not None,
            dynamic_attributes_map_name=self.dynamic_attrs_map_name,
            info=self.description,
            display_name=self.display_name,
            attributes=self.attributes,
            variables=self.variables,
        )


def parse_tag_file_directives(
    pc: "ParserController", name: str, path: str, taglib: "TagLibraryInfo"
) -> TagInfo:
    """
    Build the contract of the tag ``name`` implemented by the tag file at ``path``.

    Raises:
        CompileError: Missing file or invalid directives
    """
    page = pc.parse_tag_file_directives(path)
    visitor = TagFileDirectiveVisitor(taglib, name, path)
    page.visit(visitor)
    visitor.post_check()
    logger.debug("tag file %s: %d attributes, %d variables",
                 path, len(visitor.attributes), len(visitor.variables))
    return visitor.get_tag_info()


__all__ = ["TagFileDirectiveVisitor", "parse_tag_file_directives"]
