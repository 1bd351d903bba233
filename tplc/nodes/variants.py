"""
The concrete node variants.

Both front ends build trees exclusively from these constructors, which
is what keeps the two syntaxes interchangeable downstream.
"""

from __future__ import annotations

from typing import Dict, List, Optional, Tuple

from ..el import ELNodes
from ..mark import Mark
from .attribute_value import AttributeValue
from .base import Attributes, ChildInfo, Node

JSP_URI = "http://java.sun.com/JSP/Page"
TEMP_VARIABLE_PREFIX = "_tplc_temp"


def _std(local: str) -> str:
    return "jsp:" + local


class Root(Node):
    """
    Top of one parse unit. Included units get their own Root whose
    ``parent_root`` is the including one; temporary names are always
    drawn from the outermost Root.
    """

    kind = "root"

    def __init__(self, start: Optional[Mark], parent: Optional[Node], is_xml_syntax: bool):
        super().__init__(start, parent, _std("root"), "root")
        self.is_xml_syntax = is_xml_syntax
        self.page_encoding: Optional[str] = None
        self.config_page_encoding: Optional[str] = None
        self.is_default_page_encoding = False
        self.is_encoding_specified_in_prolog = False
        self.is_bom_present = False
        self._temp_sequence = 0
        r = parent
        while r is not None and r.kind != "root":
            r = r.parent
        self.parent_root: Optional[Root] = r  # type: ignore[assignment]

    def next_temporary_variable_name(self) -> str:
        if self.parent_root is not None:
            return self.parent_root.next_temporary_variable_name()
        name = f"{TEMP_VARIABLE_PREFIX}{self._temp_sequence}"
        self._temp_sequence += 1
        return name


class JspRoot(Node):
    kind = "jsp_root"

    def __init__(self, qname, attrs, non_taglib_xmlns_attrs, taglib_attrs, start, parent):
        super().__init__(start, parent, qname, "root", attrs, non_taglib_xmlns_attrs, taglib_attrs)


# ------------------------------------------------------------------ directives

def _split_imports(value: str) -> List[str]:
    return [part.strip() for part in value.split(",")]


class PageDirective(Node):
    kind = "page_directive"
    visits_body = False

    def __init__(self, attrs, start, parent, qname=_std("directive.page"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "directive.page", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)
        self.imports: List[str] = []

    def add_import(self, value: str) -> None:
        """
        Add comma separated import entries.

        Raises:
            ValueError: An entry contains a statement separator
        """
        for entry in _split_imports(value):
            if ";" in entry:
                raise ValueError(entry)
            self.imports.append(entry)


class IncludeDirective(Node):
    kind = "include_directive"

    def __init__(self, attrs, start, parent, qname=_std("directive.include"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "directive.include", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)


class TaglibDirective(Node):
    kind = "taglib_directive"
    visits_body = False

    def __init__(self, attrs, start, parent):
        super().__init__(start, parent, _std("directive.taglib"), "directive.taglib", attrs)


class TagDirective(Node):
    kind = "tag_directive"
    visits_body = False

    def __init__(self, attrs, start, parent, qname=_std("directive.tag"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "directive.tag", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)
        self.imports: List[str] = []

    def add_import(self, value: str) -> None:
        self.imports.extend(_split_imports(value))


class AttributeDirective(Node):
    kind = "attribute_directive"
    visits_body = False

    def __init__(self, attrs, start, parent, qname=_std("directive.attribute"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "directive.attribute", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)


class VariableDirective(Node):
    kind = "variable_directive"
    visits_body = False

    def __init__(self, attrs, start, parent, qname=_std("directive.variable"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "directive.variable", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)


# ------------------------------------------------------------------- scripting

class Comment(Node):
    kind = "comment"
    visits_body = False

    def __init__(self, text: str, start, parent):
        super().__init__(start, parent, text=text)


class ScriptingElement(Node):
    """
    Raw code block. The relaxed syntax stores the code as ``text``; the
    strict syntax stores it as template text children.
    """

    visits_body = False

    @property
    def text(self) -> str:
        if self._text is not None:
            return self._text
        if self.body is not None:
            return "".join(n.text or "" for n in self.body)
        return ""

    @text.setter
    def text(self, value: Optional[str]) -> None:
        self._text = value

    @property
    def start(self) -> Optional[Mark]:
        if self._text is None and self.body is not None and len(self.body) > 0:
            return self.body[0].start
        return self._start


class Declaration(ScriptingElement):
    kind = "declaration"

    def __init__(self, text, start, parent, qname=_std("declaration"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "declaration", None,
                         non_taglib_xmlns_attrs, taglib_attrs, text)


class Expression(ScriptingElement):
    kind = "expression"

    def __init__(self, text, start, parent, qname=_std("expression"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "expression", None,
                         non_taglib_xmlns_attrs, taglib_attrs, text)


class Scriptlet(ScriptingElement):
    kind = "scriptlet"

    def __init__(self, text, start, parent, qname=_std("scriptlet"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "scriptlet", None,
                         non_taglib_xmlns_attrs, taglib_attrs, text)


class ELExpression(Node):
    """``${...}`` or ``#{...}`` in template text; ``type`` is ``$`` or ``#``."""

    kind = "el_expression"
    visits_body = False

    def __init__(self, type_: str, text: str, start, parent):
        super().__init__(start, parent, text=text)
        self.type = type_
        self.el: Optional[ELNodes] = None


# ------------------------------------------------------------ standard actions

class _Action(Node):
    local = ""

    def __init__(self, attrs, start, parent, qname=None,
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname or _std(self.local), self.local, attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)


class ParamAction(_Action):
    kind = "param_action"
    local = "param"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.value: Optional[AttributeValue] = None


class ParamsAction(_Action):
    kind = "params_action"
    local = "params"


class FallBackAction(_Action):
    kind = "fallback_action"
    local = "fallback"


class IncludeAction(_Action):
    kind = "include_action"
    local = "include"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.page: Optional[AttributeValue] = None


class ForwardAction(_Action):
    kind = "forward_action"
    local = "forward"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.page: Optional[AttributeValue] = None


class GetProperty(_Action):
    kind = "get_property"
    local = "getProperty"


class SetProperty(_Action):
    kind = "set_property"
    local = "setProperty"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.value: Optional[AttributeValue] = None


class UseBean(_Action):
    kind = "use_bean"
    local = "useBean"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.bean_name: Optional[AttributeValue] = None


class PlugIn(_Action):
    kind = "plugin"
    local = "plugin"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.width: Optional[AttributeValue] = None
        self.height: Optional[AttributeValue] = None


class InvokeAction(_Action):
    kind = "invoke_action"
    local = "invoke"


class DoBodyAction(_Action):
    kind = "do_body_action"
    local = "doBody"


class JspElement(_Action):
    kind = "jsp_element"
    local = "element"

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.jsp_attrs: List[AttributeValue] = []
        self.name_attr: Optional[AttributeValue] = None


class JspOutput(_Action):
    kind = "jsp_output"
    local = "output"
    visits_body = False


class JspText(Node):
    kind = "jsp_text"

    def __init__(self, start, parent, qname=_std("text"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "text", None,
                         non_taglib_xmlns_attrs, taglib_attrs)


class JspBody(Node):
    kind = "jsp_body"

    def __init__(self, start, parent, qname=_std("body"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "body", None,
                         non_taglib_xmlns_attrs, taglib_attrs)
        self.child_info = ChildInfo()


class NamedAttribute(Node):
    """
    ``jsp:attribute``: a body whose evaluation supplies an attribute of
    the enclosing action.
    """

    kind = "named_attribute"

    def __init__(self, attrs, start, parent, qname=_std("attribute"),
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, "attribute", attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)
        # missing or "true" keeps the default
        self.trim = self.get_attribute_value("trim") != "false"
        self.child_info = ChildInfo()
        self.omit: Optional[AttributeValue] = None
        self._temporary_variable_name: Optional[str] = None
        self.name = self.get_attribute_value("name")
        self.prefix: Optional[str] = None
        self.attr_local_name = self.name
        if self.name is not None and ":" in self.name:
            self.prefix, self.attr_local_name = self.name.split(":", 1)

    @property
    def temporary_variable_name(self) -> str:
        if self._temporary_variable_name is None:
            self._temporary_variable_name = self.get_root().next_temporary_variable_name()
        return self._temporary_variable_name

    @property
    def text(self) -> str:
        """Text of the last template text child; an empty body gives ``""``."""
        value = ""
        if self.body is not None:
            for n in _walk(self.body):
                if n.kind == "template_text":
                    value = n.text or ""
        return value

    @text.setter
    def text(self, value) -> None:
        self._text = value


def _walk(nodes):
    for n in nodes:
        yield n
        if n.visits_body and n.body is not None:
            yield from _walk(n.body)


class AttributeGenerator(Node):
    """Placeholder node asking the generator to emit one attribute value."""

    kind = "attribute_generator"
    visits_body = False

    def __init__(self, start, name: str, tag: "CustomTag"):
        super().__init__(start, None)
        self.name = name
        self.tag = tag


# ------------------------------------------------------------------ text nodes

class TemplateText(Node):
    kind = "template_text"
    visits_body = False

    def __init__(self, text: str, start, parent):
        super().__init__(start, parent, text=text)
        # (source line offset, generated line) per embedded line break
        self.extra_smap: Optional[List[Tuple[int, int]]] = None

    def ltrim(self) -> None:
        text = self._text or ""
        i = 0
        while i < len(text) and text[i] <= " ":
            i += 1
        self._text = text[i:]

    def rtrim(self) -> None:
        text = self._text or ""
        i = len(text)
        while i > 0 and text[i - 1] <= " ":
            i -= 1
        self._text = text[:i]

    def is_all_space(self) -> bool:
        return not (self._text or "").strip()

    def add_smap(self, src_line: int, out_line: int) -> None:
        if self.extra_smap is None:
            self.extra_smap = []
        self.extra_smap.append((src_line, out_line))


class UninterpretedTag(Node):
    """Markup in the strict syntax that is not an action: emitted verbatim."""

    kind = "uninterpreted_tag"

    def __init__(self, qname, local_name, attrs, non_taglib_xmlns_attrs, taglib_attrs, start, parent):
        super().__init__(start, parent, qname, local_name, attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)
        self.jsp_attrs: List[AttributeValue] = []


# ---------------------------------------------------------------- custom tags

class CustomTag(Node):
    """
    Invocation of an action from a tag library.

    Capability flags come from the tag's descriptor; a tag implemented as
    a tag file is always a simple tag.
    """

    kind = "custom_tag"

    def __init__(self, qname, prefix, local_name, uri, attrs, start, parent,
                 tag_info, tag_file_info=None,
                 non_taglib_xmlns_attrs=None, taglib_attrs=None):
        super().__init__(start, parent, qname, local_name, attrs,
                         non_taglib_xmlns_attrs, taglib_attrs)
        self.uri = uri
        self.prefix = prefix
        self.tag_info = tag_info
        self.tag_file_info = tag_file_info
        self.jsp_attrs: List[AttributeValue] = []
        self.tag_data = None
        self.variable_infos: list = []
        self.pool_name: Optional[str] = None
        self.custom_tag_parent: Optional[CustomTag] = None
        self.num_count: Optional[int] = None
        self.child_info = ChildInfo()
        self.scripting_vars: Dict[str, list] = {}
        self.custom_nesting_level = self._make_custom_nesting_level()
        if tag_file_info is not None:
            self.implements_iteration_tag = False
            self.implements_body_tag = False
            self.implements_try_catch_finally = False
            self.implements_simple_tag = True
            self.implements_id_consumer = False
            self.implements_dynamic_attributes = tag_info.dynamic_attributes
        else:
            caps = tag_info.capability_set()
            self.implements_simple_tag = "simple" in caps
            self.implements_body_tag = "body" in caps
            self.implements_iteration_tag = "iteration" in caps or self.implements_body_tag
            self.implements_try_catch_finally = "try_catch_finally" in caps
            self.implements_id_consumer = "id_consumer" in caps
            self.implements_dynamic_attributes = "dynamic_attributes" in caps

    def _make_custom_nesting_level(self) -> int:
        return sum(1 for p in self.ancestors() if p.kind == "custom_tag" and p.qname == self.qname)

    @property
    def is_tag_file(self) -> bool:
        return self.tag_file_info is not None

    def set_tag_data(self, tag_data) -> None:
        self.tag_data = tag_data
        self.variable_infos = list(self.tag_info.get_variable_info(tag_data) or [])

    def get_scripting_vars(self, scope) -> Optional[list]:
        return self.scripting_vars.get(scope)

    def set_scripting_vars(self, vars_, scope) -> None:
        self.scripting_vars[scope] = vars_

    def check_if_attribute_is_fragment(self, name: str) -> bool:
        return any(a.name == name and a.fragment for a in self.tag_info.attributes)

    def has_empty_body(self) -> bool:
        """True when nothing but named attributes (or an empty jsp:body) is inside."""
        if self.body is None:
            return True
        for n in self.body:
            if n.kind == "named_attribute":
                continue
            if n.kind == "jsp_body":
                return n.body is None
            return False
        return True


__all__ = [
    "JSP_URI", "TEMP_VARIABLE_PREFIX",
    "Root", "JspRoot", "PageDirective", "IncludeDirective", "TaglibDirective",
    "TagDirective", "AttributeDirective", "VariableDirective", "Comment",
    "ScriptingElement", "Declaration", "Expression", "Scriptlet", "ELExpression",
    "ParamAction", "ParamsAction", "FallBackAction", "IncludeAction",
    "ForwardAction", "GetProperty", "SetProperty", "UseBean", "PlugIn",
    "InvokeAction", "DoBodyAction", "JspElement", "JspOutput", "JspText",
    "JspBody", "NamedAttribute", "AttributeGenerator", "TemplateText",
    "UninterpretedTag", "CustomTag",
]
