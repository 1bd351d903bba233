"""
Pass 2 of validation: full semantic and contract checking.

Every action is checked against its attribute contract and each of its
attribute values is classified (literal, code expression, expression
language, named attribute body). Custom actions are additionally checked
against their library metadata, the library hooks are invoked, and the
scripting variables each custom action exposes are computed per scope.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from ..el import ELNodes, ELParser, FunctionCollector, Root as ELRoot, Text as ELTextNode
from ..el import check_syntax, to_text
from ..errors import CompileError
from ..generator.naming import to_python_type
from ..nodes import AttributeValue, CustomTag, Node, Nodes, Visitor
from ..taglib.hooks import REQUEST_TIME_VALUE, TagData
from ..taglib.model import BodyContent, TagAttributeInfo, VariableScope
from .directives import check_attributes, check_scope
from .page_info import PageInfo
from .xml_view import build_xml_view, xml_escape

logger = logging.getLogger(__name__)

JSP_ROOT_VERSIONS = ("1.2", "2.0", "2.1", "2.2", "2.3")

# (valid, mandatory) per standard action
_CONTRACTS = {
    "jsp_root": (("xsi:schemaLocation", "version"), ("version",)),
    "include_directive": (("file",), ("file",)),
    "taglib_directive": (("uri", "tagdir", "prefix"), ("prefix",)),
    "include_action": (("page", "flush"), ("page",)),
    "param_action": (("name", "value"), ("name", "value")),
    "forward_action": (("page",), ("page",)),
    "get_property": (("name", "property"), ("name", "property")),
    "set_property": (("name", "property", "value", "param"), ("name", "property")),
    "use_bean": (("id", "scope", "class", "type", "beanName"), ("id",)),
    "plugin": (
        ("type", "code", "codebase", "align", "archive", "height", "hspace",
         "jreversion", "name", "vspace", "width", "nspluginurl", "iepluginurl"),
        ("type", "code", "codebase"),
    ),
    "named_attribute": (("name", "trim", "omit"), ("name",)),
    "invoke_action": (("fragment", "var", "varReader", "scope"), ("fragment",)),
    "do_body_action": (("var", "varReader", "scope"), ()),
    "jsp_output": (
        ("omit-xml-declaration", "doctype-root-element", "doctype-public", "doctype-system"),
        (),
    ),
}

_PLUGIN_STATIC = (
    "type", "code", "codebase", "align", "archive", "hspace", "jreversion",
    "name", "vspace", "nspluginurl", "iepluginurl",
)

_COERCIONS = {
    "str": str,
    "int": lambda s: 0 if s == "" else int(s),
    "float": lambda s: 0.0 if s == "" else float(s),
    "bool": lambda s: s.lower() == "true",
}


def _contains_deferred_syntax(value: Optional[str]) -> bool:
    """A ``#{`` that is not preceded by a backslash."""
    if value is None:
        return False
    escaped = False
    for i, ch in enumerate(value):
        if ch == "#" and value[i + 1:i + 2] == "{" and not escaped:
            return True
        escaped = ch == "\\"
    return False


def _single_text(el: ELNodes) -> str:
    """Text of an expression sequence holding no expression."""
    for node in el:
        if isinstance(node, ELTextNode):
            return node.text
    return ""


class _DynamicContentFinder(Visitor):
    def __init__(self) -> None:
        self.found = False

    def do_visit(self, n: Node) -> None:
        if n.kind not in ("jsp_text", "template_text"):
            self.found = True


# --------------------------------------------------------------------------- #
# Contract checking
# --------------------------------------------------------------------------- #
class ValidateVisitor(Visitor):
    """Checks every non-directive node and annotates it in place."""

    def __init__(self, page_info: PageInfo):
        self.page_info = page_info

    def _check(self, n: Node, type_name: str) -> None:
        valid, mandatory = _CONTRACTS[n.kind]
        check_attributes(type_name, n, valid, mandatory)

    # ------------------------------------------------------------ directives

    def visit_jsp_root(self, n: Node) -> None:
        self._check(n, "jsp:root")
        version = n.get_attribute_value("version")
        if version not in JSP_ROOT_VERSIONS:
            raise CompileError("error.jsproot.version.invalid", version, mark=n.start)
        self.visit_body(n)

    def visit_include_directive(self, n: Node) -> None:
        self._check(n, "Include directive")
        self.visit_body(n)

    def visit_taglib_directive(self, n: Node) -> None:
        self._check(n, "Taglib directive")
        uri = n.get_attribute_value("uri")
        tagdir = n.get_attribute_value("tagdir")
        if uri is None and tagdir is None:
            raise CompileError("error.taglibDirective.missing.location", mark=n.start)
        if uri is not None and tagdir is not None:
            raise CompileError("error.taglibDirective.both_uri_and_tagdir", mark=n.start)

    # ------------------------------------------------------ standard actions

    def visit_param_action(self, n: Node) -> None:
        self._check(n, "Param action")
        self._static_only(n, "name", "jsp:param")
        n.value = self.get_jsp_attribute(None, "value", None, None, n.get_attribute_value("value"), n)
        self.visit_body(n)

    def visit_params_action(self, n: Node) -> None:
        if n.body is None:
            raise CompileError("error.params.emptyBody", mark=n.start)
        self.visit_body(n)

    def visit_include_action(self, n: Node) -> None:
        self._check(n, "Include action")
        n.page = self.get_jsp_attribute(None, "page", None, None, n.get_attribute_value("page"), n)
        self.visit_body(n)

    def visit_forward_action(self, n: Node) -> None:
        self._check(n, "Forward")
        n.page = self.get_jsp_attribute(None, "page", None, None, n.get_attribute_value("page"), n)
        self.visit_body(n)

    def visit_get_property(self, n: Node) -> None:
        self._check(n, "GetProperty")
        for attr in ("name", "property"):
            self._static_only(n, attr, "jsp:getProperty")

    def visit_set_property(self, n: Node) -> None:
        self._check(n, "SetProperty")
        for attr in ("name", "property", "param"):
            self._static_only(n, attr, "jsp:setProperty")
        prop = n.get_text_attribute("property")
        param = n.get_text_attribute("param")
        n.value = self.get_jsp_attribute(None, "value", None, None, n.get_attribute_value("value"), n)
        value_given = n.value is not None
        if prop == "*":
            if param is not None or value_given:
                raise CompileError("error.setProperty.invalid", mark=n.start)
        elif param is not None and value_given:
            raise CompileError("error.setProperty.invalid", mark=n.start)
        self.visit_body(n)

    def visit_use_bean(self, n: Node) -> None:
        self._check(n, "UseBean")
        for attr in ("id", "scope", "class", "type"):
            self._static_only(n, attr, "jsp:useBean")
        name = n.get_text_attribute("id")
        scope = n.get_text_attribute("scope")
        check_scope(scope, n)
        class_name = n.get_text_attribute("class")
        type_name = n.get_text_attribute("type")
        beans = self.page_info.bean_repository

        if class_name is None and type_name is None:
            raise CompileError("error.usebean.missingType", mark=n.start)
        if name in beans and beans.declared_by(name) is not n:
            raise CompileError("error.usebean.duplicate", name, mark=n.start)
        if scope == "session" and not self.page_info.is_session:
            raise CompileError("error.usebean.noSession", mark=n.start)

        n.bean_name = self.get_jsp_attribute(None, "beanName", None, None,
                                             n.get_attribute_value("beanName"), n)
        if class_name is not None and n.bean_name is not None:
            raise CompileError("error.usebean.notBoth", mark=n.start)

        beans.add_bean(n, name, class_name or type_name, scope)
        self.visit_body(n)

    def visit_plugin(self, n: Node) -> None:
        self._check(n, "Plugin")
        for attr in _PLUGIN_STATIC:
            self._static_only(n, attr, "jsp:plugin")
        if n.get_text_attribute("type") not in ("bean", "applet"):
            raise CompileError("error.plugin.badtype", mark=n.start)
        n.width = self.get_jsp_attribute(None, "width", None, None, n.get_attribute_value("width"), n)
        n.height = self.get_jsp_attribute(None, "height", None, None, n.get_attribute_value("height"), n)
        self.visit_body(n)

    def visit_named_attribute(self, n: Node) -> None:
        self._check(n, "Attribute")
        n.omit = self.get_jsp_attribute(None, "omit", None, None, n.get_attribute_value("omit"), n)
        self.visit_body(n)

    def visit_jsp_element(self, n: Node) -> None:
        if n.attrs is None:
            raise CompileError("error.jspelement.missing.name", mark=n.start)
        n.name_attr = None
        n.jsp_attrs = []
        for a in n.attrs:
            value = self.get_jsp_attribute(None, a.qname, a.uri, a.local_name, a.value, n)
            if a.local_name == "name":
                n.name_attr = value
            else:
                n.jsp_attrs.append(value)
        if n.name_attr is None:
            raise CompileError("error.jspelement.missing.name", mark=n.start)
        for na in n.get_named_attribute_nodes():
            n.jsp_attrs.append(AttributeValue.from_named_attribute(na))
        self.visit_body(n)

    def visit_jsp_output(self, n: Node) -> None:
        self._check(n, "jsp:output")
        if n.body is not None:
            raise CompileError("error.jspoutput.nonemptybody", mark=n.start)
        pi = self.page_info
        omit = n.get_attribute_value("omit-xml-declaration")
        name = n.get_attribute_value("doctype-root-element")
        public = n.get_attribute_value("doctype-public")
        system = n.get_attribute_value("doctype-system")

        for attr, new, old in (
            ("omit-xml-declaration", omit, pi.omit_xml_decl),
            ("doctype-root-element", name, pi.doctype_name),
            ("doctype-public", public, pi.doctype_public),
            ("doctype-system", system, pi.doctype_system),
        ):
            if new is not None and old is not None and new != old:
                raise CompileError("error.jspoutput.conflict", attr, old, new, mark=n.start)

        if (name is None) != (system is None):
            raise CompileError("error.jspoutput.doctypenamesystem", mark=n.start)
        if public is not None and system is None:
            raise CompileError("error.jspoutput.doctypepublicsystem", mark=n.start)

        if omit is not None:
            pi.omit_xml_decl = omit
        if name is not None:
            pi.doctype_name = name
        if system is not None:
            pi.doctype_system = system
        if public is not None:
            pi.doctype_public = public

    def visit_invoke_action(self, n: Node) -> None:
        self._check(n, "Invoke")
        self._check_var_and_scope(n)

    def visit_do_body_action(self, n: Node) -> None:
        self._check(n, "DoBody")
        self._check_var_and_scope(n)

    def _check_var_and_scope(self, n: Node) -> None:
        scope = n.get_text_attribute("scope")
        check_scope(scope, n)
        var = n.get_text_attribute("var")
        var_reader = n.get_text_attribute("varReader")
        if scope is not None and var is None and var_reader is None:
            raise CompileError("error.missing_var_or_varReader", mark=n.start)
        if var is not None and var_reader is not None:
            raise CompileError("error.var_and_varReader", mark=n.start)

    # ------------------------------------------------------------- scripting

    def _scripting(self, n: Node) -> None:
        if self.page_info.scripting_invalid:
            raise CompileError("error.no.scriptlets", mark=n.start)

    visit_declaration = _scripting
    visit_expression = _scripting
    visit_scriptlet = _scripting

    def visit_el_expression(self, n: Node) -> None:
        pi = self.page_info
        if pi.is_el_ignored:
            return
        if n.type == "#":
            if not pi.deferred_syntax_allowed_as_literal:
                raise CompileError("error.el.template.deferred", mark=n.start)
            return
        expr = n.type + "{" + (n.text or "") + "}"
        el = ELParser.parse(expr, pi.deferred_syntax_allowed_as_literal)
        self.validate_functions(el, n)
        self._check_el(el, expr, n)
        n.el = el

    # ------------------------------------------------------------ markup

    def visit_uninterpreted_tag(self, n: Node) -> None:
        if len(n.get_named_attribute_nodes()) != 0:
            raise CompileError("error.namedAttribute.invalidUse", mark=n.start)
        n.jsp_attrs = []
        for a in n.attrs or ():
            if not self.page_info.deferred_syntax_allowed_as_literal and _contains_deferred_syntax(a.value):
                raise CompileError("error.el.template.deferred", mark=n.start)
            n.jsp_attrs.append(self.get_jsp_attribute(None, a.qname, a.uri, a.local_name, a.value, n))
        self.visit_body(n)

    # ---------------------------------------------------------- custom tags

    def visit_custom_tag(self, n: CustomTag) -> None:
        tag_info = n.tag_info
        if tag_info is None:
            raise CompileError("error.missing.tagInfo", n.qname, mark=n.start)

        if n.implements_simple_tag and tag_info.body_content is BodyContent.JSP:
            raise CompileError("error.simpletag.badbodycontent", tag_info.handler_class, mark=n.start)

        if tag_info.dynamic_attributes and not n.implements_dynamic_attributes:
            raise CompileError("error.dynamic.attributes.not.implemented", n.qname, mark=n.start)

        for tld_attr in tag_info.attributes:
            inline = self._custom_attribute(n, tld_attr.name)
            na = n.get_named_attribute_node(tld_attr.name)
            if tld_attr.required and inline is None and na is None:
                raise CompileError("error.missing_attribute", tld_attr.name, n.local_name, mark=n.start)
            if inline is not None and na is not None:
                raise CompileError("error.duplicate.name.jspattribute", tld_attr.name, mark=n.start)

        jsp_attrs: List[AttributeValue] = []
        tag_data_attrs: Dict[str, Any] = {}
        self._check_xml_attributes(n, jsp_attrs, tag_data_attrs)
        self._check_named_attributes(n, jsp_attrs, tag_data_attrs)

        tag_data = TagData(tag_data_attrs)
        tei = tag_info.get_tag_extra_info()
        if tei is not None and tag_info.variables and tei.get_variable_info(tag_data):
            raise CompileError("error.non_null_tei_and_var_subelems", n.qname, mark=n.start)

        n.set_tag_data(tag_data)
        n.jsp_attrs = jsp_attrs
        self.visit_body(n)

    @staticmethod
    def _custom_attribute(n: CustomTag, name: str) -> Optional[str]:
        if n.attrs is None:
            return None
        value = n.attrs.get_value(name)
        if value is not None:
            return value
        for a in n.attrs:
            if a.local_name == name and a.uri == n.uri:
                return a.value
        return None

    def _is_runtime_expression(self, n: Node, value: str) -> bool:
        if n.get_root().is_xml_syntax:
            return value.startswith("%=")
        return value.startswith("<%=")

    def _library_version(self, n: CustomTag) -> float:
        lib = self.page_info.get_taglib(n.uri)
        try:
            return float(lib.required_version) if lib is not None else 2.1
        except ValueError:
            return 2.1

    def _check_xml_attributes(self, n: CustomTag, jsp_attrs: List[AttributeValue],
                              tag_data_attrs: Dict[str, Any]) -> None:
        """
        Classify inline attributes against the tag contract.

        An attribute matches a declared one by local name when it is
        unqualified or in the tag's own namespace; anything else is a
        dynamic attribute, accepted only when the tag supports them.
        """
        pi = self.page_info
        tag_info = n.tag_info
        deferred_literal = pi.deferred_syntax_allowed_as_literal or self._library_version(n) < 2.1

        for a in n.attrs or ():
            value = a.value
            runtime = self._is_runtime_expression(n, value)
            el_expression = False
            deferred = False
            el: Optional[ELNodes] = None
            if not runtime and not pi.is_el_ignored:
                el = ELParser.parse(value, deferred_literal)
                for node in el:
                    if not isinstance(node, ELRoot):
                        continue
                    if node.type == "$":
                        if el_expression and deferred:
                            raise CompileError("error.attribute.deferredmix", mark=n.start)
                        el_expression = True
                    elif node.type == "#":
                        if el_expression and not deferred:
                            raise CompileError("error.attribute.deferredmix", mark=n.start)
                        el_expression = True
                        deferred = True

            expression = runtime or el_expression
            text_value = _single_text(el) if (not el_expression and el is not None) else value

            tld_attr = None
            for candidate in tag_info.attributes:
                if a.local_name == candidate.name and (not a.uri or a.uri == n.uri):
                    tld_attr = candidate
                    break

            if tld_attr is None:
                if not tag_info.dynamic_attributes:
                    raise CompileError("error.bad_attribute", a.qname, n.local_name, mark=n.start)
                jsp_attrs.append(self.get_jsp_attribute(None, a.qname, a.uri, a.local_name,
                                                        value, n, el, True))
                continue

            if tld_attr.can_be_request_time() or tld_attr.deferred_method or tld_attr.deferred_value:
                if not expression:
                    self._check_literal(n, tld_attr, text_value)
                    jsp_attrs.append(AttributeValue(tld_attr, a.qname, a.uri, a.local_name, text_value))
                else:
                    if deferred and not (tld_attr.deferred_method or tld_attr.deferred_value):
                        raise CompileError("error.attribute.custom.non_rt_with_expr", tld_attr.name,
                                           mark=n.start)
                    if not deferred and not tld_attr.can_be_request_time():
                        raise CompileError("error.attribute.custom.non_rt_with_expr", tld_attr.name,
                                           mark=n.start)
                    jsp_attrs.append(self.get_jsp_attribute(tld_attr, a.qname, a.uri, a.local_name,
                                                            value, n, el))
            else:
                if expression:
                    raise CompileError("error.attribute.custom.non_rt_with_expr", tld_attr.name,
                                       mark=n.start)
                jsp_attrs.append(AttributeValue(tld_attr, a.qname, a.uri, a.local_name, text_value))

            tag_data_attrs[a.qname] = REQUEST_TIME_VALUE if expression else text_value

    def _check_literal(self, n: Node, tld_attr: TagAttributeInfo, text: str) -> None:
        """A literal given to a deferred attribute must coerce to its expected type."""
        expected: Optional[str] = None
        if tld_attr.deferred_method:
            sig = tld_attr.method_signature
            if sig is not None:
                sig = sig.strip()
                space = sig.find(" ")
                if space > 0:
                    expected = sig[:space].strip()
            else:
                expected = "object"
            if expected in ("void", "None"):
                raise CompileError("error.literal_with_void", tld_attr.name, mark=n.start)
        if tld_attr.deferred_value:
            expected = tld_attr.expected_type
        if expected is None:
            return
        coerce = _COERCIONS.get(to_python_type(expected))
        if coerce is None:
            return
        try:
            coerce(text)
        except ValueError:
            raise CompileError("error.coerce_to_type", tld_attr.name, expected, text,
                               mark=n.start) from None

    def _check_named_attributes(self, n: CustomTag, jsp_attrs: List[AttributeValue],
                                tag_data_attrs: Dict[str, Any]) -> None:
        tag_info = n.tag_info
        for na in n.get_named_attribute_nodes():
            matched = None
            for tld_attr in tag_info.attributes:
                # named attributes match on prefix, not URI
                if na.attr_local_name == tld_attr.name and (not na.prefix or na.prefix == n.prefix):
                    matched = tld_attr
                    break
            if matched is None:
                if not tag_info.dynamic_attributes:
                    raise CompileError("error.bad_attribute", na.name, n.local_name, mark=n.start)
                jsp_attrs.append(AttributeValue.from_named_attribute(na, None, True))
                continue
            jsp_attrs.append(AttributeValue.from_named_attribute(na, matched))
            finder = _DynamicContentFinder()
            if na.body is not None:
                na.body.visit(finder)
            tag_data_attrs[na.name] = REQUEST_TIME_VALUE if finder.found else na.text

    # ------------------------------------------------------ attribute values

    def get_jsp_attribute(
        self,
        tai: Optional[TagAttributeInfo],
        qname: str,
        uri: Optional[str],
        local_name: Optional[str],
        value: Optional[str],
        n: Node,
        el: Optional[ELNodes] = None,
        dynamic: bool = False,
    ) -> Optional[AttributeValue]:
        """
        Classify one attribute value, stripping expression delimiters.

        A missing value falls back to a ``jsp:attribute`` child of the same
        name; None is returned when there is neither.

        Args:
            el: Already parsed expression for ``value``, if any
        """
        local_name = local_name or qname
        if value is None:
            na = n.get_named_attribute_node(qname)
            if na is None:
                return None
            return AttributeValue.from_named_attribute(na, tai, dynamic)

        xml_syntax = n.get_root().is_xml_syntax
        if xml_syntax and value.startswith("%="):
            return AttributeValue(tai, qname, uri, local_name, value[2:-1], True, None, dynamic)
        if not xml_syntax and value.startswith("<%="):
            return AttributeValue(tai, qname, uri, local_name, value[3:-2], True, None, dynamic)

        pi = self.page_info
        if not pi.is_el_ignored:
            if el is None:
                el = ELParser.parse(value, pi.deferred_syntax_allowed_as_literal)
            if el.contains_el():
                self.validate_functions(el, n)
            else:
                value = _single_text(el)
                el = None
        else:
            el = None

        if n.kind == "uninterpreted_tag" and xml_syntax:
            # literal parts were unescaped by the XML parser and go back out as markup
            if el is not None:
                value = to_text(el, pi.deferred_syntax_allowed_as_literal, xml_escape)
            else:
                value = xml_escape(value)

        result = AttributeValue(tai, qname, uri, local_name, value, False, el, dynamic)
        if el is not None:
            self._check_el(el, value, n)
        return result

    def _static_only(self, n: Node, attr: str, action: str) -> None:
        """Reject a code or EL value for an attribute that must be static."""
        value = n.get_attribute_value(attr)
        if value is not None and self._is_expression(n, value):
            raise CompileError("error.attribute.standard.non_rt_with_expr", attr, action, mark=n.start)

    def _is_expression(self, n: Node, value: str) -> bool:
        if self._is_runtime_expression(n, value):
            return True
        pi = self.page_info
        if pi.is_el_ignored:
            return False
        for node in ELParser.parse(value, pi.deferred_syntax_allowed_as_literal):
            if isinstance(node, ELRoot):
                if node.type == "$":
                    return True
                if node.type == "#" and not pi.deferred_syntax_allowed_as_literal:
                    return True
        return False

    # ---------------------------------------------------------------- EL

    @staticmethod
    def _check_el(el: ELNodes, text: str, n: Node) -> None:
        try:
            check_syntax(el)
        except ValueError as e:
            raise CompileError("error.invalid.expression", text, str(e), mark=n.start) from None

    @staticmethod
    def _find_uri(prefix: Optional[str], n: Node) -> Optional[str]:
        """Namespace bound to ``prefix`` by the ``xmlns`` attributes in scope at ``n``."""
        p: Optional[Node] = n
        while p is not None:
            for a in p.taglib_attrs or ():
                colon = a.qname.find(":")
                if prefix is None and colon < 0:
                    return a.value
                if prefix is not None and colon >= 0 and prefix == a.qname[colon + 1:]:
                    return a.value
            p = p.parent
        return None

    def validate_functions(self, el: ELNodes, n: Node) -> None:
        """
        Resolve every function of ``el`` to its library entry.

        Raises:
            CompileError: Unknown prefix, unknown function or malformed signature
        """
        collector = FunctionCollector()
        el.visit(collector)
        for func in collector.functions:
            if n.get_root().is_xml_syntax:
                uri = self._find_uri(func.prefix, n)
            elif func.prefix is not None:
                uri = self.page_info.get_uri(func.prefix)
            else:
                uri = None
            if uri is None:
                if func.prefix is None:
                    # may be a lambda or an imported function
                    continue
                raise CompileError("error.attribute.invalidPrefix", func.prefix, mark=n.start)
            taglib = self.page_info.get_taglib(uri)
            info = taglib.get_function(func.name) if taglib is not None else None
            if info is None:
                raise CompileError("error.noFunction", func.name, mark=n.start)
            func.uri = uri
            func.function_info = info
            try:
                func.method_name = info.method_name
                func.parameters = info.parameter_types
            except ValueError:
                raise CompileError("error.tld.fn.invalid.signature", func.prefix, func.name,
                                   mark=n.start) from None


# --------------------------------------------------------------------------- #
# Library hooks
# --------------------------------------------------------------------------- #
class TagExtraInfoVisitor(Visitor):
    """Runs each custom tag's ``TagExtraInfo.validate`` hook."""

    def visit_custom_tag(self, n: CustomTag) -> None:
        if n.tag_info is None:
            raise CompileError("error.missing.tagInfo", n.qname, mark=n.start)
        messages = n.tag_info.validate(n.tag_data)
        if messages:
            details = "; ".join(f"{m.id}: {m.message}" if m.id else m.message for m in messages)
            raise CompileError("error.tei.invalid.attributes", n.qname, details, mark=n.start)
        self.visit_body(n)


def validate_xml_view(page: Nodes, page_info: PageInfo) -> None:
    """
    Hand the XML view of ``page`` to every imported library that declares
    a validator. Messages of all libraries are reported together.
    """
    libraries = [lib for lib in page_info.taglibs.values() if lib.descriptor.validator]
    if not libraries:
        return
    view = build_xml_view(page, page_info)
    problems: List[str] = []
    for lib in libraries:
        messages = lib.validate(view)
        if messages:
            details = "; ".join(f"{m.id}: {m.message}" for m in messages if m is not None)
            problems.append(f"[{lib.short_name}] {details}")
    if problems:
        raise CompileError("error.tlv.invalid.page", page_info.unit, " ".join(problems))


# --------------------------------------------------------------------------- #
# Scripting variables
# --------------------------------------------------------------------------- #
MAX_SCOPE = 2 ** 31 - 1


class CustomTagCounter(Visitor):
    """Numbers custom tags in post-order and links each to its custom tag parent."""

    def __init__(self) -> None:
        self.count = 0
        self.parent: Optional[CustomTag] = None

    def visit_custom_tag(self, n: CustomTag) -> None:
        n.custom_tag_parent = self.parent
        saved = self.parent
        self.parent = n
        self.visit_body(n)
        self.parent = saved
        n.num_count = self.count
        self.count += 1


class ScriptingVariableVisitor(Visitor):
    """
    Decides, per custom tag and scope, which exposed variables must be
    declared. A name is declared again only when the new declaration has
    a wider range than the one already visible.
    """

    def __init__(self) -> None:
        self.script_vars: Dict[str, int] = {}

    def visit_custom_tag(self, n: CustomTag) -> None:
        self._set_scripting_vars(n, VariableScope.AT_BEGIN)
        self._set_scripting_vars(n, VariableScope.NESTED)
        self.visit_body(n)
        self._set_scripting_vars(n, VariableScope.AT_END)

    def _set_scripting_vars(self, n: CustomTag, scope: VariableScope) -> None:
        tag_vars = n.tag_info.variables
        var_infos = n.variable_infos
        if not tag_vars and not var_infos:
            return

        if scope is VariableScope.NESTED:
            own_range = n.num_count
        elif n.custom_tag_parent is None:
            own_range = MAX_SCOPE
        else:
            own_range = n.custom_tag_parent.num_count

        selected: list = []
        if var_infos:
            for info in var_infos:
                if info.scope != scope.value or not info.declare:
                    continue
                if self._claim(info.var_name, own_range):
                    selected.append(info)
        else:
            for info in tag_vars:
                if info.scope is not scope or not info.declare:
                    continue
                name = info.name_given
                if name is None:
                    name = n.tag_data.get_attribute_string(info.name_from_attribute)
                    if name is None:
                        raise CompileError("error.scripting.variable.missing_name",
                                           info.name_from_attribute, mark=n.start)
                if self._claim(name, own_range):
                    selected.append(info)
        n.set_scripting_vars(selected, scope)

    def _claim(self, name: str, own_range: int) -> bool:
        current = self.script_vars.get(name)
        if current is None or own_range > current:
            self.script_vars[name] = own_range
            return True
        return False


def set_scripting_vars(page: Nodes) -> None:
    page.visit(CustomTagCounter())
    page.visit(ScriptingVariableVisitor())


# --------------------------------------------------------------------------- #
# Entry point
# --------------------------------------------------------------------------- #
def validate_ex_directives(page_info: PageInfo, page: Nodes) -> None:
    """
    Resolve the output content type, then run the semantic pass and the
    library hooks over ``page``.
    """
    root = page[0]
    content_type = page_info.content_type
    if content_type is None or "charset=" not in content_type:
        is_xml = root.is_xml_syntax
        default_type = content_type or ("text/xml" if is_xml else "text/html")
        charset = None
        if is_xml:
            charset = "UTF-8"
        elif not root.is_default_page_encoding:
            charset = root.page_encoding
        page_info.content_type = f"{default_type};charset={charset}" if charset else default_type

    page.visit(ValidateVisitor(page_info))
    validate_xml_view(page, page_info)
    page.visit(TagExtraInfoVisitor())
    logger.debug("semantic pass done for %s", page_info.unit)


__all__ = [
    "ValidateVisitor", "TagExtraInfoVisitor", "CustomTagCounter",
    "ScriptingVariableVisitor", "validate_ex_directives", "validate_xml_view",
    "set_scripting_vars",
]
