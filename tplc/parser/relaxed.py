"""
Recursive-descent parser for the relaxed ("tag soup") syntax.

The parser walks a ``SourceReader`` and builds nodes directly under the
parent it is handed. Custom tags are recognised by their prefix; text
that merely looks like a prefixed tag falls back to template text after
the reader is reset.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, List, Optional

from ..errors import CompileError
from ..mark import Mark
from ..nodes import (
    Attributes,
    Comment,
    CustomTag,
    Declaration,
    DoBodyAction,
    ELExpression,
    Expression,
    FallBackAction,
    ForwardAction,
    GetProperty,
    IncludeAction,
    IncludeDirective,
    InvokeAction,
    JspBody,
    JspElement,
    NamedAttribute,
    Node,
    Nodes,
    PageDirective,
    ParamAction,
    ParamsAction,
    PlugIn,
    Root,
    Scriptlet,
    SetProperty,
    TagDirective,
    TaglibDirective,
    TemplateText,
    UseBean,
    AttributeDirective,
    VariableDirective,
)
from ..reader import SourceReader
from ..taglib.model import BodyContent
from .attributes import unquote_attribute

if TYPE_CHECKING:  # pragma: no cover
    from .controller import ParserController

logger = logging.getLogger(__name__)

# Body kinds beyond the descriptor ones, private to the parser.
BODY_PARAM = "_param"
BODY_PLUGIN = "_plugin"
BODY_TEMPLATE_TEXT = "_template_text"

_JSP = BodyContent.JSP.value
_SCRIPTLESS = BodyContent.SCRIPTLESS.value
_EMPTY = BodyContent.EMPTY.value
_TAGDEPENDENT = BodyContent.TAGDEPENDENT.value

# Directive names, in the order they are tried.
_DIRECTIVES = ("page", "include", "taglib", "tag", "attribute", "variable")


def _is_name_start(ch: str) -> bool:
    return ch != "" and (ch.isalpha() or ch in "_:")


def _is_name_part(ch: str) -> bool:
    return ch != "" and (ch.isalnum() or ch in "._-:")


def parse_script_text(text: str) -> str:
    """``%\\>`` inside scripting text stands for ``%>``."""
    return text.replace("%\\>", "%>")


class RelaxedParser:
    """
    Args:
        pc: Controller owning the translation unit
        reader: Cursor over the unit text
        is_tag_file: Whether the unit is a tag file
        directives_only: Skip everything but directives
    """

    def __init__(self, pc: "ParserController", reader: SourceReader,
                 is_tag_file: bool = False, directives_only: bool = False):
        self.pc = pc
        self.reader = reader
        self.page_info = pc.page_info
        self.options = pc.options
        self.is_tag_file = is_tag_file
        self.directives_only = directives_only
        self.scriptless_count = 0
        self.start: Mark = reader.mark()

    # ------------------------------------------------------------------ entry

    @classmethod
    def parse(
        cls,
        pc: "ParserController",
        reader: SourceReader,
        parent: Optional[Node],
        is_tag_file: bool,
        directives_only: bool,
        page_encoding: str,
        config_page_encoding: Optional[str],
        is_default_page_encoding: bool,
        is_bom_present: bool,
    ) -> Nodes:
        parser = cls(pc, reader, is_tag_file, directives_only)
        root = Root(reader.mark(), parent, False)
        root.page_encoding = page_encoding
        root.config_page_encoding = config_page_encoding
        root.is_default_page_encoding = is_default_page_encoding
        root.is_bom_present = is_bom_present

        outermost = parent is None and not is_tag_file
        if outermost:
            parser._add_include(root, pc.page_info.include_prelude)
        if directives_only:
            parser._parse_file_directives(root)
        else:
            while reader.has_more_input():
                parser._parse_elements(root)
        if outermost:
            parser._add_include(root, pc.page_info.include_coda)
        return Nodes(root)

    # ------------------------------------------------------------- attributes

    def parse_attributes(self, page_directive: bool = False) -> Attributes:
        attrs = Attributes()
        self.reader.skip_spaces()
        ws = 1
        while self._parse_attribute(attrs, page_directive):
            if ws == 0 and self.options.strict_whitespace:
                raise CompileError("error.attribute.nowhitespace", mark=self.reader.mark())
            ws = self.reader.skip_spaces()
        return attrs

    def _add_unique(self, attrs: Attributes, qname: str, value: str,
                    local_name: str, uri: str, page_directive: bool) -> None:
        index = attrs.index_of(qname)
        if index < 0:
            attrs.add(qname, value, local_name, uri)
            return
        if page_directive:
            if qname.lower() == "import":
                attrs.set_value(index, attrs[index].value + "," + value)
                return
            # pageEncoding may not repeat at all; others only with equal values
            if qname.lower() != "pageencoding" and attrs[index].value == value:
                return
        raise CompileError("error.attribute.duplicate", qname, mark=self.reader.mark())

    def _parse_attribute(self, attrs: Attributes, page_directive: bool) -> bool:
        reader = self.reader
        qname = self._parse_name()
        if qname is None:
            return False
        ignore_el = self.page_info.is_el_ignored
        local_name = qname
        uri = ""
        if ":" in qname:
            prefix, local_name = qname.split(":", 1)
            found = self.page_info.get_uri(prefix)
            if found is None:
                raise CompileError("error.attribute.invalid.prefix", prefix, mark=reader.mark())
            uri = found

        reader.skip_spaces()
        if not reader.matches("="):
            raise CompileError("error.attribute.noequal", mark=reader.mark())
        reader.skip_spaces()
        quote = reader.next_char()
        if quote not in ("'", '"'):
            raise CompileError("error.attribute.noquote", mark=reader.mark())
        watch = ""
        if reader.matches("<%="):
            watch = "%>"
            ignore_el = True
        watch += quote
        value = self._parse_attribute_value(qname, watch, ignore_el)
        self._add_unique(attrs, qname, value, local_name, uri, page_directive)
        return True

    def _parse_name(self) -> Optional[str]:
        reader = self.reader
        if not _is_name_start(reader.peek_char()):
            return None
        buf = [reader.next_char()]
        while _is_name_part(reader.peek_char()):
            buf.append(reader.next_char())
        return "".join(buf)

    def _parse_attribute_value(self, qname: str, watch: str, ignore_el: bool) -> str:
        reader = self.reader
        quote_el = self.options.quote_attribute_el
        start = reader.mark()
        stop = reader.skip_until_ignore_esc(watch, ignore_el or quote_el)
        if stop is None:
            raise CompileError("error.attribute.unterminated", qname, mark=start)
        try:
            value = unquote_attribute(
                reader.get_text(start, stop),
                watch[-1],
                self.page_info.is_el_ignored or len(watch) > 1,
                self.page_info.deferred_syntax_allowed_as_literal,
                self.options.strict_quote_escaping,
                quote_el,
            )
        except ValueError:
            raise CompileError("error.attribute.noescape", qname, watch[-1], mark=start) from None
        if len(watch) == 1:
            return value
        return "<%=" + value + "%>"

    # ------------------------------------------------------------- directives

    def _process_include(self, file: Optional[str], parent: Node) -> None:
        if file is None:
            return
        self.pc.parse_include(file, parent, self.start)

    def _add_include(self, parent: Node, files: List[str]) -> None:
        for file in files:
            attrs = Attributes()
            attrs.add("file", file)
            node = IncludeDirective(attrs, self.reader.mark(), parent)
            self._process_include(file, node)

    def _parse_page_directive(self, parent: Node) -> None:
        attrs = self.parse_attributes(page_directive=True)
        n = PageDirective(attrs, self.start, parent)
        for a in attrs:
            if a.qname == "import":
                try:
                    n.add_import(a.value)
                except ValueError as e:
                    raise CompileError("error.page.invalid.import", str(e), mark=self.start) from None

    def _parse_include_directive(self, parent: Node) -> None:
        attrs = self.parse_attributes()
        node = IncludeDirective(attrs, self.start, parent)
        self._process_include(attrs.get_value("file"), node)

    def _parse_taglib_directive(self, parent: Node) -> None:
        attrs = self.parse_attributes()
        uri = attrs.get_value("uri")
        prefix = attrs.get_value("prefix")
        if prefix is not None:
            prev = self.page_info.get_non_custom_tag_prefix(prefix)
            if prev is not None:
                raise CompileError("error.prefix.use.before.dcl", prefix, prev.unit, prev.line,
                                   mark=self.reader.mark())
            if uri is not None:
                uri_prev = self.page_info.get_uri(prefix)
                if uri_prev is not None and uri_prev != uri:
                    raise CompileError("error.prefix.redefined", prefix, uri, uri_prev,
                                       mark=self.reader.mark())
                self.pc.get_taglib(prefix, uri, self.start)
                self.page_info.add_prefix_mapping(prefix, uri)
            else:
                tagdir = attrs.get_value("tagdir")
                if tagdir is not None:
                    info = self.pc.get_implicit_taglib(prefix, tagdir, self.start)
                    self.page_info.add_prefix_mapping(prefix, info.uri)
        TaglibDirective(attrs, self.start, parent)

    def _parse_tag_directive(self, parent: Node) -> None:
        attrs = self.parse_attributes(page_directive=True)
        n = TagDirective(attrs, self.start, parent)
        for a in attrs:
            if a.qname == "import":
                n.add_import(a.value)

    def _check_directive_allowed(self, name: str, shown: str) -> None:
        if name == "page" and self.is_tag_file:
            raise CompileError("error.directive.istagfile", shown, mark=self.reader.mark())
        if name in ("tag", "attribute", "variable") and not self.is_tag_file:
            raise CompileError("error.directive.isnottagfile", shown, mark=self.reader.mark())

    def _dispatch_directive(self, name: str, parent: Node) -> None:
        if name == "page":
            self._parse_page_directive(parent)
        elif name == "include":
            self._parse_include_directive(parent)
        elif name == "taglib":
            self._parse_taglib_directive(parent)
        elif name == "tag":
            self._parse_tag_directive(parent)
        elif name == "attribute":
            AttributeDirective(self.parse_attributes(), self.start, parent)
        else:
            VariableDirective(self.parse_attributes(), self.start, parent)

    def _match_directive_name(self, allow_taglib: bool) -> Optional[str]:
        for name in _DIRECTIVES:
            if name == "taglib" and not allow_taglib:
                continue
            if self.reader.matches(name):
                return name
        return None

    def _parse_directive(self, parent: Node) -> None:
        reader = self.reader
        reader.skip_spaces()
        name = self._match_directive_name(allow_taglib=True)
        if name is None:
            raise CompileError("error.invalid.directive", mark=reader.mark())
        shown = "<%@ " + name
        if name == "taglib" and self.directives_only:
            return
        self._check_directive_allowed(name, shown)
        self._dispatch_directive(name, parent)
        reader.skip_spaces()
        if not reader.matches("%>"):
            raise CompileError("error.unterminated", shown, mark=self.start)

    def _parse_xml_directive(self, parent: Node) -> None:
        reader = self.reader
        reader.skip_spaces()
        name = self._match_directive_name(allow_taglib=False)
        if name is None:
            raise CompileError("error.invalid.directive", mark=reader.mark())
        etag = "jsp:directive." + name
        self._check_directive_allowed(name, "<" + etag)
        self._dispatch_directive(name, parent)
        reader.skip_spaces()
        if reader.matches(">"):
            reader.skip_spaces()
            if not reader.matches_etag(etag):
                raise CompileError("error.unterminated", "<" + etag, mark=self.start)
        elif not reader.matches("/>"):
            raise CompileError("error.unterminated", "<" + etag, mark=self.start)

    # -------------------------------------------------------------- scripting

    def _parse_comment(self, parent: Node) -> None:
        self.start = self.reader.mark()
        stop = self.reader.skip_until("--%>")
        if stop is None:
            raise CompileError("error.unterminated", "<%--", mark=self.start)
        Comment(self.reader.get_text(self.start, stop), self.start, parent)

    def _parse_scripting(self, parent: Node, factory, opener: str) -> None:
        self.start = self.reader.mark()
        stop = self.reader.skip_until("%>")
        if stop is None:
            raise CompileError("error.unterminated", opener, mark=self.start)
        factory(parse_script_text(self.reader.get_text(self.start, stop)), self.start, parent)

    def _parse_xml_scripting(self, parent: Node, factory, tag: str) -> None:
        """``<jsp:declaration>`` and friends: text and CDATA sections."""
        reader = self.reader
        reader.skip_spaces()
        if reader.matches("/>"):
            return
        if not reader.matches(">"):
            raise CompileError("error.unterminated", f"<{tag}>", mark=self.start)
        while True:
            self.start = reader.mark()
            stop = reader.skip_until("<")
            if stop is None:
                raise CompileError("error.unterminated", f"<{tag}>", mark=self.start)
            factory(parse_script_text(reader.get_text(self.start, stop)), self.start, parent)
            if not reader.matches("![CDATA["):
                break
            self.start = reader.mark()
            stop = reader.skip_until("]]>")
            if stop is None:
                raise CompileError("error.unterminated", "CDATA", mark=self.start)
            factory(parse_script_text(reader.get_text(self.start, stop)), self.start, parent)
        if not reader.matches_etag_without_less_than(tag):
            raise CompileError("error.unterminated", f"<{tag}>", mark=self.start)

    def _parse_el_expression(self, parent: Node, type_: str) -> None:
        self.start = self.reader.mark()
        last = self.reader.skip_el_expression()
        if last is None:
            raise CompileError("error.unterminated", type_ + "{", mark=self.start)
        ELExpression(type_, self.reader.get_text(self.start, last), self.start, parent)

    # -------------------------------------------------------- standard actions

    def _parse_param(self, parent: Node) -> None:
        reader = self.reader
        if not reader.matches("<jsp:param"):
            raise CompileError("error.param.expected", mark=reader.mark())
        attrs = self.parse_attributes()
        reader.skip_spaces()
        node = ParamAction(attrs, self.start, parent)
        self._parse_empty_body(node, "jsp:param")
        reader.skip_spaces()

    def _parse_action(self, parent: Node, factory, tag: str, body_type: Optional[str]) -> None:
        attrs = self.parse_attributes()
        self.reader.skip_spaces()
        node = factory(attrs, self.start, parent)
        if body_type is None:
            self._parse_empty_body(node, tag)
        else:
            self._parse_optional_body(node, tag, body_type)

    def _parse_empty_body(self, parent: Node, tag: str) -> None:
        reader = self.reader
        if reader.matches("/>"):
            return
        if not reader.matches(">"):
            raise CompileError("error.unterminated", "<" + tag, mark=reader.mark())
        if reader.matches_etag(tag):
            return
        if reader.matches_optional_spaces_followed_by("<jsp:attribute"):
            self._parse_named_attributes(parent)
            if reader.matches_etag(tag):
                return
        raise CompileError("error.jspbody.emptybody.only", "<" + tag, mark=reader.mark())

    def _parse_optional_body(self, parent: Node, tag: str, body_type: str) -> None:
        reader = self.reader
        if reader.matches("/>"):
            return
        if not reader.matches(">"):
            raise CompileError("error.unterminated", "<" + tag, mark=reader.mark())
        if reader.matches_etag(tag):
            return
        if not self._parse_jsp_attribute_and_body(parent, tag, body_type):
            self._parse_body(parent, tag, body_type)

    def _parse_jsp_attribute_and_body(self, parent: Node, tag: str, body_type: str) -> bool:
        reader = self.reader
        result = False
        if reader.matches_optional_spaces_followed_by("<jsp:attribute"):
            self._parse_named_attributes(parent)
            result = True
        if reader.matches_optional_spaces_followed_by("<jsp:body"):
            self._parse_jsp_body(parent, body_type)
            reader.skip_spaces()
            if not reader.matches_etag(tag):
                raise CompileError("error.unterminated", "<" + tag, mark=reader.mark())
            result = True
        elif result and not reader.matches_etag(tag):
            raise CompileError("error.jspbody.required", "<" + tag, mark=reader.mark())
        return result

    def _parse_plugin_tags(self, parent: Node) -> None:
        reader = self.reader
        reader.skip_spaces()
        if reader.matches("<jsp:params"):
            node = ParamsAction(None, self.start, parent)
            self._parse_optional_body(node, "jsp:params", BODY_PARAM)
            reader.skip_spaces()
        if reader.matches("<jsp:fallback"):
            node = FallBackAction(None, self.start, parent)
            self._parse_optional_body(node, "jsp:fallback", BODY_TEMPLATE_TEXT)
            reader.skip_spaces()

    def _parse_standard_action(self, parent: Node) -> None:
        reader = self.reader
        start = reader.mark()
        if reader.matches("include"):
            self._parse_action(parent, IncludeAction, "jsp:include", BODY_PARAM)
        elif reader.matches("forward"):
            self._parse_action(parent, ForwardAction, "jsp:forward", BODY_PARAM)
        elif reader.matches("invoke"):
            if not self.is_tag_file:
                raise CompileError("error.action.isnottagfile", "<jsp:invoke", mark=reader.mark())
            self._parse_action(parent, InvokeAction, "jsp:invoke", None)
        elif reader.matches("doBody"):
            if not self.is_tag_file:
                raise CompileError("error.action.isnottagfile", "<jsp:doBody", mark=reader.mark())
            self._parse_action(parent, DoBodyAction, "jsp:doBody", None)
        elif reader.matches("getProperty"):
            self._parse_action(parent, GetProperty, "jsp:getProperty", _EMPTY)
        elif reader.matches("setProperty"):
            self._parse_action(parent, SetProperty, "jsp:setProperty", _EMPTY)
        elif reader.matches("useBean"):
            self._parse_action(parent, UseBean, "jsp:useBean", _JSP)
        elif reader.matches("plugin"):
            self._parse_action(parent, PlugIn, "jsp:plugin", BODY_PLUGIN)
        elif reader.matches("element"):
            self._parse_action(parent, JspElement, "jsp:element", _JSP)
        elif reader.matches("attribute"):
            raise CompileError("error.namedattribute.invalid.use", mark=start)
        elif reader.matches("body"):
            raise CompileError("error.jspbody.invalid.use", mark=start)
        elif reader.matches("fallback"):
            raise CompileError("error.fallback.invalid.use", mark=start)
        elif reader.matches("params"):
            raise CompileError("error.params.invalid.use", mark=start)
        elif reader.matches("param"):
            raise CompileError("error.param.invalid.use", mark=start)
        elif reader.matches("output"):
            raise CompileError("error.jspoutput.invalid.use", mark=start)
        else:
            raise CompileError("error.bad.standard.action", mark=start)

    # ------------------------------------------------------------ custom tags

    def _parse_custom_tag(self, parent: Node) -> bool:
        reader = self.reader
        if reader.peek_char() != "<":
            return False
        reader.next_char()
        tag_name = reader.parse_token(False)
        if ":" not in tag_name:
            reader.reset(self.start)
            return False
        prefix, short_name = tag_name.split(":", 1)
        uri = self.page_info.get_uri(prefix)
        if uri is None:
            if self.page_info.error_on_undeclared_namespace:
                raise CompileError("error.undeclared.namespace", prefix, mark=self.start)
            reader.reset(self.start)
            self.page_info.put_non_custom_tag_prefix(prefix, reader.mark())
            return False

        taglib = self.page_info.get_taglib(uri)
        tag_info = taglib.get_tag(short_name) if taglib is not None else None
        tag_file_info = taglib.get_tag_file(short_name) if taglib is not None and tag_info is None else None
        if tag_info is None and tag_file_info is None:
            raise CompileError("error.bad.tag", short_name, prefix, mark=self.start)
        if tag_info is not None and not tag_info.handler_class:
            raise CompileError("error.loadclass.taghandler", None, tag_name, mark=self.start)

        attrs = self.parse_attributes()
        reader.skip_spaces()
        info = tag_info if tag_info is not None else tag_file_info.tag_info
        node = CustomTag(tag_name, prefix, short_name, uri, attrs, self.start, parent,
                         info, tag_file_info)
        if reader.matches("/>"):
            return True
        self._parse_optional_body(node, tag_name, info.body_content.value)
        return True

    # ----------------------------------------------------------- template text

    def _parse_template_text(self, parent: Node) -> None:
        reader = self.reader
        if not reader.has_more_input():
            return
        el_on = not self.page_info.is_el_ignored
        deferred_literal = self.page_info.deferred_syntax_allowed_as_literal
        buf: List[str] = []
        ch = reader.next_char()
        while ch != "":
            if ch == "<":
                if reader.peek_char(0) == "\\" and reader.peek_char(1) == "%":
                    buf.append(ch)
                    reader.next_char()
                    buf.append(reader.next_char())
                elif not buf:
                    buf.append(ch)
                else:
                    reader.push_char()
                    break
            elif ch == "\\" and el_on:
                if reader.peek_char(0) in ("$", "#"):
                    buf.append(reader.next_char())
                else:
                    buf.append(ch)
            elif (ch == "$" or (ch == "#" and not deferred_literal)) and el_on:
                if reader.peek_char(0) == "{":
                    reader.push_char()
                    break
                buf.append(ch)
            else:
                buf.append(ch)
            ch = reader.next_char()
        TemplateText("".join(buf), self.start, parent)

    def _parse_xml_template_text(self, parent: Node) -> None:
        reader = self.reader
        reader.skip_spaces()
        if reader.matches("/>"):
            return
        if not reader.matches(">"):
            raise CompileError("error.unterminated", "<jsp:text>", mark=self.start)
        buf: List[str] = []
        ch = reader.next_char()
        while ch != "":
            if ch == "<":
                if not reader.matches("![CDATA["):
                    break
                self.start = reader.mark()
                stop = reader.skip_until("]]>")
                if stop is None:
                    raise CompileError("error.unterminated", "CDATA", mark=self.start)
                buf.append(reader.get_text(self.start, stop))
            elif ch == "\\":
                if reader.peek_char(0) in ("$", "#"):
                    buf.append(reader.next_char())
                else:
                    buf.append("\\")
            elif ch in ("$", "#"):
                if reader.peek_char(0) == "{":
                    reader.next_char()
                    TemplateText("".join(buf), self.start, parent)
                    self._parse_el_expression(parent, ch)
                    self.start = reader.mark()
                    buf = []
                else:
                    buf.append(ch)
            else:
                buf.append(ch)
            ch = reader.next_char()
        TemplateText("".join(buf), self.start, parent)
        if not reader.has_more_input():
            raise CompileError("error.unterminated", "<jsp:text>", mark=self.start)
        if not reader.matches_etag_without_less_than("jsp:text"):
            raise CompileError("error.jsptext.badcontent", mark=self.start)

    # ---------------------------------------------------------------- elements

    def _try_el_start(self) -> Optional[str]:
        reader = self.reader
        if self.page_info.is_el_ignored:
            return None
        if reader.matches("${"):
            return "$"
        if not self.page_info.deferred_syntax_allowed_as_literal and reader.matches("#{"):
            return "#"
        return None

    def _parse_elements(self, parent: Node) -> None:
        if self.scriptless_count > 0:
            self._parse_elements_scriptless(parent)
            return
        reader = self.reader
        self.start = reader.mark()
        if reader.matches("<%--"):
            self._parse_comment(parent)
        elif reader.matches("<%@"):
            self._parse_directive(parent)
        elif reader.matches("<jsp:directive."):
            self._parse_xml_directive(parent)
        elif reader.matches("<%!"):
            self._parse_scripting(parent, Declaration, "<%!")
        elif reader.matches("<jsp:declaration"):
            self._parse_xml_scripting(parent, Declaration, "jsp:declaration")
        elif reader.matches("<%="):
            self._parse_scripting(parent, Expression, "<%=")
        elif reader.matches("<jsp:expression"):
            self._parse_xml_scripting(parent, Expression, "jsp:expression")
        elif reader.matches("<%"):
            self._parse_scripting(parent, Scriptlet, "<%")
        elif reader.matches("<jsp:scriptlet"):
            self._parse_xml_scripting(parent, Scriptlet, "jsp:scriptlet")
        elif reader.matches("<jsp:text"):
            self._parse_xml_template_text(parent)
        else:
            el_type = self._try_el_start()
            if el_type is not None:
                self._parse_el_expression(parent, el_type)
            elif reader.matches("<jsp:"):
                self._parse_standard_action(parent)
            elif not self._parse_custom_tag(parent):
                self._check_unbalanced_end_tag()
                self._parse_template_text(parent)

    def _parse_elements_scriptless(self, parent: Node) -> None:
        reader = self.reader
        self.scriptless_count += 1
        self.start = reader.mark()
        if reader.matches("<%--"):
            self._parse_comment(parent)
        elif reader.matches("<%@"):
            self._parse_directive(parent)
        elif reader.matches("<jsp:directive."):
            self._parse_xml_directive(parent)
        elif any(reader.matches(s) for s in ("<%!", "<jsp:declaration", "<%=",
                                              "<jsp:expression", "<%", "<jsp:scriptlet")):
            raise CompileError("error.no.scriptlets", mark=reader.mark())
        elif reader.matches("<jsp:text"):
            self._parse_xml_template_text(parent)
        else:
            el_type = self._try_el_start()
            if el_type is not None:
                self._parse_el_expression(parent, el_type)
            elif reader.matches("<jsp:"):
                self._parse_standard_action(parent)
            elif not self._parse_custom_tag(parent):
                self._check_unbalanced_end_tag()
                self._parse_template_text(parent)
        self.scriptless_count -= 1

    def _parse_elements_template_text(self, parent: Node) -> None:
        reader = self.reader
        self.start = reader.mark()
        if reader.matches("<%--"):
            self._parse_comment(parent)
            return
        if reader.matches("<%@"):
            self._parse_directive(parent)
            return
        if reader.matches("<jsp:directive."):
            self._parse_xml_directive(parent)
            return
        forbidden = (
            ("<%!", "Declarations"), ("<jsp:declaration", "Declarations"),
            ("<%=", "Expressions"), ("<jsp:expression", "Expressions"),
            ("<%", "Scriptlets"), ("<jsp:scriptlet", "Scriptlets"),
            ("<jsp:text", "<jsp:text"),
        )
        for opener, what in forbidden:
            if reader.matches(opener):
                raise CompileError("error.not.in.template", what, mark=reader.mark())
        if self._try_el_start() is not None:
            raise CompileError("error.not.in.template", "Expression language", mark=reader.mark())
        if reader.matches("<jsp:"):
            raise CompileError("error.not.in.template", "Standard actions", mark=reader.mark())
        if self._parse_custom_tag(parent):
            raise CompileError("error.not.in.template", "Custom actions", mark=reader.mark())
        self._check_unbalanced_end_tag()
        self._parse_template_text(parent)

    def _check_unbalanced_end_tag(self) -> None:
        reader = self.reader
        if not reader.matches("</"):
            return
        if reader.matches("jsp:"):
            raise CompileError("error.unbalanced.endtag", "jsp:", mark=self.start)
        tag_name = reader.parse_token(False)
        if ":" not in tag_name or self.page_info.get_uri(tag_name.split(":", 1)[0]) is None:
            reader.reset(self.start)
            return
        raise CompileError("error.unbalanced.endtag", tag_name, mark=self.start)

    # ------------------------------------------------------------------ bodies

    def _parse_tag_dependent_body(self, parent: Node, tag: str) -> None:
        body_start = self.reader.mark()
        body_end = self.reader.skip_until_etag(tag)
        if body_end is None:
            raise CompileError("error.unterminated", "<" + tag, mark=self.start)
        TemplateText(self.reader.get_text(body_start, body_end), body_start, parent)

    def _parse_jsp_body(self, parent: Node, body_type: str) -> None:
        reader = self.reader
        start = reader.mark()
        body = JspBody(start, parent)
        reader.skip_spaces()
        if not reader.matches("/>"):
            if not reader.matches(">"):
                raise CompileError("error.unterminated", "<jsp:body", mark=start)
            self._parse_body(body, "jsp:body", body_type)

    def _parse_body(self, parent: Node, tag: str, body_type: str) -> None:
        reader = self.reader
        kind = body_type.lower() if body_type not in (BODY_PARAM, BODY_PLUGIN, BODY_TEMPLATE_TEXT) else body_type
        if kind == _TAGDEPENDENT.lower():
            self._parse_tag_dependent_body(parent, tag)
        elif kind == _EMPTY:
            if not reader.matches_etag(tag):
                raise CompileError("error.emptybodycontent.nonempty", tag, mark=self.start)
        elif kind == BODY_PLUGIN:
            self._parse_plugin_tags(parent)
            if not reader.matches_etag(tag):
                raise CompileError("error.unterminated", "<" + tag, mark=reader.mark())
        elif kind in (_JSP.lower(), _SCRIPTLESS, BODY_PARAM, BODY_TEMPLATE_TEXT):
            while reader.has_more_input():
                if reader.matches_etag(tag):
                    return
                if tag in ("jsp:body", "jsp:attribute"):
                    if reader.matches("<jsp:attribute"):
                        raise CompileError("error.nested.jspattribute", mark=reader.mark())
                    if reader.matches("<jsp:body"):
                        raise CompileError("error.nested.jspbody", mark=reader.mark())
                if kind == _JSP.lower():
                    self._parse_elements(parent)
                elif kind == _SCRIPTLESS:
                    self._parse_elements_scriptless(parent)
                elif kind == BODY_PARAM:
                    reader.skip_spaces()
                    self._parse_param(parent)
                else:
                    self._parse_elements_template_text(parent)
            raise CompileError("error.unterminated", "<" + tag, mark=self.start)
        else:
            raise CompileError("error.bad.bodycontent.type", mark=self.start)

    def _parse_named_attributes(self, parent: Node) -> None:
        reader = self.reader
        while True:
            start = reader.mark()
            attrs = self.parse_attributes()
            node = NamedAttribute(attrs, start, parent)
            reader.skip_spaces()
            if not reader.matches("/>"):
                if not reader.matches(">"):
                    raise CompileError("error.unterminated", "<jsp:attribute", mark=start)
                if node.trim:
                    reader.skip_spaces()
                self._parse_body(node, "jsp:attribute",
                                 _attribute_body_type(parent, attrs.get_value("name")))
                if node.trim and node.body is not None and len(node.body) > 0:
                    last = node.body[len(node.body) - 1]
                    if isinstance(last, TemplateText):
                        last.rtrim()
            reader.skip_spaces()
            if not reader.matches("<jsp:attribute"):
                break

    def _parse_file_directives(self, parent: Node) -> None:
        reader = self.reader
        reader.skip_until("<")
        while reader.has_more_input():
            self.start = reader.mark()
            if reader.matches("%--"):
                reader.skip_until("--%>")
            elif reader.matches("%@"):
                self._parse_directive(parent)
            elif reader.matches("jsp:directive."):
                self._parse_xml_directive(parent)
            elif reader.matches("%"):
                reader.skip_until("%>")
            reader.skip_until("<")


def _attribute_body_type(n: Node, name: Optional[str]) -> str:
    """Body kind allowed inside a ``jsp:attribute`` of ``n``."""
    if isinstance(n, CustomTag):
        tai = n.tag_info.attribute(name) if name is not None else None
        if tai is not None:
            if tai.fragment:
                return _SCRIPTLESS
            if tai.can_be_request_time():
                return _JSP
        if n.tag_info.dynamic_attributes:
            return _JSP
    elif isinstance(n, (IncludeAction, ForwardAction)) and name == "page":
        return _JSP
    elif isinstance(n, (SetProperty, ParamAction)) and name == "value":
        return _JSP
    elif isinstance(n, UseBean) and name == "beanName":
        return _JSP
    elif isinstance(n, PlugIn) and name in ("width", "height"):
        return _JSP
    elif isinstance(n, JspElement):
        return _JSP
    return BODY_TEMPLATE_TEXT


def parse_attributes(pc: "ParserController", reader: SourceReader) -> Attributes:
    """Parse an attribute list at the reader position (page-directive rules)."""
    return RelaxedParser(pc, reader).parse_attributes(page_directive=True)


__all__ = ["RelaxedParser", "parse_attributes", "parse_script_text"]
