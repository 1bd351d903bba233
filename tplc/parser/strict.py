"""
Parser for the strict (well-formed XML) syntax.

The document is parsed with lxml and the resulting tree is replayed in
document order as start / characters / end events, which is the shape
the node construction rules are written against. Character data is
buffered and only split into text and expressions at the next
structural boundary.
"""

from __future__ import annotations

import logging
import re
from bisect import bisect_right
from functools import lru_cache
from typing import TYPE_CHECKING, Dict, List, Optional, Tuple

from lxml import etree

from ..errors import CompileError
from ..mark import Mark
from ..nodes import (
    JSP_URI,
    AttributeDirective,
    Attributes,
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
    JspOutput,
    JspRoot,
    JspText,
    NamedAttribute,
    Node,
    Nodes,
    PageDirective,
    ParamAction,
    ParamsAction,
    PlugIn,
    Root,
    ScriptingElement,
    Scriptlet,
    SetProperty,
    TagDirective,
    TemplateText,
    UninterpretedTag,
    UseBean,
    VariableDirective,
)
from ..taglib.model import BodyContent
from ..validator.xml_view import URN_JSPTAGDIR, URN_JSPTLD

if TYPE_CHECKING:  # pragma: no cover
    from ..taglib.library import TagLibraryInfo
    from .controller import ParserController

logger = logging.getLogger(__name__)

_SPACE = " \n\r\t"


def _split_tag(tag: str) -> Tuple[str, str]:
    """``'{uri}local'`` -> ``('uri', 'local')``."""
    if tag.startswith("{"):
        uri, local = tag[1:].split("}", 1)
        return uri, local
    return "", tag


def _prefix_for(nsmap: Dict[Optional[str], str], uri: str) -> Optional[str]:
    for prefix, value in nsmap.items():
        if value == uri and prefix is not None:
            return prefix
    return None


def _end_line(el) -> int:
    """Line of the end of ``el`` (its end tag, or the node itself)."""
    if not isinstance(el.tag, str):
        return el.sourceline or 1
    if len(el):
        last = el[-1]
        return _end_line(last) + (last.tail or "").count("\n")
    return (el.sourceline or 1) + (el.text or "").count("\n")


def _body_type(tag: CustomTag) -> str:
    return tag.tag_info.body_content.value


def _is_tag_dependent(n: Node) -> bool:
    return isinstance(n, CustomTag) and _body_type(n) == BodyContent.TAGDEPENDENT.value


@lru_cache(maxsize=256)
def _start_tag_pattern(qname: str) -> "re.Pattern[str]":
    # markup that may contain a '<' is matched whole and skipped
    return re.compile(
        r"<!--.*?-->|<!\[CDATA\[.*?\]\]>|<\?.*?\?>|<!DOCTYPE[^>]*>|<(" + re.escape(qname) + r")(?=[\s/>])",
        re.S,
    )


class _SourceLocator:
    """
    Finds the start tags of a document in its source text.

    lxml reports a line per element but no column, so start tags are
    searched for in document order, each search resuming after the
    previous hit.
    """

    def __init__(self, text: str):
        self.text = text
        self.line_starts = [0] + [m.end() for m in re.finditer("\n", text)]
        self.cursor = 0

    def find_start_tag(self, qname: str) -> Optional[int]:
        for m in _start_tag_pattern(qname).finditer(self.text, self.cursor):
            if m.group(1):
                self.cursor = m.end()
                return m.start()
        return None

    def end_of_start_tag(self, offset: int) -> int:
        """Offset right after the ``>`` closing the start tag at ``offset``."""
        quote = None
        for i in range(offset, len(self.text)):
            ch = self.text[i]
            if quote is not None:
                if ch == quote:
                    quote = None
            elif ch in "\"'":
                quote = ch
            elif ch == ">":
                return i + 1
        return len(self.text)

    def position(self, offset: int) -> Tuple[int, int]:
        line = bisect_right(self.line_starts, offset)
        return line, offset - self.line_starts[line - 1] + 1


def _source_text(data: bytes, encoding: Optional[str]) -> str:
    try:
        text = data.decode(encoding or "utf-8", errors="replace")
    except LookupError:
        text = data.decode("utf-8", errors="replace")
    return text.lstrip("\ufeff")


class StrictParser:
    """
    Args:
        pc: Controller owning the translation unit
        path: Unit path being parsed
        is_tag_file: Whether the unit is a tag file
        directives_only: Keep only ``jsp:directive.*`` elements
    """

    def __init__(self, pc: "ParserController", path: str,
                 is_tag_file: bool = False, directives_only: bool = False):
        self.pc = pc
        self.ctxt = pc.ctxt
        self.page_info = pc.page_info
        self.path = path
        self.is_tag_file = is_tag_file
        self.directives_only = directives_only
        self.is_top = True
        self.current: Optional[Node] = None
        self.scriptless_body_node: Optional[Node] = None
        self.tag_dependent_nesting = 0
        self.tag_dependent_pending = False
        self._chars: List[str] = []
        self._chars_mark: Optional[Mark] = None
        self.locator: Optional[_SourceLocator] = None

    # ------------------------------------------------------------------ entry

    @classmethod
    def parse(
        cls,
        pc: "ParserController",
        path: str,
        data: bytes,
        parent: Optional[Node],
        is_tag_file: bool,
        directives_only: bool,
        page_encoding: str,
        config_page_encoding: Optional[str],
        is_encoding_specified_in_prolog: bool,
        is_bom_present: bool,
    ) -> Nodes:
        parser = cls(pc, path, is_tag_file, directives_only)
        root = Root(None, parent, True)
        root.page_encoding = page_encoding
        root.config_page_encoding = config_page_encoding
        root.is_encoding_specified_in_prolog = is_encoding_specified_in_prolog
        root.is_bom_present = is_bom_present
        parser.current = root

        if parent is None:
            if not is_tag_file:
                parser._add_include(root, pc.page_info.include_prelude)
        else:
            parser.is_top = False

        override = None if is_encoding_specified_in_prolog or is_bom_present else page_encoding
        document = parser._load(data, override)
        parser.locator = _SourceLocator(_source_text(data, override or document.docinfo.encoding))
        parser._walk(document.getroot(), {})
        parser._flush_chars()

        if parent is None and not is_tag_file:
            parser._add_include(root, pc.page_info.include_coda)
        return Nodes(root)

    def _load(self, data: bytes, encoding: Optional[str] = None):
        xml_parser = etree.XMLParser(
            remove_comments=True,
            remove_pis=True,
            resolve_entities=False,
            load_dtd=False,
            no_network=True,
            strip_cdata=True,
            huge_tree=False,
            encoding=encoding,
        )
        try:
            document = etree.fromstring(data, xml_parser).getroottree()
        except etree.XMLSyntaxError as e:
            line, column = e.position if e.position else (1, 1)
            raise CompileError("error.xml.parse", e.msg, mark=Mark(self.path, line, column)) from None
        if document.docinfo.doctype:
            raise CompileError("error.xml.doctype", mark=Mark(self.path, 1, 1))
        return document

    # ----------------------------------------------------------- tree replay

    def _mark(self, line: Optional[int], column: int = 1) -> Mark:
        return Mark(self.path, line or 1, column)

    def _locate(self, el) -> Tuple[Mark, Mark]:
        """Marks of the start tag of ``el`` and of the character data right after it."""
        local = _split_tag(el.tag)[1]
        qname = f"{el.prefix}:{local}" if el.prefix else local
        offset = self.locator.find_start_tag(qname) if self.locator is not None else None
        if offset is None:
            mark = self._mark(el.sourceline)
            return mark, mark
        after = self.locator.end_of_start_tag(offset)
        return (Mark(self.path, *self.locator.position(offset), offset),
                Mark(self.path, *self.locator.position(after), after))

    def _walk(self, el, parent_nsmap: Dict[Optional[str], str]) -> None:
        declared = [(p, u) for p, u in el.nsmap.items() if parent_nsmap.get(p) != u or p not in parent_nsmap]
        for prefix, uri in declared:
            self._start_prefix_mapping(prefix or "", uri)
        start, content = self._locate(el)
        self._start_element(el, declared, start)
        if el.text:
            self._characters(el.text, content)
        for child in el:
            if isinstance(child.tag, str):
                self._walk(child, el.nsmap)
            if child.tail:
                self._characters(child.tail, self._mark(_end_line(child)))
        self._end_element(el)
        for prefix, _ in reversed(declared):
            self._end_prefix_mapping(prefix or "")

    def _characters(self, text: str, mark: Mark) -> None:
        if not self._chars:
            self._chars_mark = mark
        self._chars.append(text)

    # -------------------------------------------------------- prefix mapping

    def _taglib_for(self, prefix: str, uri: str) -> Optional["TagLibraryInfo"]:
        where = self._mark(None)
        if uri.startswith(URN_JSPTAGDIR):
            return self.pc.get_implicit_taglib(prefix, uri[len(URN_JSPTAGDIR):], where, key=uri)
        if uri.startswith(URN_JSPTLD):
            return self.pc.get_taglib(prefix, uri, where, lookup_uri=uri[len(URN_JSPTLD):])
        return self.pc.get_taglib(prefix, uri, where, required=False)

    def _start_prefix_mapping(self, prefix: str, uri: str) -> None:
        if self.directives_only and uri != JSP_URI:
            return
        info = self._taglib_for(prefix, uri) if uri != JSP_URI else None
        self.page_info.push_prefix_mapping(prefix, uri if info is not None else None)

    def _end_prefix_mapping(self, prefix: str) -> None:
        if self.directives_only and self.page_info.get_uri(prefix) != JSP_URI:
            return
        self.page_info.pop_prefix_mapping(prefix)

    def _check_prefix(self, uri: str, prefix: Optional[str]) -> None:
        if prefix:
            self.page_info.add_prefix(prefix)
            if prefix == "jsp" and uri != JSP_URI:
                self.page_info.is_jsp_prefix_hijacked = True

    # --------------------------------------------------------------- elements

    def _split_attributes(self, el, declared):
        attrs = None
        taglib_attrs = None
        xmlns_attrs = None
        for key, value in el.attrib.items():
            uri, local = _split_tag(key)
            prefix = _prefix_for(el.nsmap, uri) if uri else None
            self._check_prefix(uri, prefix)
            qname = f"{prefix}:{local}" if prefix else local
            if attrs is None:
                attrs = Attributes()
            attrs.add(qname, value, local, uri)
        for prefix, uri in declared:
            qname = "xmlns:" + prefix if prefix else "xmlns"
            if qname.startswith("xmlns:jsp") or self.page_info.has_taglib(uri):
                if taglib_attrs is None:
                    taglib_attrs = Attributes()
                taglib_attrs.add(qname, uri, prefix or "xmlns", "http://www.w3.org/2000/xmlns/")
            else:
                if xmlns_attrs is None:
                    xmlns_attrs = Attributes()
                xmlns_attrs.add(qname, uri, prefix or "xmlns", "http://www.w3.org/2000/xmlns/")
        return attrs, xmlns_attrs, taglib_attrs

    def _start_element(self, el, declared, start: Mark) -> None:
        self._flush_chars()
        uri, local = _split_tag(el.tag)
        prefix = el.prefix
        qname = f"{prefix}:{local}" if prefix else local
        self._check_prefix(uri, prefix)
        # attribute prefixes are checked while splitting, before any early return
        attrs, xmlns_attrs, taglib_attrs = self._split_attributes(el, declared)
        if self.directives_only and not (uri == JSP_URI and local.startswith("directive.")):
            return
        if isinstance(self.current, JspText):
            raise CompileError("error.text.has.subelement", mark=start)

        current = self.current
        if self.tag_dependent_pending and uri == JSP_URI and local == "body":
            self.tag_dependent_pending = False
            self.tag_dependent_nesting += 1
            self.current = self._standard_action(qname, local, attrs, xmlns_attrs, taglib_attrs, start)
            return
        if self.tag_dependent_pending and uri == JSP_URI and local == "attribute":
            self.current = self._standard_action(qname, local, attrs, xmlns_attrs, taglib_attrs, start)
            return
        if self.tag_dependent_pending:
            self.tag_dependent_pending = False
            self.tag_dependent_nesting += 1

        if self.tag_dependent_nesting > 0:
            node = UninterpretedTag(qname, local, attrs, xmlns_attrs, taglib_attrs, start, current)
        elif uri == JSP_URI:
            node = self._standard_action(qname, local, attrs, xmlns_attrs, taglib_attrs, start)
        else:
            node = self._custom_action(qname, local, uri, prefix, attrs, xmlns_attrs, taglib_attrs, start)
            if node is None:
                node = UninterpretedTag(qname, local, attrs, xmlns_attrs, taglib_attrs, start, current)
            else:
                body_type = _body_type(node)
                if self.scriptless_body_node is None and body_type == BodyContent.SCRIPTLESS.value:
                    self.scriptless_body_node = node
                elif body_type == BodyContent.TAGDEPENDENT.value:
                    self.tag_dependent_pending = True
        self.current = node

    def _end_element(self, el) -> None:
        self._flush_chars()
        uri, local = _split_tag(el.tag)
        if self.directives_only and not (uri == JSP_URI and local.startswith("directive.")):
            return
        current = self.current
        end_mark = self._mark(_end_line(el))

        if isinstance(current, NamedAttribute):
            self._trim_named_attribute(current)
        elif isinstance(current, ScriptingElement):
            self._check_scripting_body(current, end_mark)

        if _is_tag_dependent(current):
            if self.tag_dependent_pending:
                # body was empty: nesting was never entered
                self.tag_dependent_pending = False
            else:
                self.tag_dependent_nesting -= 1

        if self.scriptless_body_node is not None and current is self.scriptless_body_node:
            self.scriptless_body_node = None

        if isinstance(current, CustomTag) and _body_type(current) == BodyContent.EMPTY.value:
            if current.body is not None:
                for child in current.body:
                    if not isinstance(child, NamedAttribute):
                        raise CompileError("error.emptybodycontent.nonempty", current.qname, mark=end_mark)

        if current.parent is not None:
            self.current = current.parent

    @staticmethod
    def _trim_named_attribute(na: NamedAttribute) -> None:
        if na.body is None:
            return
        children = list(na.body)
        last = len(children) - 1
        for i, child in enumerate(children):
            if not isinstance(child, TemplateText):
                continue
            if i == 0:
                if na.trim:
                    child.ltrim()
            elif i == last:
                if na.trim:
                    child.rtrim()
            elif child.is_all_space():
                na.body.remove(child)

    @staticmethod
    def _check_scripting_body(n: ScriptingElement, mark: Mark) -> None:
        if n.body is None:
            return
        for child in n.body:
            if not isinstance(child, TemplateText):
                raise CompileError("error.xml.scripting.invalid.body", n.local_name, mark=mark)

    # ------------------------------------------------------- character data

    def _flush_chars(self) -> None:
        if not self._chars:
            return
        text = "".join(self._chars)
        mark = self._chars_mark or self._mark(None)
        self._chars = []
        self._chars_mark = None
        if self.directives_only:
            return
        current = self.current

        is_all_space = True
        if not isinstance(current, (JspText, NamedAttribute)):
            is_all_space = all(ch in _SPACE for ch in text)
        if not is_all_space and self.tag_dependent_pending:
            self.tag_dependent_pending = False
            self.tag_dependent_nesting += 1

        if (self.tag_dependent_nesting > 0 or self.page_info.is_el_ignored
                or isinstance(current, ScriptingElement)):
            if text:
                TemplateText(text, mark, current)
            return
        if isinstance(current, (JspText, NamedAttribute)) or not is_all_space:
            self._split_text(text, mark, current)

    def _split_text(self, text: str, start: Mark, current: Node) -> None:
        """Cut a character run into template text and ``${}``/``#{}`` inserts."""
        line, column = start.line, start.column
        buf: List[str] = []
        last = ""
        i = 0
        size = len(text)
        while i < size:
            ch = text[i]
            if ch == "\n":
                line += 1
                column = 1
            else:
                column += 1
            if last in ("$", "#") and ch == "{":
                el_type = last
                if buf:
                    TemplateText("".join(buf), start, current)
                    buf = []
                    start = Mark(self.path, line, column - 2)
                i += 1
                single_q = double_q = False
                last = ""
                while True:
                    if i >= size:
                        raise CompileError("error.unterminated", el_type + "{", mark=start)
                    ch = text[i]
                    if ch == "\n":
                        line += 1
                        column = 1
                    else:
                        column += 1
                    if last == "\\" and (single_q or double_q):
                        buf.append(ch)
                        last = ""
                        i += 1
                        continue
                    if ch == "}":
                        ELExpression(el_type, "".join(buf), start, current)
                        buf = []
                        start = Mark(self.path, line, column)
                        break
                    if ch == '"':
                        double_q = not double_q
                    elif ch == "'":
                        single_q = not single_q
                    buf.append(ch)
                    last = ch
                    i += 1
            elif last == "\\" and ch in ("$", "#"):
                if self.page_info.is_el_ignored:
                    buf.append("\\")
                buf.append(ch)
                # an escaped marker no longer starts an expression
                ch = ""
            else:
                if last in ("$", "#", "\\"):
                    buf.append(last)
                if ch not in ("$", "#", "\\"):
                    buf.append(ch)
            last = ch
            i += 1
        if last in ("$", "#", "\\"):
            buf.append(last)
        if buf:
            TemplateText("".join(buf), start, current)

    # ------------------------------------------------------- action builders

    def _standard_action(self, qname, local, attrs, xmlns_attrs, taglib_attrs, start) -> Node:
        current = self.current
        common = dict(qname=qname, non_taglib_xmlns_attrs=xmlns_attrs, taglib_attrs=taglib_attrs)
        attrs = attrs if attrs is not None else Attributes()

        def _not_in_scriptless():
            if self.scriptless_body_node is not None:
                raise CompileError("error.no.scriptlets", local, mark=start)

        def _tag_file_only(key):
            if not self.is_tag_file:
                raise CompileError(key, local, mark=start)

        if local == "root":
            if not isinstance(current, Root):
                raise CompileError("error.nested.jsproot", mark=start)
            node = JspRoot(qname, attrs, xmlns_attrs, taglib_attrs, start, current)
            if self.is_top:
                self.page_info.has_jsp_root = True
            return node
        if local == "directive.page":
            if self.is_tag_file:
                raise CompileError("error.action.istagfile", local, mark=start)
            node = PageDirective(attrs, start, current, **common)
            imports = attrs.get_value("import")
            if imports is not None:
                try:
                    node.add_import(imports)
                except ValueError as e:
                    raise CompileError("error.page.invalid.import", str(e), mark=start) from None
            return node
        if local == "directive.include":
            node = IncludeDirective(attrs, start, current, **common)
            file = attrs.get_value("file")
            if file is not None:
                self.pc.parse_include(file, node, start)
            return node
        if local == "declaration":
            _not_in_scriptless()
            return Declaration(None, start, current, **common)
        if local == "scriptlet":
            _not_in_scriptless()
            return Scriptlet(None, start, current, **common)
        if local == "expression":
            _not_in_scriptless()
            return Expression(None, start, current, **common)
        if local == "text":
            return JspText(start, current, **common)
        if local == "body":
            return JspBody(start, current, **common)
        if local in ("params", "fallback"):
            factory = ParamsAction if local == "params" else FallBackAction
            return factory(None, start, current, **common)
        if local == "directive.tag":
            _tag_file_only("error.action.isnottagfile")
            node = TagDirective(attrs, start, current, **common)
            imports = attrs.get_value("import")
            if imports is not None:
                node.add_import(imports)
            return node
        if local in ("directive.attribute", "directive.variable", "invoke", "doBody"):
            _tag_file_only("error.action.isnottagfile")
        factory = _STANDARD_ACTIONS.get(local)
        if factory is None:
            raise CompileError("error.xml.bad.standard.action", local, mark=start)
        return factory(attrs, start, current, **common)

    def _custom_action(self, qname, local, uri, prefix, attrs, xmlns_attrs, taglib_attrs, start):
        taglib = self.page_info.get_taglib(uri)
        if taglib is None:
            return None
        tag_info = taglib.get_tag(local)
        tag_file_info = taglib.get_tag_file(local) if tag_info is None else None
        if tag_info is None and tag_file_info is None:
            raise CompileError("error.xml.bad.tag", local, uri, mark=start)
        if tag_info is not None and not tag_info.handler_class:
            raise CompileError("error.loadclass.taghandler", None, qname, mark=start)
        info = tag_info if tag_info is not None else tag_file_info.tag_info
        return CustomTag(qname, prefix or "", local, uri, attrs if attrs is not None else Attributes(),
                         start, self.current, info, tag_file_info,
                         non_taglib_xmlns_attrs=xmlns_attrs, taglib_attrs=taglib_attrs)

    def _add_include(self, parent: Node, files: List[str]) -> None:
        for file in files:
            attrs = Attributes()
            attrs.add("file", file)
            node = IncludeDirective(attrs, self._mark(1), parent)
            self.pc.parse_include(file, node, node.start)


_STANDARD_ACTIONS = {
    "directive.attribute": AttributeDirective,
    "directive.variable": VariableDirective,
    "useBean": UseBean,
    "setProperty": SetProperty,
    "getProperty": GetProperty,
    "include": IncludeAction,
    "forward": ForwardAction,
    "param": ParamAction,
    "plugin": PlugIn,
    "attribute": NamedAttribute,
    "output": JspOutput,
    "invoke": InvokeAction,
    "doBody": DoBodyAction,
    "element": JspElement,
}


__all__ = ["StrictParser", "URN_JSPTAGDIR", "URN_JSPTLD"]
