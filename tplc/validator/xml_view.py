"""
XML view of a page, handed to tag library validators.

Relaxed-syntax constructs are rewritten into their strict equivalents so a
library validator only ever sees one well-formed document, whichever
syntax the page was written in. Every element carries a ``jsp:id``.
"""

from __future__ import annotations

from typing import List, Optional
from xml.sax.saxutils import escape

from ..nodes import JSP_URI, Attributes, Node, Nodes, Visitor
from ..taglib.hooks import PageData
from .page_info import PageInfo

URN_JSPTLD = "urn:jsptld:"
URN_JSPTAGDIR = "urn:jsptagdir:"

JSP_VERSION = "2.0"
CDATA_START = "<![CDATA[\n"
CDATA_END = "]]>\n"

_XML_ENTITIES = {'"': "&quot;", "'": "&apos;"}


def xml_escape(text: str) -> str:
    """Escape the five XML special characters."""
    return escape(text, _XML_ENTITIES)


def expr_in_xml(value: str) -> str:
    """``<%=x%>`` -> ``%=x%``, then XML-escaped."""
    if value.startswith("<%=") and value.endswith("%>"):
        value = value[1:-1]
    return xml_escape(value)


def escape_cdata(text: Optional[str]) -> str:
    if not text:
        return ""
    return text.replace("]]>", "]]&gt;")


# --------------------------------------------------------------------------- #
# Pass 1: root attributes
# --------------------------------------------------------------------------- #
class _RootAttributesVisitor(Visitor):
    """Collects the namespace declarations the synthetic root needs."""

    def __init__(self, root: Node, page_info: PageInfo):
        self.root = root
        self.page_info = page_info
        self.root_attrs = Attributes()
        self.root_attrs.add("version", JSP_VERSION)
        self.jsp_id_prefix = "jsp"

    def visit_root(self, n: Node) -> None:
        self.visit_body(n)
        if n is not self.root:
            return
        if self.root_attrs.get_value("xmlns:jsp") != JSP_URI:
            self.root_attrs.add("xmlns:jsp", JSP_URI)
        if self.page_info.is_jsp_prefix_hijacked:
            self.jsp_id_prefix += "jsp"
            while self.page_info.contains_prefix(self.jsp_id_prefix):
                self.jsp_id_prefix += "jsp"
            self.root_attrs.add("xmlns:" + self.jsp_id_prefix, JSP_URI)

    def visit_jsp_root(self, n: Node) -> None:
        for attrs in (n.taglib_attrs, n.non_taglib_xmlns_attrs, n.attrs):
            self._add(attrs)
        self.visit_body(n)

    def visit_taglib_directive(self, n: Node) -> None:
        if n.attrs is None:
            return
        qname = "xmlns:" + (n.attrs.get_value("prefix") or "")
        if self.root_attrs.index_of(qname) != -1:
            return
        location = n.attrs.get_value("uri")
        if location is not None:
            if location.startswith("/"):
                location = URN_JSPTLD + location
            self.root_attrs.add(qname, location)
        else:
            self.root_attrs.add(qname, URN_JSPTAGDIR + (n.attrs.get_value("tagdir") or ""))

    def _add(self, attrs: Optional[Attributes]) -> None:
        for a in attrs or ():
            if a.qname == "version":
                continue
            if self.root_attrs.index_of(a.qname) == -1:
                self.root_attrs.add(a.qname, a.value, a.local_name, a.uri)


# --------------------------------------------------------------------------- #
# Pass 2: serialisation
# --------------------------------------------------------------------------- #
class _XmlViewWriter(Visitor):

    def __init__(self, root: Node, root_attrs: Attributes, page_info: PageInfo, jsp_id_prefix: str):
        self.root = root
        self.root_attrs = root_attrs
        self.page_info = page_info
        self.jsp_id_prefix = jsp_id_prefix
        self.buf: List[str] = []
        self.jsp_id = 0
        self.reset_default_ns = False

    def _next_id(self) -> str:
        value = f'  {self.jsp_id_prefix}:id="{self.jsp_id}"\n'
        self.jsp_id += 1
        return value

    # ------------------------------------------------------------- visits

    def visit_root(self, n: Node) -> None:
        if n is self.root:
            self.buf.append('<?xml version="1.0" encoding="UTF-8" ?>\n')
            self._append_tag(n, attrs=self.root_attrs)
            return
        saved = self.reset_default_ns
        if n.is_xml_syntax:
            self.reset_default_ns = True
        self.visit_body(n)
        self.reset_default_ns = saved

    def visit_jsp_root(self, n: Node) -> None:
        self.visit_body(n)

    def visit_include_directive(self, n: Node) -> None:
        self.visit_body(n)

    def visit_taglib_directive(self, n: Node) -> None:
        pass

    def visit_comment(self, n: Node) -> None:
        pass

    def visit_page_directive(self, n: Node) -> None:
        attrs = n.attrs or Attributes()
        if all(a.qname in ("pageEncoding", "contentType") for a in attrs):
            return
        self.buf.append(f"<{n.qname}\n")
        self.buf.append(self._next_id())
        for a in attrs:
            if a.qname in ("import", "contentType", "pageEncoding"):
                continue
            self.buf.append(f'  {a.qname}="{expr_in_xml(a.value)}"\n')
        if n.imports:
            joined = ",".join(expr_in_xml(i) for i in n.imports)
            self.buf.append(f'  import="{joined}"\n')
        self.buf.append("/>\n")

    def visit_tag_directive(self, n: Node) -> None:
        attrs = n.attrs or Attributes()
        if all(a.qname == "pageEncoding" for a in attrs):
            return
        self._append_tag(n)

    def visit_el_expression(self, n: Node) -> None:
        relaxed = not n.get_root().is_xml_syntax
        if relaxed:
            self.buf.append(f'<jsp:text {self.jsp_id_prefix}:id="{self.jsp_id}">')
            self.jsp_id += 1
        self.buf.append("${" + xml_escape(n.text or "") + "}")
        if relaxed:
            self.buf.append("</jsp:text>")
        self.buf.append("\n")

    def visit_template_text(self, n: Node) -> None:
        self._append_text(n.text, not n.get_root().is_xml_syntax)

    def visit_custom_tag(self, n: Node) -> None:
        saved = self.reset_default_ns
        self._append_tag(n, add_default_ns=self.reset_default_ns)
        self.reset_default_ns = saved

    visit_uninterpreted_tag = visit_custom_tag

    def visit_node(self, n: Node) -> None:
        self._append_tag(n)

    # ------------------------------------------------------------ helpers

    def _append_tag(self, n: Node, add_default_ns: bool = False,
                    attrs: Optional[Attributes] = None) -> None:
        body: Optional[Nodes] = n.body
        text = n.text
        self.buf.append(f"<{n.qname}\n")
        self._print_attributes(n, add_default_ns, attrs)
        self.buf.append(self._next_id())
        if n.local_name == "root" or body is not None or text is not None:
            self.buf.append(">\n")
            if n.local_name == "root":
                self._append_synthetic_directive()
            if body is not None:
                body.visit(self)
            else:
                self._append_text(text, False)
            self.buf.append(f"</{n.qname}>\n")
        else:
            self.buf.append("/>\n")

    def _append_synthetic_directive(self) -> None:
        if self.page_info.is_tag_file:
            self.buf.append("<jsp:directive.tag\n")
            self.buf.append(self._next_id())
            self.buf.append('  pageEncoding="UTF-8"\n')
        else:
            self.buf.append("<jsp:directive.page\n")
            self.buf.append(self._next_id())
            self.buf.append('  pageEncoding="UTF-8"\n')
            self.buf.append(f'  contentType="{self.page_info.content_type}"\n')
        self.buf.append("/>\n")

    def _append_text(self, text: Optional[str], as_element: bool) -> None:
        if as_element:
            self.buf.append("<jsp:text\n")
            self.buf.append(self._next_id())
            self.buf.append(">\n")
            self._append_cdata(text)
            self.buf.append("</jsp:text>\n")
        else:
            self._append_cdata(text)

    def _append_cdata(self, text: Optional[str]) -> None:
        self.buf.append(CDATA_START)
        self.buf.append(escape_cdata(text))
        self.buf.append(CDATA_END)

    def _print_attributes(self, n: Node, add_default_ns: bool,
                          attrs: Optional[Attributes] = None) -> None:
        for a in n.taglib_attrs or ():
            self.buf.append(f'  {a.qname}="{a.value}"\n')
        default_ns_seen = False
        for a in n.non_taglib_xmlns_attrs or ():
            self.buf.append(f'  {a.qname}="{a.value}"\n')
            default_ns_seen |= a.qname == "xmlns"
        if add_default_ns and not default_ns_seen:
            self.buf.append('  xmlns=""\n')
        self.reset_default_ns = False
        for a in (attrs if attrs is not None else n.attrs) or ():
            self.buf.append(f'  {a.qname}="{expr_in_xml(a.value)}"\n')


def build_xml_view(page: Nodes, page_info: PageInfo) -> PageData:
    """
    Serialise ``page`` as a strict-syntax document.

    Args:
        page: Parsed unit (its first node is the Root)
        page_info: Settings of the unit
    """
    root = page[0]
    first = _RootAttributesVisitor(root, page_info)
    page.visit(first)
    writer = _XmlViewWriter(root, first.root_attrs, page_info, first.jsp_id_prefix)
    page.visit(writer)
    return PageData("".join(writer.buf))


__all__ = ["build_xml_view", "xml_escape", "expr_in_xml", "escape_cdata", "URN_JSPTLD", "URN_JSPTAGDIR"]
