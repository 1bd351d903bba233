import pytest

from tplc.nodes import CustomTag, Nodes
from tests.infrastructure import DEMO_TAGLIB, Site


def _kinds(nodes: Nodes, skip=("template_text",)):
    return [n.kind for n in nodes if n.kind not in skip]


def _body(page: Nodes) -> Nodes:
    return page[0].body


def _text(nodes: Nodes) -> str:
    return "".join(n.text or "" for n in nodes if n.kind == "template_text")


class TestRelaxedSyntax:

    def test_node_kinds_in_document_order(self, site: Site):
        site.write("/p.tpl", """
            <%-- note --%>
            <%@ page import="os" %>
            Hello <%= name %> and ${user.name}
            <% x = 1 %>
            <%! y = 2 %>
        """)
        page = site.parse("/p.tpl")
        assert page[0].kind == "root"
        assert page[0].is_xml_syntax is False
        assert _kinds(_body(page)) == [
            "comment", "page_directive", "expression", "el_expression", "scriptlet", "declaration",
        ]

    def test_scripting_text_is_kept_raw(self, site: Site):
        site.write("/p.tpl", "<%= a %\\> b %><% c %>")
        body = _body(site.parse("/p.tpl"))
        assert body[0].text == " a %> b "
        assert body[1].text == " c "

    def test_el_expression_text_and_type(self, site: Site):
        site.write("/p.tpl", "${a.b}#{c}")
        body = _body(site.parse("/p.tpl"))
        assert [(n.type, n.text) for n in body] == [("$", "a.b"), ("#", "c")]

    def test_escaped_el_is_literal_text(self, site: Site):
        site.write("/p.tpl", "cost: \\${price}")
        body = _body(site.parse("/p.tpl"))
        assert _kinds(body) == []
        assert _text(body) == "cost: ${price}"

    def test_escaped_scriptlet_opener(self, site: Site):
        site.write("/p.tpl", "a <\\% b")
        body = _body(site.parse("/p.tpl"))
        assert _text(body) == "a <% b"

    def test_markup_is_template_text(self, site: Site):
        site.write("/p.tpl", "<ul><li>one</li></ul>")
        body = _body(site.parse("/p.tpl"))
        assert _kinds(body) == []
        assert _text(body) == "<ul><li>one</li></ul>"

    def test_unknown_prefix_is_template_text(self, site: Site):
        site.write("/p.tpl", "<svg:rect width='1'/>")
        body = _body(site.parse("/p.tpl"))
        assert _text(body) == "<svg:rect width='1'/>"

    def test_import_attributes_concatenate(self, site: Site):
        site.write("/p.tpl", '<%@ page import="os" import="sys, json" %>')
        directive = _body(site.parse("/p.tpl"))[0]
        assert directive.imports == ["os", "sys", "json"]

    def test_custom_tag_with_body(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + """
            <x:loop items="${list}">item</x:loop><x:hello name="n"/>
        """)
        tags = [n for n in _body(demo_site.parse("/p.tpl")) if n.kind == "custom_tag"]
        assert [t.qname for t in tags] == ["x:loop", "x:hello"]
        loop, hello = tags
        assert isinstance(loop, CustomTag)
        assert loop.implements_iteration_tag is True
        assert loop.has_empty_body() is False
        assert _text(loop.body) == "item"
        assert hello.has_empty_body() is True
        assert hello.attrs.get_value("name") == "n"

    def test_tagdependent_body_is_not_parsed(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + "<x:raw><% not code %>${nor.el}</x:raw>")
        raw = [n for n in _body(demo_site.parse("/p.tpl")) if n.kind == "custom_tag"][0]
        assert _kinds(raw.body) == []
        assert _text(raw.body) == "<% not code %>${nor.el}"

    def test_include_directive_holds_included_root(self, site: Site):
        site.write("/inc.tpl", "included")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        include = _body(site.parse("/p.tpl"))[0]
        assert include.kind == "include_directive"
        inner = include.body[0]
        assert inner.kind == "root"
        assert inner.parent_root is not None
        assert _text(inner.body) == "included"

    def test_marks_point_into_the_unit(self, site: Site):
        site.write("/p.tpl", "line1\n  <% x = 1 %>")
        scriptlet = [n for n in _body(site.parse("/p.tpl")) if n.kind == "scriptlet"][0]
        assert scriptlet.start.unit == "/p.tpl"
        assert scriptlet.start.line == 2


class TestRelaxedSyntaxErrors:

    @pytest.mark.parametrize("text, key", [
        ("<% x = 1", "error.unterminated"),
        ("<%= x", "error.unterminated"),
        ("${a", "error.unterminated"),
        ("<%-- never closed", "error.unterminated"),
        ('<%@ page info="a" %', "error.unterminated"),
        ('<%@ bogus %>', "error.invalid.directive"),
        ('<%@ page session="true" session="false" %>', "error.attribute.duplicate"),
        ('<%@ page info=a %>', "error.attribute.noquote"),
        ('<%@ page info "a" %>', "error.attribute.noequal"),
        ('<%@ tag body-content="empty" %>', "error.directive.isnottagfile"),
        ('<%@ attribute name="a" %>', "error.directive.isnottagfile"),
        ("<jsp:doBody/>", "error.action.isnottagfile"),
        ("<jsp:invoke fragment='f'/>", "error.action.isnottagfile"),
        ("<jsp:body>x</jsp:body>", "error.jspbody.invalid.use"),
        ("<jsp:bogus/>", "error.bad.standard.action"),
        ("</jsp:include>", "error.unbalanced.endtag"),
    ])
    def test_page_errors(self, site: Site, text: str, key: str):
        site.write_raw("/p.tpl", text)
        assert site.error("/p.tpl").key == key

    def test_repeated_equal_attribute_is_accepted(self, site: Site):
        site.write("/p.tpl", '<%@ page info="a" info="a" %>ok')
        assert site.check("/p.tpl").info == "a"

    def test_unknown_tag_of_known_library(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + "<x:nope/>")
        e = demo_site.error("/p.tpl")
        assert e.key == "error.bad.tag"
        assert e.args_ == ("nope", "x")

    def test_stray_end_tag_of_known_library(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + "</x:hello>")
        assert demo_site.error("/p.tpl").key == "error.unbalanced.endtag"

    def test_prefix_used_before_declaration(self, demo_site: Site):
        demo_site.write("/p.tpl", "<x:hello name='a'/>\n" + DEMO_TAGLIB)
        assert demo_site.error("/p.tpl").key == "error.prefix.use.before.dcl"

    def test_undeclared_namespace_can_be_an_error(self, site: Site):
        site.write("/p.tpl", "<svg:rect/>")
        assert site.error("/p.tpl", error_on_undeclared_namespace=True).key == "error.undeclared.namespace"

    def test_scriptlet_in_scriptless_body(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + "<x:box><% x = 1 %></x:box>")
        assert demo_site.error("/p.tpl").key == "error.no.scriptlets"

    def test_body_in_empty_tag(self, demo_site: Site):
        demo_site.write("/p.tpl", DEMO_TAGLIB + "<x:hello name='a'>text</x:hello>")
        assert demo_site.error("/p.tpl").key == "error.emptybodycontent.nonempty"

    def test_missing_taglib(self, site: Site):
        site.write("/p.tpl", '<%@ taglib prefix="q" uri="/WEB-INF/none.tld.yaml" %>')
        assert site.error("/p.tpl").key == "error.taglib.notfound"

    def test_missing_include(self, site: Site):
        site.write("/p.tpl", '<%@ include file="gone.tpl" %>')
        e = site.error("/p.tpl")
        assert e.key == "error.file.not.found"
        assert e.mark.unit == "/p.tpl"

    def test_recursive_include(self, site: Site):
        site.write("/a.tpl", '<%@ include file="b.tpl" %>')
        site.write("/b.tpl", '<%@ include file="a.tpl" %>')
        assert site.error("/a.tpl").key == "error.include.recursive"

    def test_error_message_names_the_position(self, site: Site):
        site.write_raw("/dir/p.tpl", "ok\n  <% open")
        e = site.error("/dir/p.tpl")
        assert str(e).startswith("/dir/p.tpl(2,")


class TestStrictSyntax:

    ROOT = '<jsp:root xmlns:jsp="http://java.sun.com/JSP/Page" version="2.0">{}</jsp:root>'

    def test_suffix_selects_strict_syntax(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format("<p>hi</p><jsp:scriptlet>x = 1</jsp:scriptlet>"))
        page = site.parse("/p.tplx")
        root = page[0]
        assert root.is_xml_syntax is True
        jsp_root = root.body[0]
        assert jsp_root.kind == "jsp_root"
        kinds = [n.kind for n in jsp_root.body]
        assert "uninterpreted_tag" in kinds
        assert "scriptlet" in kinds

    def test_relaxed_suffix_is_sniffed_for_a_root(self, site: Site):
        site.write_raw("/p.tpl", self.ROOT.format("<p>${a}</p>"))
        assert site.parse("/p.tpl")[0].is_xml_syntax is True

    def test_property_group_forces_relaxed_syntax(self, site: Site):
        text = '<my:root xmlns:my="http://java.sun.com/JSP/Page">x</my:root>'
        site.write_raw("/p.tpl", text)
        assert site.parse("/p.tpl")[0].is_xml_syntax is True
        page = site.parse("/p.tpl", property_groups=[{"url_patterns": ["*.tpl"], "is_xml": False}])
        assert page[0].is_xml_syntax is False

    def test_strict_page_compiles(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format("<p>${a}</p><jsp:expression>1 + 1</jsp:expression>"))
        source = site.source("/p.tplx")
        assert "out.print(1 + 1)" in source

    def test_malformed_xml(self, site: Site):
        site.write_raw("/p.tplx", '<jsp:root xmlns:jsp="http://java.sun.com/JSP/Page"><p></jsp:root>')
        assert site.error("/p.tplx").key == "error.xml.parse"

    def test_doctype_is_rejected(self, site: Site):
        site.write_raw("/p.tplx", '<!DOCTYPE html>' + self.ROOT.format("x"))
        assert site.error("/p.tplx").key == "error.xml.doctype"

    def test_nested_root(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format(self.ROOT.format("x")))
        assert site.error("/p.tplx").key == "error.nested.jsproot"

    def test_scripting_in_tag_dependent_position(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format("<jsp:text><p/></jsp:text>"))
        assert site.error("/p.tplx").key == "error.text.has.subelement"

    def test_start_tags_carry_their_column(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format("\n  <p>a</p><jsp:scriptlet>x = 1</jsp:scriptlet>"))
        jsp_root = site.parse("/p.tplx")[0].body[0]
        p, scriptlet = [n for n in jsp_root.body if n.kind != "template_text"]
        assert (p.start.line, p.start.column) == (2, 3)
        assert (scriptlet.start.line, scriptlet.start.column) == (2, 11)
        text = p.body[0]
        assert text.kind == "template_text"
        assert (text.start.line, text.start.column) == (2, 6)

    def test_error_column_is_the_offending_start_tag(self, site: Site):
        site.write_raw("/p.tplx", self.ROOT.format("<jsp:text><p/></jsp:text>"))
        e = site.error("/p.tplx")
        assert e.mark.line == 1
        assert e.mark.column == len(self.ROOT.split("{}")[0]) + len("<jsp:text>") + 1

    def test_tagdependent_body_keeps_elements_uninterpreted(self, demo_site: Site):
        demo_site.write_raw("/p.tplx", self.ROOT.format(
            '<x:raw xmlns:x="urn:jsptld:/WEB-INF/x.tld.yaml">'
            "<p>t</p><jsp:scriptlet>s</jsp:scriptlet></x:raw>"
        ))
        raw = demo_site.parse("/p.tplx")[0].body[0].body[0]
        assert raw.kind == "custom_tag"
        assert _kinds(raw.body) == ["uninterpreted_tag", "uninterpreted_tag"]
        assert [n.qname for n in raw.body] == ["p", "jsp:scriptlet"]

    def test_scriptlet_in_scriptless_body(self, demo_site: Site):
        demo_site.write_raw("/p.tplx", self.ROOT.format(
            '<x:box xmlns:x="urn:jsptld:/WEB-INF/x.tld.yaml">'
            "<jsp:scriptlet>x = 1</jsp:scriptlet></x:box>"
        ))
        e = demo_site.error("/p.tplx")
        assert e.key == "error.no.scriptlets"
        assert e.args_ == ("scriptlet",)


def _outline(nodes: Nodes):
    """Scripting and custom nodes in document order, with the classification of their attributes."""
    found = []
    for n in nodes:
        if n.kind in ("custom_tag", "named_attribute", "expression", "scriptlet", "el_expression"):
            attrs = [(a.local_name, a.kind.value) for a in getattr(n, "jsp_attrs", None) or ()]
            found.append((n.kind, n.qname if n.kind == "custom_tag" else None, attrs))
        if n.body is not None:
            found.extend(_outline(n.body))
    return found


class TestSyntaxEquivalence:

    BODY = (
        '<x:hello name="${{n}}"/>'
        '<x:box title="{rt}">${{a}}</x:box>'
        '<x:loop items="lit">{expr}</x:loop>'
        '<x:box><jsp:attribute name="title">w</jsp:attribute></x:box>'
        "{scriptlet}"
    )

    def test_both_syntaxes_give_the_same_tree(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + self.BODY.format(
            rt="<%= t %>", expr="<%= i %>", scriptlet="<% y = 1 %>"))
        demo_site.write_raw("/p.tplx", (
            '<jsp:root xmlns:jsp="http://java.sun.com/JSP/Page" '
            'xmlns:x="urn:jsptld:/WEB-INF/x.tld.yaml" version="2.0">'
            + self.BODY.format(rt="%= t %", expr="<jsp:expression>i</jsp:expression>",
                               scriptlet="<jsp:scriptlet>y = 1</jsp:scriptlet>")
            + "</jsp:root>"
        ))
        _, relaxed = demo_site.validate("/p.tpl")
        _, strict = demo_site.validate("/p.tplx")
        expected = [
            ("custom_tag", "x:hello", [("name", "el")]),
            ("custom_tag", "x:box", [("title", "script")]),
            ("el_expression", None, []),
            ("custom_tag", "x:loop", [("items", "literal")]),
            ("expression", None, []),
            ("custom_tag", "x:box", [("title", "named")]),
            ("named_attribute", None, []),
            ("scriptlet", None, []),
        ]
        assert _outline(relaxed) == expected
        assert _outline(strict) == expected
