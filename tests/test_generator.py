import pytest

from tests.infrastructure import DEMO_TAGLIB, Site


def _line_of(source: str, needle: str) -> int:
    lines = source.splitlines()
    for i, line in enumerate(lines):
        if needle in line:
            return i
    raise AssertionError(f"{needle!r} not generated")


def _indent(line: str) -> int:
    return len(line) - len(line.lstrip())


class TestPageModule:

    def test_page_class_and_service(self, site: Site):
        site.write("/p.tpl", "hello")
        source = site.source("/p.tpl")
        assert "from tplc import runtime as _tplc_rt" in source
        assert "class p_tpl(_tplc_rt.PageBase):" in source
        assert "def service(self, request, response):" in source
        assert 'response.set_content_type("text/html")' in source
        assert "_tplc_dependants = {}" in source
        assert "_tplc_imports = []" in source
        assert "self.release_page_context(page_context)" in source

    def test_module_name_follows_the_unit(self, site: Site):
        site.write("/shop/cart_view.tpl", "x")
        result = site.compile("/shop/cart_view.tpl")
        assert result.module == "shop.cart_005fview_tpl"
        assert result.output_file == "shop/cart_005fview_tpl.py"

    def test_page_imports(self, site: Site):
        site.write("/p.tpl", '<%@ page import="os, from json import dumps" %>x')
        source = site.source("/p.tpl")
        assert "\nimport os\n" in source
        assert "\nfrom json import dumps\n" in source
        assert '_tplc_imports = [\n    "os",\n    "from json import dumps",\n]' in source

    def test_extends(self, site: Site):
        site.write("/p.tpl", '<%@ page extends="shop.base:Page" %>x')
        source = site.source("/p.tpl")
        assert "from shop.base import Page as _tplc_extends" in source
        assert "class p_tpl(_tplc_extends):" in source

    def test_error_page_gets_the_exception(self, site: Site):
        site.write("/p.tpl", '<%@ page isErrorPage="true" %>x')
        assert "exception = _tplc_rt.get_throwable(request)" in site.source("/p.tpl")

    def test_no_session(self, site: Site):
        site.write("/p.tpl", '<%@ page session="false" %>x')
        assert "session = page_context.get_session()" not in site.source("/p.tpl")

    def test_not_thread_safe(self, site: Site):
        site.write("/p.tpl", '<%@ page isThreadSafe="false" %>x')
        assert "is_thread_safe = False" in site.source("/p.tpl")

    def test_dependants_are_recorded(self, site: Site):
        site.write("/inc.tpl", "included")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        source = site.source("/p.tpl")
        assert '"/inc.tpl":' in source


class TestTemplateText:

    def test_short_text_is_written_per_character(self, site: Site):
        site.write_raw("/p.tpl", "ab")
        source = site.source("/p.tpl")
        assert 'out.write("a")\n' in source
        assert 'out.write("b")\n' in source

    def test_long_text_is_chunked(self, site: Site):
        site.write_raw("/p.tpl", "a" * 3000)
        source = site.source("/p.tpl")
        assert source.count('out.write("aaaa') == 3
        assert 'out.write("' + "a" * 1024 + '")' in source
        assert 'out.write("' + "a" * 952 + '")' in source

    def test_chunk_budget_counts_utf8_bytes(self, site: Site):
        site.write_raw("/p.tpl", '<%@ page pageEncoding="UTF-8" %>' + "é" * 10)
        source = site.source("/p.tpl", text_chunk_size=8)
        # two bytes per character: four characters fit a chunk
        assert source.count('out.write("éééé")') == 2
        assert source.count('out.write("éé")') == 1

    def test_char_arrays(self, site: Site):
        site.write_raw("/p.tpl", "hello world")
        source = site.source("/p.tpl", gen_string_as_char_array=True)
        assert "out.write(_tplc_char_array_0)" in source
        assert '\n_tplc_char_array_0 = "hello world"\n' in source

    def test_el_ignored_text_is_literal(self, site: Site):
        site.write_raw("/p.tpl", '<%@ page isELIgnored="true" %>${x}')
        source = site.source("/p.tpl")
        assert 'out.write("${x}")' in source
        assert "_tplc_rt.evaluate" not in source


class TestScripting:

    def test_expression(self, site: Site):
        site.write_raw("/p.tpl", "<%= 1 + 2 %>")
        assert "out.print(1 + 2)" in site.source("/p.tpl")

    def test_declaration_goes_into_the_class(self, site: Site):
        site.write_raw("/p.tpl", "<%!\n    def helper(self):\n        return 1\n%>x")
        source = site.source("/p.tpl")
        decl = _line_of(source, "def helper(self):")
        assert decl < _line_of(source, "def service(self, request, response):")
        assert _indent(source.splitlines()[decl]) == 4

    def test_block_spans_template_text(self, site: Site):
        site.write_raw("/p.tpl", "<% for i in range(3): %>item<% end %>done")
        source = site.source("/p.tpl")
        lines = source.splitlines()
        head = _line_of(source, "for i in range(3):")
        body = _line_of(source, 'out.write("item")')
        tail = _line_of(source, 'out.write("done")')
        assert head < body < tail
        assert _indent(lines[body]) == _indent(lines[head]) + 4
        assert _indent(lines[tail]) == _indent(lines[head])

    def test_if_else_end(self, site: Site):
        site.write_raw("/p.tpl", "<% if flag: %>yes!<% else: %>no!!<% end %>")
        source = site.source("/p.tpl")
        lines = source.splitlines()
        branch = _line_of(source, "if flag:")
        other = _line_of(source, "else:")
        assert _indent(lines[branch]) == _indent(lines[other])
        assert _indent(lines[_line_of(source, 'out.write("yes!")')]) == _indent(lines[branch]) + 4
        assert _indent(lines[_line_of(source, 'out.write("no!!")')]) == _indent(lines[branch]) + 4

    def test_inline_block_stays_closed(self, site: Site):
        site.write_raw("/p.tpl", "<% for i in range(2):\n    out.print(i)\n%>after")
        source = site.source("/p.tpl")
        lines = source.splitlines()
        head = _line_of(source, "for i in range(2):")
        assert _indent(lines[_line_of(source, 'out.write("after")')]) == _indent(lines[head])

    @pytest.mark.parametrize("text, key", [
        ("<% if flag: %>open", "error.scriptlet.unclosed_block"),
        ("<% end %>", "error.scriptlet.unbalanced_end"),
        ("<% else: %>", "error.scriptlet.unbalanced_end"),
    ])
    def test_unbalanced_blocks(self, site: Site, text: str, key: str):
        site.write_raw("/p.tpl", text)
        assert site.error("/p.tpl").key == key

    def test_el_expression(self, site: Site):
        site.write_raw("/p.tpl", "${user.name}")
        source = site.source("/p.tpl")
        assert 'out.write(_tplc_rt.evaluate("${user.name}", "str", page_context, None))' in source

    def test_invalid_el(self, site: Site):
        site.write_raw("/p.tpl", "${a)}")
        assert site.error("/p.tpl").key == "error.invalid.expression"

    @pytest.mark.parametrize("text", ["${a ? 'y'}", "${a +}", "${a = 1}"])
    def test_expression_the_runtime_cannot_evaluate(self, site: Site, text: str):
        site.write_raw("/p.tpl", text)
        assert site.error("/p.tpl").key == "error.invalid.expression"

    def test_conditional_expression(self, site: Site):
        site.write_raw("/p.tpl", "${a ? 'y' : 'n'}")
        assert "_tplc_rt.evaluate(" in site.source("/p.tpl")


class TestCustomTags:

    def test_classic_tag_uses_a_pool(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:hello name="a"/>')
        source = demo_site.source("/p.tpl")
        pool = "_tplc_tagPool_x_hello_0026_name_nobody"
        assert "from handlers import Hello as _tplc_h_Hello" in source
        assert f"self.{pool} = _tplc_rt.HandlerPool.for_config(config)" in source
        assert f"_tplc_th_x_hello_0 = self.{pool}.get(_tplc_h_Hello)" in source
        assert f"self.{pool}.reuse(_tplc_th_x_hello_0)" in source
        assert "def _tplc_destroy(self):" in source
        assert "_tplc_th_x_hello_0.do_start_tag()" in source

    def test_pooling_can_be_disabled(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:hello name="a"/>')
        source = demo_site.source("/p.tpl", pooling_enabled=False)
        assert "_tplc_th_x_hello_0 = _tplc_h_Hello()" in source
        assert "_tplc_init" not in source

    def test_call_sites_share_a_pool(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:hello name="a"/><x:hello name="b"/>')
        source = demo_site.source("/p.tpl")
        assert source.count("_tplc_rt.HandlerPool.for_config(config)") == 1
        assert "_tplc_th_x_hello_1" in source

    def test_iteration_tag_loops(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:loop items="${items}">${item}</x:loop>')
        source = demo_site.source("/p.tpl")
        assert "while True:" in source
        assert "do_after_body()" in source

    def test_simple_tag_gets_a_fragment(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:box title="t">inside</x:box>')
        source = demo_site.source("/p.tpl")
        assert "_tplc_th_x_box_0 = _tplc_h_Box()" in source
        assert "_tplc_th_x_box_0.set_jsp_body(" in source
        assert "_tplc_th_x_box_0.do_tag()" in source
        assert "_tplc_tagPool_x_box" not in source

    def test_literal_attribute_is_set(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:hello name="world"/>')
        assert '"world"' in demo_site.source("/p.tpl")


class TestTagFiles:

    def test_tag_file_becomes_a_simple_handler(self, site: Site):
        site.write("/tags/greet.tag", """
            <%@ attribute name="who" required="true" %>
            Hello ${who}!
        """)
        site.write_raw("/p.tpl", '<%@ taglib prefix="t" tagdir="/tags" %><t:greet who="W"/>')
        page, tag = site.compiler().compile_all("/p.tpl")
        assert "from tplc_tags.web.greet_tag import greet_tag as _tplc_h_greet_tag" in page.source
        assert tag.module == "tplc_tags.web.greet_tag"
        assert tag.output_file == "tplc_tags/web/greet_tag.py"
        source = tag.source
        assert "class greet_tag(_tplc_rt.SimpleTagSupport):" in source
        assert "def set_jsp_context(self, ctx, alias_map=None):" in source
        assert "def who(self):" in source
        assert "def do_tag(self):" in source
        assert "raise _tplc_rt.TagException(t) from t" in source
        assert "self._tplc_context.sync_end_tag_file()" in source

    def test_tag_file_variables_are_declared(self, site: Site):
        site.write("/tags/count.tag", """
            <%@ variable name-given="total" scope="AT_END" %>
            x
        """)
        site.write_raw("/p.tpl", '<%@ taglib prefix="t" tagdir="/tags" %><t:count/>')
        tag = site.compiler().compile_all("/p.tpl")[1]
        assert 'JspContextWrapper(self, ctx, None, None, ["total"], alias_map)' in tag.source


class TestBodyLowering:

    def test_scriptless_tag_is_split_into_a_method(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:hello name="a"/>')
        source = demo_site.source("/p.tpl")
        assert "if self._tplc_meth_x_hello_0(page_context):" in source
        assert "def _tplc_meth_x_hello_0(self, page_context):" in source

    def test_tag_exposing_variables_stays_inline(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + '<x:loop items="${a}">${item}</x:loop>')
        assert "_tplc_meth_x_loop_0" not in demo_site.source("/p.tpl")

    def test_nested_bodies_share_one_dispatcher(self, demo_site: Site):
        demo_site.write_raw("/p.tpl", DEMO_TAGLIB + "<x:box><x:box>inner</x:box></x:box>")
        source = demo_site.source("/p.tpl")
        assert source.count("class Helper(_tplc_rt.FragmentHelper):") == 1
        assert "def invoke0(self, out):" in source
        assert "def invoke1(self, out):" in source
        assert "if self.discriminator == 0:" in source
        assert "elif self.discriminator == 1:" in source
