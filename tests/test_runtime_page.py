import importlib
from pathlib import Path

import pytest

from tplc.compiler import CompileResult
from tplc.runtime import (
    APPLICATION_SCOPE, PAGE_SCOPE, REQUEST_SCOPE, SESSION_SCOPE, Application, PageBase,
    PageContext, PageWriter, Request, Response,
)
from tests.infrastructure import Site, write


def _load(result: CompileResult, application: Application) -> PageBase:
    """Execute a generated module and register its page under the unit path."""
    namespace = {}
    exec(compile(result.source, result.output_file, "exec"), namespace)
    page = namespace[result.module.rsplit(".", 1)[-1]](application)
    application.register(result.unit, page)
    return page


class TestPageWriter:

    def test_output_waits_for_flush(self):
        response = Response()
        out = PageWriter(response, buffer_size=4)
        out.write("ab")
        assert response.get_text() == ""
        out.write("cde")
        assert response.get_text() == "ab"
        out.flush()
        assert response.get_text() == "abcde"

    def test_unbuffered_writes_through(self):
        response = Response()
        PageWriter(response, buffer_size=0).write("x")
        assert response.get_text() == "x"
        assert response.is_committed() is True

    def test_overflow_without_auto_flush(self):
        out = PageWriter(Response(), buffer_size=2, auto_flush=False)
        out.write("ab")
        with pytest.raises(IOError):
            out.write("c")

    def test_print_converts_values(self):
        response = Response()
        out = PageWriter(response, buffer_size=0)
        out.print(None)
        out.print(True)
        out.print(7)
        assert response.get_text() == "true7"

    def test_clear_buffer(self):
        response = Response()
        out = PageWriter(response, buffer_size=10)
        out.write("gone")
        out.clear_buffer()
        out.flush()
        assert response.get_text() == ""
        assert out.get_remaining() == 10


class TestPageContext:

    @pytest.fixture
    def ctx(self) -> PageContext:
        return PageContext(PageBase(), Request(), Response())

    def test_scopes_are_searched_in_order(self, ctx: PageContext):
        ctx.set_attribute("a", "app", APPLICATION_SCOPE)
        assert ctx.find_attribute("a") == "app"
        ctx.set_attribute("a", "req", REQUEST_SCOPE)
        assert ctx.find_attribute("a") == "req"
        ctx.set_attribute("a", "page")
        assert ctx.find_attribute("a") == "page"
        assert ctx.get_attributes_scope("a") == PAGE_SCOPE

    def test_none_removes(self, ctx: PageContext):
        ctx.set_attribute("a", 1)
        ctx.set_attribute("a", None)
        assert ctx.get_attribute("a") is None

    def test_remove_from_every_scope(self, ctx: PageContext):
        ctx.set_attribute("a", 1, SESSION_SCOPE)
        ctx.set_attribute("a", 2, REQUEST_SCOPE)
        ctx.remove_attribute("a")
        assert ctx.find_attribute("a") is None

    def test_page_without_session(self):
        ctx = PageContext(PageBase(), Request(), Response(), need_session=False)
        assert ctx.get_session() is None
        with pytest.raises(RuntimeError):
            ctx.set_attribute("a", 1, SESSION_SCOPE)

    def test_body_content_nesting(self, ctx: PageContext):
        base = ctx.get_out()
        body = ctx.push_body()
        body.write("inner")
        assert ctx.get_out() is body
        assert body.get_string() == "inner"
        assert ctx.pop_body() is base

    def test_unhandled_exception_propagates(self, ctx: PageContext):
        with pytest.raises(ValueError):
            ctx.handle_page_exception(ValueError("boom"))

    def test_unknown_page(self):
        with pytest.raises(LookupError):
            Application().get_page("/none.tpl")


class TestGeneratedPages:

    def test_render(self, site: Site):
        site.write_raw("/p.tpl", "Hi ${name}!<% for i in range(3): %><%= i %><% end %>.")
        app = Application()
        page = _load(site.compile("/p.tpl"), app)
        request = Request("/p.tpl", application=app)
        request.set_attribute("name", "W")
        assert page.render(request) == "Hi W!012."

    def test_content_type_is_set(self, site: Site):
        site.write_raw("/p.tpl", '<%@ page contentType="text/plain" %>x')
        app = Application()
        page = _load(site.compile("/p.tpl"), app)
        response = Response()
        page.service(Request("/p.tpl", application=app), response)
        assert response.content_type.startswith("text/plain")
        assert response.get_text() == "x"

    def test_declarations_are_page_members(self, site: Site):
        site.write_raw("/p.tpl", "<%! greeting = 'hey' %><%= self.greeting %>")
        page = _load(site.compile("/p.tpl"), Application())
        assert page.render() == "hey"

    def test_error_page_receives_the_exception(self, site: Site):
        site.write_raw("/err.tpl", '<%@ page isErrorPage="true" %>Oops: <%= exception %>')
        site.write_raw("/p.tpl", '<%@ page errorPage="/err.tpl" %>before<% raise ValueError("boom") %>')
        app = Application()
        _load(site.compile("/err.tpl"), app)
        page = _load(site.compile("/p.tpl"), app)
        response = Response()
        page.service(Request("/p.tpl", application=app), response)
        assert response.get_text() == "Oops: boom"
        assert response.status == 500

    def test_dependants_and_imports_are_exposed(self, site: Site):
        site.write_raw("/inc.tpl", "i")
        site.write_raw("/p.tpl", '<%@ page import="os" %><%@ include file="inc.tpl" %>')
        page = _load(site.compile("/p.tpl"), Application())
        assert list(page.get_dependants()) == ["/inc.tpl"]
        assert page.get_imports() == ["os"]

    def test_include_action_writes_into_the_page(self, site: Site):
        site.write_raw("/inc.tpl", "INC")
        site.write_raw("/p.tpl", 'a<jsp:include page="/inc.tpl"/>b')
        app = Application()
        _load(site.compile("/inc.tpl"), app)
        page = _load(site.compile("/p.tpl"), app)
        assert page.render(Request("/p.tpl", application=app)) == "aINCb"

    def test_bean_property_is_written(self, site: Site):
        site.write_raw("/p.tpl", '<jsp:useBean id="b" class="types:SimpleNamespace"/>'
                                 '<% b.color = "red" %><jsp:getProperty name="b" property="color"/>')
        page = _load(site.compile("/p.tpl"), Application())
        assert page.render() == "red"


HANDLERS = """
from tplc.runtime import (
    EVAL_BODY_AGAIN, EVAL_BODY_INCLUDE, EVAL_PAGE, SKIP_BODY, SKIP_PAGE,
    BodyTagSupport, SimpleTagSupport, TagSupport,
)

created = []
events = []


class Wrap(TagSupport):
    label = None

    def __init__(self):
        super().__init__()
        created.append(self)

    def do_start_tag(self):
        self.page_context.get_out().write(f"<{self.label}>")
        return EVAL_BODY_INCLUDE

    def do_end_tag(self):
        self.page_context.get_out().write(f"</{self.label}>")
        return EVAL_PAGE


class Repeat(TagSupport):
    times = None

    def do_start_tag(self):
        self.count = 1
        if int(self.times) < 1:
            return SKIP_BODY
        self.page_context.set_attribute("n", self.count)
        return EVAL_BODY_INCLUDE

    def do_after_body(self):
        self.count += 1
        if self.count > int(self.times):
            return SKIP_BODY
        self.page_context.set_attribute("n", self.count)
        return EVAL_BODY_AGAIN


class Upper(BodyTagSupport):
    def do_end_tag(self):
        self.get_previous_out().write(self.body_content.get_string().upper())
        return EVAL_PAGE


class Guard(TagSupport):
    def do_start_tag(self):
        return EVAL_BODY_INCLUDE

    def do_catch(self, error):
        events.append(("catch", str(error)))
        self.page_context.get_out().write(f"caught:{error}")

    def do_finally(self):
        events.append(("finally",))


class Stop(TagSupport):
    def do_end_tag(self):
        return SKIP_PAGE


class Box(SimpleTagSupport):
    label = None

    def do_tag(self):
        parent = self.get_parent()
        events.append(("box", self.label, parent.label if parent is not None else None))
        out = self.get_jsp_context().get_out()
        out.write(f"[{self.label}:")
        if self.get_jsp_body() is not None:
            self.get_jsp_body().invoke(None)
        out.write("]")


class Frame(SimpleTagSupport):
    head = None

    def do_tag(self):
        out = self.get_jsp_context().get_out()
        out.write("<")
        self.head.invoke(None)
        out.write(">")
        self.get_jsp_body().invoke(None)
"""

TAGS_TLD = """
short_name: p
tags:
  - name: wrap
    handler_class: {module}.Wrap
    body_content: JSP
    attributes:
      - name: label
  - name: repeat
    handler_class: {module}.Repeat
    body_content: JSP
    capabilities: [iteration]
    attributes:
      - name: times
        rtexprvalue: true
  - name: upper
    handler_class: {module}.Upper
    body_content: JSP
    capabilities: [body]
  - name: guard
    handler_class: {module}.Guard
    body_content: JSP
    capabilities: [try_catch_finally]
  - name: stop
    handler_class: {module}.Stop
    body_content: empty
  - name: box
    handler_class: {module}.Box
    body_content: scriptless
    capabilities: [simple]
    attributes:
      - name: label
  - name: frame
    handler_class: {module}.Frame
    body_content: scriptless
    capabilities: [simple]
    attributes:
      - name: head
        fragment: true
"""

TAGS_TAGLIB = '<%@ taglib prefix="p" uri="/WEB-INF/p.tld.yaml" %>'


class TestGeneratedTags:

    @pytest.fixture
    def handlers(self, site: Site, tmp_path: Path, monkeypatch, request):
        """Handler module of the ``p`` library, unique to the test."""
        name = "page_tags_" + request.node.name
        write(tmp_path / "mods" / f"{name}.py", HANDLERS)
        monkeypatch.syspath_prepend(str(tmp_path / "mods"))
        site.write("/WEB-INF/p.tld.yaml", TAGS_TLD.format(module=name))
        return importlib.import_module(name)

    @staticmethod
    def _render(site: Site, body: str, **attributes) -> str:
        site.write_raw("/p.tpl", TAGS_TAGLIB + body)
        app = Application()
        page = _load(site.compile("/p.tpl"), app)
        request = Request("/p.tpl", application=app)
        for name, value in attributes.items():
            request.set_attribute(name, value)
        return page.render(request)

    def test_start_and_end(self, site: Site, handlers):
        assert self._render(site, '<p:wrap label="b">hi</p:wrap>!') == "<b>hi</b>!"

    def test_iteration(self, site: Site, handlers):
        body = '<p:repeat times="3">${n}</p:repeat>[<p:repeat times="0">x</p:repeat>]'
        assert self._render(site, body) == "123[]"

    def test_buffered_body(self, site: Site, handlers):
        assert self._render(site, "<p:upper>abc ${name}</p:upper>!", name="w") == "ABC W!"

    def test_catch_unwinds_buffered_bodies(self, site: Site, handlers):
        body = '<p:guard><p:upper>in<% raise ValueError("boom") %></p:upper></p:guard>after'
        assert self._render(site, body) == "caught:boomafter"
        assert handlers.events == [("catch", "boom"), ("finally",)]

    def test_finally_without_error(self, site: Site, handlers):
        assert self._render(site, "<p:guard>ok</p:guard>") == "ok"
        assert handlers.events == [("finally",)]

    def test_nested_simple_tags(self, site: Site, handlers):
        body = '<p:box label="o"><p:box label="i"><p:box label="k">1</p:box></p:box></p:box>'
        assert self._render(site, body) == "[o:[i:[k:1]]]"
        assert handlers.events == [("box", "o", None), ("box", "i", "o"), ("box", "k", "i")]

    def test_skip_page_from_a_tag_body(self, site: Site, handlers):
        body = 'before<p:wrap label="b">in<p:stop/></p:wrap>after'
        assert self._render(site, body) == "before<b>in"

    def test_skip_page_from_a_fragment(self, site: Site, handlers):
        body = 'before<p:box label="o"><p:stop/></p:box>after'
        assert self._render(site, body) == "before[o:"

    def test_handlers_are_reused_across_call_sites(self, site: Site, handlers):
        site.write_raw("/p.tpl", TAGS_TAGLIB + '<p:wrap label="a">1</p:wrap><p:wrap label="b">2</p:wrap>')
        page = _load(site.compile("/p.tpl"), Application())
        assert page.render() == "<a>1</a><b>2</b>"
        assert page.render() == "<a>1</a><b>2</b>"
        assert len(handlers.created) == 1

    def test_without_pooling_every_call_site_gets_a_handler(self, site: Site, handlers):
        site.write_raw("/p.tpl", TAGS_TAGLIB + '<p:wrap label="a">1</p:wrap><p:wrap label="b">2</p:wrap>')
        page = _load(site.compile("/p.tpl", pooling_enabled=False), Application())
        assert page.render() == "<a>1</a><b>2</b>"
        assert len(handlers.created) == 2

    def test_fragment_attribute_and_body(self, site: Site, handlers):
        body = ('<p:frame><jsp:attribute name="head">H${name}</jsp:attribute>'
                "<jsp:body>B</jsp:body></p:frame>")
        assert self._render(site, body, name="w") == "<Hw>B"
