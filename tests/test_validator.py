import pytest

from tests.infrastructure import Site
from tplc.validator.semantic import validate_ex_directives

CONTRACTS = """
short_name: v
tags:
  - name: lit
    handler_class: handlers.Lit
    body_content: empty
    attributes:
      - name: a
  - name: req
    handler_class: handlers.Req
    body_content: empty
    attributes:
      - name: a
        required: true
        rtexprvalue: true
  - name: dyn
    handler_class: handlers.Dyn
    body_content: empty
    dynamic_attributes: true
    capabilities: [dynamic_attributes]
  - name: nodyn
    handler_class: handlers.NoDyn
    body_content: empty
    dynamic_attributes: true
  - name: deferred
    handler_class: handlers.Deferred
    body_content: empty
    attributes:
      - name: v
        deferred_value: true
        expected_type: int
      - name: m
        deferred_method: true
        method_signature: void run()
      - name: rt
        rtexprvalue: true
  - name: simplejsp
    handler_class: handlers.SimpleJsp
    body_content: JSP
    capabilities: [simple]
  - name: outer
    handler_class: handlers.Outer
    body_content: JSP
    variables:
      - name_given: row
        scope: AT_BEGIN
      - name_given: idx
        scope: NESTED
      - name_given: total
        scope: AT_END
"""

TAGLIB = '<%@ taglib prefix="v" uri="/WEB-INF/v.tld.yaml" %>'


@pytest.fixture
def contracts(site: Site) -> Site:
    site.write("/WEB-INF/v.tld.yaml", CONTRACTS)
    return site


def _page(site: Site, body: str) -> None:
    site.write_raw("/p.tpl", TAGLIB + body)


class TestAttributeContract:

    @pytest.mark.parametrize("body, key", [
        ('<v:lit a="<%= 1 %>"/>', "error.attribute.custom.non_rt_with_expr"),
        ('<v:lit a="${x}"/>', "error.attribute.custom.non_rt_with_expr"),
        ('<v:lit b="1"/>', "error.bad_attribute"),
        ('<v:req/>', "error.missing_attribute"),
        ('<v:req a="1"><jsp:attribute name="a">2</jsp:attribute></v:req>',
         "error.duplicate.name.jspattribute"),
        ('<v:nodyn x="1"/>', "error.dynamic.attributes.not.implemented"),
        ('<v:deferred v="abc"/>', "error.coerce_to_type"),
        ('<v:deferred m="go"/>', "error.literal_with_void"),
        ('<v:deferred rt="#{x}"/>', "error.attribute.custom.non_rt_with_expr"),
        ('<v:deferred v="${a}#{b}"/>', "error.attribute.deferredmix"),
        ("<v:simplejsp>x</v:simplejsp>", "error.simpletag.badbodycontent"),
    ])
    def test_violations(self, contracts: Site, body: str, key: str):
        _page(contracts, body)
        assert contracts.error("/p.tpl").key == key

    def test_literal_attribute(self, contracts: Site):
        _page(contracts, '<v:lit a="plain"/>')
        assert '_tplc_th_v_lit_0.a = "plain"' in contracts.source("/p.tpl")

    def test_required_attribute_from_a_named_attribute(self, contracts: Site):
        _page(contracts, '<v:req><jsp:attribute name="a">2</jsp:attribute></v:req>')
        contracts.source("/p.tpl")

    def test_runtime_expression(self, contracts: Site):
        _page(contracts, '<v:req a="<%= 1 + 1 %>"/>')
        assert "1 + 1" in contracts.source("/p.tpl")

    def test_dynamic_attributes(self, contracts: Site):
        _page(contracts, '<v:dyn color="red"/>')
        assert '.set_dynamic_attribute(None, "color", "red")' in contracts.source("/p.tpl")

    def test_deferred_value(self, contracts: Site):
        _page(contracts, '<v:deferred v="#{n}"/>')
        assert '_tplc_rt.ValueExpression(' in contracts.source("/p.tpl")

    def test_deferred_method(self, contracts: Site):
        _page(contracts, '<v:deferred m="#{bean.run}"/>')
        assert '_tplc_rt.MethodExpression(' in contracts.source("/p.tpl")

    def test_literal_for_a_deferred_value(self, contracts: Site):
        _page(contracts, '<v:deferred v="12"/>')
        contracts.source("/p.tpl")


class TestDirectiveReconciliation:

    def test_setting_omitted_in_an_include(self, site: Site):
        site.write("/inc.tpl", "included")
        site.write_raw("/p.tpl", '<%@ page session="true" %><%@ include file="inc.tpl" %>')
        assert site.check("/p.tpl").is_session is True

    def test_conflicting_setting_in_an_include(self, site: Site):
        site.write_raw("/inc.tpl", '<%@ page session="false" %>')
        site.write_raw("/p.tpl", '<%@ page session="true" %><%@ include file="inc.tpl" %>')
        e = site.error("/p.tpl")
        assert e.key == "error.page.conflict"
        assert '"true"' in str(e)
        assert '"false"' in str(e)


class TestStandardActions:

    @pytest.mark.parametrize("body, key", [
        ('<jsp:useBean id="b"/>', "error.usebean.missingType"),
        ('<jsp:useBean id="b" class="m:B"/><jsp:useBean id="b" class="m:B"/>', "error.usebean.duplicate"),
        ('<%@ page session="false" %><jsp:useBean id="b" class="m:B" scope="session"/>',
         "error.usebean.noSession"),
        ('<jsp:useBean id="b" class="m:B" scope="galaxy"/>', "error.invalid.scope"),
        ('<jsp:useBean id="<%= n %>" class="m:B"/>', "error.attribute.standard.non_rt_with_expr"),
        ('<jsp:setProperty name="b" property="*" value="1"/>', "error.setProperty.invalid"),
    ])
    def test_violations(self, site: Site, body: str, key: str):
        site.write_raw("/p.tpl", body)
        assert site.error("/p.tpl").key == key

    def test_shared_bean_is_created_under_a_lock(self, site: Site):
        site.write_raw("/p.tpl", '<jsp:useBean id="b" class="m:B" scope="application"/>')
        source = site.source("/p.tpl")
        assert "with page_context.scope_lock(_tplc_rt.APPLICATION_SCOPE):" in source
        assert 'b = _tplc_rt.instantiate_bean("m:B")' in source

    def test_include_action(self, site: Site):
        site.write_raw("/p.tpl", '<jsp:include page="/inc.tpl"/>')
        assert '_tplc_rt.include(request, response, "/inc.tpl"' in site.source("/p.tpl")


class TestScriptingVariables:

    def test_each_scope_is_declared_once(self, contracts: Site):
        _page(contracts, "<v:outer>body</v:outer>")
        source = contracts.source("/p.tpl")
        for name in ("row", "idx", "total"):
            assert source.count(f"{name} = None") == 1
            assert f'{name} = page_context.find_attribute("{name}")' in source

    def test_nested_tag_saves_and_restores(self, contracts: Site):
        _page(contracts, "<v:outer><v:outer>inner</v:outer></v:outer>")
        source = contracts.source("/p.tpl")
        for name in ("row", "idx"):
            assert source.count(f"{name} = None") == 1
            assert source.count(f"_tplc_{name}_1 = {name}") == 1
            assert source.count(f"{name} = _tplc_{name}_1") == 1
        assert "_tplc_total_1" not in source


def _classification(nodes):
    found = []
    for n in nodes:
        if n.kind == "custom_tag":
            found.append((n.qname, [(a.local_name, a.kind.value) for a in n.jsp_attrs]))
        if n.body is not None:
            found.extend(_classification(n.body))
    return found


class TestSemanticPass:

    def test_running_twice_changes_nothing(self, contracts: Site):
        _page(contracts, '<jsp:useBean id="b" class="m:B"/><v:req a="<%= 1 %>"/>'
                         '<v:req><jsp:attribute name="a">2</jsp:attribute></v:req><v:dyn color="red"/>')
        page_info, page = contracts.validate("/p.tpl")
        before = (page_info.content_type, _classification(page), page_info.bean_repository.get_bean_type("b"))
        assert before[1] == [
            ("v:req", [("a", "script")]),
            ("v:req", [("a", "named")]),
            ("v:dyn", [("color", "literal")]),
        ]

        validate_ex_directives(page_info, page)
        after = (page_info.content_type, _classification(page), page_info.bean_repository.get_bean_type("b"))
        assert after == before
