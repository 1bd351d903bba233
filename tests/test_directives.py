import subprocess
import sys
from pathlib import Path

import pytest

from tests.infrastructure import Site
from tplc.charsets import same_encoding

TAGDIR = '<%@ taglib prefix="t" tagdir="/tags" %>'


class TestPageDirective:

    def test_settings_are_folded_into_page_info(self, site: Site):
        site.write("/p.tpl", """
            <%@ page info="hi" session="false" buffer="16kb" autoFlush="false" %>
            <%@ page isErrorPage="true" isThreadSafe="false" %>
        """)
        pi = site.check("/p.tpl")
        assert pi.info == "hi"
        assert pi.is_session is False
        assert pi.buffer == 16 * 1024
        assert pi.is_auto_flush is False
        assert pi.is_error_page is True
        assert pi.is_thread_safe is False

    def test_defaults(self, site: Site):
        site.write("/p.tpl", "plain")
        pi = site.check("/p.tpl")
        assert pi.is_session is True
        assert pi.buffer == 8 * 1024
        assert pi.is_auto_flush is True
        assert pi.get_language() == "python"
        assert pi.content_type.startswith("text/html")

    def test_imports_are_collected(self, site: Site):
        site.write("/p.tpl", '<%@ page import="os, json" %><%@ page import="from x import y" %>')
        pi = site.check("/p.tpl")
        assert {"os", "json", "from x import y"} <= set(pi.imports)

    def test_same_value_may_repeat_across_directives(self, site: Site):
        site.write("/p.tpl", '<%@ page contentType="text/plain" %><%@ page contentType="text/plain" %>')
        assert site.check("/p.tpl").content_type.startswith("text/plain")

    def test_el_ignored_directive(self, site: Site):
        site.write("/p.tpl", '<%@ page isELIgnored="true" %>${x}')
        assert site.check("/p.tpl").is_el_ignored is True

    @pytest.mark.parametrize("text, key", [
        ('<%@ page contentType="text/html" %><%@ page contentType="text/plain" %>', "error.page.conflict"),
        ('<%@ page buffer="none" autoFlush="false" %>', "error.page.badCombo"),
        ('<%@ page buffer="12" %>', "error.page.buffer.invalid"),
        ('<%@ page buffer="xkb" %>', "error.page.buffer.invalid"),
        ('<%@ page language="java" %>', "error.page.language.unsupported"),
        ('<%@ page session="maybe" %>', "error.page.session.invalid"),
        ('<%@ page autoFlush="1" %>', "error.page.autoflush.invalid"),
        ('<%@ page isELIgnored="no" %>', "error.page.iselignored.invalid"),
        ('<%@ page nonsense="1" %>', "error.invalid.attribute"),
        ('<%@ page import="os; import sys" %>', "error.page.invalid.import"),
    ])
    def test_invalid_page_directives(self, site: Site, text: str, key: str):
        site.write_raw("/p.tpl", text)
        assert site.error("/p.tpl").key == key

    def test_unknown_attribute_is_named(self, site: Site):
        site.write("/p.tpl", '<%@ page nonsense="1" %>')
        assert site.error("/p.tpl").args_ == ("Page directive", "nonsense")

    def test_conflict_spans_included_units(self, site: Site):
        site.write("/inc.tpl", '<%@ page info="from include" %>')
        site.write("/p.tpl", '<%@ page info="from page" %><%@ include file="inc.tpl" %>')
        assert site.error("/p.tpl").key == "error.page.conflict"


class TestPropertyGroups:

    def test_scripting_invalid(self, site: Site):
        site.write("/p.tpl", "<% x = 1 %>")
        groups = [{"url_patterns": ["*.tpl"], "scripting_invalid": True}]
        assert site.error("/p.tpl", property_groups=groups).key == "error.no.scriptlets"

    def test_el_ignored(self, site: Site):
        site.write("/p.tpl", "${x}")
        groups = [{"url_patterns": ["*.tpl"], "el_ignored": True}]
        assert site.check("/p.tpl", property_groups=groups).is_el_ignored is True

    def test_directive_overrides_el_ignored_group(self, site: Site):
        site.write("/p.tpl", '<%@ page isELIgnored="false" %>${x}')
        groups = [{"url_patterns": ["*.tpl"], "el_ignored": True}]
        assert site.check("/p.tpl", property_groups=groups).is_el_ignored is False

    def test_default_content_type(self, site: Site):
        site.write("/p.tpl", "text")
        groups = [{"url_patterns": ["*.tpl"], "default_content_type": "text/plain"}]
        assert site.check("/p.tpl", property_groups=groups).content_type.startswith("text/plain")

    def test_group_buffer(self, site: Site):
        site.write("/p.tpl", "text")
        groups = [{"url_patterns": ["*.tpl"], "buffer": "none"}]
        assert site.check("/p.tpl", property_groups=groups).buffer == 0

    def test_prelude_and_coda_are_included(self, site: Site):
        site.write("/pre.tpl", "PREFIX")
        site.write("/coda.tpl", "CODAX")
        site.write("/p.tpl", "BODYX")
        groups = [{"url_patterns": ["*.tpl"], "include_prelude": ["/pre.tpl"], "include_coda": ["/coda.tpl"]}]
        source = site.source("/p.tpl", property_groups=groups)
        assert source.index("PREFIX") < source.index("BODYX") < source.index("CODAX")


class TestTagFileDirectives:

    def _use(self, site: Site, tag_source: str, usage: str = "<t:t/>"):
        site.write("/tags/t.tag", tag_source)
        site.write("/p.tpl", TAGDIR + usage)

    def test_contract_is_read_from_directives(self, site: Site):
        self._use(site, """
            <%@ tag body-content="empty" description="greets" %>
            <%@ attribute name="who" required="true" %>
            <%@ attribute name="times" type="int" rtexprvalue="false" %>
            <%@ variable name-given="greeting" scope="AT_END" %>
            Hello ${who}
        """, '<t:t who="x"/>')
        pi = site.check("/p.tpl")
        lib = next(iter(pi.taglibs.values()))
        info = lib.get_tag_file("t").tag_info
        assert info.handler_class == "tplc_tags.web.t_tag"
        assert info.body_content.value.lower() == "empty"
        assert info.info == "greets"
        who, times = info.attributes
        assert (who.name, who.required, who.rtexprvalue, who.type) == ("who", True, True, "str")
        assert (times.name, times.rtexprvalue, times.type) == ("times", False, "int")
        assert info.variables[0].name_given == "greeting"
        assert "/tags/t.tag" in pi.dependants

    def test_body_content_defaults_to_scriptless(self, site: Site):
        self._use(site, "text")
        lib = next(iter(site.check("/p.tpl").taglibs.values()))
        assert lib.get_tag_file("t").tag_info.body_content.value.lower() == "scriptless"

    def test_missing_required_attribute(self, site: Site):
        self._use(site, '<%@ attribute name="who" required="true" %>')
        e = site.error("/p.tpl")
        assert e.key == "error.missing_attribute"
        assert e.args_ == ("who", "t")

    @pytest.mark.parametrize("tag_source, key", [
        ('<%@ tag body-content="JSP" %>', "error.tagdirective.badbodycontent"),
        ('<%@ tag body-content="empty" %><%@ tag body-content="scriptless" %>', "error.tag.conflict.attr"),
        ('<%@ tag bogus="1" %>', "error.invalid.attribute"),
        ('<%@ attribute required="true" %>', "error.mandatory.attribute"),
        ('<%@ attribute name="a" %><%@ attribute name="a" %>', "error.tagfile.nameNotUnique"),
        ('<%@ attribute name="f" fragment="true" type="str" %>', "error.fragmentwithtype"),
        ('<%@ attribute name="f" fragment="true" rtexprvalue="true" %>', "error.fragmentwithrtexprvalue"),
        ('<%@ variable scope="NESTED" %>', "error.variable.either.name"),
        ('<%@ variable name-given="a" name-from-attribute="b" alias="c" %>', "error.variable.both.name"),
        ('<%@ variable name-from-attribute="b" %>', "error.variable.alias"),
        ('<%@ attribute name="b" %><%@ variable name-from-attribute="b" alias="c" %>',
         "error.tagfile.nameFrom.badAttribute"),
        ('<%@ variable name-from-attribute="b" alias="c" %>', "error.tagfile.nameFrom.noAttribute"),
    ])
    def test_invalid_tag_file_directives(self, site: Site, tag_source: str, key: str):
        self._use(site, tag_source)
        assert site.error("/p.tpl").key == key

    def test_tagdir_outside_the_tag_root(self, site: Site):
        site.write("/p.tpl", '<%@ taglib prefix="t" tagdir="/lib" %>')
        assert site.error("/p.tpl").key == "error.tagdir.invalid"


class TestPageEncoding:

    STRICT = ('<?xml version="1.0" encoding="{}"?>'
              '<jsp:root xmlns:jsp="http://java.sun.com/JSP/Page" version="2.0">'
              '<jsp:directive.page pageEncoding="{}"/>x</jsp:root>')

    def test_directive_against_property_group(self, site: Site):
        site.write_raw("/p.tpl", '<%@ page pageEncoding="ISO-8859-1" %>x')
        groups = [{"url_patterns": ["*.tpl"], "page_encoding": "UTF-8"}]
        e = site.error("/p.tpl", property_groups=groups)
        assert e.key == "error.config.pagedir.encoding.mismatch"
        assert e.args_ == ("UTF-8", "ISO-8859-1")

    def test_directive_agreeing_with_property_group(self, site: Site):
        site.write_raw("/p.tpl", '<%@ page pageEncoding="utf8" %>x')
        groups = [{"url_patterns": ["*.tpl"], "page_encoding": "UTF-8"}]
        assert site.check("/p.tpl", property_groups=groups).content_type == "text/html;charset=UTF-8"

    def test_directive_against_byte_order_mark(self, site: Site):
        site.write_bytes("/p.tpl", b"\xef\xbb\xbf" + b'<%@ page pageEncoding="ISO-8859-1" %>x')
        e = site.error("/p.tpl")
        assert e.key == "error.prolog.pagedir.encoding.mismatch"
        assert e.args_ == ("UTF-8", "ISO-8859-1")

    def test_directive_against_xml_prolog(self, site: Site):
        site.write_raw("/p.tplx", self.STRICT.format("ISO-8859-1", "UTF-8"))
        e = site.error("/p.tplx")
        assert e.key == "error.prolog.pagedir.encoding.mismatch"
        assert e.args_ == ("ISO-8859-1", "UTF-8")

    def test_directive_agreeing_with_xml_prolog(self, site: Site):
        site.write_raw("/p.tplx", self.STRICT.format("ISO-8859-1", "iso-8859-1"))
        assert site.check("/p.tplx").content_type == "text/xml;charset=UTF-8"

    @pytest.mark.parametrize("declared", ["UTF-16", "UTF-16BE", "utf-16le"])
    def test_utf16_variants_are_equal(self, site: Site, declared: str):
        text = f'<%@ page pageEncoding="{declared}" %>hi'
        site.write_bytes("/p.tpl", b"\xff\xfe" + text.encode("utf-16-le"))
        assert site.check("/p.tpl").content_type == "text/html;charset=UTF-16LE"

    def test_byte_order_mark_against_property_group(self, site: Site):
        site.write_bytes("/p.tpl", b"\xef\xbb\xbfx")
        groups = [{"url_patterns": ["*.tpl"], "page_encoding": "ISO-8859-1"}]
        e = site.error("/p.tpl", property_groups=groups)
        assert e.key == "error.prolog.config.encoding.mismatch"
        assert e.args_ == ("UTF-8", "ISO-8859-1")

    def test_charsets_compare_by_codec(self):
        assert same_encoding("UTF-16LE", "UTF-16BE")
        assert same_encoding("utf8", "UTF-8")
        assert same_encoding(None, None)
        assert not same_encoding("ISO-8859-1", "UTF-8")
        assert not same_encoding("UTF-8", None)

    def test_directive_validation_imports_on_its_own(self):
        # a fresh interpreter, so that no other module has loaded the parser first
        subprocess.run([sys.executable, "-c", "import tplc.validator.directives"],
                       cwd=Path(__file__).parents[1], check=True)
