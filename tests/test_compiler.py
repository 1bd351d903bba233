import logging

from tplc.compiler import Compiler, compile_unit, module_file, read_dependants
from tests.infrastructure import Site, touch_later

TAGDIR = '<%@ taglib prefix="t" tagdir="/tags" %>'


class TestDependants:

    def test_included_units_are_recorded(self, site: Site):
        inc = site.write("/inc.tpl", "i")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        result = site.compile("/p.tpl")
        assert result.dependants == {"/inc.tpl": inc.stat().st_mtime_ns // 1_000_000}

    def test_read_back_from_the_generated_module(self, site: Site):
        site.write("/inc.tpl", "i")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        result = site.compile("/p.tpl")
        assert read_dependants(result.source) == result.dependants

    def test_module_without_dependants(self, site: Site):
        site.write("/p.tpl", "x")
        assert read_dependants(site.compile("/p.tpl").source) == {}
        assert read_dependants("x = 1\n") == {}


class TestOutOfDate:

    def test_unchanged(self, site: Site):
        site.write("/inc.tpl", "i")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        compiler = site.compiler()
        result = compiler.compile("/p.tpl")
        assert compiler.is_out_dated("/p.tpl", result.dependants) is False

    def test_changed_dependency(self, site: Site):
        inc = site.write("/inc.tpl", "i")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        compiler = site.compiler()
        result = compiler.compile("/p.tpl")
        touch_later(inc)
        assert compiler.is_out_dated("/p.tpl", result.dependants) is True

    def test_removed_dependency(self, site: Site):
        inc = site.write("/inc.tpl", "i")
        site.write("/p.tpl", '<%@ include file="inc.tpl" %>')
        compiler = site.compiler()
        result = compiler.compile("/p.tpl")
        inc.unlink()
        assert compiler.is_out_dated("/p.tpl", result.dependants) is True

    def test_unit_newer_than_its_module(self, site: Site):
        unit = site.write("/p.tpl", "x")
        mtime = unit.stat().st_mtime_ns // 1_000_000
        compiler = site.compiler()
        assert compiler.is_out_dated("/p.tpl", {}, generated_mtime=mtime) is False
        assert compiler.is_out_dated("/p.tpl", {}, generated_mtime=mtime - 1) is True

    def test_missing_unit(self, site: Site):
        site.root.mkdir(parents=True)
        assert site.compiler().is_out_dated("/gone.tpl", {}) is True


class TestCompileAll:

    def test_tag_files_are_compiled_once(self, site: Site):
        site.write("/tags/greet.tag", "hello")
        site.write_raw("/p.tpl", TAGDIR + "<t:greet/><t:greet/>")
        results = site.compiler().compile_all("/p.tpl")
        assert [r.unit for r in results] == ["/p.tpl", "/tags/greet.tag"]
        assert list(results[0].tag_files) == ["tplc_tags.web.greet_tag"]

    def test_page_without_tag_files(self, site: Site):
        site.write("/p.tpl", "x")
        results = site.compiler().compile_all("/p.tpl")
        assert len(results) == 1
        assert results[0].tag_files == {}


def test_compile_unit(site: Site):
    site.write("/p.tpl", "x")
    result = compile_unit(site.root, "/p.tpl")
    assert result.module == "p_tpl"
    assert result.output_file == "p_tpl.py"
    assert "class p_tpl(" in result.source


def test_compile_is_logged(site: Site, caplog):
    site.write("/p.tpl", "x")
    with caplog.at_level(logging.INFO, logger="tplc"):
        Compiler(site.root).compile("/p.tpl")
    assert "compiled /p.tpl -> p_tpl" in caplog.text


def test_module_file():
    assert module_file("a.b_tpl") == "a/b_tpl.py"
    assert module_file("p_tpl") == "p_tpl.py"
