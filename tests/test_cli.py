import json
from pathlib import Path

from tplc.cli import main
from tests.infrastructure import Site


def _run(site: Site, *argv: str) -> int:
    cmd, *rest = argv
    return main([cmd, *rest, "--root", str(site.root)])


def test_compile_to_stdout(site: Site, capsys):
    site.write("/p.tpl", "hello")
    assert _run(site, "compile", "/p.tpl") == 0
    assert "class p_tpl(_tplc_rt.PageBase):" in capsys.readouterr().out


def test_compile_to_files(site: Site, tmp_path: Path, capsys):
    site.write("/p.tpl", "line1\n<% x = 1 %>")
    out, smap = tmp_path / "out" / "p_tpl.py", tmp_path / "out" / "p_tpl.smap"
    assert _run(site, "compile", "/p.tpl", "--out", str(out), "--smap", str(smap)) == 0
    assert capsys.readouterr().out == ""
    assert "class p_tpl(" in out.read_text(encoding="utf-8")
    assert smap.read_text(encoding="utf-8").startswith("SMAP\np_tpl.py\nTPL\n")


def test_compile_tree(site: Site, tmp_path: Path):
    site.write("/tags/greet.tag", "hello")
    site.write_raw("/shop/p.tpl", '<%@ taglib prefix="t" tagdir="/tags" %><t:greet/>')
    out_dir = tmp_path / "build"
    assert _run(site, "compile", "/shop/p.tpl", "--out-dir", str(out_dir)) == 0
    assert (out_dir / "shop" / "p_tpl.py").is_file()
    assert (out_dir / "shop" / "__init__.py").is_file()
    assert (out_dir / "tplc_tags" / "web" / "greet_tag.py").is_file()
    assert (out_dir / "tplc_tags" / "__init__.py").is_file()
    assert (out_dir / "tplc_tags" / "web" / "__init__.py").is_file()
    assert not (out_dir / "__init__.py").exists()


def test_check(site: Site, capsys):
    site.write("/p.tpl", "fine")
    assert _run(site, "check", "/p.tpl") == 0
    assert "/p.tpl: ok" in capsys.readouterr().err


def test_deps(site: Site, capsys):
    site.write("/b.tpl", "b")
    site.write("/a.tpl", "a")
    site.write("/p.tpl", '<%@ include file="b.tpl" %><%@ include file="a.tpl" %>')
    assert _run(site, "deps", "/p.tpl") == 0
    assert json.loads(capsys.readouterr().out) == ["/a.tpl", "/b.tpl"]


def test_compile_error_exits_with_2(site: Site, capsys):
    site.write_raw("/p.tpl", "ok\n<% open")
    assert _run(site, "compile", "/p.tpl") == 2
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "/p.tpl(2," in captured.err


def test_options_file_is_read(site: Site, capsys):
    site.write("/tplc.yaml", "pooling_enabled: false\nbogus: 1\n")
    site.write("/p.tpl", "x")
    assert _run(site, "check", "/p.tpl") == 2
    assert capsys.readouterr().err.strip() != ""


def test_explicit_options_file(site: Site, tmp_path: Path, capsys):
    cfg = tmp_path / "other.yaml"
    cfg.write_text("gen_string_as_char_array: true\n", encoding="utf-8")
    site.write("/p.tpl", "hello world")
    assert _run(site, "compile", "/p.tpl", "--config", str(cfg)) == 0
    assert "_tplc_char_array_0" in capsys.readouterr().out
