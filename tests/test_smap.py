import pytest

from tplc.generator.smap import LineInfo, SmapStratum, SourceMap
from tests.infrastructure import Site


def _stratum(*paths: str) -> SmapStratum:
    s = SmapStratum()
    for p in paths:
        s.add_file(p.rsplit("/", 1)[-1], p)
    return s


class TestStratum:

    def test_files_are_added_once(self):
        s = _stratum("/a.tpl", "/a.tpl", "/b.tpl")
        assert s.file_paths == ["/a.tpl", "/b.tpl"]
        assert s.file_names == ["a.tpl", "b.tpl"]

    def test_unknown_file(self):
        with pytest.raises(ValueError):
            _stratum("/a.tpl").add_line_data(1, "/b.tpl", 1, 10, 1)

    def test_nodes_without_code_are_skipped(self):
        s = _stratum("/a.tpl")
        s.add_line_data(1, "/a.tpl", 1, 0, 1)
        assert s.lines == []

    def test_consecutive_lines_merge(self):
        s = _stratum("/a.tpl")
        s.add_line_data(1, "/a.tpl", 1, 10, 1)
        s.add_line_data(2, "/a.tpl", 1, 11, 1)
        s.optimize_line_section()
        assert [li.render() for li in s.lines] == ["1,2:10\n"]

    def test_one_input_line_over_several_outputs(self):
        s = _stratum("/a.tpl")
        s.add_line_data(1, "/a.tpl", 1, 10, 1)
        s.add_line_data(1, "/a.tpl", 1, 11, 1)
        s.optimize_line_section()
        assert [li.render() for li in s.lines] == ["1:10,2\n"]

    def test_gaps_are_kept(self):
        s = _stratum("/a.tpl")
        s.add_line_data(1, "/a.tpl", 1, 10, 1)
        s.add_line_data(2, "/a.tpl", 1, 20, 1)
        s.optimize_line_section()
        assert len(s.lines) == 2

    def test_file_switches_are_marked(self):
        s = _stratum("/a.tpl", "/b.tpl")
        s.add_line_data(1, "/a.tpl", 1, 10, 1)
        s.add_line_data(1, "/b.tpl", 1, 11, 1)
        s.add_line_data(2, "/a.tpl", 1, 12, 1)
        s.optimize_line_section()
        assert [li.render() for li in s.lines] == ["1:10\n", "1#1:11\n", "2#0:12\n"]

    def test_lookup(self):
        s = _stratum("/a.tpl", "/b.tpl")
        s.lines.append(LineInfo(4, 10, input_count=2, output_increment=3))
        s.lines.append(LineInfo(7, 30, file_id=1, file_id_set=True))
        assert s.lookup(10) == ("/a.tpl", 4)
        assert s.lookup(12) == ("/a.tpl", 4)
        assert s.lookup(13) == ("/a.tpl", 5)
        assert s.lookup(30) == ("/b.tpl", 7)
        assert s.lookup(9) is None
        assert s.lookup(16) is None

    def test_negative_values_are_rejected(self):
        with pytest.raises(ValueError):
            LineInfo(-1, 1)


class TestSourceMap:

    def test_render(self):
        s = _stratum("/dir/p.tpl")
        s.add_line_data(1, "/dir/p.tpl", 1, 10, 1)
        assert SourceMap("p_tpl.py", s).render() == (
            "SMAP\np_tpl.py\nTPL\n*S TPL\n*F\n+ 0 p.tpl\ndir/p.tpl\n*L\n1:10\n*E\n"
        )

    def test_render_empty(self):
        assert str(SourceMap("x.py", SmapStratum())) == "SMAP\nx.py\nTPL\n*E\n"

    def test_compiled_scriptlet_maps_back(self, site: Site):
        site.write_raw("/p.tpl", "line1\n<% x = 1 %>")
        result = site.compile("/p.tpl")
        lines = result.source.splitlines()
        generated = next(i for i, line in enumerate(lines) if line.strip() == "x = 1") + 1
        assert result.smap.lookup(generated) == ("/p.tpl", 2)
        assert result.smap.render().startswith("SMAP\np_tpl.py\nTPL\n*S TPL\n*F\n+ 0 p.tpl\np.tpl\n")

    def test_included_unit_appears_in_the_map(self, site: Site):
        site.write_raw("/inc.tpl", "<% y = 2 %>")
        site.write_raw("/p.tpl", '<%@ include file="inc.tpl" %>')
        result = site.compile("/p.tpl")
        lines = result.source.splitlines()
        generated = next(i for i, line in enumerate(lines) if line.strip() == "y = 2") + 1
        assert result.smap.lookup(generated) == ("/inc.tpl", 1)
