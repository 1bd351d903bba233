from pathlib import Path

import pytest

from tplc.config import CompilerOptions, PropertyGroup, find_property, load_options
from tplc.errors import ConfigError
from tests.infrastructure import dedent, write


def _options(*groups: dict) -> CompilerOptions:
    return CompilerOptions(property_groups=[PropertyGroup(**g) for g in groups])


class TestFindProperty:

    def test_no_groups_gives_unset_values(self):
        props = find_property(CompilerOptions(), "/index.tpl")
        assert props.el_ignored is None
        assert props.include_prelude == []

    def test_extension_pattern_matches(self):
        props = find_property(_options({"url_patterns": ["*.tpl"], "el_ignored": True}), "/a/b.tpl")
        assert props.el_ignored is True

    def test_extension_pattern_does_not_match_other_suffix(self):
        props = find_property(_options({"url_patterns": ["*.tpl"], "el_ignored": True}), "/a/b.txt")
        assert props.el_ignored is None

    def test_path_prefix_beats_extension(self):
        options = _options(
            {"url_patterns": ["*.tpl"], "el_ignored": True},
            {"url_patterns": ["/admin/*"], "el_ignored": False},
        )
        assert find_property(options, "/admin/x.tpl").el_ignored is False
        assert find_property(options, "/public/x.tpl").el_ignored is True

    def test_exact_pattern_beats_wildcards(self):
        options = _options(
            {"url_patterns": ["/admin/*"], "scripting_invalid": True},
            {"url_patterns": ["/admin/legacy.tpl"], "scripting_invalid": False},
        )
        assert find_property(options, "/admin/legacy.tpl").scripting_invalid is False
        assert find_property(options, "/admin/other.tpl").scripting_invalid is True

    def test_longer_path_prefix_wins(self):
        options = _options(
            {"url_patterns": ["/a/*"], "page_encoding": "UTF-8"},
            {"url_patterns": ["/a/b/*"], "page_encoding": "ISO-8859-1"},
        )
        assert find_property(options, "/a/b/page.tpl").page_encoding == "ISO-8859-1"
        assert find_property(options, "/a/page.tpl").page_encoding == "UTF-8"

    def test_preludes_and_codas_accumulate_in_order(self):
        options = _options(
            {"url_patterns": ["*.tpl"], "include_prelude": ["/p1.tpl"], "include_coda": ["/c1.tpl"]},
            {"url_patterns": ["/x/*"], "include_prelude": ["/p2.tpl"]},
        )
        props = find_property(options, "/x/page.tpl")
        assert props.include_prelude == ["/p1.tpl", "/p2.tpl"]
        assert props.include_coda == ["/c1.tpl"]

    def test_tag_files_never_take_group_settings(self):
        options = _options({"url_patterns": ["/tags/*"], "el_ignored": True})
        assert find_property(options, "/tags/a.tag").el_ignored is None
        assert find_property(options, "/tags/a.tagx").el_ignored is None

    def test_bad_pattern_is_ignored(self):
        options = _options({"url_patterns": ["/admin/*.tpl"], "el_ignored": True})
        assert find_property(options, "/admin/x.tpl").el_ignored is None

    def test_global_undeclared_namespace_flag_is_the_default(self):
        options = CompilerOptions(error_on_undeclared_namespace=True)
        assert find_property(options, "/a.tpl").error_on_undeclared_namespace is True


class TestLoadOptions:

    def test_missing_file_gives_defaults(self, tmp_path: Path):
        options = load_options(tmp_path / "tplc.yaml")
        assert options == CompilerOptions()

    def test_none_gives_defaults(self):
        assert load_options(None).text_chunk_size == 1024

    def test_reads_values_and_groups(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", dedent("""
            trim_spaces: true
            text_chunk_size: 64
            taglibs:
              urn:demo: /WEB-INF/demo.tld.yaml
            property_groups:
              - url_patterns: ["*.tpl"]
                el_ignored: true
                include_prelude: [/prelude.tpl]
        """))
        options = load_options(cfg)
        assert options.trim_spaces is True
        assert options.text_chunk_size == 64
        assert options.taglibs == {"urn:demo": "/WEB-INF/demo.tld.yaml"}
        assert options.property_groups[0].include_prelude == ["/prelude.tpl"]

    def test_empty_file_gives_defaults(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", "")
        assert load_options(cfg) == CompilerOptions()

    def test_invalid_yaml(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", "trim_spaces: [unclosed\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_options(cfg)

    def test_top_level_must_be_mapping(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            load_options(cfg)

    def test_unknown_key(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", "no_such_option: 1\n")
        with pytest.raises(ConfigError, match="invalid configuration"):
            load_options(cfg)

    def test_chunk_size_lower_bound(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", "text_chunk_size: 2\n")
        with pytest.raises(ConfigError):
            load_options(cfg)

    def test_unknown_group_key(self, tmp_path: Path):
        cfg = write(tmp_path / "tplc.yaml", dedent("""
            property_groups:
              - url_patterns: ["*.tpl"]
                el_ignroed: true
        """))
        with pytest.raises(ConfigError):
            load_options(cfg)
