import ast

import pytest

from tplc.errors import CompileError
from tplc.generator.generator import code_lines, convert_string, split_class_ref
from tplc.generator.naming import (
    make_identifier,
    make_identifier_for_attribute,
    make_package,
    quote,
    tag_handler_class_name,
    to_python_type,
)
from tplc.generator.writer import CodeWriter


class TestIdentifiers:

    def test_plain_name_is_kept(self):
        assert make_identifier("page") == "page"

    def test_period_becomes_underscore(self):
        assert make_identifier("index.tpl") == "index_tpl"

    def test_underscore_is_mangled_to_stay_unique(self):
        assert make_identifier("a_b.tpl") == "a_005fb_tpl"
        assert make_identifier("a.b_tpl") != make_identifier("a_b.tpl")

    def test_leading_digit_and_dash(self):
        assert make_identifier("1-a") == "_1_002da"

    def test_keyword_gets_suffix(self):
        assert make_identifier("class") == "class_"

    def test_attribute_flavour_keeps_underscores(self):
        assert make_identifier_for_attribute("x_hello_1") == "x_hello_1"
        assert make_identifier_for_attribute("a&b") == "a_0026b"

    def test_package_of_unit(self):
        assert make_package("/dir/page.tpl") == "dir.page_tpl"
        assert make_package("/a/b-c.tag") == "a.b_002dc_tag"


class TestTagHandlerNames:

    def test_implicit_library(self):
        assert tag_handler_class_name("/tags/greet.tag", "urn:jsptagdir:/tags") == "tplc_tags.web.greet_tag"

    def test_nested_implicit_library(self):
        assert tag_handler_class_name("/tags/ui/card.tag", None) == "tplc_tags.web.ui.card_tag"

    def test_packaged_tag_file(self):
        name = tag_handler_class_name("/lib/card.tagx", "demo")
        assert name == "tplc_tags.meta.demo.lib.card_tagx"

    def test_suffix_is_required(self):
        with pytest.raises(CompileError) as ei:
            tag_handler_class_name("/lib/card.txt", None)
        assert ei.value.key == "error.tagfile.suffix"

    def test_split_class_ref(self):
        assert split_class_ref("pkg.mod.Cls") == ("pkg.mod", "Cls")
        assert split_class_ref("pkg.mod:Outer") == ("pkg.mod", "Outer")
        assert split_class_ref("tplc_tags.web.greet_tag", True) == ("tplc_tags.web.greet_tag", "greet_tag")


class TestQuote:

    @pytest.mark.parametrize("text", ['say "hi"\n', "tab\there", "back\\slash", "caf\u00e9", "\x00\x7f", "\U0001f600"])
    def test_literal_evaluates_back(self, text):
        assert ast.literal_eval(quote(text)) == text

    def test_none(self):
        assert quote(None) == "None"


class TestCodeLines:

    def test_single_line(self):
        assert code_lines(" x = 1 ") == ["x = 1"]

    def test_common_indent_is_removed(self):
        assert code_lines("\n    a = 1\n    b = 2\n") == ["", "a = 1", "b = 2", ""]

    def test_block_opened_on_first_line_is_indented(self):
        lines = code_lines(" if x:\n    y = 1\n    z = 2\n")
        assert lines == ["if x:", "    y = 1", "    z = 2", ""]


class TestConvertString:

    def test_strings_are_quoted(self):
        assert convert_string("str", "a", False) == '"a"'

    def test_basic_types_become_literals(self):
        assert convert_string("int", " 42 ", False) == "42"
        assert convert_string("bool", "TRUE", False) == "True"
        assert convert_string("float", "1.5", False) == "1.5"

    def test_named_attribute_is_coerced_at_run_time(self):
        assert convert_string("int", "_tplc_temp0", True) == '_tplc_rt.coerce(_tplc_temp0, "int")'


def test_python_type_aliases():
    assert to_python_type("java.lang.String") == "str"
    assert to_python_type(None) == "object"
    assert to_python_type("my.Type") == "my.Type"


class TestCodeWriter:

    def test_empty_block_gets_pass(self):
        w = CodeWriter()
        w.printil("if x:")
        w.push_indent()
        w.pop_indent()
        assert w.get_text() == "if x:\n    pass\n"

    def test_comment_does_not_fill_block(self):
        w = CodeWriter()
        w.printil("if x:")
        w.push_indent()
        w.comment("nothing")
        w.pop_indent()
        assert w.get_text().endswith("    pass\n")

    def test_line_counting(self):
        w = CodeWriter()
        w.printil("a = 1")
        w.blank()
        w.printil("b = (1,\n2)")
        assert w.line == 5

    def test_print_block_reindents(self):
        w = CodeWriter()
        w.printil("def f():")
        w.push_indent()
        w.print_block(["x = 1", "", "return x"])
        w.pop_indent()
        assert w.get_text() == "def f():\n    x = 1\n\n    return x\n"
