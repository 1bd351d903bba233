from types import SimpleNamespace

import pytest

from tplc.runtime import (
    ELException, FunctionMapper, MethodExpression, ValueExpression, coerce, evaluate,
    get_property, to_string,
)


class Context:
    """Attribute lookup the way a page context does it."""

    def __init__(self, **attributes):
        self.attributes = attributes

    def find_attribute(self, name):
        return self.attributes.get(name)


class TestEvaluate:

    def test_property_of_a_mapping(self):
        ctx = Context(user={"name": "W"})
        assert evaluate("${user.name}", "str", ctx) == "W"

    def test_property_of_an_object(self):
        ctx = Context(user=SimpleNamespace(name="W"))
        assert evaluate("${user.name}", "str", ctx) == "W"

    def test_index(self):
        ctx = Context(items=["a", "b"])
        assert evaluate("${items[1]}", "str", ctx) == "b"

    def test_missing_values_are_empty(self):
        assert evaluate("${nobody.name}", "str", Context()) == ""
        assert evaluate("${items[5]}", "str", Context(items=[])) == ""

    def test_text_around_expressions_is_concatenated(self):
        assert evaluate("Total: ${n + 1}!", "str", Context(n=2)) == "Total: 3!"

    def test_single_expression_keeps_its_type(self):
        assert evaluate("${n * 2}", None, Context(n=4)) == 8

    @pytest.mark.parametrize("expression, expected", [
        ("${n eq 2}", True),
        ("${n ne 2}", False),
        ("${n gt 1 && n lt 3}", True),
        ("${n eq 3 || !flag}", True),
        ("${empty items}", True),
        ("${missing == null}", True),
        ("${true}", True),
    ])
    def test_operators(self, expression, expected):
        ctx = Context(n=2, flag=False, items=[])
        assert evaluate(expression, "bool", ctx) is expected

    def test_page_context_is_visible(self):
        ctx = Context()
        assert evaluate("${pageContext}", None, ctx) is ctx

    def test_failure_is_an_el_exception(self):
        with pytest.raises(ELException):
            evaluate("${1 / 0}", "str", Context())

    def test_conversion_to_int(self):
        assert evaluate("${n}", "int", Context(n="5")) == 5

    @pytest.mark.parametrize("flag, expected", [(True, "yes"), (False, "no"), (None, "no")])
    def test_conditional(self, flag, expected):
        assert evaluate("${flag ? 'yes' : 'no'}", "str", Context(flag=flag)) == expected

    @pytest.mark.parametrize("expression, expected", [
        ("${n + '3'}", 5),
        ("${-n * 2}", -4),
        ("${7 mod 3}", 1),
        ("${n div 4}", 0.5),
        ("${name lt 'x'}", True),
        ("${n == '2'}", True),
        ("${null lt 1}", False),
    ])
    def test_operator_coercion(self, expression, expected):
        assert evaluate(expression, None, Context(n=2, name="w")) == expected

    def test_method_call_on_a_bean(self):
        bean = SimpleNamespace(greet=lambda who: "hi " + who)
        assert evaluate("${bean.greet('w')}", "str", Context(bean=bean)) == "hi w"

    def test_names_outside_the_context_are_not_reachable(self):
        assert evaluate("${__builtins__}", None, Context()) is None
        with pytest.raises(ELException):
            evaluate("${__import__('os')}", None, Context())

    def test_malformed_expression(self):
        with pytest.raises(ELException, match="invalid expression"):
            evaluate("${a +}", "str", Context())


class TestFunctions:

    def test_mapped_function(self):
        fnmap = FunctionMapper({"s:cap": ("string", "capwords")})
        ctx = Context(name="hello world")
        assert evaluate("${s:cap(name)}", "str", ctx, fnmap) == "Hello World"

    def test_resolution_is_cached(self):
        fnmap = FunctionMapper({"s:cap": ("string", "capwords")})
        assert fnmap.resolve_function("s:cap") is fnmap.resolve_function("s:cap")

    def test_unmapped_function(self):
        with pytest.raises(ELException):
            evaluate("${s:cap(name)}", "str", Context(name="x"))
        with pytest.raises(ELException):
            FunctionMapper({}).resolve_function("s:cap")

    def test_function_that_cannot_be_loaded(self):
        fnmap = FunctionMapper({"s:x": ("string", "no_such_function")})
        with pytest.raises(ELException):
            fnmap.resolve_function("s:x")


class TestDeferredExpressions:

    def test_value_expression(self):
        expr = ValueExpression("mark", "${a}", "str")
        assert expr.get_value(Context(a=1)) == "1"
        assert expr.is_literal_text() is False
        assert ValueExpression("mark", "plain", "str").is_literal_text() is True

    def test_method_expression(self):
        bean = SimpleNamespace(double=lambda x: x * 2)
        expr = MethodExpression("mark", "${bean.double}", "int", ["int"])
        assert expr.invoke(Context(bean=bean), 21) == 42

    def test_method_expression_needs_a_callable(self):
        expr = MethodExpression("mark", "${bean}", "str", [])
        with pytest.raises(ELException):
            expr.invoke(Context(bean="not callable"))


class TestCoercion:

    def test_to_string(self):
        assert to_string(None) == ""
        assert to_string(True) == "true"
        assert to_string(False) == "false"
        assert to_string(3) == "3"

    @pytest.mark.parametrize("value, type_name, expected", [
        ("", "int", 0),
        (None, "float", 0.0),
        ("7", "int", 7),
        (True, "int", 1),
        ("TRUE", "bool", True),
        ("no", "bool", False),
        (0, "bool", False),
        (5, "str", "5"),
        ([1], "list", [1]),
    ])
    def test_coerce(self, value, type_name, expected):
        assert coerce(value, type_name) == expected

    def test_bad_number(self):
        with pytest.raises(ELException):
            coerce("seven", "int")

    def test_get_property(self):
        assert get_property(None, "x") is None
        assert get_property({"a": 1}, "a") == 1
        assert get_property("abc", "1") == "b"
        assert get_property(SimpleNamespace(), "x") is None
