import pytest

from tplc.el import ELParser, ExpressionError, Function, Root, Text, check_syntax, parse_expression, root_text
from tplc.el.model import And, Binary, Choice, FunctionCall, Identifier, Literal, Or, Property, Unary


class TestSplitting:

    def test_text_and_roots(self):
        nodes = list(ELParser.parse("Hi ${user.name}, #{n}!"))
        assert isinstance(nodes[0], Text) and nodes[0].text == "Hi "
        assert isinstance(nodes[1], Root) and nodes[1].type == "$"
        assert nodes[3].type == "#"

    def test_function_is_isolated(self):
        root = ELParser.parse("${x:upper(name)}").roots()[0]
        func = next(n for n in root.expression if isinstance(n, Function))
        assert (func.prefix, func.name) == ("x", "upper")
        assert root_text(root) == "x:upper(name)"


class TestGrammar:

    def test_precedence(self):
        assert parse_expression("1 + 2 * 3") == Binary("+", Literal(1), Binary("*", Literal(2), Literal(3)))

    def test_word_operators_are_canonical(self):
        assert parse_expression("a eq b") == parse_expression("a == b")
        assert parse_expression("a lt b and not c") == And(
            Binary("<", Identifier("a"), Identifier("b")), Unary("!", Identifier("c")))
        assert isinstance(parse_expression("a || b"), Or)

    def test_property_and_index(self):
        assert parse_expression("user.name") == Property(Identifier("user"), Literal("name"))
        assert parse_expression("items[0]") == Property(Identifier("items"), Literal(0))

    def test_conditional(self):
        assert parse_expression("a ? 'y' : 'n'") == Choice(Identifier("a"), Literal("y"), Literal("n"))

    def test_function(self):
        assert parse_expression("fn:join(a, ',')") == FunctionCall("fn", "join", (Identifier("a"), Literal(",")))

    def test_literals(self):
        assert parse_expression("null") == Literal(None)
        assert parse_expression("1.5e1") == Literal(15.0)
        assert parse_expression(r"'it\'s'") == Literal("it's")

    @pytest.mark.parametrize("text", [
        "", "a ?", "a ? b", "a +", "(a", "a]", "a = b", "'open", "a instanceof b", "a.",
    ])
    def test_malformed(self, text):
        with pytest.raises(ExpressionError):
            parse_expression(text)

    def test_check_syntax_covers_every_root(self):
        check_syntax(ELParser.parse("${a} and ${b ? 1 : 2}"))
        with pytest.raises(ValueError):
            check_syntax(ELParser.parse("${a} and ${b ? 1}"))
