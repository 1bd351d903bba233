"""
Lexer and recursive-descent parser for the body of one expression root.

Grammar (lowest precedence first):
choice         → or_expr ("?" choice ":" choice)?
or_expr        → and_expr (("||" | "or") and_expr)*
and_expr       → equality (("&&" | "and") equality)*
equality       → relational (("==" | "!=" | "eq" | "ne") relational)*
relational     → additive (("<" | ">" | "<=" | ">=" | "lt" | "gt" | "le" | "ge") additive)*
additive       → multiplicative (("+" | "-") multiplicative)*
multiplicative → unary (("*" | "/" | "div" | "%" | "mod") unary)*
unary          → ("-" | "!" | "not" | "empty") unary | value
value          → primary ("." NAME | "[" choice "]" | "(" args ")")*
primary        → literal | function | IDENTIFIER | "(" choice ")"
function       → (IDENTIFIER ":")? IDENTIFIER "(" args ")"
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from .model import And, Binary, Call, Choice, Expr, FunctionCall, Identifier, Literal, Or, Property, Unary


class ExpressionError(ValueError):
    """Syntax error inside an expression."""

    def __init__(self, message: str, position: int):
        self.message = message
        self.position = position
        super().__init__(f"{message} at position {position}")


@dataclass
class Token:
    type: str
    value: str
    position: int


KEYWORDS = frozenset({
    "and", "or", "not", "eq", "ne", "lt", "gt", "le", "ge", "div", "mod",
    "empty", "true", "false", "null", "instanceof",
})

# word operators in their symbolic spelling
CANONICAL = {
    "eq": "==", "ne": "!=", "lt": "<", "gt": ">", "le": "<=", "ge": ">=",
    "div": "/", "mod": "%", "and": "&&", "or": "||", "not": "!",
}


class ExpressionLexer:

    TOKEN_SPECS = [
        (r"\s+", "WHITESPACE", True),
        (r"(?:\d+\.\d*|\.\d+)(?:[eE][+-]?\d+)?|\d+[eE][+-]?\d+", "FLOAT", False),
        (r"\d+", "INTEGER", False),
        (r"'(?:[^'\\]|\\.)*'|\"(?:[^\"\\]|\\.)*\"", "STRING", False),
        (r"[A-Za-z_$][\w$]*", "IDENTIFIER", False),
        (r"==|!=|<=|>=|&&|\|\||[-+*/%<>!?:.,()\[\]]", "SYMBOL", False),
        (r".", "UNKNOWN", False),
    ]

    def __init__(self):
        self._compiled = [(re.compile(p, re.S), t, ignore) for p, t, ignore in self.TOKEN_SPECS]

    def tokenize(self, text: str) -> List[Token]:
        """
        Split ``text`` into tokens, EOF included.

        Raises:
            ExpressionError: Unknown character or unterminated string
        """
        tokens: List[Token] = []
        position = 0
        while position < len(text):
            for pattern, token_type, ignore in self._compiled:
                match = pattern.match(text, position)
                if not match:
                    continue
                value = match.group(0)
                if token_type == "UNKNOWN":
                    if value in ("'", '"'):
                        raise ExpressionError("unterminated string literal", position)
                    raise ExpressionError(f"unexpected character '{value}'", position)
                if not ignore:
                    if token_type == "IDENTIFIER" and value in KEYWORDS:
                        token_type = "KEYWORD"
                    tokens.append(Token(token_type, value, position))
                position = match.end()
                break
        tokens.append(Token("EOF", "", position))
        return tokens


def _unquote(literal: str) -> str:
    body = literal[1:-1]
    return re.sub(r"\\(.)", r"\1", body)


class ExpressionParser:
    """Builds an ``Expr`` tree from the text between ``${`` and ``}``."""

    def __init__(self):
        self.lexer = ExpressionLexer()
        self._tokens: List[Token] = []
        self._position = 0

    def parse(self, text: str) -> Expr:
        """
        Args:
            text: Expression body without the surrounding ``${`` / ``}``

        Raises:
            ExpressionError: On the first syntax error
        """
        self._tokens = self.lexer.tokenize(text)
        self._position = 0
        if self._current().type == "EOF":
            raise ExpressionError("empty expression", 0)
        result = self._parse_choice()
        if self._current().type != "EOF":
            current = self._current()
            raise ExpressionError(f"unexpected token '{current.value}'", current.position)
        return result

    # ------------------------------------------------------------ precedence

    def _parse_choice(self) -> Expr:
        condition = self._parse_or()
        if self._match("?"):
            when_true = self._parse_choice()
            self._expect(":", "expected ':' in conditional expression")
            when_false = self._parse_choice()
            return Choice(condition, when_true, when_false)
        return condition

    def _parse_or(self) -> Expr:
        left = self._parse_and()
        while self._match("||"):
            left = Or(left, self._parse_and())
        return left

    def _parse_and(self) -> Expr:
        left = self._parse_equality()
        while self._match("&&"):
            left = And(left, self._parse_equality())
        return left

    def _parse_equality(self) -> Expr:
        return self._parse_binary(("==", "!="), self._parse_relational)

    def _parse_relational(self) -> Expr:
        return self._parse_binary(("<", ">", "<=", ">="), self._parse_additive)

    def _parse_additive(self) -> Expr:
        return self._parse_binary(("+", "-"), self._parse_multiplicative)

    def _parse_multiplicative(self) -> Expr:
        return self._parse_binary(("*", "/", "%"), self._parse_unary)

    def _parse_binary(self, operators: Tuple[str, ...], operand) -> Expr:
        left = operand()
        while True:
            op = self._operator()
            if op not in operators:
                return left
            self._position += 1
            left = Binary(op, left, operand())

    def _parse_unary(self) -> Expr:
        op = self._operator()
        if op in ("-", "!") or op == "empty":
            self._position += 1
            return Unary(op, self._parse_unary())
        return self._parse_value()

    # ---------------------------------------------------------------- values

    def _parse_value(self) -> Expr:
        value = self._parse_primary()
        while True:
            if self._match("."):
                token = self._current()
                if token.type not in ("IDENTIFIER", "KEYWORD"):
                    raise ExpressionError("expected a property name after '.'", token.position)
                self._position += 1
                value = Property(value, Literal(token.value))
            elif self._match("["):
                key = self._parse_choice()
                self._expect("]", "expected ']'")
                value = Property(value, key)
            elif self._match("("):
                value = Call(value, self._parse_args())
            else:
                return value

    def _parse_primary(self) -> Expr:
        token = self._current()
        if self._match("("):
            inner = self._parse_choice()
            self._expect(")", "expected ')'")
            return inner
        if token.type == "INTEGER":
            self._position += 1
            return Literal(int(token.value))
        if token.type == "FLOAT":
            self._position += 1
            return Literal(float(token.value))
        if token.type == "STRING":
            self._position += 1
            return Literal(_unquote(token.value))
        if token.type == "KEYWORD" and token.value in ("true", "false", "null"):
            self._position += 1
            return Literal({"true": True, "false": False, "null": None}[token.value])
        if token.type == "IDENTIFIER":
            return self._parse_name()
        if token.type == "EOF":
            raise ExpressionError("unexpected end of expression", token.position)
        raise ExpressionError(f"unexpected token '{token.value}'", token.position)

    def _parse_name(self) -> Expr:
        name = self._tokens[self._position].value
        ahead = self._tokens[self._position + 1:self._position + 4]
        if len(ahead) == 3 and ahead[0].value == ":" and ahead[1].type == "IDENTIFIER" \
                and ahead[2].value == "(" and ahead[2].type == "SYMBOL":
            self._position += 4
            return FunctionCall(name, ahead[1].value, self._parse_args())
        if ahead and ahead[0].type == "SYMBOL" and ahead[0].value == "(":
            self._position += 2
            return FunctionCall(None, name, self._parse_args())
        self._position += 1
        return Identifier(name)

    def _parse_args(self) -> Tuple[Expr, ...]:
        """Arguments after an opening parenthesis, closing one included."""
        args: List[Expr] = []
        if self._match(")"):
            return ()
        while True:
            args.append(self._parse_choice())
            if self._match(")"):
                return tuple(args)
            self._expect(",", "expected ',' or ')' in argument list")

    # ---------------------------------------------------------------- tokens

    def _current(self) -> Token:
        return self._tokens[min(self._position, len(self._tokens) - 1)]

    def _operator(self) -> Optional[str]:
        token = self._current()
        if token.type == "SYMBOL":
            return token.value
        if token.type == "KEYWORD":
            return CANONICAL.get(token.value, token.value)
        return None

    def _match(self, op: str) -> bool:
        if self._operator() == op:
            self._position += 1
            return True
        return False

    def _expect(self, op: str, message: str) -> None:
        if not self._match(op):
            raise ExpressionError(message, self._current().position)


@lru_cache(maxsize=1024)
def parse_expression(text: str) -> Expr:
    """Parsed tree of one expression body; trees are immutable and shared."""
    return ExpressionParser().parse(text)


__all__ = ["ExpressionLexer", "ExpressionParser", "ExpressionError", "Token", "parse_expression", "KEYWORDS"]
