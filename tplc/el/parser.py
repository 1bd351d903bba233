"""
Parser for the embedded expression sub-language.

Only the structure the compiler needs is recovered: literal text,
expression roots and the function invocations inside them. Everything
else in an expression is kept as ``ELText``; the full grammar of a root
lives in ``expression.py``.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, List, Optional

from .expression import parse_expression
from .nodes import ELNodes, ELText, ELVisitor, Function, Root, Text

# Words of the expression language that can never start a function name.
RESERVED_WORDS = frozenset({
    "and", "div", "empty", "eq", "false", "ge", "gt", "instanceof", "le",
    "lt", "mod", "ne", "not", "null", "or", "true",
})

_ID = "id"
_CHAR = "char"
_QUOTED = "quoted"


@dataclass(frozen=True)
class _Token:
    kind: str
    text: str
    whitespace: str = ""

    def to_char(self) -> str:
        return self.text if self.kind == _CHAR else ""

    def __str__(self) -> str:
        return self.whitespace + self.text


def _is_id_start(ch: str) -> bool:
    return ch.isalpha() or ch in "_$"


def _is_id_part(ch: str) -> bool:
    return ch.isalnum() or ch in "_$"


class ELParser:
    """
    Splits an attribute value or text run into literal text and expressions.

    Args:
        expression: Raw text to scan
        deferred_literal: Treat ``#{`` as literal text
    """

    def __init__(self, expression: str, deferred_literal: bool = False):
        self.expression = expression
        self.deferred_literal = deferred_literal
        self.index = 0
        self.type = "$"
        self.whitespace = ""
        self.cur: Optional[_Token] = None
        self.prev: Optional[_Token] = None
        self.el_nodes = ELNodes()

    @classmethod
    def parse(cls, expression: str, deferred_literal: bool = False) -> ELNodes:
        """
        Parse ``expression`` into a flat node sequence.

        Returns:
            ``ELNodes`` holding ``Text`` and ``Root`` entries in order
        """
        parser = cls(expression, deferred_literal)
        result = ELNodes()
        while parser.has_next_char():
            text = parser.skip_until_el()
            if text:
                result.add(Text(text))
            expr = parser.parse_el()
            if not expr.is_empty():
                result.add(Root(expr, parser.type))
        return result

    # ------------------------------------------------------------ text phase

    def _is_start(self, ch: str) -> bool:
        return ch == "$" or (ch == "#" and not self.deferred_literal)

    def skip_until_el(self) -> str:
        """
        Collect literal text up to the next ``${`` or ``#{``, unescaping
        ``\\$`` and ``\\#`` on the way. The opening brace is consumed.
        """
        buf: List[str] = []
        while self.has_next_char():
            ch = self.next_char()
            if ch == "\\":
                if self._is_start(self.peek()):
                    buf.append(self.next_char())
                else:
                    buf.append(ch)
            elif self._is_start(ch) and self.peek() == "{":
                self.type = ch
                self.next_char()
                break
            else:
                buf.append(ch)
        return "".join(buf)

    # ------------------------------------------------------ expression phase

    def parse_el(self) -> ELNodes:
        """Parse one expression body up to and including its closing brace."""
        buf: List[str] = []
        self.el_nodes = ELNodes()
        self.cur = None
        self.prev = None
        while self.has_next():
            self.cur = self.next_token()
            if self.cur.kind == _CHAR:
                if self.cur.text == "}":
                    break
                buf.append(str(self.cur))
            else:
                if buf:
                    self.el_nodes.add(ELText("".join(buf)))
                    buf = []
                if not self._parse_function():
                    self.el_nodes.add(ELText(str(self.cur)))
        if self.cur is not None:
            buf.append(self.cur.whitespace)
        if buf:
            self.el_nodes.add(ELText("".join(buf)))
        return self.el_nodes

    def _parse_function(self) -> bool:
        """
        Recognise ``[prefix:]name(`` starting at the current identifier.

        On failure the cursor is rewound and False is returned.
        """
        current = self.cur
        if current is None or current.kind != _ID or current.text in RESERVED_WORDS:
            return False
        if self.prev is not None and self.prev.to_char() == ".":
            return False
        prefix: Optional[str] = None
        name = current.text
        start = self.index - len(str(current))
        if self.has_next():
            mark = self.index - len(self.whitespace)
            self.cur = self.next_token()
            if self.cur.to_char() == ":":
                if self.has_next():
                    second = self.next_token()
                    if second.kind == _ID:
                        prefix = name
                        name = second.text
                        if self.has_next():
                            self.cur = self.next_token()
            if self.cur.to_char() == "(":
                original_text = self.expression[start:self.index - 1]
                self.el_nodes.add(Function(prefix, name, original_text))
                return True
            self.cur = current
            self.index = mark
        return False

    # ----------------------------------------------------------------- lexer

    def has_next_char(self) -> bool:
        return self.index < len(self.expression)

    def next_char(self) -> str:
        if self.index >= len(self.expression):
            return ""
        ch = self.expression[self.index]
        self.index += 1
        return ch

    def peek(self) -> str:
        if self.index < len(self.expression):
            return self.expression[self.index]
        return ""

    def _skip_spaces(self) -> None:
        start = self.index
        while self.index < len(self.expression) and self.expression[self.index].isspace():
            self.index += 1
        self.whitespace = self.expression[start:self.index]

    def has_next(self) -> bool:
        self._skip_spaces()
        return self.has_next_char()

    def _take_whitespace(self) -> str:
        ws, self.whitespace = self.whitespace, ""
        return ws

    def next_token(self) -> _Token:
        """Next token; always called right after ``has_next``."""
        self.prev = self.cur
        ch = self.next_char()
        if _is_id_start(ch):
            start = self.index - 1
            while self.has_next_char() and _is_id_part(self.expression[self.index]):
                self.index += 1
            return _Token(_ID, self.expression[start:self.index], self._take_whitespace())
        if ch in ("'", '"'):
            return self._parse_quoted_chars(ch)
        return _Token(_CHAR, ch, self._take_whitespace())

    def _parse_quoted_chars(self, quote: str) -> _Token:
        buf = [quote]
        while self.has_next_char():
            ch = self.next_char()
            if ch == "\\":
                ch = self.next_char()
                if ch in ("\\", "'", '"'):
                    buf.append("\\")
                buf.append(ch)
            elif ch == quote:
                buf.append(ch)
                break
            else:
                buf.append(ch)
        return _Token(_QUOTED, "".join(buf), self._take_whitespace())


# ---------------------------------------------------------------- escaping

def escape_literal_expression(text: str, deferred_literal: bool = False) -> str:
    """
    Escape ``${`` (and ``#{`` unless deferred syntax is literal) so that the
    text survives another pass through the expression parser.
    """
    out = []
    for i, ch in enumerate(text):
        if (ch == "$" or (ch == "#" and not deferred_literal)) \
                and i + 1 < len(text) and text[i + 1] == "{":
            out.append("\\")
        out.append(ch)
    return "".join(out)


def escape_el_text(text: str) -> str:
    """
    Re-escape backslashes and quotes inside a quoted string literal of an
    expression.

    Raises:
        ValueError: The text starts with a quote but does not end with it
    """
    start, end = 0, len(text)
    quote = ""
    trimmed = text.strip()
    if len(trimmed) > 1 and trimmed[0] in ("'", '"'):
        quote = trimmed[0]
        if trimmed[-1] != quote:
            raise ValueError("invalid quotes for string literal: %s" % text)
        start = text.index(quote) + 1
        end = start + len(trimmed) - 2
    out = [text[:start]]
    for ch in text[start:end]:
        if ch == "\\" or (quote and ch == quote):
            out.append("\\")
        out.append(ch)
    out.append(text[end:])
    return "".join(out)


class _TextBuilder(ELVisitor):
    def __init__(self, deferred_literal: bool, escape_text: Optional[Callable[[str], str]] = None):
        self.deferred_literal = deferred_literal
        self.escape_text = escape_text
        self.parts: List[str] = []

    def visit_root(self, n: Root) -> None:
        self.parts.append(n.type + "{")
        n.expression.visit(self)
        self.parts.append("}")

    def visit_function(self, n: Function) -> None:
        self.parts.append(escape_literal_expression(n.original_text, self.deferred_literal))
        self.parts.append("(")

    def visit_text(self, n: Text) -> None:
        text = n.text if self.escape_text is None else self.escape_text(n.text)
        self.parts.append(escape_literal_expression(text, self.deferred_literal))

    def visit_el_text(self, n: ELText) -> None:
        self.parts.append(escape_el_text(n.text))


def to_text(
    nodes: ELNodes,
    deferred_literal: bool = False,
    escape_text: Optional[Callable[[str], str]] = None,
) -> str:
    """
    Rebuild the source text of a parsed expression sequence.

    ``escape_text`` is applied to literal text outside expressions only.
    """
    builder = _TextBuilder(deferred_literal, escape_text)
    nodes.visit(builder)
    return "".join(builder.parts)


def root_text(root: Root) -> str:
    """Source text of one expression root, without ``${`` and ``}``."""
    return "".join(
        n.original_text + "(" if isinstance(n, Function) else n.text
        for n in root.expression
    )


def check_syntax(nodes: ELNodes) -> None:
    """
    Parse every expression root of ``nodes``, so that whatever compiles
    can also be evaluated.

    Raises:
        ExpressionError: On the first problem found (a ``ValueError``)
    """
    for root in nodes.roots():
        parse_expression(root_text(root))


__all__ = [
    "ELParser", "RESERVED_WORDS", "escape_literal_expression",
    "escape_el_text", "to_text", "check_syntax", "root_text",
]
