"""
Unquoting of relaxed-syntax attribute values.

Attribute values arrive with their quoting escapes intact (``\\"``,
``&apos;``, ``<\\%``). Unquoting must keep expression-language escapes
meaningful: in a value that contains EL, an escaped ``$`` becomes the EL
literal ``${'$'}`` instead of a plain character.
"""

from __future__ import annotations


class AttributeUnquoter:
    """
    Args:
        value: Raw attribute text between the quotes
        quote: Quote character used for the attribute, ``""`` for
            request-time expressions
        el_ignored: Whether EL is disabled for the page
        deferred_literal: Whether ``#{`` is literal text
        strict: Reject an unescaped quote character inside the value
        quote_attribute_el: Apply quoting escapes inside EL expressions too
    """

    def __init__(
        self,
        value: str,
        quote: str,
        el_ignored: bool,
        deferred_literal: bool,
        strict: bool,
        quote_attribute_el: bool,
    ):
        self.value = value
        self.quote = quote
        self.el_ignored = el_ignored
        self.deferred_literal = deferred_literal
        self.strict = strict
        self.quote_attribute_el = quote_attribute_el
        self.type = self._el_type(value)
        self.size = len(value)
        self.i = 0
        self.last_escaped = False
        self.result: list = []

    def unquote(self) -> str:
        while self.i < self.size:
            self._parse_literal()
            self._parse_el()
        return "".join(self.result)

    def _parse_literal(self) -> None:
        found_el = False
        out = self.result
        while self.i < self.size and not found_el:
            ch = self._next_char()
            if not self.el_ignored and ch == "\\":
                out.append("\\" if not self.type else self.type + "{'\\\\'}")
            elif not self.el_ignored and ch in "$#" and self.last_escaped:
                out.append("\\" + ch if not self.type else self.type + "{'" + ch + "'}")
            elif self.type and ch == self.type:
                if self.i < self.size and self.value[self.i] == "{":
                    found_el = True
                    self.i -= 1
                else:
                    out.append(ch)
            else:
                out.append(ch)

    def _parse_el(self) -> None:
        end = False
        inside_literal = False
        literal_quote = ""
        while self.i < self.size and not end:
            if self.quote_attribute_el:
                ch = self._next_char()
            else:
                ch = self.value[self.i]
                self.i += 1
            if ch in ("'", '"'):
                if inside_literal:
                    if literal_quote == ch:
                        inside_literal = False
                else:
                    inside_literal = True
                    literal_quote = ch
            elif ch == "}" and not inside_literal:
                end = True
            self.result.append(ch)

    def _next_char(self) -> str:
        self.last_escaped = False
        v, i, size = self.value, self.i, self.size
        ch = v[i]
        if ch == "&":
            if v.startswith("&apos;", i):
                self.i += 6
                return "'"
            if v.startswith("&quot;", i):
                self.i += 6
                return '"'
            self.i += 1
        elif ch == "\\" and i + 1 < size:
            nxt = v[i + 1]
            if nxt in ("\\", '"', "'") or (
                not self.el_ignored and (nxt == "$" or (not self.deferred_literal and nxt == "#"))
            ):
                self.i += 2
                self.last_escaped = True
                return nxt
            self.i += 1
        elif ch == "<" and v.startswith("<\\%", i):
            self.result.append("<")
            self.i += 3
            return "%"
        elif ch == "%" and v.startswith("%\\>", i):
            self.result.append("%")
            self.i += 3
            return ">"
        elif self.quote and ch == self.quote and self.strict:
            raise ValueError(f"unescaped {self.quote} in attribute value {v!r}")
        else:
            self.i += 1
        return ch

    def _el_type(self, value: str) -> str:
        """``$`` or ``#`` for the first EL start in ``value``, ``""`` for none."""
        if self.el_ignored:
            return ""
        j = 0
        length = len(value)
        while j < length:
            current = value[j]
            if current == "\\":
                j += 1
            elif current == "#" and not self.deferred_literal:
                if j < length - 1 and value[j + 1] == "{":
                    return "#"
            elif current == "$":
                if j < length - 1 and value[j + 1] == "{":
                    return "$"
            j += 1
        return ""


def unquote_attribute(
    value: str,
    quote: str,
    el_ignored: bool = False,
    deferred_literal: bool = False,
    strict: bool = True,
    quote_attribute_el: bool = True,
) -> str:
    """
    Remove the quoting escapes from an attribute value.

    Raises:
        ValueError: ``strict`` is set and the value holds an unescaped quote
    """
    return AttributeUnquoter(value, quote, el_ignored, deferred_literal,
                             strict, quote_attribute_el).unquote()


__all__ = ["AttributeUnquoter", "unquote_attribute"]
