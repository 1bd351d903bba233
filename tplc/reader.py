"""
Position-tracked character cursor used by the relaxed-syntax parser.

The reader holds the whole unit text in memory; marks are cheap value
objects and ``reset`` restores a previous position exactly.
"""

from __future__ import annotations

from typing import Optional

from .errors import CompileError
from .mark import Mark


class SourceReader:
    """
    Read/peek/mark/reset cursor over the text of one parse unit.

    Args:
        unit: Unit path used in marks and diagnostics
        text: Decoded unit text
    """

    def __init__(self, unit: str, text: str):
        self.unit = unit
        self.text = text
        self._pos = 0
        self._line = 1
        self._col = 1

    # ---------------------------------------------------------------- cursor

    def has_more_input(self) -> bool:
        return self._pos < len(self.text)

    def next_char(self) -> str:
        """Consume one character; returns an empty string at end of input."""
        if self._pos >= len(self.text):
            return ""
        ch = self.text[self._pos]
        self._pos += 1
        if ch == "\n":
            self._line += 1
            self._col = 1
        else:
            self._col += 1
        return ch

    def push_char(self) -> None:
        """Step back over the last character (never across a newline)."""
        self._pos -= 1
        self._col -= 1

    def peek_char(self, ahead: int = 0) -> str:
        target = self._pos + ahead
        if target < len(self.text):
            return self.text[target]
        return ""

    def mark(self) -> Mark:
        return Mark(self.unit, self._line, self._col, self._pos)

    def reset(self, mark: Mark) -> None:
        self._pos = mark.offset
        self._line = mark.line
        self._col = mark.column

    def get_text(self, start: Mark, stop: Mark) -> str:
        return self.text[start.offset:stop.offset]

    def _advance_to(self, new_pos: int) -> None:
        chunk = self.text[self._pos:new_pos]
        newlines = chunk.count("\n")
        if newlines:
            self._line += newlines
            self._col = len(chunk) - chunk.rfind("\n")
        else:
            self._col += len(chunk)
        self._pos = new_pos

    # -------------------------------------------------------------- matching

    def matches(self, string: str) -> bool:
        """Consume ``string`` if the input continues with it."""
        if self.text.startswith(string, self._pos):
            self._advance_to(self._pos + len(string))
            return True
        return False

    def matches_etag(self, tag_name: str) -> bool:
        mark = self.mark()
        if not self.matches("</" + tag_name):
            return False
        self.skip_spaces()
        if self.next_char() == ">":
            return True
        self.reset(mark)
        return False

    def matches_etag_without_less_than(self, tag_name: str) -> bool:
        mark = self.mark()
        if not self.matches("/" + tag_name):
            return False
        self.skip_spaces()
        if self.next_char() == ">":
            return True
        self.reset(mark)
        return False

    def matches_optional_spaces_followed_by(self, string: str) -> bool:
        mark = self.mark()
        self.skip_spaces()
        if self.matches(string):
            return True
        self.reset(mark)
        return False

    def is_space(self) -> bool:
        ch = self.peek_char()
        return ch == "" or ch <= " "

    def skip_spaces(self) -> int:
        count = 0
        while self.has_more_input() and self.is_space():
            count += 1
            self.next_char()
        return count

    # -------------------------------------------------------------- skipping

    def skip_until(self, limit: str) -> Optional[Mark]:
        """
        Skip up to and including ``limit``.

        Returns:
            Mark of the first character of ``limit``, or None when the
            input ends first (the cursor is then left at end of input)
        """
        index = self.text.find(limit, self._pos)
        if index < 0:
            self._advance_to(len(self.text))
            return None
        self._advance_to(index)
        found = self.mark()
        self._advance_to(index + len(limit))
        return found

    def skip_until_ignore_esc(self, limit: str, ignore_el: bool) -> Optional[Mark]:
        """
        Skip up to ``limit`` honouring backslash escapes and, unless
        ``ignore_el`` is set, skipping over embedded ``${...}``/``#{...}``.
        """
        prev = "x"
        while True:
            ret = self.mark()
            ch = self.next_char()
            if ch == "":
                return None
            if ch == "\\" and prev == "\\":
                # a doubled backslash no longer escapes
                prev = "\0"
                continue
            if prev == "\\":
                prev = ch
                continue
            if not ignore_el and ch in "$#" and self.peek_char() == "{":
                self.next_char()
                self.skip_el_expression()
            elif ch == limit[0]:
                if self.text.startswith(limit[1:], self._pos):
                    self._advance_to(self._pos + len(limit) - 1)
                    return ret
            prev = ch

    def skip_until_etag(self, tag: str) -> Optional[Mark]:
        ret = self.skip_until("</" + tag)
        if ret is not None:
            self.skip_spaces()
            if self.next_char() != ">":
                ret = None
        return ret

    def skip_el_expression(self) -> Optional[Mark]:
        """
        Skip the body of an expression whose opening ``${`` has already
        been consumed.

        Returns:
            Mark of the closing brace, or None if the expression is
            unterminated
        """
        single_quoted = False
        double_quoted = False
        nesting = 0
        while True:
            last = self.mark()
            ch = self.next_char()
            while ch == "\\" and (single_quoted or double_quoted):
                self.next_char()
                last = self.mark()
                ch = self.next_char()
            if ch == "":
                return None
            if ch == '"' and not single_quoted:
                double_quoted = not double_quoted
            elif ch == "'" and not double_quoted:
                single_quoted = not single_quoted
            elif ch == "{" and not double_quoted and not single_quoted:
                nesting += 1
            elif ch == "}" and not double_quoted and not single_quoted:
                nesting -= 1
            if ch == "}" and not single_quoted and not double_quoted and nesting <= -1:
                return last

    # ---------------------------------------------------------------- tokens

    def is_delimiter(self) -> bool:
        if self.is_space():
            return True
        ch = self.peek_char()
        if ch in ("=", ">", '"', "'", "/"):
            return True
        if ch == "-":
            mark = self.mark()
            self.next_char()
            nxt = self.next_char()
            result = nxt == ">" or (nxt == "-" and self.next_char() == ">")
            self.reset(mark)
            return result
        return False

    def parse_token(self, quoted: bool) -> str:
        """
        Parse a (possibly quoted) token such as a tag or directive name.
        """
        buf = []
        self.skip_spaces()
        if not self.has_more_input():
            return ""
        ch = self.peek_char()
        if quoted:
            if ch not in ('"', "'"):
                raise CompileError("error.attr.quoted", mark=self.mark())
            end_quote = ch
            self.next_char()
            ch = self.next_char()
            while ch not in ("", end_quote):
                if ch == "\\":
                    ch = self.next_char()
                buf.append(ch)
                ch = self.next_char()
            if ch == "":
                raise CompileError("error.quotes.unterminated", mark=self.mark())
        else:
            while not self.is_delimiter():
                ch = self.next_char()
                if ch == "\\" and self.peek_char() in ('"', "'", ">", "%"):
                    ch = self.next_char()
                buf.append(ch)
        return "".join(buf)


__all__ = ["SourceReader"]
