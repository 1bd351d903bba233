"""
Line-counting writer for generated Python source.

Python blocks are delimited by indentation only, so the writer keeps the
indentation level itself and remembers, per open block, whether a
statement was written into it: closing an empty block emits ``pass``.
The current output line is always known, which is what the line map is
built from.
"""

from __future__ import annotations

from typing import List

INDENT = "    "


class CodeWriter:
    """
    Args:
        indent: Initial indentation level
    """

    def __init__(self, indent: int = 0):
        self._parts: List[str] = []
        self._level = indent
        # one flag per open block: has a statement been written into it
        self._filled: List[bool] = []
        # number of the line the next write starts on (1-based)
        self.line = 1

    # ------------------------------------------------------------ indentation

    @property
    def level(self) -> int:
        return self._level

    def push_indent(self) -> None:
        self._level += 1
        self._filled.append(False)

    def pop_indent(self) -> None:
        """Close the innermost block, filling it with ``pass`` if it is empty."""
        if self._filled and not self._filled[-1]:
            self.printil("pass")
        if self._filled:
            self._filled.pop()
        self._level -= 1

    def _mark_filled(self) -> None:
        if self._filled:
            self._filled[-1] = True

    # ----------------------------------------------------------------- output

    def printil(self, line: str, statement: bool = True) -> None:
        """
        One line at the current indentation. Only its first line is
        indented; embedded line breaks must sit inside brackets.

        Args:
            statement: False for lines that do not count as a statement
                of the block (user comments)
        """
        self._parts.append(INDENT * self._level + line + "\n")
        self.line += 1 + line.count("\n")
        if statement:
            self._mark_filled()

    def blank(self) -> None:
        self._parts.append("\n")
        self.line += 1

    def comment(self, text: str) -> None:
        """A comment line; it does not count as a statement of the block."""
        self._parts.append(INDENT * self._level + "# " + text.replace("\n", " ") + "\n")
        self.line += 1

    def print_multi_ln(self, text: str) -> None:
        """
        Append already formatted text verbatim, counting its lines.

        Used to splice side buffers; the text must end with a newline.
        """
        if not text:
            return
        self._parts.append(text)
        self.line += text.count("\n")
        self._mark_filled()

    def print_block(self, lines: List[str]) -> None:
        """Lines of user code, each re-indented to the current level."""
        for line in lines:
            if line.strip():
                self.printil(line)
            else:
                self.blank()

    def get_text(self) -> str:
        return "".join(self._parts)

    def __str__(self) -> str:
        return self.get_text()


__all__ = ["CodeWriter", "INDENT"]
