"""
Source positions attached to every AST node.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class Mark:
    """
    Immutable (unit, line, column) position in a parse unit.

    Lines and columns start at 1. ``offset`` is the character index in the
    unit text; it is only meaningful to the reader that produced the mark
    and does not take part in equality.
    """
    unit: str
    line: int
    column: int
    offset: int = field(default=0, compare=False, repr=False)

    def __str__(self) -> str:
        return f"{self.unit}({self.line},{self.column})"


__all__ = ["Mark"]
