"""
AST of the embedded expression sub-language.

An expression string such as ``Hello ${fn:upper(user.name)}!`` parses into
a flat sequence of ``Text`` and ``Root`` nodes; each ``Root`` owns the
tokens of one ``${...}`` or ``#{...}`` occurrence, where function calls are
isolated as ``Function`` nodes so the validator can resolve them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional


class ELNode:
    """Base class for all expression nodes."""

    def accept(self, visitor: "ELVisitor") -> None:
        raise NotImplementedError


@dataclass
class Text(ELNode):
    """Literal text outside any expression."""
    text: str

    def accept(self, visitor: "ELVisitor") -> None:
        visitor.visit_text(self)


@dataclass
class ELText(ELNode):
    """Expression text that is not a function call."""
    text: str

    def accept(self, visitor: "ELVisitor") -> None:
        visitor.visit_el_text(self)


@dataclass
class Function(ELNode):
    """
    Function invocation ``prefix:name(`` inside an expression.

    The resolution fields are filled in by the validator.
    """
    prefix: Optional[str]
    name: str
    original_text: str
    uri: Optional[str] = None
    function_info: Optional[object] = None
    method_name: Optional[str] = None
    parameters: Optional[List[str]] = None

    def accept(self, visitor: "ELVisitor") -> None:
        visitor.visit_function(self)


@dataclass
class Root(ELNode):
    """One ``${...}`` (immediate) or ``#{...}`` (deferred) expression."""
    expression: "ELNodes"
    type: str

    def accept(self, visitor: "ELVisitor") -> None:
        visitor.visit_root(self)


@dataclass
class ELNodes:
    """Ordered sequence of expression nodes."""
    nodes: List[ELNode] = field(default_factory=list)
    # name of the generated function map bound to this expression
    map_name: Optional[str] = None

    def add(self, node: ELNode) -> None:
        self.nodes.append(node)

    def visit(self, visitor: "ELVisitor") -> None:
        for node in self.nodes:
            node.accept(visitor)

    def __iter__(self) -> Iterator[ELNode]:
        return iter(self.nodes)

    def __len__(self) -> int:
        return len(self.nodes)

    def is_empty(self) -> bool:
        return not self.nodes

    def contains_el(self) -> bool:
        return any(isinstance(n, Root) for n in self.nodes)

    def roots(self) -> List[Root]:
        return [n for n in self.nodes if isinstance(n, Root)]


class ELVisitor:
    """Visitor with default traversal into expression roots."""

    def visit_root(self, n: Root) -> None:
        n.expression.visit(self)

    def visit_function(self, n: Function) -> None:
        pass

    def visit_text(self, n: Text) -> None:
        pass

    def visit_el_text(self, n: ELText) -> None:
        pass


class FunctionCollector(ELVisitor):
    """Collects every function node of an expression tree."""

    def __init__(self) -> None:
        self.functions: List[Function] = []

    def visit_function(self, n: Function) -> None:
        self.functions.append(n)


__all__ = [
    "ELNode", "Text", "ELText", "Function", "Root", "ELNodes",
    "ELVisitor", "FunctionCollector",
]
