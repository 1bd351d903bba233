"""
Expression trees of the embedded expression language.

``ELParser`` only isolates the ``${...}`` roots of a text; the body of each
root is parsed by ``ExpressionParser`` into the nodes below, which both the
validator (syntax check) and the runtime evaluator work on.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple


class ExprType(Enum):
    LITERAL = "literal"
    IDENTIFIER = "identifier"
    PROPERTY = "property"
    CALL = "call"
    FUNCTION = "function"
    UNARY = "unary"
    BINARY = "binary"
    AND = "and"
    OR = "or"
    CHOICE = "choice"


@dataclass(frozen=True)
class Expr(ABC):
    """Base class of all expression nodes."""

    @abstractmethod
    def get_type(self) -> ExprType:
        pass

    def __str__(self) -> str:
        return self._to_string()

    @abstractmethod
    def _to_string(self) -> str:
        pass


@dataclass(frozen=True)
class Literal(Expr):
    """``'text'``, ``12``, ``1.5``, ``true``, ``false`` or ``null``."""
    value: Any

    def get_type(self) -> ExprType:
        return ExprType.LITERAL

    def _to_string(self) -> str:
        if self.value is None:
            return "null"
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        return repr(self.value)


@dataclass(frozen=True)
class Identifier(Expr):
    """A name looked up in the scopes of the page context."""
    name: str

    def get_type(self) -> ExprType:
        return ExprType.IDENTIFIER

    def _to_string(self) -> str:
        return self.name


@dataclass(frozen=True)
class Property(Expr):
    """``target.name`` or ``target[key]``."""
    target: Expr
    key: Expr

    def get_type(self) -> ExprType:
        return ExprType.PROPERTY

    def _to_string(self) -> str:
        return f"{self.target}[{self.key}]"


@dataclass(frozen=True)
class Call(Expr):
    """Invocation of a callable value, ``bean.method(args)``."""
    target: Expr
    args: Tuple[Expr, ...]

    def get_type(self) -> ExprType:
        return ExprType.CALL

    def _to_string(self) -> str:
        return f"{self.target}({', '.join(map(str, self.args))})"


@dataclass(frozen=True)
class FunctionCall(Expr):
    """A library function, ``prefix:name(args)``."""
    prefix: Optional[str]
    name: str
    args: Tuple[Expr, ...]

    @property
    def qname(self) -> str:
        return f"{self.prefix}:{self.name}" if self.prefix else self.name

    def get_type(self) -> ExprType:
        return ExprType.FUNCTION

    def _to_string(self) -> str:
        return f"{self.qname}({', '.join(map(str, self.args))})"


@dataclass(frozen=True)
class Unary(Expr):
    """``-x``, ``not x`` (also ``!x``) or ``empty x``."""
    operator: str
    operand: Expr

    def get_type(self) -> ExprType:
        return ExprType.UNARY

    def _to_string(self) -> str:
        return f"({self.operator} {self.operand})"


@dataclass(frozen=True)
class Binary(Expr):
    """Arithmetic, equality and relational operators in canonical spelling."""
    operator: str
    left: Expr
    right: Expr

    def get_type(self) -> ExprType:
        return ExprType.BINARY

    def _to_string(self) -> str:
        return f"({self.left} {self.operator} {self.right})"


@dataclass(frozen=True)
class And(Expr):
    left: Expr
    right: Expr

    def get_type(self) -> ExprType:
        return ExprType.AND

    def _to_string(self) -> str:
        return f"({self.left} and {self.right})"


@dataclass(frozen=True)
class Or(Expr):
    left: Expr
    right: Expr

    def get_type(self) -> ExprType:
        return ExprType.OR

    def _to_string(self) -> str:
        return f"({self.left} or {self.right})"


@dataclass(frozen=True)
class Choice(Expr):
    """``condition ? when_true : when_false``."""
    condition: Expr
    when_true: Expr
    when_false: Expr

    def get_type(self) -> ExprType:
        return ExprType.CHOICE

    def _to_string(self) -> str:
        return f"({self.condition} ? {self.when_true} : {self.when_false})"


__all__ = [
    "ExprType", "Expr", "Literal", "Identifier", "Property", "Call", "FunctionCall",
    "Unary", "Binary", "And", "Or", "Choice",
]
