"""
Evaluation of embedded expressions at run time.

The text is split into literal parts and expression roots with the
compiler's own ``ELParser``; each root is parsed into an ``Expr`` tree
(the same parse the validator uses to reject malformed expressions) and
walked by ``ExpressionEvaluator`` against the page context. Parsed texts
are cached, so a page pays for parsing once per distinct expression.
"""

from __future__ import annotations

import importlib
from functools import lru_cache
from typing import Any, Dict, List, Optional, Tuple, cast

from ..el import ELParser, ExpressionError, Root, Text, parse_expression, root_text
from ..el.model import And, Binary, Call, Choice, Expr, ExprType, FunctionCall, Identifier, Literal, Or, Property, Unary
from .constants import ELException


# --------------------------------------------------------------------------- #
# Coercion
# --------------------------------------------------------------------------- #
def to_string(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def coerce(value: Any, type_name: Optional[str]) -> Any:
    """Convert ``value`` to the named basic type; other types pass through."""
    if type_name == "str":
        return to_string(value)
    if type_name == "bool":
        return to_bool(value)
    if type_name in ("int", "float"):
        if value is None or value == "":
            return 0 if type_name == "int" else 0.0
        if isinstance(value, bool):
            value = int(value)
        try:
            return int(value) if type_name == "int" else float(value)
        except (TypeError, ValueError) as e:
            raise ELException(f"cannot convert {value!r} to {type_name}") from e
    return value


def to_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() == "true"
    return bool(value)


def to_number(value: Any) -> Any:
    """Operand of an arithmetic or relational operator as ``int`` or ``float``."""
    if value is None or value == "":
        return 0
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, (int, float)):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            pass
        try:
            return float(value)
        except ValueError:
            pass
    raise ELException(f"cannot convert {value!r} to a number")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def is_empty(value: Any) -> bool:
    if value is None:
        return True
    try:
        return len(value) == 0
    except TypeError:
        return False


def get_property(obj: Any, name: Any) -> Any:
    """``obj.name`` / ``obj[name]`` with ``None`` for anything missing."""
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    if isinstance(obj, (list, tuple, str)):
        try:
            return obj[int(name)]
        except (IndexError, TypeError, ValueError):
            return None
    return getattr(obj, str(name), None)


# --------------------------------------------------------------------------- #
# Functions
# --------------------------------------------------------------------------- #
def _load_function(function_class: str, method: str):
    module_name, sep, attr = function_class.partition(":")
    try:
        target = importlib.import_module(module_name)
        if sep:
            target = getattr(target, attr)
        return getattr(target, method)
    except (ImportError, AttributeError) as e:
        raise ELException(f"cannot load function {function_class}.{method}: {e}") from e


class FunctionMapper:
    """
    Library functions one expression may call.

    Args:
        mapping: ``"prefix:name"`` to ``(function class, method name)``
    """

    def __init__(self, mapping: Dict[str, Optional[Tuple[str, str]]]):
        self.mapping = dict(mapping)
        self._resolved: Dict[str, Any] = {}

    def resolve_function(self, qname: str):
        fn = self._resolved.get(qname)
        if fn is None:
            target = self.mapping.get(qname)
            if target is None:
                raise ELException(f"function {qname} is not mapped")
            fn = _load_function(*target)
            self._resolved[qname] = fn
        return fn


# --------------------------------------------------------------------------- #
# Evaluation
# --------------------------------------------------------------------------- #
class ExpressionEvaluator:
    """
    Walks an ``Expr`` tree against a page context.

    Names resolve through ``context.find_attribute``; ``pageContext`` is the
    context itself. Missing names and properties evaluate to ``None``.
    """

    def __init__(self, context: Any, fnmap: Optional[FunctionMapper] = None):
        self.context = context
        self.fnmap = fnmap

    def evaluate(self, expr: Expr) -> Any:
        expr_type = expr.get_type()

        if expr_type == ExprType.LITERAL:
            return cast(Literal, expr).value
        elif expr_type == ExprType.IDENTIFIER:
            return self._evaluate_identifier(cast(Identifier, expr))
        elif expr_type == ExprType.PROPERTY:
            prop = cast(Property, expr)
            return get_property(self.evaluate(prop.target), self.evaluate(prop.key))
        elif expr_type == ExprType.CALL:
            return self._evaluate_call(cast(Call, expr))
        elif expr_type == ExprType.FUNCTION:
            return self._evaluate_function(cast(FunctionCall, expr))
        elif expr_type == ExprType.UNARY:
            return self._evaluate_unary(cast(Unary, expr))
        elif expr_type == ExprType.BINARY:
            return self._evaluate_binary(cast(Binary, expr))
        elif expr_type == ExprType.AND:
            node = cast(And, expr)
            return to_bool(self.evaluate(node.left)) and to_bool(self.evaluate(node.right))
        elif expr_type == ExprType.OR:
            node = cast(Or, expr)
            return to_bool(self.evaluate(node.left)) or to_bool(self.evaluate(node.right))
        elif expr_type == ExprType.CHOICE:
            node = cast(Choice, expr)
            branch = node.when_true if to_bool(self.evaluate(node.condition)) else node.when_false
            return self.evaluate(branch)
        else:
            raise ELException(f"unknown expression node: {expr_type}")

    def _evaluate_identifier(self, expr: Identifier) -> Any:
        if expr.name == "pageContext":
            return self.context
        return self.context.find_attribute(expr.name)

    def _evaluate_call(self, expr: Call) -> Any:
        target = self.evaluate(expr.target)
        if not callable(target):
            raise ELException(f"{expr.target} is not callable")
        return target(*(self.evaluate(a) for a in expr.args))

    def _evaluate_function(self, expr: FunctionCall) -> Any:
        if self.fnmap is None:
            raise ELException(f"function {expr.qname} is not mapped")
        fn = self.fnmap.resolve_function(expr.qname)
        return fn(*(self.evaluate(a) for a in expr.args))

    def _evaluate_unary(self, expr: Unary) -> Any:
        value = self.evaluate(expr.operand)
        if expr.operator == "-":
            return -to_number(value)
        if expr.operator == "!":
            return not to_bool(value)
        return is_empty(value)

    def _evaluate_binary(self, expr: Binary) -> Any:
        op = expr.operator
        left = self.evaluate(expr.left)
        right = self.evaluate(expr.right)
        if op in ("==", "!="):
            return _equals(left, right) == (op == "==")
        if op in ("<", ">", "<=", ">="):
            return _compare(op, left, right)
        a, b = to_number(left), to_number(right)
        if op == "+":
            return a + b
        if op == "-":
            return a - b
        if op == "*":
            return a * b
        if op == "/":
            return a / b
        return a % b


def _equals(a: Any, b: Any) -> bool:
    if a is b:
        return True
    if a is None or b is None:
        return False
    if _is_number(a) or _is_number(b):
        return to_number(a) == to_number(b)
    if isinstance(a, bool) or isinstance(b, bool):
        return to_bool(a) == to_bool(b)
    if isinstance(a, str) or isinstance(b, str):
        return to_string(a) == to_string(b)
    return a == b


def _compare(op: str, a: Any, b: Any) -> bool:
    if a is None or b is None:
        return False
    if _is_number(a) or _is_number(b):
        a, b = to_number(a), to_number(b)
    elif isinstance(a, str) or isinstance(b, str):
        a, b = to_string(a), to_string(b)
    try:
        if op == "<":
            return a < b
        if op == ">":
            return a > b
        if op == "<=":
            return a <= b
        return a >= b
    except TypeError as e:
        raise ELException(f"cannot compare {a!r} and {b!r}") from e


@lru_cache(maxsize=1024)
def _parse(expression: str) -> Tuple[Any, ...]:
    """Literal parts as ``str``, expression roots as ``Expr`` trees."""
    parts: List[Any] = []
    for node in ELParser.parse(expression):
        if isinstance(node, Text):
            parts.append(node.text)
        elif isinstance(node, Root):
            text = root_text(node)
            try:
                parts.append(parse_expression(text))
            except ExpressionError as e:
                raise ELException(f"invalid expression {text!r}: {e}") from e
    return tuple(parts)


def _evaluate_root(expr: Expr, context: Any, fnmap: Optional[FunctionMapper]) -> Any:
    try:
        return ExpressionEvaluator(context, fnmap).evaluate(expr)
    except ELException:
        raise
    except Exception as e:
        raise ELException(f"error evaluating {expr}: {e}") from e


def evaluate(expression: str, expected_type: str, context: Any,
             fnmap: Optional[FunctionMapper] = None) -> Any:
    """
    Value of a text holding expressions, converted to ``expected_type``.

    A text that is exactly one expression keeps the expression's value;
    anything else is concatenated as a string.
    """
    parts = _parse(expression)
    if len(parts) == 1 and isinstance(parts[0], Expr):
        return coerce(_evaluate_root(parts[0], context, fnmap), expected_type)
    out = []
    for part in parts:
        if isinstance(part, Expr):
            out.append(to_string(_evaluate_root(part, context, fnmap)))
        else:
            out.append(part)
    return coerce("".join(out), expected_type)


class ValueExpression:
    """A deferred value: evaluated when the handler asks for it."""

    def __init__(self, mark: str, expression: str, expected_type: str,
                 fnmap: Optional[FunctionMapper] = None):
        self.mark = mark
        self.expression = expression
        self.expected_type = expected_type
        self.fnmap = fnmap

    def get_value(self, context: Any) -> Any:
        return evaluate(self.expression, self.expected_type, context, self.fnmap)

    def is_literal_text(self) -> bool:
        return not any(isinstance(p, Expr) for p in _parse(self.expression))

    def __repr__(self) -> str:
        return f"ValueExpression({self.expression!r})"


class MethodExpression:
    """A deferred method reference such as ``#{bean.action}``."""

    def __init__(self, mark: str, expression: str, expected_type: str,
                 param_types: List[str], fnmap: Optional[FunctionMapper] = None):
        self.mark = mark
        self.expression = expression
        self.expected_type = expected_type
        self.param_types = list(param_types)
        self.fnmap = fnmap

    def invoke(self, context: Any, *params: Any) -> Any:
        parts = _parse(self.expression)
        if len(parts) == 1 and isinstance(parts[0], Expr):
            target = _evaluate_root(parts[0], context, self.fnmap)
            if not callable(target):
                raise ELException(f"{self.expression} does not name a method")
            return coerce(target(*params), self.expected_type)
        # a literal method expression evaluates to its text
        return coerce("".join(parts), self.expected_type)

    def __repr__(self) -> str:
        return f"MethodExpression({self.expression!r})"


__all__ = [
    "evaluate", "coerce", "to_string", "to_bool", "to_number", "is_empty", "get_property",
    "ExpressionEvaluator", "FunctionMapper", "ValueExpression", "MethodExpression",
]
