from .expression import ExpressionError, ExpressionParser, parse_expression
from .nodes import ELNode, ELNodes, ELText, ELVisitor, Function, FunctionCollector, Root, Text
from .parser import ELParser, check_syntax, escape_el_text, escape_literal_expression, root_text, to_text

__all__ = [
    "ELNode", "ELNodes", "ELText", "ELVisitor", "Function", "FunctionCollector",
    "Root", "Text", "ELParser", "check_syntax", "escape_el_text",
    "escape_literal_expression", "to_text", "root_text",
    "ExpressionError", "ExpressionParser", "parse_expression",
]
