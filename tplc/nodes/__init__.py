"""AST model shared by both front ends, the validator and the generator."""

from .attribute_value import AttributeKind, AttributeValue
from .base import Attribute, Attributes, ChildInfo, Node, Nodes, Visitor, split_qname
from .variants import *  # noqa: F401,F403
from .variants import __all__ as _variants_all

__all__ = [
    "AttributeKind", "AttributeValue", "Attribute", "Attributes", "ChildInfo",
    "Node", "Nodes", "Visitor", "split_qname",
] + list(_variants_all)
