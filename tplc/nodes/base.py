"""
Core of the AST: the ``Node`` base, ordered child sequences, the
attribute bag and the visitor protocol.

Every node is created by a front end with its parent already known and is
appended to the parent's body on construction. After parsing the tree is
only annotated in place by the validator and read by the generator.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Iterator, List, Optional, Tuple

from ..mark import Mark

if TYPE_CHECKING:  # pragma: no cover
    from .variants import NamedAttribute, Root


# ------------------------------------------------------------------ attributes

@dataclass(frozen=True)
class Attribute:
    qname: str
    local_name: str
    uri: str
    value: str


class Attributes:
    """
    Ordered attribute bag, as produced by either front end.

    Lookups are by qualified name; insertion order is preserved because
    attribute order is visible in generated code for uninterpreted markup.
    """

    def __init__(self, items: Optional[List[Attribute]] = None):
        self._items: List[Attribute] = list(items or [])

    def add(self, qname: str, value: str, local_name: Optional[str] = None, uri: str = "") -> None:
        if local_name is None:
            local_name = qname.split(":", 1)[1] if ":" in qname else qname
        self._items.append(Attribute(qname, local_name, uri, value))

    def index_of(self, qname: str) -> int:
        for i, a in enumerate(self._items):
            if a.qname == qname:
                return i
        return -1

    def get_value(self, qname: str) -> Optional[str]:
        i = self.index_of(qname)
        return self._items[i].value if i >= 0 else None

    def remove(self, index: int) -> None:
        del self._items[index]

    def set_value(self, index: int, value: str) -> None:
        self._items[index] = replace(self._items[index], value=value)

    def __getitem__(self, index: int) -> Attribute:
        return self._items[index]

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self) -> Iterator[Attribute]:
        return iter(self._items)

    def qnames(self) -> List[str]:
        return [a.qname for a in self._items]

    def __repr__(self) -> str:
        return "Attributes(" + ", ".join(f"{a.qname}={a.value!r}" for a in self._items) + ")"


# -------------------------------------------------------------------- children

class Nodes:
    """Ordered, mutable sequence of sibling nodes."""

    def __init__(self, root: Optional["Root"] = None):
        self._list: List[Node] = []
        self.root = root
        # set when the sequence was emitted into a side buffer
        self.generated_in_buffer = False
        if root is not None:
            self._list.append(root)

    def add(self, node: "Node") -> None:
        self._list.append(node)
        self.root = None

    def remove(self, node: "Node") -> None:
        self._list.remove(node)

    def visit(self, visitor: "Visitor") -> None:
        # iterate over a snapshot: visitors may prune whitespace-only text
        for node in list(self._list):
            node.accept(visitor)

    def get(self, index: int) -> Optional["Node"]:
        if 0 <= index < len(self._list):
            return self._list[index]
        return None

    def __len__(self) -> int:
        return len(self._list)

    def __iter__(self) -> Iterator["Node"]:
        return iter(self._list)

    def __getitem__(self, index: int) -> "Node":
        return self._list[index]


# ------------------------------------------------------------------ child info

@dataclass
class ChildInfo:
    """Facts about a subtree, gathered before generation."""
    scriptless: bool = False
    has_use_bean: bool = False
    has_include_action: bool = False
    has_param_action: bool = False
    has_set_property: bool = False
    has_scripting_vars: bool = False


# ------------------------------------------------------------------------ node

class Node:
    """
    Base of the closed node family.

    Subclasses set ``kind``, which names the visitor method the node
    dispatches to (``visit_<kind>``), and ``visits_body``, which selects
    whether default traversal descends into the body.
    """

    kind = "node"
    visits_body = True

    def __init__(
        self,
        start: Optional[Mark],
        parent: Optional["Node"],
        qname: Optional[str] = None,
        local_name: Optional[str] = None,
        attrs: Optional[Attributes] = None,
        non_taglib_xmlns_attrs: Optional[Attributes] = None,
        taglib_attrs: Optional[Attributes] = None,
        text: Optional[str] = None,
    ):
        self.qname = qname
        self.local_name = local_name
        self.attrs = attrs
        self.non_taglib_xmlns_attrs = non_taglib_xmlns_attrs
        self.taglib_attrs = taglib_attrs
        self._text = text
        self._start = start
        self.parent: Optional[Node] = None
        self.body: Optional[Nodes] = None
        self.begin_line = 0
        self.end_line = 0
        # dispatcher class name when the body is generated inside it
        self.inner_class_name: Optional[str] = None
        self._named_attribute_nodes: Optional[Nodes] = None
        if parent is not None:
            self.parent = parent
            if parent.body is None:
                parent.body = Nodes()
            parent.body.add(self)

    @property
    def start(self) -> Optional[Mark]:
        return self._start

    @property
    def text(self) -> Optional[str]:
        return self._text

    @text.setter
    def text(self, value: Optional[str]) -> None:
        self._text = value

    def accept(self, visitor: "Visitor") -> None:
        getattr(visitor, "visit_" + self.kind, visitor.visit_node)(self)

    # ---------------------------------------------------------- attributes

    def get_attribute_value(self, name: str) -> Optional[str]:
        return None if self.attrs is None else self.attrs.get_value(name)

    def get_text_attribute(self, name: str) -> Optional[str]:
        """Attribute value given inline or through a named attribute body."""
        value = self.get_attribute_value(name)
        if value is not None:
            return value
        na = self.get_named_attribute_node(name)
        return None if na is None else na.text

    def get_named_attribute_node(self, name: str) -> Optional["NamedAttribute"]:
        """
        Find a ``jsp:attribute`` child by name. A qualified ``name`` matches
        the full attribute name, a plain one matches the local name.
        """
        for na in self.get_named_attribute_nodes():
            if ":" in name:
                found = na.name == name
            else:
                found = na.attr_local_name == name
            if found:
                return na  # type: ignore[return-value]
        return None

    def get_named_attribute_nodes(self) -> Nodes:
        """Leading ``jsp:attribute`` children (comments are skipped)."""
        if self._named_attribute_nodes is not None:
            return self._named_attribute_nodes
        result = Nodes()
        if self.body is not None:
            for n in self.body:
                if n.kind == "named_attribute":
                    result.add(n)
                elif n.kind != "comment":
                    break
        self._named_attribute_nodes = result
        return result

    def get_root(self) -> "Root":
        n: Optional[Node] = self
        while n is not None and n.kind != "root":
            n = n.parent
        assert n is not None, "node is not attached to a root"
        return n  # type: ignore[return-value]

    def ancestors(self) -> Iterator["Node"]:
        p = self.parent
        while p is not None:
            yield p
            p = p.parent

    def __repr__(self) -> str:
        where = f" at {self.start}" if self.start is not None else ""
        name = self.qname or self.kind
        return f"<{type(self).__name__} {name}{where}>"


# --------------------------------------------------------------------- visitor

class Visitor:
    """
    Default traversal: ``do_visit`` on every node, then the body for the
    variants that have one. Override ``visit_<kind>`` per variant.
    """

    def do_visit(self, n: Node) -> None:
        pass

    def visit_body(self, n: Node) -> None:
        if n.body is not None:
            n.body.visit(self)

    def visit_node(self, n: Node) -> None:
        self.do_visit(n)
        if n.visits_body:
            self.visit_body(n)


def split_qname(qname: str) -> Tuple[str, str]:
    """``'c:out'`` -> ``('c', 'out')``; no prefix gives ``('', qname)``."""
    if ":" in qname:
        prefix, local = qname.split(":", 1)
        return prefix, local
    return "", qname


__all__ = ["Attribute", "Attributes", "Nodes", "ChildInfo", "Node", "Visitor", "split_qname"]
