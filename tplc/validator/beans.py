"""Registry of beans introduced by ``jsp:useBean`` in one translation unit."""

from __future__ import annotations

from typing import Dict, Optional

from ..errors import CompileError
from ..nodes import Node

SCOPES = ("page", "request", "session", "application")


class BeanRepository:
    """Flat name -> declared type registry of page-scoped bindings."""

    def __init__(self) -> None:
        self._beans: Dict[str, str] = {}
        self._scopes: Dict[str, str] = {}
        self._nodes: Dict[str, Node] = {}

    def add_bean(self, n: Node, name: str, type_name: str, scope: Optional[str]) -> None:
        if scope is not None and scope not in SCOPES:
            raise CompileError("error.usebean.scope.bad", scope, mark=n.start)
        self._beans[name] = type_name
        self._scopes[name] = scope or "page"
        self._nodes[name] = n

    def check_variable(self, name: str) -> bool:
        """True when ``name`` is already bound."""
        return name in self._beans

    def get_bean_type(self, name: str) -> str:
        try:
            return self._beans[name]
        except KeyError:
            raise CompileError("error.bean.unknown", name) from None

    def declared_by(self, name: str) -> Optional[Node]:
        """Node that introduced ``name``."""
        return self._nodes.get(name)

    def get_scope(self, name: str) -> Optional[str]:
        return self._scopes.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._beans

    def __len__(self) -> int:
        return len(self._beans)


__all__ = ["BeanRepository", "SCOPES"]
