"""
Fragments and the context a tag file runs in.

Every generated module has at most one ``Helper`` class derived from
``FragmentHelper``; the discriminator passed at construction selects
which generated body ``invoke`` runs.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from .constants import APPLICATION_SCOPE, PAGE_SCOPE, REQUEST_SCOPE, SESSION_SCOPE


class FragmentHelper:
    """
    Args:
        discriminator: Number of the generated body to run
        page: Page or tag instance that declared the fragment
        jsp_context: Context the body runs in
        parent: Handler enclosing the fragment
        push_body_count: Shared counter of buffered bodies, or None
    """

    def __init__(self, discriminator: int, page: Any, jsp_context: Any, parent: Any,
                 push_body_count: Optional[List[int]] = None):
        self.discriminator = discriminator
        self.page = page
        self.jsp_context = jsp_context
        self.parent = parent
        self.push_body_count = push_body_count

    def get_jsp_context(self) -> Any:
        return self.jsp_context

    def invoke(self, writer: Any) -> None:  # pragma: no cover
        raise NotImplementedError


class JspContextWrapper:
    """
    Page scope of one tag file invocation.

    The tag file gets its own page scope; every other scope and the
    writer belong to the invoking page. Exposed variables are copied back
    to the invoking page scope at the points their scope prescribes,
    renamed through ``alias_map``.
    """

    def __init__(self, tag: Any, invoking: Any, nested: Optional[List[str]],
                 at_begin: Optional[List[str]], at_end: Optional[List[str]],
                 alias_map: Optional[Dict[str, str]] = None):
        self.tag = tag
        self.invoking = invoking
        self.nested = nested or []
        self.at_begin = at_begin or []
        self.at_end = at_end or []
        self.alias_map = alias_map or {}
        self._attributes: Dict[str, Any] = {}
        self._original_nested: Dict[str, Any] = {}
        for name in self.nested:
            target = self._target(name)
            self._original_nested[target] = invoking.get_attribute(target)
        self.sync_begin_tag_file()

    # -------------------------------------------------------- delegation

    def __getattr__(self, name: str) -> Any:
        return getattr(self.invoking, name)

    def get_out(self) -> Any:
        return self.invoking.get_out()

    def push_body(self, writer: Optional[Any] = None) -> Any:
        return self.invoking.push_body(writer)

    def pop_body(self) -> Any:
        return self.invoking.pop_body()

    # ------------------------------------------------------------ scopes

    def get_attribute(self, name: str, scope: int = PAGE_SCOPE) -> Any:
        if scope == PAGE_SCOPE:
            return self._attributes.get(name)
        return self.invoking.get_attribute(name, scope)

    def set_attribute(self, name: str, value: Any, scope: int = PAGE_SCOPE) -> None:
        if scope != PAGE_SCOPE:
            self.invoking.set_attribute(name, value, scope)
        elif value is None:
            self._attributes.pop(name, None)
        else:
            self._attributes[name] = value

    def remove_attribute(self, name: str, scope: Optional[int] = None) -> None:
        if scope is None or scope == PAGE_SCOPE:
            self._attributes.pop(name, None)
        if scope != PAGE_SCOPE:
            self.invoking.remove_attribute(name, scope)

    def find_attribute(self, name: str) -> Any:
        value = self._attributes.get(name)
        if value is not None:
            return value
        for scope in (REQUEST_SCOPE, SESSION_SCOPE, APPLICATION_SCOPE):
            try:
                value = self.invoking.get_attribute(name, scope)
            except RuntimeError:
                continue
            if value is not None:
                return value
        return None

    # ------------------------------------------------------------- syncs

    def _target(self, name: str) -> str:
        return self.alias_map.get(name, name)

    def _copy_to_invoking(self, names: List[str]) -> None:
        for name in names:
            value = self._attributes.get(name)
            target = self._target(name)
            if value is None:
                self.invoking.remove_attribute(target, PAGE_SCOPE)
            else:
                self.invoking.set_attribute(target, value, PAGE_SCOPE)

    def sync_begin_tag_file(self) -> None:
        self._copy_to_invoking(self.at_begin)

    def sync_before_invoke(self) -> None:
        self._copy_to_invoking(self.nested)
        self._copy_to_invoking(self.at_begin)

    def sync_end_tag_file(self) -> None:
        self._copy_to_invoking(self.at_begin)
        self._copy_to_invoking(self.at_end)
        for target, value in self._original_nested.items():
            self.invoking.set_attribute(target, value, PAGE_SCOPE)


__all__ = ["FragmentHelper", "JspContextWrapper"]
