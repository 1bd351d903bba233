"""
Pre-generation passes over a validated page.

- ``collect``: fills the ``ChildInfo`` of every custom tag, ``jsp:body``
  and ``jsp:attribute`` and decides whether the page is scriptless.
- ``concatenate_text``: merges runs of template text and drops
  whitespace-only text when trimming is on.
- ``map_el_functions``: binds each expression that calls library
  functions to a module-level function map, sharing maps between
  expressions that call the same functions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Dict, List, Optional

from ..el import ELNodes, ELVisitor, Function
from ..nodes import ChildInfo, CustomTag, Node, Nodes, Visitor
from .naming import quote

if TYPE_CHECKING:  # pragma: no cover
    from ..validator.page_info import PageInfo

logger = logging.getLogger(__name__)


# --------------------------------------------------------------------------- #
# Child info
# --------------------------------------------------------------------------- #
def _is_expression(value) -> bool:
    return value is not None and value.is_expression


class _CollectVisitor(Visitor):

    def __init__(self) -> None:
        self.scripting_element_seen = False
        self.use_bean_seen = False
        self.include_action_seen = False
        self.param_action_seen = False
        self.set_property_seen = False
        self.has_scripting_vars = False

    def visit_param_action(self, n: Node) -> None:
        if _is_expression(n.value):
            self.scripting_element_seen = True
        self.param_action_seen = True

    def visit_include_action(self, n: Node) -> None:
        if _is_expression(n.page):
            self.scripting_element_seen = True
        self.include_action_seen = True
        self.visit_body(n)

    def visit_forward_action(self, n: Node) -> None:
        if _is_expression(n.page):
            self.scripting_element_seen = True
        self.visit_body(n)

    def visit_set_property(self, n: Node) -> None:
        if _is_expression(n.value):
            self.scripting_element_seen = True
        self.set_property_seen = True

    def visit_use_bean(self, n: Node) -> None:
        if _is_expression(n.bean_name):
            self.scripting_element_seen = True
        self.use_bean_seen = True
        self.visit_body(n)

    def visit_plugin(self, n: Node) -> None:
        if _is_expression(n.height) or _is_expression(n.width):
            self.scripting_element_seen = True
        self.visit_body(n)

    def visit_jsp_element(self, n: Node) -> None:
        if _is_expression(n.name_attr) or any(_is_expression(a) for a in n.jsp_attrs):
            self.scripting_element_seen = True
        self.visit_body(n)

    def visit_custom_tag(self, n: CustomTag) -> None:
        self._check_seen(n.child_info, n)

    def visit_jsp_body(self, n: Node) -> None:
        self._check_seen(n.child_info, n)

    def visit_named_attribute(self, n: Node) -> None:
        self._check_seen(n.child_info, n)

    def _scripting(self, n: Node) -> None:
        self.scripting_element_seen = True

    visit_declaration = _scripting
    visit_expression = _scripting
    visit_scriptlet = _scripting

    def _check_seen(self, ci: ChildInfo, n: Node) -> None:
        """Gather the facts of ``n``'s subtree into ``ci`` and propagate them up."""
        saved = (
            self.scripting_element_seen, self.use_bean_seen, self.include_action_seen,
            self.param_action_seen, self.set_property_seen, self.has_scripting_vars,
        )
        self.scripting_element_seen = False
        self.use_bean_seen = False
        self.include_action_seen = False
        self.param_action_seen = False
        self.set_property_seen = False
        self.has_scripting_vars = False

        if n.kind == "custom_tag":
            if any(a.is_expression for a in n.jsp_attrs):
                self.scripting_element_seen = True

        self.visit_body(n)

        if n.kind == "custom_tag" and not self.has_scripting_vars:
            self.has_scripting_vars = bool(n.variable_infos) or bool(n.tag_info.variables)

        ci.scriptless = not self.scripting_element_seen
        ci.has_use_bean = self.use_bean_seen
        ci.has_include_action = self.include_action_seen
        ci.has_param_action = self.param_action_seen
        ci.has_set_property = self.set_property_seen
        ci.has_scripting_vars = self.has_scripting_vars

        self.scripting_element_seen |= saved[0]
        self.use_bean_seen |= saved[1]
        self.include_action_seen |= saved[2]
        self.param_action_seen |= saved[3]
        self.set_property_seen |= saved[4]
        self.has_scripting_vars |= saved[5]


def collect(page: Nodes, page_info: PageInfo) -> None:
    visitor = _CollectVisitor()
    page.visit(visitor)
    page_info.scriptless = not visitor.scripting_element_seen


# --------------------------------------------------------------------------- #
# Template text
# --------------------------------------------------------------------------- #
class _TextCatVisitor(Visitor):

    def __init__(self, trim: bool):
        self.trim = trim
        self.count = 0
        self.first: Optional[Node] = None
        self.parts: List[str] = []

    # directives produce no output and do not interrupt a run of text
    def _skip(self, n: Node) -> None:
        pass

    visit_page_directive = _skip
    visit_tag_directive = _skip
    visit_taglib_directive = _skip
    visit_attribute_directive = _skip
    visit_variable_directive = _skip

    def do_visit(self, n: Node) -> None:
        self._collect_text()

    def visit_body(self, n: Node) -> None:
        super().visit_body(n)
        self._collect_text()

    def visit_template_text(self, n: Node) -> None:
        if self.trim and n.is_all_space():
            n.text = ""
            return
        if self.count == 0:
            self.first = n
            self.parts = [n.text or ""]
        else:
            self.parts.append(n.text or "")
            n.text = ""
        self.count += 1

    def _collect_text(self) -> None:
        if self.count > 1 and self.first is not None:
            self.first.text = "".join(self.parts)
        self.count = 0


def concatenate_text(page: Nodes, page_info: PageInfo, trim_spaces: bool) -> None:
    """
    Merge adjacent template text into its first node.

    Emptied nodes stay in the tree with empty text; the generator skips
    them.
    """
    visitor = _TextCatVisitor(trim_spaces or page_info.trim_directive_whitespaces)
    page.visit(visitor)
    visitor._collect_text()


# --------------------------------------------------------------------------- #
# Function maps
# --------------------------------------------------------------------------- #
class _UniqueFunctions(ELVisitor):

    def __init__(self) -> None:
        self.functions: List[Function] = []
        self._keys = set()

    def visit_function(self, n: Function) -> None:
        key = f"{n.prefix}:{n.name}"
        if key not in self._keys:
            self._keys.add(key)
            self.functions.append(n)


class _ELFunctionVisitor(Visitor):

    def __init__(self, page_info: PageInfo):
        self.page_info = page_info
        # "prefix:name:uri" -> map name
        self.global_map: Dict[str, str] = {}

    def _map_attr(self, attr) -> None:
        if attr is not None:
            self._map(attr.el)

    def visit_param_action(self, n: Node) -> None:
        self._map_attr(n.value)
        self.visit_body(n)

    def visit_include_action(self, n: Node) -> None:
        self._map_attr(n.page)
        self.visit_body(n)

    visit_forward_action = visit_include_action

    def visit_set_property(self, n: Node) -> None:
        self._map_attr(n.value)
        self.visit_body(n)

    def visit_use_bean(self, n: Node) -> None:
        self._map_attr(n.bean_name)
        self.visit_body(n)

    def visit_plugin(self, n: Node) -> None:
        self._map_attr(n.height)
        self._map_attr(n.width)
        self.visit_body(n)

    def visit_jsp_element(self, n: Node) -> None:
        for a in n.jsp_attrs:
            self._map_attr(a)
        self._map_attr(n.name_attr)
        self.visit_body(n)

    def visit_uninterpreted_tag(self, n: Node) -> None:
        for a in n.jsp_attrs:
            self._map_attr(a)
        self.visit_body(n)

    visit_custom_tag = visit_uninterpreted_tag

    def visit_el_expression(self, n: Node) -> None:
        self._map(n.el)

    def _map(self, el: Optional[ELNodes]) -> None:
        if el is None:
            return
        finder = _UniqueFunctions()
        el.visit(finder)
        functions = finder.functions
        if not functions:
            return

        name = self._match_map(functions)
        if name is not None:
            el.map_name = name
            return

        name = f"_tplc_fnmap_{len(self.page_info.function_maps)}"
        entries = []
        for f in functions:
            qname = f"{f.prefix}:{f.name}"
            if f.function_info is None:
                # resolved at run time (imported or lambda)
                entries.append(f"{quote(qname)}: None")
            else:
                entries.append(f"{quote(qname)}: ({quote(f.function_info.function_class)}, "
                               f"{quote(f.method_name)})")
            self.global_map[f"{qname}:{f.uri}"] = name
        self.page_info.function_maps[name] = "{" + ", ".join(entries) + "}"
        el.map_name = name

    def _match_map(self, functions: List[Function]) -> Optional[str]:
        """An existing map that covers all of ``functions``, if any."""
        found: Optional[str] = None
        for f in functions:
            name = self.global_map.get(f"{f.prefix}:{f.name}:{f.uri}")
            if name is None:
                return None
            if found is None:
                found = name
            elif name != found:
                return None
        return found


def map_el_functions(page: Nodes, page_info: PageInfo) -> None:
    page.visit(_ELFunctionVisitor(page_info))
    if page_info.function_maps:
        logger.debug("%d function maps for %s", len(page_info.function_maps), page_info.unit)


__all__ = ["collect", "concatenate_text", "map_el_functions"]
