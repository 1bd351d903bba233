"""
Base classes for tag handlers and the helpers generated code calls
around them.
"""

from __future__ import annotations

import importlib
import io
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote_plus

from .constants import (
    EVAL_BODY_BUFFERED, EVAL_PAGE, InstantiationError, PropertyError, SKIP_BODY,
)
from .el import coerce, evaluate

logger = logging.getLogger(__name__)

StringWriter = io.StringIO


def StringReader(text: str) -> io.StringIO:
    return io.StringIO(text)


# --------------------------------------------------------------------------- #
# Classic handlers
# --------------------------------------------------------------------------- #
class TagSupport:
    """Classic handler: start and end callbacks, optional repetition."""

    def __init__(self) -> None:
        self.page_context: Any = None
        self.parent: Any = None
        self.id: Optional[str] = None
        self._values: Dict[str, Any] = {}

    def set_page_context(self, page_context: Any) -> None:
        self.page_context = page_context

    def set_parent(self, parent: Any) -> None:
        self.parent = parent

    def get_parent(self) -> Any:
        return self.parent

    def do_start_tag(self) -> int:
        return SKIP_BODY

    def do_after_body(self) -> int:
        return SKIP_BODY

    def do_end_tag(self) -> int:
        return EVAL_PAGE

    def set_value(self, key: str, value: Any) -> None:
        self._values[key] = value

    def get_value(self, key: str) -> Any:
        return self._values.get(key)

    def release(self) -> None:
        self.page_context = None
        self.parent = None
        self.id = None
        self._values = {}

    @staticmethod
    def find_ancestor_with_class(start: Any, klass: type) -> Any:
        tag = start.get_parent() if start is not None else None
        while tag is not None:
            candidate = tag.get_adaptee() if isinstance(tag, TagAdapter) else tag
            if isinstance(candidate, klass):
                return candidate
            tag = tag.get_parent()
        return None


class BodyTagSupport(TagSupport):
    """Classic handler whose body is buffered by default."""

    def __init__(self) -> None:
        super().__init__()
        self.body_content: Any = None

    def do_start_tag(self) -> int:
        return EVAL_BODY_BUFFERED

    def set_body_content(self, body_content: Any) -> None:
        self.body_content = body_content

    def do_init_body(self) -> None:
        pass

    def get_previous_out(self) -> Any:
        return self.body_content.get_enclosing_writer()

    def release(self) -> None:
        super().release()
        self.body_content = None


# --------------------------------------------------------------------------- #
# Simple handlers
# --------------------------------------------------------------------------- #
class SimpleTagSupport:
    """Single-invocation handler; its body arrives as a fragment."""

    def __init__(self) -> None:
        self._jsp_context: Any = None
        self._parent: Any = None
        self._jsp_body: Any = None

    def set_jsp_context(self, jsp_context: Any) -> None:
        self._jsp_context = jsp_context

    def get_jsp_context(self) -> Any:
        return self._jsp_context

    def set_parent(self, parent: Any) -> None:
        self._parent = parent

    def get_parent(self) -> Any:
        return self._parent

    def set_jsp_body(self, body: Any) -> None:
        self._jsp_body = body

    def get_jsp_body(self) -> Any:
        return self._jsp_body

    def do_tag(self) -> None:
        pass


class TagAdapter:
    """Presents a simple handler as the parent of a classic one."""

    def __init__(self, adaptee: Any):
        self.adaptee = adaptee

    def get_adaptee(self) -> Any:
        return self.adaptee

    def get_parent(self) -> Any:
        parent = self.adaptee.get_parent()
        if parent is not None and not isinstance(parent, (TagSupport, TagAdapter)):
            return TagAdapter(parent)
        return parent

    def set_parent(self, parent: Any) -> None:
        raise TypeError("the parent of an adapted handler cannot be changed")

    def set_page_context(self, page_context: Any) -> None:
        raise TypeError("an adapted handler has no page context")

    def do_start_tag(self) -> int:
        raise TypeError("an adapted handler cannot be started")

    def do_end_tag(self) -> int:
        raise TypeError("an adapted handler cannot be ended")

    def release(self) -> None:
        raise TypeError("an adapted handler cannot be released")


# --------------------------------------------------------------------------- #
# Helpers called by generated code
# --------------------------------------------------------------------------- #
def start_buffered_body(page_context: Any, handler: Any) -> Any:
    """Push a body buffer for ``handler`` and hand it over; returns the new writer."""
    out = page_context.push_body()
    handler.set_body_content(out)
    handler.do_init_body()
    return out


def release_tag(handler: Any, reused: bool) -> None:
    """Release a handler that was not returned to its pool."""
    if not reused:
        try:
            handler.release()
        except Exception:
            logger.warning("error releasing %s", type(handler).__name__, exc_info=True)


def url_encode(value: Any, encoding: Optional[str] = None) -> str:
    return quote_plus("" if value is None else str(value), encoding=encoding or "utf-8")


def load_class(ref: str) -> Any:
    """``"pkg.module:Cls"`` or ``"pkg.module.Cls"``."""
    module_name, sep, name = ref.partition(":")
    if not sep:
        module_name, _, name = ref.rpartition(".")
    try:
        return getattr(importlib.import_module(module_name), name)
    except (ImportError, AttributeError, ValueError) as e:
        raise InstantiationError(f"cannot load {ref}: {e}") from e


def instantiate_bean(ref: str) -> Any:
    return load_class(ref)()


# --------------------------------------------------------------------------- #
# Bean properties
# --------------------------------------------------------------------------- #
def handle_get_property(bean: Any, prop: str) -> Any:
    if bean is None:
        raise PropertyError(f"no bean to read {prop!r} from")
    if isinstance(bean, dict):
        return bean.get(prop)
    if not hasattr(bean, prop):
        raise PropertyError(f"{type(bean).__name__} has no property {prop!r}")
    return getattr(bean, prop)


def _converted(bean: Any, prop: str, value: Any) -> Any:
    """``value`` converted to the type of the current property value."""
    current = getattr(bean, prop, None)
    if isinstance(value, str) and isinstance(current, (bool, int, float)):
        return coerce(value, type(current).__name__)
    return value


def handle_set_property(bean: Any, prop: str, value: Any) -> None:
    if bean is None:
        raise PropertyError(f"no bean to set {prop!r} on")
    if isinstance(bean, dict):
        bean[prop] = value
        return
    if not hasattr(bean, prop):
        raise PropertyError(f"{type(bean).__name__} has no property {prop!r}")
    setattr(bean, prop, _converted(bean, prop, value))


def handle_set_property_expression(bean: Any, prop: str, expression: str,
                                   page_context: Any, fnmap: Any = None) -> None:
    handle_set_property(bean, prop, evaluate(expression, "object", page_context, fnmap))


def introspect_helper(bean: Any, prop: str, value: Any, request: Any,
                      param: Optional[str], ignore_missing: bool) -> None:
    """
    Set one property from a string value or request parameter.

    A missing value leaves the property untouched; with ``request`` given,
    repeated parameters set a list property.
    """
    if value is None:
        return
    if request is not None and param is not None:
        values: Optional[List[str]] = request.get_parameter_values(param)
        if values and isinstance(getattr(bean, prop, None), list):
            value = list(values)
    if not isinstance(bean, dict) and not hasattr(bean, prop):
        if ignore_missing:
            return
        raise PropertyError(f"{type(bean).__name__} has no property {prop!r}")
    handle_set_property(bean, prop, value)


def introspect(bean: Any, request: Any) -> None:
    """Set every property of ``bean`` that has a request parameter of the same name."""
    for name in request.get_parameter_names():
        introspect_helper(bean, name, request.get_parameter(name), request, name, True)


__all__ = [
    "TagSupport", "BodyTagSupport", "SimpleTagSupport", "TagAdapter",
    "StringWriter", "StringReader", "start_buffered_body", "release_tag", "url_encode",
    "load_class", "instantiate_bean", "handle_get_property", "handle_set_property",
    "handle_set_property_expression", "introspect_helper", "introspect",
]
