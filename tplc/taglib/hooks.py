"""
Extension points a tag library can plug into the compiler.

Descriptors name these by ``"package.module:Attr"``; the compiler imports
and instantiates them while validating a page.
"""

from __future__ import annotations

import importlib
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from ..errors import ConfigError


class _RequestTime:
    def __repr__(self) -> str:
        return "REQUEST_TIME_VALUE"


# Marker for attribute values known only when the page runs.
REQUEST_TIME_VALUE: Any = _RequestTime()


class TagData:
    """Attribute values of one tag invocation as seen at compile time."""

    def __init__(self, attributes: Optional[Dict[str, Any]] = None):
        self._attributes: Dict[str, Any] = dict(attributes or {})

    def get_attribute(self, name: str) -> Any:
        return self._attributes.get(name)

    def get_attribute_string(self, name: str) -> Optional[str]:
        value = self._attributes.get(name)
        if value is None or value is REQUEST_TIME_VALUE:
            return None
        return str(value)

    def set_attribute(self, name: str, value: Any) -> None:
        self._attributes[name] = value

    def get_id(self) -> Optional[str]:
        return self.get_attribute_string("id")

    def names(self) -> List[str]:
        return list(self._attributes)

    def __eq__(self, other: object) -> bool:
        return isinstance(other, TagData) and other._attributes == self._attributes

    def __repr__(self) -> str:
        return f"TagData({self._attributes!r})"


@dataclass(frozen=True)
class VariableInfo:
    """A scripting variable a tag exposes to the page."""
    var_name: str
    class_name: str = "str"
    declare: bool = True
    scope: str = "NESTED"


@dataclass(frozen=True)
class ValidationMessage:
    id: Optional[str]
    message: str


class TagExtraInfo:
    """
    Per-tag compile-time hook.

    Subclasses override ``get_variable_info`` to expose variables and
    ``validate`` (or the simpler ``is_valid``) to reject attribute
    combinations.
    """

    tag_info: Any = None

    def get_variable_info(self, data: TagData) -> List[VariableInfo]:
        return []

    def is_valid(self, data: TagData) -> bool:
        return True

    def validate(self, data: TagData) -> List[ValidationMessage]:
        if self.is_valid(data):
            return []
        return [ValidationMessage(data.get_id(), "TagExtraInfo.is_valid() returned false")]


@dataclass
class PageData:
    """XML view of a page handed to library validators."""
    text: str
    encoding: str = "UTF-8"


class TagLibraryValidator:
    """Document-level hook of a tag library."""

    def __init__(self) -> None:
        self.init_parameters: Dict[str, Any] = {}

    def set_init_parameters(self, params: Dict[str, Any]) -> None:
        self.init_parameters = dict(params)

    def validate(self, prefix: str, uri: str, page: PageData) -> Iterable[ValidationMessage]:
        return []

    def release(self) -> None:
        pass


def load_object(ref: str) -> Any:
    """
    Import ``"pkg.module:Name"`` (or ``"pkg.module.Name"``).

    Raises:
        ConfigError: The module or attribute does not exist
    """
    module_name, sep, attr = ref.partition(":")
    if not sep:
        module_name, _, attr = ref.rpartition(".")
    if not module_name or not attr:
        raise ConfigError(f"invalid object reference: {ref!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(f"cannot import {module_name!r} for {ref!r}: {e}") from e
    try:
        return getattr(module, attr)
    except AttributeError as e:
        raise ConfigError(f"{module_name!r} has no attribute {attr!r}") from e


__all__ = [
    "REQUEST_TIME_VALUE", "TagData", "VariableInfo", "ValidationMessage",
    "TagExtraInfo", "PageData", "TagLibraryValidator", "load_object",
]
