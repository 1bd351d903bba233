"""
Page-wide settings accumulated over one translation unit (the page plus
every unit it includes statically).
"""

from __future__ import annotations

from typing import Dict, List, Optional, Set

from ..errors import CompileError
from ..mark import Mark
from ..taglib.library import TagLibraryInfo
from .beans import BeanRepository

DEFAULT_LANGUAGE = "python"
DEFAULT_EXTENDS = "PageBase"
DEFAULT_BUFFER = 8 * 1024

# Imports every generated page gets.
STANDARD_IMPORTS = ["from tplc import runtime as _tplc_rt"]


def _bool(value: Optional[str], key: str, n) -> bool:
    if value is not None:
        low = value.lower()
        if low == "true":
            return True
        if low == "false":
            return False
    raise CompileError(key, value, mark=getattr(n, "start", None))


class PageInfo:
    """
    Args:
        beans: Bean registry shared by the unit
        unit: Unit path of the page being compiled
        is_tag_file: Whether the unit is a tag file
    """

    def __init__(self, beans: BeanRepository, unit: str, is_tag_file: bool):
        self.is_tag_file = is_tag_file
        self.unit = unit
        self.bean_repository = beans
        self.imports: List[str] = []
        self.dependants: Dict[str, int] = {}
        self.var_info_names: Set[str] = set()
        self.taglibs: Dict[str, TagLibraryInfo] = {}
        self._prefix_map: Dict[str, str] = {}
        self._xml_prefix_stack: Dict[str, List[str]] = {}
        self.non_custom_tag_prefixes: Dict[str, Mark] = {}
        self.prefixes: Set[str] = set()

        self.language: Optional[str] = None
        self.extends: Optional[str] = None
        self.content_type: Optional[str] = None
        self.session: Optional[str] = None
        self.is_session = True
        self.buffer_value: Optional[str] = None
        self.buffer = DEFAULT_BUFFER
        self.auto_flush: Optional[str] = None
        self.is_auto_flush = True
        self.is_thread_safe_value: Optional[str] = None
        self.is_thread_safe = True
        self.is_error_page_value: Optional[str] = None
        self.is_error_page = False
        self.error_page: Optional[str] = None
        self.info: Optional[str] = None
        self.scriptless = False
        self.scripting_invalid = False
        self.is_el_ignored_value: Optional[str] = None
        self.is_el_ignored = False
        self.deferred_syntax_allowed_as_literal_value: Optional[str] = None
        self.deferred_syntax_allowed_as_literal = False
        self.trim_directive_whitespaces_value: Optional[str] = None
        self.trim_directive_whitespaces = False
        self.omit_xml_decl: Optional[str] = None
        self.doctype_name: Optional[str] = None
        self.doctype_public: Optional[str] = None
        self.doctype_system: Optional[str] = None
        self.is_jsp_prefix_hijacked = False
        self.has_jsp_root = False
        self.include_prelude: List[str] = []
        self.include_coda: List[str] = []
        self.error_on_undeclared_namespace = False
        # generated function map name -> mapping literal
        self.function_maps: Dict[str, str] = {}
        self.imports.extend(STANDARD_IMPORTS)

    # ------------------------------------------------------------- imports

    def add_imports(self, imports: List[str]) -> None:
        self.imports.extend(imports)

    def add_dependant(self, path: str, last_modified: int) -> None:
        if path not in self.dependants and path != self.unit:
            self.dependants[path] = last_modified

    # ----------------------------------------------------- prefix handling

    def add_prefix(self, prefix: str) -> None:
        self.prefixes.add(prefix)

    def contains_prefix(self, prefix: str) -> bool:
        return prefix in self.prefixes

    def add_taglib(self, uri: str, info: TagLibraryInfo) -> None:
        self.taglibs[uri] = info

    def get_taglib(self, uri: str) -> Optional[TagLibraryInfo]:
        return self.taglibs.get(uri)

    def has_taglib(self, uri: str) -> bool:
        return uri in self.taglibs

    def add_prefix_mapping(self, prefix: str, uri: str) -> None:
        self._prefix_map[prefix] = uri

    def push_prefix_mapping(self, prefix: str, uri: str) -> None:
        self._xml_prefix_stack.setdefault(prefix, []).append(uri)

    def pop_prefix_mapping(self, prefix: str) -> None:
        self._xml_prefix_stack[prefix].pop()

    def get_uri(self, prefix: str) -> Optional[str]:
        """Namespace URI of ``prefix``: innermost XML scope, then the page map."""
        stack = self._xml_prefix_stack.get(prefix)
        if stack:
            return stack[-1]
        return self._prefix_map.get(prefix)

    def put_non_custom_tag_prefix(self, prefix: str, where: Mark) -> None:
        self.non_custom_tag_prefixes[prefix] = where

    def get_non_custom_tag_prefix(self, prefix: str) -> Optional[Mark]:
        return self.non_custom_tag_prefixes.get(prefix)

    # ------------------------------------------------- directive attributes

    def set_language(self, value: str, n, pagedir: bool) -> None:
        if value.lower() != DEFAULT_LANGUAGE:
            key = "error.page.language.unsupported" if pagedir else "error.tag.language.unsupported"
            raise CompileError(key, value, mark=n.start)
        self.language = value

    def get_language(self, use_default: bool = True) -> Optional[str]:
        return DEFAULT_LANGUAGE if self.language is None and use_default else self.language

    def get_extends(self, use_default: bool = True) -> Optional[str]:
        return DEFAULT_EXTENDS if self.extends is None and use_default else self.extends

    def set_buffer_value(self, value: Optional[str], n=None) -> None:
        if value is not None and value.lower() == "none":
            self.buffer = 0
        else:
            if value is None or not value.endswith("kb"):
                raise CompileError("error.page.buffer.invalid", value, mark=getattr(n, "start", None))
            try:
                self.buffer = int(value[:-2]) * 1024
            except ValueError:
                raise CompileError("error.page.buffer.invalid", value,
                                   mark=getattr(n, "start", None)) from None
        self.buffer_value = value

    def set_session(self, value: str, n) -> None:
        self.is_session = _bool(value, "error.page.session.invalid", n)
        self.session = value

    def set_auto_flush(self, value: str, n) -> None:
        self.is_auto_flush = _bool(value, "error.page.autoflush.invalid", n)
        self.auto_flush = value

    def set_is_thread_safe(self, value: str, n) -> None:
        self.is_thread_safe = _bool(value, "error.page.isthreadsafe.invalid", n)
        self.is_thread_safe_value = value

    def set_is_error_page(self, value: str, n) -> None:
        self.is_error_page = _bool(value, "error.page.iserrorpage.invalid", n)
        self.is_error_page_value = value

    def set_is_el_ignored(self, value: str, n, pagedir: bool) -> None:
        key = "error.page.iselignored.invalid" if pagedir else "error.tag.iselignored.invalid"
        self.is_el_ignored = _bool(value, key, n)
        self.is_el_ignored_value = value

    def set_el_ignored_default(self, value: bool) -> None:
        """Property-group default; a directive may still override it."""
        self.is_el_ignored = value

    def set_deferred_syntax_allowed_as_literal(self, value: str, n, pagedir: bool) -> None:
        key = ("error.page.deferredsyntax.invalid" if pagedir
               else "error.tag.deferredsyntax.invalid")
        self.deferred_syntax_allowed_as_literal = _bool(value, key, n)
        self.deferred_syntax_allowed_as_literal_value = value

    def set_trim_directive_whitespaces(self, value: str, n, pagedir: bool) -> None:
        key = ("error.page.trimwhitespaces.invalid" if pagedir
               else "error.tag.trimwhitespaces.invalid")
        self.trim_directive_whitespaces = _bool(value, key, n)
        self.trim_directive_whitespaces_value = value


__all__ = ["PageInfo", "STANDARD_IMPORTS", "DEFAULT_EXTENDS", "DEFAULT_BUFFER", "DEFAULT_LANGUAGE"]
