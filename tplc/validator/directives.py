"""
Pass 1 of validation: directive reconciliation.

Only directives are visited. Page-wide settings are accumulated across
the page and every unit it includes; a setting given twice must carry the
same text both times.
"""

from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Optional

from ..charsets import same_encoding
from ..errors import CompileError
from ..nodes import IncludeDirective, Node, Nodes, PageDirective, TagDirective, Visitor
from .page_info import PageInfo

logger = logging.getLogger(__name__)

PAGE_DIRECTIVE_ATTRS = (
    "language", "extends", "import", "session", "buffer", "autoFlush",
    "isThreadSafe", "info", "errorPage", "isErrorPage", "contentType",
    "pageEncoding", "isELIgnored", "deferredSyntaxAllowedAsLiteral",
    "trimDirectiveWhitespaces",
)

SCOPES = ("page", "request", "session", "application")


# --------------------------------------------------------------------------- #
# Shared helpers
# --------------------------------------------------------------------------- #
def boolean_value(s: Optional[str]) -> bool:
    """``"true"`` and ``"yes"`` (any case) are true, anything else false."""
    if s is None:
        return False
    return s.lower() in ("true", "yes")


def check_attributes(
    type_name: str,
    n: Node,
    valid: Iterable[str],
    mandatory: Iterable[str] = (),
) -> None:
    """
    Check the attribute contract of a directive or action.

    Attributes given through leading ``jsp:attribute`` children count as
    present; giving one both ways is an error. ``xmlns`` declarations are
    never checked.

    Args:
        type_name: Name of the construct used in messages
        n: Node to check
        valid: Every accepted attribute name
        mandatory: Names that must be present (subset of ``valid``)

    Raises:
        CompileError: Missing, duplicated or unknown attribute
    """
    present: List[str] = []
    if n.attrs is not None:
        for a in n.attrs:
            if a.qname != "xmlns" and not a.qname.startswith("xmlns:"):
                present.append(a.qname)

    if n.body is not None:
        for child in n.body:
            if child.kind != "named_attribute":
                break
            name = child.get_attribute_value("name")
            present.append(name)
            if n.get_attribute_value(name) is not None:
                raise CompileError("error.duplicate.name.jspattribute", name, mark=n.start)

    for name in mandatory:
        if name not in present:
            raise CompileError("error.mandatory.attribute", type_name, name, mark=n.start)
        present.remove(name)

    allowed = set(valid)
    for name in present:
        if name not in allowed:
            raise CompileError("error.invalid.attribute", type_name, name, mark=n.start)


def check_scope(scope: Optional[str], n: Node) -> None:
    if scope is not None and scope not in SCOPES:
        raise CompileError("error.invalid.scope", scope, mark=n.start)


def _unit_of(n: Node) -> str:
    return n.start.unit if n.start is not None else "?"


# --------------------------------------------------------------------------- #
# Visitor
# --------------------------------------------------------------------------- #
class DirectiveVisitor(Visitor):
    """Folds ``page`` and ``tag`` directives into the page settings."""

    def __init__(self, page_info: PageInfo):
        self.page_info = page_info
        self.page_encoding_seen = False
        # attribute -> unit that first set it
        self._origin: Dict[str, str] = {}

    def visit_include_directive(self, n: IncludeDirective) -> None:
        # pageEncoding is a per-unit setting
        saved = self.page_encoding_seen
        self.page_encoding_seen = False
        self.visit_body(n)
        self.page_encoding_seen = saved

    def _reconcile(self, n: Node, attr: str, old: Optional[str], value: str, key: str) -> bool:
        """
        Returns True when ``attr`` has not been set yet; raises when it was
        set to a different text.
        """
        if old is None:
            self._origin[attr] = _unit_of(n)
            return True
        if old != value:
            raise CompileError(key, attr, old, self._origin.get(attr, "?"), value, _unit_of(n),
                               mark=n.start)
        return False

    def visit_page_directive(self, n: PageDirective) -> None:
        check_attributes("Page directive", n, PAGE_DIRECTIVE_ATTRS)
        pi = self.page_info
        conflict = "error.page.conflict"

        for a in n.attrs or ():
            attr, value = a.qname, a.value
            if attr == "language":
                if self._reconcile(n, attr, pi.get_language(False), value, conflict):
                    pi.set_language(value, n, True)
            elif attr == "extends":
                if self._reconcile(n, attr, pi.get_extends(False), value, conflict):
                    pi.extends = value
            elif attr == "contentType":
                if self._reconcile(n, attr, pi.content_type, value, conflict):
                    pi.content_type = value
            elif attr == "session":
                if self._reconcile(n, attr, pi.session, value, conflict):
                    pi.set_session(value, n)
            elif attr == "buffer":
                if self._reconcile(n, attr, pi.buffer_value, value, conflict):
                    pi.set_buffer_value(value, n)
            elif attr == "autoFlush":
                if self._reconcile(n, attr, pi.auto_flush, value, conflict):
                    pi.set_auto_flush(value, n)
            elif attr == "isThreadSafe":
                if self._reconcile(n, attr, pi.is_thread_safe_value, value, conflict):
                    pi.set_is_thread_safe(value, n)
            elif attr == "isELIgnored":
                if self._reconcile(n, attr, pi.is_el_ignored_value, value, conflict):
                    pi.set_is_el_ignored(value, n, True)
            elif attr == "isErrorPage":
                if self._reconcile(n, attr, pi.is_error_page_value, value, conflict):
                    pi.set_is_error_page(value, n)
            elif attr == "errorPage":
                if self._reconcile(n, attr, pi.error_page, value, conflict):
                    pi.error_page = value
            elif attr == "info":
                if self._reconcile(n, attr, pi.info, value, conflict):
                    pi.info = value
            elif attr == "pageEncoding":
                if self.page_encoding_seen:
                    raise CompileError("error.page.multi.pageencoding", mark=n.start)
                self.page_encoding_seen = True
                n.get_root().page_encoding = self._compare_page_encodings(value, n)
            elif attr == "deferredSyntaxAllowedAsLiteral":
                if self._reconcile(n, attr, pi.deferred_syntax_allowed_as_literal_value, value, conflict):
                    pi.set_deferred_syntax_allowed_as_literal(value, n, True)
            elif attr == "trimDirectiveWhitespaces":
                if self._reconcile(n, attr, pi.trim_directive_whitespaces_value, value, conflict):
                    pi.set_trim_directive_whitespaces(value, n, True)

        if pi.buffer == 0 and not pi.is_auto_flush:
            raise CompileError("error.page.badCombo", mark=n.start)

        pi.add_imports(n.imports)

    def visit_tag_directive(self, n: TagDirective) -> None:
        # the contract attributes were checked when the tag's TagInfo was built
        pi = self.page_info
        conflict = "error.tag.conflict"
        for a in n.attrs or ():
            attr, value = a.qname, a.value
            if attr == "language":
                if self._reconcile(n, attr, pi.get_language(False), value, conflict):
                    pi.set_language(value, n, False)
            elif attr == "isELIgnored":
                if self._reconcile(n, attr, pi.is_el_ignored_value, value, conflict):
                    pi.set_is_el_ignored(value, n, False)
            elif attr == "pageEncoding":
                if self.page_encoding_seen:
                    raise CompileError("error.tag.multi.pageencoding", mark=n.start)
                self.page_encoding_seen = True
                self._compare_tag_encodings(value, n)
                n.get_root().page_encoding = value
            elif attr == "deferredSyntaxAllowedAsLiteral":
                if self._reconcile(n, attr, pi.deferred_syntax_allowed_as_literal_value, value, conflict):
                    pi.set_deferred_syntax_allowed_as_literal(value, n, False)
            elif attr == "trimDirectiveWhitespaces":
                if self._reconcile(n, attr, pi.trim_directive_whitespaces_value, value, conflict):
                    pi.set_trim_directive_whitespaces(value, n, False)
        pi.add_imports(n.imports)

    def visit_attribute_directive(self, n: Node) -> None:
        pass

    def visit_variable_directive(self, n: Node) -> None:
        pass

    # ------------------------------------------------------------- encodings

    @staticmethod
    def _prolog_signal(root) -> bool:
        return (root.is_xml_syntax and root.is_encoding_specified_in_prolog) or root.is_bom_present

    def _compare_page_encodings(self, declared: str, n: PageDirective) -> str:
        """
        Reconcile a ``pageEncoding`` attribute with the configured encoding
        and with the prolog or byte-order mark, in that order.

        Returns:
            Encoding the unit was actually read with
        """
        root = n.get_root()
        page_enc = declared.upper()
        config_enc = root.config_page_encoding
        if config_enc is not None:
            config_enc = config_enc.upper()
            if not same_encoding(page_enc, config_enc):
                raise CompileError("error.config.pagedir.encoding.mismatch", config_enc, page_enc,
                                   mark=n.start)
            return config_enc
        if self._prolog_signal(root):
            prolog_enc = (root.page_encoding or "").upper()
            if not same_encoding(page_enc, prolog_enc):
                raise CompileError("error.prolog.pagedir.encoding.mismatch", prolog_enc, page_enc,
                                   mark=n.start)
            return prolog_enc
        return page_enc

    def _compare_tag_encodings(self, declared: str, n: TagDirective) -> None:
        root = n.get_root()
        if self._prolog_signal(root):
            prolog_enc = (root.page_encoding or "").upper()
            if not same_encoding(declared.upper(), prolog_enc):
                raise CompileError("error.prolog.pagedir.encoding.mismatch", prolog_enc,
                                   declared.upper(), mark=n.start)


def validate_directives(page_info: PageInfo, page: Nodes) -> None:
    """Run pass 1 over a parsed unit."""
    page.visit(DirectiveVisitor(page_info))
    logger.debug("directives reconciled for %s", page_info.unit)


__all__ = [
    "DirectiveVisitor", "validate_directives", "check_attributes", "check_scope",
    "boolean_value", "PAGE_DIRECTIVE_ATTRS", "SCOPES",
]
