"""Two-pass validation: directive reconciliation, then semantic checking."""

from .beans import BeanRepository
from .directives import DirectiveVisitor, validate_directives
from .page_info import PageInfo
from .semantic import (
    TagExtraInfoVisitor,
    ValidateVisitor,
    set_scripting_vars,
    validate_ex_directives,
)
from .xml_view import build_xml_view

__all__ = [
    "BeanRepository", "DirectiveVisitor", "PageInfo", "TagExtraInfoVisitor",
    "ValidateVisitor", "build_xml_view", "set_scripting_vars",
    "validate_directives", "validate_ex_directives",
]
