"""
Support library of generated modules, imported by them as ``_tplc_rt``.
"""

from .constants import (
    APPLICATION_SCOPE, EVAL_BODY_AGAIN, EVAL_BODY_BUFFERED, EVAL_BODY_INCLUDE, EVAL_PAGE,
    EXCEPTION_ATTRIBUTE, PAGE_SCOPE, REQUEST_SCOPE, SESSION_SCOPE, SKIP_BODY, SKIP_PAGE,
    ELException, InstantiationError, PropertyError, SkipPageException, TagException,
)
from .el import FunctionMapper, MethodExpression, ValueExpression, coerce, evaluate, get_property, to_string
from .fragment import FragmentHelper, JspContextWrapper
from .page import (
    Application, BodyContent, PageBase, PageConfig, PageContext, PageWriter, Request, Response,
    Session, get_throwable, include,
)
from .pool import DEFAULT_POOL_SIZE, HandlerPool
from .tags import (
    BodyTagSupport, SimpleTagSupport, StringReader, StringWriter, TagAdapter, TagSupport,
    handle_get_property, handle_set_property, handle_set_property_expression,
    instantiate_bean, introspect, introspect_helper, load_class, release_tag,
    start_buffered_body, url_encode,
)

__all__ = [
    "SKIP_BODY", "EVAL_BODY_INCLUDE", "EVAL_BODY_BUFFERED", "EVAL_BODY_AGAIN", "SKIP_PAGE",
    "EVAL_PAGE", "PAGE_SCOPE", "REQUEST_SCOPE", "SESSION_SCOPE", "APPLICATION_SCOPE",
    "EXCEPTION_ATTRIBUTE",
    "SkipPageException", "TagException", "InstantiationError", "ELException", "PropertyError",
    "FunctionMapper", "ValueExpression", "MethodExpression", "evaluate", "coerce",
    "get_property", "to_string",
    "FragmentHelper", "JspContextWrapper",
    "Application", "BodyContent", "PageBase", "PageConfig", "PageContext", "PageWriter",
    "Request", "Response", "Session", "get_throwable", "include",
    "HandlerPool", "DEFAULT_POOL_SIZE",
    "TagSupport", "BodyTagSupport", "SimpleTagSupport", "TagAdapter", "StringWriter",
    "StringReader", "start_buffered_body", "release_tag", "url_encode", "load_class",
    "instantiate_bean", "handle_get_property", "handle_set_property",
    "handle_set_property_expression", "introspect", "introspect_helper",
]
