"""
Result codes of handler callbacks, attribute scopes and the exceptions
generated modules raise.
"""

from __future__ import annotations

# do_start_tag
SKIP_BODY = 0
EVAL_BODY_INCLUDE = 1
EVAL_BODY_BUFFERED = 2
# do_after_body
EVAL_BODY_AGAIN = 2
# do_end_tag
SKIP_PAGE = 5
EVAL_PAGE = 6

PAGE_SCOPE = 1
REQUEST_SCOPE = 2
SESSION_SCOPE = 3
APPLICATION_SCOPE = 4

SCOPE_NAMES = {
    PAGE_SCOPE: "page",
    REQUEST_SCOPE: "request",
    SESSION_SCOPE: "session",
    APPLICATION_SCOPE: "application",
}

# request attribute holding the exception an error page handles
EXCEPTION_ATTRIBUTE = "tplc.exception"


class SkipPageException(Exception):
    """The rest of the page must not be evaluated."""


class TagException(Exception):
    """A handler or fragment failed; wraps the original exception."""

    def __init__(self, cause: object = None):
        super().__init__(cause)
        self.cause = cause


class InstantiationError(Exception):
    """A bean could not be found or created."""


class ELException(Exception):
    """An expression could not be parsed or evaluated."""


class PropertyError(Exception):
    """A bean property does not exist or cannot be set."""


__all__ = [
    "SKIP_BODY", "EVAL_BODY_INCLUDE", "EVAL_BODY_BUFFERED", "EVAL_BODY_AGAIN",
    "SKIP_PAGE", "EVAL_PAGE", "PAGE_SCOPE", "REQUEST_SCOPE", "SESSION_SCOPE",
    "APPLICATION_SCOPE", "SCOPE_NAMES", "EXCEPTION_ATTRIBUTE",
    "SkipPageException", "TagException", "InstantiationError", "ELException", "PropertyError",
]
