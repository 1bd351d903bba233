"""
Base exceptions for user-facing errors.

All expected errors that should be displayed to the user as clean
messages (without stack traces) must inherit from TplcUserError.

Programming errors and bugs should NOT inherit from TplcUserError:
they propagate with full tracebacks.
"""

from __future__ import annotations

from typing import Any, Optional

from .mark import Mark
from .messages import MESSAGES


class TplcUserError(Exception):
    """
    Base class for all user-facing errors of the template compiler.

    These errors indicate problems the template author can fix:
    malformed markup, contract violations, bad configuration, etc.
    """
    pass


def format_message(key: str, *args: Any) -> str:
    """
    Look up a message key in the catalogue and substitute its arguments.

    Unknown keys are treated as literal text, which lets library hooks
    report their own prose through the same error type.
    """
    template = MESSAGES.get(key)
    if template is None:
        return key
    try:
        return template.format(*args)
    except (IndexError, KeyError):
        return f"{template} {args!r}"


class CompileError(TplcUserError):
    """
    Fatal compilation diagnostic.

    Args:
        key: Message key in the catalogue (or literal text)
        *args: Message arguments
        mark: Source position the error originates from
    """

    def __init__(self, key: str, *args: Any, mark: Optional[Mark] = None):
        self.key = key
        self.args_ = args
        self.mark = mark
        self.text = format_message(key, *args)
        if mark is not None:
            super().__init__(f"{mark} {self.text}")
        else:
            super().__init__(self.text)


class ConfigError(TplcUserError):
    """Malformed configuration file or library descriptor."""
    pass


__all__ = ["TplcUserError", "CompileError", "ConfigError", "format_message"]
