from __future__ import annotations

from importlib import metadata

DIST_NAME = "template-page-compiler"
UNKNOWN_VERSION = "0.0.0"


def tool_version() -> str:
    """
    Installed version of the compiler, stamped into every generated module.

    A source checkout that was never installed reports ``0.0.0``.
    """
    try:
        return metadata.version(DIST_NAME)
    except metadata.PackageNotFoundError:
        return UNKNOWN_VERSION


__all__ = ["tool_version", "DIST_NAME"]
