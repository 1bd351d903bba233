"""
File helpers for tests: writing source trees below a temporary root.
"""

from __future__ import annotations

import os
import textwrap
from pathlib import Path


def write(p: Path, text: str) -> Path:
    """
    Write text to a file, creating parent directories as needed.

    Args:
        p: Target path
        text: File content

    Returns:
        The written path
    """
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(text, encoding="utf-8")
    return p


def write_bytes(p: Path, data: bytes) -> Path:
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_bytes(data)
    return p


def dedent(text: str) -> str:
    """``textwrap.dedent`` without the leading newline of a triple-quoted block."""
    return textwrap.dedent(text).lstrip("\n")


def touch_later(p: Path, seconds: float = 10.0) -> None:
    """Move the modification time of ``p`` forward."""
    st = p.stat()
    os.utime(p, ns=(st.st_atime_ns, st.st_mtime_ns + int(seconds * 1_000_000_000)))
