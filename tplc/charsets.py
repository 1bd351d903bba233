"""
Comparison of encoding names.

Kept apart from ``parser.encoding`` so that the validator can compare
encodings without importing the parser package, which imports the
validator in turn.
"""

from __future__ import annotations

import codecs
from typing import Optional


def canonical(name: str) -> str:
    """Codec name used for comparisons; unknown names are upper-cased."""
    try:
        return codecs.lookup(name).name
    except LookupError:
        return name.upper()


def same_encoding(a: Optional[str], b: Optional[str]) -> bool:
    """Compare two encoding names; all UTF-16 variants are considered equal."""
    if a is None or b is None:
        return a is b
    if a.upper().startswith("UTF-16") and b.upper().startswith("UTF-16"):
        return True
    return canonical(a) == canonical(b)


__all__ = ["canonical", "same_encoding"]
