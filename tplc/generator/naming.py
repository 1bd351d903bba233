"""
Identifier sanitisation and literal quoting for generated Python.
"""

from __future__ import annotations

import keyword
from typing import List, Optional

from ..errors import CompileError

TAG_FILE_PACKAGE = "tplc_tags"
IMPLICIT_TAG_ROOT = "/tags"


def mangle_char(ch: str) -> str:
    """``'-'`` -> ``'_002d'``."""
    return "_%04x" % (ord(ch) & 0xFFFF)


def make_identifier(name: str, period_to_underscore: bool = True) -> str:
    """
    Turn an arbitrary string into a valid Python identifier.

    Characters that cannot appear in identifiers are mangled to ``_xxxx``;
    with ``period_to_underscore`` a dot becomes ``_`` and an underscore is
    mangled too, which keeps distinct inputs distinct.
    """
    if not name:
        return "_"
    out: List[str] = []
    if not (name[0].isalpha() or name[0] == "_"):
        out.append("_")
    for ch in name:
        if (ch.isalnum() or ch == "_") and (ch != "_" or not period_to_underscore):
            out.append(ch)
        elif ch == "." and period_to_underscore:
            out.append("_")
        else:
            out.append(mangle_char(ch))
    result = "".join(out)
    if keyword.iskeyword(result):
        result += "_"
    return result


def make_identifier_for_attribute(name: str) -> str:
    return make_identifier(name, period_to_underscore=False)


def make_package(path: str) -> str:
    """``'/a/b-c.tag'`` -> ``'a.b_002dc_tag'``."""
    return ".".join(make_identifier(part) for part in path.split("/") if part)


def tag_handler_class_name(path: str, urn: Optional[str]) -> str:
    """
    Dotted class name generated for a tag file.

    Raises:
        CompileError: ``path`` has no tag file suffix
    """
    if path.rfind(".tag") < 0:
        raise CompileError("error.tagfile.suffix", path)
    index = path.find(IMPLICIT_TAG_ROOT + "/")
    if index >= 0:
        return f"{TAG_FILE_PACKAGE}.web.{make_package(path[index + len(IMPLICIT_TAG_ROOT):])}"
    base = f"{TAG_FILE_PACKAGE}.meta."
    if urn:
        base += make_package(urn) + "."
    return base + make_package(path)


_ESCAPES = {"\\": "\\\\", '"': '\\"', "\n": "\\n", "\r": "\\r", "\t": "\\t"}


def quote(s: Optional[str]) -> str:
    """Double-quoted Python string literal for ``s`` (``None`` -> ``None``)."""
    if s is None:
        return "None"
    out = ['"']
    for ch in s:
        esc = _ESCAPES.get(ch)
        if esc is not None:
            out.append(esc)
        elif ch.isprintable():
            out.append(ch)
        else:
            code = ord(ch)
            if code < 0x100:
                out.append("\\x%02x" % code)
            elif code < 0x10000:
                out.append("\\u%04x" % code)
            else:
                out.append("\\U%08x" % code)
    out.append('"')
    return "".join(out)


def to_python_type(type_name: Optional[str]) -> str:
    """Map a descriptor type name to the name used in generated code."""
    if not type_name:
        return "object"
    aliases = {
        "java.lang.String": "str", "String": "str", "string": "str",
        "java.lang.Object": "object", "Object": "object",
        "boolean": "bool", "java.lang.Boolean": "bool",
        "int": "int", "java.lang.Integer": "int", "long": "int",
        "double": "float", "float": "float",
    }
    return aliases.get(type_name, type_name)


__all__ = [
    "TAG_FILE_PACKAGE", "mangle_char", "make_identifier",
    "make_identifier_for_attribute", "make_package", "tag_handler_class_name",
    "quote", "to_python_type",
]
