"""
Source encoding detection.

The byte-order mark (or the lack of one) gives a first guess, an XML
prolog ``encoding="..."`` declaration overrides it. Relaxed-syntax units
are additionally pre-scanned for ``pageEncoding`` by the controller.
"""

from __future__ import annotations

import codecs
import re
from dataclasses import dataclass
from typing import Optional

from ..charsets import canonical, same_encoding
from ..errors import CompileError
from ..mark import Mark

UCS4 = "ISO-10646-UCS-4"

_PROLOG_RE = re.compile(
    r"""^<\?xml\s[^>]*?\bencoding\s*=\s*(["'])([A-Za-z][A-Za-z0-9._\-]*)\1"""
)


@dataclass(frozen=True)
class DetectedEncoding:
    encoding: str
    skip: int
    specified_in_prolog: bool

    @property
    def is_bom_present(self) -> bool:
        return self.skip > 0


def _parse_bom(b: bytes):
    if len(b) < 2:
        return "UTF-8", 0
    if b[:2] == b"\xfe\xff":
        return "UTF-16BE", 2
    if b[:2] == b"\xff\xfe":
        return "UTF-16LE", 2
    if len(b) < 3:
        return "UTF-8", 0
    if b[:3] == b"\xef\xbb\xbf":
        return "UTF-8", 3
    if len(b) < 4:
        return "UTF-8", 0
    head = b[:4]
    if head == b"\x00\x00\x00\x3c":
        return "UTF-32BE", 0
    if head == b"\x3c\x00\x00\x00":
        return "UTF-32LE", 0
    if head in (b"\x00\x00\x3c\x00", b"\x00\x3c\x00\x00"):
        # unusual octet orders: no codec decodes these
        return UCS4, 0
    if head == b"\x00\x3c\x00\x3f":
        return "UTF-16BE", 0
    if head == b"\x3c\x00\x3f\x00":
        return "UTF-16LE", 0
    if head == b"\x4c\x6f\xa7\x94":
        return "CP037", 0
    return "UTF-8", 0


def _prolog_encoding(data: bytes, guess: str) -> Optional[str]:
    try:
        head = data[:1024].decode(guess, errors="replace")
    except LookupError:
        return None
    m = _PROLOG_RE.match(head)
    return m.group(2) if m else None


def detect_encoding(data: bytes) -> DetectedEncoding:
    """
    Guess the encoding of a unit from its first bytes.

    Returns:
        Encoding name, number of BOM bytes to skip and whether the name
        came from an XML prolog declaration
    """
    encoding, skip = _parse_bom(data[:4])
    declared = _prolog_encoding(data[skip:], encoding)
    if declared is None:
        return DetectedEncoding(encoding, skip, False)
    return DetectedEncoding(declared, skip, True)


def decode_source(data: bytes, encoding: str, skip: int, unit: str) -> str:
    """
    Decode unit bytes, skipping a byte-order mark.

    Raises:
        CompileError: Unknown encoding or bytes invalid in it
    """
    where = Mark(unit, 1, 1)
    try:
        codecs.lookup(encoding)
    except LookupError:
        raise CompileError("error.encoding.unsupported", encoding, unit, mark=where) from None
    try:
        return data[skip:].decode(encoding)
    except UnicodeDecodeError as e:
        raise CompileError("error.encoding.invalid", encoding, e.start + skip, mark=where) from None


def charset_of(content_type: Optional[str]) -> Optional[str]:
    """Charset named by a ``contentType`` value, e.g. ``text/html;charset=UTF-8``."""
    if content_type is None:
        return None
    loc = content_type.find("charset=")
    if loc < 0:
        return None
    return content_type[loc + len("charset="):].strip()


__all__ = [
    "DetectedEncoding", "detect_encoding", "canonical", "same_encoding",
    "decode_source", "charset_of",
]
