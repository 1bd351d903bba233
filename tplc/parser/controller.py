"""
Parse orchestration for one translation unit.

The controller decides, per parse unit, which syntax and which encoding
apply, dispatches to the matching front end and resolves static includes
and tag libraries on behalf of both front ends.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import List, Optional

from ..config import UnitProperties, find_property
from ..context import STRICT_SUFFIXES, CompilationContext
from ..errors import CompileError
from ..mark import Mark
from ..nodes import JSP_URI, Node, Nodes
from ..reader import SourceReader
from ..taglib.library import ImplicitTagLibraryInfo, TagLibraryInfo
from ..validator.beans import BeanRepository
from ..validator.page_info import PageInfo
from .encoding import charset_of, decode_source, detect_encoding, same_encoding
from .relaxed import RelaxedParser, parse_attributes
from .strict import URN_JSPTAGDIR, StrictParser

logger = logging.getLogger(__name__)


@dataclass
class UnitSource:
    """Syntax and encoding decided for one parse unit."""
    path: str
    data: bytes
    is_xml: bool
    encoding: str
    skip: int = 0
    is_encoding_specified_in_prolog: bool = False
    is_bom_present: bool = False
    is_default_page_encoding: bool = False


class ParserController:
    """
    Args:
        ctxt: Compilation context of the unit
        page_info: Page settings to fill (a fresh one when omitted)
    """

    def __init__(self, ctxt: CompilationContext, page_info: Optional[PageInfo] = None):
        self.ctxt = ctxt
        self.options = ctxt.options
        if page_info is None:
            page_info = PageInfo(BeanRepository(), ctxt.unit, ctxt.is_tag_file)
        self.page_info = page_info
        self.is_tag_file = ctxt.is_tag_file
        self.directives_only = False
        self._base_dirs: List[str] = []
        self._parsing: List[str] = []

    # ------------------------------------------------------------ entry points

    def parse(self, in_file: str) -> Nodes:
        """Parse a page or tag file completely."""
        self.is_tag_file = self.ctxt.is_tag_file
        self.directives_only = False
        return self._do_parse(in_file, None)

    def parse_directives(self, in_file: str) -> Nodes:
        """Parse only the directives of a page or tag file."""
        self.is_tag_file = self.ctxt.is_tag_file
        self.directives_only = True
        return self._do_parse(in_file, None)

    def parse_include(self, in_file: str, parent: Node, mark: Optional[Mark] = None) -> Nodes:
        """Parse a statically included unit as the body of ``parent``."""
        return self._do_parse(in_file, parent, mark)

    def parse_tag_file_directives(self, path: str) -> Nodes:
        """
        Directives of the tag file at ``path``.

        The scan runs under its own page settings so that taglib
        declarations of the tag file never leak into the page.
        """
        if not self.ctxt.exists(path):
            raise CompileError("error.file.not.found", path)
        self.page_info.add_dependant(path, self.ctxt.last_modified(path))
        sub_ctxt = CompilationContext(self.ctxt.root, path, self.options, cache=self.ctxt.cache)
        sub = ParserController(sub_ctxt)
        sub.is_tag_file = True
        sub.directives_only = True
        return sub._do_parse(path, None)

    # ------------------------------------------------------------ tag libraries

    def get_taglib(
        self,
        prefix: str,
        uri: str,
        mark: Optional[Mark],
        lookup_uri: Optional[str] = None,
        required: bool = True,
    ) -> Optional[TagLibraryInfo]:
        """
        Library bound to ``uri``, loaded on first use.

        Args:
            lookup_uri: URI used to find the descriptor when it differs
                from the key the page uses (``urn:jsptld:`` form)
            required: Raise instead of returning None for unknown URIs
        """
        info = self.page_info.get_taglib(uri)
        if info is not None:
            return info
        target = lookup_uri or uri
        found = self.ctxt.load_taglib(target)
        if found is None:
            if required:
                raise CompileError("error.taglib.notfound", target, mark=mark)
            return None
        descriptor, location = found
        info = TagLibraryInfo(prefix, uri, descriptor, location, self)
        self.page_info.add_taglib(uri, info)
        self.page_info.add_dependant(location, self.ctxt.last_modified(location))
        logger.debug("taglib %s -> %s", uri, location)
        return info

    def get_implicit_taglib(
        self, prefix: str, tagdir: str, mark: Optional[Mark], key: Optional[str] = None
    ) -> TagLibraryInfo:
        uri = key or URN_JSPTAGDIR + tagdir
        info = self.page_info.get_taglib(uri)
        if info is None:
            info = ImplicitTagLibraryInfo(self.ctxt, self, self.page_info, prefix, tagdir, mark)
            self.page_info.add_taglib(uri, info)
        return info

    # ------------------------------------------------------------------ parsing

    def _resolve_file_name(self, in_file: str) -> str:
        name = in_file.replace("\\", "/")
        if not name.startswith("/"):
            base = self._base_dirs[-1] if self._base_dirs else posixpath.dirname(self.ctxt.unit) + "/"
            name = base + name
        name = posixpath.normpath(name)
        self._base_dirs.append(name[: name.rfind("/") + 1])
        return name

    def _do_parse(self, in_file: str, parent: Optional[Node], mark: Optional[Mark] = None) -> Nodes:
        path = self._resolve_file_name(in_file)
        try:
            if not self.ctxt.exists(path):
                raise CompileError("error.file.not.found", in_file, mark=mark)
            if path in self._parsing:
                raise CompileError("error.include.recursive", path, mark=mark)
            props = find_property(self.options, path)
            config_enc = props.page_encoding
            src = self.determine_syntax_and_encoding(path, self.ctxt.read_bytes(path), props)

            if parent is not None:
                self.page_info.add_dependant(path, self.ctxt.last_modified(path))

            if (src.is_xml and src.is_encoding_specified_in_prolog) or src.is_bom_present:
                if config_enc is not None and not same_encoding(config_enc, src.encoding):
                    raise CompileError("error.prolog.config.encoding.mismatch", src.encoding,
                                       config_enc, mark=Mark(path, 1, 1))

            logger.debug("parsing %s (%s syntax, %s)%s", path,
                         "strict" if src.is_xml else "relaxed", src.encoding,
                         " directives only" if self.directives_only else "")
            self._parsing.append(path)
            try:
                if src.is_xml:
                    return StrictParser.parse(
                        self, path, src.data, parent, self.is_tag_file,
                        self.directives_only, src.encoding, config_enc,
                        src.is_encoding_specified_in_prolog, src.is_bom_present,
                    )
                text = decode_source(src.data, src.encoding, src.skip, path)
                return RelaxedParser.parse(
                    self, SourceReader(path, text), parent, self.is_tag_file,
                    self.directives_only, src.encoding, config_enc,
                    src.is_default_page_encoding, src.is_bom_present,
                )
            finally:
                self._parsing.pop()
        finally:
            self._base_dirs.pop()

    # --------------------------------------------------- syntax and encoding

    def determine_syntax_and_encoding(
        self, path: str, data: bytes, props: UnitProperties
    ) -> UnitSource:
        """
        Decide the syntax and source encoding of one unit.

        A property-group ``is_xml`` flag or a strict suffix fixes the
        syntax; otherwise the unit is sniffed for a ``<P:root>`` element.
        Relaxed units without a byte-order mark take their encoding from
        the property group, then from their own page directive.
        """
        is_xml = False
        is_external = False
        revert = False
        if props.is_xml is not None:
            is_xml = props.is_xml
            is_external = True
        elif path.endswith(STRICT_SUFFIXES):
            is_xml = True
            is_external = True

        src = UnitSource(path, data, is_xml, props.page_encoding or self.options.default_encoding)
        if is_external and not is_xml:
            return src

        detected = detect_encoding(data)
        src.encoding = detected.encoding
        src.skip = detected.skip
        src.is_encoding_specified_in_prolog = detected.specified_in_prolog
        src.is_bom_present = detected.is_bom_present
        if not is_xml and detected.encoding == "UTF-8":
            # any byte sequence is valid latin-1, and the markup looked for is ASCII
            src.encoding = "ISO-8859-1"
            revert = True
        if is_xml:
            return src

        reader = SourceReader(path, decode_source(data, src.encoding, src.skip, path))
        if not is_external:
            if has_jsp_root(reader):
                if revert:
                    src.encoding = "UTF-8"
                src.is_xml = True
                return src
            if revert and src.is_bom_present:
                src.encoding = "UTF-8"

        if not src.is_bom_present:
            encoding = props.page_encoding
            if encoding is None:
                reader.reset(Mark(path, 1, 1, 0))
                encoding = self._page_encoding_for_relaxed_syntax(reader)
            if encoding is None:
                encoding = self.options.default_encoding
                src.is_default_page_encoding = True
            src.encoding = encoding
        return src

    def _page_encoding_for_relaxed_syntax(self, reader: SourceReader) -> Optional[str]:
        """``pageEncoding`` of the first page/tag directive declaring one, else a ``contentType`` charset."""
        saved: Optional[str] = None
        while reader.skip_until("<") is not None:
            if reader.matches("%--"):
                if reader.skip_until("--%>") is None:
                    break
                continue
            is_directive = reader.matches("%@")
            if is_directive:
                reader.skip_spaces()
            else:
                is_directive = reader.matches("jsp:directive.")
            if not is_directive:
                continue
            # "tag " so that "taglib" does not match
            if reader.matches("tag ") or reader.matches("page"):
                reader.skip_spaces()
                attrs = parse_attributes(self, reader)
                encoding = attrs.get_value("pageEncoding")
                if encoding is not None:
                    return encoding
                charset = charset_of(attrs.get_value("contentType"))
                if charset is not None:
                    saved = charset
        return saved


def has_jsp_root(reader: SourceReader) -> bool:
    """
    Whether the first element of the unit is ``<P:root>`` with ``P``
    bound to the standard-action namespace.
    """
    start = None
    while True:
        start = reader.skip_until("<")
        if start is None:
            return False
        ch = reader.next_char()
        if ch not in ("!", "?"):
            break
    stop = reader.skip_until(":root")
    if stop is None:
        return False
    prefix = reader.get_text(start, stop)[1:]

    start = stop
    stop = reader.skip_until(">")
    if stop is None:
        return False
    root = reader.get_text(start, stop)
    decl = "xmlns:" + prefix
    index = root.find(decl)
    if index < 0:
        return False
    index += len(decl)
    size = len(root)
    while index < size and root[index].isspace():
        index += 1
    if index >= size or root[index] != "=":
        return False
    index += 1
    while index < size and root[index].isspace():
        index += 1
    if index < size and root[index] in ("'", '"'):
        return root.startswith(JSP_URI, index + 1)
    return False


__all__ = ["ParserController", "UnitSource", "has_jsp_root"]
