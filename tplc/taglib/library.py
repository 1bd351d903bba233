"""
Per-compile views of tag libraries.

A ``TagLibraryInfo`` binds a cached descriptor to the prefix a page uses
for it. Implicit libraries are built from a directory of tag files.
"""

from __future__ import annotations

import logging
import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

from ..errors import CompileError
from .hooks import PageData, TagLibraryValidator, ValidationMessage, load_object
from .model import FunctionInfo, TagInfo, TagLibraryDescriptor

if TYPE_CHECKING:  # pragma: no cover
    from ..context import CompilationContext
    from ..parser.controller import ParserController
    from ..validator.page_info import PageInfo

logger = logging.getLogger(__name__)

IMPLICIT_TAG_ROOT = "/tags"
TAG_FILE_SUFFIX = ".tag"
TAGX_FILE_SUFFIX = ".tagx"
IMPLICIT_DESCRIPTOR = "implicit.tld.yaml"


@dataclass
class TagFileInfo:
    name: str
    path: str
    tag_info: TagInfo


class TagLibraryInfo:
    """
    A tag library as bound into one page under ``prefix``.

    Args:
        prefix: Prefix used by the page
        uri: URI the page declared
        descriptor: Parsed descriptor
        location: Path of the descriptor, relative to the source root
        pc: Controller used to scan tag files on demand
    """

    def __init__(
        self,
        prefix: str,
        uri: str,
        descriptor: TagLibraryDescriptor,
        location: Optional[str] = None,
        pc: Optional["ParserController"] = None,
    ):
        self.prefix = prefix
        self.uri = uri
        self.descriptor = descriptor
        self.location = location
        self.pc = pc
        self.short_name = descriptor.short_name
        self.tlib_version = descriptor.tlib_version
        self.required_version = descriptor.jsp_version
        self.info = descriptor.info
        self._tag_files: Dict[str, TagFileInfo] = {}

    @property
    def tags(self) -> List[TagInfo]:
        return self.descriptor.tags

    @property
    def functions(self) -> List[FunctionInfo]:
        return self.descriptor.functions

    @property
    def reliable_urn(self) -> str:
        return self.descriptor.uri or self.uri

    def get_tag(self, short_name: str) -> Optional[TagInfo]:
        for tag in self.descriptor.tags:
            if tag.name == short_name:
                return tag
        return None

    def get_tag_file(self, short_name: str) -> Optional[TagFileInfo]:
        found = self._tag_files.get(short_name)
        if found is not None:
            return found
        for ref in self.descriptor.tag_files:
            if ref.name == short_name:
                path = ref.path
                if not path.startswith("/") and self.location:
                    path = posixpath.normpath(posixpath.join(posixpath.dirname(self.location), path))
                return self._scan_tag_file(short_name, path)
        return None

    def _scan_tag_file(self, short_name: str, path: str) -> TagFileInfo:
        from ..parser.tagfile import parse_tag_file_directives

        if self.pc is None:
            raise RuntimeError("tag files need a parser controller")
        tag_info = parse_tag_file_directives(self.pc, short_name, path, self)
        info = TagFileInfo(short_name, path, tag_info)
        self._tag_files[short_name] = info
        return info

    def get_function(self, name: str) -> Optional[FunctionInfo]:
        for fn in self.descriptor.functions:
            if fn.name == name:
                return fn
        return None

    def get_validator(self) -> Optional[TagLibraryValidator]:
        if not self.descriptor.validator:
            return None
        validator = load_object(self.descriptor.validator)()
        validator.set_init_parameters(self.descriptor.validator_params)
        return validator

    def validate(self, page: PageData) -> List[ValidationMessage]:
        """Run the library's document validator, if it declares one."""
        validator = self.get_validator()
        if validator is None:
            return []
        try:
            return list(validator.validate(self.prefix, self.uri, page) or [])
        finally:
            validator.release()

    def __repr__(self) -> str:
        return f"TagLibraryInfo(prefix={self.prefix!r}, uri={self.uri!r})"


class ImplicitTagLibraryInfo(TagLibraryInfo):
    """Library synthesised from the tag files found in one directory."""

    def __init__(
        self,
        ctxt: "CompilationContext",
        pc: "ParserController",
        page_info: Optional["PageInfo"],
        prefix: str,
        tagdir: str,
        mark=None,
    ):
        if not tagdir.startswith(IMPLICIT_TAG_ROOT):
            raise CompileError("error.tagdir.invalid", tagdir, mark=mark)
        if tagdir in (IMPLICIT_TAG_ROOT, IMPLICIT_TAG_ROOT + "/"):
            short_name = "tags"
        else:
            short_name = tagdir[len(IMPLICIT_TAG_ROOT):].replace("/", "-")
        descriptor = TagLibraryDescriptor(short_name=short_name, tlib_version="1.0", jsp_version="2.0")
        super().__init__(prefix, "urn:jsptagdir:" + tagdir, descriptor, pc=pc)
        self.tagdir = tagdir
        self._tag_file_map: Dict[str, str] = {}
        for path in sorted(ctxt.resource_paths(tagdir)):
            if path.endswith(TAG_FILE_SUFFIX) or path.endswith(TAGX_FILE_SUFFIX):
                suffix = TAG_FILE_SUFFIX if path.endswith(TAG_FILE_SUFFIX) else TAGX_FILE_SUFFIX
                name = path.rsplit("/", 1)[-1][: -len(suffix)]
                self._tag_file_map[name] = path
            elif path.endswith(IMPLICIT_DESCRIPTOR):
                self._read_implicit_descriptor(ctxt, page_info, path, mark)
        logger.debug("implicit library %s: %d tag files", tagdir, len(self._tag_file_map))

    def _read_implicit_descriptor(self, ctxt, page_info, path: str, mark) -> None:
        from .loader import load_descriptor

        implicit = load_descriptor(ctxt.real_path(path))
        try:
            version = float(implicit.jsp_version)
        except ValueError:
            version = 0.0
        if version < 2.0:
            raise CompileError("error.implicit.version.invalid", path, mark=mark)
        self.tlib_version = implicit.tlib_version
        self.required_version = implicit.jsp_version
        if page_info is not None:
            page_info.add_dependant(path, ctxt.last_modified(path))

    def get_tag_file(self, short_name: str) -> Optional[TagFileInfo]:
        found = self._tag_files.get(short_name)
        if found is not None:
            return found
        path = self._tag_file_map.get(short_name)
        if path is None:
            return None
        return self._scan_tag_file(short_name, path)

    def tag_file_names(self) -> Iterable[str]:
        return list(self._tag_file_map)


__all__ = [
    "IMPLICIT_TAG_ROOT", "TagFileInfo", "TagLibraryInfo", "ImplicitTagLibraryInfo",
]
