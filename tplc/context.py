"""
Per-compile environment: where sources live, which options apply and
what unit is being compiled.

Unit paths are always absolute within the source root (``/dir/page.tpl``);
``real_path`` maps them onto the file system.
"""

from __future__ import annotations

import logging
import posixpath
from pathlib import Path
from typing import Optional, Set, Tuple

from .config import CompilerOptions, UnitProperties, find_property
from .generator.naming import make_identifier
from .taglib.cache import DEFAULT_CACHE, DescriptorCache
from .taglib.loader import DESCRIPTOR_SUFFIX, load_descriptor
from .taglib.model import TagInfo, TagLibraryDescriptor

logger = logging.getLogger(__name__)

STRICT_SUFFIXES = (".tplx", ".tagx")
TAG_SUFFIXES = (".tag", ".tagx")


def normalize_unit(path: str) -> str:
    path = path.replace("\\", "/")
    if not path.startswith("/"):
        path = "/" + path
    return posixpath.normpath(path)


class CompilationContext:
    """
    Args:
        root: Source root directory
        unit: Unit path inside the root
        options: Compiler options (defaults when omitted)
        tag_info: Contract of the tag being compiled, for tag files
        cache: Descriptor cache shared across compiles
    """

    def __init__(
        self,
        root: Path,
        unit: str,
        options: Optional[CompilerOptions] = None,
        tag_info: Optional[TagInfo] = None,
        cache: Optional[DescriptorCache] = None,
    ):
        self.root = root.resolve()
        self.unit = normalize_unit(unit)
        self.options = options or CompilerOptions()
        self.tag_info = tag_info
        self.cache = cache if cache is not None else DEFAULT_CACHE

    # ------------------------------------------------------------- identity

    @property
    def is_tag_file(self) -> bool:
        return self.tag_info is not None or self.unit.endswith(TAG_SUFFIXES)

    @property
    def class_name(self) -> str:
        name = self.unit.rsplit("/", 1)[-1]
        return make_identifier(name)

    def unit_properties(self) -> UnitProperties:
        return find_property(self.options, self.unit)

    # ---------------------------------------------------------- file access

    def real_path(self, path: str) -> Path:
        rel = normalize_unit(path).lstrip("/")
        return self.root / rel

    def exists(self, path: str) -> bool:
        return self.real_path(path).is_file()

    def read_bytes(self, path: str) -> bytes:
        return self.real_path(path).read_bytes()

    def last_modified(self, path: str) -> int:
        """Modification time in milliseconds, ``-1`` when missing."""
        try:
            return self.real_path(path).stat().st_mtime_ns // 1_000_000
        except OSError:
            return -1

    def resource_paths(self, directory: str) -> Set[str]:
        """Unit paths of the files directly inside ``directory``."""
        real = self.real_path(directory)
        if not real.is_dir():
            return set()
        base = normalize_unit(directory).rstrip("/")
        return {f"{base}/{p.name}" for p in real.iterdir() if p.is_file()}

    def resolve_relative_uri(self, uri: str, base_dir: Optional[str] = None) -> str:
        """Resolve ``uri`` against ``base_dir`` (default: the unit's directory)."""
        if uri.startswith("/") or uri.startswith("\\"):
            return normalize_unit(uri)
        if base_dir is None:
            base_dir = posixpath.dirname(self.unit)
        return normalize_unit(posixpath.join(base_dir, uri))

    # ----------------------------------------------------------- tag library

    def tld_location(self, uri: str) -> Optional[str]:
        """
        Where the descriptor for ``uri`` lives: the configured ``taglibs``
        map first, then ``uri`` itself as a path inside the root.
        """
        mapped = self.options.taglibs.get(uri)
        if mapped is not None:
            return normalize_unit(mapped)
        if "://" in uri or uri.startswith("urn:"):
            return None
        candidate = normalize_unit(uri)
        if self.exists(candidate):
            return candidate
        if not candidate.endswith(DESCRIPTOR_SUFFIX) and self.exists(candidate + DESCRIPTOR_SUFFIX):
            return candidate + DESCRIPTOR_SUFFIX
        return None

    def load_taglib(self, uri: str) -> Optional[Tuple[TagLibraryDescriptor, str]]:
        location = self.tld_location(uri)
        if location is None:
            return None
        descriptor = self.cache.get(self.real_path(location), load_descriptor)
        return descriptor, location


__all__ = ["CompilationContext", "normalize_unit", "STRICT_SUFFIXES", "TAG_SUFFIXES"]
