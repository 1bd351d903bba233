"""
Process-wide cache of parsed tag library descriptors.

Entries are keyed by the descriptor's resolved path and validated against
its modification time; concurrent compiles share entries through an
insert-if-absent discipline and never mutate a published descriptor.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Dict, Optional

from .model import TagLibraryDescriptor

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Entry:
    mtime_ns: int
    descriptor: TagLibraryDescriptor


class DescriptorCache:
    def __init__(self) -> None:
        self._entries: Dict[str, _Entry] = {}
        self._lock = threading.Lock()

    def get(self, path: Path, load: Callable[[Path], TagLibraryDescriptor]) -> TagLibraryDescriptor:
        """
        Return the descriptor at ``path``, loading it on first use or when
        the file changed since it was cached.

        Args:
            path: Descriptor file
            load: Parser used on a miss

        Returns:
            The published descriptor; all callers racing on the same key
            observe the same instance
        """
        key = str(path.resolve())
        mtime = path.stat().st_mtime_ns
        entry = self._entries.get(key)
        if entry is not None and entry.mtime_ns == mtime:
            logger.debug("descriptor cache hit: %s", key)
            return entry.descriptor
        descriptor = load(path)
        with self._lock:
            current = self._entries.get(key)
            if current is not None and current.mtime_ns == mtime:
                return current.descriptor
            self._entries[key] = _Entry(mtime, descriptor)
        logger.debug("descriptor cached: %s", key)
        return descriptor

    def peek(self, path: Path) -> Optional[TagLibraryDescriptor]:
        entry = self._entries.get(str(path.resolve()))
        return entry.descriptor if entry is not None else None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


DEFAULT_CACHE = DescriptorCache()


__all__ = ["DescriptorCache", "DEFAULT_CACHE"]
