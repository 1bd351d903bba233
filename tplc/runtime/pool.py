"""
Pools of reusable tag handlers.

A page keeps one pool per call-site signature. Pages are served by many
threads at once, so borrowing and returning are guarded by a lock; the
lock is never held while a handler is constructed or released.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, List, Optional

logger = logging.getLogger(__name__)

DEFAULT_POOL_SIZE = 5
POOL_SIZE_PARAMETER = "tag_pool_max_size"


class HandlerPool:
    """
    Args:
        max_size: Number of idle handlers kept; extra ones are released
    """

    def __init__(self, max_size: int = DEFAULT_POOL_SIZE):
        if max_size < 0:
            raise ValueError(f"pool size must not be negative: {max_size}")
        self.max_size = max_size
        self._handlers: List[Any] = []
        self._lock = threading.Lock()

    @classmethod
    def for_config(cls, config: Optional[Any] = None) -> "HandlerPool":
        """Pool sized by the ``tag_pool_max_size`` init parameter of ``config``."""
        size = DEFAULT_POOL_SIZE
        if config is not None:
            value = config.get_init_parameter(POOL_SIZE_PARAMETER)
            if value is not None:
                try:
                    size = max(int(value), 0)
                except ValueError:
                    logger.warning("ignoring invalid %s %r", POOL_SIZE_PARAMETER, value)
        return cls(size)

    def get(self, handler_class: type) -> Any:
        """An idle handler, or a new instance of ``handler_class``."""
        with self._lock:
            if self._handlers:
                return self._handlers.pop()
        return handler_class()

    def reuse(self, handler: Any) -> None:
        """
        Return a handler that completed normally.

        Handlers left behind by a failure are never returned here; the
        generated code releases them instead.
        """
        with self._lock:
            if len(self._handlers) < self.max_size:
                self._handlers.append(handler)
                return
        handler.release()

    def release(self) -> None:
        """Release every idle handler; called when the page is destroyed."""
        with self._lock:
            handlers, self._handlers = self._handlers, []
        for handler in handlers:
            handler.release()

    def __len__(self) -> int:
        with self._lock:
            return len(self._handlers)


__all__ = ["HandlerPool", "DEFAULT_POOL_SIZE", "POOL_SIZE_PARAMETER"]
