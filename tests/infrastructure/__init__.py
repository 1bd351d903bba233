"""
Shared test infrastructure.

Modules:
- file_utils: writing files and moving modification times
- site: a temporary source root that compiles templates
"""

from .file_utils import dedent, touch_later, write, write_bytes
from .site import DEMO_TAGLIB, DEMO_TLD, Site

__all__ = ["write", "write_bytes", "dedent", "touch_later", "Site", "DEMO_TLD", "DEMO_TAGLIB"]
