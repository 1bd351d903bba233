"""
Compiler configuration.

Options are a pydantic model with defaults in code, optionally loaded
from a ``tplc.yaml`` file. Property groups apply per-unit settings
selected by URL pattern, the way a web descriptor configures pages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_CFG_FILE = "tplc.yaml"
DEFAULT_PAGE_ENCODING = "ISO-8859-1"

# --------------------------------------------------------------------------- #
# YAML loader
# --------------------------------------------------------------------------- #
_yaml = YAML(typ="safe")


# --------------------------------------------------------------------------- #
# MODELS
# --------------------------------------------------------------------------- #
class PropertyGroup(BaseModel):
    """Settings applied to the units matching any of ``url_patterns``."""

    model_config = ConfigDict(extra="forbid")

    url_patterns: List[str]
    el_ignored: Optional[bool] = None
    scripting_invalid: Optional[bool] = None
    page_encoding: Optional[str] = None
    is_xml: Optional[bool] = None
    include_prelude: List[str] = Field(default_factory=list)
    include_coda: List[str] = Field(default_factory=list)
    deferred_syntax_allowed_as_literal: Optional[bool] = None
    trim_directive_whitespaces: Optional[bool] = None
    default_content_type: Optional[str] = None
    buffer: Optional[str] = None
    error_on_undeclared_namespace: Optional[bool] = None


class CompilerOptions(BaseModel):
    """Global compiler settings."""

    model_config = ConfigDict(extra="forbid")

    default_encoding: str = DEFAULT_PAGE_ENCODING
    trim_spaces: bool = False
    strict_whitespace: bool = True
    gen_string_as_char_array: bool = False
    # per-write budget for literal text, in UTF-8 bytes
    text_chunk_size: int = 1024
    mapped_file: bool = False
    pooling_enabled: bool = True
    error_on_undeclared_namespace: bool = False
    strict_quote_escaping: bool = True
    quote_attribute_el: bool = True
    taglibs: Dict[str, str] = Field(default_factory=dict)
    property_groups: List[PropertyGroup] = Field(default_factory=list)

    @field_validator("text_chunk_size")
    @classmethod
    def _positive_chunk(cls, v: int) -> int:
        if v < 4:
            raise ValueError("text_chunk_size must be at least 4 bytes")
        return v


@dataclass
class UnitProperties:
    """Effective property-group settings of one unit (``None`` = unset)."""
    is_xml: Optional[bool] = None
    el_ignored: Optional[bool] = None
    scripting_invalid: Optional[bool] = None
    page_encoding: Optional[str] = None
    include_prelude: List[str] = field(default_factory=list)
    include_coda: List[str] = field(default_factory=list)
    deferred_syntax_allowed_as_literal: Optional[bool] = None
    trim_directive_whitespaces: Optional[bool] = None
    default_content_type: Optional[str] = None
    buffer: Optional[str] = None
    error_on_undeclared_namespace: bool = False


# --------------------------------------------------------------------------- #
# PROPERTY GROUP MATCHING
# --------------------------------------------------------------------------- #
@dataclass(frozen=True)
class _Pattern:
    path: Optional[str]
    extension: Optional[str]
    group: PropertyGroup


def _split_pattern(pattern: str, group: PropertyGroup) -> Optional[_Pattern]:
    if "*" not in pattern:
        return _Pattern(pattern, None, group)
    i = pattern.rfind("/")
    path: Optional[str] = None
    if i >= 0:
        path, file = pattern[: i + 1], pattern[i + 1:]
    else:
        file = pattern
    extension: Optional[str] = None
    if file == "*":
        extension = "*"
    elif file.startswith("*."):
        extension = file[file.index(".") + 1:]
    is_star = extension == "*"
    if (path is None and (extension is None or is_star)) or (path is not None and not is_star):
        logger.warning("ignoring bad url pattern in property group: %s", pattern)
        return None
    return _Pattern(path, extension, group)


def _more_specific(prev: Optional[_Pattern], curr: _Pattern) -> _Pattern:
    if prev is None:
        return curr
    if prev.extension is None:
        return prev
    if curr.extension is None:
        return curr
    if prev.path is None and curr.path is None:
        return prev
    if prev.path is None:
        return curr
    if curr.path is None:
        return prev
    return prev if len(prev.path) >= len(curr.path) else curr


_SCALAR_FIELDS = (
    "is_xml", "el_ignored", "scripting_invalid", "page_encoding",
    "deferred_syntax_allowed_as_literal", "trim_directive_whitespaces",
    "default_content_type", "buffer", "error_on_undeclared_namespace",
)


def find_property(options: CompilerOptions, uri: str) -> UnitProperties:
    """
    Resolve the property-group settings of ``uri``.

    Exact patterns beat wildcard ones, longer path prefixes beat shorter
    ones and a path prefix beats an extension; preludes and codas of all
    matching groups accumulate in declaration order. Tag files never take
    property-group settings.
    """
    result = UnitProperties(error_on_undeclared_namespace=options.error_on_undeclared_namespace)
    if not options.property_groups or uri.endswith(".tag") or uri.endswith(".tagx"):
        return result

    i = uri.rfind("/")
    uri_path = uri[: i + 1] if i >= 0 else None
    i = uri.rfind(".")
    uri_ext = uri[i + 1:] if i >= 0 else None

    best: Dict[str, Optional[_Pattern]] = {name: None for name in _SCALAR_FIELDS}
    for group in options.property_groups:
        for raw in group.url_patterns:
            pat = _split_pattern(raw, group)
            if pat is None:
                continue
            if pat.extension is None:
                if uri != pat.path:
                    continue
            else:
                if pat.path is not None and uri_path is not None and not uri_path.startswith(pat.path):
                    continue
                if pat.extension != "*" and pat.extension != uri_ext:
                    continue
            result.include_prelude.extend(group.include_prelude)
            result.include_coda.extend(group.include_coda)
            for name in _SCALAR_FIELDS:
                if getattr(group, name) is not None:
                    best[name] = _more_specific(best[name], pat)

    for name, pat in best.items():
        if pat is not None:
            setattr(result, name, getattr(pat.group, name))
    return result


# --------------------------------------------------------------------------- #
# PUBLIC API
# --------------------------------------------------------------------------- #
def load_options(path: Optional[Path]) -> CompilerOptions:
    """
    Load compiler options from a YAML file.

    A missing path (or ``None``) gives the defaults.

    Raises:
        ConfigError: Malformed YAML or unknown / mistyped keys
    """
    if path is None or not path.exists():
        return CompilerOptions()
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    try:
        options = CompilerOptions.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid configuration {path}:\n{e}") from e
    logger.debug("loaded options from %s", path)
    return options


__all__ = [
    "DEFAULT_CFG_FILE", "DEFAULT_PAGE_ENCODING", "PropertyGroup",
    "CompilerOptions", "UnitProperties", "find_property", "load_options",
]
