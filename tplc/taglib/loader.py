"""Reading ``*.tld.yaml`` descriptors."""

from __future__ import annotations

import logging
from pathlib import Path

from pydantic import ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from ..errors import ConfigError
from .model import TagLibraryDescriptor

logger = logging.getLogger(__name__)

_yaml = YAML(typ="safe")

DESCRIPTOR_SUFFIX = ".tld.yaml"


def _read_yaml_map(path: Path) -> dict:
    try:
        raw = _yaml.load(path.read_text(encoding="utf-8")) or {}
    except YAMLError as e:
        raise ConfigError(f"invalid YAML in {path}: {e}") from e
    if not isinstance(raw, dict):
        raise ConfigError(f"YAML must be a mapping: {path}")
    return raw


def load_descriptor(path: Path) -> TagLibraryDescriptor:
    """
    Parse and validate one descriptor file.

    Raises:
        ConfigError: Unreadable file, malformed YAML or schema violation
    """
    if not path.is_file():
        raise ConfigError(f"tag library descriptor not found: {path}")
    raw = _read_yaml_map(path)
    try:
        descriptor = TagLibraryDescriptor.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(f"invalid tag library descriptor {path}:\n{e}") from e
    for tag in descriptor.tags:
        try:
            tag.capability_set()
        except ValueError as e:
            raise ConfigError(f"{path}: {e}") from e
    logger.debug("loaded descriptor %s (%d tags, %d functions)",
                 path, len(descriptor.tags), len(descriptor.functions))
    return descriptor


__all__ = ["DESCRIPTOR_SUFFIX", "load_descriptor"]
