"""
Configuration for the variable filesystem.

Defaults reproduce the classic behaviour (256-byte reported size,
255-byte write bound, 63-byte names). A YAML file can override any
field:

.. code-block:: yaml

    mount_path: /tmp/vfs
    strict_input: true
    nothreads: false
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, Field

from . import DEFAULT_MOUNT

logger = logging.getLogger("vfspipe.config")

REPORTED_SIZE = 256
MAX_INPUT_BYTES = 255
MAX_NAME_BYTES = 63
DEFAULT_TEXT_CAPACITY = 64


class VfsConfig(BaseModel):
    """Tunables for the registry, the serializer and the mount."""

    mount_path: Path = Field(default_factory=lambda: Path(DEFAULT_MOUNT))
    reported_size: int = Field(default=REPORTED_SIZE, ge=0)
    max_input_bytes: int = Field(default=MAX_INPUT_BYTES, ge=1)
    max_name_bytes: int = Field(default=MAX_NAME_BYTES, ge=1)
    default_text_capacity: int = Field(default=DEFAULT_TEXT_CAPACITY, ge=1)
    strict_names: bool = False
    strict_input: bool = False
    nothreads: bool = True
    allow_other: bool = False
    direct_io: bool = False
    mount_timeout: float = Field(default=5.0, gt=0)
    unmount_timeout: float = Field(default=5.0, gt=0)


def load_config(path: Optional[Path] = None) -> VfsConfig:
    """Load a :class:`VfsConfig` from a YAML file.

    Args:
        path: YAML file to read. ``None`` or a missing file yields defaults.

    Returns:
        VfsConfig: Parsed configuration, or defaults if the file is
        unreadable or invalid.
    """
    if path is None:
        return VfsConfig()
    path = Path(path).expanduser()
    if not path.exists():
        return VfsConfig()
    try:
        data: Any = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
        return VfsConfig.model_validate(data)
    except (yaml.YAMLError, ValueError, OSError) as exc:
        logger.warning("Failed to load config %s: %s — using defaults", path, exc)
        return VfsConfig()
