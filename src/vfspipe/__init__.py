"""
vfspipe — live program variables as files.

Register variables of a running program and mount them as a flat FUSE
directory. Every registered name becomes a file: ``cat`` shows the
current value, ``echo 42 > file`` changes it.

    from vfspipe import Registry, VfsMount

    registry = Registry()
    kills = registry.register_integer("kills", 0)
    with VfsMount(registry, "/tmp/vfs"):
        ...
"""

import os

__version__ = "0.1.0"

DEFAULT_MOUNT = os.environ.get("VFSPIPE_MOUNT", "/tmp/vfs")

from .errors import (  # noqa: E402
    CapacityExceededError,
    InvalidNameError,
    MountError,
    NameTooLongError,
    NotFoundError,
    RegistryFrozenError,
    TruncatedError,
    VfsError,
)
from .config import VfsConfig, load_config  # noqa: E402
from .registry import (  # noqa: E402
    IntegerCell,
    RegisteredVariable,
    Registry,
    TextCell,
    VariableKind,
)
from .fuse_mount import VariableFS, VfsMount, vfs_cleanup, vfs_init  # noqa: E402

__all__ = [
    "CapacityExceededError",
    "DEFAULT_MOUNT",
    "IntegerCell",
    "InvalidNameError",
    "MountError",
    "NameTooLongError",
    "NotFoundError",
    "RegisteredVariable",
    "Registry",
    "RegistryFrozenError",
    "TextCell",
    "TruncatedError",
    "VariableFS",
    "VariableKind",
    "VfsConfig",
    "VfsError",
    "VfsMount",
    "load_config",
    "vfs_cleanup",
    "vfs_init",
]
