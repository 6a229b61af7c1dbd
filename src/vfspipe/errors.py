"""Exceptions raised by the registry, the serializer and the mount.

Each exception carries the ``errno`` the FUSE adapter reports to the
shell command that triggered it.
"""

from __future__ import annotations

import errno as _errno


class VfsError(Exception):
    """Base class for vfspipe failures."""

    errno: int = _errno.EIO


class NotFoundError(VfsError):
    """No registered variable matches the path."""

    errno = _errno.ENOENT


class TruncatedError(VfsError):
    """Written input is longer than the accepted bound."""

    errno = _errno.EFBIG


class CapacityExceededError(VfsError):
    """A text value does not fit its destination buffer."""

    errno = _errno.ENOSPC


class RegistryFrozenError(VfsError):
    """Registration attempted while the registry is mounted."""

    errno = _errno.EBUSY


class InvalidNameError(VfsError, ValueError):
    """A variable name cannot be used as a file name."""

    errno = _errno.EINVAL


class NameTooLongError(VfsError):
    """A variable name exceeds the name bound (strict mode only)."""

    errno = _errno.ENAMETOOLONG


class MountError(VfsError):
    """The filesystem could not be mounted."""
