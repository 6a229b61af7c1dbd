"""
Typed cell registry — the name → variable table behind the mount.

A cell is a typed view over storage the host program owns. The storage
is a ``ctypes`` object (``c_int`` for integers, a ``create_string_buffer``
array for text) so the cell can hand the program the very memory the
filesystem reads and writes, and text buffers keep a real byte capacity.

The registry never owns that storage. Keep every registered cell alive
(and its storage unchanged) until :meth:`VfsMount.cleanup` has returned.

Lookups are a linear scan in insertion order. Registries hold tens of
entries, so a scan per filesystem call is fine.
"""

from __future__ import annotations

import ctypes
import logging
import threading
from enum import Enum
from typing import Iterator, List, Optional, Union

from pydantic import BaseModel, ConfigDict

from .config import VfsConfig
from .errors import (
    CapacityExceededError,
    InvalidNameError,
    NameTooLongError,
    NotFoundError,
    RegistryFrozenError,
)
from .serializer import format_integer, format_text, parse_integer, parse_text

logger = logging.getLogger("vfspipe.registry")

_INITIAL_CAPACITY = 8

_INTEGER_CTYPES = (
    ctypes.c_byte,
    ctypes.c_ubyte,
    ctypes.c_short,
    ctypes.c_ushort,
    ctypes.c_int,
    ctypes.c_uint,
    ctypes.c_long,
    ctypes.c_ulong,
    ctypes.c_longlong,
    ctypes.c_ulonglong,
)


class VariableKind(str, Enum):
    """Closed set of variable types a cell can hold."""

    INTEGER = "integer"
    TEXT = "text"


def _is_char_array(obj: object) -> bool:
    return isinstance(obj, ctypes.Array) and getattr(obj, "_type_", None) is ctypes.c_char


# ---------------------------------------------------------------------------
# Cells
# ---------------------------------------------------------------------------


class IntegerCell:
    """An integer variable backed by a ctypes scalar.

    Args:
        value: Initial value when a fresh ``c_int`` is allocated.
        storage: Existing ctypes integer to borrow instead. Its current
            value is kept; ``value`` is ignored.
    """

    kind = VariableKind.INTEGER

    def __init__(self, value: int = 0, storage: Optional[ctypes._SimpleCData] = None) -> None:
        if storage is None:
            storage = ctypes.c_int(value)
        elif not isinstance(storage, _INTEGER_CTYPES):
            raise TypeError(f"Integer storage must be a ctypes integer, got {type(storage).__name__}")
        self.storage = storage
        self.lock = threading.RLock()

    def get(self) -> int:
        with self.lock:
            return self.storage.value

    def set(self, value: int) -> None:
        """Store ``value``, wrapping to the storage width."""
        with self.lock:
            self.storage.value = value

    value = property(get, set)

    def render(self) -> bytes:
        return format_integer(self.storage.value)

    def apply(self, data: bytes) -> None:
        self.storage.value = parse_integer(data)

    def __repr__(self) -> str:
        return f"IntegerCell({self.storage.value!r})"


class TextCell:
    """A NUL-terminated text buffer with a fixed byte capacity.

    Args:
        capacity: Buffer size in bytes, terminating NUL included. Used only
            when a fresh buffer is allocated.
        value: Initial content (``str`` is UTF-8 encoded).
        storage: Existing ctypes char array to borrow. Its size becomes
            the capacity and its content is kept unless ``value`` is given.

    Raises:
        CapacityExceededError: If ``value`` does not fit.
    """

    kind = VariableKind.TEXT

    def __init__(
        self,
        capacity: int = 64,
        value: Union[str, bytes] = "",
        storage: Optional[ctypes.Array] = None,
    ) -> None:
        if storage is None:
            if capacity < 1:
                raise ValueError("Text capacity must be at least 1 byte")
            storage = ctypes.create_string_buffer(capacity)
        elif not _is_char_array(storage):
            raise TypeError(f"Text storage must be a ctypes char array, got {type(storage).__name__}")
        self.storage = storage
        self.lock = threading.RLock()
        if value:
            self.set(value)

    @property
    def capacity(self) -> int:
        return len(self.storage)

    def get(self) -> str:
        with self.lock:
            return self.storage.value.decode("utf-8", errors="replace")

    def set(self, value: Union[str, bytes]) -> None:
        """Replace the content.

        Raises:
            CapacityExceededError: If the value plus its NUL exceeds capacity.
        """
        raw = value.encode("utf-8") if isinstance(value, str) else bytes(value)
        with self.lock:
            self._store(raw.split(b"\x00", 1)[0])

    value = property(get, set)

    def render(self) -> bytes:
        return format_text(self.storage.value)

    def apply(self, data: bytes) -> None:
        self._store(parse_text(data))

    def _store(self, raw: bytes) -> None:
        if len(raw) + 1 > self.capacity:
            raise CapacityExceededError(
                f"{len(raw)} bytes do not fit a {self.capacity}-byte text buffer"
            )
        self.storage.value = raw

    def __repr__(self) -> str:
        return f"TextCell({self.storage.value!r}, capacity={self.capacity})"


Cell = Union[IntegerCell, TextCell]

_CELL_TYPES = {VariableKind.INTEGER: IntegerCell, VariableKind.TEXT: TextCell}


class RegisteredVariable(BaseModel):
    """One registry entry. Name, kind and cell never change once created."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str
    kind: VariableKind
    cell: Union[IntegerCell, TextCell]

    @property
    def path(self) -> str:
        return "/" + self.name


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class Registry:
    """Append-only, insertion-ordered table of registered variables.

    Args:
        config: Name bounds and text defaults. Defaults to ``VfsConfig()``.
    """

    def __init__(self, config: Optional[VfsConfig] = None) -> None:
        self.config = config or VfsConfig()
        self._entries: List[RegisteredVariable] = []
        self._capacity = 0
        self._frozen = False
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register(self, name: str, kind: VariableKind, cell: Cell) -> RegisteredVariable:
        """Append a variable to the registry.

        Duplicate names are kept; lookups resolve to the first one.

        Args:
            name: File name under the mount root.
            kind: Variable kind; must match the cell type.
            cell: The cell to expose.

        Returns:
            The new entry.

        Raises:
            RegistryFrozenError: If the registry is mounted.
            InvalidNameError: If the name is not a usable file name.
            NameTooLongError: If the name is too long and ``strict_names`` is set.
            TypeError: If ``kind`` does not match the cell.
        """
        kind = VariableKind(kind)
        if not isinstance(cell, _CELL_TYPES[kind]):
            raise TypeError(f"{kind.value} variable needs a {_CELL_TYPES[kind].__name__}")
        name = self._check_name(name)

        with self._lock:
            if self._frozen:
                raise RegistryFrozenError(f"Cannot register {name!r}: registry is mounted")
            self._grow_if_needed()
            entry = RegisteredVariable(name=name, kind=kind, cell=cell)
            self._entries.append(entry)

        logger.debug("Registered %s variable %r", kind.value, name)
        return entry

    def register_integer(self, name: str, target: Union[IntegerCell, ctypes._SimpleCData, int] = 0) -> IntegerCell:
        """Register an integer variable.

        Args:
            name: File name under the mount root.
            target: An :class:`IntegerCell`, a ctypes integer to borrow, or
                an ``int`` initial value for a new cell.

        Returns:
            The registered cell.
        """
        if isinstance(target, IntegerCell):
            cell = target
        elif isinstance(target, int) and not isinstance(target, bool):
            cell = IntegerCell(target)
        else:
            cell = IntegerCell(storage=target)
        self.register(name, VariableKind.INTEGER, cell)
        return cell

    def register_text(
        self,
        name: str,
        target: Union[TextCell, ctypes.Array, str, bytes] = "",
        capacity: Optional[int] = None,
    ) -> TextCell:
        """Register a text variable.

        Args:
            name: File name under the mount root.
            target: A :class:`TextCell`, a ctypes char array to borrow, or
                an initial ``str``/``bytes`` value for a new cell.
            capacity: Buffer size for a new cell. Defaults to
                ``config.default_text_capacity``.

        Returns:
            The registered cell.
        """
        if isinstance(target, TextCell):
            cell = target
        elif isinstance(target, (str, bytes)):
            if capacity is None:
                capacity = self.config.default_text_capacity
            cell = TextCell(capacity, value=target)
        else:
            cell = TextCell(storage=target)
        self.register(name, VariableKind.TEXT, cell)
        return cell

    def _check_name(self, name: str) -> str:
        if not name or name in (".", "..") or "/" in name or "\x00" in name:
            raise InvalidNameError(f"Invalid variable name: {name!r}")

        encoded = name.encode("utf-8")
        limit = self.config.max_name_bytes
        if len(encoded) <= limit:
            return name
        if self.config.strict_names:
            raise NameTooLongError(f"Variable name exceeds {limit} bytes: {name!r}")
        short = encoded[:limit].decode("utf-8", errors="ignore")
        logger.warning("Variable name %r truncated to %r (%d-byte limit)", name, short, limit)
        return short

    def _grow_if_needed(self) -> None:
        if len(self._entries) >= self._capacity:
            self._capacity = _INITIAL_CAPACITY if self._capacity == 0 else self._capacity * 2

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def lookup(self, path: str) -> Optional[int]:
        """Return the index of the first entry named by ``path``.

        Args:
            path: Filesystem path such as ``/kills``.

        Returns:
            Entry index, or None if nothing matches.
        """
        if not path.startswith("/"):
            return None
        name = path[1:]
        for index, entry in enumerate(self._entries):
            if entry.name == name:
                return index
        return None

    def get(self, path: str) -> Optional[RegisteredVariable]:
        index = self.lookup(path)
        return None if index is None else self._entries[index]

    def resolve(self, path: str) -> RegisteredVariable:
        """Like :meth:`get` but raises :class:`NotFoundError` on a miss."""
        entry = self.get(path)
        if entry is None:
            raise NotFoundError(f"No variable registered at {path}")
        return entry

    def names(self) -> List[str]:
        return [entry.name for entry in self._entries]

    def entries(self) -> List[RegisteredVariable]:
        return list(self._entries)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def capacity(self) -> int:
        """Slots reserved for entries (0, then 8, doubling when full)."""
        return self._capacity

    @property
    def frozen(self) -> bool:
        return self._frozen

    def freeze(self) -> None:
        """Refuse further registrations (called when the mount starts)."""
        with self._lock:
            self._frozen = True

    def unfreeze(self) -> None:
        """Accept registrations again (the mount never came up)."""
        with self._lock:
            self._frozen = False

    def clear(self) -> None:
        """Drop every entry and release the backing table."""
        with self._lock:
            self._entries = []
            self._capacity = 0
            self._frozen = False

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[RegisteredVariable]:
        return iter(list(self._entries))
