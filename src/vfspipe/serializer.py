"""
Content serializer — variable values to file bytes and back.

Reads always render the live value followed by a newline. Writes are
clipped to a fixed bound and parsed leniently: integers follow C ``atoi``
(garbage parses as ``0``), text loses one trailing newline.
"""

from __future__ import annotations

import logging
import re
from typing import TYPE_CHECKING

from .config import MAX_INPUT_BYTES
from .errors import TruncatedError

if TYPE_CHECKING:
    from .registry import Cell

logger = logging.getLogger("vfspipe.serializer")

# Leading C isspace() characters, an optional sign, then digits.
_ATOI_RE = re.compile(rb"[ \t\n\v\f\r]*([+-]?[0-9]+)")


# ---------------------------------------------------------------------------
# Codecs
# ---------------------------------------------------------------------------


def format_integer(value: int) -> bytes:
    return b"%d\n" % value


def format_text(raw: bytes) -> bytes:
    return raw + b"\n"


def parse_integer(data: bytes) -> int:
    """Parse ``data`` the way C ``atoi`` does.

    Args:
        data: Raw bytes written to the file.

    Returns:
        The leading decimal integer, or 0 if there is none.
    """
    match = _ATOI_RE.match(data)
    return int(match.group(1)) if match else 0


def parse_text(data: bytes) -> bytes:
    """Return the text a write stores: up to the first NUL, minus one ``\\n``."""
    text = data.split(b"\x00", 1)[0]
    if text.endswith(b"\n"):
        text = text[:-1]
    return text


def clip_input(data: bytes, limit: int = MAX_INPUT_BYTES, strict: bool = False) -> bytes:
    """Bound a write to ``limit`` bytes.

    Args:
        data: Bytes handed to the write call.
        limit: Maximum number of bytes interpreted.
        strict: Raise instead of clipping.

    Returns:
        The first ``limit`` bytes of ``data``.

    Raises:
        TruncatedError: If ``strict`` and ``data`` is longer than ``limit``.
    """
    if len(data) <= limit:
        return data
    if strict:
        raise TruncatedError(f"Input of {len(data)} bytes exceeds the {limit}-byte limit")
    logger.debug("Clipping %d-byte write to %d bytes", len(data), limit)
    return data[:limit]


# ---------------------------------------------------------------------------
# Cell-level operations
# ---------------------------------------------------------------------------


def render(cell: Cell) -> bytes:
    """Render the current value of ``cell`` as file content."""
    with cell.lock:
        return cell.render()


def parse_and_apply(
    cell: Cell,
    data: bytes,
    limit: int = MAX_INPUT_BYTES,
    strict: bool = False,
) -> None:
    """Parse written bytes and store the result in ``cell``.

    Args:
        cell: Destination cell.
        data: Bytes handed to the write call.
        limit: Clipping bound, see :func:`clip_input`.
        strict: Reject over-long input instead of clipping it.

    Raises:
        TruncatedError: Over-long input in strict mode.
        CapacityExceededError: Text that does not fit the cell's buffer.
            The cell keeps its previous value.
    """
    clipped = clip_input(data, limit=limit, strict=strict)
    with cell.lock:
        cell.apply(clipped)
