"""Tests for the content serializer: codecs, clipping and cell updates."""

from __future__ import annotations

import threading

import pytest

from vfspipe import config
from vfspipe.errors import CapacityExceededError, TruncatedError
from vfspipe.registry import IntegerCell, TextCell
from vfspipe.serializer import (
    MAX_INPUT_BYTES,
    clip_input,
    format_integer,
    format_text,
    parse_and_apply,
    parse_integer,
    parse_text,
    render,
)


# ---------------------------------------------------------------------------
# TestCodecs
# ---------------------------------------------------------------------------


class TestCodecs:
    """Tests for the byte-level format and parse helpers."""

    def test_format_integer(self) -> None:
        """Integers become decimal ASCII plus one newline."""
        assert format_integer(0) == b"0\n"
        assert format_integer(-42) == b"-42\n"

    def test_format_text(self) -> None:
        """Text gains exactly one newline."""
        assert format_text(b"PlayerOne") == b"PlayerOne\n"
        assert format_text(b"") == b"\n"

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"42", 42),
            (b"42\n", 42),
            (b"  -7\n", -7),
            (b"+5", 5),
            (b"\t\r\n 9", 9),
            (b"12abc", 12),
            (b"abc", 0),
            (b"", 0),
            (b"\n", 0),
            (b"- 3", 0),
            (b"0x1f", 0),
        ],
    )
    def test_parse_integer_is_atoi(self, data: bytes, expected: int) -> None:
        """Parsing follows C atoi: lenient, garbage is zero."""
        assert parse_integer(data) == expected

    @pytest.mark.parametrize(
        ("data", "expected"),
        [
            (b"TheBoss\n", b"TheBoss"),
            (b"TheBoss", b"TheBoss"),
            (b"two\n\n", b"two\n"),
            (b"\n", b""),
            (b"", b""),
            (b"cut\x00here\n", b"cut"),
        ],
    )
    def test_parse_text(self, data: bytes, expected: bytes) -> None:
        """One trailing newline is stripped; a NUL ends the string."""
        assert parse_text(data) == expected


# ---------------------------------------------------------------------------
# TestClipInput
# ---------------------------------------------------------------------------


class TestClipInput:
    """Tests for the 255-byte input bound."""

    def test_bound_matches_config(self) -> None:
        """The default clip bound is the configured write bound."""
        assert MAX_INPUT_BYTES == config.MAX_INPUT_BYTES == config.VfsConfig().max_input_bytes

    def test_short_input_untouched(self) -> None:
        """Input within the bound is returned as-is."""
        assert clip_input(b"hello") == b"hello"

    def test_exact_bound_untouched(self) -> None:
        """Input of exactly 255 bytes is kept whole."""
        data = b"a" * MAX_INPUT_BYTES
        assert clip_input(data) == data

    def test_long_input_clipped_at_255(self) -> None:
        """Longer input keeps its first 255 bytes."""
        data = bytes(range(256)) + b"tail"
        assert clip_input(data) == data[:255]

    def test_strict_raises(self) -> None:
        """Strict mode refuses over-long input."""
        with pytest.raises(TruncatedError):
            clip_input(b"a" * 256, strict=True)

    def test_custom_limit(self) -> None:
        """The bound is configurable."""
        assert clip_input(b"abcdef", limit=3) == b"abc"


# ---------------------------------------------------------------------------
# TestCellOperations
# ---------------------------------------------------------------------------


class TestCellOperations:
    """Tests for render() and parse_and_apply() on cells."""

    def test_kills_scenario(self) -> None:
        """0 renders as '0\\n'; writing '42' renders '42\\n'."""
        kills = IntegerCell(0)
        assert render(kills) == b"0\n"
        parse_and_apply(kills, b"42")
        assert render(kills) == b"42\n"

    @pytest.mark.parametrize("value", [0, 1, -1, 2**31 - 1, -(2**31), 123456])
    def test_integer_round_trip(self, value: int) -> None:
        """Writing str(v) then reading yields str(v) + newline."""
        cell = IntegerCell()
        parse_and_apply(cell, str(value).encode())
        assert render(cell) == f"{value}\n".encode()

    @pytest.mark.parametrize("written", [b"hello", b"hello\n"])
    def test_text_round_trip_single_newline(self, written: bytes) -> None:
        """With or without newline, reading back has exactly one."""
        cell = TextCell(32)
        parse_and_apply(cell, written)
        assert render(cell) == b"hello\n"

    def test_render_is_live(self) -> None:
        """Rendering reflects host-side changes immediately."""
        cell = IntegerCell(1)
        first = render(cell)
        cell.value = 2
        assert first == b"1\n"
        assert render(cell) == b"2\n"

    def test_render_idempotent(self) -> None:
        """Two reads without a write are identical."""
        cell = TextCell(16, "same")
        assert render(cell) == render(cell)

    def test_text_over_capacity_fails_and_keeps_value(self) -> None:
        """A write that would overflow the buffer fails cleanly."""
        cell = TextCell(8, "short")
        with pytest.raises(CapacityExceededError):
            parse_and_apply(cell, b"much too long\n")
        assert cell.value == "short"
        assert cell.storage.raw[:6] == b"short\x00"

    def test_newline_does_not_count_against_capacity(self) -> None:
        """'abc\\n' fits a 4-byte buffer because the newline is stripped."""
        cell = TextCell(4)
        parse_and_apply(cell, b"abc\n")
        assert cell.value == "abc"

    def test_text_write_clipped_at_255(self) -> None:
        """A 300-byte write stores exactly the first 255 bytes."""
        cell = TextCell(512)
        parse_and_apply(cell, b"x" * 300)
        assert cell.value == "x" * 255

    def test_newline_at_bound_is_stripped(self) -> None:
        """A newline landing on byte 255 is stripped after clipping."""
        cell = TextCell(512)
        parse_and_apply(cell, b"y" * 254 + b"\n" + b"z" * 10)
        assert cell.value == "y" * 254

    def test_strict_write_rejected(self) -> None:
        """Strict mode leaves the value untouched on over-long input."""
        cell = IntegerCell(5)
        with pytest.raises(TruncatedError):
            parse_and_apply(cell, b"1" * 300, strict=True)
        assert cell.value == 5

    def test_render_waits_for_cell_lock(self) -> None:
        """render() blocks while another thread holds the cell lock."""
        cell = IntegerCell(1)
        results = []
        cell.lock.acquire()
        try:
            reader = threading.Thread(target=lambda: results.append(render(cell)))
            reader.start()
            reader.join(timeout=0.2)
            assert reader.is_alive()
            cell.storage.value = 9
        finally:
            cell.lock.release()
        reader.join(timeout=2)
        assert results == [b"9\n"]
