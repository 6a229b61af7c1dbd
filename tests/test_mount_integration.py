"""End-to-end tests against a real FUSE mount.

Opt-in: set ``VFSPIPE_FUSE_TESTS=1`` on a machine with libfuse,
``/dev/fuse`` and ``fusermount``.
"""

from __future__ import annotations

import ctypes
import os
import shutil
from pathlib import Path

import pytest

from vfspipe.config import VfsConfig
from vfspipe.fuse_mount import VfsMount
from vfspipe.registry import Registry

pytestmark = [
    pytest.mark.fuse,
    pytest.mark.skipif(
        os.environ.get("VFSPIPE_FUSE_TESTS") != "1"
        or not os.path.exists("/dev/fuse")
        or shutil.which("fusermount") is None,
        reason="real FUSE tests are opt-in (VFSPIPE_FUSE_TESTS=1)",
    ),
]


@pytest.fixture
def mounted(tmp_path: Path):
    """Mount the game variables and yield (mount path, cells)."""
    pytest.importorskip("fuse")
    registry = Registry(VfsConfig(mount_path=tmp_path / "vfs"))
    kills = registry.register_integer("kills", 0)
    name = registry.register_text("player_name", ctypes.create_string_buffer(b"PlayerOne", 64))
    mount = VfsMount(registry)
    mount.init(wait=True)
    try:
        yield mount.mount_path, kills, name
    finally:
        mount.cleanup()


def test_cat_and_echo(mounted) -> None:
    """Reading and writing through the kernel reach the cells."""
    mount_path, kills, name = mounted
    assert (mount_path / "kills").read_bytes() == b"0\n"

    (mount_path / "kills").write_bytes(b"42\n")
    assert kills.value == 42
    assert (mount_path / "kills").read_bytes() == b"42\n"

    (mount_path / "player_name").write_text("TheBoss\n")
    assert name.value == "TheBoss"


def test_ls(mounted) -> None:
    """The mount lists the registered names in order."""
    mount_path, _, _ = mounted
    assert os.listdir(mount_path) == ["kills", "player_name"]


def test_overflow_is_refused(mounted) -> None:
    """Writing more text than the buffer holds fails with ENOSPC."""
    mount_path, _, name = mounted
    with pytest.raises(OSError):
        (mount_path / "player_name").write_bytes(b"x" * 100)
    assert name.value == "PlayerOne"
