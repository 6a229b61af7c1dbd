"""Shared test fixtures for vfspipe."""

from __future__ import annotations

from pathlib import Path

import pytest

from vfspipe.config import VfsConfig
from vfspipe.registry import Registry


@pytest.fixture
def config(tmp_path: Path) -> VfsConfig:
    """Provide a default config mounting under the test's tmp directory."""
    return VfsConfig(mount_path=tmp_path / "vfs", unmount_timeout=2.0, mount_timeout=2.0)


@pytest.fixture
def registry(config: VfsConfig) -> Registry:
    """Provide an empty registry."""
    return Registry(config=config)


@pytest.fixture
def game_registry(registry: Registry) -> Registry:
    """Provide a registry with the classic game variables."""
    registry.register_integer("kills", 0)
    registry.register_integer("level", 1)
    registry.register_text("player_name", "PlayerOne", capacity=64)
    return registry
