"""Shared utilities for the CLI command modules."""

from __future__ import annotations

import logging

from rich.console import Console

from .. import DEFAULT_MOUNT

console = Console()

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


def setup_logging(verbose: bool = False) -> None:
    """Attach a stderr handler to the ``vfspipe`` logger.

    Args:
        verbose: Log at DEBUG instead of WARNING.
    """
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger("vfspipe")
    root.handlers[:] = [handler]
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)


__all__ = ["DEFAULT_MOUNT", "LOG_FORMAT", "console", "setup_logging"]
