"""
FUSE Mount — registered variables as a flat virtual directory.

Virtual directory layout::

    /
    ├── kills          — "0\\n"
    ├── player_name    — "PlayerOne\\n"
    └── ...            — one file per registered variable

``cat /tmp/vfs/kills`` renders the live value; ``echo 42 > /tmp/vfs/kills``
parses the input and stores it in the variable.

The FUSE event loop runs in a background thread owned by :class:`VfsMount`.

Dependencies:
    pip install vfspipe  # pulls in fusepy; libfuse must be installed
"""

from __future__ import annotations

import errno
import logging
import os
import stat
import subprocess
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from types import TracebackType
from typing import Any, Dict, List, Optional, Tuple, Type

from pydantic import BaseModel

from .config import VfsConfig
from .errors import MountError, VfsError
from .registry import RegisteredVariable, Registry
from .serializer import parse_and_apply, render

logger = logging.getLogger("vfspipe.fuse")

_POLL_INTERVAL = 0.05


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _now_ts() -> float:
    """Return the current UTC time as a POSIX timestamp."""
    return datetime.now(timezone.utc).timestamp()


def _dir_stat(nlink: int = 2) -> Dict[str, Any]:
    """Build a stat dict for the mount root.

    Args:
        nlink: Number of hard links (default: 2).

    Returns:
        Stat dictionary suitable for a fusepy ``getattr``.
    """
    ts = _now_ts()
    return {
        "st_mode": stat.S_IFDIR | 0o755,
        "st_nlink": nlink,
        "st_uid": os.getuid(),
        "st_gid": os.getgid(),
        "st_size": 0,
        "st_atime": ts,
        "st_mtime": ts,
        "st_ctime": ts,
    }


def _file_stat(size: int) -> Dict[str, Any]:
    """Build a stat dict for a variable file.

    Variable files are always read-write for everyone and report a fixed
    size. The size is an upper-bound hint, not the rendered length.

    Args:
        size: Reported file size in bytes.

    Returns:
        Stat dictionary suitable for a fusepy ``getattr``.
    """
    ts = _now_ts()
    return {
        "st_mode": stat.S_IFREG | 0o666,
        "st_nlink": 1,
        "st_uid": os.getuid(),
        "st_gid": os.getgid(),
        "st_size": size,
        "st_atime": ts,
        "st_mtime": ts,
        "st_ctime": ts,
    }


def _not_found(path: str) -> OSError:
    return OSError(errno.ENOENT, "No such file or directory", path)


# ---------------------------------------------------------------------------
# VariableFS
# ---------------------------------------------------------------------------


class VariableFS:
    """FUSE operations for a registry of variables.

    Designed for ``fusepy``: fusepy invokes ``fs(op, *args)``, which
    dispatches to the method of the same name. Only the methods defined
    here are registered with libfuse. The class does not subclass
    ``fuse.Operations`` so importing it never loads libfuse.

    .. code-block:: python

        import fuse
        fs = VariableFS(registry)
        fuse.FUSE(fs, "/tmp/vfs", nothreads=True, foreground=True)

    Every operation is stateless and resolves the path again; there are
    no open-file handles.

    Args:
        registry: The variables to expose.
        config: Size and input bounds. Defaults to ``registry.config``.
    """

    def __init__(self, registry: Registry, config: Optional[VfsConfig] = None) -> None:
        self._registry = registry
        self._config = config or registry.config
        self.mounted = threading.Event()
        self.closed = False

    def __call__(self, op: str, *args: Any) -> Any:
        handler = getattr(self, op, None) if not op.startswith("_") else None
        if handler is None:
            raise OSError(errno.EFAULT, "Unsupported operation", op)
        if self.closed and op not in ("init", "destroy"):
            raise OSError(errno.ENODEV, "Filesystem is shutting down", op)
        return handler(*args)

    def close(self) -> None:
        """Reject every further operation with ``ENODEV``."""
        self.closed = True

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _resolve(self, path: str) -> RegisteredVariable:
        entry = self._registry.get(path)
        if entry is None:
            raise _not_found(path)
        return entry

    # ------------------------------------------------------------------
    # FUSE Operations
    # ------------------------------------------------------------------

    def init(self, path: str) -> None:
        """Called by libfuse once the mount is live."""
        self.mounted.set()
        logger.debug("FUSE session initialised")

    def destroy(self, path: str) -> None:
        """Called by libfuse when the session ends."""
        self.close()
        self.mounted.clear()
        logger.debug("FUSE session destroyed")

    def getattr(self, path: str, fh: Optional[int] = None) -> Dict[str, Any]:
        """Return stat-like attributes for a path.

        Raises:
            OSError: With ``errno.ENOENT`` if the path is neither the root
                nor a registered variable.
        """
        if path == "/":
            return _dir_stat()
        self._resolve(path)
        return _file_stat(size=self._config.reported_size)

    def readdir(self, path: str, fh: Optional[int]) -> List[str]:
        """List ``.``, ``..`` and every variable in registration order.

        Raises:
            OSError: With ``errno.ENOENT`` for anything but the root.
        """
        if path != "/":
            raise _not_found(path)
        return [".", ".."] + self._registry.names()

    def open(self, path: str, flags: int) -> int:
        self._resolve(path)
        return 0

    def read(self, path: str, size: int, offset: int, fh: Optional[int] = None) -> bytes:
        """Render the variable and return the requested window.

        Args:
            path: Variable path.
            size: Maximum number of bytes to return.
            offset: Byte offset into the rendered value.
            fh: Open file handle (unused).

        Returns:
            Up to ``size`` bytes; empty at or past the end.

        Raises:
            OSError: With ``errno.ENOENT`` if no variable matches.
        """
        entry = self._resolve(path)
        content = render(entry.cell)
        if offset >= len(content):
            return b""
        return content[offset : offset + size]

    def write(self, path: str, data: bytes, offset: int, fh: Optional[int] = None) -> int:
        """Parse ``data`` into the variable.

        Each write replaces the value, whatever the offset. The full length
        is reported as written even when the input was clipped, so shell
        redirections complete.

        Returns:
            ``len(data)``.

        Raises:
            OSError: ``ENOENT`` for unknown paths, ``EFBIG`` for over-long
                input in strict mode, ``ENOSPC`` for text that does not fit.
        """
        entry = self._resolve(path)
        try:
            parse_and_apply(
                entry.cell,
                data,
                limit=self._config.max_input_bytes,
                strict=self._config.strict_input,
            )
        except VfsError as exc:
            logger.warning("Rejected write to %s: %s", path, exc)
            raise OSError(exc.errno, str(exc), path) from exc
        return len(data)

    def truncate(self, path: str, length: int, fh: Optional[int] = None) -> None:
        """Accept truncation of a variable file without touching it.

        ``echo x > file`` truncates before writing; the write then
        replaces the value anyway.

        Raises:
            OSError: With ``errno.ENOENT`` if no variable matches.
        """
        self._resolve(path)

    # Pass-through stubs for operations that the kernel may call
    def chmod(self, path: str, mode: int) -> int:
        """Ignore chmod on the virtual filesystem."""
        return 0

    def chown(self, path: str, uid: int, gid: int) -> int:
        """Ignore chown on the virtual filesystem."""
        return 0

    def utimens(self, path: str, times: Optional[Tuple[float, float]] = None) -> int:
        """Ignore utimens on the virtual filesystem."""
        return 0


# ---------------------------------------------------------------------------
# VfsMount — lifecycle manager
# ---------------------------------------------------------------------------


class MountStatus(BaseModel):
    """Snapshot of a mount for status reporting."""

    mounted: bool
    mount_path: str
    variables: List[str]
    worker_alive: bool


def _load_fuse() -> Any:
    """Import fusepy.

    Raises:
        MountError: If fusepy or libfuse is unavailable.
    """
    try:
        import fuse as _fuse  # type: ignore[import]
    except ImportError as exc:
        raise MountError("fusepy is not installed. Install with: pip install fusepy") from exc
    except OSError as exc:
        # fusepy raises EnvironmentError when libfuse cannot be loaded
        raise MountError(f"libfuse is not available: {exc}") from exc
    return _fuse


def is_mounted(mount_path: Path) -> bool:
    """Check whether ``mount_path`` is an active mount point.

    Uses ``/proc/mounts`` on Linux, the ``mount`` command elsewhere.
    """
    mount_str = str(mount_path)

    proc_mounts = Path("/proc/mounts")
    if proc_mounts.exists():
        try:
            for line in proc_mounts.read_text(encoding="utf-8").splitlines():
                parts = line.split()
                if len(parts) >= 2 and parts[1] == mount_str:
                    return True
        except OSError:
            pass
        return False

    try:
        result = subprocess.run(["mount"], capture_output=True, text=True, timeout=5)
        return f" {mount_str} " in result.stdout
    except (FileNotFoundError, subprocess.TimeoutExpired, OSError):
        return False


def unmount(mount_path: Path, quiet: bool = False) -> bool:
    """Unmount ``mount_path`` with ``fusermount -u``, falling back to ``umount``.

    Args:
        mount_path: Mount point to release.
        quiet: Log failures at debug level only (stale-mount cleanup).

    Returns:
        True if one of the commands succeeded.
    """
    mount_str = str(mount_path)

    for cmd in (["fusermount", "-u", mount_str], ["umount", mount_str]):
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=10)
            if result.returncode == 0:
                logger.info("Unmounted %s", mount_str)
                return True
            logger.debug(
                "%s failed (rc=%d): %s",
                " ".join(cmd), result.returncode, result.stderr.strip(),
            )
        except (FileNotFoundError, subprocess.TimeoutExpired, OSError) as exc:
            logger.debug("Unmount command %s failed: %s", cmd, exc)

    if not quiet:
        logger.error("Could not unmount %s — try: fusermount -u %s", mount_str, mount_str)
    return False


class VfsMount:
    """Mounts a registry and owns the thread running the FUSE loop.

    ``init`` returns as soon as the worker is started. ``cleanup``
    unmounts and waits for the worker, so no operation reaches the
    registered variables after it returns.

    Registration is closed while mounted: register everything first.

    .. code-block:: python

        registry = Registry()
        kills = registry.register_integer("kills", 0)
        with VfsMount(registry, "/tmp/vfs"):
            kills.value += 1

    Args:
        registry: Variables to expose.
        mount_path: Directory to mount on. Defaults to ``config.mount_path``.
        config: Mount options. Defaults to ``registry.config``.
    """

    def __init__(
        self,
        registry: Registry,
        mount_path: Optional[Path] = None,
        config: Optional[VfsConfig] = None,
    ) -> None:
        self.registry = registry
        self.config = config or registry.config
        self.mount_path = Path(mount_path or self.config.mount_path).expanduser()
        self.fs = VariableFS(registry, self.config)
        self._worker: Optional[threading.Thread] = None

    @property
    def worker(self) -> Optional[threading.Thread]:
        return self._worker

    def init(self, wait: bool = False) -> "VfsMount":
        """Mount the registry and start the FUSE loop in the background.

        Args:
            wait: Block until libfuse reports the mount live, at most
                ``config.mount_timeout`` seconds.

        Returns:
            This mount, for chaining.

        Raises:
            MountError: If fusepy/libfuse is missing, the mount is
                already running, or (with ``wait``) the FUSE loop exits
                before mounting.
        """
        if self._worker is not None:
            raise MountError(f"{self.mount_path} is already mounted by this process")

        fuse_module = _load_fuse()

        if self.fs.closed:
            self.fs = VariableFS(self.registry, self.config)

        unmount(self.mount_path, quiet=True)
        self.mount_path.mkdir(parents=True, exist_ok=True)

        self._worker = threading.Thread(
            target=self._serve,
            args=(fuse_module,),
            name=f"vfspipe-{self.mount_path.name}",
            daemon=True,
        )
        self.registry.freeze()
        self._worker.start()
        logger.info(
            "Mounting %d variables at %s", len(self.registry), self.mount_path
        )

        if wait:
            self._wait_mounted()
        return self

    def _wait_mounted(self) -> None:
        """Block until the mount is live or the FUSE loop has exited.

        Raises:
            MountError: If the loop exited before libfuse mounted.
        """
        deadline = time.monotonic() + self.config.mount_timeout
        while not self.fs.mounted.wait(timeout=_POLL_INTERVAL):
            if not self._worker.is_alive():
                self._worker = None
                self.registry.unfreeze()
                raise MountError(f"FUSE loop at {self.mount_path} exited before mounting")
            if time.monotonic() >= deadline:
                logger.warning(
                    "Mount at %s not ready after %.1fs",
                    self.mount_path,
                    self.config.mount_timeout,
                )
                return

    def _serve(self, fuse_module: Any) -> None:
        """Worker body: run the FUSE loop until the mount goes away."""
        options: Dict[str, Any] = {"fsname": "vfspipe"}
        if self.config.allow_other:
            options["allow_other"] = True
        if self.config.direct_io:
            options["direct_io"] = True
        try:
            fuse_module.FUSE(
                self.fs,
                str(self.mount_path),
                foreground=True,
                nothreads=self.config.nothreads,
                **options,
            )
        except (RuntimeError, OSError) as exc:
            logger.error("FUSE loop at %s failed: %s", self.mount_path, exc)
        finally:
            self.fs.close()
            logger.info("FUSE loop at %s exited", self.mount_path)

    def cleanup(self) -> bool:
        """Unmount, wait for the worker and release the registry.

        Safe to call more than once.

        Returns:
            True unless the unmount command failed.
        """
        self.fs.close()
        ok = True
        worker = self._worker
        if worker is not None:
            # An unmount issued before libfuse has mounted would be lost
            if worker.is_alive() and not self.fs.mounted.is_set():
                self.fs.mounted.wait(timeout=self.config.mount_timeout)
            ok = unmount(self.mount_path)
            worker.join(timeout=self.config.unmount_timeout)
            if worker.is_alive():
                logger.warning(
                    "FUSE worker for %s still running after %.1fs",
                    self.mount_path, self.config.unmount_timeout,
                )
            self._worker = None
        self.registry.clear()
        return ok

    def is_mounted(self) -> bool:
        return is_mounted(self.mount_path)

    def status(self) -> MountStatus:
        """Return the current mount status."""
        return MountStatus(
            mounted=self.is_mounted(),
            mount_path=str(self.mount_path),
            variables=self.registry.names(),
            worker_alive=self._worker is not None and self._worker.is_alive(),
        )

    def __enter__(self) -> "VfsMount":
        return self.init(wait=True)

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        self.cleanup()


def vfs_init(
    mount_path: Path,
    registry: Registry,
    config: Optional[VfsConfig] = None,
) -> VfsMount:
    """Mount ``registry`` at ``mount_path`` and return the running mount."""
    return VfsMount(registry, mount_path, config).init()


def vfs_cleanup(mount: VfsMount) -> bool:
    """Unmount a mount started with :func:`vfs_init`."""
    return mount.cleanup()
