"""Mount commands: status, stop, show."""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from ..fuse_mount import is_mounted, unmount
from ._common import DEFAULT_MOUNT, console

_MOUNT_OPTION = dict(
    default=DEFAULT_MOUNT,
    type=click.Path(),
    help="Mount point of the variable filesystem.",
    show_default=True,
)


def _read_variables(mount_path: Path) -> list[tuple[str, str]]:
    """Read every variable file under a mount.

    Returns:
        ``(name, value)`` pairs in directory order. Values lose their
        trailing newline; unreadable files show the OS error.
    """
    rows = []
    for path in mount_path.iterdir():
        name = escape(path.name)
        try:
            value = path.read_bytes().decode("utf-8", errors="replace")
            rows.append((name, escape(value.rstrip("\n"))))
        except OSError as exc:
            rows.append((name, f"[red]{escape(str(exc.strerror))}[/]"))
    return rows


def register_mount_commands(main: click.Group) -> None:
    """Register the mount commands on the main group."""

    @main.command("status")
    @click.option("--mount-point", **_MOUNT_OPTION)
    @click.option("--json", "as_json", is_flag=True, help="Output as JSON.")
    def status_cmd(mount_point: str, as_json: bool):
        """Show whether a variable filesystem is mounted.

        \b
        Example:

            vfspipe status --mount-point /tmp/vfs
        """
        mount_path = Path(mount_point).expanduser()
        mounted = is_mounted(mount_path)

        if as_json:
            click.echo(json.dumps({"mounted": mounted, "mount_point": str(mount_path)}, indent=2))
            return

        icon = "[bold green]MOUNTED[/]" if mounted else "[bold red]NOT MOUNTED[/]"
        table = Table(show_header=False, box=None, padding=(0, 2))
        table.add_column("Key", style="dim")
        table.add_column("Value")
        table.add_row("Status", icon)
        table.add_row("Mount point", str(mount_path))

        console.print()
        console.print(Panel(table, title="[bold]Variable Filesystem[/]", border_style="cyan"))
        console.print()

    @main.command("stop")
    @click.option("--mount-point", **_MOUNT_OPTION)
    def stop_cmd(mount_point: str):
        """Unmount a variable filesystem left behind by a dead process.

        \b
        Example:

            vfspipe stop --mount-point /tmp/vfs
        """
        mount_path = Path(mount_point).expanduser()
        if not is_mounted(mount_path):
            console.print(f"[dim]Not mounted at {mount_path}[/]")
            return

        console.print(f"[bold cyan]Unmounting {mount_path} ...[/]")
        if unmount(mount_path):
            console.print("[green]Unmounted.[/]")
        else:
            console.print(
                "[bold red]Unmount failed.[/] "
                f"[dim]Try manually: fusermount -u {mount_path}[/]"
            )
            sys.exit(1)

    @main.command("show")
    @click.option("--mount-point", **_MOUNT_OPTION)
    def show_cmd(mount_point: str):
        """Print every variable exposed under a mount.

        \b
        Example:

            watch -n 0.5 vfspipe show --mount-point /tmp/vfs
        """
        mount_path = Path(mount_point).expanduser()
        if not mount_path.is_dir():
            console.print(f"[bold red]No such directory:[/] {mount_path}")
            sys.exit(1)

        table = Table(title=f"Variables at {mount_path}")
        table.add_column("Name", style="cyan")
        table.add_column("Value")
        for name, value in _read_variables(mount_path):
            table.add_row(name, value)
        console.print(table)
