"""
vfspipe CLI — inspect and release variable mounts from the shell.

The main Click group is defined here and command groups are registered
from their own modules.

Entry point: vfspipe.cli:main
"""

from __future__ import annotations

import click

from .. import __version__
from ._common import setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="vfspipe")
@click.option("--verbose", "-v", is_flag=True, help="Log debug output to stderr.")
def main(verbose: bool):
    """vfspipe — live program variables as files."""
    setup_logging(verbose)


from .mount import register_mount_commands  # noqa: E402

register_mount_commands(main)
