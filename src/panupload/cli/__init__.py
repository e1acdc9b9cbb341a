"""Command-line interface for panupload.

This module provides the main CLI entry point and assembles all commands.

Commands:
- put: Upload local files to a remote directory
- config: Manage stored settings (set, show)
"""

from __future__ import annotations

import click

from panupload.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from panupload.cli.put import put
from panupload.cli.settings import config_group


@click.group()
@click.version_option(package_name="panupload")
def cli() -> None:
    """panupload - chunked uploads with rapid-upload deduplication."""


cli.add_command(put)
cli.add_command(config_group)

__all__ = [
    "cli",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
