"""Configuration commands for the panupload CLI.

Commands:
- config set: Store a setting
- config show: Print stored settings
"""

from __future__ import annotations

import sys

import click

from panupload.cli.config import CONFIG_KEYS, get_config_file, load_config, save_config


@click.group(name="config")
def config_group() -> None:
    """Manage stored settings."""


@config_group.command(name="set")
@click.argument("key")
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Store VALUE under KEY."""
    if key not in CONFIG_KEYS:
        click.echo(
            f"Error: Unknown key '{key}'. Valid keys: {', '.join(CONFIG_KEYS)}",
            err=True,
        )
        sys.exit(1)
    if key == "timeout":
        try:
            float(value)
        except ValueError:
            click.echo(f"Error: timeout must be a number, got '{value}'", err=True)
            sys.exit(1)

    config = load_config()
    config[key] = value
    save_config(config)
    click.echo(f"Saved {key} to {get_config_file()}")


@config_group.command(name="show")
def show() -> None:
    """Print stored settings (the access token is masked)."""
    config = load_config()
    if not config:
        click.echo("No settings stored.")
        return
    for key, value in sorted(config.items()):
        if key == "access_token" and value:
            value = value[:4] + "..." if len(value) > 8 else "***"
        click.echo(f"{key} = {value}")
