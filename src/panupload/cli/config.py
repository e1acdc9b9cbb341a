"""Stored settings for the panupload CLI.

Settings live in a single JSON object at ``<config dir>/config.json``. The
directory is ``~/.panupload`` unless PANUPLOAD_CONFIG_DIR points elsewhere.
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import click

from panupload.client.auth import EnvTokenProvider
from panupload.core.config import ClientConfig

CONFIG_DIR_ENV_VAR = "PANUPLOAD_CONFIG_DIR"
CONFIG_FILENAME = "config.json"

# Keys accepted by 'panupload config set'
CONFIG_KEYS = ("access_token", "root", "api_url", "pcs_url", "timeout")


def get_config_dir() -> Path:
    override = os.environ.get(CONFIG_DIR_ENV_VAR)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".panupload"


def get_config_file() -> Path:
    return get_config_dir() / CONFIG_FILENAME


def load_config() -> dict[str, str]:
    """Read stored settings.

    A missing file means nothing is stored. Keys panupload does not know
    are ignored.

    Raises:
        click.ClickException: If the file does not hold a JSON object.
    """
    path = get_config_file()
    try:
        stored = json.loads(path.read_text())
    except FileNotFoundError:
        return {}
    except ValueError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}") from e

    if not isinstance(stored, dict):
        raise click.ClickException(f"{path} must hold a JSON object")
    return {key: str(value) for key, value in stored.items() if key in CONFIG_KEYS}


def save_config(settings: dict[str, str]) -> None:
    """Write settings, readable by the owner only since they hold the token."""
    path = get_config_file()
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(settings, indent=2, sort_keys=True))
    path.chmod(0o600)


def build_token_provider(config: dict[str, str]) -> EnvTokenProvider:
    """Token from PANUPLOAD_ACCESS_TOKEN, falling back to the stored one."""
    return EnvTokenProvider(fallback=config.get("access_token", ""))


def build_client_config(config: dict[str, str]) -> ClientConfig:
    """Build a ClientConfig from stored settings, keeping defaults for missing keys."""
    kwargs: dict[str, object] = {}
    for key in ("api_url", "pcs_url", "root"):
        if config.get(key):
            kwargs[key] = config[key]
    if config.get("timeout"):
        kwargs["timeout"] = float(config["timeout"])
    return ClientConfig(**kwargs)  # type: ignore[arg-type]
