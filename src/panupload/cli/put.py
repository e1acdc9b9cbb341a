"""Upload command for the panupload CLI.

Commands:
- put: Upload local files to a remote directory
"""

from __future__ import annotations

import logging
import sys
import threading
from pathlib import Path

import click

from panupload.cli.config import build_client_config, build_token_provider, load_config


def setup_logging(verbose: bool) -> None:
    """Configure the panupload logger to write to stderr.

    Args:
        verbose: Log per-block DEBUG messages instead of INFO.
    """
    log_format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    root_logger = logging.getLogger("panupload")
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(log_format))
    root_logger.addHandler(handler)
    root_logger.propagate = False


@click.command()
@click.argument(
    "local_files",
    nargs=-1,
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
)
@click.argument("remote_dir")
@click.option("--no-overwrite", is_flag=True, help="Fail if a remote file already exists.")
@click.option("--jobs", "-j", default=2, show_default=True, help="Files uploaded at once.")
@click.option(
    "--block-workers",
    default=1,
    show_default=True,
    help="Blocks of one file uploaded at once.",
)
@click.option("--verbose", "-v", is_flag=True, help="Log every block.")
def put(
    local_files: tuple[Path, ...],
    remote_dir: str,
    no_overwrite: bool,
    jobs: int,
    block_workers: int,
    verbose: bool,
) -> None:
    """Upload LOCAL_FILES into REMOTE_DIR.

    REMOTE_DIR is relative to the configured root.
    """
    from panupload.client.api import HTTPClient
    from panupload.client.pacer import Pacer
    from panupload.client.paths import RemotePathResolver
    from panupload.client.upload import FileUploader
    from panupload.core.config import UploadConfig
    from panupload.core.errors import AuthenticationError
    from panupload.core.types import UploadProgress

    setup_logging(verbose)

    config = load_config()
    tokens = build_token_provider(config)
    try:
        tokens.current_access_token()
    except AuthenticationError:
        click.echo(
            "Error: No access token. Run 'panupload config set access_token <token>' "
            "or set PANUPLOAD_ACCESS_TOKEN.",
            err=True,
        )
        sys.exit(1)

    client_config = build_client_config(config)
    resolver = RemotePathResolver(client_config.root)
    try:
        files = [
            (path, resolver.resolve(f"{remote_dir.strip('/')}/{path.name}"))
            for path in local_files
        ]
    except ValueError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    echo_lock = threading.Lock()

    def on_progress(progress: UploadProgress) -> None:
        with echo_lock:
            click.echo(
                f"  {progress.path}: {progress.blocks_done}/{progress.blocks_total} "
                f"blocks ({progress.percent:.0f}%)"
            )

    cancel = threading.Event()
    with HTTPClient(client_config, tokens, Pacer()) as client:
        uploader = FileUploader(
            client,
            UploadConfig(block_workers=block_workers),
            progress_callback=on_progress,
        )
        try:
            outcomes = uploader.upload_many(
                files, max_workers=jobs, overwrite=not no_overwrite, cancel=cancel
            )
        except KeyboardInterrupt:
            cancel.set()
            click.echo("Upload cancelled.", err=True)
            sys.exit(130)

    failed = 0
    for outcome in outcomes:
        if outcome.success and outcome.committed is not None:
            click.echo(f"  ↑ {outcome.committed.path} ({outcome.committed.size} bytes)")
        else:
            failed += 1
            click.echo(f"  ✗ {outcome.remote_path}: {outcome.error}", err=True)

    if failed:
        click.echo(f"{failed} of {len(outcomes)} uploads failed.", err=True)
        sys.exit(1)
    click.echo(f"Uploaded {len(outcomes)} file(s).")
