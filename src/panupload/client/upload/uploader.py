"""File upload with precreate, block transfer and create.

This module provides:
- FileUploader: Runs the upload pipeline for one byte stream or file
- UploadOutcome: Result of one file in a multi-file upload
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO

from panupload.client.upload.finalizer import Finalizer
from panupload.client.upload.negotiator import Negotiator
from panupload.client.upload.transmitter import BlockTransmitter
from panupload.core.config import UploadConfig
from panupload.core.digest import ContentBuffer, compute_digest, digest_file
from panupload.core.errors import PanError, UploadCancelledError, UploadError
from panupload.core.types import (
    BLOCK_SIZE,
    CommittedFile,
    ContentDigest,
    ProgressCallback,
    UploadProgress,
    UploadTarget,
)

if TYPE_CHECKING:
    from panupload.client.api import HTTPClient

logger = logging.getLogger(__name__)


@dataclass
class UploadOutcome:
    """Result of one file in upload_many.

    Attributes:
        local_path: File that was uploaded.
        remote_path: Absolute remote destination.
        committed: Committed file if the upload succeeded.
        error: Error raised by the upload, if any.
        elapsed_time: Time taken in seconds.
    """

    local_path: Path
    remote_path: str
    committed: CommittedFile | None = None
    error: PanError | None = None
    elapsed_time: float = 0.0

    @property
    def success(self) -> bool:
        """Check if the file was committed."""
        return self.committed is not None


class FileUploader:
    """Uploads byte streams of known length to the remote.

    One upload is a sequential pipeline: digest, precreate, block transfer
    (skipped on rapid upload), create. Several uploads may run at once on
    separate threads; they share only the client's Pacer.
    """

    def __init__(
        self,
        client: HTTPClient,
        config: UploadConfig | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            client: HTTP client for server communication.
            config: Pipeline settings. Defaults to UploadConfig().
            progress_callback: Optional callback for progress updates.
        """
        self._client = client
        self._config = config or UploadConfig()
        self._progress_callback = progress_callback
        self._negotiator = Negotiator(client)
        self._transmitter = BlockTransmitter(
            client,
            max_workers=self._config.block_workers,
            progress_callback=progress_callback,
        )
        self._finalizer = Finalizer(client)

        if self._config.block_size != BLOCK_SIZE:
            logger.warning(
                f"Block size {self._config.block_size} differs from the "
                f"{BLOCK_SIZE} bytes the remote accepts"
            )

    def target(self, path: str, size: int, overwrite: bool = True) -> UploadTarget:
        """Build an UploadTarget using the configured block size."""
        return UploadTarget(
            path=path, size=size, block_size=self._config.block_size, overwrite=overwrite
        )

    def upload(
        self,
        target: UploadTarget,
        content: BinaryIO,
        cancel: threading.Event | None = None,
    ) -> CommittedFile:
        """Upload a byte stream.

        Args:
            target: Destination path, declared size and block size.
            content: Readable stream holding exactly target.size bytes.
            cancel: Optional event; setting it aborts the upload promptly.

        Returns:
            The committed file.

        Raises:
            SizeError: If the stream does not match the declared size.
            RemoteError: If precreate or create is rejected.
            BlockUploadError: If a block cannot be uploaded.
            UploadCancelledError: If cancel is set.
        """
        if cancel is not None and cancel.is_set():
            raise UploadCancelledError(f"Upload of {target.path} cancelled")

        digest, buffer = compute_digest(
            content, target.size, target.block_size, self._config.memory_limit
        )
        return self._commit(target, digest, buffer, cancel)

    def upload_file(
        self,
        local_path: Path,
        remote_path: str,
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> CommittedFile:
        """Upload a local file.

        Args:
            local_path: File to upload.
            remote_path: Absolute remote destination.
            overwrite: Replace an existing remote file instead of failing.
            cancel: Optional cancellation event.

        Raises:
            UploadError: If the local file is missing or cannot be read.
        """
        if cancel is not None and cancel.is_set():
            raise UploadCancelledError(f"Upload of {local_path} cancelled")

        try:
            digest, buffer = digest_file(
                Path(local_path), self._config.block_size, self._config.memory_limit
            )
        except FileNotFoundError as e:
            raise UploadError(f"File not found: {local_path}") from e
        except OSError as e:
            raise UploadError(f"Cannot read {local_path}: {e}") from e

        target = self.target(remote_path, digest.size, overwrite)
        return self._commit(target, digest, buffer, cancel)

    def _commit(
        self,
        target: UploadTarget,
        digest: ContentDigest,
        buffer: ContentBuffer,
        cancel: threading.Event | None,
    ) -> CommittedFile:
        """Negotiate, transmit and finalize hashed content; closes the buffer."""
        logger.info(f"Uploading {target.path} ({target.size} bytes)")

        with buffer:
            session = self._negotiator.negotiate(target, digest, cancel=cancel)

            sent = 0
            if not session.rapid:
                sent = self._transmitter.transmit(target, session, buffer, cancel=cancel)

            committed = self._finalizer.finalize(target, session, cancel=cancel)

        if session.rapid and self._progress_callback:
            self._progress_callback(UploadProgress(
                path=target.path,
                size=target.size,
                blocks_done=0,
                blocks_total=0,
                bytes_transferred=0,
            ))

        logger.info(
            f"Uploaded {target.path}: {sent}/{len(digest.block_md5s)} blocks sent"
            f"{' (rapid)' if session.rapid else ''}, fs_id {committed.fs_id}"
        )
        return committed

    def upload_many(
        self,
        files: list[tuple[Path, str]],
        max_workers: int = 2,
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> list[UploadOutcome]:
        """Upload several files concurrently.

        A failing file does not stop the others; each outcome records its
        own result. Setting cancel stops all of them.

        Args:
            files: (local path, absolute remote path) pairs.
            max_workers: Files uploaded at the same time.
            overwrite: Replace existing remote files instead of failing.
            cancel: Optional cancellation event.

        Returns:
            One UploadOutcome per input pair, in input order.
        """
        cancel = cancel or threading.Event()

        def run(local_path: Path, remote_path: str) -> UploadOutcome:
            outcome = UploadOutcome(local_path=local_path, remote_path=remote_path)
            start = time.monotonic()
            try:
                outcome.committed = self.upload_file(
                    local_path, remote_path, overwrite=overwrite, cancel=cancel
                )
            except PanError as e:
                logger.error(f"Upload of {local_path} to {remote_path} failed: {e}")
                outcome.error = e
            outcome.elapsed_time = time.monotonic() - start
            return outcome

        with ThreadPoolExecutor(
            max_workers=max(1, max_workers), thread_name_prefix="file-upload"
        ) as pool:
            futures = [pool.submit(run, local, remote) for local, remote in files]
            try:
                return [future.result() for future in futures]
            except KeyboardInterrupt:
                # Let running uploads stop before the pool joins its threads
                cancel.set()
                raise
