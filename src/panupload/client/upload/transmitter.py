"""Block transmission.

This module provides:
- BlockTransmitter: Uploads the blocks named by precreate, sequentially
  or with a small thread pool, and returns once every block is acknowledged
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, Future, ThreadPoolExecutor, wait
from typing import TYPE_CHECKING

from panupload.core.errors import (
    BlockUploadError,
    PanError,
    ProtocolError,
    UploadCancelledError,
)
from panupload.core.types import ProgressCallback, UploadProgress, UploadSession, UploadTarget

if TYPE_CHECKING:
    from panupload.client.api import HTTPClient
    from panupload.core.digest import ContentBuffer

logger = logging.getLogger(__name__)


class BlockTransmitter:
    """Uploads needed blocks of a session.

    Blocks go out in ascending index order. With max_workers > 1 they are
    uploaded concurrently; transmit() still returns only after every block
    has been acknowledged.
    """

    def __init__(
        self,
        client: HTTPClient,
        max_workers: int = 1,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the transmitter.

        Args:
            client: HTTP client for server communication.
            max_workers: Concurrent block uploads (1 = sequential).
            progress_callback: Optional callback after each acknowledged block.
        """
        self._client = client
        self._max_workers = max(1, max_workers)
        self._progress_callback = progress_callback
        self._progress_lock = threading.Lock()

    def transmit(
        self,
        target: UploadTarget,
        session: UploadSession,
        buffer: ContentBuffer,
        cancel: threading.Event | None = None,
    ) -> int:
        """Upload every block the session needs.

        Args:
            target: Upload destination.
            session: Negotiated session.
            buffer: Buffered content to slice blocks from.
            cancel: Optional cancellation event.

        Returns:
            Number of blocks uploaded.

        Raises:
            BlockUploadError: If a block fails; later blocks are not attempted.
            UploadCancelledError: If the upload is cancelled.
        """
        needed = sorted(set(session.needed_blocks))
        if not needed:
            return 0

        state = _Progress(target, len(needed))
        if self._max_workers == 1 or len(needed) == 1:
            for index in needed:
                self._send(target, session, buffer, index, state, cancel)
        else:
            self._send_concurrently(target, session, buffer, needed, state, cancel)

        logger.debug(f"Uploaded {len(needed)} blocks of {target.path}")
        return len(needed)

    def _send_concurrently(
        self,
        target: UploadTarget,
        session: UploadSession,
        buffer: ContentBuffer,
        needed: list[int],
        state: _Progress,
        cancel: threading.Event | None,
    ) -> None:
        """Upload blocks on a thread pool and wait for all of them."""
        # Stops sibling blocks once one fails, without touching the caller's event
        abort = threading.Event()
        if cancel is not None and cancel.is_set():
            raise UploadCancelledError("Upload cancelled")

        def run(index: int) -> None:
            if cancel is not None and cancel.is_set():
                abort.set()
            self._send(target, session, buffer, index, state, abort)

        with ThreadPoolExecutor(
            max_workers=self._max_workers, thread_name_prefix="block-upload"
        ) as pool:
            futures: dict[Future[None], int] = {
                pool.submit(run, index): index for index in needed
            }
            pending = set(futures)
            while pending:
                done, pending = wait(pending, timeout=0.1, return_when=FIRST_EXCEPTION)
                if cancel is not None and cancel.is_set():
                    abort.set()
                if abort.is_set() or any(f.exception() for f in done):
                    abort.set()
                    for future in pending:
                        future.cancel()
                    wait(pending)
                    break

        if cancel is not None and cancel.is_set():
            raise UploadCancelledError("Upload cancelled")

        failures = sorted(
            (futures[f], f.exception())
            for f in futures
            if not f.cancelled() and f.exception() is not None
        )
        # Report the lowest real failure, not siblings stopped by the abort
        for _, error in failures:
            if not isinstance(error, UploadCancelledError):
                raise error  # type: ignore[misc]
        if failures:
            raise failures[0][1]  # type: ignore[misc]

    def _send(
        self,
        target: UploadTarget,
        session: UploadSession,
        buffer: ContentBuffer,
        index: int,
        state: _Progress,
        cancel: threading.Event | None,
    ) -> None:
        """Upload one block, wrapping failures in BlockUploadError."""
        data = buffer.read_block(index)
        try:
            remote_md5 = self._client.upload_block(
                path=target.path,
                upload_id=session.upload_id,
                partseq=index,
                data=data,
                cancel=cancel,
            )
            expected = session.block_md5s[index]
            if remote_md5 and remote_md5 != expected:
                raise ProtocolError(
                    f"Remote reported md5 {remote_md5} for block {index}, expected {expected}"
                )
        except UploadCancelledError:
            raise
        except PanError as e:
            logger.error(f"Block {index} of {target.path} failed: {e}")
            raise BlockUploadError(index, e) from e

        logger.debug(f"Uploaded block {index + 1}/{len(session.block_md5s)} of {target.path}")
        self._report(state, len(data))

    def _report(self, state: _Progress, nbytes: int) -> None:
        with self._progress_lock:
            state.blocks_done += 1
            state.bytes_transferred += nbytes
            progress = UploadProgress(
                path=state.target.path,
                size=state.target.size,
                blocks_done=state.blocks_done,
                blocks_total=state.blocks_total,
                bytes_transferred=state.bytes_transferred,
            )
        if self._progress_callback:
            self._progress_callback(progress)


class _Progress:
    def __init__(self, target: UploadTarget, blocks_total: int) -> None:
        self.target = target
        self.blocks_total = blocks_total
        self.blocks_done = 0
        self.bytes_transferred = 0
