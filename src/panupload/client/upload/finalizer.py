"""Upload commit."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from panupload.core.types import CommittedFile, UploadSession, UploadTarget

if TYPE_CHECKING:
    from panupload.client.api import HTTPClient

logger = logging.getLogger(__name__)


class Finalizer:
    """Commits a session into a durable, listable file.

    A failed commit after all blocks are present is ambiguous, so it is
    surfaced to the caller rather than retried with different parameters.
    """

    def __init__(self, client: HTTPClient) -> None:
        self._client = client

    def finalize(
        self,
        target: UploadTarget,
        session: UploadSession,
        cancel: threading.Event | None = None,
    ) -> CommittedFile:
        """Call create for the session.

        Raises:
            RemoteError: If the remote rejects the commit.
        """
        committed = self._client.create_file(
            path=target.path,
            size=target.size,
            upload_id=session.upload_id,
            block_md5s=session.block_md5s,
            overwrite=target.overwrite,
            cancel=cancel,
        )
        logger.debug(f"Committed {committed.path} as fs_id {committed.fs_id}")
        return committed
