"""Precreate negotiation."""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from panupload.core.errors import ProtocolError
from panupload.core.types import ContentDigest, UploadSession, UploadTarget

if TYPE_CHECKING:
    from panupload.client.api import HTTPClient

logger = logging.getLogger(__name__)


class Negotiator:
    """Declares content to the remote and learns which blocks it needs.

    The set of blocks to transmit is whatever the remote names; nothing is
    inferred client-side.
    """

    def __init__(self, client: HTTPClient) -> None:
        self._client = client

    def negotiate(
        self,
        target: UploadTarget,
        digest: ContentDigest,
        cancel: threading.Event | None = None,
    ) -> UploadSession:
        """Call precreate and build the upload session.

        Args:
            target: Upload destination.
            digest: Digests of the content.
            cancel: Optional cancellation event.

        Returns:
            UploadSession; `rapid` is set when no transfer is needed.

        Raises:
            RemoteError: If the remote rejects the upload.
            ProtocolError: If the needed block list is malformed.
        """
        result = self._client.precreate(
            path=target.path,
            size=target.size,
            block_md5s=digest.block_md5s,
            content_md5=digest.content_md5,
            overwrite=target.overwrite,
            cancel=cancel,
        )

        if result.rapid:
            logger.info(f"Rapid upload: remote already holds {target.path}")
            return UploadSession(
                upload_id=result.upload_id,
                block_md5s=digest.block_md5s,
                rapid=True,
            )

        needed = _parse_block_list(result.block_list, len(digest.block_md5s))
        if not result.upload_id and needed:
            raise ProtocolError(f"precreate for {target.path} named blocks but no uploadid")

        logger.debug(
            f"precreate {target.path}: session {result.upload_id}, "
            f"{len(needed)}/{len(digest.block_md5s)} blocks needed"
        )
        return UploadSession(
            upload_id=result.upload_id,
            block_md5s=digest.block_md5s,
            needed_blocks=needed,
        )


def _parse_block_list(raw: list[object], total: int) -> list[int]:
    """Parse needed block indices, sorted and de-duplicated.

    Entries may be ints or decimal-digit strings; floats and booleans are
    rejected rather than truncated.

    Raises:
        ProtocolError: If an entry is not an integer in [0, total).
    """
    indices: set[int] = set()
    for value in raw:
        if isinstance(value, int) and not isinstance(value, bool):
            index = value
        elif isinstance(value, str) and value.isascii() and value.isdigit():
            index = int(value)
        else:
            raise ProtocolError(f"Invalid block index {value!r}")
        if index < 0 or index >= total:
            raise ProtocolError(f"Block index {index} out of range (0..{total - 1})")
        indices.add(index)
    return sorted(indices)
