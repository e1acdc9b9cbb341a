"""HTTP client for the xpan upload API.

This module provides:
- HTTPClient: HTTP client for the three upload endpoints
- PrecreateResult: Decoded precreate response

Every request goes through the shared Pacer, which retries transient
failures. Error envelopes are normalized into RemoteError inside the paced
call so both envelope shapes are classified the same way.
"""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import httpx

from panupload.client.auth import TokenProvider
from panupload.client.pacer import Pacer
from panupload.core.config import ClientConfig
from panupload.core.errors import ProtocolError, remote_error_from_payload
from panupload.core.types import CommittedFile

logger = logging.getLogger(__name__)

FILE_ENDPOINT = "/rest/2.0/xpan/file"
SUPERFILE_ENDPOINT = "/rest/2.0/pcs/superfile2"

# precreate return_type values
RETURN_TYPE_UPLOAD = 1
RETURN_TYPE_RAPID = 2

# rtype values: fail if the path exists, or overwrite it
RTYPE_FAIL = 0
RTYPE_OVERWRITE = 3


@dataclass
class PrecreateResult:
    """Result of the precreate call."""

    return_type: int
    upload_id: str = ""
    block_list: list[Any] = field(default_factory=list)
    path: str = ""

    @property
    def rapid(self) -> bool:
        """Check if the remote already holds the content."""
        return self.return_type == RETURN_TYPE_RAPID

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PrecreateResult:
        """Create from API response dictionary."""
        return cls(
            return_type=int(data.get("return_type", RETURN_TYPE_UPLOAD)),
            upload_id=data.get("uploadid") or "",
            block_list=list(data.get("block_list") or []),
            path=data.get("path", ""),
        )


class HTTPClient:
    """HTTP client for the xpan upload endpoints."""

    def __init__(
        self,
        config: ClientConfig,
        tokens: TokenProvider,
        pacer: Pacer | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the client.

        Args:
            config: Connection settings.
            tokens: Provider of the access token sent with each request.
            pacer: Shared pacer. A private one is created if omitted.
            transport: Optional httpx transport (used by tests).
        """
        self._config = config
        self._tokens = tokens
        self._pacer = pacer or Pacer()
        self._client = httpx.Client(
            timeout=config.timeout,
            verify=config.verify_ssl,
            transport=transport,
            headers={"User-Agent": "pan.baidu.com"},
        )

    @property
    def pacer(self) -> Pacer:
        """Get the pacer shared by all calls of this client."""
        return self._pacer

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> HTTPClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def _handle_response(self, response: httpx.Response) -> dict[str, Any]:
        """Decode a response, raising for HTTP and remote errors.

        Raises:
            httpx.HTTPStatusError: For 429 and for error statuses without an envelope.
            RemoteError: If the body carries a non-zero error code.
            ProtocolError: If a successful response is not a JSON object.
        """
        if response.status_code == 429:
            response.raise_for_status()

        try:
            payload = response.json()
        except ValueError:
            payload = None

        remote_error = remote_error_from_payload(payload)
        if remote_error is not None:
            raise remote_error

        response.raise_for_status()
        if not isinstance(payload, dict):
            raise ProtocolError(
                f"Unexpected response from {response.request.url.path}: "
                f"{response.text[:200]!r}"
            )
        return payload

    def _post(
        self,
        url: str,
        params: dict[str, str],
        data: dict[str, str] | None = None,
        files: dict[str, Any] | None = None,
        cancel: threading.Event | None = None,
        description: str = "request",
    ) -> dict[str, Any]:
        """POST through the pacer, fetching a fresh token per attempt."""

        def attempt() -> dict[str, Any]:
            query = {**params, "access_token": self._tokens.current_access_token()}
            response = self._client.post(url, params=query, data=data, files=files)
            return self._handle_response(response)

        return self._pacer.call(attempt, cancel=cancel, description=description)

    # === Upload operations ===

    def precreate(
        self,
        path: str,
        size: int,
        block_md5s: Sequence[str],
        content_md5: str,
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> PrecreateResult:
        """Declare the content of an upload.

        Args:
            path: Absolute remote path.
            size: Content size in bytes.
            block_md5s: MD5 of every block, in order.
            content_md5: MD5 of the whole content.
            overwrite: Replace an existing file instead of failing.
            cancel: Optional cancellation event.

        Returns:
            PrecreateResult with the session id and needed block indices.
        """
        payload = self._post(
            f"{self._config.api_url}{FILE_ENDPOINT}",
            params={"method": "precreate"},
            data={
                "path": path,
                "size": str(size),
                "isdir": "0",
                "autoinit": "1",
                "rtype": str(RTYPE_OVERWRITE if overwrite else RTYPE_FAIL),
                "block_list": json.dumps(list(block_md5s)),
                "content-md5": content_md5,
            },
            cancel=cancel,
            description=f"precreate {path}",
        )
        return PrecreateResult.from_dict(payload)

    def upload_block(
        self,
        path: str,
        upload_id: str,
        partseq: int,
        data: bytes,
        cancel: threading.Event | None = None,
    ) -> str:
        """Upload one block of a session.

        Args:
            path: Absolute remote path.
            upload_id: Session identifier from precreate.
            partseq: Zero-based block index.
            data: Raw block bytes.
            cancel: Optional cancellation event.

        Returns:
            MD5 of the block as computed by the remote ("" if not reported).
        """
        payload = self._post(
            f"{self._config.pcs_url}{SUPERFILE_ENDPOINT}",
            params={
                "method": "upload",
                "type": "tmpfile",
                "path": path,
                "uploadid": upload_id,
                "partseq": str(partseq),
            },
            files={"file": (f"chunk-{partseq}", data, "application/octet-stream")},
            cancel=cancel,
            description=f"upload block {partseq} of {path}",
        )
        return str(payload.get("md5", ""))

    def create_file(
        self,
        path: str,
        size: int,
        upload_id: str,
        block_md5s: Sequence[str],
        overwrite: bool = True,
        cancel: threading.Event | None = None,
    ) -> CommittedFile:
        """Commit uploaded or deduplicated blocks into a file.

        Args:
            path: Absolute remote path.
            size: Content size in bytes.
            upload_id: Session identifier ("" after a rapid precreate).
            block_md5s: MD5 of every block, in order.
            overwrite: Replace an existing file instead of failing.
            cancel: Optional cancellation event.

        Returns:
            Committed file metadata.
        """
        payload = self._post(
            f"{self._config.api_url}{FILE_ENDPOINT}",
            params={"method": "create"},
            data={
                "path": path,
                "size": str(size),
                "isdir": "0",
                "uploadid": upload_id,
                "block_list": json.dumps(list(block_md5s)),
                "rtype": str(RTYPE_OVERWRITE if overwrite else RTYPE_FAIL),
            },
            cancel=cancel,
            description=f"create {path}",
        )
        try:
            return CommittedFile.from_dict(payload)
        except (KeyError, TypeError, ValueError) as e:
            raise ProtocolError(f"Malformed create response for {path}: {e}") from e
