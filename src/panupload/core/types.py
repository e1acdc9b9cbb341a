"""Shared types for panupload.

This module defines the data model of one upload:
- UploadTarget: where the content goes and how it is sliced
- ContentDigest: whole-content and per-block MD5 digests
- UploadSession: server-issued session from precreate
- CommittedFile: file record returned by create
- UploadProgress: progress information for callbacks
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

from panupload.core.errors import SizeError

# Block size mandated by the remote (4 MiB exactly)
BLOCK_SIZE = 4 * 1024 * 1024


def block_count(size: int, block_size: int = BLOCK_SIZE) -> int:
    """Return the number of blocks for content of the given size."""
    return -(-size // block_size)


def block_range(index: int, size: int, block_size: int = BLOCK_SIZE) -> tuple[int, int]:
    """Return (offset, length) of block `index` in content of `size` bytes."""
    offset = index * block_size
    return offset, min(block_size, size - offset)


@dataclass(frozen=True)
class UploadTarget:
    """Destination and slicing parameters for one upload.

    Attributes:
        path: Absolute remote path (e.g. "/apps/backup/report.pdf").
        size: Declared content length in bytes.
        block_size: Block size used for hashing and transfer.
        overwrite: Replace an existing file at path instead of failing.
    """

    path: str
    size: int
    block_size: int = BLOCK_SIZE
    overwrite: bool = True

    def __post_init__(self) -> None:
        """Validate sizes."""
        if self.size < 0:
            raise SizeError(f"Cannot upload {self.path} with negative size {self.size}")
        if self.block_size <= 0:
            raise ValueError(f"Block size must be positive, got {self.block_size}")

    @property
    def block_count(self) -> int:
        """Number of blocks the content is split into."""
        return block_count(self.size, self.block_size)


@dataclass(frozen=True)
class ContentDigest:
    """MD5 digests of the content, whole and per block."""

    size: int
    content_md5: str
    block_md5s: tuple[str, ...]


@dataclass
class UploadSession:
    """Upload session negotiated with precreate.

    Attributes:
        upload_id: Server-issued session identifier ("" when rapid).
        block_md5s: Full ordered block hash list the session was negotiated with.
        needed_blocks: Block indices the server asked for, ascending.
        rapid: True if the server already holds the content.
    """

    upload_id: str
    block_md5s: tuple[str, ...]
    needed_blocks: list[int] = field(default_factory=list)
    rapid: bool = False


@dataclass
class CommittedFile:
    """File record returned by the create call."""

    fs_id: int
    path: str
    size: int
    md5: str
    server_ctime: int
    server_mtime: int
    server_filename: str = ""
    category: int = 0

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CommittedFile:
        """Create from API response dictionary.

        The create endpoint reports timestamps as ``ctime``/``mtime`` while
        listings use ``server_ctime``/``server_mtime``; both are accepted.
        """
        path = data["path"]
        return cls(
            fs_id=int(data["fs_id"]),
            path=path,
            size=int(data["size"]),
            md5=data.get("md5", ""),
            server_ctime=int(data.get("server_ctime", data.get("ctime", 0))),
            server_mtime=int(data.get("server_mtime", data.get("mtime", 0))),
            server_filename=data.get("server_filename") or path.rsplit("/", 1)[-1],
            category=int(data.get("category", 0)),
        )


@dataclass
class UploadProgress:
    """Progress information for an upload."""

    path: str
    size: int
    blocks_done: int
    blocks_total: int
    bytes_transferred: int

    @property
    def percent(self) -> float:
        """Get progress percentage."""
        if self.blocks_total == 0:
            return 100.0
        return (self.blocks_done / self.blocks_total) * 100


# Type alias for progress callback
ProgressCallback = Callable[[UploadProgress], None]
