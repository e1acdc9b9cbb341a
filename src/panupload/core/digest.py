"""Content digests for panupload.

This module provides:
- ContentBuffer: Random-access copy of the content, spooled to disk when large
- compute_digest: Single-pass whole-content and per-block MD5 computation
- digest_file: Convenience wrapper for local files
- get_block_hash: MD5 of a single block
"""

from __future__ import annotations

import hashlib
import tempfile
import threading
from pathlib import Path
from typing import BinaryIO

from panupload.core.errors import SizeError
from panupload.core.types import BLOCK_SIZE, ContentDigest, block_count, block_range

# Bytes read from the source per call
READ_SIZE = 64 * 1024

# Content above this size is spooled to a temporary file
DEFAULT_MEMORY_LIMIT = 32 * 1024 * 1024


def get_block_hash(data: bytes) -> str:
    """Compute MD5 hash of data.

    Args:
        data: Raw bytes to hash.

    Returns:
        Hex-encoded MD5 hash string (32 characters).
    """
    return hashlib.md5(data).hexdigest()


class ContentBuffer:
    """Random-access copy of hashed content.

    Backed by a SpooledTemporaryFile: held in memory up to `memory_limit`
    bytes, then rolled over to a temporary file on disk.
    """

    def __init__(
        self,
        size: int,
        block_size: int = BLOCK_SIZE,
        memory_limit: int = DEFAULT_MEMORY_LIMIT,
    ) -> None:
        self._size = size
        self._block_size = block_size
        self._memory_limit = memory_limit
        self._file = tempfile.SpooledTemporaryFile(max_size=memory_limit)
        self._lock = threading.Lock()

    @property
    def size(self) -> int:
        """Number of bytes held."""
        return self._size

    @property
    def block_size(self) -> int:
        """Block size used for slicing."""
        return self._block_size

    @property
    def spilled(self) -> bool:
        """Check if the content is too large to stay in memory."""
        return self._size > self._memory_limit

    def write(self, data: bytes) -> None:
        """Append data while the content is being read."""
        self._file.write(data)

    def read_block(self, index: int) -> bytes:
        """Read block `index`.

        Raises:
            IndexError: If index is outside the content.
        """
        if index < 0 or index >= block_count(self._size, self._block_size):
            raise IndexError(f"Block {index} out of range")
        offset, length = block_range(index, self._size, self._block_size)
        with self._lock:
            self._file.seek(offset)
            data = self._file.read(length)
        if len(data) != length:
            raise SizeError(f"Buffered block {index} is {len(data)} bytes, expected {length}")
        return data

    def close(self) -> None:
        """Release memory or the temporary file."""
        self._file.close()

    def __enter__(self) -> ContentBuffer:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()


def compute_digest(
    source: BinaryIO,
    size: int,
    block_size: int = BLOCK_SIZE,
    memory_limit: int = DEFAULT_MEMORY_LIMIT,
) -> tuple[ContentDigest, ContentBuffer]:
    """Hash a byte source and keep a random-access copy of it.

    The source is read exactly once and need not be seekable. Blocks start
    at multiples of `block_size`; the last one holds the remainder.

    Args:
        source: Readable binary stream.
        size: Declared number of bytes in the stream.
        block_size: Block size for per-block hashes.
        memory_limit: Threshold above which the copy is kept on disk.

    Returns:
        Tuple of (digest, buffer). The caller owns the buffer and must close it.

    Raises:
        SizeError: If size is negative or the stream is shorter or longer.
    """
    if size < 0:
        raise SizeError(f"Cannot upload content with negative size {size}")

    buffer = ContentBuffer(size, block_size, memory_limit)
    content_hash = hashlib.md5()
    block_hash = hashlib.md5()
    block_md5s: list[str] = []
    in_block = 0
    remaining = size

    try:
        while remaining > 0:
            data = source.read(min(READ_SIZE, remaining, block_size - in_block))
            if not data:
                raise SizeError(
                    f"Short read: got {size - remaining} of {size} declared bytes"
                )
            buffer.write(data)
            content_hash.update(data)
            block_hash.update(data)
            in_block += len(data)
            remaining -= len(data)

            if in_block == block_size or remaining == 0:
                block_md5s.append(block_hash.hexdigest())
                block_hash = hashlib.md5()
                in_block = 0

        # Source must be exhausted exactly at the declared size
        if source.read(1):
            raise SizeError(f"Source holds more than the declared {size} bytes")
    except BaseException:
        buffer.close()
        raise

    digest = ContentDigest(
        size=size,
        content_md5=content_hash.hexdigest(),
        block_md5s=tuple(block_md5s),
    )
    return digest, buffer


def digest_file(
    path: Path,
    block_size: int = BLOCK_SIZE,
    memory_limit: int = DEFAULT_MEMORY_LIMIT,
) -> tuple[ContentDigest, ContentBuffer]:
    """Hash a local file, taking its size from the filesystem.

    Raises:
        FileNotFoundError: If the file does not exist.
        OSError: If the file cannot be read.
        SizeError: If the file changes size while it is read.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"File not found: {path}")

    size = path.stat().st_size
    with path.open("rb") as f:
        return compute_digest(f, size, block_size, memory_limit)
