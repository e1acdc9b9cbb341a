"""Core module - Shared types, digests, errors, and configuration."""

from panupload.core.config import ClientConfig, PacerConfig, UploadConfig
from panupload.core.digest import (
    ContentBuffer,
    compute_digest,
    digest_file,
    get_block_hash,
)
from panupload.core.errors import (
    AuthenticationError,
    BlockUploadError,
    PanError,
    ProtocolError,
    RateLimitedError,
    RemoteError,
    SizeError,
    TransportError,
    UploadCancelledError,
    UploadError,
)
from panupload.core.types import (
    BLOCK_SIZE,
    CommittedFile,
    ContentDigest,
    UploadProgress,
    UploadSession,
    UploadTarget,
    block_count,
)

__all__ = [
    # Config
    "ClientConfig",
    "PacerConfig",
    "UploadConfig",
    # Digest
    "ContentBuffer",
    "compute_digest",
    "digest_file",
    "get_block_hash",
    # Errors
    "AuthenticationError",
    "BlockUploadError",
    "PanError",
    "ProtocolError",
    "RateLimitedError",
    "RemoteError",
    "SizeError",
    "TransportError",
    "UploadCancelledError",
    "UploadError",
    # Types
    "BLOCK_SIZE",
    "CommittedFile",
    "ContentDigest",
    "UploadProgress",
    "UploadSession",
    "UploadTarget",
    "block_count",
]
