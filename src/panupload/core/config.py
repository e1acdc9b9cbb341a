"""Configuration classes for panupload.

This module defines the settings shared by the HTTP client, the pacer and
the upload pipeline.
"""

from __future__ import annotations

from dataclasses import dataclass

from panupload.core.types import BLOCK_SIZE

DEFAULT_API_URL = "https://pan.baidu.com"
DEFAULT_PCS_URL = "https://d.pcs.baidu.com"


@dataclass
class ClientConfig:
    """Configuration for connecting to the remote.

    Attributes:
        api_url: Base URL of the xpan API (precreate, create).
        pcs_url: Base URL of the block upload service.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify SSL certificates (default True).
        root: Remote directory all uploads are placed under.
    """

    api_url: str = DEFAULT_API_URL
    pcs_url: str = DEFAULT_PCS_URL
    timeout: float = 60.0
    verify_ssl: bool = True
    root: str = ""

    def __post_init__(self) -> None:
        """Normalize URLs and root."""
        self.api_url = self.api_url.rstrip("/")
        self.pcs_url = self.pcs_url.rstrip("/")
        self.root = self.root.strip("/")


@dataclass
class PacerConfig:
    """Backoff policy shared by every remote call.

    Attributes:
        min_sleep: Lower bound of the delay between calls, in seconds.
        max_sleep: Upper bound of the delay between calls, in seconds.
        decay_constant: Controls how fast the delay shrinks after a success.
        attack_constant: Controls how fast the delay grows after a failure.
        retries: Attempts per call before the last error is raised.
    """

    min_sleep: float = 0.01
    max_sleep: float = 2.0
    decay_constant: int = 2
    attack_constant: int = 1
    retries: int = 10

    def __post_init__(self) -> None:
        """Validate bounds."""
        if self.min_sleep < 0 or self.max_sleep < self.min_sleep:
            raise ValueError(
                f"Invalid pacer bounds: min_sleep={self.min_sleep}, "
                f"max_sleep={self.max_sleep}"
            )
        if self.retries < 1:
            raise ValueError(f"retries must be at least 1, got {self.retries}")


@dataclass
class UploadConfig:
    """Settings for the upload pipeline.

    Attributes:
        block_size: Block size for hashing and transfer (the remote requires 4 MiB).
        memory_limit: Content larger than this is spooled to a temporary file.
        block_workers: Concurrent block uploads per file (1 = sequential).
    """

    block_size: int = BLOCK_SIZE
    memory_limit: int = 32 * 1024 * 1024
    block_workers: int = 1
