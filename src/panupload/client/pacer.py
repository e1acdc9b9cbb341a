"""Shared pacing and retry for remote calls.

This module provides:
- Pacer: Spaces out calls and retries transient failures with backoff
- should_retry: Classifies an error as retryable or fatal
- classify_error: Maps httpx exceptions onto the panupload error taxonomy

One Pacer is shared by every call made through one HTTPClient, so
concurrent uploads see the same rate-limit pressure.
"""

from __future__ import annotations

import logging
import threading
import time
from collections.abc import Callable
from typing import TypeVar

import httpx

from panupload.core.config import PacerConfig
from panupload.core.errors import (
    RateLimitedError,
    RemoteError,
    TransportError,
    UploadCancelledError,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def classify_error(error: Exception) -> Exception:
    """Translate httpx exceptions into panupload errors.

    Other exceptions are returned unchanged.
    """
    if isinstance(error, httpx.HTTPStatusError):
        status = error.response.status_code
        if status == 429:
            return RateLimitedError("Rate limited by remote (HTTP 429)", status)
        return TransportError(f"HTTP {status} from {error.request.url.path}", status)
    if isinstance(error, httpx.TransportError):
        return TransportError(f"{type(error).__name__}: {error}")
    return error


def should_retry(error: Exception) -> bool:
    """Check if a failed call may be retried.

    Args:
        error: Error already passed through classify_error.

    Returns:
        True for rate limiting, transport failures and 5xx responses, and
        remote errors whose code signals rate limiting.
    """
    if isinstance(error, UploadCancelledError):
        return False
    if isinstance(error, TransportError):
        status = error.status_code
        return status is None or status == 429 or status >= 500
    if isinstance(error, RemoteError):
        return error.is_rate_limited
    return False


class Pacer:
    """Rate limiter with exponential backoff shared by all remote calls.

    Every call waits until `sleep_time` has passed since the previous call
    started, or since the last failure ended. A retryable failure multiplies
    the delay by 2**attack_constant (capped at max_sleep); a success shrinks
    it by a factor of (2**decay_constant - 1) / 2**decay_constant (floored
    at min_sleep).

    How long a call keeps retrying is part of the same shared policy:
    PacerConfig.retries attempts per call (10 by default, like rclone's
    low-level retries), each spaced by the current backoff. After the last
    attempt the classified error is raised.

    Usage:
        pacer = Pacer(PacerConfig())
        result = pacer.call(lambda: client.get(...), cancel=event)
    """

    def __init__(
        self,
        config: PacerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the pacer.

        Args:
            config: Backoff policy. Defaults to PacerConfig().
            clock: Monotonic clock, replaceable in tests.
        """
        self._config = config or PacerConfig()
        self._clock = clock
        self._lock = threading.Lock()
        self._sleep_time = self._config.min_sleep
        self._next_call = 0.0

    @property
    def config(self) -> PacerConfig:
        """Get the backoff policy."""
        return self._config

    @property
    def sleep_time(self) -> float:
        """Current delay between calls in seconds."""
        with self._lock:
            return self._sleep_time

    def call(
        self,
        func: Callable[[], T],
        cancel: threading.Event | None = None,
        description: str = "remote call",
    ) -> T:
        """Execute a remote call under the shared pacing policy.

        Args:
            func: Function performing one attempt.
            cancel: Optional event; when set, waiting stops and the call aborts.
            description: Label used in log messages.

        Returns:
            Result of the first successful attempt.

        Raises:
            UploadCancelledError: If cancel is set before or between attempts.
            The last error if it is not retryable or all attempts fail.
        """
        retries = self._config.retries

        for attempt in range(1, retries + 1):
            self._wait_turn(cancel)
            try:
                result = func()
            except Exception as e:
                error = classify_error(e)
                retryable = should_retry(error)
                if retryable:
                    self._on_failure()
                    if attempt == retries:
                        logger.error(f"{description}: all {retries} attempts failed: {error}")
                if not retryable or attempt == retries:
                    if error is e:
                        raise
                    raise error from e

                logger.warning(
                    f"{description}: attempt {attempt}/{retries} failed: {error}. "
                    f"Retrying in {self.sleep_time:.2f}s..."
                )
                continue

            self._on_success()
            return result

        # Should not reach here, but satisfy type checker
        raise RuntimeError("Unexpected pacer loop exit")

    def _wait_turn(self, cancel: threading.Event | None) -> None:
        """Block until this caller may start its next attempt."""
        if cancel is not None and cancel.is_set():
            raise UploadCancelledError("Upload cancelled")

        with self._lock:
            now = self._clock()
            start = max(now, self._next_call)
            self._next_call = start + self._sleep_time
        delay = start - now

        if delay > 0:
            if cancel is None:
                time.sleep(delay)
            elif cancel.wait(delay):
                raise UploadCancelledError("Upload cancelled while waiting to retry")
        elif cancel is not None and cancel.is_set():
            raise UploadCancelledError("Upload cancelled")

    def _on_failure(self) -> None:
        with self._lock:
            grown = self._sleep_time * (2 ** self._config.attack_constant)
            # A zero delay never grows by multiplication
            grown = max(grown, self._config.min_sleep, 0.001)
            self._sleep_time = min(grown, self._config.max_sleep)
            # Nobody calls again before the grown delay has passed
            self._next_call = max(self._next_call, self._clock() + self._sleep_time)

    def _on_success(self) -> None:
        with self._lock:
            factor = 2 ** self._config.decay_constant
            decayed = self._sleep_time * (factor - 1) / factor
            self._sleep_time = max(decayed, self._config.min_sleep)
