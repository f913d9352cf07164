"""Bounded retry with exponential backoff for transient Graph failures."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from typing import TypeVar

from msod_stat.graph.client import GraphTransientError

logger = logging.getLogger(__name__)

# Retry defaults
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 1.0
DEFAULT_BACKOFF_FACTOR = 4.0

T = TypeVar("T")


class RetryCancelled(Exception):
    """Raised when the cancel event is set while waiting to retry."""


def call_with_retry(
    func: Callable[[], T],
    *,
    max_retries: int = DEFAULT_MAX_RETRIES,
    retry_delay: float = DEFAULT_RETRY_DELAY,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
    cancel_event: threading.Event | None = None,
    description: str = "",
) -> T:
    """Call func, retrying on GraphTransientError.

    The delay before attempt n (1-based) is the server's Retry-After when
    present, otherwise retry_delay * backoff_factor ** (n - 1). The wait is
    done on cancel_event so that cancellation interrupts it.

    Args:
        func: Zero-argument callable performing one request.
        max_retries: Retries after the first attempt; 0 disables retrying.
        retry_delay: Delay in seconds before the first retry.
        backoff_factor: Multiplier applied to the delay after each retry.
        cancel_event: Optional event; when set, waiting stops with RetryCancelled.
        description: Short label for log messages.

    Returns:
        The value returned by func.

    Raises:
        GraphTransientError: The last error, once retries are exhausted.
        RetryCancelled: If cancel_event is set while waiting.
    """
    event = cancel_event or threading.Event()
    delay = retry_delay
    attempt = 0
    while True:
        try:
            return func()
        except GraphTransientError as exc:
            if attempt >= max_retries:
                logger.error(
                    "[call_with_retry] retries exhausted; target:%s;attempts:%d;error:%s",
                    description,
                    attempt + 1,
                    exc,
                )
                raise
            wait = exc.retry_after if exc.retry_after is not None else delay
            attempt += 1
            logger.warning(
                "[call_with_retry] transient failure, retrying; target:%s;attempt:%d;wait:%.1f",
                description,
                attempt,
                wait,
            )
            if event.wait(wait):
                raise RetryCancelled(description) from exc
            delay *= backoff_factor
