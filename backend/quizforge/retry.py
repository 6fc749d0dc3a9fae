from __future__ import annotations

import asyncio
import logging
import random
from typing import Awaitable, Callable, Optional, TypeVar

import httpx

from .errors import CompletionError, ErrorKind
from .gemini_client import classify_error
from .settings import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")

Sleep = Callable[[float], Awaitable[None]]


def as_retryable(err: BaseException) -> Optional[CompletionError]:
    """Return the transient classification of ``err``, or None if it must not be retried."""
    if isinstance(err, CompletionError):
        return err if err.transient else None
    if isinstance(err, (asyncio.TimeoutError, TimeoutError)):
        return CompletionError(ErrorKind.TIMEOUT, f"operation timed out: {err!r}")
    if isinstance(err, httpx.HTTPError):
        classified = classify_error(err)
        return classified if classified.transient else None
    return None


def backoff_delay(attempt: int, *, base: float, maximum: float, jitter: bool = False) -> float:
    delay = min(base * (2 ** attempt), maximum)
    if jitter:
        delay = random.uniform(0, delay)
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    label: str,
    max_attempts: Optional[int] = None,
    *,
    base_delay: Optional[float] = None,
    max_delay: Optional[float] = None,
    jitter: Optional[bool] = None,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run ``operation`` with bounded exponential backoff on transient failures.

    Non-transient errors, and the last transient error once attempts are
    exhausted, propagate unchanged.
    """
    attempts = max(1, max_attempts or settings.retry_max_attempts)
    base = settings.retry_base_delay_seconds if base_delay is None else base_delay
    maximum = settings.retry_max_delay_seconds if max_delay is None else max_delay
    use_jitter = settings.retry_jitter if jitter is None else jitter

    for attempt in range(attempts):
        try:
            return await operation()
        except Exception as err:
            transient = as_retryable(err)
            if transient is None:
                logger.debug("%s failed with non-retryable error: %r", label, err)
                raise
            if attempt >= attempts - 1:
                logger.error("%s failed after %d attempts: %s", label, attempts, transient)
                raise
            delay = backoff_delay(attempt, base=base, maximum=maximum, jitter=use_jitter)
            logger.warning(
                "%s for %s. Retrying in %.1fs (attempt %d/%d)",
                transient.kind.value,
                label,
                delay,
                attempt + 1,
                attempts,
            )
            await sleep(delay)
    raise RuntimeError(f"{label}: retry loop exited without a result")
