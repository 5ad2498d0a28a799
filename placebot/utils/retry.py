"""Async retry helpers used by provider clients and Telegram senders."""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, TypeVar

T = TypeVar("T")
AsyncFactory = Callable[[], Awaitable[T]]
RetryPredicate = Callable[[Exception], bool]


def _always(exc: Exception) -> bool:
    return True


async def retry_async(
    operation: AsyncFactory[T],
    *,
    max_attempts: int = 3,
    base_delay: float = 0.5,
    should_retry: RetryPredicate = _always,
    logger=None,
    operation_name: str = "operation",
) -> T:
    """Run ``operation`` until it succeeds, sleeping ``base_delay * attempt`` between tries.

    Exceptions rejected by ``should_retry`` propagate immediately.
    """

    for attempt in range(1, max_attempts + 1):
        try:
            return await operation()
        except Exception as exc:
            if attempt >= max_attempts or not should_retry(exc):
                raise
            delay = base_delay * attempt
            if logger is not None:
                logger.warning(
                    "retrying_operation",
                    operation=operation_name,
                    attempt=attempt,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(exc),
                )
            await asyncio.sleep(delay)

    raise RuntimeError(f"{operation_name} failed after {max_attempts} attempts")


__all__ = ["retry_async"]
