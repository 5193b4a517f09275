"""
Database decorators for retrying lost update races.

A retried operation gets a clean session: the failed attempt is rolled
back before the next one starts.
"""

import asyncio
from collections.abc import Callable
from functools import wraps
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.utils.exceptions import is_retryable


T = TypeVar("T")


def _find_session(args: tuple, kwargs: dict) -> AsyncSession | None:
    """Locate the session in call arguments or on the bound service."""
    session = kwargs.get("session")
    if session is not None:
        return session

    if args:
        first = args[0]
        if isinstance(first, AsyncSession):
            return first
        bound = getattr(first, "session", None)
        if isinstance(bound, AsyncSession):
            return bound

    return None


async def _safe_rollback(session: AsyncSession, func_name: str) -> None:
    try:
        await session.rollback()
    except Exception as rollback_error:
        logger.exception(f"Failed to rollback in {func_name}: {rollback_error}")
        raise


def retry_on_conflict(
    attempts: int = 3, backoff_seconds: float = 0.05
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that retries an operation after a retryable storage error.

    Rolls back the session between attempts. Non-retryable errors and the
    final failed attempt propagate unchanged.

    Usage:
        @retry_on_conflict(attempts=3)
        async def process(self, grant_id: int) -> Decimal:
            ...

    Args:
        attempts: Total number of attempts (>= 1)
        backoff_seconds: Linear backoff between attempts

    Returns:
        Decorator
    """
    if attempts < 1:
        raise ValueError("attempts must be >= 1")

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> T:
            session = _find_session(args, kwargs)

            for attempt in range(1, attempts + 1):
                try:
                    return await func(*args, **kwargs)
                except Exception as e:
                    if not is_retryable(e) or attempt == attempts:
                        raise

                    logger.warning(
                        f"Retrying {func.__name__} after {type(e).__name__}",
                        extra={
                            "function": func.__name__,
                            "attempt": attempt,
                            "max_attempts": attempts,
                            "error": str(e),
                        },
                    )
                    if session is not None:
                        await _safe_rollback(session, func.__name__)
                    await asyncio.sleep(backoff_seconds * attempt)

            raise AssertionError("unreachable")

        return wrapper

    return decorator
