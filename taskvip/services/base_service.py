"""
Base service class.

Services share one AsyncSession per unit of work. Public operations that
form a unit of work are wrapped in @transaction; helpers called from
inside another service's unit of work are not.
"""

import functools
import time
from collections.abc import Callable
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession

from taskvip.utils.exceptions import TaskVipError


T = TypeVar("T")


class BaseService:
    """Holds the session and a logger bound to the service name."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session
        self.logger = logger.bind(service=self.__class__.__name__)


def transaction(func: Callable[..., T]) -> Callable[..., T]:
    """
    Run a service method as one unit of work.

    Commits when the method returns. On any exception the session is
    rolled back and the exception re-raised: rejected business rules are
    logged as warnings, everything else as errors.

    Usage:
        @transaction
        async def grant_credit(self, user_id: int, amount: Decimal):
            ...
    """
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        try:
            result = await func(self, *args, **kwargs)
            await self.session.commit()
        except Exception as e:
            await self.session.rollback()
            log = (
                self.logger.warning
                if isinstance(e, TaskVipError)
                else self.logger.error
            )
            log(
                f"{func.__name__} rolled back",
                extra={"error": str(e), "error_type": type(e).__name__},
            )
            raise
        return result

    return wrapper


def log_operation(func: Callable[..., T]) -> Callable[..., T]:
    """Log start, outcome and duration of a long-running service method."""
    @functools.wraps(func)
    async def wrapper(self: BaseService, *args: Any, **kwargs: Any) -> Any:
        started = time.monotonic()
        self.logger.info(f"{func.__name__} started")
        try:
            result = await func(self, *args, **kwargs)
        except Exception as e:
            self.logger.error(
                f"{func.__name__} failed",
                extra={
                    "error_type": type(e).__name__,
                    "duration_seconds": round(time.monotonic() - started, 3),
                },
            )
            raise
        self.logger.info(
            f"{func.__name__} finished",
            extra={"duration_seconds": round(time.monotonic() - started, 3)},
        )
        return result

    return wrapper
