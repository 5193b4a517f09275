"""
Dramatiq broker configuration.

All reward workers share one Redis broker. Domain errors are final and
never retried; infrastructure errors back off exponentially.
"""

import dramatiq
from dramatiq.brokers.redis import RedisBroker
from dramatiq.middleware import CurrentMessage, Retries, default_middleware
from loguru import logger

from taskvip.config.settings import settings
from taskvip.utils.exceptions import TaskVipError

MAX_RETRIES = 3


def should_retry(retries_so_far: int, exception: Exception) -> bool:
    """Retry infrastructure failures only; business rule violations are final."""
    if isinstance(exception, TaskVipError):
        return False
    return retries_so_far < MAX_RETRIES


def create_broker() -> RedisBroker:
    """Build the Redis broker with our retry policy in place of the stock one."""
    middleware = [m() for m in default_middleware if m is not Retries]
    middleware.append(
        Retries(min_backoff=1_000, max_backoff=60_000, retry_when=should_retry)
    )
    middleware.append(CurrentMessage())

    return RedisBroker(
        host=settings.redis_host,
        port=settings.redis_port,
        password=settings.redis_password or None,
        db=settings.redis_db,
        middleware=middleware,
    )


broker = create_broker()
dramatiq.set_broker(broker)

logger.info(
    f"Dramatiq broker ready on "
    f"redis://{settings.redis_host}:{settings.redis_port}/{settings.redis_db}"
)
