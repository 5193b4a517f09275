"""
Logging configuration.

Configures the loguru logger: stderr sink plus an optional rotating file.
"""

import sys

from loguru import logger

from taskvip.config.settings import Settings, settings as default_settings


def setup_logging(config: Settings | None = None) -> None:
    """Configure logger with file rotation."""
    config = config or default_settings

    logger.remove()
    logger.add(sys.stderr, level=config.log_level)

    if config.log_file:
        logger.add(
            config.log_file,
            rotation="1 day",
            retention="7 days",
            level=config.log_level,
            encoding="utf-8",
        )

    logger.info(
        "Logging configured",
        extra={"environment": config.environment, "level": config.log_level},
    )
