"""
Application settings.

Loads configuration from environment variables using pydantic-settings.
"""

from decimal import Decimal

from loguru import logger
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str
    database_echo: bool = False

    # Application
    environment: str = "production"
    debug: bool = False
    log_level: str = "INFO"
    log_file: str | None = Field(
        default="logs/taskvip.log",
        description="Rotating log file path (empty disables file logging)"
    )

    # Fraud gating
    fraud_hold_threshold: int = Field(
        default=70,
        ge=0,
        le=100,
        description="Scores strictly above this hold the request for review"
    )

    # Withdrawals
    min_withdrawable_credits: Decimal = Field(
        default=Decimal("100"),
        ge=0,
        description="Available credits required before promotion to withdrawable"
    )
    withdrawal_daily_limit: Decimal = Field(
        default=Decimal("1000"),
        gt=0,
        description="Daily withdrawal limit for non-VIP users"
    )
    withdrawal_daily_limit_vip: Decimal = Field(
        default=Decimal("5000"),
        gt=0,
        description="Daily withdrawal limit for VIP users"
    )

    # Vesting sweep (optional periodic job)
    vesting_sweep_batch_size: int = Field(
        default=500, gt=0, description="Grants processed per sweep run"
    )

    # Redis (for Dramatiq)
    redis_host: str = "localhost"
    redis_port: int = 6379
    redis_password: str | None = None
    redis_db: int = 0

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @model_validator(mode='after')
    def validate_production(self) -> 'Settings':
        """Validate production-specific requirements."""
        if self.environment == 'production':
            if self.debug:
                raise ValueError(
                    'DEBUG must be False in production environment. '
                    'Set DEBUG=false in your .env file.'
                )
            if self.database_url.startswith('sqlite'):
                logger.warning(
                    'DATABASE_URL points to SQLite in production. '
                    'Row locks are not enforced; use PostgreSQL.'
                )
        return self

    @field_validator('database_url')
    @classmethod
    def validate_database_url(cls, v: str) -> str:
        """Validate database URL."""
        if not v.startswith(
            ('postgresql://', 'postgresql+asyncpg://', 'sqlite+aiosqlite://')
        ):
            raise ValueError(
                'DATABASE_URL must start with postgresql+asyncpg:// '
                'or sqlite+aiosqlite://'
            )
        if v.startswith('postgresql://'):
            return v.replace('postgresql://', 'postgresql+asyncpg://', 1)
        return v

    @property
    def is_sqlite(self) -> bool:
        """Whether the configured database is SQLite."""
        return self.database_url.startswith('sqlite')


# Global settings instance
settings = Settings()
