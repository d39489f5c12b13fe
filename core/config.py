"""
core/config.py -- Settings for School Records, read from the environment.

Every environment variable the project uses is declared on Settings below.
Other modules get values through get_settings(); none of them read os.environ.

Values come from process environment variables first, then from a .env file
in the working directory. Field names map to upper-case variable names
(database_url -> DATABASE_URL).

Settings only describe the database pool. The AccountStore that owns the
pool is built by whichever entry point runs (API lifespan or CLI) and
closed by that same entry point.

Layer rule: core/ imports nothing from accounts/ or api/.
"""

import logging
from functools import lru_cache
from pathlib import Path

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("schoolrecords.config")

_DEFAULT_DB_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'accounts' / 'school_records.db'}"


class Settings(BaseSettings):
    """School Records configuration. Every field has a default, so an empty
    environment yields a working local setup backed by a SQLite file.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    database_url: str = _DEFAULT_DB_URL
    # Pool sizing applies to server databases only. SQLite URLs use the
    # SQLAlchemy default pool for the dialect.
    db_pool_size: int = 10
    db_max_overflow: int = 5
    db_pool_timeout: int = 30  # seconds to wait for a free connection

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    temp_password_length: int = 12
    # When true, create/update operations reject passwords that fail
    # credentials.meets_policy() with INVALID_INPUT.
    min_password_policy: bool = True

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @field_validator("temp_password_length")
    @classmethod
    def validate_temp_password_length(cls, value: int) -> int:
        if value < 8:
            raise ValueError("TEMP_PASSWORD_LENGTH must be at least 8 characters.")
        return value

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        level = value.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown LOG_LEVEL {value!r}")
        return level


@lru_cache
def get_settings() -> Settings:
    """Build Settings on first call and return the same instance afterwards.

    Tests that change environment variables must call get_settings.cache_clear().
    """
    settings = Settings()
    if settings.debug:
        logger.warning("DEBUG mode enabled -- do not run with DEBUG=true in production.")
    return settings
