"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the SSO service happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. This is
      the official FastAPI dependency injection pattern for config.

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. database_url -> DATABASE_URL). Type coercion and validation are built in.

  @model_validator(mode="after"): cross-field checks once every field is
      resolved. A missing DATABASE_URL is a hard startup failure: the
      service has nowhere to keep users without it.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

from datetime import timedelta
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings loaded from environment variables and .env file.

    Every field except database_url has a default, so tests only need to set
    DATABASE_URL (tests/conftest.py does this before any import).
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Storage
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured"; the validator rejects it.
    # Must name an async driver, e.g. sqlite+aiosqlite:///./sso.db
    database_url: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    token_ttl_seconds: int = Field(default=3600, gt=0)
    bcrypt_rounds: int = Field(default=10, ge=4, le=31)
    # Per-operation deadline for AuthService calls.
    operation_timeout_seconds: float = Field(default=5.0, gt=0)
    # Report unknown users from is_admin as invalid_application (old behaviour).
    legacy_is_admin_errors: bool = False

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    log_level: str = "INFO"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_database_url(self) -> "Settings":
        if not self.database_url:
            raise ValueError(
                "DATABASE_URL is required. "
                "Set DATABASE_URL in your environment or .env file, "
                "e.g. DATABASE_URL=sqlite+aiosqlite:///./sso.db"
            )
        if self.database_url.startswith("sqlite://"):
            raise ValueError("DATABASE_URL must use an async driver, e.g. sqlite+aiosqlite:///./sso.db")
        return self

    @property
    def token_ttl(self) -> timedelta:
        return timedelta(seconds=self.token_ttl_seconds)


@lru_cache
def get_settings() -> Settings:
    """Return the Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
