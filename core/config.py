"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for the account service happen here. No module
should call os.getenv() or os.environ.get() directly -- import get_settings()
instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call. The
      lifespan in api/main.py reads it once and hands the values to the
      components that need them (TokenIssuer, SessionManager, UserStore).

  BaseSettings (pydantic-settings): Reads values from environment variables
      and an optional .env file automatically. Field names map to env var names
      (e.g. jwt_secret -> JWT_SECRET). Type coercion and validation are built in.

Security notes:
  JWT_SECRET may be empty. The process still starts, but every token issue or
  verify call raises ConfigurationError, which the API renders as a 500.
  A configured key shorter than 32 chars is rejected outside debug mode.

  SESSION_SECRET falls back to an insecure development default. A warning is
  logged at startup; production deployments must set it.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("accounts.config")

_DEFAULT_SESSION_SECRET = "default_secret"  # noqa: S105 # nosec B105 -- dev fallback, warned at startup


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.
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
    # Empty string means "use UserStore's default SQLite file".
    database_url: str = ""

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    # Empty string is the sentinel for "not configured".
    jwt_secret: str = ""
    session_secret: str = _DEFAULT_SESSION_SECRET
    secure_cookies: bool = False
    # Token validity (8 hours) and server-side session lifetime (1 hour) are
    # deliberately independent.
    token_expire_seconds: int = 8 * 60 * 60
    session_max_age_seconds: int = 60 * 60

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    cors_origins: list[str] = ["*"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secrets(self) -> "Settings":
        """Warn about hardening gaps; reject weak signing keys in production."""
        if not self.jwt_secret:
            logger.warning("JWT_SECRET is not set. Token issuance and verification will fail.")
        elif len(self.jwt_secret) < 32 and not self.debug:
            raise ValueError("JWT_SECRET must be at least 32 characters.")
        if self.session_secret == _DEFAULT_SESSION_SECRET:
            logger.warning("SESSION_SECRET is not set. Using the insecure development default.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables.
    """
    return Settings()
