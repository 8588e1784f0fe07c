"""
core/config.py -- DadMail auth settings (pydantic-settings).

Every environment read goes through Settings. Other modules call
get_settings(); none of them touch os.environ.

get_settings() is lru_cached, so the environment and .env are read once per
process. Tests that change the environment call get_settings.cache_clear().

Field names map one-to-one to environment variables (secret_key ->
SECRET_KEY). pydantic does the type coercion; the model validators below
reject configurations that would make tokens unsafe:

  [M6] SECRET_KEY shorter than 32 characters is refused. It is the HMAC key
       for every access and refresh token.

  [M7] Without DEBUG a missing SECRET_KEY stops startup. A key generated at
       boot would silently invalidate every stored refresh session on the
       next restart. With DEBUG=true a throwaway key is generated and a
       warning logged.

Layer rule: core/ imports neither api/ nor auth/.
"""

import logging
import secrets
from functools import lru_cache
from pathlib import Path

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from sqlalchemy.engine import URL

logger = logging.getLogger("dadmail.config")

_DEFAULT_SQLITE_URL = f"sqlite:///{Path(__file__).resolve().parent.parent / 'dadmail_auth.db'}"

_HMAC_ALGORITHMS = ("HS256", "HS384", "HS512")


class Settings(BaseSettings):
    """Environment-backed configuration. Every field has a usable default
    except SECRET_KEY outside DEBUG mode."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""
    jwt_algorithm: str = "HS256"

    # ------------------------------------------------------------------
    # Tokens and credentials
    # ------------------------------------------------------------------

    access_token_ttl_minutes: int = 15
    refresh_token_ttl_hours: int = 168  # 7 days
    min_password_length: int = 8
    bcrypt_rounds: int = 12
    default_role: str = "senior"

    # ------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------

    # DATABASE_URL wins when set. Otherwise a PostgreSQL URL is assembled from
    # the DB_* parts, and with no DB_HOST a local SQLite file is used.
    database_url: str = ""
    db_host: str = ""
    db_port: int = 5432
    db_user: str = "dadmail"
    db_password: str = ""
    db_name: str = "dadmail"
    db_sslmode: str = "disable"

    db_pool_size: int = 5
    db_max_overflow: int = 20
    store_timeout_seconds: float = 5.0

    # Background sweep of expired sessions. 0 disables the in-process loop
    # (e.g. when `main.py purge-sessions` runs from cron instead).
    session_purge_interval_seconds: int = 3600

    # ------------------------------------------------------------------
    # HTTP
    # ------------------------------------------------------------------

    login_rate_limit: str = "10/minute"
    register_rate_limit: str = "5/minute"
    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost"]
    cors_origins: list[str] = ["http://localhost:5173"]

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Apply the [M6]/[M7] SECRET_KEY rules from the module docstring."""
        if not self.secret_key and self.debug:
            self.secret_key = secrets.token_hex(32)
            logger.warning("SECRET_KEY not set; generated a throwaway key (DEBUG). Refresh sessions die on restart.")
        if not self.secret_key:
            raise ValueError("SECRET_KEY is required unless DEBUG=true. Set it in the environment or .env.")
        if len(self.secret_key) < 32:
            raise ValueError(f"SECRET_KEY must be at least 32 characters (got {len(self.secret_key)}).")
        return self

    @model_validator(mode="after")
    def validate_token_settings(self) -> "Settings":
        """Reject non-HMAC algorithms and non-positive lifetimes at startup."""
        if self.jwt_algorithm not in _HMAC_ALGORITHMS:
            raise ValueError(f"JWT_ALGORITHM must be one of {', '.join(_HMAC_ALGORITHMS)}.")
        if self.access_token_ttl_minutes <= 0 or self.refresh_token_ttl_hours <= 0:
            raise ValueError("Token lifetimes must be positive.")
        if self.min_password_length < 1:
            raise ValueError("MIN_PASSWORD_LENGTH must be at least 1.")
        return self

    def resolved_database_url(self) -> str:
        """Return the connection string for the durable store.

        PostgreSQL URLs are built with URL.create so credentials containing
        '@' or '/' are escaped correctly.
        """
        if self.database_url:
            return self.database_url
        if self.db_host:
            url = URL.create(
                "postgresql+psycopg2",
                username=self.db_user,
                password=self.db_password or None,
                host=self.db_host,
                port=self.db_port,
                database=self.db_name,
                query={"sslmode": self.db_sslmode},
            )
            return url.render_as_string(hide_password=False)
        return _DEFAULT_SQLITE_URL


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide Settings, built on first call."""
    return Settings()
