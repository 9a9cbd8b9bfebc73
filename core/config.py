"""
core/config.py -- Centralized application configuration via pydantic-settings.

All environment variable reads for TourGate happen here. No module should
call os.getenv() or os.environ.get() directly -- import get_settings() instead.

Design patterns used:
  Singleton via lru_cache: get_settings() instantiates Settings once at first
      call and returns the cached instance on every subsequent call.

  Constructor injection: components (TokenCodec, PasswordResetManager,
      AccountService, ...) take a Settings instance in __init__ and keep a
      reference. The model is frozen after validation, so no component can
      mutate process-wide configuration at runtime.

  @model_validator(mode="after"): Runs cross-field validation after all fields
      are resolved from environment. Dev mode generates a SECRET_KEY with a
      warning, production mode refuses to start without one.

Security notes:
  [M6] SECRET_KEY shorter than 32 chars is rejected outright. JWT signing
       relies on key entropy -- a short key weakens every issued session.

  [M7] Outside DEBUG mode a missing SECRET_KEY is a hard startup failure.

Layer rule: core/ is the kernel. This module may not import from api/ or auth/.
"""

import logging
import secrets
from functools import lru_cache

from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("tourgate.config")


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    All fields have defaults so Settings() can be instantiated in test
    environments without a real .env file.

    Environment variable name mapping: field names are uppercased automatically.
    E.g. `secret_key` reads from SECRET_KEY, `production` reads from PRODUCTION.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )

    # ------------------------------------------------------------------
    # Core
    # ------------------------------------------------------------------

    debug: bool = False
    # Marks the cookie secure-transport-only. Kept separate from debug so a
    # staging deploy can run without DEBUG but still over plain HTTP.
    production: bool = False
    # Empty string is the sentinel for "not configured". The model_validator
    # below either generates a dev key or raises, so callers never see "".
    secret_key: str = ""

    database_url: str = "sqlite:///tourgate_auth.db"

    # ------------------------------------------------------------------
    # Sessions and credentials
    # ------------------------------------------------------------------

    # 90 days, the lifetime the original deployment used for both the JWT
    # and its cookie.
    token_expire_seconds: int = 90 * 24 * 3600
    reset_token_expire_minutes: int = 10
    password_min_length: int = 8

    # ------------------------------------------------------------------
    # Rate limiting
    # ------------------------------------------------------------------

    # slowapi limit string applied per client IP to login and forgotPassword.
    login_rate_limit: str = "10/minute"

    # ------------------------------------------------------------------
    # HTTP edge. List values are read from the environment as JSON,
    # e.g. ALLOWED_HOSTS='["api.example.com"]'.
    # ------------------------------------------------------------------

    allowed_hosts: list[str] = ["localhost", "127.0.0.1", "*.localhost", "testserver"]
    cors_origins: list[str] = ["http://localhost", "http://localhost:3000", "http://127.0.0.1"]

    # ------------------------------------------------------------------
    # Outbound email (SMTP). Empty host means dev mode: messages are logged.
    # ------------------------------------------------------------------

    smtp_host: str = ""
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""
    smtp_use_tls: bool = True
    email_from: str = "TourGate <no-reply@tourgate.local>"

    # ------------------------------------------------------------------
    # Validators
    # ------------------------------------------------------------------

    @model_validator(mode="before")
    @classmethod
    def generate_dev_secret(cls, data):
        """Fill in a random SECRET_KEY when running in DEBUG mode [M7].

        Runs before field assignment because the model is frozen -- the
        generated key has to be part of the input, not patched in afterwards.
        """
        if not isinstance(data, dict):
            return data
        debug = str(data.get("debug", "")).lower() in ("1", "true", "yes", "on")
        if debug and not data.get("secret_key"):
            data = {**data, "secret_key": secrets.token_hex(32)}
            logger.warning("WARNING: Using auto-generated SECRET_KEY. Sessions will not persist across restarts.")
        return data

    @model_validator(mode="after")
    def validate_secret_key(self) -> "Settings":
        """Enforce SECRET_KEY policy [M6] [M7].

        Production mode (DEBUG=false or not set): refuse to start if
            SECRET_KEY is missing.

        Both modes: reject keys shorter than 32 characters.
        """
        if not self.secret_key:
            raise ValueError(
                "SECRET_KEY is required in production mode. "
                "Set SECRET_KEY in your environment or .env file. "
                "To run in development mode, set DEBUG=true."
            )
        if len(self.secret_key) < 32:
            raise ValueError("SECRET_KEY must be at least 32 characters.")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the application Settings singleton.

    In tests: call get_settings.cache_clear() between test cases if you need
    to inject different environment variables, or construct Settings(...)
    directly and pass it to the component under test.
    """
    return Settings()
