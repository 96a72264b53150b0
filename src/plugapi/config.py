"""Client configuration using pydantic-settings.

Every setting can be overridden with a ``PLUG_``-prefixed environment variable
(or a ``.env`` file). Explicit arguments passed to :class:`plugapi.PlugClient`
take precedence over both.
"""

from functools import lru_cache

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_AUTH_URL = "https://plug.der.pe.gov.br/MadrixApi/authenticate/"
DEFAULT_QUERY_URL = "https://plug.der.pe.gov.br/MadrixApi/executeQuery"


class Settings(BaseSettings):
    """Plug client settings loaded from environment variables.

    Environment variables:
    - PLUG_AUTH_URL: Authentication endpoint
    - PLUG_QUERY_URL: Query execution endpoint
    - PLUG_TOKEN_VALIDITY: Seconds a freshly issued token is trusted
    - PLUG_KEYRING_SERVICE: Prefix of the keyring service names
    - PLUG_KEYRING_ACCOUNT: Keyring account the entries are stored under
    - PLUG_TIMEOUT: HTTP timeout in seconds
    - PLUG_LOG_LEVEL: Minimum level for setup_logging()
    """

    model_config = SettingsConfigDict(
        env_prefix="PLUG_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Endpoints
    auth_url: str = DEFAULT_AUTH_URL
    query_url: str = DEFAULT_QUERY_URL

    # Token cache
    token_validity: int = 3600
    keyring_service: str = "PlugAPI"
    keyring_account: str = "global"

    # Transport
    timeout: float = 30.0

    log_level: str = "INFO"

    @field_validator("auth_url", "query_url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate endpoints are http(s) URLs."""
        v = v.strip()
        if not v.startswith(("https://", "http://")):
            raise ValueError("endpoint must be an http(s) URL")
        return v

    @field_validator("token_validity")
    @classmethod
    def validate_token_validity(cls, v: int) -> int:
        """Validate the validity window is positive."""
        if v <= 0:
            raise ValueError("token_validity must be a positive number of seconds")
        return v

    @field_validator("keyring_service", "keyring_account")
    @classmethod
    def validate_keyring_key(cls, v: str) -> str:
        """Validate keyring keys are not blank."""
        v = v.strip()
        if not v:
            raise ValueError("keyring service and account must not be blank")
        return v

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        """Validate timeout is positive."""
        if v <= 0:
            raise ValueError("timeout must be positive")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a known value."""
        allowed = {"TRACE", "DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in allowed:
            raise ValueError(f"log_level must be one of: {allowed}")
        return v_upper


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are loaded once per process. Call ``get_settings.cache_clear()``
    after changing the environment.
    """
    return Settings()
