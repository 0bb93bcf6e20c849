from functools import lru_cache
from typing import ClassVar

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Engine settings loaded from environment variables / .env file."""

    # ERP transport
    erp_timeout_seconds: float = 30.0
    erp_max_attempts: int = 3
    erp_retry_base_delay: float = 1.0
    erp_retry_max_delay: float = 8.0
    erp_max_clients: int = 100

    # Query result cache
    cache_ttl_seconds: float = 300.0
    cache_max_entries: int = 500

    # Calendar used to resolve "today" for relative periods
    timezone: str = "America/Argentina/Buenos_Aires"
    default_locale: str = "es-AR"

    log_level: str = "INFO"

    # HTTP service
    api_host: str = "127.0.0.1"
    api_port: int = 8000

    # Odoo credentials for the CLI only (optional, empty means not configured).
    # Services receive credentials per call in the skill context.
    odoo_url: str = ""
    odoo_db: str = ""
    odoo_username: str = ""
    odoo_api_key: str = ""

    model_config: ClassVar[SettingsConfigDict] = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Lazily load and cache settings. Fails at first call, not at import time."""
    return Settings()
