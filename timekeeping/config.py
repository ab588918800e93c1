"""Client configuration management."""

from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Settings loaded from environment variables or a local .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        if self.debug and self.log_level.upper() not in ("TRACE", "VERBOSE"):
            self.log_level = "DEBUG"

    # Remote API
    api_base_url: str = "http://localhost:3000"
    api_token: Optional[str] = None
    api_path: str = "/api/time-tracking"
    request_timeout_seconds: float = 20.0

    # Bulk operations
    bulk_max_concurrency: int = 6
    bulk_item_timeout_seconds: Optional[float] = None

    # Live display
    tick_interval_seconds: float = 1.0

    # Session handling
    session_expired_debounce_seconds: float = 2.0

    # Application
    debug: bool = False
    log_level: str = "INFO"


# Global settings instance
settings = Settings()
