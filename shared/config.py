"""Shared configuration for all services."""
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Redis Configuration
    redis_url: str = "redis://localhost:6379"
    redis_result_channel: str = "extraction_updates"

    # MongoDB Configuration
    mongo_url: str = "mongodb://localhost:27017"
    mongo_db_name: str = "maps_extractor"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False
    cors_origins: str = "*"
    log_level: str = "INFO"

    # Retry Configuration (seconds)
    max_retry_attempts: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 10.0
    retry_backoff_multiplier: float = 2.0

    # Browser Configuration (seconds)
    headless_browser: bool = True
    browser_locale: str = "en-US"
    page_load_timeout: float = 60.0
    selector_timeout: float = 30.0
    fallback_selector_timeout: float = 1.0
    field_timeout: float = 3.0
    element_click_timeout: float = 5.0
    scroll_wait: float = 2.0
    place_details_wait: float = 2.0
    scroll_max_attempts: int = 40
    scroll_plateau_limit: int = 5

    # Checkpoint Configuration
    checkpoint_enabled: bool = True
    checkpoint_dir: str = "checkpoints"
    checkpoint_interval: int = 5
    resume_from_checkpoint: bool = True
    resume_interrupted_jobs: bool = True

    # Debug Artifacts
    debug_base_path: str = "debug"
    debug_retention_days: int = 7
    save_screenshots: bool = True
    save_html_dumps: bool = True

    # Quota
    default_daily_quota: int = 10
    refund_failed_extractions: bool = True

    # Email lookup on business websites (disabled by default)
    fetch_emails: bool = False
    email_fetch_timeout: int = 15

    # WebSocket Configuration
    ws_heartbeat_interval: int = 30

    class Config:
        env_file = ".env"
        case_sensitive = False

    @property
    def cors_origin_list(self) -> list:
        """CORS origins as a list."""
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]


settings = Settings()
