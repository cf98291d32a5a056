"""Factline — Central Configuration via Pydantic Settings."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── ChurchTools API ──
    ct_base_url: str = ""
    ct_username: str = ""
    ct_password: str = ""
    ct_timeout_seconds: float = 30.0

    # ── Database ──
    database_url: str = ""

    # ── Sync ──
    scheduler_enabled: bool = True
    sync_minute: int = 0  # Hourly run at HH:00
    sync_batch_size: int = 10
    backfill_delay_ms: int = 10
    sync_freshness_hours: float = 1.0
    initial_sync_enabled: bool = True

    # ── App ──
    log_level: str = "INFO"

    @property
    def effective_database_url(self) -> str:
        """Return the configured URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        return "sqlite:///./factline.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
