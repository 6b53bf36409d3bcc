"""AdPulse — Central Configuration via Pydantic Settings."""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment variables / .env file."""

    # ── Meta API ──
    meta_access_token: str = ""
    meta_ad_account_id: str = ""
    meta_api_version: str = "v21.0"
    meta_base_url: str = "https://graph.facebook.com"
    meta_request_timeout: float = 30.0  # seconds, per remote call

    # ── Request Scheduler ──
    meta_max_concurrent: int = 2
    meta_min_interval_ms: int = 2000

    # ── Caching ──
    entity_cache_ttl_hours: int = 24
    insights_cache_ttl_seconds: int = 180

    # ── Database ──
    database_url: str = ""

    # ── App ──
    log_level: str = "INFO"
    scheduler_enabled: bool = True
    sync_hour: int = 3  # Daily entity sync at 3 AM UTC

    @property
    def meta_graph_url(self) -> str:
        """Versioned Graph API base, e.g. https://graph.facebook.com/v21.0."""
        return f"{self.meta_base_url.rstrip('/')}/{self.meta_api_version}"

    @property
    def effective_database_url(self) -> str:
        """Return PostgreSQL URL if set, otherwise fall back to SQLite."""
        if self.database_url:
            return self.database_url
        # Vercel has a read-only filesystem; use /tmp for SQLite
        if os.environ.get("VERCEL"):
            return "sqlite:////tmp/adpulse.db"
        return "sqlite:///./adpulse.db"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
