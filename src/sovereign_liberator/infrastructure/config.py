"""Application configuration — loaded from environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic import SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Central configuration loaded from env vars (or ``.env`` file)."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Source host
    github_token: SecretStr | None = None
    github_api_url: str = "https://api.github.com"
    github_branch: str = "main"
    github_inline_limit_bytes: int = 100 * 1024
    github_bootstrap_attempts: int = 3
    github_bootstrap_delay_seconds: float = 1.5

    # Database management
    supabase_management_url: str = "https://api.supabase.com"
    migrations_dir: str = "supabase/migrations"

    # Deployment platform
    coolify_poll_interval_seconds: float = 10.0
    coolify_poll_max_attempts: int = 12
    coolify_log_tail_chars: int = 2_000
    secret_cleanup_delay_seconds: float = 60.0
    health_check_timeout_seconds: float = 15.0

    http_timeout_seconds: float = 30.0
    log_level: str = "INFO"
    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return the singleton application settings (cached after first call)."""
    return Settings()
