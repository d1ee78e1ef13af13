"""Application configuration via pydantic-settings."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # Notion
    notion_api_key: str = ""

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-3-flash-preview"

    # GitHub
    github_token: str = ""
    github_owner: str = ""
    github_repo: str = "zenn-articles-auto"
    github_branch: str = "main"
    github_articles_dir: str = "articles"
    publish_live: bool = False

    # Database
    database_url: str = "sqlite+aiosqlite:///./knowledge_pipeline.db"

    # Scheduler
    scheduler_secret: str = ""
    queue_max_concurrent: int = 5
    queue_max_retries: int = 3
    queue_default_priority: int = 5
    queue_enqueue_delay_seconds: int = 300
    sync_batch_size: int = 20
    sync_max_retries: int = 3
    sync_respect_frequency: bool = False

    # Per-call budget for Notion, Gemini and GitHub requests
    external_call_timeout: float = 120.0

    # App
    environment: str = "development"
    log_level: str = "INFO"
    port: int = 8080


@lru_cache
def get_settings() -> Settings:
    """Return cached application settings. Lazy initialization to avoid import-time errors."""
    return Settings()
