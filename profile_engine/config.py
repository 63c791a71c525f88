from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Literal


class Settings(BaseSettings):
    database_url: str = "sqlite:///./data/profiles.db"
    openai_api_key: str = ""

    # Redis configuration (generation rate limiting)
    redis_url: str = "redis://localhost:6379"

    cors_origins: list[str] = ["http://localhost:3000"]

    # External analyzer
    analyzer_model: str = "gpt-4-turbo"
    analyzer_timeout_seconds: float = 60.0
    analyzer_max_tokens: int = 2000
    analyzer_temperature: float = 0.7

    # Which test comments feed a generation run:
    # "all" = most recent max_comments, "since_last_set" = only comments no earlier set analyzed
    recommendation_comment_scope: Literal["all", "since_last_set"] = "since_last_set"
    max_comments: int = 50  # Limit comments to keep the prompt bounded
    max_recommendations_per_section: int = 1

    # Profile editing
    section_max_chars: int = 2000
    version_write_retries: int = 3

    # Generation rate limit, per project
    generate_rate_limit: int = 10
    generate_rate_window_seconds: int = 3600

    class Config:
        env_file = ".env"


@lru_cache
def get_settings() -> Settings:
    return Settings()
