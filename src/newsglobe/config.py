from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Configuration sourced from environment variables."""

    # Provider / model credentials
    gemini_api_key: str | None = None
    gemini_model: str = "gemini-2.0-flash"
    hf_api_key: str | None = None
    classifier_model: str = "roberta-base-openai-detector"
    gnews_api_key: str | None = None
    newsdata_api_key: str | None = None

    # Persistence
    redis_url: str = ""
    cache_ttl_hours: float = 12.0
    client_cache_ttl_minutes: float = 30.0
    digest_ttl_hours: float = 24.0

    # Pipeline
    batch_size: int = 25
    max_articles: int = 25
    max_concurrent_batches: int = 2
    retry_attempts: int = 3
    retry_base_delay: float = 2.0
    pipeline_timeout: float = 55.0
    http_timeout: float = 15.0
    llm_timeout: float = 45.0

    data_dir: str = str(Path(__file__).resolve().parents[2] / "data")
    cors_origins: str = "*"
    debug: bool = False

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "",
        "case_sensitive": False,
    }

    def get_cors_origins(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",")]


@lru_cache(1)
def get_settings() -> Settings:
    return Settings()
