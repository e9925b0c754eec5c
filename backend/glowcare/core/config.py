"""Application configuration managed via environment variables."""
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "GlowCare Routine Service"
    debug: bool = False
    log_level: str = "INFO"
    database_url: str = "postgresql+psycopg2://glowcare@localhost:5432/glowcare"
    database_statement_timeout_ms: int = 3000
    cache_backend: str = "memory"
    redis_url: str | None = None
    cache_socket_timeout_s: float = 0.5
    cache_key_prefix: str = "glowcare"
    cache_memory_max_entries: int = 10_000
    recommendations_cache_ttl_s: int = 30 * 60
    plan_cache_ttl_s: int = 7 * 24 * 60 * 60
    plan_horizon_days: int = 28
    profile_retry_delay_s: float = 0.5
    opik_enabled: bool = False
    opik_api_key: str | None = None
    opik_project: str = "glowcare"


@lru_cache
def get_settings() -> Settings:
    """Return a cached Settings instance."""
    return Settings()


settings = get_settings()
