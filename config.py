from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Service settings, read from the environment or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    app_title: str = "Bitespeed Contact Reconciliation API"
    app_version: str = "1.1.0"

    database_path: str = "contacts.db"
    # sqlite busy timeout; identify calls queue on the write lock for this long
    database_timeout_seconds: float = 5.0

    cors_origins: List[str] = ["http://localhost:5173", "http://localhost:3000"]

    log_level: str = "INFO"

    host: str = "0.0.0.0"
    port: int = 8000


@lru_cache
def get_settings() -> Settings:
    return Settings()
