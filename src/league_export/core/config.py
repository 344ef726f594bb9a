from __future__ import annotations

from pathlib import Path

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # DB (persisted last-fetch + sync target)
    database_url: str = Field(
        default="sqlite+pysqlite:///./league_export.db",
        validation_alias="DATABASE_URL",
    )
    db_echo: bool = False

    # ESPN
    http_timeout_s: float = 30.0
    http_connect_timeout_s: float = 10.0
    retry_base_delay_s: float = 0.4
    retry_max_retries: int = 3

    # Browser session
    cookies_file: Path | None = None
    page_url: str | None = None
    prefer_cookie_header: bool = False

    # supabase
    supabase_url: str | None = None
    supabase_anon_key: str | None = Field(default=None, repr=False)
    supabase_table: str = "espn_syncs"

    log_level: str = "INFO"


settings = Settings()
