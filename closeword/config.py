"""Application configuration management."""
from pydantic import model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from sqlalchemy.engine.url import make_url, URL
from typing import Optional
import logging

SQLITE_LOCAL_URL = "sqlite+aiosqlite:///./closeword.db"
GAME_MODES = ("local", "remote")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    database_url: str = SQLITE_LOCAL_URL
    db_pool_size: int = 5
    db_max_overflow: int = 10

    # Redis (optional, falls back to the in-process change feed)
    redis_url: str = ""

    # Application
    frontend_url: str = "http://localhost:3000"
    environment: str = "development"
    log_dir: str = "logs"
    log_sql_statements: bool = True

    # Game rules
    default_game_mode: str = "local"
    max_word_length: int = 32
    max_nickname_length: int = 24
    accept_guesses_after_finish: bool = True  # Late guesses are recorded but never win

    # Remote ranking service
    remote_ranking_url: str = "https://api.contexto.me"
    remote_ranking_namespace: str = "machado"
    remote_ranking_locale: str = "pt-br"
    remote_ranking_timeout_seconds: float = 5.0
    remote_ranking_user_agent: str = "Closeword/1.0"
    remote_min_game_day: int = 1
    remote_max_game_day: int = 1386

    # Local ranking
    local_rank_cache_ttl_seconds: float = 3600.0  # Rank tables per secret word

    # Idle room retention
    waiting_room_ttl_hours: int = 24
    cleanup_interval_minutes: int = 60

    @model_validator(mode="after")
    def validate_all_config(self):
        """Validate game configuration and normalize Postgres URLs."""
        logger = logging.getLogger(__name__)

        if self.default_game_mode not in GAME_MODES:
            raise ValueError(f"default_game_mode must be one of {GAME_MODES}, got {self.default_game_mode!r}")

        if self.remote_min_game_day < 1:
            raise ValueError("remote_min_game_day must be at least 1")

        if self.remote_max_game_day < self.remote_min_game_day:
            raise ValueError("remote_max_game_day must not be lower than remote_min_game_day")

        if self.remote_ranking_timeout_seconds <= 0:
            raise ValueError("remote_ranking_timeout_seconds must be positive")

        if self.max_word_length < 1 or self.max_nickname_length < 1:
            raise ValueError("max_word_length and max_nickname_length must be positive")

        if self.waiting_room_ttl_hours < 1:
            raise ValueError("waiting_room_ttl_hours must be at least 1 hour")

        if self.cleanup_interval_minutes < 1:
            raise ValueError("cleanup_interval_minutes must be at least 1 minute")

        # Database URL normalization
        url = self.database_url
        if not url:
            logger.warning("Empty DATABASE_URL, using SQLite fallback")
            self.database_url = SQLITE_LOCAL_URL
            return self

        parsed: Optional[URL] = None
        try:
            parsed = make_url(url)
        except Exception as e:  # pragma: no cover
            logger.error(f"Failed to parse DATABASE_URL: {e}")
            logger.warning("Invalid DATABASE_URL; falling back to default sqlite database.")
            self.database_url = SQLITE_LOCAL_URL
            return self

        drivername = parsed.drivername
        if drivername.startswith("postgres") and "+asyncpg" not in drivername:
            old_drivername = drivername
            parsed = parsed.set(drivername="postgresql+asyncpg")
            logger.info(f"Driver normalized: {old_drivername} -> {parsed.drivername}")

        # Use render_as_string to properly re-encode special characters in password
        self.database_url = parsed.render_as_string(hide_password=False)
        return self

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
