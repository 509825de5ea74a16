from __future__ import annotations

import logging

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Security
    GYM_ADMIN_EMAIL: str = "admin@example.com"
    GYM_ADMIN_PASSWORD: str = "change-me"
    GYM_SECRET_KEY: str = "dev-secret-change-me"
    GYM_SESSION_HOURS: int = 12
    GYM_COOKIE_SECURE: bool = False  # set True behind HTTPS

    # Database
    GYM_DB_URL: str = "sqlite:///./gymscore.db"

    # Scoring
    GYM_SEED_EVENTS: bool = True
    GYM_ENFORCE_MAX_SCORE: bool = True

    # Logging
    GYM_LOG_LEVEL: str = "INFO"

    class Config:
        env_file = ".env"
        case_sensitive = True

settings = Settings()


def configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.GYM_LOG_LEVEL.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
