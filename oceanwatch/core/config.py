"""
Application configuration with environment-specific settings.

Supported environment files (loaded in order of precedence):
1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
2. .env (fallback)

Production refuses to start when validate_required_settings() reports problems.
"""
import os
import logging
from pathlib import Path
from typing import Literal
from pydantic_settings import BaseSettings
from pydantic import ConfigDict

# Get the project root directory (3 levels up from this file)
PROJECT_ROOT = Path(__file__).parent.parent.parent

DEFAULT_DATABASE_URL = f"sqlite:///{PROJECT_ROOT / 'oceanwatch.db'}"

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Application settings with environment-specific configuration."""

    # Environment
    ENVIRONMENT: Literal["development", "production", "test"] = "development"

    model_config = ConfigDict(
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Allow extra fields from .env
    )

    # Application
    APP_NAME: str = "Oceanwatch"
    APP_VERSION: str = "1.0.0"

    # Database
    DATABASE_URL: str = DEFAULT_DATABASE_URL
    SQL_ECHO: bool = False

    # Yoweb scraping
    SCRAPE_HOST: str = "puzzlepirates.com"
    OCEANS_STR: str = "emerald,meridian,cerulean,obsidian"  # comma-separated ocean names
    USER_AGENT: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"
    REQUEST_TIMEOUT: float = 30.0  # seconds
    REQUEST_DELAY: float = 1.0  # minimum seconds between requests to one host
    ISLAND_ID_MAX: int = 120  # upper bound of the island id sweep

    # Scheduler
    SCHEDULER_TIMEZONE: str = "America/Los_Angeles"
    DAILY_SCRAPE_HOUR: int = 3
    DAILY_SCRAPE_MINUTE: int = 30
    RUN_ON_STARTUP: bool = True
    SHUTDOWN_GRACE_SECONDS: float = 30.0

    # Market order CSV poller
    MARKET_POLL_ENABLED: bool = True
    MARKET_POLL_INTERVAL_MINUTES: int = 60

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True

    @property
    def OCEANS(self) -> list:
        """Configured oceans, unknown names dropped."""
        from oceanwatch.models.enums import Ocean

        oceans = []
        for name in (o.strip().lower() for o in self.OCEANS_STR.split(",")):
            if not name:
                continue
            try:
                ocean = Ocean(name)
            except ValueError:
                logger.warning(f"Ignoring unknown ocean '{name}' in OCEANS_STR")
                continue
            if ocean not in oceans:
                oceans.append(ocean)
        return oceans

    def is_production(self) -> bool:
        """Check if running in production environment."""
        return self.ENVIRONMENT == "production"

    def is_development(self) -> bool:
        """Check if running in development environment."""
        return self.ENVIRONMENT == "development"

    def validate_required_settings(self) -> list[str]:
        """
        Validate settings for the current environment.

        Returns:
            List of problems (empty if the configuration is usable)
        """
        problems = []

        if not self.OCEANS:
            problems.append("OCEANS_STR does not name any known ocean")

        if self.is_production() and self.DATABASE_URL == DEFAULT_DATABASE_URL:
            problems.append("DATABASE_URL must be set explicitly in production")

        if self.REQUEST_DELAY < 1.0 and self.is_production():
            problems.append("REQUEST_DELAY below 1 second is not allowed in production")

        if not 0 <= self.DAILY_SCRAPE_HOUR <= 23 or not 0 <= self.DAILY_SCRAPE_MINUTE <= 59:
            problems.append("DAILY_SCRAPE_HOUR/DAILY_SCRAPE_MINUTE out of range")

        return problems


def _load_env_file() -> Path:
    """
    Load the appropriate environment file based on ENVIRONMENT variable.

    Loads in order of precedence:
    1. .env.{ENVIRONMENT} (e.g., .env.production, .env.development)
    2. .env (fallback)
    """
    environment = os.getenv("ENVIRONMENT", "development")

    env_file = PROJECT_ROOT / f".env.{environment}"
    if env_file.exists():
        logger.info(f"Loading environment from {env_file.name}")
        return env_file

    return PROJECT_ROOT / ".env"


def get_settings() -> Settings:
    """Build settings from the resolved environment file."""
    return Settings(_env_file=str(_load_env_file()))


settings = get_settings()
