from pydantic_settings import BaseSettings
from typing import List
from pathlib import Path


class Settings(BaseSettings):
    # Database - SQLite for local development, override with environment variable for production
    DATABASE_URL: str = "sqlite:///./waitlist.db"

    # Redis (for rate limiting) - defaults to local, override for production
    REDIS_URL: str = "redis://localhost:6379"

    # Applied to every database statement and Redis call
    STORAGE_TIMEOUT_SECONDS: float = 2.0

    # Public join endpoint budget, per API key
    RATE_LIMIT_REQUESTS: int = 100
    RATE_LIMIT_WINDOW_SECONDS: int = 60

    # Priority points granted to the referrer (and the referred entry) per referral
    REFERRAL_CREDIT: int = 1

    API_KEY_PREFIX: str = "wl_live_"

    # Dashboard read API; empty disables it
    ADMIN_API_TOKEN: str = ""

    # App Settings
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    # The join endpoint is embedded on arbitrary third-party sites
    CORS_ORIGINS: List[str] = ["*"]

    class Config:
        # Use absolute path to .env file
        env_file = Path(__file__).parent.parent.parent / ".env"
        env_file_encoding = 'utf-8'
        extra = "ignore"


settings = Settings()
