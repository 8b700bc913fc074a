from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    PROJECT_NAME: str = "NashraIQ Data Pipeline"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./nashra.db"
    DB_POOL_SIZE: int = 20
    DB_STATEMENT_TIMEOUT_MS: int = 30000

    # Unset means "no cache": invalidation becomes a no-op
    REDIS_URL: Optional[str] = None
    REDIS_PASSWORD: Optional[str] = None

    CRON_SECRET: Optional[str] = None
    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRE_MINUTES: int = 60 * 24 * 7

    ALPHA_VANTAGE_KEY: Optional[str] = None
    NEWS_API_KEY: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    ANTHROPIC_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    GOOGLE_TRANSLATE_KEY: Optional[str] = None

    STOCK_SOURCE: str = "simulated"  # simulated, yfinance, alphavantage
    NEWS_SOURCE: str = "simulated"  # simulated, newsapi
    INDEX_SOURCE: str = "simulated"  # simulated, yfinance

    FETCH_CONCURRENCY: int = 3
    FETCH_TIMEOUT_SECONDS: float = 30.0
    REFRESH_TIMEOUT_SECONDS: float = 300.0

    ENABLE_SCHEDULER: bool = True
    REFRESH_INTERVAL_MINUTES: int = 5
    ALERT_INTERVAL_MINUTES: int = 1
    # Unset: news is ingested as part of every refresh cycle
    NEWS_INTERVAL_MINUTES: Optional[int] = None

    ALERT_TRIGGER_MODE: str = "edge"  # edge, level
    ALERT_RENOTIFY_MINUTES: Optional[int] = None

    class Config:
        env_file = ".env"

settings = Settings()
