"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

SUPPORTED_PROVIDERS = ("yahoo_rapidapi", "yahoo_finance", "finnhub")


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Application
    APP_NAME: str = "FinSight"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Database
    DATABASE_URL: str = "sqlite+aiosqlite:///./finsight.db"
    DB_ECHO: bool = False
    DB_POOL_SIZE: int = 10
    DB_MAX_OVERFLOW: int = 5

    # Market Data Provider
    MARKET_DATA_PROVIDER: str = "yahoo_rapidapi"  # yahoo_rapidapi, yahoo_finance, finnhub
    RAPIDAPI_KEY: Optional[str] = None
    RAPIDAPI_HOST: str = "yahoo-finance15.p.rapidapi.com"
    FINNHUB_API_KEY: Optional[str] = None  # Free: 60 calls/min
    REQUEST_TIMEOUT_SECONDS: float = 10.0

    # Cache freshness
    RECOMMENDATION_TTL_HOURS: int = 24
    MARKET_LIST_TTL_HOURS: int = 24
    MARKET_LIST_MIN_ROWS: int = 10
    MARKET_LIST_SIZE: int = 10
    # None = a cached price is served until explicitly refreshed
    PRICE_TTL_MINUTES: Optional[int] = None
    VALUATION_REFRESH_PRICES: bool = False

    # Startup
    CACHE_PRELOAD_ENABLED: bool = False
    DEFAULT_RECOMMENDATION_SYMBOLS: list[str] = [
        "AAPL", "MSFT", "GOOGL", "AMZN", "NVDA",
        "TSLA", "META", "NFLX", "AMD", "INTC",
    ]

    # Valuation
    GAIN_LOSS_BASELINE_FALLBACK: str = "12310.00"

    # CORS
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]

    # Monitoring
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = "text"  # 'text' or 'json' (json for production)
    ENVIRONMENT: str = "development"  # development, staging, production

    # Prometheus Metrics
    METRICS_ENABLED: bool = False
    METRICS_ADMIN_PORT: int = 9090
    METRICS_USERNAME: str = "admin"
    METRICS_PASSWORD: str = "metrics_admin"

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=True, extra="ignore")

    @field_validator("MARKET_DATA_PROVIDER")
    @classmethod
    def validate_provider(cls, v: str) -> str:
        """Reject provider names the factory cannot build."""
        v = v.lower()
        if v not in SUPPORTED_PROVIDERS:
            raise ValueError(
                f"Unsupported market data provider: {v}. "
                f"Supported: {', '.join(SUPPORTED_PROVIDERS)}"
            )
        return v

    @field_validator(
        "RECOMMENDATION_TTL_HOURS", "MARKET_LIST_TTL_HOURS", "PRICE_TTL_MINUTES"
    )
    @classmethod
    def validate_ttl(cls, v: Optional[int]) -> Optional[int]:
        """TTLs must be positive when set."""
        if v is not None and v <= 0:
            raise ValueError("Cache TTL must be a positive number")
        return v

    @field_validator("MARKET_LIST_MIN_ROWS", "MARKET_LIST_SIZE")
    @classmethod
    def validate_list_size(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Market list sizes must be at least 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


settings = get_settings()
