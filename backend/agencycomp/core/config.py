from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    # App
    APP_NAME: str = "Agency Compensation"
    ENVIRONMENT: str = "development"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # Database
    DATABASE_URL: str = "sqlite:///./agencycomp.db"

    # Frontend allowed for CORS (optional)
    FRONTEND_URL: Optional[str] = None

    # Payout calculation
    CURRENCY_DECIMAL_PLACES: int = 2  # totals are rounded once, half-up, to this precision
    DEFAULT_BUNDLING_MULTIPLIER: float = 1.0

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
