"""
Application settings
Read from environment variables (and an optional .env file)
"""
import os
from decimal import Decimal
from typing import Optional
from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "FrontDesk"
    DEBUG: bool = False
    CURRENCY_LABEL: str = "Bs."

    # Database
    DATABASE_URL: str = "sqlite:///./frontdesk.db"
    # Upper bound for waiting on a database lock before a transaction aborts
    DB_LOCK_TIMEOUT_SECONDS: float = 10.0

    # JWT
    SECRET_KEY: str = "frontdesk-secret-key-change-in-production"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 480
    STEP_UP_TOKEN_EXPIRE_MINUTES: int = 5

    # Ledger rules
    DISCOUNT_AUTHORIZATION_THRESHOLD: Decimal = Decimal("0.10")
    FREQUENT_GUEST_MIN_STAYS: int = 3

    # Notifications: "log" or "webhook"
    NOTIFICATION_BACKEND: str = os.environ.get("NOTIFICATION_BACKEND", "log")
    NOTIFICATION_WEBHOOK_URL: Optional[str] = os.environ.get("NOTIFICATION_WEBHOOK_URL")
    NOTIFICATION_TIMEOUT_SECONDS: float = 5.0

    model_config = ConfigDict(env_file=".env", case_sensitive=True)


# Global settings instance
settings = Settings()
