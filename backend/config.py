# backend/config.py
from pydantic_settings import BaseSettings
from typing import ClassVar
from pathlib import Path
from dotenv import load_dotenv

# Resolve absolute path to the .env file for reliable loading
env_path = Path(__file__).parent.parent / ".env"
load_dotenv(env_path)

class Settings(BaseSettings):
    SECRET_KEY: str = "dev-secret-change-me"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60
    DATABASE_URL: str = "sqlite:///./database_storefront.db"
    # Upper bound on a single statement, lock waits included
    DB_STATEMENT_TIMEOUT_MS: int = 5000
    # Seconds to wait for a free pooled connection
    DB_POOL_TIMEOUT: float = 10.0

    # Stripe-compatible payment gateway
    STRIPE_API_URL: str = "https://api.stripe.com"
    STRIPE_SECRET_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    # Maximum age (seconds) of a signed webhook timestamp
    STRIPE_WEBHOOK_TOLERANCE: int = 300
    PAYMENT_CURRENCY: str = "usd"
    PAYMENT_GATEWAY_TIMEOUT: float = 10.0

    # Pricing
    TAX_RATE: float = 0.07
    DEFAULT_SHIPPING_PRICE: float = 10.0

    FRONTEND_URL: str = "http://localhost:5173"
    LOG_LEVEL: str = "INFO"

    class Config:
        env_file: ClassVar[str] = str(env_path)

settings = Settings()
