from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    BUSINESS_TIMEZONE: str = "UTC"
    CURRENCY: str = "usd"

    DATABASE_URL: str | None = None
    CATALOG_PATH: str = "./data/catalog.json"

    PAY_AT_VENUE_ENABLED: bool = True
    PAY_AT_VENUE_STATUS: Literal["confirmed", "pending"] = "confirmed"
    STAFF_ASSIGNMENT_POLICY: Literal["first", "least_booked"] = "first"
    CANCEL_BY_HOURS: int = 24

    ASYNC_PAYMENT_TIMEOUT_SECONDS: int = 120
    PAYMENT_POLL_INTERVAL_SECONDS: float = 3.0
    PAYMENT_POLL_BACKOFF: float = 1.5
    PAYMENT_POLL_MAX_INTERVAL_SECONDS: float = 15.0
    PAYMENT_POLL_MAX_ATTEMPTS: int = 40

    PERSIST_MAX_ATTEMPTS: int = 3
    PERSIST_RETRY_BASE_SECONDS: float = 0.2

    STRIPE_SECRET_KEY: str | None = None

    PAYPAL_CLIENT_ID: str | None = None
    PAYPAL_CLIENT_SECRET: str | None = None
    PAYPAL_API_BASE: str = "https://api-m.sandbox.paypal.com"

    MPESA_ENV: str = "sandbox"
    MPESA_CONSUMER_KEY: str | None = None
    MPESA_CONSUMER_SECRET: str | None = None
    MPESA_SHORTCODE: str | None = None
    MPESA_PASSKEY: str | None = None
    MPESA_CALLBACK_URL: str = "https://example.com/callback"


settings = Settings()
