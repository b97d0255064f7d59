"""Application settings loaded from environment variables (or a .env file)."""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="COMMERCE_",
        case_sensitive=False,
        extra="ignore",
    )

    # Payment gateway
    gateway_provider: str = Field(default="fake", description="Gateway adapter: fake or asaas")
    gateway_api_url: str = Field(default="https://sandbox.asaas.com/api/v3", description="Gateway REST base URL")
    gateway_api_key: str = Field(default="", description="Gateway API key, sent as the access_token header")
    gateway_webhook_token: str = Field(default="", description="Token the gateway sends with every webhook call")
    gateway_timeout_seconds: float = Field(default=10.0, gt=0, description="Upper bound for one gateway HTTP call")

    # Checkout
    payment_due_days: int = Field(default=3, ge=0, description="Grace window between order and payment due date")

    # Subscriptions
    default_trial_days: int = Field(default=15, ge=1, description="Trial length when none is requested")

    # Maintenance jobs
    cart_abandon_hours: int = Field(default=24, ge=0, description="Idle hours before an active cart is abandoned")


@lru_cache
def get_settings() -> Settings:
    return Settings()
