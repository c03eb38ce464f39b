"""Configuration management for the KindKart payments and reputation service."""
from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = Field(default="KindKart Core")
    version: str = Field(default="0.1.0")
    docs_url: str | None = Field(default="/docs")
    redoc_url: str | None = Field(default="/redoc")
    openapi_url: str = Field(default="/openapi.json")

    database_url: str = Field(default="postgresql+psycopg://kindkart:kindkart@db:5432/kindkart")

    aws_region: str = Field(default="ap-south-1")
    s3_endpoint_url: str | None = Field(default=None)
    audit_log_bucket: str = Field(default="kindkart-audit-logs")
    audit_log_prefix: str = Field(default="audit/records")
    audit_log_sample_rate: float = Field(default=1.0)

    enable_metrics: bool = Field(default=True)
    enable_tracing: bool = Field(default=True)
    otel_exporter_endpoint: str | None = Field(default=None)

    jwt_algorithm: str = Field(default="HS256")
    jwt_secret_key: str = Field(default="change-me-in-production")
    access_token_expire_minutes: int = Field(default=60)

    gateway_base_url: str = Field(default="https://api.razorpay.com")
    gateway_key_id: str = Field(default="rzp_test_key")
    gateway_key_secret: str = Field(default="rzp_test_secret")
    gateway_timeout_seconds: float = Field(default=10.0)
    default_currency: str = Field(default="INR")

    escrow_window_minutes: int = Field(default=20, ge=1)
    stale_order_timeout_minutes: int = Field(default=24 * 60, ge=1)
    stale_order_sweep_interval_seconds: int = Field(default=300)

    fast_response_minutes: int = Field(default=60)
    on_time_payment_hours: int = Field(default=24)

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)


@lru_cache
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()


__all__ = ["Settings", "get_settings"]
