# backend/app/core/config.py
import logging
import os
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv
from pydantic import Field, SecretStr, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import BRAND_NAME


logger = logging.getLogger(__name__)

# Load .env file only if not in CI
if not os.getenv("CI"):
    env_path = Path(__file__).parent.parent.parent / ".env"  # Goes up to backend/.env
    logger.info(f"[CONFIG] Looking for .env at: {env_path}")
    load_dotenv(env_path)


PROD_SITE_MODES = {"prod", "production", "live"}


def _environment_from_site_mode(raw: Optional[str]) -> str:
    normalized = (raw or "local").strip().lower()
    return "production" if normalized in PROD_SITE_MODES else "development"


class Settings(BaseSettings):
    site_mode: str = Field(default="local", description="local | stg | prod")
    environment: str = Field(
        default_factory=lambda: _environment_from_site_mode(os.getenv("SITE_MODE"))
    )

    secret_key: SecretStr = Field(
        default=SecretStr("dev-secret-key-not-for-production"),
        description="Secret key for JWT tokens and student verification codes",
    )
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 720  # 12 hours

    database_url: str = Field(
        default="sqlite:///./lumexa_dev.db",
        description="SQLAlchemy database URL (PostgreSQL in deployed environments)",
    )
    database_echo: bool = False

    # Email (Resend)
    resend_api_key: str | None = Field(
        default=None,
        alias="RESEND_API_KEY",
        description="API key for Resend provider (optional outside production)",
    )
    email_from_address: str = Field(default=f"{BRAND_NAME} <bookings@lumexa.app>")

    # Frontend origins allowed by CORS (comma separated)
    cors_allow_origins_csv: str = Field(default="http://localhost:3000")

    # Stripe Configuration
    stripe_secret_key: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe secret key for backend API calls",
    )
    stripe_webhook_secret: SecretStr = Field(
        default=SecretStr(""),
        description="Stripe webhook signing secret",
    )
    stripe_platform_fee_percentage: float = Field(
        default=25, description="Platform fee percentage (25 = 25%)", ge=0, le=100
    )
    stripe_currency: str = Field(default="usd", description="Default currency for payments")
    stripe_fake: bool = Field(
        default=False,
        description="Force the in-memory payment gateway (never honored in production)",
    )
    connect_refresh_url: str = Field(default="http://localhost:3000/teacher/payouts?refresh=1")
    connect_return_url: str = Field(default="http://localhost:3000/teacher/payouts?connected=1")

    # 100ms video platform
    hundredms_access_key: str | None = Field(default=None)
    hundredms_app_secret: SecretStr | None = Field(default=None)
    hundredms_webhook_secret: SecretStr | None = Field(
        default=None,
        description="Shared HMAC secret used to sign recording webhooks",
    )
    hundredms_base_url: str = Field(default="https://api.100ms.live/v2")
    hundredms_template_id: str | None = Field(default=None)
    hundredms_fake: bool = Field(
        default=False,
        description="Force the in-memory video client (never honored in production)",
    )

    # Booking / conduct policy
    slot_min_duration_minutes: int = Field(default=30, ge=1)
    slot_max_duration_minutes: int = Field(default=240, ge=1)
    slot_past_grace_minutes: int = Field(
        default=5, description="How far in the past a new slot may start", ge=0
    )
    free_teacher_cancellations_per_month: int = Field(default=2, ge=0)
    join_lead_minutes: int = Field(
        default=10, description="Minutes before class start that join opens", ge=0
    )
    video_token_grace_seconds: int = Field(
        default=300, description="Extra validity appended to video access tokens", ge=0
    )
    recording_claim_timeout_seconds: int = Field(
        default=120, description="Age after which a recording-start claim can be retaken", ge=1
    )
    student_verification_code_digits: int = Field(default=6, ge=4, le=10)

    # Background job retries
    jobs_backoff_base: int = Field(
        default=30,
        description="Base backoff in seconds for background job retries",
        ge=1,
    )
    jobs_backoff_cap: int = Field(
        default=1800,
        description="Maximum backoff in seconds for background job retries",
        ge=1,
    )
    jobs_batch: int = Field(
        default=25,
        description="Maximum number of jobs processed per run",
        ge=1,
    )
    jobs_max_attempts: int = Field(
        default=8,
        description="Maximum retry attempts before a job is parked as failed",
        ge=1,
    )
    jobs_poll_interval: int = Field(
        default=60,
        description="Seconds between job runner passes",
        ge=1,
    )

    webhook_max_body_bytes: int = Field(default=1_048_576, ge=1)
    webhook_max_age_hours: int = Field(default=6, ge=1)

    # Use ConfigDict instead of Config class (Pydantic V2 style)
    model_config = SettingsConfigDict(
        env_file=".env" if not os.getenv("CI") else None,
        case_sensitive=False,  # allows SECRET_KEY to match secret_key
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("site_mode")
    @classmethod
    def _normalize_site_mode(cls, value: Any) -> str:
        return str(value or "local").strip().lower()

    @model_validator(mode="after")
    def _validate_policy_bounds(self) -> "Settings":
        if self.slot_min_duration_minutes > self.slot_max_duration_minutes:
            raise ValueError("SLOT_MIN_DURATION_MINUTES cannot exceed SLOT_MAX_DURATION_MINUTES")
        if self.jobs_backoff_base > self.jobs_backoff_cap:
            raise ValueError("JOBS_BACKOFF_BASE cannot exceed JOBS_BACKOFF_CAP")
        return self

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    def missing_production_secrets(self) -> list[str]:
        """Names of gateway credentials required before serving production traffic."""
        missing: list[str] = []
        if not self.stripe_secret_key.get_secret_value():
            missing.append("STRIPE_SECRET_KEY")
        if not (self.hundredms_access_key or "").strip():
            missing.append("HUNDREDMS_ACCESS_KEY")
        if self.hundredms_app_secret is None or not self.hundredms_app_secret.get_secret_value():
            missing.append("HUNDREDMS_APP_SECRET")
        if (
            self.hundredms_webhook_secret is None
            or not self.hundredms_webhook_secret.get_secret_value()
        ):
            missing.append("HUNDREDMS_WEBHOOK_SECRET")
        if not self.resend_api_key:
            missing.append("RESEND_API_KEY")
        return missing


settings = Settings()
