"""
Webhook relay configuration.
"""

from enum import Enum
from typing import Any

from loguru import logger
from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from nexuspay.utils.retry import RetryPolicy


class BackoffStrategyName(str, Enum):
    """Backoff strategies selectable from the environment."""

    LINEAR = "linear"
    EXPONENTIAL = "exponential"


class WebhookConfig(BaseSettings):
    """
    Settings for relaying payment-provider callbacks to the internal backend.

    Values come from ``WEBHOOK_*`` environment variables (or ``.env``);
    the backend base URL is also read from the plain ``BACKEND_URL``.
    """

    # === Internal backend ===
    backend_url: str | None = Field(
        default=None,
        validation_alias=AliasChoices("backend_url", "WEBHOOK_BACKEND_URL", "BACKEND_URL"),
        description="Base URL of the internal backend receiving callbacks",
    )
    forwarded_from: str = Field(
        default="vercel-webhook-service",
        description="Value of the X-Forwarded-From header on relayed callbacks",
    )

    # === Retry ===
    max_attempts: int = Field(default=3, ge=1, description="Forwarding attempts per callback")
    backoff_strategy: BackoffStrategyName = Field(
        default=BackoffStrategyName.LINEAR, description="Delay growth between attempts"
    )
    backoff_step_seconds: float = Field(
        default=1.0, gt=0, description="Linear step or exponential multiplier in seconds"
    )

    # === Timeouts ===
    ack_timeout_seconds: float = Field(
        default=30.0, gt=0, description="Per-attempt timeout for ack-first routes"
    )
    relay_timeout_seconds: float = Field(
        default=25.0, gt=0, description="Per-attempt timeout for forward-then-respond routes"
    )

    model_config = SettingsConfigDict(
        env_prefix="WEBHOOK_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @field_validator("backend_url")
    @classmethod
    def strip_trailing_slash(cls, v):
        """Normalise the base URL; blank values mean not configured."""
        if v is None:
            return None
        v = v.strip().rstrip("/")
        return v or None

    @property
    def is_configured(self) -> bool:
        return bool(self.backend_url)

    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy.from_config(
            self.max_attempts,
            self.backoff_strategy.value,
            self.backoff_step_seconds,
        )

    def log_configuration(self):
        """Log configuration (without the backend URL path)."""
        logger.info("=== WEBHOOK RELAY CONFIGURATION ===")
        logger.info(f"Backend: {'Configured' if self.is_configured else 'Not configured'}")
        logger.info(f"Forwarded-From: {self.forwarded_from}")
        logger.info(
            f"Retry: {self.max_attempts} attempts, {self.backoff_strategy.value} "
            f"backoff, step {self.backoff_step_seconds}s"
        )
        logger.info(
            f"Timeouts: ack-first {self.ack_timeout_seconds}s, relay {self.relay_timeout_seconds}s"
        )

    def validate(self) -> dict[str, Any]:
        """Validate configuration and return validation result."""
        errors = []
        warnings = []

        if not self.is_configured:
            errors.append("BACKEND_URL is not set")
        elif not self.backend_url.startswith(("http://", "https://")):
            errors.append("BACKEND_URL must be an http(s) URL")
        elif self.backend_url.startswith("http://"):
            warnings.append("BACKEND_URL uses plain HTTP")

        if self.max_attempts == 1:
            warnings.append("Retries are disabled (max_attempts=1)")

        return {
            "valid": len(errors) == 0,
            "errors": errors,
            "warnings": warnings,
        }


def get_webhook_config() -> WebhookConfig:
    """Read the configuration from the current environment."""
    return WebhookConfig()
