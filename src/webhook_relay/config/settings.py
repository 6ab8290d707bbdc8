"""
Module: settings.py
Description: Application configuration using pydantic-settings.

Configures all application settings from environment variables with
validation and defaults. Supports .env files for local development.
"""

import re
from functools import lru_cache
from typing import Optional

from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Application settings
    app_name: str = Field(default="Webhook Relay", description="Application name")
    app_version: str = Field(default="0.3.0", description="Application version")
    log_level: str = Field(default="INFO", description="Logging level")

    # AWS settings
    aws_region: str = Field(default="us-east-1", description="AWS region")
    aws_endpoint_url: Optional[str] = Field(
        default=None,
        description="Override AWS endpoint (e.g. LocalStack) for local development"
    )
    stage: str = Field(default="dev", description="Deployment stage")

    # DynamoDB settings
    events_table_name: str = Field(
        default="webhook-relay-events",
        description="Name of the DynamoDB events table"
    )
    targets_table_name: str = Field(
        default="webhook-relay-targets",
        description="Name of the DynamoDB application target table"
    )

    # SQS settings
    delivery_queue_url: str = Field(
        default="",
        description="URL of the SQS queue carrying delivery tasks"
    )

    # Delivery settings
    delivery_timeout: int = Field(
        default=7,
        ge=1,
        le=30,
        description="HTTP timeout in seconds for delivery attempts"
    )
    max_attempts: int = Field(
        default=5,
        ge=1,
        le=20,
        description="Total delivery attempts per task (first try plus retries)"
    )
    backoff_delay_seconds: int = Field(
        default=60,
        ge=1,
        description="Base delay for exponential backoff between attempts"
    )
    default_target_url: Optional[str] = Field(
        default=None,
        description="Fallback target URL for applications registered without one"
    )

    # Worker settings
    lease_seconds: int = Field(
        default=60,
        ge=1,
        le=43200,
        description="Visibility timeout applied when a worker leases a task"
    )
    worker_batch_size: int = Field(
        default=10,
        ge=1,
        le=10,
        description="Maximum number of tasks leased per poll"
    )
    worker_wait_seconds: int = Field(
        default=20,
        ge=0,
        le=20,
        description="Long-poll wait time when leasing tasks"
    )

    # Monitoring
    metrics_enabled: bool = Field(
        default=False,
        description="Publish delivery metrics to CloudWatch"
    )

    @field_validator('events_table_name', 'targets_table_name')
    @classmethod
    def validate_table_names(cls, v: str) -> str:
        """Validate DynamoDB table names."""
        if not v or not isinstance(v, str):
            raise ValueError("Table name must be a non-empty string")

        # Allow alphanumeric, hyphens, underscores
        if not re.match(r'^[a-zA-Z0-9_-]+$', v):
            raise ValueError(
                "Table name must contain only letters, numbers, hyphens, and underscores"
            )

        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is a valid logging level."""
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of: {', '.join(valid_levels)}")
        return v.upper()

    @field_validator('default_target_url')
    @classmethod
    def validate_default_target_url(cls, v: Optional[str]) -> Optional[str]:
        """Treat an empty fallback URL as unset."""
        if not v:
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError("default_target_url must be a valid HTTP/HTTPS URL")
        return v

    @model_validator(mode='after')
    def validate_lease_covers_delivery(self) -> 'Settings':
        """A lease must outlive one delivery call, or tasks get redelivered mid-flight."""
        if self.lease_seconds <= self.delivery_timeout:
            raise ValueError("lease_seconds must be greater than delivery_timeout")
        return self


@lru_cache
def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first use."""
    return Settings()
