"""
Module: target.py
Description: Application target mapping model.

A target maps (tenant_id, application name) to the URL that received
webhooks for that application are delivered to. Registering the same
name again overwrites the URL.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from webhook_relay.models.event import utc_now


class Target(BaseModel):
    """
    Delivery target registered by a tenant for one application.

    Attributes:
        tenant_id: Owning tenant
        name: Application name, unique per tenant (e.g. 'Zoom')
        target_url: Delivery URL; empty means no target configured yet
        created_at: First registration time
        updated_at: Last time the URL was changed
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    tenant_id: str = Field(..., min_length=1, max_length=128)
    name: str = Field(..., min_length=1, max_length=100)
    target_url: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @field_validator('target_url')
    @classmethod
    def validate_target_url(cls, v: Optional[str]) -> Optional[str]:
        """Validate the target is an HTTP(S) URL when present."""
        if not v:
            return None
        if not v.startswith(('http://', 'https://')):
            raise ValueError("target_url must be a valid HTTP/HTTPS URL")
        return v
