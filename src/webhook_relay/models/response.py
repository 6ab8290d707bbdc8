"""
Module: response.py
Description: API response models for the webhook relay.

Defines response models for outgoing API calls. These models structure
the JSON responses returned by the ingestion and status/replay endpoints.

Key Components:
- IngestResponse: Acknowledgement of a received webhook
- EventResponse / AttemptResponse: Event with its delivery history
- ReplayResponse: Acknowledgement of a replay request

Dependencies: pydantic, datetime, typing
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from webhook_relay.models.event import Event


class IngestResponse(BaseModel):
    """
    Response returned after a webhook has been stored and queued.

    Delivery happens asynchronously; the id can be used with the
    status and replay endpoints.
    """

    success: bool = Field(default=True)
    id: str = Field(..., description="Identifier of the stored event")
    application_name: str = Field(
        ...,
        description="Application the webhook was matched to"
    )


class AttemptResponse(BaseModel):
    """One entry of an event's attempt log."""

    timestamp: datetime
    status_code: Optional[int] = None
    error: Optional[str] = None
    latency_ms: Optional[int] = None


class EventResponse(BaseModel):
    """
    Response model for event status reads.

    Attributes:
        event_id: Unique event identifier
        application_name: Application the webhook was received for
        headers: Captured request headers
        payload: Captured request body
        target_url: Delivery destination snapshot
        status: Current delivery status
        attempts: Number of delivery attempts made
        attempt_log: Attempt history, oldest first
        created_at: When the event was received
        updated_at: When the event was last changed
    """

    event_id: str
    application_name: str
    headers: Dict[str, str]
    payload: Any
    target_url: Optional[str] = None
    status: str
    attempts: int
    attempt_log: List[AttemptResponse]
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_event(cls, event: Event) -> "EventResponse":
        return cls(
            event_id=event.event_id,
            application_name=event.application_name,
            headers=event.headers,
            payload=event.payload,
            target_url=event.target_url,
            status=event.status.value,
            attempts=event.attempts,
            attempt_log=[
                AttemptResponse(**attempt.model_dump())
                for attempt in event.attempt_log
            ],
            created_at=event.created_at,
            updated_at=event.updated_at
        )


class ReplayResponse(BaseModel):
    """Response returned after an event has been re-enqueued."""

    success: bool = Field(default=True)
    queued: str = Field(..., description="Identifier of the replayed event")
    reset_history: bool = Field(default=False)
