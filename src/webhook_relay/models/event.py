"""
Module: event.py
Description: Event data models for the webhook relay.

Defines the core Event model for received webhook calls together with
their delivery history. Includes the delivery state machine states and
the append-only attempt log.

Key Components:
- Event: Received webhook plus delivery status and attempt history
- EventStatus: Enum for event delivery states
- AttemptRecord: Outcome of one outbound delivery try
- Validation: Pydantic v2 with custom validators

Dependencies: pydantic, datetime, enum, typing, uuid
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, model_validator


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def generate_event_id() -> str:
    """Generate a new opaque event identifier."""
    return f"evt_{uuid4().hex[:12]}"


class EventStatus(str, Enum):
    """Delivery states of an event."""

    PENDING = "pending"
    RETRYING = "retrying"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (EventStatus.SUCCESS, EventStatus.FAILED)


class AttemptRecord(BaseModel):
    """
    One delivery attempt and its outcome.

    Exactly one of status_code (the target answered) or error
    (transport failure, missing target) describes the outcome.
    """

    model_config = ConfigDict(frozen=True)

    timestamp: datetime = Field(default_factory=utc_now)
    status_code: Optional[int] = Field(default=None, ge=100)
    error: Optional[str] = Field(default=None, max_length=1000)
    latency_ms: Optional[int] = Field(default=None, ge=0)

    @model_validator(mode='after')
    def validate_outcome(self) -> 'AttemptRecord':
        if (self.status_code is None) == (self.error is None):
            raise ValueError("attempt must record exactly one of status_code or error")
        return self

    @property
    def succeeded(self) -> bool:
        return self.status_code is not None and 200 <= self.status_code < 300


class Event(BaseModel):
    """
    Event model representing one received webhook call.

    Events are created once at ingestion in the pending state and are
    afterwards mutated only by the delivery worker (status, attempts,
    attempt log) and by replay (status and active task).

    Attributes:
        event_id: Unique event identifier (generated)
        tenant_id: Owning tenant; every read and write is scoped by it
        application_name: Registered application the webhook was sent for
        headers: Captured request headers
        payload: Captured request body (any JSON value)
        target_url: Delivery destination resolved at ingestion
        status: Delivery status (pending, retrying, success, failed)
        attempts: Number of delivery attempts made
        attempt_log: Ordered, append-only attempt history
        active_task_id: Delivery task currently entitled to act on the event
        version: Optimistic locking counter maintained by the store
        created_at: Timestamp when event was created
        updated_at: Timestamp of the last write
    """

    model_config = ConfigDict(validate_assignment=True)

    event_id: str = Field(
        default_factory=generate_event_id,
        description="Unique event identifier",
        pattern=r"^evt_[a-z0-9]{12}$"
    )
    tenant_id: str = Field(
        ...,
        min_length=1,
        max_length=128,
        description="Owning tenant identifier"
    )
    application_name: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Application the webhook was received for"
    )
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Captured request headers"
    )
    payload: Any = Field(
        ...,
        description="Captured request body"
    )
    target_url: Optional[str] = Field(
        default=None,
        description="Delivery target snapshot taken at ingestion"
    )
    status: EventStatus = Field(
        default=EventStatus.PENDING,
        description="Event delivery status"
    )
    attempts: int = Field(
        default=0,
        ge=0,
        description="Number of delivery attempts"
    )
    attempt_log: List[AttemptRecord] = Field(
        default_factory=list,
        description="Append-only delivery attempt history"
    )
    active_task_id: Optional[str] = Field(
        default=None,
        description="Delivery task allowed to act on this event"
    )
    version: int = Field(
        default=0,
        ge=0,
        description="Optimistic locking version"
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        description="Event creation timestamp"
    )
    updated_at: datetime = Field(
        default_factory=utc_now,
        description="Last update timestamp"
    )

    @model_validator(mode='after')
    def validate_attempt_count(self) -> 'Event':
        """Validate attempts always matches the attempt log."""
        if self.attempts != len(self.attempt_log):
            raise ValueError("attempts must equal the number of attempt_log entries")
        return self

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    def record_attempt(self, attempt: AttemptRecord) -> None:
        """Append an attempt and bump the counter in one step."""
        # Append first: assigning attempts re-runs the count validator
        self.attempt_log.append(attempt)
        self.attempts += 1
        self.touch()

    def reset_history(self) -> None:
        """Clear attempts and the attempt log (explicit replay reset)."""
        self.attempt_log.clear()
        self.attempts = 0
        self.touch()

    def requeue(self, task_id: str) -> None:
        """Hand the event to a new delivery task and re-enter the pipeline."""
        self.active_task_id = task_id
        self.status = EventStatus.PENDING
        self.touch()

    def mark_success(self) -> None:
        """Mark the event as successfully delivered."""
        self.status = EventStatus.SUCCESS
        self.touch()

    def mark_retrying(self) -> None:
        """Mark the event as awaiting another attempt."""
        self.status = EventStatus.RETRYING
        self.touch()

    def mark_failed(self) -> None:
        """Mark the event as terminally failed."""
        self.status = EventStatus.FAILED
        self.touch()

    def touch(self) -> None:
        self.updated_at = utc_now()
