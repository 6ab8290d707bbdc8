"""
Module: models
Description: Package initialization for Pydantic data models.

This package contains all data models used by the webhook relay:
- Event, EventStatus, AttemptRecord: Core event domain model
- Target: Tenant application to delivery URL mapping
- ReplayEventRequest: API request model for replays
- IngestResponse, EventResponse, ReplayResponse: API response models

All models are exported here for convenient importing.
"""

from .event import AttemptRecord, Event, EventStatus
from .request import ReplayEventRequest
from .response import EventResponse, IngestResponse, ReplayResponse
from .target import Target

__all__ = [
    "AttemptRecord",
    "Event",
    "EventStatus",
    "Target",
    "ReplayEventRequest",
    "EventResponse",
    "IngestResponse",
    "ReplayResponse",
]
