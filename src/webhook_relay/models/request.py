"""
Module: request.py
Description: API request models for the webhook relay.

Webhook bodies are captured verbatim and are not modelled here; only
the operator-facing endpoints take structured input.

Key Components:
- ReplayEventRequest: Optional body for POST /api/webhooks/replay/{event_id}

Dependencies: pydantic
"""

from pydantic import BaseModel, ConfigDict, Field


class ReplayEventRequest(BaseModel):
    """
    Request model for replaying an event.

    Attributes:
        reset_history: Clear attempts and the attempt log before replaying.
            By default history accumulates across replays.
    """

    model_config = ConfigDict(extra="forbid")

    reset_history: bool = Field(
        default=False,
        description="Clear attempts and attempt log before re-enqueueing"
    )
