"""
Module: errors.py
Description: Domain exceptions for the webhook relay.

Key Components:
- TargetNotConfiguredError: no target mapping for (tenant, application)
- EventNotFoundError: unknown event, or event owned by another tenant
- TransientDeliveryFailure / PermanentDeliveryFailure: delivery outcomes
- ConcurrentModificationError: optimistic lock conflict in the event store
"""

from typing import Optional


class WebhookRelayError(Exception):
    """Base class for webhook relay errors."""


class TargetNotConfiguredError(WebhookRelayError):
    """Raised when no delivery target is registered for an application."""

    def __init__(self, tenant_id: str, application_name: str):
        self.tenant_id = tenant_id
        self.application_name = application_name
        super().__init__(
            f"No target configured for application '{application_name}'"
        )


class EventNotFoundError(WebhookRelayError):
    """Raised when an event does not exist or belongs to another tenant."""

    def __init__(self, event_id: str):
        self.event_id = event_id
        super().__init__(f"Event {event_id} not found")


class DeliveryFailure(WebhookRelayError):
    """A failed delivery attempt against a target URL."""

    def __init__(
        self,
        event_id: str,
        reason: str,
        status_code: Optional[int] = None
    ):
        self.event_id = event_id
        self.reason = reason
        self.status_code = status_code
        super().__init__(f"Delivery of {event_id} failed: {reason}")


class TransientDeliveryFailure(DeliveryFailure):
    """Non-2xx response or transport error; the task will be retried."""


class PermanentDeliveryFailure(DeliveryFailure):
    """Attempts exhausted or no target URL; the event is terminally failed."""


class ConcurrentModificationError(WebhookRelayError):
    """Raised when a conditional write loses a race on the event version."""

    def __init__(self, event_id: str, expected_version: int):
        self.event_id = event_id
        self.expected_version = expected_version
        super().__init__(
            f"Event {event_id} was modified concurrently "
            f"(expected version {expected_version})"
        )
