"""
Module: storage
Description: Package initialization for data persistence layer.

This package contains the DynamoDB-backed stores of the webhook relay:
- dynamodb: EventStore for events and their delivery history
- targets: TargetRegistry for tenant application targets

All storage implementations follow async interfaces for consistency.
"""

from .dynamodb import EventStore
from .targets import TargetRegistry

__all__ = ["EventStore", "TargetRegistry"]
