"""
Module: handlers
Description: Package initialization for API endpoint handlers.

This package contains FastAPI route handlers for the webhook relay:
- webhooks: Webhook ingestion plus event status and replay endpoints

Handlers resolve the caller's tenant and the EventService through
dependency injection.
"""

__all__ = []
