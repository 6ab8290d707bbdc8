"""
Package: webhook_relay
Description: Multi-tenant webhook ingestion and delivery service.

Receives third-party webhook calls on behalf of tenant applications,
stores them durably, and delivers each one to the tenant's target URL
with queue-driven retries and exponential backoff.
"""

__version__ = "0.3.0"
