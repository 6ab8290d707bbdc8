"""
Package: delivery
Description: Event delivery engine for the webhook relay.

Provides ingestion and replay (service), push delivery to target URLs
(push), backoff scheduling (retry) and the queue-driven delivery
worker (worker).
"""
