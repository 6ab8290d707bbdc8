"""
Module: push.py
Description: Push event delivery to tenant target URLs.

Implements the outbound HTTP POST with a fixed timeout. Every HTTP
status is a normal outcome here: the caller classifies it. Transport
failures (timeout, DNS, refused connection) are reported as errors
instead of being raised.
"""

import time

import httpx

from webhook_relay.models.event import AttemptRecord, Event
from webhook_relay.utils.logger import get_logger

logger = get_logger(__name__)


class PushDeliveryClient:
    """
    HTTP client for pushing stored webhook payloads to their targets.

    Holds one connection pool for the lifetime of the worker; call
    aclose() on shutdown.
    """

    def __init__(self, timeout_seconds: float = 7.0):
        """
        Initialize push delivery client.

        Args:
            timeout_seconds: HTTP timeout in seconds for the whole attempt

        Raises:
            ValueError: If timeout_seconds is not positive
        """
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive")

        self.timeout = httpx.Timeout(timeout_seconds)
        self.client = httpx.AsyncClient(timeout=self.timeout, follow_redirects=False)

        logger.info(
            "Push delivery client initialized",
            timeout_seconds=timeout_seconds
        )

    async def deliver_event(self, event: Event) -> AttemptRecord:
        """
        POST the event payload to its target URL.

        Args:
            event: Event to deliver; must have a target_url

        Returns:
            AttemptRecord with the status code or the transport error,
            and the measured latency

        Raises:
            ValueError: If the event has no target URL
        """
        if not isinstance(event, Event):
            raise ValueError("event must be an Event instance")
        if not event.target_url:
            raise ValueError("event has no target_url")

        logger.debug(
            "Attempting event delivery",
            event_id=event.event_id,
            target_url=event.target_url
        )

        started = time.monotonic()
        try:
            response = await self.client.post(
                event.target_url,
                json=event.payload,
                headers={'Content-Type': 'application/json'}
            )

        except httpx.TimeoutException:
            latency_ms = _elapsed_ms(started)
            logger.warning(
                "Event delivery timeout",
                event_id=event.event_id,
                target_url=event.target_url,
                latency_ms=latency_ms
            )
            return AttemptRecord(error="Request timed out", latency_ms=latency_ms)

        except httpx.HTTPError as e:
            latency_ms = _elapsed_ms(started)
            logger.warning(
                "Event delivery transport error",
                event_id=event.event_id,
                target_url=event.target_url,
                error=str(e),
                error_type=type(e).__name__
            )
            return AttemptRecord(
                error=(str(e) or type(e).__name__)[:1000],
                latency_ms=latency_ms
            )

        latency_ms = _elapsed_ms(started)
        logger.info(
            "Event delivery response",
            event_id=event.event_id,
            status_code=response.status_code,
            latency_ms=latency_ms
        )

        return AttemptRecord(status_code=response.status_code, latency_ms=latency_ms)

    async def aclose(self) -> None:
        await self.client.aclose()


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
