"""
Module: delivery/service.py
Description: Ingestion and status/replay operations.

EventService is the single entry point used by the HTTP handlers:
- receive(): store a new webhook and queue its delivery
- list_events() / get_event(): tenant-scoped status reads
- replay(): hand an existing event to a fresh delivery task

Dependencies: storage, sqs_queue, models
"""

from typing import Dict, List, Optional
from uuid import uuid4

from webhook_relay.config.settings import Settings
from webhook_relay.delivery.retry import BackoffPolicy
from webhook_relay.errors import EventNotFoundError, TargetNotConfiguredError
from webhook_relay.models.event import AttemptRecord, Event, EventStatus
from webhook_relay.sqs_queue.base import DeliveryQueue
from webhook_relay.sqs_queue.sqs import SQSDeliveryQueue
from webhook_relay.storage.dynamodb import EventStore
from webhook_relay.storage.targets import TargetRegistry
from webhook_relay.utils.logger import get_logger
from webhook_relay.utils.metrics import MetricsClient

logger = get_logger(__name__)

ENQUEUE_FAILED_ERROR = "Delivery task could not be queued"


def new_task_id() -> str:
    return f"tsk_{uuid4().hex}"


class EventService:
    """
    Ingestion and status/replay operations over the event store and queue.

    Both fresh ingestion and replay enqueue with the same max_attempts
    and backoff policy.
    """

    def __init__(
        self,
        store: EventStore,
        targets: TargetRegistry,
        queue: DeliveryQueue,
        max_attempts: int = 5,
        backoff: Optional[BackoffPolicy] = None,
        default_target_url: Optional[str] = None,
        metrics_client: Optional[MetricsClient] = None
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        self.store = store
        self.targets = targets
        self.queue = queue
        self.max_attempts = max_attempts
        self.backoff = backoff or BackoffPolicy()
        self.default_target_url = default_target_url
        self.metrics_client = metrics_client

    async def receive(
        self,
        tenant_id: str,
        application_name: str,
        headers: Dict[str, str],
        payload
    ) -> str:
        """
        Store a received webhook and queue it for delivery.

        The target URL is resolved now and frozen on the event; later
        registry changes do not affect it. A registered application
        without a URL falls back to default_target_url, and failing that
        is accepted and fails at delivery time.

        Args:
            tenant_id: Owning tenant (resolved upstream)
            application_name: Registered application name
            headers: Request headers to capture
            payload: Request body to capture and later deliver

        Returns:
            The new event id

        Raises:
            TargetNotConfiguredError: If the application is not registered
        """
        target = await self.targets.get_target(tenant_id, application_name)
        if target is None:
            logger.warning(
                "Webhook received for unregistered application",
                tenant_id=tenant_id,
                application_name=application_name
            )
            raise TargetNotConfiguredError(tenant_id, application_name)

        task_id = new_task_id()
        event = Event(
            tenant_id=tenant_id,
            application_name=target.name,
            headers=headers,
            payload=payload,
            target_url=target.target_url or self.default_target_url,
            status=EventStatus.PENDING,
            active_task_id=task_id
        )

        # Stored before queueing so the worker always finds the event
        await self.store.put_event(event)
        try:
            await self.queue.enqueue(
                event.event_id,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
                task_id=task_id
            )
        except Exception as e:
            logger.error(
                "Failed to queue received webhook",
                event_id=event.event_id,
                tenant_id=tenant_id,
                error=str(e),
                error_type=type(e).__name__
            )
            await self._abandon(event.event_id, task_id)
            raise

        logger.info(
            "Webhook received",
            event_id=event.event_id,
            tenant_id=tenant_id,
            application_name=target.name,
            has_target_url=bool(event.target_url)
        )

        if self.metrics_client is not None:
            self.metrics_client.put_metric(
                metric_name="EventsIngested",
                value=1.0,
                dimensions={"Application": target.name}
            )

        return event.event_id

    async def list_events(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        limit: int = 50
    ) -> List[Event]:
        """List a tenant's events newest first, optionally by exact status."""
        return await self.store.list_events(tenant_id, status=status, limit=limit)

    async def get_event(self, tenant_id: str, event_id: str) -> Event:
        """
        Fetch one of the tenant's events.

        Raises:
            EventNotFoundError: If missing or owned by another tenant
        """
        event = await self.store.get_event(event_id, tenant_id=tenant_id)
        if event is None:
            raise EventNotFoundError(event_id)
        return event

    async def replay(
        self,
        tenant_id: str,
        event_id: str,
        reset_history: bool = False
    ) -> bool:
        """
        Re-enqueue an event for delivery.

        Works on terminal and in-flight events alike. The event is bound
        to a new task id, so a task still queued from before becomes a
        no-op when it runs; only one attempt counter is ever live per
        event. Attempt history is kept unless reset_history is set.

        If the new task cannot be queued, the event is bound back to its
        previous task and status before the error propagates.

        Args:
            tenant_id: Caller's tenant
            event_id: Event to replay
            reset_history: Clear attempts and attempt log first

        Returns:
            True once the new task is enqueued

        Raises:
            EventNotFoundError: If missing or owned by another tenant
        """
        task_id = new_task_id()
        previous = {"reset_history": reset_history}

        def apply(event: Event) -> bool:
            previous.update(
                task_id=event.active_task_id,
                status=event.status,
                attempt_log=list(event.attempt_log)
            )
            if reset_history:
                event.reset_history()
            event.requeue(task_id)
            return True

        event = await self.store.modify_event(event_id, apply, tenant_id=tenant_id)
        if event is None:
            raise EventNotFoundError(event_id)

        try:
            await self.queue.enqueue(
                event.event_id,
                max_attempts=self.max_attempts,
                backoff=self.backoff,
                task_id=task_id
            )
        except Exception as e:
            logger.error(
                "Failed to queue replay, restoring previous task",
                event_id=event_id,
                task_id=task_id,
                previous_task_id=previous["task_id"],
                error=str(e),
                error_type=type(e).__name__
            )
            await self._restore(event_id, task_id, previous)
            raise

        logger.info(
            "Event replayed",
            event_id=event_id,
            tenant_id=tenant_id,
            task_id=task_id,
            reset_history=reset_history,
            attempts=event.attempts
        )

        return True

    async def _restore(self, event_id: str, task_id: str, previous: dict) -> None:
        """
        Undo a replay whose task never reached the queue.

        Only applies while the event is still bound to the lost task, so
        the previous task (if still queued) is honoured again.
        """

        def apply(event: Event) -> bool:
            if event.active_task_id != task_id:
                return False
            if previous["reset_history"]:
                # Attempts logged since the reset stay after the restored history
                event.attempt_log[:0] = previous["attempt_log"]
                event.attempts = len(event.attempt_log)
            event.active_task_id = previous["task_id"]
            event.status = previous["status"]
            event.touch()
            return True

        try:
            await self.store.modify_event(event_id, apply)
        except Exception as e:
            logger.error(
                "Failed to restore event after replay error",
                event_id=event_id,
                task_id=task_id,
                error=str(e)
            )

    async def _abandon(self, event_id: str, task_id: str) -> None:
        """Fail a freshly stored event whose delivery task could not be queued."""

        def apply(event: Event) -> bool:
            if event.active_task_id != task_id or event.is_terminal:
                return False
            event.record_attempt(AttemptRecord(error=ENQUEUE_FAILED_ERROR))
            event.mark_failed()
            return True

        try:
            await self.store.modify_event(event_id, apply)
        except Exception as e:
            logger.error(
                "Failed to mark unqueued event as failed",
                event_id=event_id,
                task_id=task_id,
                error=str(e)
            )


def build_event_service(settings: Settings) -> EventService:
    """Construct an EventService and its clients from settings."""
    aws = {
        'region_name': settings.aws_region,
        'endpoint_url': settings.aws_endpoint_url,
    }
    metrics_client = MetricsClient(**aws) if settings.metrics_enabled else None

    return EventService(
        store=EventStore(table_name=settings.events_table_name, **aws),
        targets=TargetRegistry(table_name=settings.targets_table_name, **aws),
        queue=SQSDeliveryQueue(
            queue_url=settings.delivery_queue_url,
            lease_seconds=settings.lease_seconds,
            **aws
        ),
        max_attempts=settings.max_attempts,
        backoff=BackoffPolicy(delay_seconds=settings.backoff_delay_seconds),
        default_target_url=settings.default_target_url,
        metrics_client=metrics_client
    )
