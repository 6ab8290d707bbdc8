"""
Module: delivery/worker.py
Description: Delivery worker for queued webhook events.

Consumes delivery tasks, POSTs each event's payload to its target URL,
records the attempt on the event and decides between success, another
retry, or terminal failure. The event is always persisted before the
task is acknowledged or rescheduled.

Key Components:
- DeliveryWorker: Per-task state machine plus a polling loop
- build_worker(): Wire a worker from settings
- main(): Long-running worker process with graceful drain
- handler(): Lambda entry point for an SQS event source mapping
"""

import argparse
import asyncio
import signal
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, List, Optional

from webhook_relay.config.settings import Settings, get_settings
from webhook_relay.delivery.push import PushDeliveryClient
from webhook_relay.errors import (
    DeliveryFailure,
    PermanentDeliveryFailure,
    TransientDeliveryFailure
)
from webhook_relay.models.event import AttemptRecord, Event, EventStatus
from webhook_relay.sqs_queue.base import DeliveryQueue, DeliveryTask
from webhook_relay.sqs_queue.sqs import SQSDeliveryQueue, task_from_message
from webhook_relay.storage.dynamodb import EventStore
from webhook_relay.utils.logger import configure_logging, get_logger
from webhook_relay.utils.metrics import MetricsClient

logger = get_logger(__name__)

NO_TARGET_ERROR = "No target URL configured"

_TRANSITIONS = {
    EventStatus.SUCCESS: Event.mark_success,
    EventStatus.RETRYING: Event.mark_retrying,
    EventStatus.FAILED: Event.mark_failed,
}


class TaskOutcome(str, Enum):
    """What the worker did with a task."""

    DELIVERED = "delivered"
    RETRY = "retry"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class TaskResult:
    outcome: TaskOutcome
    retry_delay: Optional[int] = None
    failure: Optional[DeliveryFailure] = None


class DeliveryWorker:
    """
    Runs delivery tasks against the event store and the target URLs.

    The retry decision is taken from the task itself (its attempt
    counter, max_attempts and backoff), never from current settings, so
    a configuration change cannot strand tasks already in flight.
    """

    def __init__(
        self,
        store: EventStore,
        queue: DeliveryQueue,
        delivery_client: PushDeliveryClient,
        metrics_client: Optional[MetricsClient] = None,
        batch_size: int = 10,
        wait_seconds: int = 20
    ):
        self.store = store
        self.queue = queue
        self.delivery_client = delivery_client
        self.metrics_client = metrics_client
        self.batch_size = batch_size
        self.wait_seconds = wait_seconds

    async def process_task(self, task: DeliveryTask) -> TaskResult:
        """
        Run one delivery task and persist its outcome.

        Does not touch the queue; the caller acks or nacks based on the
        returned result.

        Args:
            task: Leased delivery task

        Returns:
            TaskResult describing the outcome and, for RETRY, the delay
        """
        event = await self.store.get_event(task.event_id)
        if event is None:
            logger.info(
                "Event no longer exists, discarding task",
                event_id=task.event_id,
                task_id=task.task_id
            )
            return TaskResult(TaskOutcome.DISCARDED)

        if not self._owns(event, task):
            logger.info(
                "Task superseded by a newer one, discarding",
                event_id=event.event_id,
                task_id=task.task_id,
                active_task_id=event.active_task_id
            )
            return TaskResult(TaskOutcome.DISCARDED)

        if event.is_terminal:
            logger.info(
                "Event already in terminal state, discarding task",
                event_id=event.event_id,
                task_id=task.task_id,
                status=event.status.value
            )
            return TaskResult(TaskOutcome.DISCARDED)

        if task.is_exhausted:
            return await self._give_up(task)

        if not event.target_url:
            attempt = AttemptRecord(error=NO_TARGET_ERROR)
            return await self._record(task, attempt, EventStatus.FAILED)

        attempt = await self.delivery_client.deliver_event(event)

        if attempt.succeeded:
            status = EventStatus.SUCCESS
        elif task.is_last_attempt:
            status = EventStatus.FAILED
        else:
            status = EventStatus.RETRYING

        return await self._record(task, attempt, status)

    async def handle_task(self, task: DeliveryTask) -> Optional[TaskResult]:
        """
        Process a task and settle it with the queue.

        On unexpected errors the task is left leased; it is redelivered
        once the lease expires.
        """
        try:
            result = await self.process_task(task)

            if result.outcome is TaskOutcome.RETRY:
                await self.queue.nack(task, result.retry_delay)
            else:
                await self.queue.ack(task)

            return result

        except Exception as e:
            logger.error(
                "Error processing delivery task",
                event_id=task.event_id,
                task_id=task.task_id,
                attempt=task.attempt,
                error=str(e),
                error_type=type(e).__name__
            )
            return None

    async def run_once(self) -> int:
        """Lease one batch and process it concurrently. Returns the batch size."""
        tasks = await self.queue.lease(self.batch_size, self.wait_seconds)
        if tasks:
            await asyncio.gather(*(self.handle_task(task) for task in tasks))
        return len(tasks)

    async def run(self, stop_event: asyncio.Event) -> None:
        """
        Poll the queue until stop_event is set.

        The batch in progress when stop_event is set is finished before
        returning.
        """
        logger.info("Delivery worker started", batch_size=self.batch_size)

        while not stop_event.is_set():
            try:
                await self.run_once()
            except Exception as e:
                logger.error(
                    "Failed to lease delivery tasks",
                    error=str(e),
                    error_type=type(e).__name__
                )
                await asyncio.sleep(1)

        logger.info("Delivery worker stopped")

    async def close(self) -> None:
        await self.delivery_client.aclose()
        await self.queue.close()

    @staticmethod
    def _owns(event: Event, task: DeliveryTask) -> bool:
        return event.active_task_id is None or event.active_task_id == task.task_id

    async def _record(
        self,
        task: DeliveryTask,
        attempt: AttemptRecord,
        status: EventStatus
    ) -> TaskResult:
        """
        Append the attempt and apply the new status in one versioned write.

        If a replay took the event over while the call was in flight, the
        attempt is still logged but the replay's status is kept and this
        task stops.
        """
        applied = {"status": False}

        def apply(event: Event) -> bool:
            applied["status"] = False
            event.record_attempt(attempt)
            if self._owns(event, task) and not event.is_terminal:
                _TRANSITIONS[status](event)
                applied["status"] = True
            return True

        event = await self.store.modify_event(task.event_id, apply)

        if event is None or not applied["status"]:
            logger.info(
                "Event changed during delivery, attempt logged without status change",
                event_id=task.event_id,
                task_id=task.task_id
            )
            return TaskResult(TaskOutcome.DISCARDED)

        self._publish(attempt, status)

        if status is EventStatus.SUCCESS:
            logger.info(
                "Event delivered",
                event_id=event.event_id,
                status_code=attempt.status_code,
                attempts=event.attempts
            )
            return TaskResult(TaskOutcome.DELIVERED)

        reason = attempt.error or f"HTTP {attempt.status_code}"

        if status is EventStatus.FAILED:
            failure = PermanentDeliveryFailure(event.event_id, reason, attempt.status_code)
            logger.warning(
                "Event delivery failed permanently",
                event_id=event.event_id,
                reason=reason,
                attempts=event.attempts,
                task_attempt=task.attempt,
                max_attempts=task.max_attempts
            )
            return TaskResult(TaskOutcome.FAILED, failure=failure)

        delay = task.backoff.delay_for(task.attempt)
        failure = TransientDeliveryFailure(event.event_id, reason, attempt.status_code)
        logger.warning(
            "Event delivery failed, will retry",
            event_id=event.event_id,
            reason=reason,
            attempts=event.attempts,
            task_attempt=task.attempt,
            retry_in_seconds=delay
        )
        return TaskResult(TaskOutcome.RETRY, retry_delay=delay, failure=failure)

    async def _give_up(self, task: DeliveryTask) -> TaskResult:
        """Fail an event whose task was handed out more times than allowed."""
        applied = {"status": False}

        def apply(event: Event) -> bool:
            applied["status"] = False
            if not self._owns(event, task) or event.is_terminal:
                return False
            event.mark_failed()
            applied["status"] = True
            return True

        await self.store.modify_event(task.event_id, apply)

        if not applied["status"]:
            logger.info(
                "Event changed before exhausted task ran, discarding",
                event_id=task.event_id,
                task_id=task.task_id
            )
            return TaskResult(TaskOutcome.DISCARDED)

        reason = "Delivery attempts exhausted"
        logger.warning(
            "Delivery task exhausted, marking event failed",
            event_id=task.event_id,
            task_id=task.task_id,
            task_attempt=task.attempt,
            max_attempts=task.max_attempts
        )
        return TaskResult(
            TaskOutcome.FAILED,
            failure=PermanentDeliveryFailure(task.event_id, reason)
        )

    def _publish(self, attempt: AttemptRecord, status: EventStatus) -> None:
        if self.metrics_client is None:
            return
        self.metrics_client.put_metric(
            metric_name="DeliveryAttempt",
            value=1.0,
            dimensions={"Outcome": status.value}
        )
        if attempt.latency_ms is not None:
            self.metrics_client.put_metric(
                metric_name="DeliveryLatency",
                value=float(attempt.latency_ms),
                unit="Milliseconds"
            )


def build_worker(settings: Settings) -> DeliveryWorker:
    """Construct a worker and its clients from settings."""
    store = EventStore(
        table_name=settings.events_table_name,
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url
    )
    queue = SQSDeliveryQueue(
        queue_url=settings.delivery_queue_url,
        lease_seconds=settings.lease_seconds,
        region_name=settings.aws_region,
        endpoint_url=settings.aws_endpoint_url
    )
    metrics_client = None
    if settings.metrics_enabled:
        metrics_client = MetricsClient(
            region_name=settings.aws_region,
            endpoint_url=settings.aws_endpoint_url
        )

    return DeliveryWorker(
        store=store,
        queue=queue,
        delivery_client=PushDeliveryClient(timeout_seconds=settings.delivery_timeout),
        metrics_client=metrics_client,
        batch_size=settings.worker_batch_size,
        wait_seconds=settings.worker_wait_seconds
    )


async def _serve(once: bool) -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    worker = build_worker(settings)

    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop_event.set)

    try:
        if once:
            await worker.run_once()
        else:
            await worker.run(stop_event)
    finally:
        await worker.close()


def main() -> None:
    """Command line entry point: webhook-relay-worker [--once]."""
    parser = argparse.ArgumentParser(
        description="Deliver queued webhook events to their target URLs"
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Process a single batch and exit"
    )
    args = parser.parse_args()

    asyncio.run(_serve(args.once))


async def _process_records(records: List[Dict[str, Any]]) -> Dict[str, Any]:
    worker = build_worker(get_settings())
    batch_failures = []

    try:
        for record in records:
            try:
                task = task_from_message(record)
                result = await worker.process_task(task)

                if result.outcome is TaskOutcome.RETRY:
                    # Push the message out by the backoff delay, then report it
                    # as failed so Lambda does not delete it
                    await worker.queue.nack(task, result.retry_delay)
                    batch_failures.append({'itemIdentifier': record['messageId']})

            except Exception as e:
                logger.error(
                    "Error processing SQS message",
                    message_id=record.get('messageId'),
                    error=str(e)
                )
                batch_failures.append({'itemIdentifier': record['messageId']})
    finally:
        await worker.close()

    return {'batchItemFailures': batch_failures}


def handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Lambda handler for SQS event processing.

    Requires ReportBatchItemFailures on the event source mapping.

    Args:
        event: SQS event with batch of messages
        context: Lambda context

    Returns:
        Response with batch item failures (if any)
    """
    return asyncio.run(_process_records(event.get('Records', [])))


if __name__ == "__main__":
    main()
