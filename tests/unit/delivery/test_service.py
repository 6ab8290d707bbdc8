"""
Module: test_service.py
Description: Unit tests for EventService ingestion, reads and replay.
"""

from unittest.mock import AsyncMock, MagicMock

import pytest

from webhook_relay.delivery.retry import BackoffPolicy
from webhook_relay.delivery.service import ENQUEUE_FAILED_ERROR, EventService
from webhook_relay.delivery.worker import DeliveryWorker, TaskOutcome
from webhook_relay.errors import EventNotFoundError, TargetNotConfiguredError
from webhook_relay.models.event import AttemptRecord, EventStatus

TARGET_URL = "https://hooks.example.com/zoom"


class TestReceive:

    def test_max_attempts_must_be_positive(self, event_store, target_registry, delivery_queue):
        with pytest.raises(ValueError, match="max_attempts must be >= 1"):
            EventService(event_store, target_registry, delivery_queue, max_attempts=0)

    @pytest.mark.asyncio
    async def test_receive_stores_and_enqueues(
        self, event_service, target_registry, event_store, delivery_queue, sample_payload
    ):
        await target_registry.put_target("tenant-a", "Zoom", TARGET_URL)

        event_id = await event_service.receive(
            "tenant-a", "Zoom", {"x-zm-signature": "v0=abc"}, sample_payload
        )

        event = await event_store.get_event(event_id)
        assert event.status == EventStatus.PENDING
        assert event.attempts == 0
        assert event.payload == sample_payload
        assert event.headers == {"x-zm-signature": "v0=abc"}
        assert event.target_url == TARGET_URL

        tasks = await delivery_queue.lease()
        assert len(tasks) == 1
        assert tasks[0].event_id == event_id
        assert tasks[0].task_id == event.active_task_id
        assert tasks[0].max_attempts == 5
        assert tasks[0].backoff == BackoffPolicy(delay_seconds=60)

    @pytest.mark.asyncio
    async def test_unregistered_application_rejected(
        self, event_service, event_store, delivery_queue, sample_payload
    ):
        with pytest.raises(TargetNotConfiguredError):
            await event_service.receive("tenant-a", "Slack", {}, sample_payload)

        assert await event_store.list_events("tenant-a") == []
        assert await delivery_queue.lease() == []

    @pytest.mark.asyncio
    async def test_application_registered_by_other_tenant_rejected(
        self, event_service, target_registry, sample_payload
    ):
        await target_registry.put_target("tenant-b", "Zoom", TARGET_URL)

        with pytest.raises(TargetNotConfiguredError):
            await event_service.receive("tenant-a", "Zoom", {}, sample_payload)

    @pytest.mark.asyncio
    async def test_target_url_is_snapshotted(
        self, event_service, target_registry, event_store, sample_payload
    ):
        """Changing the registry later does not redirect stored events."""
        await target_registry.put_target("tenant-a", "Zoom", TARGET_URL)
        event_id = await event_service.receive("tenant-a", "Zoom", {}, sample_payload)

        await target_registry.put_target("tenant-a", "Zoom", "https://elsewhere.example.com/")

        assert (await event_store.get_event(event_id)).target_url == TARGET_URL

    @pytest.mark.asyncio
    async def test_registered_without_url_is_accepted(
        self, event_service, target_registry, event_store, sample_payload
    ):
        await target_registry.put_target("tenant-a", "Zoom", None)

        event_id = await event_service.receive("tenant-a", "Zoom", {}, sample_payload)

        assert (await event_store.get_event(event_id)).target_url is None

    @pytest.mark.asyncio
    async def test_default_target_url_fallback(
        self, event_store, target_registry, delivery_queue, sample_payload
    ):
        service = EventService(
            event_store,
            target_registry,
            delivery_queue,
            default_target_url="https://fallback.example.com/hook"
        )
        await target_registry.put_target("tenant-a", "Zoom", None)

        event_id = await service.receive("tenant-a", "Zoom", {}, sample_payload)

        assert (await event_store.get_event(event_id)).target_url == (
            "https://fallback.example.com/hook"
        )

    @pytest.mark.asyncio
    async def test_ingest_metric(self, event_store, target_registry, delivery_queue, sample_payload):
        metrics_client = MagicMock()
        service = EventService(
            event_store, target_registry, delivery_queue, metrics_client=metrics_client
        )
        await target_registry.put_target("tenant-a", "Zoom", TARGET_URL)

        await service.receive("tenant-a", "Zoom", {}, sample_payload)

        metrics_client.put_metric.assert_called_once_with(
            metric_name="EventsIngested",
            value=1.0,
            dimensions={"Application": "Zoom"}
        )


class TestReads:

    @pytest.mark.asyncio
    async def test_get_event(self, event_service, event_store, sample_event):
        await event_store.put_event(sample_event)

        event = await event_service.get_event("tenant-a", sample_event.event_id)

        assert event.event_id == sample_event.event_id

    @pytest.mark.asyncio
    async def test_get_event_of_other_tenant(self, event_service, event_store, sample_event):
        await event_store.put_event(sample_event)

        with pytest.raises(EventNotFoundError):
            await event_service.get_event("tenant-b", sample_event.event_id)

    @pytest.mark.asyncio
    async def test_list_events_by_status(self, event_service, event_store, sample_event):
        sample_event.mark_failed()
        await event_store.put_event(sample_event)

        assert len(await event_service.list_events("tenant-a", status="failed")) == 1
        assert await event_service.list_events("tenant-a", status="success") == []


class TestReplay:

    @pytest.mark.asyncio
    async def test_replay_failed_event(
        self, event_service, event_store, delivery_queue, sample_event
    ):
        sample_event.record_attempt(AttemptRecord(status_code=500))
        sample_event.mark_failed()
        await event_store.put_event(sample_event)

        assert await event_service.replay("tenant-a", sample_event.event_id) is True

        event = await event_store.get_event(sample_event.event_id)
        assert event.status == EventStatus.PENDING
        assert event.attempts == 1  # history kept
        assert event.active_task_id != "tsk_current"

        tasks = await delivery_queue.lease()
        assert [t.task_id for t in tasks] == [event.active_task_id]

    @pytest.mark.asyncio
    async def test_replay_with_history_reset(self, event_service, event_store, sample_event):
        sample_event.record_attempt(AttemptRecord(status_code=500))
        sample_event.mark_failed()
        await event_store.put_event(sample_event)

        await event_service.replay("tenant-a", sample_event.event_id, reset_history=True)

        event = await event_store.get_event(sample_event.event_id)
        assert event.attempts == 0
        assert event.attempt_log == []

    @pytest.mark.asyncio
    async def test_replay_successful_event(self, event_service, event_store, sample_event):
        sample_event.mark_success()
        await event_store.put_event(sample_event)

        await event_service.replay("tenant-a", sample_event.event_id)

        assert (await event_store.get_event(sample_event.event_id)).status == EventStatus.PENDING

    @pytest.mark.asyncio
    async def test_replay_unknown_event(self, event_service, delivery_queue):
        with pytest.raises(EventNotFoundError):
            await event_service.replay("tenant-a", "evt_000000000000")

        assert await delivery_queue.lease() == []

    @pytest.mark.asyncio
    async def test_replay_other_tenants_event(
        self, event_service, event_store, delivery_queue, sample_event
    ):
        await event_store.put_event(sample_event)

        with pytest.raises(EventNotFoundError):
            await event_service.replay("tenant-b", sample_event.event_id)

        assert (await event_store.get_event(sample_event.event_id)).active_task_id == "tsk_current"
        assert await delivery_queue.lease() == []


class TestQueueOutage:
    """Queue failures must never leave an event without a live task."""

    @pytest.mark.asyncio
    async def test_receive_marks_unqueued_event_failed(
        self, event_service, target_registry, event_store, delivery_queue,
        sample_payload, monkeypatch
    ):
        await target_registry.put_target("tenant-a", "Zoom", TARGET_URL)
        monkeypatch.setattr(delivery_queue, "enqueue", AsyncMock(side_effect=RuntimeError("SQS down")))

        with pytest.raises(RuntimeError, match="SQS down"):
            await event_service.receive("tenant-a", "Zoom", {}, sample_payload)

        [event] = await event_store.list_events("tenant-a")
        assert event.status == EventStatus.FAILED
        assert event.attempts == 1
        assert event.attempt_log[0].error == ENQUEUE_FAILED_ERROR

    @pytest.mark.asyncio
    async def test_failed_replay_keeps_retry_task_live(
        self, event_service, event_store, delivery_queue, push_client, sample_event,
        make_task, httpx_mock, monkeypatch
    ):
        sample_event.record_attempt(AttemptRecord(status_code=500))
        sample_event.mark_retrying()
        await event_store.put_event(sample_event)
        monkeypatch.setattr(delivery_queue, "enqueue", AsyncMock(side_effect=RuntimeError("SQS down")))

        with pytest.raises(RuntimeError, match="SQS down"):
            await event_service.replay("tenant-a", sample_event.event_id)

        event = await event_store.get_event(sample_event.event_id)
        assert event.active_task_id == "tsk_current"
        assert event.status == EventStatus.RETRYING
        assert event.attempts == 1

        # The retry task queued before the replay still delivers the event
        httpx_mock.add_response(method="POST", url=TARGET_URL, status_code=200)
        worker = DeliveryWorker(store=event_store, queue=delivery_queue, delivery_client=push_client)

        result = await worker.process_task(make_task(sample_event, attempt=2))

        assert result.outcome is TaskOutcome.DELIVERED
        assert (await event_store.get_event(sample_event.event_id)).status == EventStatus.SUCCESS

    @pytest.mark.asyncio
    async def test_failed_replay_restores_reset_history(
        self, event_service, event_store, delivery_queue, sample_event, monkeypatch
    ):
        sample_event.record_attempt(AttemptRecord(status_code=500))
        sample_event.record_attempt(AttemptRecord(status_code=502))
        sample_event.mark_failed()
        await event_store.put_event(sample_event)
        monkeypatch.setattr(delivery_queue, "enqueue", AsyncMock(side_effect=RuntimeError("SQS down")))

        with pytest.raises(RuntimeError):
            await event_service.replay("tenant-a", sample_event.event_id, reset_history=True)

        event = await event_store.get_event(sample_event.event_id)
        assert event.status == EventStatus.FAILED
        assert [a.status_code for a in event.attempt_log] == [500, 502]
        assert event.attempts == 2

    @pytest.mark.asyncio
    async def test_rollback_skipped_once_another_replay_took_over(
        self, event_service, event_store, delivery_queue, sample_event, monkeypatch
    ):
        """A later successful replay is not undone by an earlier failed one."""
        sample_event.mark_failed()
        await event_store.put_event(sample_event)

        async def enqueue_after_takeover(event_id, **kwargs):
            def take_over(event):
                event.requeue("tsk_newer")
                return True

            await event_store.modify_event(event_id, take_over)
            raise RuntimeError("SQS down")

        monkeypatch.setattr(delivery_queue, "enqueue", enqueue_after_takeover)

        with pytest.raises(RuntimeError):
            await event_service.replay("tenant-a", sample_event.event_id)

        event = await event_store.get_event(sample_event.event_id)
        assert event.active_task_id == "tsk_newer"
        assert event.status == EventStatus.PENDING
