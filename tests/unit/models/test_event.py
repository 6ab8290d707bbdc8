"""
Module: test_event.py
Description: Unit tests for the Event and AttemptRecord models.

Covers id generation, the attempts/attempt_log invariant, state
transitions and attempt outcome validation.
"""

import pytest
from pydantic import ValidationError

from webhook_relay.models.event import AttemptRecord, Event, EventStatus


class TestEventModel:
    """Test cases for the Event model."""

    def test_defaults_for_new_event(self, sample_payload):
        """A freshly created event is pending with an empty history."""
        event = Event(tenant_id="tenant-a", application_name="Zoom", payload=sample_payload)

        assert event.event_id.startswith("evt_")
        assert len(event.event_id) == 16  # evt_ + 12 chars
        assert event.status == EventStatus.PENDING
        assert event.attempts == 0
        assert event.attempt_log == []
        assert event.target_url is None
        assert event.version == 0
        assert event.created_at.tzinfo is not None

    def test_payload_may_be_any_json_value(self):
        """Webhook bodies are not required to be objects."""
        event = Event(tenant_id="tenant-a", application_name="Zoom", payload=[1, "two", None])
        assert event.payload == [1, "two", None]

    def test_invalid_event_id_rejected(self, sample_payload):
        with pytest.raises(ValidationError):
            Event(
                event_id="not-an-id",
                tenant_id="tenant-a",
                application_name="Zoom",
                payload=sample_payload
            )

    def test_missing_tenant_rejected(self, sample_payload):
        with pytest.raises(ValidationError):
            Event(tenant_id="", application_name="Zoom", payload=sample_payload)

    def test_attempt_count_must_match_log(self, sample_payload):
        """attempts and attempt_log can never disagree."""
        with pytest.raises(ValidationError, match="attempts must equal"):
            Event(
                tenant_id="tenant-a",
                application_name="Zoom",
                payload=sample_payload,
                attempts=2,
                attempt_log=[AttemptRecord(status_code=500)]
            )

    def test_record_attempt_keeps_count_in_sync(self, sample_event):
        sample_event.record_attempt(AttemptRecord(status_code=500, latency_ms=12))
        sample_event.record_attempt(AttemptRecord(error="Request timed out", latency_ms=7000))

        assert sample_event.attempts == 2
        assert len(sample_event.attempt_log) == 2
        assert sample_event.attempt_log[0].status_code == 500
        assert sample_event.attempt_log[1].error == "Request timed out"

    def test_reset_history(self, sample_event):
        sample_event.record_attempt(AttemptRecord(status_code=503))

        sample_event.reset_history()

        assert sample_event.attempts == 0
        assert sample_event.attempt_log == []

    def test_requeue_returns_to_pending_with_new_task(self, sample_event):
        sample_event.mark_failed()

        sample_event.requeue("tsk_new")

        assert sample_event.status == EventStatus.PENDING
        assert sample_event.active_task_id == "tsk_new"
        assert not sample_event.is_terminal

    @pytest.mark.parametrize("mark, status, terminal", [
        ("mark_success", EventStatus.SUCCESS, True),
        ("mark_failed", EventStatus.FAILED, True),
        ("mark_retrying", EventStatus.RETRYING, False),
    ])
    def test_status_transitions(self, sample_event, mark, status, terminal):
        before = sample_event.updated_at

        getattr(sample_event, mark)()

        assert sample_event.status == status
        assert sample_event.is_terminal is terminal
        assert sample_event.updated_at >= before

    def test_invalid_status_rejected(self, sample_event):
        with pytest.raises(ValidationError):
            sample_event.status = "delivered"


class TestAttemptRecord:
    """Test cases for AttemptRecord outcome validation."""

    def test_status_code_outcome(self):
        attempt = AttemptRecord(status_code=204, latency_ms=35)

        assert attempt.succeeded
        assert attempt.error is None

    @pytest.mark.parametrize("status_code", [199, 300, 404, 500])
    def test_non_2xx_is_not_success(self, status_code):
        assert not AttemptRecord(status_code=status_code).succeeded

    def test_error_outcome(self):
        attempt = AttemptRecord(error="No target URL configured")

        assert not attempt.succeeded
        assert attempt.latency_ms is None

    def test_requires_exactly_one_outcome(self):
        with pytest.raises(ValidationError):
            AttemptRecord()

        with pytest.raises(ValidationError):
            AttemptRecord(status_code=500, error="boom")

    def test_attempt_is_immutable(self):
        attempt = AttemptRecord(status_code=500)

        with pytest.raises(ValidationError):
            attempt.status_code = 200
