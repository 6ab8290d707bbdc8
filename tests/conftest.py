"""
Module: conftest.py
Description: Shared pytest fixtures for webhook relay tests.

Provides reusable fixtures for the event store, target registry,
delivery queue and sample data. Uses moto for AWS service mocking
to enable fast, isolated tests without real AWS resources.
"""

import os

# Never talk to real AWS from tests
os.environ["AWS_ACCESS_KEY_ID"] = "testing"
os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
os.environ["AWS_SECURITY_TOKEN"] = "testing"
os.environ["AWS_SESSION_TOKEN"] = "testing"
os.environ["AWS_DEFAULT_REGION"] = "us-east-1"

from datetime import datetime, timezone  # noqa: E402

import boto3  # noqa: E402
import pytest  # noqa: E402
import pytest_asyncio  # noqa: E402
from moto import mock_aws  # noqa: E402

from webhook_relay.delivery.push import PushDeliveryClient  # noqa: E402
from webhook_relay.delivery.retry import BackoffPolicy  # noqa: E402
from webhook_relay.delivery.service import EventService  # noqa: E402
from webhook_relay.models.event import Event  # noqa: E402
from webhook_relay.sqs_queue.base import DeliveryTask  # noqa: E402
from webhook_relay.sqs_queue.sqs import SQSDeliveryQueue  # noqa: E402
from webhook_relay.storage.dynamodb import EventStore  # noqa: E402
from webhook_relay.storage.targets import TargetRegistry  # noqa: E402

REGION = "us-east-1"
EVENTS_TABLE = "test-events-table"
TARGETS_TABLE = "test-targets-table"
QUEUE_NAME = "test-delivery-queue"
TARGET_URL = "https://hooks.example.com/zoom"


def create_events_table(dynamodb, table_name: str = EVENTS_TABLE):
    """Create the events table with the same schema as production."""
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {'AttributeName': 'event_id', 'KeyType': 'HASH'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'event_id', 'AttributeType': 'S'},
            {'AttributeName': 'tenant_id', 'AttributeType': 'S'},
            {'AttributeName': 'created_at', 'AttributeType': 'S'}
        ],
        GlobalSecondaryIndexes=[
            {
                'IndexName': 'TenantIndex',
                'KeySchema': [
                    {'AttributeName': 'tenant_id', 'KeyType': 'HASH'},
                    {'AttributeName': 'created_at', 'KeyType': 'RANGE'}
                ],
                'Projection': {'ProjectionType': 'ALL'}
            }
        ],
        BillingMode='PAY_PER_REQUEST'
    )


def create_targets_table(dynamodb, table_name: str = TARGETS_TABLE):
    """Create the application targets table."""
    return dynamodb.create_table(
        TableName=table_name,
        KeySchema=[
            {'AttributeName': 'tenant_id', 'KeyType': 'HASH'},
            {'AttributeName': 'name', 'KeyType': 'RANGE'}
        ],
        AttributeDefinitions=[
            {'AttributeName': 'tenant_id', 'AttributeType': 'S'},
            {'AttributeName': 'name', 'AttributeType': 'S'}
        ],
        BillingMode='PAY_PER_REQUEST'
    )


@pytest.fixture
def aws():
    """Activate moto for the duration of a test."""
    with mock_aws():
        yield


@pytest.fixture
def events_table(aws):
    """Create mock DynamoDB events table."""
    return create_events_table(boto3.resource('dynamodb', region_name=REGION))


@pytest.fixture
def targets_table(aws):
    """Create mock DynamoDB targets table."""
    return create_targets_table(boto3.resource('dynamodb', region_name=REGION))


@pytest.fixture
def queue_url(aws):
    """Create mock SQS delivery queue and return its URL."""
    sqs = boto3.client('sqs', region_name=REGION)
    return sqs.create_queue(QueueName=QUEUE_NAME)['QueueUrl']


@pytest.fixture
def event_store(events_table):
    """Provide EventStore backed by the mocked events table."""
    return EventStore(table_name=EVENTS_TABLE, region_name=REGION)


@pytest.fixture
def target_registry(targets_table):
    """Provide TargetRegistry backed by the mocked targets table."""
    return TargetRegistry(table_name=TARGETS_TABLE, region_name=REGION)


@pytest.fixture
def delivery_queue(queue_url):
    """Provide SQSDeliveryQueue backed by the mocked queue."""
    return SQSDeliveryQueue(queue_url=queue_url, lease_seconds=30, region_name=REGION)


@pytest.fixture
def event_service(event_store, target_registry, delivery_queue):
    """Provide EventService wired to the mocked AWS resources."""
    return EventService(
        store=event_store,
        targets=target_registry,
        queue=delivery_queue,
        max_attempts=5,
        backoff=BackoffPolicy(delay_seconds=60)
    )


@pytest_asyncio.fixture
async def push_client():
    """Provide PushDeliveryClient with the production timeout."""
    client = PushDeliveryClient(timeout_seconds=7)
    yield client
    await client.aclose()


@pytest.fixture
def sample_payload():
    """Typical webhook body as sent by a third party."""
    return {
        "event": "meeting.started",
        "payload": {
            "account_id": "acc_123",
            "object": {"id": 85601123, "topic": "Weekly sync", "duration": 30.5}
        }
    }


@pytest.fixture
def sample_event(sample_payload):
    """Provide a pending Event owned by tenant-a."""
    return Event(
        tenant_id="tenant-a",
        application_name="Zoom",
        headers={"content-type": "application/json", "x-zm-signature": "v0=abc"},
        payload=sample_payload,
        target_url=TARGET_URL,
        active_task_id="tsk_current",
        created_at=datetime.now(timezone.utc)
    )


def build_task(
    event: Event,
    attempt: int = 1,
    max_attempts: int = 5,
    task_id: str = None
) -> DeliveryTask:
    """Build a leased task for an event as the queue would hand it out."""
    return DeliveryTask(
        event_id=event.event_id,
        task_id=task_id or event.active_task_id,
        max_attempts=max_attempts,
        backoff=BackoffPolicy(delay_seconds=60),
        attempt=attempt,
        receipt="receipt-handle"
    )


@pytest.fixture
def make_task():
    """Provide the task builder to tests."""
    return build_task
