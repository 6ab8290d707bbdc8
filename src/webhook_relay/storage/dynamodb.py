"""
Module: dynamodb.py
Description: DynamoDB client for event storage and retrieval.

Provides async operations for storing, retrieving, and querying events
in DynamoDB with proper error handling and logging. Every write after
creation is a conditional put on the event version, so a replay and an
in-flight delivery can never interleave into a half-applied record.

Key Components:
- EventStore: Main client class for event persistence
- Event storage: put_event() with JSON/datetime serialization
- Event retrieval: get_event() with optional tenant scoping
- Tenant listing: list_events() over the TenantIndex GSI, newest first
- Optimistic locking: update_event() and modify_event() with conflict retry

Dependencies: boto3, botocore, tenacity, datetime, typing
"""

import json
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional

import boto3
from botocore.exceptions import ClientError
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential
)

from webhook_relay.errors import ConcurrentModificationError
from webhook_relay.models.event import AttemptRecord, Event, EventStatus
from webhook_relay.utils.logger import get_logger

logger = get_logger(__name__)

TENANT_INDEX = "TenantIndex"


def format_timestamp(value: datetime) -> str:
    """Serialize a datetime as a fixed-width UTC string that sorts lexically."""
    return value.astimezone(timezone.utc).strftime('%Y-%m-%dT%H:%M:%S.%fZ')


def parse_timestamp(value: str) -> datetime:
    """Parse a timestamp written by format_timestamp()."""
    return datetime.fromisoformat(value.replace('Z', '+00:00'))


def event_to_item(event: Event) -> Dict[str, Any]:
    """
    Convert an Event model to a DynamoDB item.

    Headers, payload and attempt log are stored as JSON strings so that
    floats and nested types survive the round trip unchanged.
    """
    item = {
        'event_id': event.event_id,
        'tenant_id': event.tenant_id,
        'application_name': event.application_name,
        'headers': json.dumps(event.headers),
        'payload': json.dumps(event.payload),
        'target_url': event.target_url,
        'status': event.status.value,
        'attempts': event.attempts,
        'attempt_log': json.dumps(
            [attempt.model_dump(mode='json') for attempt in event.attempt_log]
        ),
        'active_task_id': event.active_task_id,
        'version': event.version,
        'created_at': format_timestamp(event.created_at),
        'updated_at': format_timestamp(event.updated_at),
    }

    # Remove None values - DynamoDB doesn't allow None/null values
    return {k: v for k, v in item.items() if v is not None}


def item_to_event(item: Dict[str, Any]) -> Event:
    """Convert a DynamoDB item back to an Event model."""
    return Event(
        event_id=item['event_id'],
        tenant_id=item['tenant_id'],
        application_name=item['application_name'],
        headers=json.loads(item.get('headers', '{}')),
        payload=json.loads(item['payload']),
        target_url=item.get('target_url') or None,
        status=EventStatus(item['status']),
        # DynamoDB returns numbers as Decimal
        attempts=int(item.get('attempts', 0)),
        attempt_log=[
            AttemptRecord(**attempt)
            for attempt in json.loads(item.get('attempt_log', '[]'))
        ],
        active_task_id=item.get('active_task_id'),
        version=int(item.get('version', 0)),
        created_at=parse_timestamp(item['created_at']),
        updated_at=parse_timestamp(item['updated_at']),
    )


class EventStore:
    """
    DynamoDB client for event operations.

    Handles all event persistence for the webhook relay: creation,
    tenant-scoped reads and listing, and versioned updates.

    Attributes:
        table_name: Name of the DynamoDB events table
        dynamodb: boto3 DynamoDB resource
        table: boto3 DynamoDB table resource

    Example:
        >>> store = EventStore(table_name="webhook-relay-events")
        >>> await store.put_event(event)
        >>> retrieved = await store.get_event("evt_123abc456def", tenant_id="tenant-1")
    """

    def __init__(
        self,
        table_name: str,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
        max_conflict_retries: int = 5
    ):
        """
        Initialize DynamoDB client.

        Args:
            table_name: Name of the DynamoDB events table
            region_name: AWS region (defaults to the boto3 session region)
            endpoint_url: Optional AWS endpoint override
            max_conflict_retries: Attempts made by modify_event() on version conflicts

        Raises:
            ValueError: If table_name is empty or invalid
        """
        if not table_name or not isinstance(table_name, str):
            raise ValueError("table_name must be a non-empty string")

        self.table_name = table_name
        self.max_conflict_retries = max_conflict_retries
        self.dynamodb = boto3.resource(
            'dynamodb',
            region_name=region_name,
            endpoint_url=endpoint_url
        )
        self.table = self.dynamodb.Table(table_name)

        logger.info(
            "Event store initialized",
            table_name=table_name
        )

    async def put_event(self, event: Event) -> None:
        """
        Store a new event in DynamoDB.

        Refuses to overwrite an existing event with the same id.

        Args:
            event: Event model to store

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If event is invalid
        """
        if not isinstance(event, Event):
            raise ValueError("event must be an Event instance")

        try:
            self.table.put_item(
                Item=event_to_item(event),
                ConditionExpression='attribute_not_exists(event_id)'
            )

            logger.info(
                "Event stored in DynamoDB",
                event_id=event.event_id,
                tenant_id=event.tenant_id,
                status=event.status.value,
                table_name=self.table_name
            )

        except ClientError as e:
            logger.error(
                "Failed to store event in DynamoDB",
                event_id=event.event_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

    async def get_event(
        self,
        event_id: str,
        tenant_id: Optional[str] = None
    ) -> Optional[Event]:
        """
        Retrieve an event by ID.

        When tenant_id is given, an event owned by another tenant is
        reported as missing.

        Args:
            event_id: Unique event identifier
            tenant_id: Optional owning tenant to scope the read

        Returns:
            Event model if found (and owned), None otherwise

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If event_id is invalid
        """
        if not event_id or not isinstance(event_id, str):
            raise ValueError("event_id must be a non-empty string")

        try:
            response = self.table.get_item(
                Key={'event_id': event_id},
                ConsistentRead=True
            )

        except ClientError as e:
            logger.error(
                "Failed to retrieve event from DynamoDB",
                event_id=event_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        item = response.get('Item')
        if item is None:
            logger.info(
                "Event not found in DynamoDB",
                event_id=event_id,
                table_name=self.table_name
            )
            return None

        if tenant_id is not None and item.get('tenant_id') != tenant_id:
            logger.warning(
                "Event belongs to a different tenant",
                event_id=event_id,
                tenant_id=tenant_id,
                table_name=self.table_name
            )
            return None

        return item_to_event(item)

    async def list_events(
        self,
        tenant_id: str,
        status: Optional[str] = None,
        limit: int = 50
    ) -> List[Event]:
        """
        List a tenant's events, newest first, with an optional status filter.

        Queries the TenantIndex GSI (tenant_id, created_at). The status
        filter is applied server-side after the key condition, so pages
        are followed until enough matching events are collected.

        Args:
            tenant_id: Owning tenant
            status: Optional exact status to filter by
            limit: Maximum number of events to return (1-100)

        Returns:
            List of Event objects sorted by created_at descending

        Raises:
            ClientError: If DynamoDB operation fails
            ValueError: If parameters are invalid
        """
        if not tenant_id or not isinstance(tenant_id, str):
            raise ValueError("tenant_id must be a non-empty string")
        if limit <= 0 or limit > 100:
            raise ValueError("limit must be between 1 and 100")
        if status is not None:
            status = EventStatus(status).value

        kwargs: Dict[str, Any] = {
            'IndexName': TENANT_INDEX,
            'KeyConditionExpression': '#tenant_id = :tenant_id',
            'ExpressionAttributeNames': {'#tenant_id': 'tenant_id'},
            'ExpressionAttributeValues': {':tenant_id': tenant_id},
            'ScanIndexForward': False,  # Most recent first
            'Limit': limit,
        }
        if status:
            kwargs['FilterExpression'] = '#status = :status'
            kwargs['ExpressionAttributeNames']['#status'] = 'status'
            kwargs['ExpressionAttributeValues'][':status'] = status

        events: List[Event] = []
        try:
            while len(events) < limit:
                response = self.table.query(**kwargs)
                events.extend(item_to_event(item) for item in response.get('Items', []))

                last_key = response.get('LastEvaluatedKey')
                if not last_key:
                    break
                kwargs['ExclusiveStartKey'] = last_key

        except ClientError as e:
            logger.error(
                "Failed to list events from DynamoDB",
                tenant_id=tenant_id,
                status_filter=status,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Events listed",
            tenant_id=tenant_id,
            count=min(len(events), limit),
            status_filter=status,
            limit=limit,
            table_name=self.table_name
        )

        return events[:limit]

    async def update_event(self, event: Event) -> None:
        """
        Write back a modified event if nobody else changed it meanwhile.

        The write succeeds only when the stored version still equals
        event.version; on success event.version is advanced.

        Args:
            event: Event model to update

        Raises:
            ConcurrentModificationError: If the stored version moved on
            ClientError: If DynamoDB operation fails
            ValueError: If event is invalid
        """
        if not isinstance(event, Event):
            raise ValueError("event must be an Event instance")

        expected_version = event.version
        item = event_to_item(event)
        item['version'] = expected_version + 1

        try:
            self.table.put_item(
                Item=item,
                ConditionExpression='#version = :expected',
                ExpressionAttributeNames={'#version': 'version'},
                ExpressionAttributeValues={':expected': expected_version}
            )

        except ClientError as e:
            if e.response['Error']['Code'] == 'ConditionalCheckFailedException':
                raise ConcurrentModificationError(event.event_id, expected_version) from e

            logger.error(
                "Failed to update event in DynamoDB",
                event_id=event.event_id,
                table_name=self.table_name,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        event.version = expected_version + 1

        logger.info(
            "Event updated in DynamoDB",
            event_id=event.event_id,
            status=event.status.value,
            attempts=event.attempts,
            version=event.version,
            table_name=self.table_name
        )

    async def modify_event(
        self,
        event_id: str,
        mutate: Callable[[Event], bool],
        tenant_id: Optional[str] = None
    ) -> Optional[Event]:
        """
        Read, mutate and conditionally write an event, retrying on conflicts.

        mutate receives a freshly loaded event and returns True when the
        event should be written back. On a version conflict the event is
        re-read and mutate is applied again to the new state.

        Args:
            event_id: Unique event identifier
            mutate: Callback applying the change in place
            tenant_id: Optional owning tenant to scope the read

        Returns:
            The event as last seen (written or not), None if it does not exist

        Raises:
            ConcurrentModificationError: If conflicts persist past max_conflict_retries
            ClientError: If DynamoDB operation fails
        """
        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.max_conflict_retries),
            wait=wait_random_exponential(multiplier=0.05, max=1),
            retry=retry_if_exception_type(ConcurrentModificationError),
            before_sleep=_log_conflict,
            reraise=True
        ):
            with attempt:
                event = await self.get_event(event_id, tenant_id=tenant_id)
                if event is None:
                    return None
                if mutate(event):
                    await self.update_event(event)
                return event

        return None


def _log_conflict(retry_state) -> None:
    exc = retry_state.outcome.exception()
    logger.info(
        "Event write conflict, re-reading",
        event_id=getattr(exc, 'event_id', None),
        attempt=retry_state.attempt_number
    )
