"""
Module: sqs.py
Description: SQS-backed delivery queue.

Maps the delivery queue contract onto SQS primitives:
- enqueue: SendMessage with the task as JSON body
- lease: ReceiveMessage with a visibility timeout
- ack: DeleteMessage
- nack: ChangeMessageVisibility to the retry delay

ApproximateReceiveCount serves as the task's attempt counter, so the
count survives worker crashes and restarts.
"""

import asyncio
import json
from typing import Any, Dict, List, Optional
from uuid import uuid4

import boto3
from botocore.exceptions import ClientError

from webhook_relay.delivery.retry import MAX_DELAY_SECONDS, BackoffPolicy
from webhook_relay.sqs_queue.base import DeliveryQueue, DeliveryTask
from webhook_relay.utils.logger import get_logger

logger = get_logger(__name__)


def task_from_message(message: Dict[str, Any]) -> DeliveryTask:
    """
    Build a DeliveryTask from an SQS message.

    Accepts both the ReceiveMessage shape (Body, ReceiptHandle, Attributes)
    and the Lambda event record shape (body, receiptHandle, attributes).
    """
    body = json.loads(message.get('Body') or message['body'])
    attributes = message.get('Attributes') or message.get('attributes') or {}
    receipt = message.get('ReceiptHandle') or message.get('receiptHandle')

    return DeliveryTask(
        event_id=body['event_id'],
        task_id=body['task_id'],
        max_attempts=body['max_attempts'],
        backoff=BackoffPolicy(**body.get('backoff', {})),
        attempt=int(attributes.get('ApproximateReceiveCount', 1)),
        receipt=receipt
    )


class SQSDeliveryQueue(DeliveryQueue):
    """
    Delivery queue on top of a standard SQS queue.

    Configure a redrive policy on the queue with a maxReceiveCount above
    the largest max_attempts in use; tasks the worker gives up on are
    deleted, so the dead-letter queue only catches poison messages.
    """

    def __init__(
        self,
        queue_url: str,
        lease_seconds: int = 60,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None
    ):
        """
        Initialize SQS delivery queue.

        Args:
            queue_url: URL of the SQS queue
            lease_seconds: Visibility timeout applied to leased tasks
            region_name: AWS region (defaults to the boto3 session region)
            endpoint_url: Optional AWS endpoint override
        """
        if not queue_url or not isinstance(queue_url, str):
            raise ValueError("queue_url must be a non-empty string")

        self.queue_url = queue_url
        self.lease_seconds = lease_seconds
        self.client = boto3.client(
            'sqs',
            region_name=region_name,
            endpoint_url=endpoint_url
        )

        logger.info(
            "SQS delivery queue initialized",
            queue_url=queue_url,
            lease_seconds=lease_seconds
        )

    async def enqueue(
        self,
        event_id: str,
        max_attempts: int,
        backoff: BackoffPolicy,
        task_id: Optional[str] = None
    ) -> str:
        """
        Send a delivery task for an event to SQS.

        Args:
            event_id: Unique event identifier
            max_attempts: Total attempts allowed for the task
            backoff: Delay policy between attempts
            task_id: Optional task id; generated when omitted

        Returns:
            Task id

        Raises:
            ClientError: If SQS operation fails
            ValueError: If parameters are invalid
        """
        if not event_id or not isinstance(event_id, str):
            raise ValueError("event_id must be a non-empty string")
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

        task_id = task_id or f"tsk_{uuid4().hex}"
        body = {
            'event_id': event_id,
            'task_id': task_id,
            'max_attempts': max_attempts,
            'backoff': backoff.model_dump(),
        }

        try:
            response = self.client.send_message(
                QueueUrl=self.queue_url,
                MessageBody=json.dumps(body),
                MessageAttributes={
                    'EventId': {
                        'StringValue': event_id,
                        'DataType': 'String'
                    }
                }
            )

        except ClientError as e:
            logger.error(
                "Failed to send delivery task to SQS",
                event_id=event_id,
                task_id=task_id,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Delivery task enqueued",
            event_id=event_id,
            task_id=task_id,
            message_id=response['MessageId'],
            max_attempts=max_attempts
        )

        return task_id

    async def lease(self, max_tasks: int = 10, wait_seconds: int = 0) -> List[DeliveryTask]:
        """
        Receive up to max_tasks tasks and hide them for lease_seconds.

        Messages that cannot be parsed are logged and left to expire into
        the dead-letter queue.
        """
        try:
            # Long polls run in a thread so the event loop stays responsive
            response = await asyncio.to_thread(
                self.client.receive_message,
                QueueUrl=self.queue_url,
                MaxNumberOfMessages=max(1, min(max_tasks, 10)),
                WaitTimeSeconds=wait_seconds,
                VisibilityTimeout=self.lease_seconds,
                AttributeNames=['ApproximateReceiveCount'],
                MessageAttributeNames=['All']
            )

        except ClientError as e:
            logger.error(
                "Failed to receive delivery tasks from SQS",
                queue_url=self.queue_url,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        tasks = []
        for message in response.get('Messages', []):
            try:
                tasks.append(task_from_message(message))
            except (ValueError, KeyError) as e:
                logger.error(
                    "Malformed delivery task",
                    message_id=message.get('MessageId'),
                    error=str(e)
                )

        if tasks:
            logger.debug("Delivery tasks leased", count=len(tasks))

        return tasks

    async def ack(self, task: DeliveryTask) -> None:
        """Delete the task's message; it will not be delivered again."""
        try:
            self.client.delete_message(
                QueueUrl=self.queue_url,
                ReceiptHandle=task.receipt
            )

        except ClientError as e:
            logger.error(
                "Failed to acknowledge delivery task",
                event_id=task.event_id,
                task_id=task.task_id,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.debug("Delivery task acknowledged", event_id=task.event_id, task_id=task.task_id)

    async def nack(self, task: DeliveryTask, delay_seconds: int) -> None:
        """Make the task's message visible again after delay_seconds."""
        delay = max(0, min(int(delay_seconds), MAX_DELAY_SECONDS))

        try:
            self.client.change_message_visibility(
                QueueUrl=self.queue_url,
                ReceiptHandle=task.receipt,
                VisibilityTimeout=delay
            )

        except ClientError as e:
            logger.error(
                "Failed to reschedule delivery task",
                event_id=task.event_id,
                task_id=task.task_id,
                delay_seconds=delay,
                error_code=e.response['Error']['Code'],
                error_message=e.response['Error']['Message']
            )
            raise

        logger.info(
            "Delivery task rescheduled",
            event_id=task.event_id,
            task_id=task.task_id,
            attempt=task.attempt,
            delay_seconds=delay
        )

    async def close(self) -> None:
        self.client.close()
