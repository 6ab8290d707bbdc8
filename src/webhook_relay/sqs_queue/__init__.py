"""
Package: sqs_queue
Description: Durable delivery task queue.

Defines the queue contract used by ingestion, replay and the delivery
worker, and its SQS implementation.
"""

from .base import DeliveryQueue, DeliveryTask
from .sqs import SQSDeliveryQueue, task_from_message

__all__ = ["DeliveryQueue", "DeliveryTask", "SQSDeliveryQueue", "task_from_message"]
