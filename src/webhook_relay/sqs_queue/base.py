"""
Module: base.py
Description: Delivery queue interface.

The delivery queue is a durable, at-least-once task queue keyed by
event id. Workers lease tasks, and either acknowledge them (done) or
release them with a delay (retry later). A leased task that is neither
acknowledged nor released reappears once its lease expires.

Key Components:
- DeliveryTask: A leased delivery task with its attempt counter
- DeliveryQueue: Abstract enqueue/lease/ack/nack contract
"""

from abc import ABC, abstractmethod
from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from webhook_relay.delivery.retry import BackoffPolicy


class DeliveryTask(BaseModel):
    """
    A delivery task as handed to a worker.

    Attributes:
        event_id: Event to deliver
        task_id: Identity of this task; the event records which task is current
        max_attempts: Total attempts allowed for this task
        backoff: Delay policy between attempts of this task
        attempt: 1-based number of the current delivery of this task
        receipt: Queue-specific handle used to ack or nack the lease
    """

    model_config = ConfigDict(frozen=True)

    event_id: str
    task_id: str
    max_attempts: int = Field(ge=1)
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    attempt: int = Field(default=1, ge=1)
    receipt: Any = Field(default=None, exclude=True)

    @property
    def is_last_attempt(self) -> bool:
        return self.attempt >= self.max_attempts

    @property
    def is_exhausted(self) -> bool:
        """True once the queue has handed the task out more often than allowed."""
        return self.attempt > self.max_attempts


class DeliveryQueue(ABC):
    """Abstract durable delivery queue."""

    @abstractmethod
    async def enqueue(
        self,
        event_id: str,
        max_attempts: int,
        backoff: BackoffPolicy,
        task_id: Optional[str] = None
    ) -> str:
        """
        Add a delivery task for an event.

        Returns:
            The task id (generated when not supplied)
        """

    @abstractmethod
    async def lease(self, max_tasks: int = 10, wait_seconds: int = 0) -> List[DeliveryTask]:
        """Lease up to max_tasks due tasks, waiting up to wait_seconds for one."""

    @abstractmethod
    async def ack(self, task: DeliveryTask) -> None:
        """Remove a leased task from the queue for good."""

    @abstractmethod
    async def nack(self, task: DeliveryTask, delay_seconds: int) -> None:
        """Release a leased task so it is delivered again after delay_seconds."""

    async def close(self) -> None:
        """Release any connections held by the queue."""
