"""
Module: delivery/retry.py
Description: Retry scheduling policy for event delivery.

A BackoffPolicy travels with each delivery task, so the delay before
the next attempt is computed from the policy the task was enqueued
with, not from whatever configuration the worker runs with now.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

# SQS refuses visibility timeouts above 12 hours
MAX_DELAY_SECONDS = 43200


class BackoffPolicy(BaseModel):
    """
    Delay schedule between delivery attempts.

    With the defaults (exponential, 60s) the delays after attempts
    1, 2, 3 and 4 are 60s, 120s, 240s and 480s.

    Attributes:
        type: 'exponential' doubles the delay after every attempt,
            'fixed' always waits delay_seconds
        delay_seconds: Delay after the first failed attempt
        max_delay_seconds: Upper bound for any single delay
    """

    model_config = ConfigDict(frozen=True)

    type: Literal["exponential", "fixed"] = "exponential"
    delay_seconds: int = Field(default=60, ge=0)
    max_delay_seconds: int = Field(default=MAX_DELAY_SECONDS, ge=0, le=MAX_DELAY_SECONDS)

    def delay_for(self, attempt: int) -> int:
        """
        Seconds to wait after the given (1-based) attempt failed.

        Args:
            attempt: Number of the attempt that just failed

        Returns:
            Delay in whole seconds, capped at max_delay_seconds
        """
        if attempt < 1:
            raise ValueError("attempt must be >= 1")

        if self.type == "fixed":
            delay = self.delay_seconds
        else:
            delay = self.delay_seconds * 2 ** (attempt - 1)

        return min(delay, self.max_delay_seconds)
