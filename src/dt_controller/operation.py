"""Long-running operation handles and the waiter that polls them.

ARM create and delete calls return before the instance is usable. The SDK
hands back an LROPoller; this module wraps it in an explicit state machine
(in progress / succeeded / failed) and polls it to a terminal state under
a caller-supplied deadline.

No cancellation is attempted when a deadline passes: ARM does not support
cancelling Digital Twins provisioning, so the remote operation keeps running.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Protocol

from azure.core.exceptions import AzureError

from .errors import OperationFailedError, OperationTimeoutError

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_MAX_POLL_INTERVAL_SECONDS = 60.0


class OperationStatus(str, Enum):
    """Status of a long-running operation."""

    IN_PROGRESS = "InProgress"
    SUCCEEDED = "Succeeded"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self is not OperationStatus.IN_PROGRESS


class AsyncOperation(Protocol):
    """Handle to work in progress on the remote side."""

    def status(self) -> OperationStatus: ...

    @property
    def failure_reason(self) -> str | None: ...


class PollerOperation:
    """AsyncOperation backed by an ``azure.core.polling.LROPoller``.

    The terminal outcome is memoized so repeated status checks on a finished
    operation never touch the poller again.
    """

    def __init__(self, poller: Any, description: str = "operation") -> None:
        self._poller = poller
        self._description = description
        self._outcome: OperationStatus | None = None
        self._failure_reason: str | None = None
        self._error: AzureError | None = None
        self._result: Any = None

    @property
    def description(self) -> str:
        return self._description

    @property
    def failure_reason(self) -> str | None:
        return self._failure_reason

    @property
    def error(self) -> AzureError | None:
        """SDK error raised by the poller, once failed."""
        return self._error

    @property
    def result(self) -> Any:
        """Final resource returned by the poller, once succeeded."""
        return self._result

    def status(self) -> OperationStatus:
        if self._outcome is not None:
            return self._outcome

        if not self._poller.done():
            return OperationStatus.IN_PROGRESS

        # done() guarantees result() does not block; it raises if the LRO failed
        try:
            self._result = self._poller.result(timeout=0)
        except AzureError as e:
            self._error = e
            self._failure_reason = str(e) or type(e).__name__
            self._outcome = OperationStatus.FAILED
        else:
            self._outcome = OperationStatus.SUCCEEDED
        return self._outcome


class CompletedOperation:
    """AsyncOperation for calls that finished synchronously."""

    def __init__(self, result: Any = None) -> None:
        self.result = result

    @property
    def failure_reason(self) -> str | None:
        return None

    def status(self) -> OperationStatus:
        return OperationStatus.SUCCEEDED


@dataclass(frozen=True)
class Deadline:
    """Absolute point in monotonic time after which work must stop."""

    expires_at: float

    @classmethod
    def after(cls, seconds: float) -> Deadline:
        return cls(expires_at=time.monotonic() + seconds)

    def remaining(self) -> float:
        """Seconds left before the deadline, never negative."""
        return max(0.0, self.expires_at - time.monotonic())

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self.expires_at


class PollStrategy(Protocol):
    """Decides how long to sleep before the next status check."""

    def next_interval(self, attempt: int) -> float: ...


@dataclass(frozen=True)
class FixedInterval:
    """Poll at a constant interval."""

    seconds: float = DEFAULT_POLL_INTERVAL_SECONDS

    def next_interval(self, attempt: int) -> float:
        return self.seconds


@dataclass(frozen=True)
class ExponentialBackoff:
    """Poll with exponential backoff and jitter, capped at max_seconds."""

    base_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS
    max_seconds: float = DEFAULT_MAX_POLL_INTERVAL_SECONDS
    jitter_ratio: float = 0.2

    def next_interval(self, attempt: int) -> float:
        backoff = min(self.base_seconds * (2**attempt), self.max_seconds)
        jitter = random.uniform(0, backoff * self.jitter_ratio)
        return min(backoff + jitter, self.max_seconds)


class OperationWaiter:
    """Blocks the calling task until an operation is terminal or a deadline passes."""

    def __init__(self, strategy: PollStrategy | None = None) -> None:
        self._strategy = strategy or ExponentialBackoff()

    async def wait(
        self,
        operation: AsyncOperation,
        deadline: Deadline,
        description: str = "operation",
    ) -> None:
        """Poll an operation to completion.

        Args:
            operation: Handle returned by a mutating call.
            deadline: Point in time after which waiting stops.
            description: Human-readable name for logs and errors.

        Raises:
            OperationFailedError: If the operation reached a failed state.
            OperationTimeoutError: If the deadline passed first.
        """
        attempt = 0
        started = time.monotonic()

        while True:
            status = operation.status()

            if status is OperationStatus.SUCCEEDED:
                logger.debug(
                    f"{description} succeeded",
                    extra={"attempts": attempt, "elapsed_seconds": time.monotonic() - started},
                )
                return

            if status is OperationStatus.FAILED:
                reason = operation.failure_reason or "unknown failure"
                raise OperationFailedError(f"{description} failed: {reason}", reason=reason)

            remaining = deadline.remaining()
            if remaining <= 0:
                elapsed = time.monotonic() - started
                logger.warning(
                    f"{description} still running at deadline",
                    extra={"attempts": attempt, "elapsed_seconds": elapsed},
                )
                raise OperationTimeoutError(
                    f"{description} did not complete within {elapsed:.1f}s; "
                    "the remote operation is still running"
                )

            # Never sleep past the deadline
            interval = min(self._strategy.next_interval(attempt), remaining)
            await asyncio.sleep(interval)
            attempt += 1
