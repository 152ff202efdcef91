"""
SafetyAI - Retry Executor

Runs an async operation with a bounded, exponentially backed-off retry
loop. Failures are classified into an explicit ErrorKind and the loop
branches on that kind; only transient failures are retried.

Semantics:
- The operation runs at most `max_attempts` times in total. When the
  budget is spent the last failure propagates; there is no extra call.
- The delay before retry n (0-based) is `base_delay * multiplier ** n`.
- Delays are awaited, never slept on a thread.
- An optional asyncio.Event cancels the loop before an attempt or during
  a backoff delay with OperationCancelledError.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, List, Optional, TypeVar

import httpx

from safetyai.core.exceptions import (
    OperationCancelledError,
    PermanentTransportError,
    TransientTransportError,
    TransportError,
)

T = TypeVar("T")

TRANSIENT_STATUS_CODES = frozenset({429, 502, 503})
TRANSIENT_MESSAGE_MARKERS = ("timeout", "timed out", "429", "502", "503")


# =============================================================================
# Error Classification
# =============================================================================

class ErrorKind(str, Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"


def classify_error(error: BaseException) -> ErrorKind:
    """
    Decide whether a failure is worth retrying.

    Transient: timeouts, connection failures, HTTP 429/502/503, or an
    error message mentioning one of those. Everything else is permanent.
    """
    if isinstance(error, TransientTransportError):
        return ErrorKind.TRANSIENT
    if isinstance(error, PermanentTransportError):
        return ErrorKind.PERMANENT
    if isinstance(error, TransportError) and error.status is not None:
        if error.status in TRANSIENT_STATUS_CODES:
            return ErrorKind.TRANSIENT
        return ErrorKind.PERMANENT
    if isinstance(error, httpx.HTTPStatusError):
        if error.response.status_code in TRANSIENT_STATUS_CODES:
            return ErrorKind.TRANSIENT
        return ErrorKind.PERMANENT
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorKind.TRANSIENT
    if isinstance(error, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorKind.TRANSIENT

    message = str(error).lower()
    if any(marker in message for marker in TRANSIENT_MESSAGE_MARKERS):
        return ErrorKind.TRANSIENT
    return ErrorKind.PERMANENT


# =============================================================================
# Policy and State
# =============================================================================

class CallState(str, Enum):
    """Lifecycle of one remote call."""
    BUILT = "built"
    DISPATCHED = "dispatched"
    RETRY_SCHEDULED = "retry_scheduled"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    base_delay: float = 2.0
    backoff_multiplier: float = 2.0

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")

    def delay_for(self, attempt_index: int) -> float:
        """Backoff delay after the failed attempt with 0-based index."""
        return self.base_delay * (self.backoff_multiplier ** attempt_index)


@dataclass
class RetryState:
    """Record of one execute() call: attempts, delays and transitions."""
    policy: RetryPolicy
    attempts: int = 0
    delays: List[float] = field(default_factory=list)
    transitions: List[CallState] = field(default_factory=lambda: [CallState.BUILT])
    last_error: Optional[BaseException] = None
    last_error_kind: Optional[ErrorKind] = None

    @property
    def state(self) -> CallState:
        return self.transitions[-1]

    @property
    def retries(self) -> int:
        return self.transitions.count(CallState.RETRY_SCHEDULED)

    def advance(self, state: CallState) -> None:
        self.transitions.append(state)


# =============================================================================
# Executor
# =============================================================================

class RetryExecutor:
    """
    Retry loop for remote generation calls.

    Usage:
        executor = RetryExecutor(RetryPolicy(max_attempts=3, base_delay=2.0))
        response = await executor.execute(lambda: client.post(...), cancel=event)
    """

    def __init__(
        self,
        policy: Optional[RetryPolicy] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.policy = policy or RetryPolicy()
        self._sleep = sleep
        self._logger = logger or logging.getLogger(__name__)

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        cancel: Optional[asyncio.Event] = None,
        classify: Callable[[BaseException], ErrorKind] = classify_error,
        state: Optional[RetryState] = None,
    ) -> T:
        """
        Run `operation` until it succeeds, fails permanently or the
        attempt budget is spent.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt
            cancel: Optional event; when set, no further attempts are made
            classify: Maps a failure to an ErrorKind
            state: Optional RetryState to record into (for callers that
                   want to inspect attempts and transitions)

        Raises:
            OperationCancelledError: If `cancel` is set
            The operation's last exception otherwise
        """
        state = state or RetryState(policy=self.policy)

        for attempt_index in range(self.policy.max_attempts):
            self._raise_if_cancelled(cancel, state)

            state.attempts += 1
            state.advance(CallState.DISPATCHED)

            try:
                result = await operation()
            except OperationCancelledError:
                state.advance(CallState.FAILED)
                raise
            except Exception as e:
                kind = classify(e)
                state.last_error = e
                state.last_error_kind = kind

                is_last = attempt_index + 1 >= self.policy.max_attempts
                if kind is not ErrorKind.TRANSIENT or is_last:
                    state.advance(CallState.FAILED)
                    self._logger.error(
                        "Remote call failed: attempt=%d/%d, kind=%s, error=%s",
                        state.attempts,
                        self.policy.max_attempts,
                        kind.value,
                        e,
                    )
                    raise

                delay = self.policy.delay_for(attempt_index)
                state.delays.append(delay)
                state.advance(CallState.RETRY_SCHEDULED)
                self._logger.warning(
                    "Transient failure, retrying: attempt=%d/%d, delay=%.2fs, error=%s",
                    state.attempts,
                    self.policy.max_attempts,
                    delay,
                    e,
                )
                await self._backoff(delay, cancel, state)
                continue

            state.advance(CallState.SUCCEEDED)
            if state.attempts > 1:
                self._logger.info("Remote call succeeded after %d attempts", state.attempts)
            return result

        # Unreachable: the final attempt either returns or raises.
        raise RuntimeError("retry loop exited without a result")

    async def _backoff(
        self,
        delay: float,
        cancel: Optional[asyncio.Event],
        state: RetryState,
    ) -> None:
        """Await the backoff delay, waking early if cancellation is signalled."""
        if cancel is None:
            await self._sleep(delay)
            return

        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
            await asyncio.gather(sleeper, waiter, return_exceptions=True)

        self._raise_if_cancelled(cancel, state)

    def _raise_if_cancelled(self, cancel: Optional[asyncio.Event], state: RetryState) -> None:
        if cancel is not None and cancel.is_set():
            state.advance(CallState.FAILED)
            self._logger.info("Remote call cancelled after %d attempts", state.attempts)
            raise OperationCancelledError(
                "Operation cancelled by caller",
                details={"attempts": state.attempts},
            )
