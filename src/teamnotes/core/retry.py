"""RetryExecutor -- classified retries with exponential backoff.

Every store and network call made by the task assignment engine, the
notification orchestrator and the team service goes through
``RetryExecutor.execute``. Failures are normalized with ``classify_error``;
only retryable errors are retried, waiting ``base_delay * 2^(attempt-1)``
seconds (capped at ``max_delay``) between attempts.

The loop runs as a small state machine driven by tenacity:

    ATTEMPTING(n) -> SUCCEEDED
                  -> RETRYING(delay) -> ATTEMPTING(n+1)
                  -> FAILED

Transitions are logged and reported to an optional ``on_transition`` hook.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

import structlog
from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt, wait_exponential

from src.teamnotes.config import get_settings
from src.teamnotes.core.errors import TeamNotesError, classify_error
from src.teamnotes.core.monitoring import retry_attempts_total

logger = structlog.get_logger(__name__)

T = TypeVar("T")

RetryCondition = Callable[[TeamNotesError, int], bool]


class RetryPhase(str, Enum):
    """States of a single execute() call."""

    ATTEMPTING = "attempting"
    RETRYING = "retrying"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TransitionHook = Callable[[RetryPhase, int, "float | None"], None]


class RetryExecutor:
    """Runs async operations with classification and exponential backoff.

    Args:
        max_retries: Retries after the first attempt (default from settings, 3).
        base_delay: First backoff delay in seconds (default from settings).
        max_delay: Backoff ceiling in seconds (default from settings).
        sleep: Awaitable sleep used between attempts (injectable for tests).
        on_transition: Optional hook called with (phase, attempt, delay).
    """

    def __init__(
        self,
        max_retries: int | None = None,
        base_delay: float | None = None,
        max_delay: float | None = None,
        sleep: Callable[[float], Awaitable[None]] | None = None,
        on_transition: TransitionHook | None = None,
    ) -> None:
        settings = get_settings()
        self.max_retries = (
            settings.RETRY_MAX_RETRIES if max_retries is None else max_retries
        )
        self.base_delay = (
            settings.retry_base_delay if base_delay is None else base_delay
        )
        self.max_delay = settings.retry_max_delay if max_delay is None else max_delay
        self._sleep = sleep or asyncio.sleep
        self._on_transition = on_transition

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        *,
        max_retries: int | None = None,
        base_delay: float | None = None,
        retry_condition: RetryCondition | None = None,
        operation_name: str = "operation",
    ) -> T:
        """Run ``operation`` until it succeeds or a non-retryable error occurs.

        Args:
            operation: Zero-argument coroutine factory; called once per attempt.
            max_retries: Per-call override of the retry budget.
            base_delay: Per-call override of the first backoff delay (seconds).
            retry_condition: Optional ``(error, attempt) -> bool`` replacing
                the classified ``retryable`` flag.
            operation_name: Label used in logs.

        Returns:
            The operation's result.

        Raises:
            TeamNotesError: The classified error of the last failed attempt.
        """
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.base_delay if base_delay is None else base_delay

        def should_retry(retry_state: RetryCallState) -> bool:
            outcome = retry_state.outcome
            if outcome is None or not outcome.failed:
                return False
            error = outcome.exception()
            if not isinstance(error, TeamNotesError):
                return False
            if retry_condition is not None:
                return retry_condition(error, retry_state.attempt_number)
            return error.retryable

        def before_sleep(retry_state: RetryCallState) -> None:
            wait_for = retry_state.next_action.sleep if retry_state.next_action else 0.0
            error = retry_state.outcome.exception() if retry_state.outcome else None
            code = error.code.value if isinstance(error, TeamNotesError) else "UNKNOWN_ERROR"
            retry_attempts_total.labels(code=code, outcome="retried").inc()
            logger.warning(
                "retry.retrying",
                operation=operation_name,
                attempt=retry_state.attempt_number,
                max_attempts=retries + 1,
                delay_s=round(wait_for, 3),
                code=code,
            )
            self._transition(RetryPhase.RETRYING, retry_state.attempt_number, wait_for)

        retryer = AsyncRetrying(
            stop=stop_after_attempt(retries + 1),
            wait=wait_exponential(multiplier=delay, exp_base=2, min=0, max=self.max_delay),
            retry=should_retry,
            before_sleep=before_sleep,
            sleep=self._sleep,
            reraise=True,
        )

        attempt_number = 0
        try:
            async for attempt in retryer:
                with attempt:
                    attempt_number = attempt.retry_state.attempt_number
                    self._transition(RetryPhase.ATTEMPTING, attempt_number, None)
                    try:
                        result = await operation()
                    except TeamNotesError:
                        raise
                    except Exception as exc:
                        raise classify_error(exc) from exc
                    self._transition(RetryPhase.SUCCEEDED, attempt_number, None)
                    return result
        except TeamNotesError as exc:
            retry_attempts_total.labels(code=exc.code.value, outcome="gave_up").inc()
            logger.warning(
                "retry.failed",
                operation=operation_name,
                attempts=attempt_number,
                code=exc.code.value,
                retryable=exc.retryable,
                severity=exc.severity.value,
                error=exc.message,
            )
            self._transition(RetryPhase.FAILED, attempt_number, None)
            raise

        # AsyncRetrying always returns or raises inside the loop
        raise RuntimeError("retry loop exited without a result")  # pragma: no cover

    def _transition(self, phase: RetryPhase, attempt: int, delay: float | None) -> None:
        if self._on_transition is not None:
            self._on_transition(phase, attempt, delay)
