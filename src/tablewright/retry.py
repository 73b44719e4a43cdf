"""Retry executor for table store operations, built on tenacity.

This module provides:
- run_with_retries: run an async operation until it succeeds
- Exponential backoff with jitter between attempts
- Health and alert signalling on every failed attempt
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_never,
    wait_exponential_jitter,
)

from tablewright.health import Service
from tablewright.observability import log_retry_attempt

if TYPE_CHECKING:
    from tablewright.alerts import Alert, Monitoring
    from tablewright.config import RetryConfig
    from tablewright.health import HealthSink

R = TypeVar("R")

Sleep = Callable[[float], Awaitable[None]]


async def run_with_retries(
    operation: Callable[[], Awaitable[R]],
    *,
    config: RetryConfig,
    health: HealthSink,
    monitoring: Monitoring,
    alert: Callable[[Exception], Alert],
    component: str = Service.TABLE_STORE,
    operation_name: str = "table_operation",
    sleep: Sleep = asyncio.sleep,
) -> R:
    """Run an operation, retrying every failure with backoff.

    Each failed attempt marks ``component`` unhealthy, emits one alert built
    by ``alert`` from the exception, and waits before the next attempt.
    Retries are unbounded: persistent failure is reported through the health
    sink and repeated alerts, never to the caller. Waiting suspends only this
    coroutine. Cancellation is not retried and abandons the loop.

    Args:
        operation: Zero-argument coroutine function to run.
        config: Retry policy (backoff settings).
        health: Health sink.
        monitoring: Alert sink.
        alert: Builds the alert for a failed attempt.
        component: Component name reported to the health sink.
        operation_name: Name for logging purposes.
        sleep: Coroutine used to wait between attempts.

    Returns:
        The operation's result.

    Example:
        >>> fields = await run_with_retries(
        ...     lambda: store.fetch_current_schema(table),
        ...     config=RetryConfig(),
        ...     health=AppHealth(),
        ...     monitoring=LoggingMonitoring(),
        ...     alert=lambda exc: FailedToCreateTable(table=str(table), cause=str(exc)),
        ... )
    """
    marked_unhealthy = False

    def _log_before_sleep(retry_state: RetryCallState) -> None:
        outcome = retry_state.outcome
        error = outcome.exception() if outcome is not None else None
        wait = retry_state.next_action.sleep if retry_state.next_action is not None else 0.0
        log_retry_attempt(
            operation=operation_name,
            attempt=retry_state.attempt_number,
            wait_seconds=wait,
            error=str(error),
        )

    async for attempt_state in AsyncRetrying(
        retry=retry_if_exception_type(Exception),
        stop=stop_never,
        wait=wait_exponential_jitter(
            initial=config.initial_wait_seconds,
            max=config.max_wait_seconds,
            exp_base=config.backoff_multiplier,
            jitter=config.jitter_seconds,
        ),
        before_sleep=_log_before_sleep,
        sleep=sleep,
        reraise=True,
    ):
        with attempt_state:
            try:
                result = await operation()
            except Exception as exc:
                marked_unhealthy = True
                health.set_unhealthy(component)
                monitoring.alert(alert(exc))
                raise
            if marked_unhealthy:
                health.set_healthy(component)
            return result

    # Should not reach here, but satisfy type checker
    raise RuntimeError("Unexpected retry state")  # pragma: no cover
