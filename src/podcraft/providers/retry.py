"""Exponential backoff for transient provider failures.

Rate limits, timeouts and 5xx responses are retried with capped
exponential backoff plus jitter. Everything else fails immediately.
Once attempts are exhausted the last error is re-raised, reclassified
as terminal so nothing above retries it again.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, TypeVar

from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

from podcraft.observability.logging import get_logger
from podcraft.providers.base import (
    ProviderError,
    StatusClass,
    classify_provider_exception,
    is_transient_error,
)

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

log = get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters for provider calls.

    Attributes:
        max_attempts: Total attempts including the first one.
        initial_delay: Delay before the first retry, in seconds.
        max_delay: Upper bound on any single delay, in seconds.
        exp_base: Growth factor between consecutive delays.
        jitter: Maximum random seconds added to each delay.
    """

    max_attempts: int = 3
    initial_delay: float = 2.0
    max_delay: float = 60.0
    exp_base: float = 2.0
    jitter: float = 0.5


def _log_retry(provider: str) -> Callable[[RetryCallState], None]:
    def _before_sleep(state: RetryCallState) -> None:
        error = state.outcome.exception() if state.outcome else None
        log.warning(
            "provider_retry",
            provider=provider,
            attempt=state.attempt_number,
            delay_seconds=round(state.next_action.sleep, 2) if state.next_action else None,
            error=str(error),
        )

    return _before_sleep


async def call_with_retry(
    fn: Callable[[], Awaitable[T]],
    *,
    provider: str,
    policy: RetryPolicy | None = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Call ``fn`` retrying transient failures with exponential backoff.

    Args:
        fn: Zero-argument coroutine factory performing one provider call.
        provider: Provider identifier used for error classification.
        policy: Backoff parameters. Defaults to ``RetryPolicy()``.
        sleep: Awaitable sleep function (injectable for tests).

    Returns:
        Whatever ``fn`` returns on its first successful attempt.

    Raises:
        ProviderError: Classified failure. Transient failures that exhausted
            the attempt budget are re-raised with a terminal status class.
    """
    policy = policy or RetryPolicy()
    retrying = AsyncRetrying(
        retry=retry_if_exception(is_transient_error),
        stop=stop_after_attempt(max(1, policy.max_attempts)),
        wait=wait_exponential_jitter(
            initial=policy.initial_delay,
            max=policy.max_delay,
            exp_base=policy.exp_base,
            jitter=policy.jitter,
        ),
        sleep=sleep,
        before_sleep=_log_retry(provider),
        reraise=True,
    )

    try:
        async for attempt in retrying:
            with attempt:
                return await fn()
    except Exception as e:
        error = classify_provider_exception(provider, e)
        if error.is_transient:
            log.error("provider_retries_exhausted", provider=provider, error=str(e))
            raise ProviderError(
                provider,
                f"{error.message} (gave up after {policy.max_attempts} attempts)",
                status_class=StatusClass.TERMINAL,
                status_code=error.status_code,
            ) from e
        if error is e:
            raise
        raise error from e

    raise AssertionError("retry loop exited without an outcome")
