# Copyright Amazon.com, Inc. or its affiliates. All Rights Reserved.
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.

"""Exponential backoff with jitter for transient failures, built on tenacity."""

import asyncio
import random
from .errors import CancellationError, RetriesExhausted, is_transient_error
from .tuning import Tuning
from dataclasses import dataclass
from loguru import logger
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    RetryError,
    retry_if_exception,
    stop_after_attempt,
)
from typing import Any, Awaitable, Callable, Optional


@dataclass(frozen=True)
class RetryPolicy:
    """Backoff parameters, in milliseconds.

    Attributes:
        max_retries: Attempt budget for one call; at least one attempt is always made
        initial_delay_ms: Delay before the second attempt
        max_delay_ms: Cap on any single delay before jitter
        backoff_multiplier: Growth factor per attempt
        jitter_factor: Each delay is scaled by a random factor in [1 - j, 1 + j]
    """

    max_retries: int = 3
    initial_delay_ms: float = 1000
    max_delay_ms: float = 30000
    backoff_multiplier: float = 2
    jitter_factor: float = 0.1

    @classmethod
    def from_tuning(cls, tuning: Tuning) -> 'RetryPolicy':
        return cls(
            max_retries=tuning.retry.max_retries,
            initial_delay_ms=tuning.timeouts.retry_initial_ms,
            max_delay_ms=tuning.timeouts.retry_max_ms,
            backoff_multiplier=tuning.retry.backoff_multiplier,
            jitter_factor=tuning.retry.jitter_factor,
        )

    @property
    def attempt_budget(self) -> int:
        return max(1, self.max_retries)


def calculate_delay(attempt: int, policy: RetryPolicy, rng: Optional[random.Random] = None) -> float:
    """Return the delay in milliseconds after a failed attempt.

    Args:
        attempt: Zero-based index of the attempt that just failed
        policy: Retry policy
        rng: Random source for jitter (module-level random by default)

    Returns:
        min(initial * multiplier ** attempt, max) scaled by 1 +/- jitter_factor
    """
    base = min(policy.initial_delay_ms * policy.backoff_multiplier**attempt, policy.max_delay_ms)
    jitter = (rng or random).uniform(-policy.jitter_factor, policy.jitter_factor)
    return max(0.0, base * (1 + jitter))


async def _backoff(
    delay_ms: float,
    cancel_event: Optional[asyncio.Event],
    sleep: Optional[Callable[[float], Awaitable[Any]]],
) -> None:
    if sleep is not None:
        await sleep(delay_ms / 1000)
    elif cancel_event is not None:
        try:
            await asyncio.wait_for(cancel_event.wait(), timeout=delay_ms / 1000)
        except asyncio.TimeoutError:
            pass
    else:
        await asyncio.sleep(delay_ms / 1000)

    if cancel_event is not None and cancel_event.is_set():
        raise CancellationError('Cancelled during retry backoff')


async def retry_async(
    fn: Callable[[], Awaitable[Any]],
    policy: RetryPolicy,
    is_retryable: Callable[[BaseException], bool] = is_transient_error,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
    cancel_event: Optional[asyncio.Event] = None,
    sleep: Optional[Callable[[float], Awaitable[Any]]] = None,
    rng: Optional[random.Random] = None,
) -> Any:
    """Call fn until it succeeds, fails permanently, or the attempt budget runs out.

    Args:
        fn: Coroutine function to call
        policy: Retry policy
        is_retryable: Predicate for transient errors; other errors propagate at once
        on_retry: Called with (error, next attempt number, delay ms) before each backoff
        cancel_event: When set, no further attempts are scheduled
        sleep: Replacement for asyncio.sleep (seconds), mainly for tests
        rng: Random source for jitter

    Returns:
        Result of fn

    Raises:
        RetriesExhausted: If every attempt failed transiently
        CancellationError: If cancel_event is set before or during backoff
    """
    budget = policy.attempt_budget

    def wait(retry_state: RetryCallState) -> float:
        return calculate_delay(retry_state.attempt_number - 1, policy, rng) / 1000

    async def backoff(seconds: float) -> None:
        await _backoff(seconds * 1000, cancel_event, sleep)

    def before_sleep(retry_state: RetryCallState) -> None:
        error = retry_state.outcome.exception()
        next_attempt = retry_state.attempt_number + 1
        delay_ms = retry_state.next_action.sleep * 1000
        logger.debug(f'Transient failure ({error}); retry {next_attempt}/{budget} in {delay_ms:.0f}ms')
        if on_retry is not None:
            on_retry(error, next_attempt, delay_ms)

    retrying = AsyncRetrying(
        stop=stop_after_attempt(budget),
        wait=wait,
        retry=retry_if_exception(is_retryable),
        sleep=backoff,
        before_sleep=before_sleep,
    )

    try:
        async for attempt in retrying:
            if cancel_event is not None and cancel_event.is_set():
                raise CancellationError('Cancelled before attempt')
            with attempt:
                return await fn()
    except RetryError as e:
        raise RetriesExhausted(budget, e.last_attempt.exception()) from e
