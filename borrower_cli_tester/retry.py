"""Bounded retry with a fixed backoff between attempts."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeAlias, TypeVar

from pydantic import Field

from borrower_cli_tester.errors import HarnessError, RetryExhaustedError
from borrower_cli_tester.models.base import Model
from borrower_cli_tester.run_log import StepLogger

log = logging.getLogger(__name__)

Sleep: TypeAlias = Callable[[float], Awaitable[None]]

T = TypeVar("T")


class RetryPolicy(Model):
    """Attempt budget and fixed delay for a retried step."""

    max_attempts: int = Field(..., ge=1, description="Total attempts allowed")
    backoff: float = Field(..., ge=0, description="Seconds to wait between attempts")


async def run_with_retry(
    step: Callable[[], Awaitable[T]],
    policy: RetryPolicy,
    *,
    action: str,
    log: StepLogger = log,
    sleep: Sleep = asyncio.sleep,
) -> T:
    """Run a step until it succeeds or the attempt budget is spent.

    Only HarnessError failures are retried. The delay between attempts is
    always policy.backoff; no delay follows a success or the last attempt.

    Args:
        step: Coroutine factory called once per attempt
        policy: Attempt count and backoff
        action: Human readable name used in log messages (e.g. "loan creation")
        log: Logger receiving attempt messages
        sleep: Suspension function, replaceable in tests

    Returns:
        The value of the first successful attempt

    Raises:
        RetryExhaustedError: If all attempts failed

    """
    last_error: HarnessError | None = None

    for attempt in range(1, policy.max_attempts + 1):
        log.info("Attempting %s (attempt %d/%d)", action, attempt, policy.max_attempts)
        try:
            result = await step()
        except HarnessError as e:
            last_error = e
            log.warning("Error in %s attempt %d: %s", action, attempt, e)
        else:
            log.info("%s successful", action.capitalize())
            return result

        if attempt < policy.max_attempts:
            log.info(
                "Waiting %g seconds before retrying %s...", policy.backoff, action
            )
            await sleep(policy.backoff)

    assert last_error is not None
    log.error("All %s attempts failed", action)
    raise RetryExhaustedError(policy.max_attempts, last_error) from last_error
