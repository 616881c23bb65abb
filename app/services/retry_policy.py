"""
Retry policy for SWUSH requests.

Two independent retry budgets apply to one logical call:

- transient failures (5xx, 408 timeouts, network errors) back off
  exponentially, ``base * 2 ** (attempt - 1)``, up to ``max_retries``;
- upstream rate limits (429) wait for ``Retry-After`` (bounded) up to
  ``max_rate_limit_retries``. These waits are long, so they never draw
  from the transient budget.

Budget exhaustion and other 4xx responses are terminal.
"""
import enum
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable

from tenacity import AsyncRetrying, RetryCallState

from app.services.swush_response import SwushErrorKind, SwushResponse

logger = logging.getLogger(__name__)


class RetryDecision(str, enum.Enum):
    success = "success"
    budget_exhausted = "budget_exhausted"
    rate_limited = "rate_limited"
    terminal = "terminal"
    transient = "transient"


@dataclass
class _CallState:
    """Per-call counters; one instance per retrying() invocation."""

    transient_retries: int = 0
    rate_limit_retries: int = 0
    last_decision: RetryDecision | None = None
    last_response: SwushResponse | None = None


@dataclass(frozen=True)
class RetryPolicy:
    max_retries: int = 3
    base_delay_seconds: float = 1.0
    max_rate_limit_retries: int = 2
    default_rate_limit_wait_seconds: float = 30.0
    max_rate_limit_wait_seconds: float = 120.0
    retryable_client_statuses: frozenset[int] = field(default_factory=lambda: frozenset({408}))

    def classify(self, response: SwushResponse) -> RetryDecision:
        if response.ok:
            return RetryDecision.success
        if response.error_kind == SwushErrorKind.budget_exhausted:
            return RetryDecision.budget_exhausted
        if response.status == 429:
            return RetryDecision.rate_limited
        if 400 <= response.status < 500 and response.status not in self.retryable_client_statuses:
            return RetryDecision.terminal
        if response.status >= 400 or response.error is not None or response.data is None:
            return RetryDecision.transient
        return RetryDecision.success

    def backoff(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (1-based)."""
        return self.base_delay_seconds * (2 ** (attempt - 1))

    def rate_limit_wait(self, response: SwushResponse) -> float:
        wait = response.retry_after_seconds
        if wait is None or wait <= 0:
            wait = self.default_rate_limit_wait_seconds
        return min(wait, self.max_rate_limit_wait_seconds)

    def retrying(
        self,
        sleep: Callable[[float], Awaitable[Any]],
        label: str = "",
    ) -> AsyncRetrying:
        """
        Build a tenacity controller for one logical call.

        Calling the returned object with the request coroutine function
        returns the first successful response or, once a budget is spent,
        the last response observed.
        """
        state = _CallState()

        def should_retry(retry_state: RetryCallState) -> bool:
            if retry_state.outcome is None or retry_state.outcome.failed:
                return False
            response: SwushResponse = retry_state.outcome.result()
            decision = self.classify(response)
            state.last_decision = decision
            state.last_response = response

            if decision == RetryDecision.rate_limited:
                state.rate_limit_retries += 1
                return True
            if decision == RetryDecision.transient:
                state.transient_retries += 1
                return True
            if decision == RetryDecision.budget_exhausted:
                logger.error(f"SWUSH budget exhausted, not retrying {label}")
            elif decision == RetryDecision.terminal:
                logger.warning(
                    f"SWUSH non-retryable error {response.status} on attempt "
                    f"{retry_state.attempt_number} for {label}"
                )
            return False

        def should_stop(retry_state: RetryCallState) -> bool:
            if state.last_decision == RetryDecision.rate_limited:
                exhausted = state.rate_limit_retries > self.max_rate_limit_retries
                if exhausted:
                    logger.error(
                        f"SWUSH rate limit retries exhausted for {label} "
                        f"({self.max_rate_limit_retries} retries)"
                    )
                return exhausted
            exhausted = state.transient_retries > self.max_retries
            if exhausted:
                response = state.last_response
                logger.error(
                    f"SWUSH all {self.max_retries + 1} attempts failed for {label}: "
                    f"status={response.status if response else None} "
                    f"error={response.error if response else None} "
                    f"rate_limit_retries={state.rate_limit_retries}"
                )
            return exhausted

        def wait_for(retry_state: RetryCallState) -> float:
            if state.last_decision == RetryDecision.rate_limited:
                return self.rate_limit_wait(state.last_response)
            return self.backoff(state.transient_retries)

        def log_before_sleep(retry_state: RetryCallState) -> None:
            response = state.last_response
            delay = retry_state.next_action.sleep if retry_state.next_action else None
            if state.last_decision == RetryDecision.rate_limited:
                logger.warning(
                    f"SWUSH rate limited (429) on {label}, waiting {delay}s before retry "
                    f"{state.rate_limit_retries}/{self.max_rate_limit_retries}"
                )
            else:
                logger.warning(
                    f"SWUSH attempt {state.transient_retries} failed for {label} "
                    f"(status={response.status}, error={response.error}), retrying in {delay}s"
                )

        return AsyncRetrying(
            sleep=sleep,
            retry=should_retry,
            stop=should_stop,
            wait=wait_for,
            before_sleep=log_before_sleep,
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )
