"""
Bounded retry around raw provider calls.

Only the provider call itself is retried, never the cache or rate-limit
steps around it. Each failed attempt is logged; once attempts run out the
last error is surfaced as a ProviderError.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Tuple, TypeVar

import openai
from tenacity import (
    RetryCallState,
    Retrying,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)
from tenacity.wait import wait_base

from .errors import ProviderError

logger = logging.getLogger(__name__)

R = TypeVar("R")

# Same status codes the OpenAI SDK treats as transient
_RETRYABLE_STATUS_CODES = {408, 409, 429}


def is_retryable(exc: BaseException) -> bool:
    """Classify a provider exception as transient or permanent.

    Connection errors, timeouts, 408/409/429 and 5xx responses are
    transient. Other 4xx responses (bad request, auth, not found) are
    permanent. Errors raised outside the SDK are local bugs, not provider
    failures, and are never retried.
    """
    if isinstance(exc, openai.APIConnectionError):
        return True
    if isinstance(exc, openai.APIStatusError):
        return exc.status_code in _RETRYABLE_STATUS_CODES or exc.status_code >= 500
    return False


@dataclass
class RetryPolicy:
    """Retry configuration for provider calls.

    Attributes:
        max_attempts: Total attempts including the first one
        wait: tenacity wait strategy between attempts
    """
    max_attempts: int = 3
    wait: wait_base = field(default_factory=lambda: wait_exponential_jitter(multiplier=0.5, max=8.0))

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")

    def call(
        self,
        fn: Callable[[], R],
        operation: str = "provider call",
        log_extra: Optional[Dict[str, Any]] = None
    ) -> Tuple[R, int]:
        """Run ``fn`` with retries.

        Args:
            fn: Zero-argument callable performing the raw provider request
            operation: Label used in log messages
            log_extra: Extra fields attached to every log record

        Returns:
            Tuple of (result, number of retries that were needed)

        Raises:
            ProviderError: When every attempt failed, or the failure is permanent.
                Exceptions not raised by the OpenAI SDK propagate unchanged.
        """
        extra = dict(log_extra or {})
        attempts = 0

        def _log_attempt(retry_state: RetryCallState) -> None:
            error = retry_state.outcome.exception() if retry_state.outcome else None
            logger.warning(
                "%s failed on attempt %d/%d: %s",
                operation, retry_state.attempt_number, self.max_attempts, error,
                extra={**extra, "attempt": retry_state.attempt_number}
            )

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self.wait,
            retry=retry_if_exception(is_retryable),
            before_sleep=_log_attempt,
            reraise=True
        )

        try:
            for attempt in retrying:
                with attempt:
                    attempts += 1
                    result = fn()
        except openai.OpenAIError as e:
            retryable = is_retryable(e)
            logger.error(
                "%s failed after %d attempt(s): %s",
                operation, attempts, e,
                extra={**extra, "attempt": attempts}
            )
            raise ProviderError(
                f"{operation} failed after {attempts} attempt(s): {e}",
                retryable=retryable,
                cause=e,
                attempts=attempts
            ) from e

        return result, attempts - 1
