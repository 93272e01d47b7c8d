"""Throttling-aware retry for remote SharePoint calls.

Every remote call the tool makes (connecting to a site, enumerating lists,
reading a label, unlocking an item) is wrapped in a RemoteOperation - a
zero-argument callable - and handed to RetryPolicy.execute(). The policy
knows nothing about what the call does. It only looks at the structured
error the call raises:

- Throttled (HTTP 429 / 503 by default): wait and retry. The wait is the
  server's Retry-After value when present, otherwise exponential backoff
  of base_delay_ms * 2^(attempt-1).
- Anything else: re-raised immediately, no wait, no further attempts.

When the attempts run out on a throttled call, RetryExhaustedError is
raised and the caller treats the enclosing unit of work as failed.

Usage:
    policy = RetryPolicy(max_attempts=5, base_delay_ms=5000)
    session = policy.execute(lambda: client.connect(url), f"connect to {url}")
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional, TypeVar
import logging
import time

logger = logging.getLogger(__name__)

T = TypeVar("T")

# A unit of remote work that either returns a value or raises.
RemoteOperation = Callable[[], T]

THROTTLE_STATUS_CODES = frozenset({429, 503})


class RemoteCallError(Exception):
    """A remote call failed.

    Raised by the remote adapters with the HTTP status and, when the
    service sent one, the Retry-After hint in seconds.
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.status_code = status_code
        self.retry_after = retry_after


class RetryExhaustedError(Exception):
    """A throttled operation was still throttled on its last attempt."""

    def __init__(self, description: str, attempts: int, last_error: Exception):
        super().__init__(f"Max retries exceeded for {description} after {attempts} attempts")
        self.description = description
        self.attempts = attempts
        self.last_error = last_error


class FailureKind(Enum):
    """How a failed remote call is treated."""

    THROTTLED = "throttled"
    NON_RETRYABLE = "non_retryable"


@dataclass(frozen=True)
class RetryAttempt:
    """One failed attempt inside a single execute() call."""

    attempt: int
    kind: FailureKind
    delay_ms: float
    status_code: Optional[int] = None


def classify_failure(
    error: BaseException,
    throttle_codes: frozenset = THROTTLE_STATUS_CODES,
) -> FailureKind:
    """Classify a failure from its structured status code."""
    if isinstance(error, RemoteCallError) and error.status_code in throttle_codes:
        return FailureKind.THROTTLED
    return FailureKind.NON_RETRYABLE


def backoff_delay_ms(base_delay_ms: float, attempt: int) -> float:
    """Exponential backoff for a 1-based attempt index."""
    return base_delay_ms * (2 ** (attempt - 1))


class RetryPolicy:
    """
    Execute remote operations with retry on throttling.

    The policy is configured once at start-up and shared by every level of
    the traversal. Per-call overrides of max_attempts and base_delay_ms are
    allowed for operations that need a different budget.

    Usage:
        policy = RetryPolicy(max_attempts=3, base_delay_ms=5000)

        lists = policy.execute(session.list_lists, "enumerate lists")

    Testing:
        Inject a fake sleep to record waits instead of blocking:

        waits = []
        policy = RetryPolicy(3, 5000, sleep=waits.append)
    """

    def __init__(
        self,
        max_attempts: int = 5,
        base_delay_ms: float = 5000,
        sleep: Callable[[float], None] = time.sleep,
        throttle_codes: frozenset = THROTTLE_STATUS_CODES,
        on_retry: Optional[Callable[[RetryAttempt], None]] = None,
    ):
        """
        Initialize the policy.

        Args:
            max_attempts: Total attempts per operation (first call included)
            base_delay_ms: Backoff base when no Retry-After is supplied
            sleep: Blocking sleep taking seconds
            throttle_codes: Status codes treated as throttling
            on_retry: Callback invoked with each RetryAttempt before waiting

        Raises:
            ValueError: If max_attempts is less than 1
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        self.max_attempts = max_attempts
        self.base_delay_ms = base_delay_ms
        self.throttle_codes = throttle_codes
        self._sleep = sleep
        self._on_retry = on_retry

    def compute_delay_ms(self, error: BaseException, attempt: int, base_delay_ms: float) -> float:
        """Delay before the next attempt after a throttled failure."""
        retry_after = getattr(error, "retry_after", None)
        if retry_after is not None:
            return float(retry_after) * 1000
        return backoff_delay_ms(base_delay_ms, attempt)

    def execute(
        self,
        operation: RemoteOperation,
        description: str,
        max_attempts: Optional[int] = None,
        base_delay_ms: Optional[float] = None,
    ) -> T:
        """
        Run an operation, retrying while it is throttled.

        Args:
            operation: Zero-argument callable performing one remote call
            description: Human-readable name used in log messages
            max_attempts: Override the configured attempt budget
            base_delay_ms: Override the configured backoff base

        Returns:
            Whatever the operation returns

        Raises:
            RetryExhaustedError: Still throttled after the last attempt
            Exception: Any non-throttling failure, unchanged
        """
        attempts = max_attempts if max_attempts is not None else self.max_attempts
        base = base_delay_ms if base_delay_ms is not None else self.base_delay_ms

        if attempts < 1:
            raise ValueError("max_attempts must be at least 1")

        for attempt in range(1, attempts + 1):
            try:
                return operation()
            except Exception as e:
                if classify_failure(e, self.throttle_codes) is FailureKind.NON_RETRYABLE:
                    raise

                status = getattr(e, "status_code", None)

                if attempt >= attempts:
                    logger.error(
                        f"Max retries exceeded for {description}: "
                        f"still throttled ({status}) after {attempt} attempts"
                    )
                    raise RetryExhaustedError(description, attempt, e) from e

                delay_ms = self.compute_delay_ms(e, attempt, base)
                record = RetryAttempt(
                    attempt=attempt,
                    kind=FailureKind.THROTTLED,
                    delay_ms=delay_ms,
                    status_code=status,
                )

                logger.warning(
                    f"Throttled ({status}) during {description} - "
                    f"attempt {attempt}/{attempts}, retrying in {delay_ms:.0f}ms"
                )

                if self._on_retry:
                    self._on_retry(record)

                self._sleep(delay_ms / 1000)
