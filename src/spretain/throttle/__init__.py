"""Retry and pacing for throttled remote calls."""

from .retry import (
    RetryPolicy,
    RetryAttempt,
    RemoteOperation,
    RemoteCallError,
    RetryExhaustedError,
    FailureKind,
    classify_failure,
    backoff_delay_ms,
    THROTTLE_STATUS_CODES,
)
from .pacing import Pacer, PacingConfig

__all__ = [
    # Retry
    "RetryPolicy",
    "RetryAttempt",
    "RemoteOperation",
    "RemoteCallError",
    "RetryExhaustedError",
    "FailureKind",
    "classify_failure",
    "backoff_delay_ms",
    "THROTTLE_STATUS_CODES",
    # Pacing
    "Pacer",
    "PacingConfig",
]
