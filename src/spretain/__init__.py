"""spretain - Retention label and record maintenance for SharePoint Online."""

__version__ = "0.1.0"

from spretain.throttle import (
    RetryPolicy,
    RetryAttempt,
    RemoteCallError,
    RetryExhaustedError,
    FailureKind,
    Pacer,
    PacingConfig,
)
from spretain.scanner import (
    TraversalController,
    Counters,
    RunSummary,
    PartialMutationError,
    read_site_list,
)
from spretain.labeler import LabelResetProcessor, RecordUnlockProcessor
from spretain.storage import RunLog, RunAction
from spretain.auth import (
    SharePointClient,
    Config,
    RunSettings,
    ConfigurationError,
)

__all__ = [
    # Retry and pacing
    "RetryPolicy",
    "RetryAttempt",
    "RemoteCallError",
    "RetryExhaustedError",
    "FailureKind",
    "Pacer",
    "PacingConfig",
    # Traversal
    "TraversalController",
    "Counters",
    "RunSummary",
    "PartialMutationError",
    "read_site_list",
    # Actions
    "LabelResetProcessor",
    "RecordUnlockProcessor",
    # Run log
    "RunLog",
    "RunAction",
    # Auth & Config
    "SharePointClient",
    "Config",
    "RunSettings",
    "ConfigurationError",
]
