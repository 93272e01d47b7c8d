"""Run counters and summary."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
import threading


class PartialMutationError(Exception):
    """
    A label was reset but reapplying it failed.

    The list is left without a label. A later run will not detect it
    (no label present means nothing to do), so this must be reported
    separately from ordinary failures.
    """

    def __init__(self, list_title: str, label_name: str, cause: Exception):
        super().__init__(
            f"Label '{label_name}' was reset on '{list_title}' but could not be reapplied: {cause}"
        )
        self.list_title = list_title
        self.label_name = label_name
        self.cause = cause


COUNTER_NAMES = (
    "sites_total",
    "sites_processed",
    "sites_failed",
    "lists_processed",
    "lists_failed",
    "items_processed",
    "items_failed",
    "qualifying",
    "mutated",
    "partial_mutations",
)


class Counters:
    """
    Process-wide progress tallies.

    Counters only ever go up. Increments take a lock so the same object can
    be shared by concurrent workers.

    Usage:
        counters = Counters()
        counters.increment("lists_processed")
        counters.lists_processed  # 1
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._values = {name: 0 for name in COUNTER_NAMES}

    def increment(self, name: str, amount: int = 1) -> int:
        """Add amount to a counter and return the new value."""
        if name not in self._values:
            raise KeyError(f"Unknown counter: {name}")
        if amount < 0:
            raise ValueError("Counters cannot be decremented")

        with self._lock:
            self._values[name] += amount
            return self._values[name]

    def snapshot(self) -> dict[str, int]:
        with self._lock:
            return dict(self._values)

    def __getattr__(self, name: str) -> int:
        values = self.__dict__.get("_values")
        if values is not None and name in values:
            return values[name]
        raise AttributeError(name)


@dataclass(frozen=True)
class RunSummary:
    """Final tallies of a run."""

    action: str
    report_only: bool
    sites_total: int = 0
    sites_attempted: int = 0
    sites_processed: int = 0
    sites_failed: int = 0
    lists_processed: int = 0
    lists_failed: int = 0
    items_processed: int = 0
    items_failed: int = 0
    qualifying: int = 0
    mutated: int = 0
    partial_mutations: int = 0
    cancelled: bool = False

    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None

    @classmethod
    def from_counters(
        cls,
        counters: Counters,
        action: str,
        report_only: bool,
        sites_attempted: int,
        started_at: datetime,
        cancelled: bool = False,
    ) -> "RunSummary":
        return cls(
            action=action,
            report_only=report_only,
            sites_attempted=sites_attempted,
            cancelled=cancelled,
            started_at=started_at,
            completed_at=datetime.now(),
            **counters.snapshot(),
        )

    @property
    def has_failures(self) -> bool:
        return bool(
            self.sites_failed or self.lists_failed or self.items_failed or self.partial_mutations
        )

    @property
    def duration_seconds(self) -> float:
        if self.completed_at:
            return (self.completed_at - self.started_at).total_seconds()
        return 0.0

    def to_dict(self) -> dict:
        return {
            "action": self.action,
            "mode": "report-only" if self.report_only else "apply",
            "sites_total": self.sites_total,
            "sites_attempted": self.sites_attempted,
            "sites_processed": self.sites_processed,
            "sites_failed": self.sites_failed,
            "lists_processed": self.lists_processed,
            "lists_failed": self.lists_failed,
            "items_processed": self.items_processed,
            "items_failed": self.items_failed,
            "qualifying": self.qualifying,
            "mutated": self.mutated,
            "partial_mutations": self.partial_mutations,
            "cancelled": self.cancelled,
            "duration_seconds": round(self.duration_seconds, 1),
        }
