"""Append-only run log of compliance actions."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional
import getpass
import json
import logging
import os

logger = logging.getLogger(__name__)


class RunAction(Enum):
    """Types of logged run events."""

    # Run lifecycle
    RUN_START = "run_start"
    RUN_COMPLETE = "run_complete"

    # Sites and lists
    SITE_SKIPPED = "site_skipped"
    LIST_FAILED = "list_failed"

    # Retention labels
    LABEL_QUALIFIED = "label_qualified"
    LABEL_RESET = "label_reset"
    LABEL_REAPPLIED = "label_reapplied"
    PARTIAL_MUTATION = "partial_mutation"

    # Records
    RECORD_LOCKED = "record_locked"
    RECORD_UNLOCKED = "record_unlocked"
    ITEM_FAILED = "item_failed"


@dataclass
class RunEntry:
    """Single run log entry."""

    timestamp: datetime
    action: RunAction
    user: str
    details: dict
    site: Optional[str] = None
    list_title: Optional[str] = None
    item_id: Optional[int] = None
    run_id: Optional[str] = None
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp.isoformat(),
            "action": self.action.value,
            "user": self.user,
            "details": self.details,
            "site": self.site,
            "list": self.list_title,
            "item_id": self.item_id,
            "run_id": self.run_id,
            "success": self.success,
            "error": self.error,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class RunLog:
    """
    Append-only run log.

    Records every detection and mutation as JSON lines so an operator can
    see afterwards what a run changed and what it left half done.

    Writing never aborts a run: a failed write is reported as a warning and
    the entry is dropped.

    Usage:
        run_log = RunLog("/var/log/spretain/runs.jsonl", run_id="20240115-1030")
        run_log.record(RunAction.LABEL_RESET, site=url, list_title="Documents")
    """

    def __init__(self, log_path: str, run_id: Optional[str] = None):
        """
        Initialize run log.

        Args:
            log_path: Path to the log file (JSON lines format).
            run_id: Identifier stamped on every entry of this run.
        """
        self.log_path = log_path
        self.run_id = run_id
        self._user = self._get_current_user()

        try:
            os.makedirs(os.path.dirname(log_path) or ".", exist_ok=True)
        except OSError as e:
            logger.warning(f"Cannot create run log directory for {log_path}: {e}")

    def _get_current_user(self) -> str:
        """Get current OS username."""
        try:
            return getpass.getuser()
        except Exception:
            return "unknown"

    def record(
        self,
        action: RunAction,
        details: Optional[dict] = None,
        site: Optional[str] = None,
        list_title: Optional[str] = None,
        item_id: Optional[int] = None,
        success: bool = True,
        error: Optional[str] = None,
    ) -> RunEntry:
        """
        Append an event.

        Returns:
            The created RunEntry, whether or not it reached the file.
        """
        entry = RunEntry(
            timestamp=datetime.now(),
            action=action,
            user=self._user,
            details=details or {},
            site=site,
            list_title=list_title,
            item_id=item_id,
            run_id=self.run_id,
            success=success,
            error=error,
        )

        try:
            with open(self.log_path, "a", encoding="utf-8") as f:
                f.write(entry.to_json() + "\n")
        except OSError as e:
            logger.warning(f"Failed to write run log {self.log_path}: {e}")

        return entry

    def get_entries(
        self,
        since: Optional[datetime] = None,
        action: Optional[RunAction] = None,
        run_id: Optional[str] = None,
        limit: int = 1000,
    ) -> list[RunEntry]:
        """
        Read run log entries with optional filters.

        Args:
            since: Only entries after this timestamp.
            action: Filter by action type.
            run_id: Filter by run ID.
            limit: Maximum entries to return.

        Returns:
            List of matching RunEntry objects.
        """
        entries = []

        if not os.path.exists(self.log_path):
            return entries

        with open(self.log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    data = json.loads(line)
                    entry_time = datetime.fromisoformat(data["timestamp"])

                    if since and entry_time < since:
                        continue
                    if action and data["action"] != action.value:
                        continue
                    if run_id and data.get("run_id") != run_id:
                        continue

                    entries.append(
                        RunEntry(
                            timestamp=entry_time,
                            action=RunAction(data["action"]),
                            user=data["user"],
                            details=data.get("details", {}),
                            site=data.get("site"),
                            list_title=data.get("list"),
                            item_id=data.get("item_id"),
                            run_id=data.get("run_id"),
                            success=data.get("success", True),
                            error=data.get("error"),
                        )
                    )

                    if len(entries) >= limit:
                        break

                except (json.JSONDecodeError, KeyError, ValueError):
                    continue  # Skip malformed entries

        return entries

    def get_stats(self) -> dict:
        """Get aggregate statistics from the run log."""
        stats = {
            "total_entries": 0,
            "runs": 0,
            "by_action": {},
            "errors": 0,
            "first_entry": None,
            "last_entry": None,
        }

        if not os.path.exists(self.log_path):
            return stats

        run_ids = set()
        with open(self.log_path, "r", encoding="utf-8") as f:
            for line in f:
                if not line.strip():
                    continue

                try:
                    data = json.loads(line)
                    stats["total_entries"] += 1

                    action = data["action"]
                    stats["by_action"][action] = stats["by_action"].get(action, 0) + 1

                    if data.get("run_id"):
                        run_ids.add(data["run_id"])

                    if not data.get("success", True):
                        stats["errors"] += 1

                    timestamp = data["timestamp"]
                    if stats["first_entry"] is None:
                        stats["first_entry"] = timestamp
                    stats["last_entry"] = timestamp

                except (json.JSONDecodeError, KeyError):
                    continue

        stats["runs"] = len(run_ids)
        return stats


class NullRunLog:
    """Run log that discards everything. Used when no log file is requested."""

    run_id = None

    def record(self, action: RunAction, **kwargs) -> None:
        return None
