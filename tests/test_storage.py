"""Tests for the run log."""

import json
import logging
from datetime import datetime, timedelta

import pytest

from spretain.storage.audit import NullRunLog, RunAction, RunEntry, RunLog

SITE = "https://contoso.sharepoint.com/sites/hr"


class TestRunLog:
    """Test run logging."""

    @pytest.fixture
    def run_log(self, tmp_path):
        return RunLog(str(tmp_path / "runs.jsonl"), run_id="run-1")

    def test_record_creates_entry(self, run_log):
        """Should create log entry."""
        entry = run_log.record(RunAction.RUN_START, {"sites": 3})

        assert isinstance(entry, RunEntry)
        assert entry.action == RunAction.RUN_START
        assert entry.details == {"sites": 3}
        assert entry.run_id == "run-1"

    def test_record_persists_to_file(self, run_log, tmp_path):
        """Entries should be persisted to file."""
        run_log.record(RunAction.RUN_START)
        run_log.record(RunAction.RUN_COMPLETE)

        lines = (tmp_path / "runs.jsonl").read_text().strip().split("\n")
        assert len(lines) == 2

    def test_entry_format(self, run_log, tmp_path):
        """Log entries should be valid JSON."""
        run_log.record(
            RunAction.RECORD_UNLOCKED,
            site=SITE,
            list_title="Contracts",
            item_id=12,
        )

        data = json.loads((tmp_path / "runs.jsonl").read_text().strip())

        assert data["action"] == "record_unlocked"
        assert data["site"] == SITE
        assert data["list"] == "Contracts"
        assert data["item_id"] == 12
        assert data["run_id"] == "run-1"
        assert data["success"] is True
        assert "timestamp" in data
        assert "user" in data

    def test_creates_parent_directory(self, tmp_path):
        """Missing parent directories are created."""
        path = tmp_path / "nested" / "logs" / "runs.jsonl"

        RunLog(str(path)).record(RunAction.RUN_START)

        assert path.exists()

    def test_write_failure_does_not_raise(self, tmp_path, caplog):
        """An unwritable log is reported and the run carries on."""
        run_log = RunLog(str(tmp_path))

        with caplog.at_level(logging.WARNING, logger="spretain.storage.audit"):
            entry = run_log.record(RunAction.LABEL_RESET, site=SITE)

        assert entry.action == RunAction.LABEL_RESET
        assert any("Failed to write run log" in r.getMessage() for r in caplog.records)

    def test_get_entries_returns_all(self, run_log):
        """Should retrieve all entries."""
        for i in range(5):
            run_log.record(RunAction.LABEL_QUALIFIED, {"num": i})

        assert len(run_log.get_entries()) == 5

    def test_get_entries_filter_by_action(self, run_log):
        """Should filter by action type."""
        run_log.record(RunAction.RUN_START)
        run_log.record(RunAction.ITEM_FAILED, success=False, error="403")
        run_log.record(RunAction.ITEM_FAILED, success=False, error="404")

        failures = run_log.get_entries(action=RunAction.ITEM_FAILED)

        assert len(failures) == 2
        assert failures[0].error == "403"
        assert failures[0].success is False

    def test_get_entries_filter_by_run(self, tmp_path):
        """Should filter by run ID."""
        path = str(tmp_path / "runs.jsonl")
        RunLog(path, run_id="a").record(RunAction.RUN_START)
        RunLog(path, run_id="b").record(RunAction.RUN_START)

        entries = RunLog(path).get_entries(run_id="b")

        assert [e.run_id for e in entries] == ["b"]

    def test_get_entries_filter_by_time(self, run_log):
        """Should filter by timestamp."""
        run_log.record(RunAction.RUN_START)

        assert run_log.get_entries(since=datetime.now() + timedelta(hours=1)) == []
        assert len(run_log.get_entries(since=datetime.now() - timedelta(hours=1))) == 1

    def test_get_entries_limit(self, run_log):
        for _ in range(5):
            run_log.record(RunAction.RECORD_LOCKED)

        assert len(run_log.get_entries(limit=2)) == 2

    def test_skips_malformed_lines(self, run_log, tmp_path):
        run_log.record(RunAction.RUN_START)
        with open(tmp_path / "runs.jsonl", "a") as f:
            f.write("not json\n\n")
        run_log.record(RunAction.RUN_COMPLETE)

        assert len(run_log.get_entries()) == 2

    def test_missing_file(self, tmp_path):
        run_log = RunLog(str(tmp_path / "never.jsonl"))

        assert run_log.get_entries() == []
        assert run_log.get_stats()["total_entries"] == 0

    def test_get_stats(self, tmp_path):
        """Should return statistics."""
        path = str(tmp_path / "runs.jsonl")
        first = RunLog(path, run_id="a")
        first.record(RunAction.RUN_START)
        first.record(RunAction.LIST_FAILED, success=False, error="denied")
        RunLog(path, run_id="b").record(RunAction.RUN_START)

        stats = RunLog(path).get_stats()

        assert stats["total_entries"] == 3
        assert stats["runs"] == 2
        assert stats["errors"] == 1
        assert stats["by_action"]["run_start"] == 2
        assert stats["first_entry"] is not None


class TestNullRunLog:
    """Tests for NullRunLog."""

    def test_record_discards(self):
        assert NullRunLog().record(RunAction.RUN_START, site=SITE) is None
