"""Tests for the spretain command line."""

import logging
import signal

import pytest
from click.testing import CliRunner

from conftest import FakeConnector, FakeSession, denied, make_list

from spretain.auth.config import Config
from spretain.auth.sharepoint import RetentionLabel, SharePointAuthError
from spretain.cli.main import EXIT_RUN_FAILURES, cli
from spretain.storage.audit import RunAction, RunLog

SITE_A = "https://contoso.sharepoint.com/sites/a"
SITE_B = "https://contoso.sharepoint.com/sites/b"

NO_PACING = ["--item-delay-ms", "0", "--list-delay-ms", "0", "--site-delay-ms", "0"]


@pytest.fixture(autouse=True)
def reset_logging():
    """configure_logging attaches handlers to the package logger; drop them after each test."""
    yield
    package_logger = logging.getLogger("spretain")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def sites_file(tmp_path):
    path = tmp_path / "sites.txt"
    path.write_text(f"# test tenant\n{SITE_A}\n{SITE_B}\n")
    return path


@pytest.fixture
def configured(monkeypatch):
    """Credentials available without touching disk or keyring."""
    monkeypatch.setenv("SPRETAIN_CLIENT_SECRET", "secret")
    monkeypatch.setattr(
        "spretain.auth.config.Config.load",
        classmethod(lambda cls: Config(tenant_id="tenant", client_id="client")),
    )


@pytest.fixture
def connector(monkeypatch):
    """Replace SharePointClient with an in-memory connector."""
    connector = FakeConnector()

    class FakeClient:
        def __init__(self, tenant_id, client_id, client_credential):
            connector.credential = client_credential

        def __enter__(self):
            return connector

        def __exit__(self, *args):
            pass

    monkeypatch.setattr("spretain.auth.sharepoint.SharePointClient", FakeClient)
    return connector


class TestRunCommands:
    """Tests for reset-labels and unlock-records."""

    def test_missing_sites_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["reset-labels", str(tmp_path / "missing.txt")])

        assert result.exit_code == 1
        assert "Cannot read site list" in result.output

    def test_empty_sites_file(self, runner, tmp_path):
        path = tmp_path / "sites.txt"
        path.write_text("# nothing yet\n\n")

        result = runner.invoke(cli, ["unlock-records", str(path)])

        assert result.exit_code == 0
        assert "No sites listed" in result.output

    def test_missing_credentials(self, runner, sites_file, monkeypatch):
        monkeypatch.setattr("spretain.auth.config.Config.load", classmethod(lambda cls: Config()))

        result = runner.invoke(cli, ["reset-labels", str(sites_file)])

        assert result.exit_code == 1
        assert "credentials not found" in result.output

    def test_client_setup_failure(self, runner, sites_file, configured, monkeypatch):
        class BrokenClient:
            def __init__(self, tenant_id, client_id, client_credential):
                raise SharePointAuthError("Cannot initialise MSAL client: Invalid tenant name")

        monkeypatch.setattr("spretain.auth.sharepoint.SharePointClient", BrokenClient)

        handler_before = signal.getsignal(signal.SIGINT)

        result = runner.invoke(cli, ["reset-labels", str(sites_file), *NO_PACING])

        assert result.exit_code == 1
        assert "Invalid tenant name" in result.output
        assert signal.getsignal(signal.SIGINT) is handler_before

    def test_invalid_override(self, runner, sites_file, configured, connector):
        result = runner.invoke(cli, ["reset-labels", str(sites_file), "--max-attempts", "0"])

        assert result.exit_code == 1
        assert connector.connected == []

    def test_report_only_by_default(self, runner, sites_file, configured, connector):
        session = FakeSession(
            SITE_A,
            lists=[make_list("Documents")],
            labels={"Documents": RetentionLabel("Record (Retain 1yr)")},
        )
        connector.sessions[SITE_A] = session

        result = runner.invoke(cli, ["reset-labels", str(sites_file), *NO_PACING])

        assert result.exit_code == 0, result.output
        assert "REPORT-ONLY" in result.output
        assert session.methods() == ["list_lists", "get_label"]
        assert connector.connected == [SITE_A, SITE_B]
        assert connector.credential == "secret"

    def test_apply_resets_labels(self, runner, sites_file, configured, connector):
        session = FakeSession(
            SITE_A,
            lists=[make_list("Documents")],
            labels={"Documents": RetentionLabel("Record (Retain 1yr)")},
        )
        connector.sessions[SITE_A] = session

        result = runner.invoke(
            cli,
            ["reset-labels", str(sites_file), "--apply", "-l", "Record", *NO_PACING],
        )

        assert result.exit_code == 0, result.output
        assert "APPLY MODE" in result.output
        assert session.methods() == ["list_lists", "get_label", "reset_label", "apply_label"]

    def test_ignore_list_option(self, runner, sites_file, configured, connector):
        session = FakeSession(
            SITE_A,
            lists=[make_list("Documents"), make_list("Drafts")],
            labels={"Documents": RetentionLabel("Record"), "Drafts": RetentionLabel("Record")},
        )
        connector.sessions[SITE_A] = session

        result = runner.invoke(
            cli, ["reset-labels", str(sites_file), "--ignore-list", "Drafts", *NO_PACING]
        )

        assert result.exit_code == 0, result.output
        assert ("get_label", "Drafts") not in session.calls

    def test_failures_exit_zero_by_default(self, runner, sites_file, configured, connector):
        connector.connect_failures[SITE_A] = denied()

        result = runner.invoke(cli, ["unlock-records", str(sites_file), *NO_PACING])

        assert result.exit_code == 0, result.output
        assert connector.connected == [SITE_A, SITE_B]

    def test_fail_on_errors(self, runner, sites_file, configured, connector):
        connector.connect_failures[SITE_A] = denied()

        result = runner.invoke(
            cli, ["unlock-records", str(sites_file), "--fail-on-errors", *NO_PACING]
        )

        assert result.exit_code == EXIT_RUN_FAILURES

    def test_fail_on_errors_clean_run(self, runner, sites_file, configured, connector):
        result = runner.invoke(
            cli, ["unlock-records", str(sites_file), "--fail-on-errors", *NO_PACING]
        )

        assert result.exit_code == 0, result.output

    def test_run_log_written(self, runner, sites_file, configured, connector, tmp_path):
        connector.connect_failures[SITE_B] = denied()
        run_log = tmp_path / "runs.jsonl"

        result = runner.invoke(
            cli, ["unlock-records", str(sites_file), "--run-log", str(run_log), *NO_PACING]
        )

        assert result.exit_code == 0, result.output
        actions = [entry.action for entry in RunLog(str(run_log)).get_entries()]
        assert actions[0] is RunAction.RUN_START
        assert RunAction.SITE_SKIPPED in actions
        assert actions[-1] is RunAction.RUN_COMPLETE

    def test_log_file_written(self, runner, sites_file, configured, connector, tmp_path):
        log_file = tmp_path / "run.log"

        result = runner.invoke(
            cli, ["unlock-records", str(sites_file), "--log-file", str(log_file), *NO_PACING]
        )

        assert result.exit_code == 0, result.output
        assert SITE_A in log_file.read_text()


class TestHistory:
    """Tests for the history command."""

    def test_history_summary(self, runner, tmp_path):
        path = str(tmp_path / "runs.jsonl")
        run_log = RunLog(path, run_id="r1")
        run_log.record(RunAction.RUN_START)
        run_log.record(
            RunAction.ITEM_FAILED,
            site=SITE_A,
            list_title="Contracts",
            item_id=12,
            success=False,
            error="Access denied",
        )
        run_log.record(RunAction.RUN_COMPLETE)

        result = runner.invoke(cli, ["history", path])

        assert result.exit_code == 0, result.output
        assert "Failures (1)" in result.output
        assert "Contracts #12" in result.output

    def test_history_missing_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["history", str(tmp_path / "missing.jsonl")])

        assert result.exit_code != 0


class TestConfigCommands:
    """Tests for the config command group."""

    @pytest.fixture
    def config_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        monkeypatch.setattr("spretain.auth.config.CONFIG_FILE", path)
        monkeypatch.setattr("spretain.auth.config.CONFIG_DIR", tmp_path)
        monkeypatch.delenv("SPRETAIN_TENANT_ID", raising=False)
        return path

    def test_set_integer(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "list_delay_ms", "1000"])

        assert result.exit_code == 0, result.output
        assert Config.load().list_delay_ms == 1000

    def test_set_rejects_out_of_range(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "max_attempts", "0"])

        assert result.exit_code == 1
        assert not config_file.exists()

    def test_set_rejects_non_integer(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "base_delay_ms", "fast"])

        assert result.exit_code == 1

    def test_set_ignored_lists(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "ignored_lists", "Site Pages, Drafts"])

        assert result.exit_code == 0, result.output
        assert Config.load().ignored_lists == ["Site Pages", "Drafts"]

    def test_set_tenant(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "tenant_id", "contoso.onmicrosoft.com"])

        assert result.exit_code == 0, result.output
        assert Config.load().tenant_id == "contoso.onmicrosoft.com"

    def test_unknown_key(self, runner, config_file):
        result = runner.invoke(cli, ["config", "set", "colour", "blue"])

        assert result.exit_code == 1
        assert "Unknown key" in result.output
