"""Shared fakes for traversal tests.

FakeSession and FakeConnector stand in for the SharePoint adapters. Failures
are configured per call as either a single exception (raised every time) or
a list of exceptions (raised in order, then the call succeeds).
"""

import pytest

from spretain.auth.config import RunSettings, ThrottleSettings
from spretain.auth.sharepoint import ListInfo
from spretain.scanner.results import Counters
from spretain.scanner.traversal import TraversalController, TraversalContext
from spretain.throttle.pacing import Pacer, PacingConfig
from spretain.throttle.retry import RemoteCallError, RetryPolicy


def throttled(retry_after=None, status=429):
    return RemoteCallError("Too Many Requests", status_code=status, retry_after=retry_after)


def denied():
    return RemoteCallError("Access denied", status_code=403)


def make_list(title, item_count=3, hidden=False):
    return ListInfo(
        title=title,
        hidden=hidden,
        item_count=item_count,
        server_relative_url=f"/sites/test/{title}",
    )


class FakeSession:
    """In-memory site session recording every call."""

    def __init__(self, site_url, lists=(), labels=None, items=None, unlock_results=None):
        self.site_url = site_url
        self.lists = list(lists)
        self.labels = labels or {}
        self.items = items or {}
        self.unlock_results = unlock_results or {}
        self.failures = {}
        self.calls = []

    def fail(self, method, key, error):
        self.failures[(method, key)] = error
        return self

    def _maybe_fail(self, method, key=None):
        error = self.failures.get((method, key))
        if isinstance(error, list):
            if error:
                raise error.pop(0)
        elif error is not None:
            raise error

    def list_lists(self):
        self.calls.append(("list_lists", None))
        self._maybe_fail("list_lists")
        return list(self.lists)

    def get_label(self, lst):
        self.calls.append(("get_label", lst.title))
        self._maybe_fail("get_label", lst.title)
        return self.labels.get(lst.title)

    def reset_label(self, lst):
        self.calls.append(("reset_label", lst.title))
        self._maybe_fail("reset_label", lst.title)

    def apply_label(self, lst, label, sync_to_items=True):
        self.calls.append(("apply_label", lst.title))
        self._maybe_fail("apply_label", lst.title)

    def list_items(self, lst):
        self.calls.append(("list_items", lst.title))
        self._maybe_fail("list_items", lst.title)
        return list(self.items.get(lst.title, []))

    def unlock_item(self, lst, item_id):
        self.calls.append(("unlock_item", item_id))
        self._maybe_fail("unlock_item", item_id)
        return self.unlock_results.get(item_id, True)

    def methods(self):
        return [method for method, _ in self.calls]


class FakeConnector:
    """Hands out FakeSessions by site URL."""

    def __init__(self, sessions=None, connect_failures=None):
        self.sessions = sessions or {}
        self.connect_failures = connect_failures or {}
        self.connected = []
        self.disconnected = []

    def connect(self, site_url):
        self.connected.append(site_url)
        error = self.connect_failures.get(site_url)
        if isinstance(error, list):
            if error:
                raise error.pop(0)
        elif error is not None:
            raise error
        return self.sessions.get(site_url) or FakeSession(site_url)

    def disconnect(self, session):
        self.disconnected.append(session.site_url)


class Recorder:
    """Collects sleep durations instead of sleeping."""

    def __init__(self):
        self.waits = []

    def __call__(self, seconds):
        self.waits.append(seconds)


@pytest.fixture
def retry_sleep():
    return Recorder()


@pytest.fixture
def pace_sleep():
    return Recorder()


@pytest.fixture
def make_settings():
    def _make(**kwargs):
        kwargs.setdefault("throttle", ThrottleSettings(max_attempts=3, base_delay_ms=5000))
        kwargs.setdefault(
            "pacing", PacingConfig(item_delay_ms=10, list_delay_ms=100, site_delay_ms=1000)
        )
        kwargs.setdefault("ignored_lists", frozenset({"Style Library"}))
        return RunSettings(**kwargs)

    return _make


@pytest.fixture
def make_context(make_settings, retry_sleep, pace_sleep):
    def _make(**kwargs):
        settings = make_settings(**kwargs)
        return TraversalContext(
            settings=settings,
            retry=RetryPolicy(
                settings.throttle.max_attempts,
                settings.throttle.base_delay_ms,
                sleep=retry_sleep,
            ),
            pacer=Pacer(settings.pacing, sleep=pace_sleep),
            counters=Counters(),
        )

    return _make


@pytest.fixture
def make_controller(make_settings, retry_sleep, pace_sleep):
    def _make(connector, processor, run_log=None, cancel=None, **kwargs):
        settings = make_settings(**kwargs)
        return TraversalController(
            connector,
            processor,
            settings,
            retry=RetryPolicy(
                settings.throttle.max_attempts,
                settings.throttle.base_delay_ms,
                sleep=retry_sleep,
            ),
            pacer=Pacer(settings.pacing, sleep=pace_sleep),
            run_log=run_log,
            cancel=cancel,
        )

    return _make

