"""Site -> list -> item traversal.

The controller walks the configured sites in input order. For each site it
connects, takes a filtered snapshot of the site's lists, hands each list to
a ListProcessor (label reset or record unlock), and disconnects. Every
remote call goes through the RetryPolicy; pauses between lists and between
sites go through the Pacer.

Failures are contained at the lowest level that can absorb them:
- connect or list enumeration fails: the site is skipped
- a list fails: that list is skipped, the site continues
- an item fails: handled inside the processor, the list continues

No remote failure ends the run. Callers read the RunSummary (and the log)
to learn what went wrong.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Optional, Protocol, Sequence, Union
import logging
import threading

from ..auth.config import RunSettings
from ..auth.sharepoint import ListInfo
from ..storage.audit import NullRunLog, RunAction, RunLog
from ..throttle.pacing import Pacer
from ..throttle.retry import RemoteCallError, RetryExhaustedError, RetryPolicy
from .results import Counters, PartialMutationError, RunSummary
from .sites import filter_lists

logger = logging.getLogger(__name__)

# Failures that skip the current unit of work instead of ending the run.
REMOTE_ERRORS = (RemoteCallError, RetryExhaustedError)


class TraversalState(Enum):
    """Where the controller currently is."""

    IDLE = "idle"
    CONNECTING_SITE = "connecting_site"
    ENUMERATING_LISTS = "enumerating_lists"
    PROCESSING_LIST = "processing_list"
    PACING_BETWEEN_LISTS = "pacing_between_lists"
    DISCONNECTING_SITE = "disconnecting_site"
    PACING_BETWEEN_SITES = "pacing_between_sites"
    DONE = "done"


class SiteConnector(Protocol):
    """Opens and releases one session per site."""

    def connect(self, site_url: str) -> Any: ...

    def disconnect(self, session: Any) -> None: ...


@dataclass
class TraversalContext:
    """Shared collaborators handed to list processors."""

    settings: RunSettings
    retry: RetryPolicy
    pacer: Pacer
    counters: Counters
    run_log: Union[RunLog, NullRunLog] = field(default_factory=NullRunLog)
    cancel: threading.Event = field(default_factory=threading.Event)

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()


class ListProcessor(Protocol):
    """Inspects one list and acts on it (or its items) when it qualifies."""

    def process_list(
        self, ctx: TraversalContext, site_url: str, session: Any, lst: ListInfo
    ) -> None: ...


class TraversalController:
    """
    Drive the nested site/list traversal.

    Usage:
        controller = TraversalController(client, LabelResetProcessor(), settings)
        summary = controller.run(read_site_list("sites.txt"))
        print(summary.sites_processed)
    """

    def __init__(
        self,
        connector: SiteConnector,
        processor: ListProcessor,
        settings: RunSettings,
        retry: Optional[RetryPolicy] = None,
        pacer: Optional[Pacer] = None,
        counters: Optional[Counters] = None,
        run_log: Optional[Union[RunLog, NullRunLog]] = None,
        cancel: Optional[threading.Event] = None,
    ):
        self.connector = connector
        self.processor = processor
        self.settings = settings
        self.ctx = TraversalContext(
            settings=settings,
            retry=retry
            or RetryPolicy(settings.throttle.max_attempts, settings.throttle.base_delay_ms),
            pacer=pacer or Pacer(settings.pacing),
            counters=counters or Counters(),
            run_log=run_log or NullRunLog(),
            cancel=cancel or threading.Event(),
        )
        self.state = TraversalState.IDLE

    @property
    def counters(self) -> Counters:
        return self.ctx.counters

    def _set_state(self, state: TraversalState):
        logger.debug(f"State: {self.state.value} -> {state.value}")
        self.state = state

    def run(self, sites: Sequence[str]) -> RunSummary:
        """
        Process every site in order and return the summary.

        Never raises for remote failures.
        """
        sites = tuple(sites)
        started_at = datetime.now()
        attempted = 0
        cancelled = False

        self.counters.increment("sites_total", len(sites))
        self.ctx.run_log.record(
            RunAction.RUN_START,
            details={
                "action": self.settings.action,
                "mode": self.settings.mode,
                "sites": len(sites),
                "target_label": self.settings.target_label,
            },
        )

        for index, site_url in enumerate(sites):
            if self.ctx.cancelled:
                logger.warning(f"Cancelled - {len(sites) - index} site(s) not processed")
                cancelled = True
                break

            attempted += 1
            logger.info(f"[{index + 1}/{len(sites)}] Processing site {site_url}")
            self._process_site(site_url)

            if index < len(sites) - 1 and not self.ctx.cancelled:
                self._set_state(TraversalState.PACING_BETWEEN_SITES)
                self.ctx.pacer.between_sites()

        if self.ctx.cancelled:
            cancelled = True

        self._set_state(TraversalState.DONE)

        summary = RunSummary.from_counters(
            self.counters,
            action=self.settings.action,
            report_only=self.settings.report_only,
            sites_attempted=attempted,
            started_at=started_at,
            cancelled=cancelled,
        )
        self.ctx.run_log.record(RunAction.RUN_COMPLETE, details=summary.to_dict())
        return summary

    def _process_site(self, site_url: str):
        self._set_state(TraversalState.CONNECTING_SITE)
        try:
            session = self.ctx.retry.execute(
                lambda: self.connector.connect(site_url),
                f"connect to {site_url}",
            )
        except REMOTE_ERRORS as e:
            self._site_failed(site_url, "connect", e)
            return

        try:
            self._set_state(TraversalState.ENUMERATING_LISTS)
            try:
                lists = self.ctx.retry.execute(
                    lambda: filter_lists(session.list_lists(), self.settings.ignored_lists),
                    f"enumerate lists in {site_url}",
                )
            except REMOTE_ERRORS as e:
                self._site_failed(site_url, "enumerate lists", e)
                return

            logger.info(f"{len(lists)} list(s) to process in {site_url}")

            for index, lst in enumerate(lists):
                if self.ctx.cancelled:
                    logger.warning(f"Cancelled - stopping in {site_url}")
                    return

                self._process_list(site_url, session, lst)

                if index < len(lists) - 1:
                    self._set_state(TraversalState.PACING_BETWEEN_LISTS)
                    self.ctx.pacer.between_lists()

            self.counters.increment("sites_processed")
        finally:
            self._set_state(TraversalState.DISCONNECTING_SITE)
            self._disconnect(site_url, session)

    def _process_list(self, site_url: str, session: Any, lst: ListInfo):
        self._set_state(TraversalState.PROCESSING_LIST)
        try:
            self.processor.process_list(self.ctx, site_url, session, lst)
        except PartialMutationError as e:
            logger.error(f"PARTIAL CHANGE in {site_url}: {e} - list is now unlabeled")
            self.counters.increment("partial_mutations")
            self.ctx.run_log.record(
                RunAction.PARTIAL_MUTATION,
                details={"label": e.label_name},
                site=site_url,
                list_title=lst.title,
                success=False,
                error=str(e.cause),
            )
        except REMOTE_ERRORS as e:
            logger.error(f"Failed to process list '{lst.title}' in {site_url}: {e}")
            self.counters.increment("lists_failed")
            self.ctx.run_log.record(
                RunAction.LIST_FAILED,
                site=site_url,
                list_title=lst.title,
                success=False,
                error=str(e),
            )
        else:
            self.counters.increment("lists_processed")

    def _site_failed(self, site_url: str, step: str, error: Exception):
        logger.error(f"Skipping site {site_url} - {step} failed: {error}")
        self.counters.increment("sites_failed")
        self.ctx.run_log.record(
            RunAction.SITE_SKIPPED,
            details={"step": step},
            site=site_url,
            success=False,
            error=str(error),
        )

    def _disconnect(self, site_url: str, session: Any):
        try:
            self.connector.disconnect(session)
        except Exception as e:
            logger.warning(f"Failed to disconnect from {site_url}: {e}")
