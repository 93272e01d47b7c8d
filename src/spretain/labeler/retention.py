"""Reset and reapply retention labels on lists.

Resetting a list's retention label and applying the same label again makes
SharePoint push the label down to the list's items once more. This is used
to repair libraries where items lost the label their library carries.

REPORT-ONLY BY DEFAULT:
    Qualifying lists are logged and counted. Nothing changes until the run
    is started with report_only=False.

Usage:
    processor = LabelResetProcessor()
    controller = TraversalController(client, processor, settings)
    summary = controller.run(sites)
"""

from typing import Any, Optional
import logging

from ..auth.sharepoint import ListInfo, RetentionLabel
from ..scanner.results import PartialMutationError
from ..scanner.traversal import REMOTE_ERRORS, TraversalContext
from ..storage.audit import RunAction

logger = logging.getLogger(__name__)


def label_qualifies(label_name: Optional[str], target: Optional[str]) -> bool:
    """
    Decide whether a discovered label should be reset.

    A label must be present. With no target configured every label
    qualifies; otherwise the label name must start with the target, since
    tenant label names can carry a human-readable suffix, e.g.
    "Record (Retain 1yr)" for target "Record".
    """
    if not label_name:
        return False
    if not target:
        return True
    return label_name.startswith(target)


class LabelResetProcessor:
    """
    Detect qualifying list labels and reset + reapply them.

    Both mutating calls go through the retry policy independently. If the
    reset succeeds and the reapply does not, PartialMutationError is raised
    so the controller can report the list as left unlabeled.
    """

    def process_list(
        self, ctx: TraversalContext, site_url: str, session: Any, lst: ListInfo
    ) -> None:
        label: Optional[RetentionLabel] = ctx.retry.execute(
            lambda: session.get_label(lst),
            f"read label on '{lst.title}'",
        )

        if label is None:
            logger.info(f"'{lst.title}': no label set - skip")
            return

        if not label_qualifies(label.name, ctx.settings.target_label):
            logger.info(
                f"'{lst.title}': label '{label.name}' does not match "
                f"'{ctx.settings.target_label}' - skip"
            )
            return

        ctx.counters.increment("qualifying")
        ctx.run_log.record(
            RunAction.LABEL_QUALIFIED,
            details={"label": label.name, "mode": ctx.settings.mode},
            site=site_url,
            list_title=lst.title,
        )

        if ctx.settings.report_only:
            logger.info(f"'{lst.title}': label '{label.name}' found (report-only, no change)")
            return

        ctx.retry.execute(
            lambda: session.reset_label(lst),
            f"reset label on '{lst.title}'",
        )
        logger.info(f"'{lst.title}': label '{label.name}' reset")
        ctx.run_log.record(
            RunAction.LABEL_RESET,
            details={"label": label.name},
            site=site_url,
            list_title=lst.title,
        )

        try:
            ctx.retry.execute(
                lambda: session.apply_label(lst, label, sync_to_items=ctx.settings.sync_to_items),
                f"reapply label '{label.name}' on '{lst.title}'",
            )
        except REMOTE_ERRORS as e:
            raise PartialMutationError(lst.title, label.name, e) from e

        ctx.counters.increment("mutated")
        logger.info(f"'{lst.title}': label '{label.name}' reapplied")
        ctx.run_log.record(
            RunAction.LABEL_REAPPLIED,
            details={"label": label.name, "sync_to_items": ctx.settings.sync_to_items},
            site=site_url,
            list_title=lst.title,
        )
