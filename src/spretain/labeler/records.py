"""Detect and unlock items locked as records.

SharePoint exposes the record state of an item through the
_ComplianceFlags field:

    7    locked record
    519  locked record (regulatory/declared variant)
    771  record, already unlocked
    0    no retention label

Only the two locked values qualify for unlocking. Any other value is
logged as unknown and left alone.
"""

from enum import Enum
from typing import Any, Optional, Union
import logging

from ..auth.sharepoint import ListInfo, ListItem
from ..scanner.traversal import REMOTE_ERRORS, TraversalContext
from ..storage.audit import RunAction

logger = logging.getLogger(__name__)

LOCKED_FLAGS = frozenset({7, 519})
UNLOCKED_FLAGS = frozenset({771})


class FlagState(Enum):
    """Record state derived from an item's compliance flag."""

    NONE = "none"
    LOCKED = "locked"
    UNLOCKED = "unlocked"
    UNKNOWN = "unknown"


def classify_flag(value: Optional[Union[int, str]]) -> FlagState:
    """Map a raw compliance flag to a FlagState."""
    if value is None or value == "":
        return FlagState.NONE

    try:
        flag = int(value)
    except (TypeError, ValueError):
        return FlagState.UNKNOWN

    if flag == 0:
        return FlagState.NONE
    if flag in LOCKED_FLAGS:
        return FlagState.LOCKED
    if flag in UNLOCKED_FLAGS:
        return FlagState.UNLOCKED
    return FlagState.UNKNOWN


class RecordUnlockProcessor:
    """
    Find locked records in a list and unlock them.

    The list's items are fetched once as a snapshot. Each item is handled on
    its own: a failing item is logged and counted, and the next item is
    processed. Pacing applies between items, not after the last one.
    """

    def process_list(
        self, ctx: TraversalContext, site_url: str, session: Any, lst: ListInfo
    ) -> None:
        items = ctx.retry.execute(
            lambda: tuple(session.list_items(lst)),
            f"list items in '{lst.title}'",
        )
        logger.info(f"'{lst.title}': {len(items)} item(s)")

        for index, item in enumerate(items):
            if ctx.cancelled:
                logger.warning(f"Cancelled - stopping in list '{lst.title}'")
                return

            self._process_item(ctx, site_url, session, lst, item)

            if index < len(items) - 1:
                ctx.pacer.between_items()

    def _process_item(
        self,
        ctx: TraversalContext,
        site_url: str,
        session: Any,
        lst: ListInfo,
        item: ListItem,
    ):
        ctx.counters.increment("items_processed")
        state = classify_flag(item.compliance_flag)

        if state is FlagState.UNKNOWN:
            logger.warning(
                f"'{lst.title}' item {item.id} ({item.display_name}): "
                f"unknown flag {item.compliance_flag!r} - skip"
            )
            return
        if state is not FlagState.LOCKED:
            logger.debug(f"'{lst.title}' item {item.id}: {state.value} - skip")
            return

        ctx.counters.increment("qualifying")
        ctx.run_log.record(
            RunAction.RECORD_LOCKED,
            details={"flag": item.compliance_flag, "name": item.display_name},
            site=site_url,
            list_title=lst.title,
            item_id=item.id,
        )

        if ctx.settings.report_only:
            logger.info(
                f"'{lst.title}' item {item.id} ({item.display_name}): locked record "
                f"(report-only, no change)"
            )
            return

        try:
            unlocked = ctx.retry.execute(
                lambda: session.unlock_item(lst, item.id),
                f"unlock item {item.id} in '{lst.title}'",
            )
        except REMOTE_ERRORS as e:
            self._item_failed(ctx, site_url, lst, item, str(e))
            return

        if not unlocked:
            self._item_failed(ctx, site_url, lst, item, "unlock reported failure")
            return

        ctx.counters.increment("mutated")
        logger.info(f"'{lst.title}' item {item.id} ({item.display_name}): unlocked")
        ctx.run_log.record(
            RunAction.RECORD_UNLOCKED,
            site=site_url,
            list_title=lst.title,
            item_id=item.id,
        )

    def _item_failed(
        self,
        ctx: TraversalContext,
        site_url: str,
        lst: ListInfo,
        item: ListItem,
        error: str,
    ):
        logger.error(f"Failed to unlock item {item.id} in '{lst.title}': {error}")
        ctx.counters.increment("items_failed")
        ctx.run_log.record(
            RunAction.ITEM_FAILED,
            site=site_url,
            list_title=lst.title,
            item_id=item.id,
            success=False,
            error=error,
        )
