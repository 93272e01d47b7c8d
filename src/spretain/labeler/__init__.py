"""Compliance actions applied to lists and items.

Two processors plug into the traversal controller:

1. LabelResetProcessor (reset-labels):
   - Reads the retention label on each list
   - Resets and reapplies qualifying labels

2. RecordUnlockProcessor (unlock-records):
   - Reads the compliance flag on each item
   - Unlocks items locked as records

Both default to report-only through RunSettings.

Usage:
    from spretain.labeler import LabelResetProcessor

    controller = TraversalController(client, LabelResetProcessor(), settings)
    summary = controller.run(sites)
"""

from .retention import LabelResetProcessor, label_qualifies
from .records import RecordUnlockProcessor, FlagState, classify_flag

__all__ = [
    "LabelResetProcessor",
    "label_qualifies",
    "RecordUnlockProcessor",
    "FlagState",
    "classify_flag",
]
