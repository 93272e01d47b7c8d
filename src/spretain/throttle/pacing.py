"""Proactive pacing between successive operations.

SharePoint Online throttles per tenant, so the tool slows itself down
before the service has to: a fixed pause between items, between lists and
between sites. A duration of zero disables pacing at that level.
"""

from dataclasses import dataclass
from typing import Callable, Optional
import logging
import time

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PacingConfig:
    """Pause durations in milliseconds at each nesting level."""

    item_delay_ms: int = 100
    list_delay_ms: int = 500
    site_delay_ms: int = 2000


class Pacer:
    """
    Apply configured pauses between operations.

    Callers skip pacing after the last element of a sequence, so a run of
    N sites sleeps N-1 times at the site level.

    Usage:
        pacer = Pacer(PacingConfig(list_delay_ms=500))
        for i, lst in enumerate(lists):
            process(lst)
            if i < len(lists) - 1:
                pacer.between_lists()
    """

    def __init__(
        self,
        config: Optional[PacingConfig] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.config = config or PacingConfig()
        self._sleep = sleep

    def pace(self, duration_ms: float, description: str = "") -> None:
        """Pause for duration_ms. Zero or less is a silent no-op."""
        if duration_ms <= 0:
            return

        logger.debug(f"Pausing {duration_ms:.0f}ms {description}".rstrip())
        self._sleep(duration_ms / 1000)

    def between_items(self) -> None:
        self.pace(self.config.item_delay_ms, "between items")

    def between_lists(self) -> None:
        self.pace(self.config.list_delay_ms, "between lists")

    def between_sites(self) -> None:
        self.pace(self.config.site_delay_ms, "between sites")
