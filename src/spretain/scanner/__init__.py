"""Site and list traversal."""

from .results import Counters, RunSummary, PartialMutationError
from .sites import read_site_list, filter_lists
from .traversal import (
    TraversalController,
    TraversalContext,
    TraversalState,
    ListProcessor,
    SiteConnector,
)

__all__ = [
    "Counters",
    "RunSummary",
    "PartialMutationError",
    "read_site_list",
    "filter_lists",
    "TraversalController",
    "TraversalContext",
    "TraversalState",
    "ListProcessor",
    "SiteConnector",
]
