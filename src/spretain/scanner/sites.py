"""Traversal inputs: the site list file and list filtering."""

from pathlib import Path
from typing import Iterable, Union
import logging

from ..auth.config import ConfigurationError
from ..auth.sharepoint import ListInfo

logger = logging.getLogger(__name__)


def read_site_list(path: Union[str, Path]) -> tuple[str, ...]:
    """
    Read site URLs from a text file, one per line.

    Blank lines and lines starting with '#' are skipped. File order is
    preserved and drives processing order.

    Raises:
        ConfigurationError: If the file is missing or unreadable
    """
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8-sig")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigurationError(f"Cannot read site list {path}: {e}")

    sites = []
    for line in text.splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        sites.append(line)

    logger.debug(f"Read {len(sites)} sites from {path}")
    return tuple(sites)


def filter_lists(lists: Iterable[ListInfo], ignored: Iterable[str]) -> tuple[ListInfo, ...]:
    """
    Keep visible, non-empty lists whose title is not ignored.

    The result is the snapshot the traversal works from; order is the order
    the service returned, never sorted.
    """
    ignored = set(ignored)
    kept = []
    for lst in lists:
        if lst.hidden:
            continue
        if lst.item_count <= 0:
            continue
        if lst.title in ignored:
            logger.debug(f"Ignoring list '{lst.title}'")
            continue
        kept.append(lst)
    return tuple(kept)
