"""Deduplication by record id, keeping first occurrence order."""

import logging
from collections.abc import Iterable

from jobstream.core.schemas import Record

logger = logging.getLogger(__name__)


def dedup(records: Iterable[Record]) -> list[Record]:
    """Return the records with only the first occurrence of each id.

    Pure: the input is not modified and no state outlives the call.
    """
    seen: set[str] = set()
    result: list[Record] = []
    for r in records:
        if r.id not in seen:
            seen.add(r.id)
            result.append(r)
    return result


class DeduplicationFilter:
    """Filter form of dedup() for use inside a Pipe."""

    def __call__(self, records: list[Record]) -> list[Record]:
        result = dedup(records)
        removed = len(records) - len(result)
        if removed:
            logger.debug("DeduplicationFilter: removed %d duplicates", removed)
        return result
