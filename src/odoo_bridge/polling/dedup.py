"""Bounded, recency-ordered record id cache used to skip re-deliveries."""

from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Hashable, List

logger = logging.getLogger(__name__)


class DeduplicationCache:
    """Set of delivered record ids bounded by a high-water mark.

    Ids are kept in mark order; re-marking an id refreshes it. ``evict`` only
    acts once the cache grows beyond ``high_water`` and then retains the
    ``retain`` most recently marked ids. Process-local only: cross-restart
    deduplication is left to the consumer's idempotency key.
    """

    def __init__(self, high_water: int = 1000, retain: int = 500) -> None:
        if high_water <= 0:
            raise ValueError("high_water must be positive")
        if retain < 0 or retain > high_water:
            raise ValueError("retain must be between 0 and high_water")
        self.high_water = high_water
        self.retain = retain
        self._entries: "OrderedDict[Hashable, None]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, record_id: object) -> bool:
        return record_id in self._entries

    def seen(self, record_id: Hashable) -> bool:
        return record_id in self._entries

    def mark(self, record_id: Hashable) -> None:
        self._entries[record_id] = None
        self._entries.move_to_end(record_id)

    @property
    def over_capacity(self) -> bool:
        return len(self._entries) > self.high_water

    def evict(self) -> int:
        """Drop all but the ``retain`` newest ids when over capacity; return the count removed."""
        if not self.over_capacity:
            return 0
        removed = len(self._entries) - self.retain
        for _ in range(removed):
            self._entries.popitem(last=False)
        logger.debug(
            "dedup cache evicted %d ids, %d retained", removed, len(self._entries)
        )
        return removed

    def snapshot(self) -> List[Hashable]:
        """Return ids oldest first."""
        return list(self._entries)

    def clear(self) -> None:
        self._entries.clear()


__all__ = ["DeduplicationCache"]
