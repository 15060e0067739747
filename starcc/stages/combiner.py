from __future__ import annotations

from typing import Callable, Hashable, Iterator, Optional, Set

import psutil

from starcc.utils import get_logger

logger = get_logger(__name__)

COMBINE_CLEARS = "COMBINE_CLEARS"


def process_memory_usage() -> float:
    """Resident size of this process as a fraction of physical memory."""
    return psutil.Process().memory_info().rss / psutil.virtual_memory().total


class BoundedDedupSet:
    """Membership set that forgets everything when memory runs high.

    Every ``check_every`` insertions the ``usage`` probe is read; once it
    exceeds ``watermark`` the set is cleared. Items seen before a clear may be
    reported as new again, so callers must tolerate duplicates downstream.
    """

    def __init__(
        self,
        watermark: float = 0.8,
        check_every: int = 1024,
        usage: Optional[Callable[[], float]] = None,
    ):
        if not 0.0 < watermark <= 1.0:
            raise ValueError("watermark must be in (0, 1]")
        if check_every < 1:
            raise ValueError("check_every must be >= 1")
        self.watermark = float(watermark)
        self.check_every = int(check_every)
        self.usage = usage or process_memory_usage
        self.clears = 0
        self._items: Set[Hashable] = set()
        self._since_check = 0

    def __len__(self) -> int:
        return len(self._items)

    def __contains__(self, item) -> bool:
        return item in self._items

    def clear(self) -> None:
        self._items.clear()
        self._since_check = 0

    def add(self, item: Hashable) -> bool:
        """Insert ``item``; True if it was not already present."""
        if item in self._items:
            return False
        self._items.add(item)
        self._since_check += 1
        if self._since_check >= self.check_every:
            self._since_check = 0
            if self.usage() > self.watermark:
                self._items.clear()
                self.clears += 1
                logger.debug("combiner: memory above %.2f, dedup set cleared", self.watermark)
        return True


class StarCombiner:
    """Map-side dedup of repeated ``(NodeID, NeighborID)`` pairs.

    One instance lives for one map task. The neighbor set is reset at the
    start of each node group, so its size is bounded by the node's local
    degree and, under memory pressure, by the watermark policy.
    """

    def __init__(self, watermark: float = 0.8, check_every: int = 1024, usage: Optional[Callable[[], float]] = None):
        self.seen = BoundedDedupSet(watermark=watermark, check_every=check_every, usage=usage)

    def __call__(self, node: int, neighbors: Iterator[int], kv) -> None:
        self.seen.clear()
        before = self.seen.clears
        for neighbor in neighbors:
            if self.seen.add(neighbor):
                kv.add(node, neighbor)
        kv.increment(COMBINE_CLEARS, self.seen.clears - before)


def combiner_factory(cfg: dict, usage: Optional[Callable[[], float]] = None) -> Optional[Callable[[], StarCombiner]]:
    """Build a per-task combiner factory from ``contraction.combiner`` settings."""
    comb = cfg or {}
    if not comb.get("enabled", True):
        return None
    watermark = float(comb.get("memory_watermark", 0.8))
    check_every = int(comb.get("check_every", 1024))
    return lambda: StarCombiner(watermark=watermark, check_every=check_every, usage=usage)
