"""
Velvest Traffic Statistics

Running protocol counters, per-source activity counts, and the top-talker
ranking derived from them.
"""

import heapq
import threading
from collections.abc import Mapping

import structlog

from velvest.analysis.models import PacketRecord, Protocol, SourceCount, TrafficStats

logger = structlog.get_logger(__name__)


DEFAULT_TOP_N = 5


# =============================================================================
# Aggregator
# =============================================================================


class TrafficStatsAggregator:
    """
    Thread-safe packet counters and source activity table.

    The activity table is an insertion-ordered dict, so iteration order is
    first-seen order. Counters are Python ints and never wrap.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._total = 0
        self._tcp = 0
        self._udp = 0
        self._sources: dict[str, int] = {}

    def record(self, record: PacketRecord) -> None:
        """Count one record against the totals and its source address."""
        with self._lock:
            self._total += 1
            if record.transport == Protocol.TCP:
                self._tcp += 1
            elif record.transport == Protocol.UDP:
                self._udp += 1

            src_ip = record.source_address
            self._sources[src_ip] = self._sources.get(src_ip, 0) + 1

    def clear(self) -> None:
        """Zero the counters and empty the activity table."""
        with self._lock:
            self._total = 0
            self._tcp = 0
            self._udp = 0
            self._sources.clear()

        logger.debug("traffic_stats_cleared")

    @property
    def stats(self) -> TrafficStats:
        """Current counters."""
        with self._lock:
            return TrafficStats(total=self._total, tcp=self._tcp, udp=self._udp)

    def source_counts(self) -> dict[str, int]:
        """Copy of the activity table in first-seen order."""
        with self._lock:
            return dict(self._sources)

    @property
    def unique_sources(self) -> int:
        with self._lock:
            return len(self._sources)


# =============================================================================
# Ranking
# =============================================================================


class TopNRanker:
    """
    Read-side projection of the activity table into a ranked list.

    Ranking is descending by count; ties keep first-seen order.
    """

    def __init__(self, default_n: int = DEFAULT_TOP_N):
        self.default_n = default_n

    def top(self, table: Mapping[str, int], n: int | None = None) -> list[SourceCount]:
        """
        Rank sources by packet count.

        Args:
            table: Source address -> count, iterated in first-seen order.
                Callers pass a copy, never the live table.
            n: Maximum entries to return. Defaults to default_n.

        Returns:
            Up to n SourceCount entries; fewer if the table is smaller.
        """
        limit = self.default_n if n is None else n
        if limit <= 0:
            return []

        # nlargest matches sorted(reverse=True)[:n], which keeps equal counts in first-seen order
        ranked = heapq.nlargest(limit, table.items(), key=lambda x: x[1])
        return [SourceCount(address=ip, count=count) for ip, count in ranked]
