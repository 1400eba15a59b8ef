"""
Velvest Activity Log

Fixed-capacity FIFO log of recent events. Each entry keeps its summary line
and detail block together, so evicting one always evicts the other.
"""

import threading
from collections import deque
from collections.abc import Callable

import structlog

from velvest.analysis.models import LogEntry
from velvest.exceptions import LogEntryNotFound

logger = structlog.get_logger(__name__)


DEFAULT_CAPACITY = 100

FilterPredicate = Callable[[str], bool]


def text_filter(text: str | None) -> FilterPredicate:
    """
    Build a case-insensitive substring filter.

    An empty or missing filter accepts every line.
    """
    if not text:
        return _accept_all

    needle = text.casefold()

    def _matches(line: str) -> bool:
        return needle in line.casefold()

    return _matches


def _accept_all(line: str) -> bool:
    return True


class BoundedActivityLog:
    """
    Thread-safe, insertion-ordered ring of LogEntry objects.

    Eviction is strict FIFO by insertion; reads never affect it.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY):
        """
        Initialize the log.

        Args:
            capacity: Maximum retained entries (at least 1).
        """
        if capacity < 1:
            raise ValueError(f"capacity must be at least 1, got {capacity}")

        self.capacity = capacity
        self._entries: deque[LogEntry] = deque(maxlen=capacity)
        self._lock = threading.RLock()

        self._stats = {
            "appended": 0,
            "filtered": 0,
            "evicted": 0,
        }

    def append(
        self,
        sequence_number: int,
        summary_line: str,
        detail_text: str,
        filter_predicate: FilterPredicate | None = None,
    ) -> bool:
        """
        Append an entry if the filter accepts its summary line.

        Args:
            sequence_number: Ingestion sequence number of the record.
            summary_line: One-line summary shown in the log view.
            detail_text: Multi-line detail block for the same record.
            filter_predicate: Called with summary_line; None accepts all.

        Returns:
            True if the entry was stored.
        """
        accept = filter_predicate or _accept_all
        if not accept(summary_line):
            with self._lock:
                self._stats["filtered"] += 1
            return False

        entry = LogEntry(
            sequence_number=sequence_number,
            summary_line=summary_line,
            detail_text=detail_text,
        )

        with self._lock:
            if len(self._entries) == self.capacity:
                self._stats["evicted"] += 1
            # deque(maxlen) drops the head once full
            self._entries.append(entry)
            self._stats["appended"] += 1

        return True

    def lookup(self, index: int) -> LogEntry:
        """
        Get the entry at a log position.

        Raises:
            LogEntryNotFound: If index is outside [0, len(log)).
        """
        with self._lock:
            length = len(self._entries)
            if index < 0 or index >= length:
                raise LogEntryNotFound(index, length)
            return self._entries[index]

    def detail(self, index: int) -> str:
        """Get the detail text at a log position."""
        return self.lookup(index).detail_text

    def entries(self) -> tuple[LogEntry, ...]:
        """Stable copy of the retained entries, oldest first."""
        with self._lock:
            return tuple(self._entries)

    def summaries(self) -> list[str]:
        with self._lock:
            return [entry.summary_line for entry in self._entries]

    def clear(self) -> None:
        """Remove every entry and reset the log statistics."""
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            for key in self._stats:
                self._stats[key] = 0

        logger.debug("activity_log_cleared", entries=count)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @property
    def stats(self) -> dict[str, int]:
        """Get log statistics."""
        with self._lock:
            return {
                "size": len(self._entries),
                "capacity": self.capacity,
                **self._stats,
            }
