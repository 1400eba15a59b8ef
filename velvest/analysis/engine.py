"""
Velvest Analysis Engine

Orchestrates per-packet analysis: sequence numbering, counters, anomaly
rules, the activity log, and snapshot publication.
"""

import threading
from collections.abc import Callable

import structlog
from pydantic import BaseModel, Field

from velvest.analysis.activity_log import DEFAULT_CAPACITY, BoundedActivityLog, text_filter
from velvest.analysis.models import (
    AlertResult,
    EngineEffect,
    EngineSnapshot,
    LogEntry,
    PacketRecord,
    SourceCount,
)
from velvest.analysis.rules import (
    DEFAULT_LOW_TTL_THRESHOLD,
    DEFAULT_SUSPICIOUS_PORTS,
    AnomalyRule,
    AnomalyRuleEngine,
    default_rules,
)
from velvest.analysis.statistics import DEFAULT_TOP_N, TopNRanker, TrafficStatsAggregator
from velvest.config import Settings

logger = structlog.get_logger(__name__)

SnapshotCallback = Callable[[EngineSnapshot], None]


# =============================================================================
# Configuration
# =============================================================================


class EngineConfig(BaseModel):
    """Injected configuration for one AnalysisEngine."""

    suspicious_ports: frozenset[int] = Field(default=DEFAULT_SUSPICIOUS_PORTS)
    low_ttl_threshold: int = Field(default=DEFAULT_LOW_TTL_THRESHOLD)
    log_capacity: int = Field(default=DEFAULT_CAPACITY, ge=1)
    top_n: int = Field(default=DEFAULT_TOP_N, ge=1)
    default_filter: str = Field(default="")

    @classmethod
    def from_settings(cls, settings: Settings) -> "EngineConfig":
        """Build an engine configuration from application settings."""
        return cls(
            suspicious_ports=frozenset(settings.suspicious_ports),
            low_ttl_threshold=settings.low_ttl_threshold,
            log_capacity=settings.log_capacity,
            top_n=settings.top_n,
            default_filter=settings.default_filter,
        )


# =============================================================================
# Formatting
# =============================================================================


def format_summary(sequence_number: int, record: PacketRecord, alert: AlertResult) -> str:
    """One-line log summary."""
    ts = record.timestamp.strftime("%H:%M:%S")
    return (
        f"#{sequence_number} [{ts}] {alert.tag}{record.protocol_label}: "
        f"{record.source_address} -> {record.destination_address}"
    )


def format_detail(sequence_number: int, record: PacketRecord, alert: AlertResult) -> str:
    """Multi-line detail block shown when a log line is selected."""
    status = "WARNING / ANOMALY DETECTED" if alert.is_suspicious else "NORMAL"
    rules = ", ".join(alert.triggered_rules) or "none"
    ts = record.timestamp.strftime("%H:%M:%S.%f")[:-3]
    checksum = record.checksum_hex or "n/a"

    return "\n".join([
        f"[ ANALYSIS REPORT #{sequence_number} ]",
        f"status: {status}",
        f"rules: {rules}",
        f"timestamp: {ts}",
        f"protocol: {record.protocol_label}",
        f"source: {record.source_address}",
        f"destination: {record.destination_address}",
        f"payload size: {record.payload_length} bytes",
        f"ttl: {record.time_to_live}",
        f"checksum: {checksum}",
    ])


# =============================================================================
# Engine
# =============================================================================


class AnalysisEngine:
    """
    Owns all aggregate state for one capture session.

    Every mutation happens under a single lock, and each one publishes a
    fresh immutable snapshot. Readers only ever see whole snapshots.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        rules: list[AnomalyRule] | None = None,
    ):
        """
        Initialize the engine.

        Args:
            config: Engine configuration. Defaults to EngineConfig().
            rules: Override the rule set built from config.
        """
        self.config = config or EngineConfig()

        if rules is None:
            rules = default_rules(
                ports=self.config.suspicious_ports,
                ttl_threshold=self.config.low_ttl_threshold,
            )

        self._rules = AnomalyRuleEngine(rules)
        self._aggregator = TrafficStatsAggregator()
        self._ranker = TopNRanker(default_n=self.config.top_n)
        self._log = BoundedActivityLog(capacity=self.config.log_capacity)

        self._lock = threading.RLock()
        self._sequence = 0
        self._filter_text = self.config.default_filter
        self._filter = text_filter(self._filter_text)
        self._subscribers: list[SnapshotCallback] = []
        self._snapshot = EngineSnapshot(filter_text=self._filter_text)

    # -------------------------------------------------------------------------
    # Commands
    # -------------------------------------------------------------------------

    def ingest(
        self,
        record: PacketRecord,
        current_filter: str | None = None,
    ) -> EngineEffect | None:
        """
        Process one decoded packet.

        Args:
            record: The decoded packet.
            current_filter: Filter text for this record only. None uses the
                engine's current filter.

        Returns:
            EngineEffect describing the outcome, or None if the record had
            no network layer and was skipped.
        """
        if not record.has_network_layer:
            logger.debug("record_skipped", protocol=record.protocol_label)
            return None

        with self._lock:
            if current_filter is None:
                accept = self._filter
            else:
                accept = text_filter(current_filter)

            self._sequence += 1
            seq = self._sequence

            self._aggregator.record(record)
            alert = self._rules.evaluate(record)

            summary = format_summary(seq, record, alert)
            detail = format_detail(seq, record, alert)
            logged = self._log.append(seq, summary, detail, accept)

            snapshot = self._publish()

        return EngineEffect(
            sequence_number=seq,
            alert=alert,
            summary_line=summary,
            detail_text=detail,
            logged=logged,
            snapshot=snapshot,
        )

    def clear(self) -> EngineSnapshot:
        """
        Reset counters, the activity table and the log.

        Sequence numbers keep counting so they are never reused.
        """
        with self._lock:
            self._aggregator.clear()
            self._log.clear()
            snapshot = self._publish()

        logger.info("engine_cleared", last_sequence_number=snapshot.last_sequence_number)
        return snapshot

    def set_filter(self, text: str | None) -> None:
        """Change the log filter for subsequent ingests."""
        text = text or ""
        with self._lock:
            self._filter_text = text
            self._filter = text_filter(text)
            self._publish()

        logger.info("filter_changed", filter=text)

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> EngineSnapshot:
        """Latest published snapshot."""
        return self._snapshot

    @property
    def filter_text(self) -> str:
        return self._filter_text

    @property
    def rule_engine(self) -> AnomalyRuleEngine:
        return self._rules

    def lookup(self, index: int) -> LogEntry:
        """
        Resolve a live log position to its entry.

        Raises:
            LogEntryNotFound: If index is out of range.
        """
        return self._log.lookup(index)

    def top_sources(self, n: int | None = None) -> list[SourceCount]:
        """Rank sources from a copy of the activity table."""
        return self._ranker.top(self._aggregator.source_counts(), n)

    def source_counts(self) -> dict[str, int]:
        return self._aggregator.source_counts()

    @property
    def log_stats(self) -> dict[str, int]:
        return self._log.stats

    # -------------------------------------------------------------------------
    # Subscriptions
    # -------------------------------------------------------------------------

    def subscribe(self, callback: SnapshotCallback) -> None:
        """Call callback with every newly published snapshot."""
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: SnapshotCallback) -> None:
        with self._lock:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _publish(self) -> EngineSnapshot:
        """Build and store a new snapshot. Caller holds the lock."""
        snapshot = EngineSnapshot(
            stats=self._aggregator.stats,
            top_sources=tuple(self._ranker.top(self._aggregator.source_counts())),
            log=self._log.entries(),
            filter_text=self._filter_text,
            last_sequence_number=self._sequence,
        )
        self._snapshot = snapshot

        for callback in list(self._subscribers):
            try:
                callback(snapshot)
            except Exception as e:
                logger.warning("snapshot_subscriber_failed", error=str(e), exc_info=True)

        return snapshot
