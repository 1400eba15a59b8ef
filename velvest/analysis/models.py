"""
Velvest Data Models

Immutable value types passed between the capture boundary, the analysis
core and the presentation layer.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from velvest.exceptions import LogEntryNotFound


# =============================================================================
# Enums
# =============================================================================


class Protocol(str, Enum):
    """Transport classification supplied by the decoder."""

    TCP = "TCP"
    UDP = "UDP"
    ICMP = "ICMP"
    OTHER = "OTHER"


# =============================================================================
# Packet Record
# =============================================================================


@dataclass(frozen=True, slots=True)
class PacketRecord:
    """
    Decoded network-layer view of one captured frame.

    Produced by the capture collaborator; the core never sees raw bytes.
    """

    timestamp: datetime
    """Instant the frame arrived."""

    protocol_label: str
    """Human-readable protocol name (Tcp, Udp, Icmp, ...)."""

    source_address: str | None
    """Network-layer source address, None when the frame had no IP layer."""

    destination_address: str | None
    """Network-layer destination address."""

    transport: Protocol = Protocol.OTHER
    """Transport classification (TCP/UDP/ICMP/OTHER)."""

    time_to_live: int = 0
    """IPv4 TTL or IPv6 hop limit."""

    payload_length: int = 0
    """Frame size in bytes."""

    tcp_destination_port: int | None = None
    """Destination port, only present for TCP."""

    checksum_hex: str | None = None
    """IPv4 header checksum, only present for IPv4."""

    @property
    def has_network_layer(self) -> bool:
        """Check if the record has an identifiable source and destination."""
        return bool(self.source_address) and bool(self.destination_address)


# =============================================================================
# Aggregate State Views
# =============================================================================


@dataclass(frozen=True, slots=True)
class TrafficStats:
    """Running packet counters."""

    total: int = 0
    tcp: int = 0
    udp: int = 0

    @property
    def other(self) -> int:
        """Packets that were neither TCP nor UDP."""
        return self.total - self.tcp - self.udp


@dataclass(frozen=True, slots=True)
class SourceCount:
    """One ranked entry of the top-sources list."""

    address: str
    count: int


@dataclass(frozen=True, slots=True)
class LogEntry:
    """A retained activity log line together with its detail block."""

    sequence_number: int
    summary_line: str
    detail_text: str


@dataclass(frozen=True, slots=True)
class AlertResult:
    """Outcome of running the anomaly rules over one record."""

    is_suspicious: bool = False
    tag: str = ""
    """Concatenated alert tags in rule order, empty when nothing fired."""

    triggered_rules: tuple[str, ...] = ()
    """Names of the rules that fired."""


# =============================================================================
# Snapshot
# =============================================================================


@dataclass(frozen=True)
class EngineSnapshot:
    """
    Read-only view of the engine state for the presentation layer.

    Every collection is a tuple, so a snapshot can be handed to another
    thread while the engine keeps ingesting.
    """

    stats: TrafficStats = field(default_factory=TrafficStats)
    top_sources: tuple[SourceCount, ...] = ()
    log: tuple[LogEntry, ...] = ()
    filter_text: str = ""
    last_sequence_number: int = 0

    @property
    def log_view(self) -> tuple[tuple[int, str], ...]:
        """(sequence number, summary line) pairs in arrival order."""
        return tuple((entry.sequence_number, entry.summary_line) for entry in self.log)

    def entry(self, index: int) -> LogEntry:
        """
        Resolve a log position to its entry.

        Raises:
            LogEntryNotFound: If index is outside [0, len(log)).
        """
        if index < 0 or index >= len(self.log):
            raise LogEntryNotFound(index, len(self.log))
        return self.log[index]

    def detail(self, index: int) -> str:
        """Resolve a log position to its detail text."""
        return self.entry(index).detail_text

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "stats": {
                "total": self.stats.total,
                "tcp": self.stats.tcp,
                "udp": self.stats.udp,
                "other": self.stats.other,
            },
            "top_sources": [
                {"address": s.address, "count": s.count} for s in self.top_sources
            ],
            "log": [
                {"sequence_number": e.sequence_number, "summary": e.summary_line}
                for e in self.log
            ],
            "filter": self.filter_text,
            "last_sequence_number": self.last_sequence_number,
        }


@dataclass(frozen=True, slots=True)
class EngineEffect:
    """What a single ingest did."""

    sequence_number: int
    alert: AlertResult
    summary_line: str
    detail_text: str
    logged: bool
    """Whether the record passed the filter and entered the log."""

    snapshot: EngineSnapshot
