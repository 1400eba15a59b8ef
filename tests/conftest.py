"""
Velvest Test Configuration

Pytest fixtures and configuration for all tests.
"""

from datetime import datetime
from pathlib import Path

import pytest

from velvest.analysis.engine import AnalysisEngine, EngineConfig
from velvest.analysis.models import PacketRecord, Protocol


BASE_TIME = datetime(2025, 1, 22, 14, 3, 22, 125000)


def build_record(
    src_ip: str | None = "10.0.0.1",
    dst_ip: str | None = "10.0.0.99",
    transport: Protocol = Protocol.TCP,
    dst_port: int | None = 80,
    ttl: int = 64,
    length: int = 60,
    checksum: str | None = "0x1A2B",
    label: str | None = None,
) -> PacketRecord:
    """Build a PacketRecord with sensible defaults."""
    if label is None:
        label = transport.value.capitalize()
    return PacketRecord(
        timestamp=BASE_TIME,
        protocol_label=label,
        source_address=src_ip,
        destination_address=dst_ip,
        transport=transport,
        time_to_live=ttl,
        payload_length=length,
        tcp_destination_port=dst_port if transport == Protocol.TCP else None,
        checksum_hex=checksum,
    )


@pytest.fixture
def make_record():
    """Factory for PacketRecords."""
    return build_record


@pytest.fixture
def engine() -> AnalysisEngine:
    """Engine with default configuration."""
    return AnalysisEngine(EngineConfig())


@pytest.fixture
def temp_pcap_dir(tmp_path: Path) -> Path:
    """Create a temporary directory for test PCAP files."""
    pcap_dir = tmp_path / "pcaps"
    pcap_dir.mkdir()
    return pcap_dir
