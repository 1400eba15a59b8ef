"""
Velvest Capture Decoder

Adapter between dpkt and the analysis core. Turns Ethernet frames into
PacketRecord objects and replays pcap/pcapng files as a record source.
"""

import socket
from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

import dpkt
import structlog

from velvest.analysis.models import PacketRecord, Protocol
from velvest.exceptions import CaptureError

logger = structlog.get_logger(__name__)


# IP protocol numbers -> display label
IP_PROTOCOL_LABELS: dict[int, str] = {
    dpkt.ip.IP_PROTO_ICMP: "Icmp",
    dpkt.ip.IP_PROTO_IGMP: "Igmp",
    dpkt.ip.IP_PROTO_TCP: "Tcp",
    dpkt.ip.IP_PROTO_UDP: "Udp",
    dpkt.ip.IP_PROTO_GRE: "Gre",
    dpkt.ip.IP_PROTO_ESP: "Esp",
    dpkt.ip.IP_PROTO_ICMP6: "IcmpV6",
}


def decode_frame(timestamp: float, buf: bytes) -> PacketRecord | None:
    """
    Decode one Ethernet frame.

    Args:
        timestamp: Capture time as a Unix timestamp.
        buf: Raw frame bytes.

    Returns:
        PacketRecord, or None if the frame carries no IPv4/IPv6 packet.
    """
    eth = dpkt.ethernet.Ethernet(buf)
    arrived = datetime.fromtimestamp(timestamp)

    if isinstance(eth.data, dpkt.ip.IP):
        ip = eth.data
        return _build_record(
            arrived,
            buf,
            ip.data,
            proto_number=ip.p,
            src_ip=socket.inet_ntoa(ip.src),
            dst_ip=socket.inet_ntoa(ip.dst),
            ttl=ip.ttl,
            checksum_hex=f"0x{ip.sum:X}",
        )

    if isinstance(eth.data, dpkt.ip6.IP6):
        ip6 = eth.data
        return _build_record(
            arrived,
            buf,
            ip6.data,
            proto_number=ip6.nxt,
            src_ip=socket.inet_ntop(socket.AF_INET6, ip6.src),
            dst_ip=socket.inet_ntop(socket.AF_INET6, ip6.dst),
            ttl=ip6.hlim,
            checksum_hex=None,
        )

    return None


def _build_record(
    arrived: datetime,
    buf: bytes,
    transport_layer: object,
    proto_number: int,
    src_ip: str,
    dst_ip: str,
    ttl: int,
    checksum_hex: str | None,
) -> PacketRecord:
    """Classify the transport layer and assemble the record."""
    transport = Protocol.OTHER
    tcp_dport: int | None = None

    if isinstance(transport_layer, dpkt.tcp.TCP):
        transport = Protocol.TCP
        tcp_dport = transport_layer.dport
    elif isinstance(transport_layer, dpkt.udp.UDP):
        transport = Protocol.UDP
    elif isinstance(transport_layer, (dpkt.icmp.ICMP, dpkt.icmp6.ICMP6)):
        transport = Protocol.ICMP

    return PacketRecord(
        timestamp=arrived,
        protocol_label=IP_PROTOCOL_LABELS.get(proto_number, f"Proto{proto_number}"),
        source_address=src_ip,
        destination_address=dst_ip,
        transport=transport,
        time_to_live=ttl,
        payload_length=len(buf),
        tcp_destination_port=tcp_dport,
        checksum_hex=checksum_hex,
    )


def read_capture(file_path: Path) -> Iterator[PacketRecord]:
    """
    Replay a pcap/pcapng file as PacketRecords.

    Frames without an IP layer and frames dpkt cannot decode are skipped.

    Raises:
        CaptureError: If the file is missing or not a capture file.
    """
    if not file_path.exists():
        raise CaptureError(f"Capture file not found: {file_path}")

    logger.info("capture_replay_starting", file_path=str(file_path))

    frames = 0
    skipped = 0

    with open(file_path, "rb") as f:
        # Try PCAP format first
        try:
            reader = dpkt.pcap.Reader(f)
        except (ValueError, dpkt.dpkt.UnpackError):
            f.seek(0)
            try:
                reader = dpkt.pcapng.Reader(f)
            except (ValueError, dpkt.dpkt.UnpackError) as e:
                raise CaptureError(f"Unable to read capture file: {e}") from e

        for timestamp, buf in reader:
            frames += 1
            try:
                record = decode_frame(timestamp, buf)
            except (dpkt.dpkt.UnpackError, ValueError) as e:
                skipped += 1
                if skipped <= 10:  # Only log first 10 errors
                    logger.debug("frame_decode_error", error=str(e))
                continue

            if record is None:
                skipped += 1
                continue

            yield record

    logger.info("capture_replay_complete", frames=frames, skipped=skipped)
