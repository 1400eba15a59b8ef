"""
Tests for the dpkt capture decoding boundary.
"""

import socket
from pathlib import Path

import dpkt
import pytest

from velvest.analysis.engine import AnalysisEngine
from velvest.analysis.models import Protocol
from velvest.capture.decoder import decode_frame, read_capture
from velvest.exceptions import CaptureError


TS = 1737554602.5


def ethernet(payload: dpkt.Packet, eth_type: int = dpkt.ethernet.ETH_TYPE_IP) -> bytes:
    eth = dpkt.ethernet.Ethernet(
        src=b"\x00\x11\x22\x33\x44\x55",
        dst=b"\x66\x77\x88\x99\xaa\xbb",
        type=eth_type,
        data=payload,
    )
    return bytes(eth)


def ipv4_frame(
    transport: dpkt.Packet,
    proto: int,
    src: str = "192.168.1.100",
    dst: str = "10.0.0.5",
    ttl: int = 64,
) -> bytes:
    ip = dpkt.ip.IP(
        src=socket.inet_aton(src),
        dst=socket.inet_aton(dst),
        p=proto,
        ttl=ttl,
        data=transport,
    )
    return ethernet(ip)


def tcp_frame(dport: int = 443, **kwargs) -> bytes:
    tcp = dpkt.tcp.TCP(sport=49152, dport=dport, flags=dpkt.tcp.TH_SYN, data=b"")
    return ipv4_frame(tcp, dpkt.ip.IP_PROTO_TCP, **kwargs)


def udp_frame(payload: bytes = b"query", **kwargs) -> bytes:
    udp = dpkt.udp.UDP(sport=5353, dport=53, ulen=8 + len(payload), data=payload)
    return ipv4_frame(udp, dpkt.ip.IP_PROTO_UDP, **kwargs)


class TestDecodeFrame:
    """Tests for decode_frame."""

    def test_tcp_frame(self):
        buf = tcp_frame(dport=22, ttl=128)
        record = decode_frame(TS, buf)

        assert record is not None
        assert record.protocol_label == "Tcp"
        assert record.transport == Protocol.TCP
        assert record.source_address == "192.168.1.100"
        assert record.destination_address == "10.0.0.5"
        assert record.tcp_destination_port == 22
        assert record.time_to_live == 128
        assert record.payload_length == len(buf)

    def test_ipv4_checksum_rendered_as_hex(self):
        buf = tcp_frame()
        expected = dpkt.ethernet.Ethernet(buf).data.sum

        record = decode_frame(TS, buf)
        assert record.checksum_hex == f"0x{expected:X}"

    def test_udp_frame_has_no_tcp_port(self):
        record = decode_frame(TS, udp_frame())

        assert record.transport == Protocol.UDP
        assert record.protocol_label == "Udp"
        assert record.tcp_destination_port is None

    def test_icmp_frame(self):
        icmp = dpkt.icmp.ICMP(
            type=dpkt.icmp.ICMP_ECHO,
            data=dpkt.icmp.ICMP.Echo(id=1, seq=1, data=b"ping"),
        )
        record = decode_frame(TS, ipv4_frame(icmp, dpkt.ip.IP_PROTO_ICMP, ttl=3))

        assert record.transport == Protocol.ICMP
        assert record.protocol_label == "Icmp"
        assert record.time_to_live == 3

    def test_ipv6_frame_has_no_checksum(self):
        payload = b"v6"
        udp = dpkt.udp.UDP(sport=1000, dport=2000, ulen=8 + len(payload), data=payload)
        ip6 = dpkt.ip6.IP6(
            src=socket.inet_pton(socket.AF_INET6, "fe80::1"),
            dst=socket.inet_pton(socket.AF_INET6, "fe80::2"),
            nxt=dpkt.ip.IP_PROTO_UDP,
            hlim=5,
            plen=len(bytes(udp)),
            data=udp,
        )
        record = decode_frame(TS, ethernet(ip6, dpkt.ethernet.ETH_TYPE_IP6))

        assert record.source_address == "fe80::1"
        assert record.destination_address == "fe80::2"
        assert record.time_to_live == 5
        assert record.checksum_hex is None
        assert record.transport == Protocol.UDP

    def test_non_ip_frame_returns_none(self):
        arp = dpkt.arp.ARP()
        assert decode_frame(TS, ethernet(arp, dpkt.ethernet.ETH_TYPE_ARP)) is None

    def test_decoded_record_feeds_engine(self):
        engine = AnalysisEngine()
        effect = engine.ingest(decode_frame(TS, tcp_frame(dport=3306)))

        assert effect.alert.is_suspicious is True
        assert "SUSPICIOUS PORT ACCESS Tcp: 192.168.1.100 -> 10.0.0.5" in effect.summary_line


class TestReadCapture:
    """Tests for replaying capture files."""

    @pytest.fixture
    def capture_file(self, temp_pcap_dir: Path) -> Path:
        path = temp_pcap_dir / "sample.pcap"
        frames = [
            tcp_frame(src="10.0.0.1"),
            tcp_frame(src="10.0.0.1", dport=23),
            udp_frame(src="10.0.0.2"),
            ethernet(dpkt.arp.ARP(), dpkt.ethernet.ETH_TYPE_ARP),
        ]
        with open(path, "wb") as f:
            writer = dpkt.pcap.Writer(f)
            for i, buf in enumerate(frames):
                writer.writepkt(buf, ts=TS + i)
        return path

    def test_replays_ip_frames(self, capture_file):
        records = list(read_capture(capture_file))

        assert [r.source_address for r in records] == ["10.0.0.1", "10.0.0.1", "10.0.0.2"]
        assert records[1].tcp_destination_port == 23

    def test_missing_file(self, tmp_path):
        with pytest.raises(CaptureError):
            list(read_capture(tmp_path / "missing.pcap"))

    def test_not_a_capture_file(self, tmp_path):
        path = tmp_path / "junk.pcap"
        path.write_bytes(b"this is not a pcap file at all")

        with pytest.raises(CaptureError):
            list(read_capture(path))
