"""
Tests for the HTTP snapshot API.
"""

import threading

import dpkt
import pytest
from fastapi.testclient import TestClient

from velvest.analysis.models import Protocol
from velvest.api import routes
from velvest.config import Settings
from velvest.main import create_app

from test_decoder import TS, tcp_frame, udp_frame


@pytest.fixture
def client():
    app = create_app(Settings(log_capacity=10, top_n=3))
    with TestClient(app) as test_client:
        yield test_client


def feed(client: TestClient, records) -> None:
    pipeline = client.app.state.pipeline
    for record in records:
        pipeline.submit(record)
    pipeline.join()


class TestSnapshotRoutes:
    """Tests for the snapshot and log endpoints."""

    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        assert response.json()["pipeline_running"] is True

    def test_empty_snapshot(self, client):
        data = client.get("/api/snapshot").json()

        assert data["stats"] == {"total": 0, "tcp": 0, "udp": 0, "other": 0}
        assert data["top_sources"] == []
        assert data["log"] == []

    def test_snapshot_after_ingest(self, client, make_record):
        feed(client, [
            make_record(src_ip="10.0.0.1"),
            make_record(src_ip="10.0.0.1", transport=Protocol.UDP),
            make_record(src_ip="10.0.0.2"),
        ])
        data = client.get("/api/snapshot").json()

        assert data["stats"] == {"total": 3, "tcp": 2, "udp": 1, "other": 0}
        assert data["top_sources"][0] == {"address": "10.0.0.1", "count": 2}
        assert [e["sequence_number"] for e in data["log"]] == [1, 2, 3]

    def test_log_entry_detail(self, client, make_record):
        feed(client, [make_record(dst_port=22)])
        response = client.get("/api/log/0")

        assert response.status_code == 200
        body = response.json()
        assert body["sequence_number"] == 1
        assert body["detail"].startswith("[ ANALYSIS REPORT #1 ]")
        assert "WARNING / ANOMALY DETECTED" in body["detail"]

    def test_log_entry_not_found(self, client):
        response = client.get("/api/log/5")

        assert response.status_code == 404


class TestCommandRoutes:
    """Tests for the clear and filter commands."""

    def test_clear(self, client, make_record):
        feed(client, [make_record(), make_record()])
        response = client.post("/api/clear")

        assert response.status_code == 200
        assert response.json()["stats"]["total"] == 0
        assert client.get("/api/snapshot").json()["log"] == []

    def test_filter_applies_to_later_packets(self, client, make_record):
        response = client.put("/api/filter", json={"text": "udp"})
        assert response.status_code == 200

        feed(client, [
            make_record(transport=Protocol.TCP),
            make_record(transport=Protocol.UDP),
        ])
        data = client.get("/api/snapshot").json()

        assert data["filter"] == "udp"
        assert data["stats"]["total"] == 2
        assert len(data["log"]) == 1
        assert "Udp" in data["log"][0]["summary"]


class TestBackloggedQueue:
    """Commands against a full ingest queue fail fast with 503."""

    @pytest.fixture
    def blocked_client(self, monkeypatch, make_record):
        monkeypatch.setattr(routes, "COMMAND_TIMEOUT", 0.1)
        app = create_app(Settings(queue_size=1))
        with TestClient(app) as test_client:
            pipeline = test_client.app.state.pipeline
            entered = threading.Event()
            release = threading.Event()

            def subscriber(snapshot):
                entered.set()
                release.wait(5)

            test_client.app.state.engine.subscribe(subscriber)
            pipeline.submit(make_record())
            assert entered.wait(5)
            pipeline.submit(make_record())  # fills the queue
            try:
                yield test_client
            finally:
                release.set()

    def test_filter_on_full_queue(self, blocked_client):
        response = blocked_client.put("/api/filter", json={"text": "udp"})

        assert response.status_code == 503
        assert blocked_client.get("/health").status_code == 200

    def test_clear_on_full_queue(self, blocked_client):
        response = blocked_client.post("/api/clear")

        assert response.status_code == 503


class TestReplayRoute:
    """Tests for POST /api/replay."""

    def test_replay_feeds_pipeline(self, client, temp_pcap_dir):
        path = temp_pcap_dir / "replay.pcap"
        with open(path, "wb") as f:
            writer = dpkt.pcap.Writer(f)
            writer.writepkt(tcp_frame(src="10.0.0.1", dport=22), ts=TS)
            writer.writepkt(udp_frame(src="10.0.0.2"), ts=TS + 1)

        response = client.post("/api/replay", json={"path": str(path)})
        assert response.status_code == 202
        assert response.json()["status"] == "started"

        client.app.state.pipeline.join()
        data = client.get("/api/snapshot").json()

        assert data["stats"] == {"total": 2, "tcp": 1, "udp": 1, "other": 0}
        assert "SUSPICIOUS PORT" in data["log"][0]["summary"]

    def test_replay_missing_file(self, client, tmp_path):
        response = client.post("/api/replay", json={"path": str(tmp_path / "nope.pcap")})

        assert response.status_code == 404

    def test_replay_rejects_other_files(self, client, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_text("not a capture")

        response = client.post("/api/replay", json={"path": str(path)})

        assert response.status_code == 400
