"""
Tests for traffic counters and the top-sources ranking.
"""

import threading

from velvest.analysis.models import Protocol, SourceCount
from velvest.analysis.statistics import TopNRanker, TrafficStatsAggregator


class TestTrafficStatsAggregator:
    """Tests for TrafficStatsAggregator."""

    def test_counts_by_transport(self, make_record):
        agg = TrafficStatsAggregator()
        agg.record(make_record(transport=Protocol.TCP))
        agg.record(make_record(transport=Protocol.TCP))
        agg.record(make_record(transport=Protocol.UDP))
        agg.record(make_record(transport=Protocol.ICMP))
        agg.record(make_record(transport=Protocol.OTHER))

        stats = agg.stats
        assert stats.total == 5
        assert stats.tcp == 2
        assert stats.udp == 1
        assert stats.other == 2
        assert stats.total == stats.tcp + stats.udp + stats.other

    def test_source_counts_first_seen_order(self, make_record):
        agg = TrafficStatsAggregator()
        for ip in ["10.0.0.2", "10.0.0.1", "10.0.0.2"]:
            agg.record(make_record(src_ip=ip))

        assert agg.source_counts() == {"10.0.0.2": 2, "10.0.0.1": 1}
        assert list(agg.source_counts()) == ["10.0.0.2", "10.0.0.1"]
        assert agg.unique_sources == 2

    def test_source_counts_is_a_copy(self, make_record):
        agg = TrafficStatsAggregator()
        agg.record(make_record())

        table = agg.source_counts()
        table["10.0.0.1"] = 999

        assert agg.source_counts() == {"10.0.0.1": 1}

    def test_clear(self, make_record):
        agg = TrafficStatsAggregator()
        agg.record(make_record())
        agg.clear()

        assert agg.stats.total == 0
        assert agg.source_counts() == {}

    def test_concurrent_records_lose_nothing(self, make_record):
        """Increments from many threads must all land."""
        agg = TrafficStatsAggregator()
        record = make_record(src_ip="192.168.1.5", transport=Protocol.UDP)

        def worker():
            for _ in range(2000):
                agg.record(record)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert agg.stats.total == 16000
        assert agg.stats.udp == 16000
        assert agg.source_counts() == {"192.168.1.5": 16000}


class TestTopNRanker:
    """Tests for TopNRanker."""

    def test_descending_by_count(self):
        ranker = TopNRanker()
        table = {"a": 1, "b": 7, "c": 3}

        assert ranker.top(table) == [
            SourceCount("b", 7),
            SourceCount("c", 3),
            SourceCount("a", 1),
        ]

    def test_ties_keep_first_seen_order(self):
        """{A:5, B:5, C:3} -> A before B when A was seen first."""
        ranker = TopNRanker()

        assert ranker.top({"A": 5, "B": 5, "C": 3}, 2) == [SourceCount("A", 5), SourceCount("B", 5)]
        assert ranker.top({"B": 5, "A": 5, "C": 3}, 2) == [SourceCount("B", 5), SourceCount("A", 5)]

    def test_default_n_is_five(self):
        table = {f"10.0.0.{i}": i for i in range(1, 10)}

        top = TopNRanker().top(table)
        assert len(top) == 5
        assert top[0] == SourceCount("10.0.0.9", 9)

    def test_n_larger_than_table_returns_all(self):
        assert len(TopNRanker().top({"a": 1, "b": 2}, 50)) == 2

    def test_non_positive_n_returns_empty(self):
        assert TopNRanker().top({"a": 1}, 0) == []

    def test_does_not_mutate_table(self):
        table = {"a": 1, "b": 2}
        TopNRanker().top(table)

        assert table == {"a": 1, "b": 2}
        assert list(table) == ["a", "b"]
