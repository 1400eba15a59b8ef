"""
Velvest Analysis Module

Core analysis components: models, anomaly rules, statistics, the activity
log, the engine and its ingestion pipeline.
"""

from velvest.analysis.activity_log import BoundedActivityLog, text_filter
from velvest.analysis.engine import AnalysisEngine, EngineConfig
from velvest.analysis.models import (
    AlertResult,
    EngineEffect,
    EngineSnapshot,
    LogEntry,
    PacketRecord,
    Protocol,
    SourceCount,
    TrafficStats,
)
from velvest.analysis.pipeline import IngestPipeline
from velvest.analysis.rules import AnomalyRule, AnomalyRuleEngine, default_rules
from velvest.analysis.statistics import TopNRanker, TrafficStatsAggregator

__all__ = [
    "PacketRecord",
    "Protocol",
    "TrafficStats",
    "SourceCount",
    "LogEntry",
    "AlertResult",
    "EngineSnapshot",
    "EngineEffect",
    "AnomalyRule",
    "AnomalyRuleEngine",
    "default_rules",
    "TrafficStatsAggregator",
    "TopNRanker",
    "BoundedActivityLog",
    "text_filter",
    "AnalysisEngine",
    "EngineConfig",
    "IngestPipeline",
]
