"""
Velvest Anomaly Rules

Per-packet rule evaluation. Each rule is an independent predicate over a
PacketRecord paired with the alert tag it contributes; the engine runs them
in a fixed order and ORs the results.
"""

from collections.abc import Callable, Iterable
from dataclasses import dataclass

import structlog

from velvest.analysis.models import AlertResult, PacketRecord

logger = structlog.get_logger(__name__)


DEFAULT_SUSPICIOUS_PORTS: frozenset[int] = frozenset({21, 22, 23, 3306, 3389})
DEFAULT_LOW_TTL_THRESHOLD = 10

SUSPICIOUS_PORT_TAG = "[!] ALERT: SUSPICIOUS PORT ACCESS "
LOW_TTL_TAG = "[!] ALERT: UNUSUAL TTL VALUE "

_NO_ALERT = AlertResult()


@dataclass(frozen=True, slots=True)
class AnomalyRule:
    """A named predicate over a PacketRecord."""

    name: str
    """Identifier reported in AlertResult.triggered_rules."""

    tag: str
    """Text prepended to the summary line when the rule fires."""

    predicate: Callable[[PacketRecord], bool]

    def matches(self, record: PacketRecord) -> bool:
        return self.predicate(record)


def suspicious_port_rule(ports: Iterable[int] = DEFAULT_SUSPICIOUS_PORTS) -> AnomalyRule:
    """Fires when a TCP record targets a denylisted destination port."""
    denylist = frozenset(ports)

    def _check(record: PacketRecord) -> bool:
        port = record.tcp_destination_port
        return port is not None and port in denylist

    return AnomalyRule(name="suspicious_port", tag=SUSPICIOUS_PORT_TAG, predicate=_check)


def low_ttl_rule(threshold: int = DEFAULT_LOW_TTL_THRESHOLD) -> AnomalyRule:
    """Fires when the TTL is below the threshold."""

    def _check(record: PacketRecord) -> bool:
        return record.time_to_live < threshold

    return AnomalyRule(name="low_ttl", tag=LOW_TTL_TAG, predicate=_check)


def default_rules(
    ports: Iterable[int] = DEFAULT_SUSPICIOUS_PORTS,
    ttl_threshold: int = DEFAULT_LOW_TTL_THRESHOLD,
) -> list[AnomalyRule]:
    """The stock rule set: suspicious port first, then low TTL."""
    return [suspicious_port_rule(ports), low_ttl_rule(ttl_threshold)]


class AnomalyRuleEngine:
    """
    Stateless evaluator for an ordered list of anomaly rules.

    Adding a rule means passing another AnomalyRule; the ingestion path
    does not change.
    """

    def __init__(self, rules: Iterable[AnomalyRule] | None = None):
        """
        Initialize the rule engine.

        Args:
            rules: Rules in evaluation order. Defaults to default_rules().
        """
        self._rules: tuple[AnomalyRule, ...] = tuple(
            default_rules() if rules is None else rules
        )

    @property
    def rules(self) -> tuple[AnomalyRule, ...]:
        return self._rules

    @property
    def rule_names(self) -> list[str]:
        return [rule.name for rule in self._rules]

    def evaluate(self, record: PacketRecord) -> AlertResult:
        """
        Run every rule against a record.

        Returns:
            AlertResult with the concatenated tags of all rules that fired.
        """
        fired = [rule for rule in self._rules if rule.matches(record)]
        if not fired:
            return _NO_ALERT

        result = AlertResult(
            is_suspicious=True,
            tag="".join(rule.tag for rule in fired),
            triggered_rules=tuple(rule.name for rule in fired),
        )
        logger.debug(
            "anomaly_detected",
            src_ip=record.source_address,
            dst_ip=record.destination_address,
            rules=list(result.triggered_rules),
        )
        return result
