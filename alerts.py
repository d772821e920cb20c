"""Threshold alerts raised from a single sensor reading.

Every rule is checked against the raw reading, independently of the health
score and of the other rules. Nothing is deduplicated: a reading that crosses
a threshold always yields a new alert, even when an identical unread alert
already exists for the vehicle.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Sequence, Tuple

from enums import AlertType

logger = logging.getLogger(__name__)


class AlertEvent(NamedTuple):
    type: AlertType
    message: str


def format_number(value: float) -> str:
    """Render a reading value for a message: 101.0 -> "101", 11.5 -> "11.5"."""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class AlertRule:
    name: str
    field: str
    predicate: Callable[[float], bool]
    type: AlertType
    template: str

    def check(self, reading) -> AlertEvent | None:
        value = getattr(reading, self.field)
        if not self.predicate(value):
            return None
        return AlertEvent(self.type, self.template.format(value=format_number(value)))


# Evaluation order is the order alerts are stored and displayed in.
DEFAULT_ALERT_RULES: Tuple[AlertRule, ...] = (
    AlertRule(
        "high_temperature", "temperature", lambda celsius: celsius > 100,
        AlertType.WARNING, "Engine temperature above normal ({value}°C)",
    ),
    AlertRule(
        "low_battery", "battery", lambda volts: volts < 12,
        AlertType.CRITICAL, "Low battery voltage ({value}V)",
    ),
    AlertRule(
        "low_fuel", "fuel", lambda percent: percent < 10,
        AlertType.WARNING, "Low fuel level ({value}%)",
    ),
)


class AlertRuleEngine:
    def __init__(self, rules: Sequence[AlertRule] = DEFAULT_ALERT_RULES):
        self.rules = tuple(rules)

    def evaluate(self, reading) -> List[AlertEvent]:
        events = []
        for rule in self.rules:
            event = rule.check(reading)
            if event is not None:
                logger.debug("Rule %s fired: %s", rule.name, event.message)
                events.append(event)
        return events


_default_engine = AlertRuleEngine()


def evaluate_alerts(reading) -> List[AlertEvent]:
    """Evaluate a reading against the default alert rules."""
    return _default_engine.evaluate(reading)
