"""Tests for the threshold alert rules."""

from __future__ import annotations

from enums import AlertType
from alerts import AlertRule, AlertRuleEngine, evaluate_alerts, format_number
from health import SensorSnapshot


def _reading(**overrides) -> SensorSnapshot:
    values = dict(rpm=2000, temperature=80, battery=13.0, fuel=50)
    values.update(overrides)
    return SensorSnapshot(**values)


def test_normal_reading_raises_nothing():
    assert evaluate_alerts(_reading()) == []


def test_high_temperature_is_a_warning():
    events = evaluate_alerts(_reading(temperature=101))

    assert len(events) == 1
    assert events[0].type is AlertType.WARNING
    assert events[0].message == "Engine temperature above normal (101°C)"


def test_low_battery_is_critical():
    events = evaluate_alerts(_reading(battery=11.5))

    assert len(events) == 1
    assert events[0].type is AlertType.CRITICAL
    assert "11.5" in events[0].message


def test_low_fuel_is_a_warning():
    events = evaluate_alerts(_reading(fuel=5))

    assert [event.type for event in events] == [AlertType.WARNING]
    assert events[0].message == "Low fuel level (5%)"


def test_thresholds_are_strict():
    assert evaluate_alerts(_reading(temperature=100, battery=12, fuel=10)) == []


def test_rules_fire_independently_in_order():
    events = evaluate_alerts(_reading(temperature=105, battery=11.8, fuel=60))

    assert [event.type for event in events] == [AlertType.WARNING, AlertType.CRITICAL]
    assert "105" in events[0].message
    assert "11.8" in events[1].message


def test_all_three_rules_can_fire():
    events = evaluate_alerts(_reading(temperature=110, battery=10, fuel=1))

    assert len(events) == 3


def test_format_number_drops_trailing_zero():
    assert format_number(101.0) == "101"
    assert format_number(11.5) == "11.5"
    assert format_number(7) == "7"


def test_custom_rule_table():
    engine = AlertRuleEngine([
        AlertRule("overspeed", "speed", lambda kmh: kmh > 130, AlertType.INFO, "Speed {value} km/h"),
    ])

    events = engine.evaluate(_reading(speed=140.0, temperature=120))

    assert [(event.type, event.message) for event in events] == [(AlertType.INFO, "Speed 140 km/h")]
