"""Tests for the summary statistics helpers."""

from __future__ import annotations

from types import SimpleNamespace

import stats


def test_vehicle_summary_buckets_and_mean():
    vehicles = [SimpleNamespace(health_score=score) for score in (95, 90, 75, 55, 20)]

    summary = stats.vehicle_summary(vehicles)

    assert summary == {
        "total_vehicles": 5,
        "avg_health_score": 67,
        "health_distribution": {"excellent": 2, "good": 1, "fair": 1, "poor": 1},
    }


def test_vehicle_summary_rounds_halves_up():
    vehicles = [SimpleNamespace(health_score=84), SimpleNamespace(health_score=85)]

    assert stats.vehicle_summary(vehicles)["avg_health_score"] == 85


def test_vehicle_summary_empty_fleet():
    summary = stats.vehicle_summary([])

    assert summary["total_vehicles"] == 0
    assert summary["avg_health_score"] == 0
    assert set(summary["health_distribution"].values()) == {0}


def test_sensor_stats_rounding():
    readings = [
        SimpleNamespace(rpm=2000, temperature=80.4, battery=12.345, fuel=40, fuel_efficiency=14.26),
        SimpleNamespace(rpm=2501, temperature=90.0, battery=13.0, fuel=51, fuel_efficiency=15.0),
    ]

    result = stats.sensor_stats(readings)

    assert result == {
        "readings_analyzed": 2,
        "avg_rpm": 2251,
        "avg_temperature": 85,
        "avg_battery": 12.67,
        "avg_fuel": 46,
        "avg_fuel_efficiency": 14.6,
    }


def test_sensor_stats_empty_window_is_zero():
    result = stats.sensor_stats([])

    assert result["readings_analyzed"] == 0
    assert all(value == 0 for value in result.values())


def test_alert_counts_only_unread_criticals():
    alerts = [
        SimpleNamespace(type="critical", is_read=False),
        SimpleNamespace(type="critical", is_read=True),
        SimpleNamespace(type="warning", is_read=False),
        SimpleNamespace(type="info", is_read=True),
    ]

    assert stats.alert_counts(alerts) == {"total": 4, "unread": 2, "critical": 1}
