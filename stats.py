"""Summary statistics over a caller's vehicles, readings and alerts."""

from __future__ import annotations

from typing import Dict, Iterable, List, Sequence

from enums import AlertType, HealthStatus
from health import round_half_up, status_for_score


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def vehicle_summary(vehicles: Iterable) -> Dict[str, object]:
    """Fleet size, mean health score and a count per status bucket."""
    scores = [vehicle.health_score for vehicle in vehicles]
    distribution = {status.value.lower(): 0 for status in HealthStatus}
    for score in scores:
        distribution[status_for_score(score).value.lower()] += 1

    return {
        "total_vehicles": len(scores),
        "avg_health_score": round_half_up(_mean(scores)),
        "health_distribution": distribution,
    }


def sensor_stats(readings: List) -> Dict[str, float | int]:
    """Averages over a window of readings; all zero for an empty window."""
    if not readings:
        return {
            "readings_analyzed": 0,
            "avg_rpm": 0,
            "avg_temperature": 0,
            "avg_battery": 0.0,
            "avg_fuel": 0,
            "avg_fuel_efficiency": 0.0,
        }

    return {
        "readings_analyzed": len(readings),
        "avg_rpm": round_half_up(_mean([r.rpm for r in readings])),
        "avg_temperature": round_half_up(_mean([r.temperature for r in readings])),
        "avg_battery": round(_mean([r.battery for r in readings]), 2),
        "avg_fuel": round_half_up(_mean([r.fuel for r in readings])),
        "avg_fuel_efficiency": round(_mean([r.fuel_efficiency for r in readings]), 1),
    }


def alert_counts(alerts: Iterable) -> Dict[str, int]:
    """Total, unread and unread-critical alert counts."""
    total = unread = critical = 0
    for alert in alerts:
        total += 1
        if not alert.is_read:
            unread += 1
            if alert.type == AlertType.CRITICAL.value:
                critical += 1
    return {"total": total, "unread": unread, "critical": critical}
