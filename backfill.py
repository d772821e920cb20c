"""Synthetic sensor readings for newly registered vehicles and the simulator.

New vehicles get a window of hourly readings so charts and averages have
something to show straight away. The values depend on the vehicle's engine
size and fuel type plus a uniform random jitter; the random source is
injected so a seeded ``random.Random`` reproduces the same history.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional

from enums import FuelType

DEFAULT_BACKFILL_HOURS = 48

# Onboarding score band; deliberately not derived from the generated readings.
INITIAL_SCORE_RANGE = (80, 99)


def base_rpm(engine_cc: int) -> int:
    if engine_cc < 1200:
        return 1500
    if engine_cc < 2000:
        return 2000
    return 2500


def base_fuel_efficiency(fuel_type: FuelType | str, engine_cc: int) -> float:
    fuel_type = FuelType(fuel_type)
    if fuel_type is FuelType.ELECTRIC:
        return 0.0
    if fuel_type is FuelType.HYBRID:
        return 18.0
    return 16.0 if engine_cc < 1500 else 13.0


class SyntheticReadingGenerator:
    """Generates plausible readings for a vehicle.

    Per sample: rpm is the engine-size base plus an integer offset in
    [-500, 500); fuel efficiency is the fuel-type base plus an offset in
    [-2, 2); temperature is a whole number of degrees in [75, 105); battery
    is in [12, 14.5) volts; fuel is an integer percentage in [0, 100); speed
    is an integer km/h in [0, 120).
    """

    def __init__(self, rng: Optional[random.Random] = None, hours: int = DEFAULT_BACKFILL_HOURS):
        self.rng = rng if rng is not None else random.Random()
        self.hours = hours

    def reading_for(self, engine_cc: int, fuel_type: FuelType | str) -> Dict[str, float | int]:
        rng = self.rng
        return {
            "rpm": base_rpm(engine_cc) + rng.randrange(-500, 500),
            "temperature": float(75 + rng.randrange(30)),
            "battery": 12 + rng.random() * 2.5,
            "fuel": float(rng.randrange(100)),
            "fuel_efficiency": base_fuel_efficiency(fuel_type, engine_cc) + rng.uniform(-2, 2),
            "speed": float(rng.randrange(120)),
        }

    def history(
        self,
        engine_cc: int,
        fuel_type: FuelType | str,
        now: Optional[datetime] = None,
    ) -> List[Dict[str, float | int | datetime]]:
        """Return ``self.hours`` hourly readings, oldest first, the last at ``now``."""
        if now is None:
            now = datetime.now(timezone.utc)

        readings = []
        for index in range(self.hours):
            reading = self.reading_for(engine_cc, fuel_type)
            reading["timestamp"] = now - timedelta(hours=self.hours - 1 - index)
            readings.append(reading)
        return readings

    def initial_score(self) -> int:
        low, high = INITIAL_SCORE_RANGE
        return self.rng.randint(low, high)
