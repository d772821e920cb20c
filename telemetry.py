"""Vehicle lifecycle and reading ingestion.

INGESTING A READING:
--------------------
``TelemetryService.ingest`` runs two steps, each in its own transaction:

1. ``record_reading`` stores the reading, rescores the vehicle (score and
   status together) and queues an ``alert_outbox`` entry.
2. ``dispatch`` evaluates the alert rules for the queued reading, stores the
   alerts and marks the entry processed.

If step 2 fails, the reading and the new score are already committed; the
entry stays pending with its error recorded and ``drain_outbox`` retries it
later. Alerts and the processed mark commit together, so a retry never
stores the same alerts twice.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alerts import AlertRuleEngine
from backfill import SyntheticReadingGenerator
from errors import NotFoundError
from health import HealthResult, HealthScorer
from models import (
    AlertModel,
    AlertOutboxModel,
    SensorReadingModel,
    UserModel,
    VehicleModel,
    utcnow,
)
from schemas import ReadingIn, VehicleIn, VehicleUpdate

logger = logging.getLogger(__name__)

DEFAULT_SPEED = 0.0
DEFAULT_FUEL_EFFICIENCY = 15.0

# Largest look-back accepted for reading windows (ten years).
MAX_WINDOW_HOURS = 24 * 365 * 10


# -------------------------------------------------
# OWNERSHIP
# -------------------------------------------------

def get_owned(db: Session, model, entity_id: int, user_id: int, entity: str):
    """Fetch a row owned by ``user_id``; absent and foreign rows both raise."""
    row = db.get(model, entity_id)
    if row is None or row.user_id != user_id:
        raise NotFoundError(entity)
    return row


def get_owned_vehicle(db: Session, vehicle_id: int, user_id: int) -> VehicleModel:
    return get_owned(db, VehicleModel, vehicle_id, user_id, "Vehicle")


# -------------------------------------------------
# VEHICLE AGGREGATE
# -------------------------------------------------

def apply_health(vehicle: VehicleModel, result: HealthResult, now: Optional[datetime] = None) -> None:
    """The single place where a vehicle's score and status are written."""
    vehicle.health_score = result.score
    vehicle.status = result.status.value
    vehicle.updated_at = now or utcnow()


def create_vehicle(
    db: Session,
    user: UserModel,
    payload: VehicleIn,
    generator: Optional[SyntheticReadingGenerator] = None,
    scorer: Optional[HealthScorer] = None,
) -> VehicleModel:
    """Register a vehicle and, when a generator is given, backfill its history.

    The vehicle's score after backfill is the explicit ``health_score`` from
    the payload if there is one, otherwise the generator's onboarding score.
    Neither is derived from the generated readings.
    """
    scorer = scorer or HealthScorer()
    now = utcnow()

    vehicle = VehicleModel(
        user_id=user.id,
        model=payload.model,
        engine_cc=payload.engine_cc,
        fuel_type=payload.fuel_type.value,
        odometer=payload.odometer,
        last_service=payload.last_service,
        created_at=now,
    )
    apply_health(vehicle, HealthResult(100, scorer.status_for(100)), now)
    db.add(vehicle)
    db.flush()

    if generator is not None:
        history = generator.history(vehicle.engine_cc, vehicle.fuel_type, now=now)
        db.add_all(SensorReadingModel(vehicle_id=vehicle.id, **sample) for sample in history)
        score = generator.initial_score()
        logger.info("Backfilled %d readings for vehicle %s", len(history), vehicle.id)
    else:
        score = 100

    if payload.health_score is not None:
        score = payload.health_score
    apply_health(vehicle, HealthResult(score, scorer.status_for(score)), now)

    db.commit()
    db.refresh(vehicle)
    return vehicle


def update_vehicle(
    db: Session,
    vehicle: VehicleModel,
    payload: VehicleUpdate,
    scorer: Optional[HealthScorer] = None,
) -> VehicleModel:
    """Apply a partial update. A health_score override re-derives the status."""
    scorer = scorer or HealthScorer()
    changes = payload.model_dump(exclude_none=True)
    override = changes.pop("health_score", None)

    if "fuel_type" in changes:
        changes["fuel_type"] = changes["fuel_type"].value
    for field, value in changes.items():
        setattr(vehicle, field, value)

    if override is not None:
        logger.info("Health score of vehicle %s overridden to %s", vehicle.id, override)
        apply_health(vehicle, HealthResult(override, scorer.status_for(override)))
    else:
        vehicle.updated_at = utcnow()

    db.commit()
    db.refresh(vehicle)
    return vehicle


def delete_vehicle(db: Session, vehicle: VehicleModel) -> None:
    # Readings, alerts and appointments of the vehicle are left in place.
    db.delete(vehicle)
    db.commit()


def readings_since(db: Session, vehicle_id: int, hours: float) -> List[SensorReadingModel]:
    """Readings of a vehicle from the last ``hours`` hours, oldest first.

    Windows longer than ``MAX_WINDOW_HOURS`` are cut down to it.
    """
    cutoff = utcnow() - timedelta(hours=min(hours, MAX_WINDOW_HOURS))
    return (
        db.query(SensorReadingModel)
        .filter(SensorReadingModel.vehicle_id == vehicle_id)
        .filter(SensorReadingModel.timestamp >= cutoff)
        .order_by(SensorReadingModel.timestamp.asc(), SensorReadingModel.id.asc())
        .all()
    )


# -------------------------------------------------
# READING INGESTION
# -------------------------------------------------

class TelemetryService:
    def __init__(
        self,
        db: Session,
        scorer: Optional[HealthScorer] = None,
        alert_engine: Optional[AlertRuleEngine] = None,
    ):
        self.db = db
        self.scorer = scorer or HealthScorer()
        self.alert_engine = alert_engine or AlertRuleEngine()

    def ingest(self, vehicle: VehicleModel, payload: ReadingIn) -> SensorReadingModel:
        reading, entry = self.record_reading(vehicle, payload)
        self.dispatch(entry)
        return reading

    def record_reading(
        self, vehicle: VehicleModel, payload: ReadingIn
    ) -> Tuple[SensorReadingModel, AlertOutboxModel]:
        now = utcnow()
        reading = SensorReadingModel(
            vehicle_id=vehicle.id,
            rpm=payload.rpm,
            temperature=payload.temperature,
            battery=payload.battery,
            fuel=payload.fuel,
            fuel_efficiency=(
                payload.fuel_efficiency
                if payload.fuel_efficiency is not None
                else DEFAULT_FUEL_EFFICIENCY
            ),
            speed=payload.speed if payload.speed is not None else DEFAULT_SPEED,
            timestamp=payload.timestamp or now,
        )
        self.db.add(reading)
        self.db.flush()

        result = self.scorer.compute(reading)
        apply_health(vehicle, result, now)

        entry = AlertOutboxModel(
            reading_id=reading.id,
            vehicle_id=vehicle.id,
            user_id=vehicle.user_id,
            created_at=now,
        )
        self.db.add(entry)
        self.db.commit()
        self.db.refresh(reading)

        logger.debug(
            "Vehicle %s rescored to %s (%s) from reading %s",
            vehicle.id, result.score, result.status.value, reading.id,
        )
        return reading, entry

    def dispatch(self, entry: AlertOutboxModel) -> List[AlertModel]:
        """Evaluate and store the alerts for one outbox entry."""
        entry_id = entry.id
        try:
            reading = self.db.get(SensorReadingModel, entry.reading_id)
            alerts = []
            if reading is None:
                logger.warning("Outbox entry %s points at missing reading %s", entry_id, entry.reading_id)
            else:
                for event in self.alert_engine.evaluate(reading):
                    alert = AlertModel(
                        vehicle_id=entry.vehicle_id,
                        user_id=entry.user_id,
                        type=event.type.value,
                        message=event.message,
                    )
                    self.db.add(alert)
                    alerts.append(alert)
            entry.attempts += 1
            entry.processed_at = utcnow()
            entry.last_error = None
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            logger.exception("Alert dispatch failed for outbox entry %s", entry_id)
            self._record_failure(entry_id, exc)
            return []

        if alerts:
            logger.info("Stored %d alert(s) for vehicle %s", len(alerts), entry.vehicle_id)
        return alerts

    def _record_failure(self, entry_id: int, exc: Exception) -> None:
        try:
            entry = self.db.get(AlertOutboxModel, entry_id)
            if entry is not None:
                entry.attempts += 1
                entry.last_error = str(exc)[:500]
                self.db.commit()
        except SQLAlchemyError:
            self.db.rollback()
            logger.exception("Could not record failure on outbox entry %s", entry_id)

    def pending_entries(self, limit: int = 100) -> List[AlertOutboxModel]:
        return (
            self.db.query(AlertOutboxModel)
            .filter(AlertOutboxModel.processed_at.is_(None))
            .order_by(AlertOutboxModel.id.asc())
            .limit(limit)
            .all()
        )

    def drain_outbox(self, limit: int = 100) -> int:
        """Retry pending outbox entries. Returns how many were processed."""
        processed = 0
        for entry in self.pending_entries(limit):
            self.dispatch(entry)
            if entry.processed_at is not None:
                processed += 1
        return processed
