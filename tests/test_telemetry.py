"""Tests for vehicle creation, reading ingestion and the alert outbox."""

from __future__ import annotations

import random
from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

import telemetry
from backfill import SyntheticReadingGenerator
from enums import FuelType, HealthStatus
from errors import NotFoundError
from models import AlertModel, AlertOutboxModel, SensorReadingModel, UserModel, VehicleModel
from schemas import ReadingIn, VehicleIn, VehicleUpdate


def _vehicle_in(**overrides) -> VehicleIn:
    values = dict(
        model="Toyota Camry",
        engine_cc=2000,
        fuel_type=FuelType.HYBRID,
        odometer=32000,
        last_service=date(2024, 11, 20),
    )
    values.update(overrides)
    return VehicleIn(**values)


def _reading_in(vehicle_id: int, **overrides) -> ReadingIn:
    values = dict(vehicle_id=vehicle_id, rpm=2000, temperature=80, battery=13.0, fuel=60)
    values.update(overrides)
    return ReadingIn(**values)


@pytest.fixture()
def vehicle(db, user):
    return telemetry.create_vehicle(db, user, _vehicle_in())


def test_create_vehicle_backfills_history(db, user):
    generator = SyntheticReadingGenerator(random.Random(5))

    vehicle = telemetry.create_vehicle(db, user, _vehicle_in(), generator=generator)

    readings = db.query(SensorReadingModel).filter_by(vehicle_id=vehicle.id).all()
    assert len(readings) == 48
    assert 80 <= vehicle.health_score <= 99
    assert vehicle.status in (HealthStatus.EXCELLENT.value, HealthStatus.GOOD.value)


def test_create_vehicle_without_generator_starts_perfect(db, user):
    vehicle = telemetry.create_vehicle(db, user, _vehicle_in())

    assert vehicle.health_score == 100
    assert vehicle.status == HealthStatus.EXCELLENT.value
    assert db.query(SensorReadingModel).count() == 0


def test_explicit_initial_score_wins_over_backfill(db, user):
    generator = SyntheticReadingGenerator(random.Random(5))

    vehicle = telemetry.create_vehicle(db, user, _vehicle_in(health_score=55), generator=generator)

    assert vehicle.health_score == 55
    assert vehicle.status == HealthStatus.FAIR.value


def test_ingest_rescores_vehicle_and_stores_alerts(db, user, vehicle):
    service = telemetry.TelemetryService(db)

    reading = service.ingest(vehicle, _reading_in(vehicle.id, rpm=4500, temperature=105, battery=11.8, fuel_efficiency=9))

    db.refresh(vehicle)
    assert vehicle.health_score == 60
    assert vehicle.status == HealthStatus.FAIR.value

    alerts = db.query(AlertModel).order_by(AlertModel.id).all()
    assert [alert.type for alert in alerts] == ["warning", "critical"]
    assert all(alert.vehicle_id == vehicle.id and alert.user_id == user.id for alert in alerts)

    entry = db.query(AlertOutboxModel).one()
    assert entry.reading_id == reading.id
    assert entry.processed_at is not None
    assert entry.attempts == 1


def test_ingest_applies_reading_defaults(db, vehicle):
    reading = telemetry.TelemetryService(db).ingest(vehicle, _reading_in(vehicle.id))

    assert reading.fuel_efficiency == 15.0
    assert reading.speed == 0.0
    assert reading.timestamp is not None


def test_explicit_zero_speed_and_efficiency_are_kept(db, vehicle):
    reading = telemetry.TelemetryService(db).ingest(
        vehicle, _reading_in(vehicle.id, speed=0, fuel_efficiency=0)
    )

    assert reading.fuel_efficiency == 0
    db.refresh(vehicle)
    assert vehicle.health_score == 90


def test_failed_dispatch_keeps_reading_and_score(db, vehicle, monkeypatch):
    """Alert storage failing leaves the entry pending; the reading still counts."""

    service = telemetry.TelemetryService(db)

    def broken_evaluate(reading):
        raise OperationalError("INSERT INTO alerts", {}, Exception("disk I/O error"))

    monkeypatch.setattr(service.alert_engine, "evaluate", broken_evaluate)

    service.ingest(vehicle, _reading_in(vehicle.id, temperature=101))

    db.refresh(vehicle)
    assert vehicle.health_score == 90
    assert db.query(SensorReadingModel).count() == 1
    assert db.query(AlertModel).count() == 0

    entry = db.query(AlertOutboxModel).one()
    assert entry.processed_at is None
    assert entry.attempts == 1
    assert "disk I/O error" in entry.last_error


def test_drain_outbox_retries_without_duplicates(db, vehicle, monkeypatch):
    service = telemetry.TelemetryService(db)
    original_evaluate = service.alert_engine.evaluate

    def broken_evaluate(reading):
        raise OperationalError("INSERT INTO alerts", {}, Exception("locked"))

    monkeypatch.setattr(service.alert_engine, "evaluate", broken_evaluate)
    service.ingest(vehicle, _reading_in(vehicle.id, temperature=101))
    monkeypatch.setattr(service.alert_engine, "evaluate", original_evaluate)

    assert len(service.pending_entries()) == 1
    assert service.drain_outbox() == 1
    assert service.drain_outbox() == 0

    alerts = db.query(AlertModel).all()
    assert len(alerts) == 1
    assert "101" in alerts[0].message
    assert db.query(AlertOutboxModel).one().attempts == 2


def test_update_vehicle_override_rederives_status(db, vehicle):
    updated = telemetry.update_vehicle(db, vehicle, VehicleUpdate(health_score=45, odometer=33000))

    assert updated.health_score == 45
    assert updated.status == HealthStatus.POOR.value
    assert updated.odometer == 33000


def test_update_vehicle_without_override_keeps_score(db, vehicle):
    updated = telemetry.update_vehicle(db, vehicle, VehicleUpdate(model="Camry SE"))

    assert updated.model == "Camry SE"
    assert updated.health_score == 100


def test_delete_vehicle_leaves_history(db, vehicle):
    telemetry.TelemetryService(db).ingest(vehicle, _reading_in(vehicle.id, battery=11))
    vehicle_id = vehicle.id

    telemetry.delete_vehicle(db, vehicle)

    assert db.get(VehicleModel, vehicle_id) is None
    assert db.query(SensorReadingModel).filter_by(vehicle_id=vehicle_id).count() == 1
    assert db.query(AlertModel).filter_by(vehicle_id=vehicle_id).count() == 1


def test_get_owned_vehicle_hides_foreign_vehicles(db, vehicle):
    stranger = UserModel(name="Other", email="other@example.com", api_key="other-key")
    db.add(stranger)
    db.commit()

    with pytest.raises(NotFoundError):
        telemetry.get_owned_vehicle(db, vehicle.id, stranger.id)
    with pytest.raises(NotFoundError):
        telemetry.get_owned_vehicle(db, 9999, vehicle.user_id)


def test_readings_since_is_oldest_first(db, user):
    vehicle = telemetry.create_vehicle(
        db, user, _vehicle_in(), generator=SyntheticReadingGenerator(random.Random(1))
    )

    readings = telemetry.readings_since(db, vehicle.id, 24)

    # the backfill spans 47 hours; only the last 24 hourly samples are in range
    assert len(readings) == 24
    stamps = [reading.timestamp for reading in readings]
    assert stamps == sorted(stamps)


def test_readings_since_caps_huge_windows(db, user):
    vehicle = telemetry.create_vehicle(
        db, user, _vehicle_in(), generator=SyntheticReadingGenerator(random.Random(1))
    )

    assert len(telemetry.readings_since(db, vehicle.id, 1e12)) == 48
