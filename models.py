#!/usr/bin/env python3
"""
SQLAlchemy ORM Models
=====================

This file defines the database tables behind the vehicle health API.

THE TABLES:
-----------
- users:          API callers; each owns vehicles, alerts and appointments
- vehicles:       the scored entity (health_score + status always move together)
- sensor_readings: immutable telemetry samples, one row per reading
- alerts:         threshold breaches; only ``is_read`` ever changes
- appointments:   service bookings and their lifecycle status
- alert_outbox:   pending alert evaluations, one per ingested reading

WHY NO FOREIGN KEYS FROM READINGS/ALERTS TO VEHICLES?
-----------------------------------------------------
Readings, alerts and appointments reference their vehicle by plain id.
Deleting a vehicle leaves them in place: the store neither cascades nor
refuses the delete. Callers that need a clean sweep must remove the related
rows themselves.

TIMESTAMPS:
-----------
All timestamps are produced by ``utcnow()`` (UTC). SQLite stores them without
the zone, so values read back from SQLite are naive UTC datetimes.
"""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import Boolean, Column, Date, DateTime, Float, ForeignKey, Integer, String, Text

from database import Base
from enums import AppointmentStatus, HealthStatus


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class UserModel(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)

    # Sent by clients in the X-API-Key header
    api_key = Column(String, nullable=False, unique=True, index=True)

    created_at = Column(DateTime(timezone=True), default=utcnow)


class VehicleModel(Base):
    """
    Database model for a registered vehicle.

    health_score and status are derived values: they are written together by
    ``telemetry.apply_health`` and never independently.
    """
    __tablename__ = "vehicles"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)

    model = Column(String, nullable=False)
    engine_cc = Column(Integer, nullable=False)
    fuel_type = Column(String, nullable=False)

    # Kilometres; expected to only grow but not enforced
    odometer = Column(Float, nullable=False, default=0)
    last_service = Column(Date, nullable=False)

    health_score = Column(Integer, nullable=False, default=100)
    status = Column(String, nullable=False, default=HealthStatus.EXCELLENT.value)

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow)


class SensorReadingModel(Base):
    """One telemetry sample. Created once, never updated."""
    __tablename__ = "sensor_readings"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, nullable=False, index=True)

    # Engine RPM (revolutions per minute)
    rpm = Column(Integer, nullable=False)

    # Engine temperature in Celsius
    temperature = Column(Float, nullable=False)

    # Battery voltage in volts
    battery = Column(Float, nullable=False)

    # Fuel level as a percentage (0-100)
    fuel = Column(Float, nullable=False)

    # Kilometres per unit of fuel
    fuel_efficiency = Column(Float, nullable=False, default=15.0)

    # Vehicle speed in km/h
    speed = Column(Float, nullable=False, default=0.0)

    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)


class AlertModel(Base):
    __tablename__ = "alerts"

    id = Column(Integer, primary_key=True, index=True)
    vehicle_id = Column(Integer, nullable=False, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    type = Column(String, nullable=False)
    message = Column(Text, nullable=False)
    is_read = Column(Boolean, nullable=False, default=False)
    timestamp = Column(DateTime(timezone=True), default=utcnow, index=True)


class AppointmentModel(Base):
    __tablename__ = "appointments"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False, index=True)

    # Display label chosen when booking (defaults to the vehicle model)
    vehicle = Column(String, nullable=False)
    service = Column(String, nullable=False)
    date = Column(Date, nullable=False)
    time = Column(String, nullable=False)
    center = Column(String, nullable=False)

    status = Column(String, nullable=False, default=AppointmentStatus.SCHEDULED.value)
    cost = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)


class AlertOutboxModel(Base):
    """
    Pending alert evaluation for one stored reading.

    Written in the same transaction as the reading and the vehicle's new
    score; marked processed in the same transaction that inserts the alerts.
    """
    __tablename__ = "alert_outbox"

    id = Column(Integer, primary_key=True, index=True)
    reading_id = Column(Integer, nullable=False, index=True)
    vehicle_id = Column(Integer, nullable=False)
    user_id = Column(Integer, nullable=False)
    created_at = Column(DateTime(timezone=True), default=utcnow)
    processed_at = Column(DateTime(timezone=True), nullable=True, index=True)
    attempts = Column(Integer, nullable=False, default=0)
    last_error = Column(Text, nullable=True)
