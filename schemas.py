#!/usr/bin/env python3
"""
Pydantic Models for the Vehicle Health API
==========================================

This file defines the data structures (schemas) for our API using Pydantic.

WHY SEPARATE INPUT vs OUTPUT MODELS?
-------------------------------------
Input models (``*In``, ``*Update``) describe what callers may send and carry
all request validation: a reading with a negative RPM or a fuel level of
120% is rejected here with a 422 before it reaches the scoring engine.
Output models (``*Out``) describe what the API returns; they read straight
from ORM objects thanks to ``from_attributes``.

Derived fields (a vehicle's status, an appointment's cost) appear only on the
output side: callers can never send them.
"""

from __future__ import annotations

import datetime as dt
from datetime import date, datetime, timezone
from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, field_validator

from enums import AlertType, AppointmentStatus, FuelType, HealthStatus

NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class ORMModel(BaseModel):
    model_config = ConfigDict(from_attributes=True)


# -------------------------------------------------
# META
# -------------------------------------------------

class AppHealthOK(BaseModel):
    status: str
    app: str


class MessageResponse(BaseModel):
    message: str


# -------------------------------------------------
# USERS
# -------------------------------------------------

class UserIn(BaseModel):
    name: NonEmptyStr
    email: Annotated[str, StringConstraints(strip_whitespace=True, to_lower=True,
                                            pattern=r"^[^@\s]+@[^@\s]+\.[^@\s]+$")]


class UserOut(ORMModel):
    id: int
    name: str
    email: str
    created_at: datetime


class UserCreated(UserOut):
    """Returned once at registration; the only response that shows the key."""
    api_key: str


# -------------------------------------------------
# VEHICLES
# -------------------------------------------------

class VehicleIn(BaseModel):
    """
    Payload for registering a vehicle.

    ``health_score`` is an optional starting score; when omitted the vehicle
    takes the score assigned after its synthetic history is generated.
    """
    model: NonEmptyStr
    engine_cc: int = Field(gt=0)
    fuel_type: FuelType
    odometer: float = Field(default=0, ge=0)
    last_service: date
    health_score: Optional[int] = Field(default=None, ge=0, le=100)


class VehicleUpdate(BaseModel):
    """Partial update. A health_score here is an explicit override."""
    model: Optional[NonEmptyStr] = None
    engine_cc: Optional[int] = Field(default=None, gt=0)
    fuel_type: Optional[FuelType] = None
    odometer: Optional[float] = Field(default=None, ge=0)
    last_service: Optional[date] = None
    health_score: Optional[int] = Field(default=None, ge=0, le=100)


class VehicleOut(ORMModel):
    id: int
    model: str
    engine_cc: int
    fuel_type: FuelType
    odometer: float
    last_service: date
    health_score: int
    status: HealthStatus
    created_at: datetime
    updated_at: datetime


class HealthDistribution(BaseModel):
    excellent: int
    good: int
    fair: int
    poor: int


class VehicleSummary(BaseModel):
    total_vehicles: int
    avg_health_score: int
    health_distribution: HealthDistribution


class VehicleHealthWindow(BaseModel):
    """Score computed over a window of stored readings (read-only)."""
    vehicle_id: int
    hours: float
    readings_analyzed: int
    window_score: int
    window_status: HealthStatus
    current_score: int
    current_status: HealthStatus


# -------------------------------------------------
# SENSOR READINGS
# -------------------------------------------------

class ReadingIn(BaseModel):
    """
    Model for incoming sensor readings.

    fuel_efficiency and speed fall back to 15 and 0 when they are left out;
    timestamp falls back to the time the reading is received. Timestamps are
    stored in UTC: an offset is converted, a naive value is taken as UTC.
    """
    vehicle_id: int
    rpm: int = Field(ge=0)
    temperature: float
    battery: float
    fuel: float = Field(ge=0, le=100)
    fuel_efficiency: Optional[float] = None
    speed: Optional[float] = Field(default=None, ge=0)
    timestamp: Optional[datetime] = None

    @field_validator("timestamp")
    @classmethod
    def to_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)


class ReadingOut(ORMModel):
    id: int
    vehicle_id: int
    rpm: int
    temperature: float
    battery: float
    fuel: float
    fuel_efficiency: float
    speed: float
    timestamp: datetime


class SensorStats(BaseModel):
    readings_analyzed: int
    avg_rpm: int
    avg_temperature: int
    avg_battery: float
    avg_fuel: int
    avg_fuel_efficiency: float


# -------------------------------------------------
# ALERTS
# -------------------------------------------------

class AlertOut(ORMModel):
    id: int
    vehicle_id: int
    user_id: int
    type: AlertType
    message: str
    is_read: bool
    timestamp: datetime


class AlertCounts(BaseModel):
    total: int
    unread: int
    critical: int


# -------------------------------------------------
# APPOINTMENTS
# -------------------------------------------------

class AppointmentIn(BaseModel):
    vehicle_id: int
    vehicle: Optional[NonEmptyStr] = None
    service: NonEmptyStr
    date: dt.date
    time: NonEmptyStr
    center: NonEmptyStr


class AppointmentStatusUpdate(BaseModel):
    status: AppointmentStatus


class AppointmentOut(ORMModel):
    id: int
    vehicle_id: int
    vehicle: str
    service: str
    date: dt.date
    time: str
    center: str
    status: AppointmentStatus
    cost: int
    created_at: datetime
