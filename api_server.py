#!/usr/bin/env python3
"""
Vehicle Health Monitor API Server
=================================

FastAPI server that stores vehicle telemetry, keeps every vehicle's health
score up to date, raises threshold alerts and tracks service appointments.

HOW TO RUN:
-----------
    python3 main.py --serve

The server listens on ``VHM_API_HOST``:``VHM_API_PORT`` (0.0.0.0:8000 by
default). Interactive documentation lives at http://HOST:8000/docs

AUTHENTICATION:
---------------
Register once with POST /api/users to receive an API key, then send it in
the ``X-API-Key`` header. Every record is scoped to its owner: asking for a
vehicle, alert or appointment that belongs to someone else returns the same
404 as asking for one that does not exist.

WHAT HAPPENS WHEN A READING ARRIVES (POST /api/sensors):
--------------------------------------------------------
1. Pydantic validates the payload (ReadingIn)
2. The vehicle is looked up and ownership checked
3. The reading is stored and the vehicle rescored (health score + status)
4. The alert rules run on the same reading and any alerts are stored

Steps 3 and 4 commit separately; see telemetry.py for how a failed step 4
is retried.
"""

import logging
import random
import secrets
from contextlib import asynccontextmanager
from functools import lru_cache
from typing import List, Optional

from fastapi import APIRouter, Depends, FastAPI, Header, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from alerts import AlertRuleEngine
from appointments import AppointmentService
from backfill import SyntheticReadingGenerator
from database import get_db, init_db
from errors import DuplicateError, InvalidTransitionError, NotFoundError
from health import HealthScorer
from models import AlertModel, UserModel, VehicleModel
from schemas import (
    AlertCounts,
    AlertOut,
    AppHealthOK,
    AppointmentIn,
    AppointmentOut,
    AppointmentStatusUpdate,
    MessageResponse,
    ReadingIn,
    ReadingOut,
    SensorStats,
    UserCreated,
    UserIn,
    UserOut,
    VehicleHealthWindow,
    VehicleIn,
    VehicleOut,
    VehicleSummary,
    VehicleUpdate,
)
from settings import Settings, get_settings
import stats
import telemetry

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create missing tables before the first request."""
    init_db()
    logger.info("Database ready; %s accepting requests", get_settings().app_name)
    yield


app = FastAPI(
    title=get_settings().app_name,
    description="Vehicle telemetry, health scoring, alerts and service appointments",
    debug=get_settings().debug,
    lifespan=lifespan,
)


# -------------------------------------------------
# ERROR HANDLING
# -------------------------------------------------
# Missing and foreign records look identical (404). Store failures are
# logged and reported as a generic 500 with no retry.

@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"detail": str(exc)})


@app.exception_handler(InvalidTransitionError)
async def invalid_transition_handler(request: Request, exc: InvalidTransitionError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(DuplicateError)
async def duplicate_handler(request: Request, exc: DuplicateError):
    return JSONResponse(status_code=status.HTTP_409_CONFLICT, content={"detail": str(exc)})


@app.exception_handler(SQLAlchemyError)
async def persistence_error_handler(request: Request, exc: SQLAlchemyError):
    logger.error("Store failure on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Something went wrong!"},
    )


# -------------------------------------------------
# DEPENDENCIES
# -------------------------------------------------

@lru_cache
def shared_random(seed: Optional[int]) -> random.Random:
    return random.Random(seed)


def get_random(settings: Settings = Depends(get_settings)) -> random.Random:
    """
    Random source for backfills and appointment pricing.

    One generator per seed lives for the whole process, so successive vehicles
    and bookings get different values while a restart with the same
    ``VHM_RANDOM_SEED`` replays the same sequence.
    """
    return shared_random(settings.random_seed)


def get_scorer() -> HealthScorer:
    return HealthScorer()


def get_alert_engine() -> AlertRuleEngine:
    return AlertRuleEngine()


def get_current_user(
    x_api_key: Optional[str] = Header(default=None, alias="X-API-Key"),
    db: Session = Depends(get_db),
) -> UserModel:
    """Resolve the caller from the X-API-Key header."""
    if not x_api_key:
        raise HTTPException(status_code=401, detail="API key required")

    user = db.query(UserModel).filter(UserModel.api_key == x_api_key).first()
    if user is None:
        logger.warning("Rejected request with unknown API key")
        raise HTTPException(status_code=401, detail="Invalid API key")
    return user


def get_telemetry_service(
    db: Session = Depends(get_db),
    scorer: HealthScorer = Depends(get_scorer),
    alert_engine: AlertRuleEngine = Depends(get_alert_engine),
) -> telemetry.TelemetryService:
    return telemetry.TelemetryService(db, scorer=scorer, alert_engine=alert_engine)


def get_appointment_service(
    db: Session = Depends(get_db),
    rng: random.Random = Depends(get_random),
    settings: Settings = Depends(get_settings),
) -> AppointmentService:
    return AppointmentService(
        db, rng=rng, cost_min=settings.appointment_cost_min, cost_max=settings.appointment_cost_max
    )


# -------------------------------------------------
# BASIC ENDPOINTS
# -------------------------------------------------

@app.get("/health", response_model=AppHealthOK, tags=["meta"])
def health_check(settings: Settings = Depends(get_settings)):
    """Simple check that the API is running."""
    return AppHealthOK(status="ok", app=settings.app_name)


# -------------------------------------------------
# USERS
# -------------------------------------------------

users_router = APIRouter(prefix="/api/users", tags=["users"])


@users_router.post("", response_model=UserCreated, status_code=201)
def register_user(payload: UserIn, db: Session = Depends(get_db)):
    """
    Register a caller and hand out its API key.

    The key is only ever shown in this response.
    """
    if db.query(UserModel).filter(UserModel.email == payload.email).first() is not None:
        raise DuplicateError(f"Email {payload.email} is already registered")

    user = UserModel(name=payload.name, email=payload.email, api_key=secrets.token_urlsafe(32))
    db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Registered user %s", user.id)
    return user


@users_router.get("/me", response_model=UserOut)
def read_current_user(user: UserModel = Depends(get_current_user)):
    return user


# -------------------------------------------------
# VEHICLES
# -------------------------------------------------

vehicles_router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])


@vehicles_router.get("", response_model=List[VehicleOut])
def list_vehicles(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """All of the caller's vehicles, newest first."""
    return (
        db.query(VehicleModel)
        .filter(VehicleModel.user_id == user.id)
        .order_by(VehicleModel.created_at.desc(), VehicleModel.id.desc())
        .all()
    )


@vehicles_router.get("/stats/summary", response_model=VehicleSummary)
def vehicles_summary(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """Fleet size, average health score and how many vehicles sit in each bucket."""
    vehicles = db.query(VehicleModel).filter(VehicleModel.user_id == user.id).all()
    return stats.vehicle_summary(vehicles)


@vehicles_router.post("", response_model=VehicleOut, status_code=201)
def create_vehicle(
    payload: VehicleIn,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    rng: random.Random = Depends(get_random),
    scorer: HealthScorer = Depends(get_scorer),
    settings: Settings = Depends(get_settings),
):
    """
    Register a vehicle.

    The vehicle comes with ``backfill_hours`` hours of synthetic hourly
    readings so its charts are not empty on day one.
    """
    generator = SyntheticReadingGenerator(rng, hours=settings.backfill_hours)
    return telemetry.create_vehicle(db, user, payload, generator=generator, scorer=scorer)


@vehicles_router.get("/{vehicle_id}", response_model=VehicleOut)
def get_vehicle(vehicle_id: int, user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    return telemetry.get_owned_vehicle(db, vehicle_id, user.id)


@vehicles_router.put("/{vehicle_id}", response_model=VehicleOut)
def update_vehicle(
    vehicle_id: int,
    payload: VehicleUpdate,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    scorer: HealthScorer = Depends(get_scorer),
):
    """
    Update vehicle details.

    Sending ``health_score`` overrides the computed score; the status always
    follows the score and cannot be set on its own.
    """
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    return telemetry.update_vehicle(db, vehicle, payload, scorer=scorer)


@vehicles_router.delete("/{vehicle_id}", response_model=MessageResponse)
def delete_vehicle(vehicle_id: int, user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """
    Delete a vehicle.

    Its readings, alerts and appointments are NOT deleted with it.
    """
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    telemetry.delete_vehicle(db, vehicle)
    return MessageResponse(message="Vehicle removed")


@vehicles_router.get("/{vehicle_id}/health", response_model=VehicleHealthWindow)
def vehicle_health_window(
    vehicle_id: int,
    hours: Optional[float] = Query(default=None, gt=0, le=telemetry.MAX_WINDOW_HOURS),
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    scorer: HealthScorer = Depends(get_scorer),
    settings: Settings = Depends(get_settings),
):
    """
    Score the vehicle over its recent readings without changing it.

    The window score is the mean of the per-reading scores; the current
    score is whatever the vehicle holds now.
    """
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    window = hours or settings.sensor_window_hours
    readings = telemetry.readings_since(db, vehicle.id, window)
    result = scorer.score_window(readings)
    return VehicleHealthWindow(
        vehicle_id=vehicle.id,
        hours=window,
        readings_analyzed=len(readings),
        window_score=result.score,
        window_status=result.status,
        current_score=vehicle.health_score,
        current_status=vehicle.status,
    )


# -------------------------------------------------
# SENSOR READINGS
# -------------------------------------------------

sensors_router = APIRouter(prefix="/api/sensors", tags=["sensors"])


@sensors_router.post("", response_model=ReadingOut, status_code=201)
def create_reading(
    payload: ReadingIn,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    service: telemetry.TelemetryService = Depends(get_telemetry_service),
):
    """Store a reading, rescore its vehicle and raise any threshold alerts."""
    vehicle = telemetry.get_owned_vehicle(db, payload.vehicle_id, user.id)
    return service.ingest(vehicle, payload)


@sensors_router.get("/vehicle/{vehicle_id}", response_model=List[ReadingOut])
def list_readings(
    vehicle_id: int,
    hours: Optional[float] = Query(default=None, gt=0, le=telemetry.MAX_WINDOW_HOURS),
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Readings from the last ``hours`` hours (default 24), oldest first."""
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    return telemetry.readings_since(db, vehicle.id, hours or settings.sensor_window_hours)


@sensors_router.get("/stats/{vehicle_id}", response_model=SensorStats)
def reading_stats(
    vehicle_id: int,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """Average of each sensor over the last 24 hours."""
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    readings = telemetry.readings_since(db, vehicle.id, settings.sensor_window_hours)
    return stats.sensor_stats(readings)


# -------------------------------------------------
# ALERTS
# -------------------------------------------------

alerts_router = APIRouter(prefix="/api/alerts", tags=["alerts"])


def _owned_alert(db: Session, alert_id: int, user: UserModel) -> AlertModel:
    return telemetry.get_owned(db, AlertModel, alert_id, user.id, "Alert")


@alerts_router.get("", response_model=List[AlertOut])
def list_alerts(
    limit: Optional[int] = Query(default=None, ge=1, le=500),
    unread_only: bool = False,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    """The caller's alerts, newest first."""
    query = db.query(AlertModel).filter(AlertModel.user_id == user.id)
    if unread_only:
        query = query.filter(AlertModel.is_read.is_(False))
    return (
        query.order_by(AlertModel.timestamp.desc(), AlertModel.id.desc())
        .limit(limit or settings.alert_list_limit)
        .all()
    )


@alerts_router.get("/stats/count", response_model=AlertCounts)
def alert_count(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    """Total, unread and unread critical alerts."""
    alerts = db.query(AlertModel).filter(AlertModel.user_id == user.id).all()
    return stats.alert_counts(alerts)


@alerts_router.get("/vehicle/{vehicle_id}", response_model=List[AlertOut])
def list_vehicle_alerts(
    vehicle_id: int,
    user: UserModel = Depends(get_current_user),
    db: Session = Depends(get_db),
    settings: Settings = Depends(get_settings),
):
    vehicle = telemetry.get_owned_vehicle(db, vehicle_id, user.id)
    return (
        db.query(AlertModel)
        .filter(AlertModel.vehicle_id == vehicle.id, AlertModel.user_id == user.id)
        .order_by(AlertModel.timestamp.desc(), AlertModel.id.desc())
        .limit(settings.alert_list_limit)
        .all()
    )


@alerts_router.put("/read-all", response_model=MessageResponse)
def mark_all_alerts_read(user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    (
        db.query(AlertModel)
        .filter(AlertModel.user_id == user.id, AlertModel.is_read.is_(False))
        .update({AlertModel.is_read: True}, synchronize_session=False)
    )
    db.commit()
    return MessageResponse(message="All alerts marked as read")


@alerts_router.put("/{alert_id}/read", response_model=AlertOut)
def mark_alert_read(alert_id: int, user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    alert = _owned_alert(db, alert_id, user)
    alert.is_read = True
    db.commit()
    db.refresh(alert)
    return alert


@alerts_router.delete("/{alert_id}", response_model=MessageResponse)
def delete_alert(alert_id: int, user: UserModel = Depends(get_current_user), db: Session = Depends(get_db)):
    alert = _owned_alert(db, alert_id, user)
    db.delete(alert)
    db.commit()
    return MessageResponse(message="Alert deleted")


# -------------------------------------------------
# APPOINTMENTS
# -------------------------------------------------

appointments_router = APIRouter(prefix="/api/appointments", tags=["appointments"])


@appointments_router.get("", response_model=List[AppointmentOut])
def list_appointments(
    user: UserModel = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    return service.list_for(user)


@appointments_router.post("", response_model=AppointmentOut, status_code=201)
def book_appointment(
    payload: AppointmentIn,
    user: UserModel = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """Book a service; the quoted cost is drawn from the configured price band."""
    return service.book(user, payload)


@appointments_router.put("/{appointment_id}/status", response_model=AppointmentOut)
def update_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    user: UserModel = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    """
    Move an appointment to a new status.

    Scheduled -> Confirmed -> Completed, or -> Cancelled at any point before
    completion. Completing it sets the vehicle's last service date.
    """
    return service.set_status(user, appointment_id, payload.status)


@appointments_router.delete("/{appointment_id}", response_model=MessageResponse)
def delete_appointment(
    appointment_id: int,
    user: UserModel = Depends(get_current_user),
    service: AppointmentService = Depends(get_appointment_service),
):
    service.cancel_booking(user, appointment_id)
    return MessageResponse(message="Appointment deleted")


app.include_router(users_router)
app.include_router(vehicles_router)
app.include_router(sensors_router)
app.include_router(alerts_router)
app.include_router(appointments_router)


# Run the server when this file is executed directly
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("api_server:app", host=settings.api_host, port=settings.api_port, reload=False)
