"""Command-line entry point: run the API, seed demo data, simulate readings."""

from __future__ import annotations

import argparse
import logging
import random
import signal
import time
from datetime import date, datetime, timedelta, timezone
from typing import List, Optional, Tuple

from sqlalchemy.orm import Session

from api_client import ApiClientError, VehicleHealthClient
from backfill import SyntheticReadingGenerator
from database import Base, SessionLocal, engine, init_db
from enums import AlertType, FuelType
from health import status_for_score
from models import AlertModel, SensorReadingModel, UserModel, VehicleModel
from settings import get_settings
from telemetry import TelemetryService

LOG_PREFIX_SYSTEM = "SYSTEM"
LOG_PREFIX_SEED = "SEED"
LOG_PREFIX_SIM = "SIM"
LOG_PREFIX_OUTBOX = "OUTBOX"
LOG_PREFIX_WARN = "WARN"
LOG_PREFIX_ERROR = "ERROR"

DEMO_EMAIL = "demo@example.com"
SEED_HOURS = 24

DEMO_VEHICLES = [
    # model, engine_cc, fuel_type, odometer, last_service, health_score
    ("Honda Civic", 1500, FuelType.PETROL, 45000, date(2024, 10, 15), 85),
    ("Toyota Camry", 2000, FuelType.HYBRID, 32000, date(2024, 11, 20), 92),
    ("Ford Mustang", 5000, FuelType.PETROL, 28000, date(2024, 9, 10), 78),
]

# vehicle index, type, message, hours ago
DEMO_ALERTS = [
    (0, AlertType.WARNING, "Engine temperature above normal", 2),
    (1, AlertType.INFO, "Service due in 500 km", 24),
    (2, AlertType.CRITICAL, "Low battery voltage detected", 5),
]

_shutdown_requested = False


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Vehicle health monitor: API server, demo data and reading simulator",
    )
    parser.add_argument(
        "--serve",
        action="store_true",
        help="Run the API server (host/port from VHM_API_HOST / VHM_API_PORT).",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Wipe the database and load a demo user, vehicles, readings and alerts.",
    )
    parser.add_argument(
        "--simulate",
        type=int,
        metavar="COUNT",
        help="Post COUNT synthetic readings for --vehicle-id through the API.",
    )
    parser.add_argument("--vehicle-id", type=int, help="Vehicle that --simulate reports for.")
    parser.add_argument("--api-url", default="http://127.0.0.1:8000", help="Base URL for --simulate.")
    parser.add_argument("--api-key", help="X-API-Key used by --simulate.")
    parser.add_argument(
        "--interval",
        type=float,
        default=1.0,
        help="Seconds between simulated readings (default: 1).",
    )
    parser.add_argument(
        "--drain-outbox",
        action="store_true",
        help="Retry alert evaluations that failed after their reading was stored.",
    )
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    return parser.parse_args(argv)


def log(prefix: str, message: str) -> None:
    """Print operator-facing messages with a prefix and UTC timestamp."""

    timestamp = datetime.now(timezone.utc).isoformat(timespec="seconds")
    print(f"[{prefix.upper()}][{timestamp}] {message}")


def configure_logging(debug: bool = False) -> None:
    level = logging.DEBUG if debug else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)


def shutdown_requested() -> bool:
    return _shutdown_requested


def handle_sigint(signum, frame) -> None:
    """Ask running loops to stop, then raise KeyboardInterrupt for cleanup."""

    global _shutdown_requested
    if not _shutdown_requested:
        _shutdown_requested = True
        log(LOG_PREFIX_SYSTEM, "Ctrl-C received; requesting graceful shutdown.")
    raise KeyboardInterrupt


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------

def seed_database(
    db: Session,
    rng: Optional[random.Random] = None,
    now: Optional[datetime] = None,
) -> Tuple[UserModel, List[VehicleModel]]:
    """Load the demo user, three vehicles, 24h of readings each and three alerts.

    Expects empty tables; ``main --seed`` recreates them first.
    """

    rng = rng if rng is not None else random.Random()
    now = now or datetime.now(timezone.utc)

    user = UserModel(name="Demo User", email=DEMO_EMAIL, api_key=f"demo-{rng.getrandbits(64):016x}")
    db.add(user)
    db.flush()

    vehicles = []
    for model, engine_cc, fuel_type, odometer, last_service, score in DEMO_VEHICLES:
        vehicle = VehicleModel(
            user_id=user.id,
            model=model,
            engine_cc=engine_cc,
            fuel_type=fuel_type.value,
            odometer=odometer,
            last_service=last_service,
            health_score=score,
            status=status_for_score(score).value,
            created_at=now,
            updated_at=now,
        )
        db.add(vehicle)
        vehicles.append(vehicle)
    db.flush()

    for vehicle in vehicles:
        for index in range(SEED_HOURS):
            db.add(
                SensorReadingModel(
                    vehicle_id=vehicle.id,
                    rpm=rng.randrange(1000, 4000),
                    temperature=float(rng.randrange(70, 110)),
                    battery=12 + rng.random() * 2,
                    fuel=float(rng.randrange(100)),
                    fuel_efficiency=12 + rng.random() * 5,
                    speed=float(rng.randrange(120)),
                    timestamp=now - timedelta(hours=SEED_HOURS - 1 - index),
                )
            )

    for vehicle_index, alert_type, message, hours_ago in DEMO_ALERTS:
        db.add(
            AlertModel(
                vehicle_id=vehicles[vehicle_index].id,
                user_id=user.id,
                type=alert_type.value,
                message=message,
                timestamp=now - timedelta(hours=hours_ago),
            )
        )

    db.commit()
    return user, vehicles


def run_seed() -> None:
    log(LOG_PREFIX_SEED, "Dropping and recreating all tables.")
    Base.metadata.drop_all(bind=engine)
    init_db()

    settings = get_settings()
    db = SessionLocal()
    try:
        user, vehicles = seed_database(db, random.Random(settings.random_seed))
        log(LOG_PREFIX_SEED, f"Created {len(vehicles)} demo vehicles with {SEED_HOURS}h of readings each.")
        log(LOG_PREFIX_SEED, f"Demo user: {user.email}")
        log(LOG_PREFIX_SEED, f"Demo API key: {user.api_key}")
    finally:
        db.close()


# ---------------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------------

def run_simulation(
    client: VehicleHealthClient,
    vehicle_id: int,
    count: int,
    interval: float = 1.0,
    generator: Optional[SyntheticReadingGenerator] = None,
) -> int:
    """Post COUNT synthetic readings, roughly ``interval`` seconds apart.

    Failed posts are logged and skipped. Returns how many readings were stored.
    """

    if count <= 0:
        log(LOG_PREFIX_WARN, "--simulate COUNT must be greater than zero.")
        return 0

    try:
        vehicle = client.get_vehicle(vehicle_id)
    except ApiClientError as exc:
        log(LOG_PREFIX_ERROR, f"Cannot load vehicle {vehicle_id}: {exc}")
        return 0

    generator = generator or SyntheticReadingGenerator()
    log(LOG_PREFIX_SIM, f"Sending {count} reading(s) for {vehicle['model']} (#{vehicle_id}).")

    stored = 0
    for index in range(1, count + 1):
        if shutdown_requested():
            log(LOG_PREFIX_SIM, "Shutdown requested; ending simulation early.")
            break

        start = time.time()
        reading = generator.reading_for(vehicle["engine_cc"], vehicle["fuel_type"])
        try:
            client.post_reading(vehicle_id, reading)
            stored += 1
            log(
                LOG_PREFIX_SIM,
                f"{index}/{count}: RPM={reading['rpm']} | Temp={reading['temperature']:.0f}C | "
                f"Battery={reading['battery']:.2f}V | Fuel={reading['fuel']:.0f}%",
            )
        except ApiClientError as exc:
            log(LOG_PREFIX_WARN, f"{index}/{count}: reading not stored: {exc}")

        elapsed = time.time() - start
        if index < count and elapsed < interval:
            time.sleep(interval - elapsed)

    log(LOG_PREFIX_SIM, f"Stored {stored} of {count} reading(s).")
    return stored


def run_drain_outbox() -> int:
    init_db()
    db = SessionLocal()
    try:
        service = TelemetryService(db)
        processed = service.drain_outbox()
        remaining = len(service.pending_entries())
    finally:
        db.close()

    log(LOG_PREFIX_OUTBOX, f"Processed {processed} pending alert evaluation(s); {remaining} still pending.")
    return processed


def main(argv: Optional[List[str]] = None) -> None:
    global _shutdown_requested
    _shutdown_requested = False

    args = parse_args(argv)
    configure_logging(args.debug)
    signal.signal(signal.SIGINT, handle_sigint)

    try:
        if args.seed:
            run_seed()

        if args.drain_outbox:
            run_drain_outbox()

        if args.simulate is not None:
            if args.vehicle_id is None:
                log(LOG_PREFIX_ERROR, "--simulate needs --vehicle-id.")
                return
            client = VehicleHealthClient(args.api_url, api_key=args.api_key)
            run_simulation(client, args.vehicle_id, args.simulate, interval=args.interval)

        if args.serve:
            import uvicorn

            settings = get_settings()
            log(LOG_PREFIX_SYSTEM, f"Starting API on {settings.api_host}:{settings.api_port}.")
            uvicorn.run("api_server:app", host=settings.api_host, port=settings.api_port, reload=False)
    except KeyboardInterrupt:
        log(LOG_PREFIX_SYSTEM, "KeyboardInterrupt caught; finishing cleanup.")


if __name__ == "__main__":
    main()
