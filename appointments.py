"""Service appointment booking and status lifecycle."""

from __future__ import annotations

import logging
import random
from typing import Dict, FrozenSet, List, Optional

from sqlalchemy.orm import Session

from enums import AppointmentStatus
from errors import InvalidTransitionError
from models import AppointmentModel, UserModel, VehicleModel, utcnow
from schemas import AppointmentIn
from telemetry import get_owned, get_owned_vehicle

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.SCHEDULED: frozenset({
        AppointmentStatus.CONFIRMED,
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.CONFIRMED: frozenset({
        AppointmentStatus.COMPLETED,
        AppointmentStatus.CANCELLED,
    }),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}


def check_transition(current: AppointmentStatus, requested: AppointmentStatus) -> None:
    """Raise unless ``requested`` is reachable from ``current``. Same status is a no-op."""
    if requested == current:
        return
    if requested not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(current.value, requested.value)


class AppointmentService:
    def __init__(
        self,
        db: Session,
        rng: Optional[random.Random] = None,
        cost_min: int = 500,
        cost_max: int = 3499,
    ):
        self.db = db
        self.rng = rng if rng is not None else random.Random()
        self.cost_min = cost_min
        self.cost_max = cost_max

    def list_for(self, user: UserModel) -> List[AppointmentModel]:
        return (
            self.db.query(AppointmentModel)
            .filter(AppointmentModel.user_id == user.id)
            .order_by(AppointmentModel.created_at.desc(), AppointmentModel.id.desc())
            .all()
        )

    def get(self, user: UserModel, appointment_id: int) -> AppointmentModel:
        return get_owned(self.db, AppointmentModel, appointment_id, user.id, "Appointment")

    def book(self, user: UserModel, payload: AppointmentIn) -> AppointmentModel:
        vehicle = get_owned_vehicle(self.db, payload.vehicle_id, user.id)
        appointment = AppointmentModel(
            user_id=user.id,
            vehicle_id=vehicle.id,
            vehicle=payload.vehicle or vehicle.model,
            service=payload.service,
            date=payload.date,
            time=payload.time,
            center=payload.center,
            status=AppointmentStatus.SCHEDULED.value,
            cost=self.rng.randint(self.cost_min, self.cost_max),
            created_at=utcnow(),
        )
        self.db.add(appointment)
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def set_status(
        self, user: UserModel, appointment_id: int, status: AppointmentStatus
    ) -> AppointmentModel:
        """Move an appointment along its lifecycle.

        Completing an appointment records its date as the vehicle's last
        service. The vehicle may have been deleted in the meantime; the
        appointment still completes.
        """
        appointment = self.get(user, appointment_id)
        current = AppointmentStatus(appointment.status)
        check_transition(current, status)

        appointment.status = status.value
        if status is AppointmentStatus.COMPLETED and current is not AppointmentStatus.COMPLETED:
            vehicle = self.db.get(VehicleModel, appointment.vehicle_id)
            if vehicle is None:
                logger.warning(
                    "Appointment %s completed for missing vehicle %s",
                    appointment.id, appointment.vehicle_id,
                )
            else:
                vehicle.last_service = appointment.date
                vehicle.updated_at = utcnow()

        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def cancel_booking(self, user: UserModel, appointment_id: int) -> None:
        appointment = self.get(user, appointment_id)
        self.db.delete(appointment)
        self.db.commit()
