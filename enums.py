"""Enumerations shared by the ORM models, API schemas and rule engines."""

from enum import Enum


class FuelType(str, Enum):
    PETROL = "Petrol"
    DIESEL = "Diesel"
    HYBRID = "Hybrid"
    ELECTRIC = "Electric"


class HealthStatus(str, Enum):
    """Categorical bucket derived solely from a vehicle's health score."""
    EXCELLENT = "Excellent"
    GOOD = "Good"
    FAIR = "Fair"
    POOR = "Poor"


class AlertType(str, Enum):
    WARNING = "warning"
    CRITICAL = "critical"
    INFO = "info"


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    CONFIRMED = "Confirmed"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
