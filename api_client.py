"""Small HTTP client for the vehicle health API.

Used by the Streamlit dashboard and by ``main.py --simulate``. Every failure,
network or HTTP, surfaces as ``ApiClientError`` so callers only have one
exception to handle.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional

import pandas as pd
import requests
from requests.exceptions import RequestException

DEFAULT_BASE_URL = "http://127.0.0.1:8000"
DEFAULT_TIMEOUT = 5

READING_COLUMNS = [
    "timestamp",
    "rpm",
    "temperature",
    "battery",
    "fuel",
    "fuel_efficiency",
    "speed",
]


class ApiClientError(RuntimeError):
    """Raised when the API cannot be reached or answers with an error."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class VehicleHealthClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout

    def _request(self, method: str, path: str, **kwargs) -> Any:
        headers = kwargs.pop("headers", {})
        if self.api_key:
            headers["X-API-Key"] = self.api_key

        url = f"{self.base_url}{path}"
        try:
            response = requests.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
        except RequestException as exc:
            raise ApiClientError(f"{method} {path} failed: {exc}") from exc

        if not response.ok:
            try:
                detail = response.json().get("detail", response.text)
            except ValueError:
                detail = response.text
            raise ApiClientError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )
        return response.json()

    # -- meta / users -------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def register(self, name: str, email: str) -> Dict[str, Any]:
        """Register a user and keep its API key for later calls."""
        user = self._request("POST", "/api/users", json={"name": name, "email": email})
        self.api_key = user["api_key"]
        return user

    # -- vehicles -------------------------------------------------------------

    def list_vehicles(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/vehicles")

    def get_vehicle(self, vehicle_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/vehicles/{vehicle_id}")

    def create_vehicle(self, **fields) -> Dict[str, Any]:
        return self._request("POST", "/api/vehicles", json=fields)

    def update_vehicle(self, vehicle_id: int, **fields) -> Dict[str, Any]:
        """Partial update; sending ``health_score`` overrides the computed score."""
        return self._request("PUT", f"/api/vehicles/{vehicle_id}", json=fields)

    def delete_vehicle(self, vehicle_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/vehicles/{vehicle_id}")

    def vehicle_summary(self) -> Dict[str, Any]:
        return self._request("GET", "/api/vehicles/stats/summary")

    def vehicle_health(self, vehicle_id: int, hours: Optional[float] = None) -> Dict[str, Any]:
        params = {"hours": hours} if hours else None
        return self._request("GET", f"/api/vehicles/{vehicle_id}/health", params=params)

    # -- readings -------------------------------------------------------------

    def post_reading(self, vehicle_id: int, reading: Dict[str, Any]) -> Dict[str, Any]:
        payload = {key: value for key, value in reading.items() if key != "timestamp"}
        payload["vehicle_id"] = vehicle_id
        return self._request("POST", "/api/sensors", json=payload)

    def get_readings(self, vehicle_id: int, hours: Optional[float] = None) -> List[Dict[str, Any]]:
        params = {"hours": hours} if hours else None
        return self._request("GET", f"/api/sensors/vehicle/{vehicle_id}", params=params)

    def sensor_stats(self, vehicle_id: int) -> Dict[str, Any]:
        return self._request("GET", f"/api/sensors/stats/{vehicle_id}")

    # -- alerts ---------------------------------------------------------------

    def list_alerts(self, limit: Optional[int] = None, unread_only: bool = False) -> List[Dict[str, Any]]:
        params: Dict[str, Any] = {"unread_only": str(unread_only).lower()}
        if limit:
            params["limit"] = limit
        return self._request("GET", "/api/alerts", params=params)

    def vehicle_alerts(self, vehicle_id: int) -> List[Dict[str, Any]]:
        return self._request("GET", f"/api/alerts/vehicle/{vehicle_id}")

    def alert_counts(self) -> Dict[str, int]:
        return self._request("GET", "/api/alerts/stats/count")

    def mark_alert_read(self, alert_id: int) -> Dict[str, Any]:
        return self._request("PUT", f"/api/alerts/{alert_id}/read")

    def mark_all_alerts_read(self) -> Dict[str, Any]:
        return self._request("PUT", "/api/alerts/read-all")

    def delete_alert(self, alert_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/alerts/{alert_id}")

    # -- appointments ---------------------------------------------------------

    def list_appointments(self) -> List[Dict[str, Any]]:
        return self._request("GET", "/api/appointments")

    def book_appointment(self, **fields) -> Dict[str, Any]:
        return self._request("POST", "/api/appointments", json=fields)

    def set_appointment_status(self, appointment_id: int, status: str) -> Dict[str, Any]:
        return self._request("PUT", f"/api/appointments/{appointment_id}/status", json={"status": status})

    def delete_appointment(self, appointment_id: int) -> Dict[str, Any]:
        return self._request("DELETE", f"/api/appointments/{appointment_id}")


def readings_frame(readings: List[Dict[str, Any]]) -> pd.DataFrame:
    """Return readings as a tidy DataFrame indexed by timestamp, oldest first."""

    if not readings:
        return pd.DataFrame(columns=READING_COLUMNS[1:], index=pd.DatetimeIndex([], name="timestamp"))

    frame = pd.DataFrame(readings)
    for column in READING_COLUMNS:
        if column not in frame.columns:
            frame[column] = None

    frame["timestamp"] = pd.to_datetime(frame["timestamp"], errors="coerce", utc=True)
    for column in READING_COLUMNS[1:]:
        frame[column] = pd.to_numeric(frame[column], errors="coerce")

    frame = frame.dropna(subset=["timestamp"]).sort_values("timestamp")
    return frame.set_index("timestamp")[READING_COLUMNS[1:]]


def with_vehicle_models(alerts: List[Dict[str, Any]], vehicles: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Copy each alert with a ``vehicle_model`` key taken from ``vehicles``.

    Alerts outlive deleted vehicles; those get a ``Vehicle #<id>`` label.
    """

    models = {vehicle["id"]: vehicle["model"] for vehicle in vehicles}
    return [
        dict(alert, vehicle_model=models.get(alert["vehicle_id"], f"Vehicle #{alert['vehicle_id']}"))
        for alert in alerts
    ]
