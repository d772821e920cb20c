"""Tests for the HTTP client used by the dashboard and the simulator."""

from __future__ import annotations

from typing import Any, List

import pandas as pd
import pytest
import requests

import api_client
from api_client import ApiClientError, VehicleHealthClient, readings_frame, with_vehicle_models


class DummyResponse:
    def __init__(self, payload: Any, status_code: int = 200):
        self._payload = payload
        self.status_code = status_code
        self.text = str(payload)

    @property
    def ok(self) -> bool:
        return self.status_code < 400

    def json(self) -> Any:
        if isinstance(self._payload, Exception):
            raise self._payload
        return self._payload


class RecordedCalls(list):
    """Outgoing requests, plus the responses queued to answer them."""

    def __init__(self):
        super().__init__()
        self.responses: List[DummyResponse] = []


@pytest.fixture()
def calls(monkeypatch) -> RecordedCalls:
    recorded = RecordedCalls()
    responses = recorded.responses

    def fake_request(method, url, **kwargs):
        recorded.append({"method": method, "url": url, **kwargs})
        return responses.pop(0) if responses else DummyResponse({})

    monkeypatch.setattr(api_client.requests, "request", fake_request)
    return recorded


def test_api_key_header_is_sent(calls):
    client = VehicleHealthClient("http://api.local/", api_key="secret")

    client.list_vehicles()

    assert calls[0]["method"] == "GET"
    assert calls[0]["url"] == "http://api.local/api/vehicles"
    assert calls[0]["headers"] == {"X-API-Key": "secret"}


def test_register_stores_key(calls):
    calls.responses.append(DummyResponse({"id": 1, "api_key": "fresh"}, status_code=201))
    client = VehicleHealthClient("http://api.local")

    client.register("Ana", "ana@example.com")

    assert client.api_key == "fresh"
    assert calls[0]["json"] == {"name": "Ana", "email": "ana@example.com"}


def test_post_reading_drops_timestamp(calls):
    client = VehicleHealthClient("http://api.local", api_key="k")

    client.post_reading(7, {"rpm": 2000, "temperature": 80.0, "timestamp": "2025-01-01T00:00:00"})

    assert calls[0]["json"] == {"rpm": 2000, "temperature": 80.0, "vehicle_id": 7}


def test_http_error_carries_detail(calls):
    calls.responses.append(DummyResponse({"detail": "Vehicle not found"}, status_code=404))
    client = VehicleHealthClient("http://api.local", api_key="k")

    with pytest.raises(ApiClientError) as excinfo:
        client.get_vehicle(3)

    assert excinfo.value.status_code == 404
    assert "Vehicle not found" in str(excinfo.value)


def test_non_json_error_body(calls):
    calls.responses.append(DummyResponse(ValueError("no json"), status_code=502))

    with pytest.raises(ApiClientError) as excinfo:
        VehicleHealthClient("http://api.local").health()

    assert excinfo.value.status_code == 502


def test_connection_error_is_wrapped(monkeypatch):
    def refuse(*args, **kwargs):
        raise requests.ConnectionError("refused")

    monkeypatch.setattr(api_client.requests, "request", refuse)

    with pytest.raises(ApiClientError) as excinfo:
        VehicleHealthClient("http://api.local").health()

    assert excinfo.value.status_code is None


def test_readings_frame_sorts_and_indexes():
    frame = readings_frame([
        {"timestamp": "2025-01-01T02:00:00", "rpm": 2100, "temperature": 90, "battery": 12.8, "fuel": 40},
        {"timestamp": "2025-01-01T01:00:00", "rpm": 2000, "temperature": 85, "battery": 13.1, "fuel": 41},
    ])

    assert list(frame["rpm"]) == [2000, 2100]
    assert isinstance(frame.index, pd.DatetimeIndex)
    assert frame["speed"].isna().all()


def test_readings_frame_empty():
    frame = readings_frame([])

    assert frame.empty
    assert "battery" in frame.columns


@pytest.mark.parametrize(
    "call, method, path",
    [
        (lambda client: client.update_vehicle(4, odometer=51000), "PUT", "/api/vehicles/4"),
        (lambda client: client.delete_vehicle(4), "DELETE", "/api/vehicles/4"),
        (lambda client: client.vehicle_alerts(4), "GET", "/api/alerts/vehicle/4"),
        (lambda client: client.delete_alert(9), "DELETE", "/api/alerts/9"),
        (lambda client: client.delete_appointment(2), "DELETE", "/api/appointments/2"),
    ],
)
def test_management_calls(calls, call, method, path):
    call(VehicleHealthClient("http://api.local", api_key="k"))

    assert calls[0]["method"] == method
    assert calls[0]["url"] == f"http://api.local{path}"
    assert calls[0]["headers"] == {"X-API-Key": "k"}


def test_update_vehicle_sends_fields(calls):
    VehicleHealthClient("http://api.local", api_key="k").update_vehicle(4, health_score=70, odometer=51000)

    assert calls[0]["json"] == {"health_score": 70, "odometer": 51000}


def test_delete_vehicle_error_surfaces(calls):
    calls.responses.append(DummyResponse({"detail": "Vehicle not found"}, status_code=404))

    with pytest.raises(ApiClientError) as excinfo:
        VehicleHealthClient("http://api.local", api_key="k").delete_vehicle(4)

    assert excinfo.value.status_code == 404


def test_alerts_get_vehicle_models():
    alerts = [
        {"id": 1, "vehicle_id": 3, "message": "Low fuel level (5%)"},
        {"id": 2, "vehicle_id": 8, "message": "Low battery voltage (11.5V)"},
    ]
    vehicles = [{"id": 3, "model": "Honda Civic"}]

    labelled = with_vehicle_models(alerts, vehicles)

    assert [alert["vehicle_model"] for alert in labelled] == ["Honda Civic", "Vehicle #8"]
    assert "vehicle_model" not in alerts[0]
