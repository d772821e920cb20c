"""API tests for the alert endpoints."""

from __future__ import annotations

import pytest


@pytest.fixture()
def vehicle(client, auth, vehicle_payload):
    return client.post("/api/vehicles", json=vehicle_payload, headers=auth).json()


@pytest.fixture()
def alerts(client, auth, vehicle):
    """One warning and one critical alert from a single reading."""

    client.post(
        "/api/sensors",
        json={"vehicle_id": vehicle["id"], "rpm": 2000, "temperature": 102, "battery": 11.2, "fuel": 60},
        headers=auth,
    )
    return client.get("/api/alerts", headers=auth).json()


def test_list_alerts(alerts):
    assert len(alerts) == 2
    assert {alert["type"] for alert in alerts} == {"warning", "critical"}
    assert not any(alert["is_read"] for alert in alerts)


def test_same_reading_twice_is_not_deduplicated(client, auth, vehicle, alerts):
    client.post(
        "/api/sensors",
        json={"vehicle_id": vehicle["id"], "rpm": 2000, "temperature": 102, "battery": 13, "fuel": 60},
        headers=auth,
    )

    assert len(client.get("/api/alerts", headers=auth).json()) == 3


def test_limit_caps_results(client, auth, alerts):
    assert len(client.get("/api/alerts?limit=1", headers=auth).json()) == 1


def test_counts_and_mark_read(client, auth, alerts):
    assert client.get("/api/alerts/stats/count", headers=auth).json() == {"total": 2, "unread": 2, "critical": 1}

    critical = next(alert for alert in alerts if alert["type"] == "critical")
    response = client.put(f"/api/alerts/{critical['id']}/read", headers=auth)

    assert response.status_code == 200
    assert response.json()["is_read"] is True
    assert client.get("/api/alerts/stats/count", headers=auth).json() == {"total": 2, "unread": 1, "critical": 0}

    unread = client.get("/api/alerts?unread_only=true", headers=auth).json()
    assert [alert["type"] for alert in unread] == ["warning"]


def test_mark_all_read(client, auth, alerts):
    response = client.put("/api/alerts/read-all", headers=auth)

    assert response.json() == {"message": "All alerts marked as read"}
    assert client.get("/api/alerts/stats/count", headers=auth).json()["unread"] == 0


def test_delete_alert(client, auth, alerts):
    response = client.delete(f"/api/alerts/{alerts[0]['id']}", headers=auth)

    assert response.json() == {"message": "Alert deleted"}
    assert len(client.get("/api/alerts", headers=auth).json()) == 1
    assert client.delete(f"/api/alerts/{alerts[0]['id']}", headers=auth).status_code == 404


def test_alerts_of_other_users_are_hidden(client, alerts):
    other = client.post("/api/users", json={"name": "Bo", "email": "bo@example.com"}).json()
    other_auth = {"X-API-Key": other["api_key"]}

    assert client.get("/api/alerts", headers=other_auth).json() == []
    assert client.put(f"/api/alerts/{alerts[0]['id']}/read", headers=other_auth).status_code == 404
