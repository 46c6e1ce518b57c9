from datetime import date

from mealroute.core.config import settings
from mealroute.core.security import create_access_token
from mealroute.utils.clock import local_today

DATE = "2024-06-01"


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "connected"}


def test_missing_token_is_rejected(client):
    response = client.post("/api/journey/start", json={"route_id": "R1", "driver_id": "D-1"})
    assert response.status_code == 401


def test_customer_cannot_start_journey(client):
    response = client.post(
        "/api/journey/start",
        json={"route_id": "R1", "driver_id": "D-1"},
        headers={"Authorization": f"Bearer {create_access_token({'id': 'C-1', 'roles': ['CUSTOMER']})}"},
    )
    assert response.status_code == 403


def test_missing_route_uses_error_envelope(client, driver_headers):
    response = client.post("/api/journey/start", json={"driver_id": "D-1"}, headers=driver_headers)

    assert response.status_code == 400
    body = response.json()
    assert body["success"] is False
    assert body["error"]["code"] == "MISSING_ROUTE"
    assert body["retry"] == "no"


def test_malformed_date_is_invalid_request(client, driver_headers):
    response = client.get("/api/journey/status/R1", params={"date": "01/06/2024"}, headers=driver_headers)

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"


def test_journey_flow(client, driver_headers, seed_plan):
    ids = seed_plan(route_id="R1", session="breakfast", count=2)

    started = client.post(
        "/api/journey/start",
        json={"route_id": "R1", "driver_id": "D-1", "session": "Breakfast", "delivery_date": DATE},
        headers=driver_headers,
    )
    assert started.status_code == 200
    assert started.json()["session"] == "breakfast"
    assert started.json()["already_started"] is False

    first = client.post(
        "/api/journey/mark-stop",
        json={"route_id": "R1", "planned_stop_id": ids[0], "driver_id": "D-1", "delivery_date": DATE},
        headers=driver_headers,
    )
    assert first.status_code == 200
    assert first.json()["stop_order"] == 1
    assert first.json()["session_completed"] is False
    assert first.json()["next_stop"]["planned_stop_id"] == ids[1]

    # older driver apps report through /stop-reached with user_id and flat coordinates
    second = client.post(
        "/api/journey/stop-reached",
        json={
            "route_id": "R1",
            "stop_order": 2,
            "session": "breakfast",
            "user_id": 1,
            "latitude": 12.95,
            "longitude": 77.6,
            "delivery_date": DATE,
        },
        headers=driver_headers,
    )
    assert second.status_code == 200
    assert second.json()["session_completed"] is True

    status = client.get("/api/route/R1/status", params={"date": DATE}, headers=driver_headers)
    assert status.status_code == 200
    body = status.json()
    assert body["is_journey_started"] is True
    assert [s["stop_order"] for s in body["marked_stops"]] == [1, 2]
    assert body["completed_sessions"] == ["breakfast"]
    assert body["sessions"]["breakfast"] == {"total": 2, "completed": 2}

    order = client.get("/api/journey/route-order/R1", params={"date": DATE}, headers=driver_headers)
    assert [s["status"] for s in order.json()["stops"]] == ["delivered", "delivered", "pending"]

    ended = client.post(
        "/api/journey/end",
        json={"route_id": "R1", "user_id": "D-1", "delivery_date": DATE},
        headers=driver_headers,
    )
    assert ended.status_code == 200
    assert ended.json()["sessions_closed"] == ["breakfast"]

    again = client.post(
        "/api/journey/end",
        json={"route_id": "R1", "user_id": "D-1", "delivery_date": DATE},
        headers=driver_headers,
    )
    assert again.status_code == 409
    assert again.json()["error"]["code"] == "JOURNEY_ALREADY_ENDED"


def test_date_defaults_to_local_today(client, driver_headers, seed_plan):
    seed_plan(route_id="R7", session="lunch", count=1, delivery_date=local_today(settings.delivery_tz))

    started = client.post("/api/journey/start", json={"route_id": "R7", "driver_id": "D-1"}, headers=driver_headers)
    assert started.status_code == 200
    assert started.json()["session"] == "lunch"

    status = client.get("/api/route/R7/status", headers=driver_headers)
    assert status.json()["is_journey_started"] is True
    assert status.json()["date"] == started.json()["date"]


def test_engine_failure_is_reported_with_upstream_status(client, driver_headers, engine_api):
    engine_api.responses["/api/journey/check-traffic"] = (503, {"error": "busy"})

    response = client.post("/api/journey/check-traffic", json={"route_id": "R1"}, headers=driver_headers)

    assert response.status_code == 502
    body = response.json()
    assert body["error"]["code"] == "UPSTREAM_ERROR"
    assert body["error"]["upstream_status"] == 503
    assert body["retry"] == "safe"


def test_plan_requires_manager(client, driver_headers):
    response = client.post(
        "/api/route/plan",
        json={"delivery_date": DATE, "delivery_session": "lunch", "num_drivers": 1},
        headers=driver_headers,
    )
    assert response.status_code == 403


def test_plan_stores_routes(client, manager_headers, engine_api, store):
    engine_api.responses["/api/route/plan"] = {
        "success": True,
        "num_drivers": 1,
        "total_deliveries": 2,
        "routes": [{
            "route_id": "RP-1",
            "driver_id": 7,
            "stops": [
                {"delivery_id": "A", "delivery_name": "Asha", "stop_order": 1},
                {"delivery_id": "B", "delivery_name": "Bala", "stop_order": 2},
            ],
        }],
    }

    response = client.post(
        "/api/route/plan",
        json={"delivery_date": DATE, "delivery_session": "Lunch", "num_drivers": 1},
        headers=manager_headers,
    )

    assert response.status_code == 200
    assert response.json()["stored_routes"] == [{"route_id": "RP-1", "driver_id": 7, "stop_count": 3}]
    assert engine_api.calls("/api/route/plan")[0]["delivery_session"] == "lunch"

    stops = store.find_planned_stops("RP-1", date.fromisoformat(DATE))
    assert [s.delivery_name for s in stops] == ["Asha", "Bala", settings.HUB_STOP_NAME]
    assert {s.session for s in stops} == {"lunch"}


def test_engine_health_is_proxied(client, driver_headers, engine_api):
    engine_api.responses["/api/health"] = {"status": "ok"}

    response = client.get("/api/route/engine/health", headers=driver_headers)

    assert response.status_code == 200
    assert response.json() == {"success": True, "engine": {"status": "ok"}}


def test_vehicle_tracking_is_forwarded(client, driver_headers, engine_api):
    engine_api.responses["/api/vehicle-tracking"] = {"success": True, "points_saved": 2}

    response = client.post(
        "/api/route/vehicle-tracking",
        json={
            "route_id": 12,
            "driver_id": "D-1",
            "tracking_points": [
                {"latitude": 12.97, "longitude": 77.59, "timestamp": "2024-06-01T08:05:00Z"},
                {"latitude": 12.98, "longitude": 77.6, "accuracy": 5},
            ],
        },
        headers=driver_headers,
    )

    assert response.status_code == 200
    assert response.json() == {"success": True, "points_saved": 2}
    sent = engine_api.calls("/api/vehicle-tracking")[0]
    assert sent["route_id"] == "12"
    assert sent["tracking_points"][1] == {"latitude": 12.98, "longitude": 77.6, "accuracy": 5}


def test_vehicle_tracking_needs_points(client, driver_headers, engine_api):
    response = client.post(
        "/api/route/vehicle-tracking",
        json={"route_id": "R1", "tracking_points": []},
        headers=driver_headers,
    )

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "INVALID_REQUEST"
    assert engine_api.calls("/api/vehicle-tracking") == []


def test_tracking_status_and_session_complete_are_proxied(client, driver_headers, engine_api):
    engine_api.responses["/api/route/tracking-status/R1"] = {"success": True, "is_tracking": True}
    engine_api.responses["/api/driver-session/S-9/complete"] = {"success": True, "session_id": "S-9"}

    status = client.get("/api/route/tracking-status/R1", headers=driver_headers)
    completed = client.post(
        "/api/route/driver-session/S-9/complete", json={"route_id": "R1"}, headers=driver_headers
    )

    assert status.json() == {"success": True, "is_tracking": True}
    assert completed.status_code == 200
    assert engine_api.calls("/api/driver-session/S-9/complete") == [{"route_id": "R1"}]
