"""Integration tests for API endpoints."""

from uuid import uuid4

import pytest

PROBLEM_JSON = "application/problem+json"


async def _post(client, path, payload, **headers):
    return await client.post(path, json=payload, headers=headers)


def _stay(catalog, **overrides):
    payload = {
        "property_id": str(catalog.property_id),
        "room_type_id": str(catalog.room_type_id),
        "check_in": "2025-11-05",
        "check_out": "2025-11-07",
        "guest": {"name": "Meera Iyer", "email": "meera@example.com"},
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
async def test_health_endpoints(test_client):
    response = await test_client.get("/health")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"

    response = await test_client.post("/v1/health/ping")
    assert response.status_code == 200
    assert response.json()["status"] == "healthy"
    assert response.json()["hold_sweep"]["running"] is False
    assert "hold_expiry" in response.json()["workers"]
    assert "X-Request-ID" in response.headers

    response = await test_client.get("/info")
    assert response.status_code == 200
    data = response.json()
    assert data["actor_header"] == "X-Actor"
    assert "hold_ttl_seconds" in data


@pytest.mark.asyncio
async def test_catalog_endpoints(test_client):
    response = await _post(test_client, "/v1/catalog/property/create", {"name": "Lakeside Lodge", "currency": "INR"})
    assert response.status_code == 200
    property_id = response.json()["id"]

    response = await _post(
        test_client,
        "/v1/catalog/room-type/create",
        {"property_id": property_id, "name": "Cottage", "base_capacity": 3, "base_rate": 8000},
    )
    assert response.status_code == 200
    room_type = response.json()
    assert room_type["currency"] == "INR"
    assert room_type["max_occupancy"] == 2

    response = await _post(
        test_client,
        "/v1/catalog/rate-plan/create",
        {"room_type_id": room_type["id"], "name": "Weekend", "nightly_rate": 9000},
    )
    assert response.status_code == 200

    response = await _post(test_client, "/v1/catalog/room-type/list", {"property_id": property_id})
    assert [item["name"] for item in response.json()] == ["Cottage"]

    response = await _post(test_client, "/v1/catalog/rate-plan/list", {"room_type_id": room_type["id"]})
    assert [item["nightly_rate"] for item in response.json()] == [9000]


@pytest.mark.asyncio
async def test_booking_flow_over_http(test_client, catalog):
    response = await _post(test_client, "/v1/booking/create", _stay(catalog), **{"X-Actor": "desk-7"})
    assert response.status_code == 200
    booking = response.json()
    assert booking["status"] == "HOLD"
    assert booking["total_price"] == 20000
    booking_id = booking["id"]

    response = await _post(
        test_client,
        "/v1/inventory/availability",
        {"room_type_id": str(catalog.room_type_id), "start": "2025-11-05", "end": "2025-11-07"},
    )
    assert [night["holds"] for night in response.json()["nights"]] == [1, 1]

    response = await _post(
        test_client,
        "/v1/payment/record",
        {"booking_id": booking_id, "amount": 20000, "method": "UPI", "external_txn_id": "UPI-1"},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "COMPLETED"

    response = await _post(test_client, "/v1/booking/confirm", {"booking_id": booking_id}, **{"X-Actor": "guest"})
    assert response.status_code == 200
    assert response.json()["status"] == "CONFIRMED"
    assert len(response.json()["confirmation_code"]) == 8

    response = await _post(test_client, "/v1/payment/balance", {"booking_id": booking_id})
    assert response.json()["outstanding"] == 0

    response = await _post(test_client, "/v1/booking/cancellation-quote", {"booking_id": booking_id})
    assert response.status_code == 200
    quote = response.json()
    assert (quote["fee"], quote["refund"]) == (0, 20000)
    assert quote["policy_description"] == "Free cancellation at any time."

    response = await _post(test_client, "/v1/booking/audit", {"booking_id": booking_id})
    entries = response.json()["entries"]
    assert [(entry["action"], entry["actor"]) for entry in entries] == [
        ("CREATE", "desk-7"),
        ("PAYMENT_RECORDED", "system"),
        ("CONFIRM", "guest"),
    ]

    response = await _post(test_client, "/v1/booking/list", {"statuses": ["CONFIRMED"]})
    assert [item["id"] for item in response.json()["items"]] == [booking_id]
    assert response.json()["next_cursor"] is None


@pytest.mark.asyncio
async def test_unknown_booking_is_problem_json(test_client):
    response = await _post(test_client, "/v1/booking/get", {"booking_id": str(uuid4())})

    assert response.status_code == 404
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
    data = response.json()
    assert data["code"] == "NOT_FOUND"
    assert data["retryable"] is False
    assert data["instance"] == "/v1/booking/get"


@pytest.mark.asyncio
async def test_sold_out_create_returns_capacity_problem(test_client, catalog):
    response = await _post(
        test_client,
        "/v1/inventory/set-capacity",
        {"room_type_id": str(catalog.room_type_id), "start": "2025-11-06", "end": "2025-11-07", "total_capacity": 0},
    )
    assert response.status_code == 200
    assert [night["free_to_sell"] for night in response.json()["nights"]] == [0]

    response = await _post(test_client, "/v1/booking/create", _stay(catalog))

    assert response.status_code == 409
    data = response.json()
    assert data["code"] == "CAPACITY_UNAVAILABLE"
    assert data["date"] == "2025-11-06"
    assert data["available"] == 0


@pytest.mark.asyncio
async def test_invalid_transition_over_http(test_client, catalog):
    booking_id = (await _post(test_client, "/v1/booking/create", _stay(catalog))).json()["id"]

    response = await _post(test_client, "/v1/booking/no-show", {"booking_id": booking_id})

    assert response.status_code == 409
    assert response.json()["code"] == "INVALID_TRANSITION"
    assert response.json()["from_status"] == "HOLD"


@pytest.mark.asyncio
async def test_oversized_actor_header_is_rejected(test_client, catalog):
    response = await _post(test_client, "/v1/booking/create", _stay(catalog), **{"X-Actor": "x" * 129})

    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_ERROR"


@pytest.mark.asyncio
async def test_malformed_body_lists_violations(test_client, catalog):
    response = await _post(test_client, "/v1/booking/create", _stay(catalog, rooms=0))

    assert response.status_code == 422
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
    data = response.json()
    assert data["code"] == "VALIDATION_ERROR"
    assert [violation["path"] for violation in data["violations"]] == ["rooms"]


@pytest.mark.asyncio
async def test_metrics_endpoint(test_client, catalog):
    await _post(test_client, "/v1/booking/create", _stay(catalog))

    response = await test_client.get("/metrics")

    assert response.status_code == 200
    assert "booking_holds_created_total" in response.text


@pytest.mark.asyncio
async def test_buffer_rule_endpoints(test_client, catalog):
    response = await _post(
        test_client,
        "/v1/inventory/buffer-rule/create",
        {
            "property_id": str(catalog.property_id),
            "room_type_id": str(catalog.room_type_id),
            "start_date": "2025-11-05",
            "end_date": "2025-11-06",
            "percent": 40,
            "days_of_week": "wed,thu",
        },
        **{"X-Actor": "revenue-desk"},
    )
    assert response.status_code == 200
    rule = response.json()
    assert rule["is_active"] is True

    response = await _post(
        test_client,
        "/v1/inventory/availability",
        {"room_type_id": str(catalog.room_type_id), "start": "2025-11-05", "end": "2025-11-08"},
    )
    assert [night["total_capacity"] for night in response.json()["nights"]] == [7, 7, 5]

    response = await _post(test_client, "/v1/inventory/buffer-rule/update", {"rule_id": rule["id"], "percent": 20})
    assert response.json()["percent"] == 20

    response = await _post(test_client, "/v1/inventory/buffer-rule/list", {"property_id": str(catalog.property_id)})
    assert [item["id"] for item in response.json()] == [rule["id"]]

    response = await _post(test_client, "/v1/inventory/buffer-rule/delete", {"rule_id": rule["id"]})
    assert response.status_code == 204

    response = await _post(
        test_client,
        "/v1/inventory/buffer-rule/create",
        {
            "property_id": str(catalog.property_id),
            "start_date": "2025-11-05",
            "end_date": "2025-11-04",
            "percent": 10,
        },
    )
    assert response.status_code == 400
    assert response.headers["content-type"].startswith(PROBLEM_JSON)
