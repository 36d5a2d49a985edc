from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from fastapi import FastAPI
from fastapi.testclient import TestClient

from backend.controllers.availability_controller import router as availability_router
from backend.controllers.booking_controller import router as booking_router
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.booking_service import BookingService
from backend.utils.config import get_settings


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    base = get_settings()
    return replace(
        base,
        database_path=tmp_path / filename,
        house_timezone="Europe/London",
        max_bedrooms=4,
        default_buffer_days=0,
        default_min_nights=1,
    )


def _build_test_app(tmp_path) -> tuple[FastAPI, DataRepository]:
    settings = _build_test_settings(tmp_path, "booking_flow.db")
    repository = DataRepository(settings)
    repository.initialize_database()

    app = FastAPI()
    app.include_router(availability_router)
    app.include_router(booking_router)
    app.state.repository = repository
    app.state.availability_service = AvailabilityService(repository=repository, settings=settings)
    app.state.booking_service = BookingService(repository=repository, settings=settings)
    return app, repository


def _parse(value: str) -> datetime:
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


def _request_booking(client: TestClient, start: str, end: str, bedrooms: int) -> int:
    response = client.post(
        "/bookings/request",
        json={
            "requester_id": "member_a",
            "start_ts": start,
            "end_ts": end,
            "bedroom_count": bedrooms,
            "title": "Family weekend",
        },
    )
    assert response.status_code == 201, response.text
    assert response.json()["status"] == "PENDING"
    return response.json()["id"]


def test_booking_end_to_end_flow(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    first_id = _request_booking(client, "2025-01-10", "2025-01-15", 3)

    gaps_response = client.get("/gaps", params={"from": "2025-01-01", "to": "2025-01-31"})
    assert gaps_response.status_code == 200
    assert [gap["nights"] for gap in gaps_response.json()["gaps"]] == [30]

    approve_response = client.post(f"/admin/bookings/{first_id}/approve")
    assert approve_response.status_code == 200
    assert approve_response.json()["status"] == "APPROVED"

    gaps = client.get("/gaps", params={"from": "2025-01-01", "to": "2025-01-31"}).json()["gaps"]
    assert [gap["nights"] for gap in gaps] == [9, 16]
    assert gaps[0]["label"] == "1 Jan 2025 - 10 Jan 2025"
    assert _parse(gaps[1]["start"]) == _parse(approve_response.json()["end_ts"])

    availability = client.post(
        "/bookings/check-availability",
        json={"start_ts": "2025-01-12", "end_ts": "2025-01-14", "bedroom_count": 2},
    )
    assert availability.status_code == 200
    body = availability.json()
    assert body["available"] is False
    assert body["bedrooms_in_use_at_peak"] == 5
    assert body["bedrooms_available"] == 1
    assert body["reason"]

    second_id = _request_booking(client, "2025-01-12", "2025-01-14", 2)
    conflict = client.post(f"/admin/bookings/{second_id}/approve")
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["bedrooms_in_use_at_peak"] == 5

    assert client.post(f"/admin/bookings/{first_id}/approve").status_code == 409
    assert client.post("/admin/bookings/999/approve").status_code == 404

    assert client.post(f"/admin/bookings/{first_id}/cancel").status_code == 200
    assert client.post(f"/admin/bookings/{second_id}/approve").status_code == 200

    listed = client.get("/bookings", params={"status": "APPROVED"}).json()["bookings"]
    assert [item["id"] for item in listed] == [second_id]


def test_min_nights_query_parameter_filters_gaps(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    for start, end in (("2025-01-10", "2025-01-12"), ("2025-01-13", "2025-01-15")):
        booking_id = _request_booking(client, start, end, 1)
        assert client.post(f"/admin/bookings/{booking_id}/approve").status_code == 200

    gaps = client.get(
        "/gaps",
        params={"from": "2025-01-01", "to": "2025-01-31", "minNights": 3},
    ).json()["gaps"]

    assert len(gaps) == 2
    assert all(gap["nights"] >= 3 for gap in gaps)


def test_admin_block_and_settings(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    blocked = client.post(
        "/admin/block",
        json={"start_date": "2025-02-01", "end_date": "2025-02-05", "title": "Boiler service"},
    )
    assert blocked.status_code == 201
    assert blocked.json()["status"] == "BLOCKED"
    assert blocked.json()["bedroom_count"] == 4

    overlapping = client.post(
        "/admin/block",
        json={"start_date": "2025-02-04", "end_date": "2025-02-06", "title": "Painting"},
    )
    assert overlapping.status_code == 409

    updated = client.put("/admin/settings", json={"buffer_days": 2})
    assert updated.status_code == 200
    assert updated.json() == {"max_bedrooms": 4, "buffer_days": 2, "min_nights": 1}

    gaps = client.get("/gaps", params={"from": "2025-01-20", "to": "2025-02-20"}).json()["gaps"]
    assert [gap["label"] for gap in gaps] == [
        "20 Jan 2025 - 30 Jan 2025",
        "7 Feb 2025 - 20 Feb 2025",
    ]

    capacity = client.get("/capacity", params={"date": "2025-02-02"}).json()
    assert capacity["bedrooms_in_use"] == 4
    assert capacity["bedrooms_available"] == 0


def test_malformed_input_is_rejected(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)

    inverted = client.get("/gaps", params={"from": "2025-01-31", "to": "2025-01-01"})
    assert inverted.status_code == 400

    assert client.get("/gaps", params={"from": "2025-01-01"}).status_code == 422
    assert client.get(
        "/gaps",
        params={"from": "2025-01-01", "to": "2025-01-31", "minNights": 0},
    ).status_code == 422

    garbage = client.post(
        "/bookings/check-availability",
        json={"start_ts": "soon", "end_ts": "2025-01-14", "bedroom_count": 1},
    )
    assert garbage.status_code == 400

    too_many = client.post(
        "/bookings/request",
        json={
            "requester_id": "member_a",
            "start_ts": "2025-01-10",
            "end_ts": "2025-01-12",
            "bedroom_count": 9,
        },
    )
    assert too_many.status_code == 400

    bad_block = client.post(
        "/admin/block",
        json={"start_date": "2025-02-05", "end_date": "2025-02-01", "title": "Oops"},
    )
    assert bad_block.status_code == 422

    assert client.put("/admin/settings", json={"min_nights": 0}).status_code == 422


def test_application_factory_runs_startup(tmp_path):
    from app import create_app

    settings = _build_test_settings(tmp_path, "factory.db")
    with TestClient(create_app(settings)) as client:
        assert client.get("/health").json() == {"status": "ok"}
        assert client.get("/admin/settings").json()["max_bedrooms"] == 4
        assert client.get("/bookings").json() == {"bookings": []}


def test_gap_labels_use_the_configured_house_timezone(tmp_path):
    from app import create_app

    settings = replace(
        _build_test_settings(tmp_path, "honolulu.db"),
        house_timezone="Pacific/Honolulu",
    )
    with TestClient(create_app(settings)) as client:
        gaps = client.get("/gaps", params={"from": "2025-01-01", "to": "2025-01-31"}).json()["gaps"]

    # 15:00 in Honolulu is already the next calendar day in London.
    assert [gap["label"] for gap in gaps] == ["1 Jan 2025 - 31 Jan 2025"]


def test_admin_edit_booking(tmp_path):
    app, _ = _build_test_app(tmp_path)
    client = TestClient(app)
    first_id = _request_booking(client, "2025-01-10", "2025-01-15", 3)
    second_id = _request_booking(client, "2025-01-20", "2025-01-25", 2)
    assert client.post(f"/admin/bookings/{first_id}/approve").status_code == 200
    assert client.post(f"/admin/bookings/{second_id}/approve").status_code == 200

    moved = client.put(
        f"/admin/bookings/{second_id}",
        json={"start_ts": "2025-01-16", "end_ts": "2025-01-19", "title": "Moved weekend"},
    )
    assert moved.status_code == 200, moved.text
    assert moved.json()["title"] == "Moved weekend"
    assert moved.json()["bedroom_count"] == 2

    gaps = client.get("/gaps", params={"from": "2025-01-01", "to": "2025-01-31"}).json()["gaps"]
    assert [gap["nights"] for gap in gaps] == [9, 1, 12]

    conflict = client.put(f"/admin/bookings/{second_id}", json={"start_ts": "2025-01-12"})
    assert conflict.status_code == 409
    assert conflict.json()["detail"]["bedrooms_in_use_at_peak"] == 5

    inverted = client.put(f"/admin/bookings/{second_id}", json={"end_ts": "2025-01-10"})
    assert inverted.status_code == 400

    assert client.put("/admin/bookings/999", json={"title": "Ghost"}).status_code == 404
    assert client.put(f"/admin/bookings/{second_id}", json={"bedroom_count": 0}).status_code == 422

    unchanged = client.get(f"/bookings/{second_id}").json()
    assert _parse(unchanged["start_ts"]).day == 16
