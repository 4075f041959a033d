"""HTTP tests for /api/v1/slots."""

from __future__ import annotations

from datetime import timedelta

from app.models.conduct import TeacherConductState


def _window(clock, starts_in=timedelta(days=1), minutes=60):
    start = clock() + starts_in
    return {"start_at": start.isoformat(), "end_at": (start + timedelta(minutes=minutes)).isoformat()}


def test_teacher_creates_slot(client, auth_headers, teacher, clock):
    response = client.post("/api/v1/slots", json=_window(clock), headers=auth_headers(teacher.user))

    assert response.status_code == 201
    body = response.json()
    assert body["teacher_id"] == teacher.id
    assert body["is_booked"] is False


def test_naive_timestamps_are_rejected(client, auth_headers, teacher):
    response = client.post(
        "/api/v1/slots",
        json={"start_at": "2030-03-05T10:00:00", "end_at": "2030-03-05T11:00:00"},
        headers=auth_headers(teacher.user),
    )
    assert response.status_code == 422
    assert response.json()["code"] == "validation_error"


def test_overlapping_slot_conflicts(client, auth_headers, teacher, clock):
    headers = auth_headers(teacher.user)
    client.post("/api/v1/slots", json=_window(clock), headers=headers)

    response = client.post(
        "/api/v1/slots", json=_window(clock, starts_in=timedelta(days=1, minutes=30)), headers=headers
    )

    assert response.status_code == 409
    assert response.json()["code"] == "AVAILABILITY_OVERLAP"


def test_too_short_slot(client, auth_headers, teacher, clock):
    response = client.post("/api/v1/slots", json=_window(clock, minutes=15), headers=auth_headers(teacher.user))
    assert response.status_code == 400
    assert response.json()["code"] == "SLOT_TOO_SHORT"


def test_suspended_teacher_cannot_publish(client, auth_headers, db, teacher, clock):
    db.add(TeacherConductState(teacher_id=teacher.id, strike_count=3, is_suspended=True))
    db.commit()

    response = client.post("/api/v1/slots", json=_window(clock), headers=auth_headers(teacher.user))

    assert response.status_code == 422
    assert response.json()["code"] == "TEACHER_SUSPENDED"


def test_parent_has_no_teacher_profile(client, auth_headers, make_user, clock):
    response = client.post("/api/v1/slots", json=_window(clock), headers=auth_headers(make_user()))
    assert response.status_code == 404


def test_list_returns_upcoming_slots_in_order(client, auth_headers, teacher, make_slot):
    later = make_slot(teacher, starts_in=timedelta(days=4))
    sooner = make_slot(teacher, starts_in=timedelta(days=2))
    make_slot(teacher, starts_in=timedelta(days=-1))

    response = client.get("/api/v1/slots", headers=auth_headers(teacher.user))

    assert response.status_code == 200
    assert [slot["id"] for slot in response.json()] == [sooner.id, later.id]


def test_move_slot(client, auth_headers, teacher, make_slot, clock):
    slot = make_slot(teacher)
    window = _window(clock, starts_in=timedelta(days=5), minutes=90)

    response = client.patch(f"/api/v1/slots/{slot.id}", json=window, headers=auth_headers(teacher.user))

    assert response.status_code == 200
    assert response.json()["id"] == slot.id


def test_booked_slot_cannot_move(client, auth_headers, teacher, booked, clock):
    booking = booked()

    response = client.patch(
        f"/api/v1/slots/{booking.slot_id}",
        json={"end_at": (clock() + timedelta(days=3, minutes=90)).isoformat()},
        headers=auth_headers(teacher.user),
    )

    assert response.status_code == 409
    assert response.json()["code"] == "SLOT_BOOKED"


def test_empty_update_is_rejected(client, auth_headers, teacher, make_slot):
    slot = make_slot(teacher)
    response = client.patch(f"/api/v1/slots/{slot.id}", json={}, headers=auth_headers(teacher.user))
    assert response.status_code == 422


def test_marketplace_lists_bookable_teachers(client, auth_headers, make_teacher, make_slot, make_user, db):
    open_teacher = make_teacher(hourly_rate_cents=4500)
    suspended = make_teacher()
    slot = make_slot(open_teacher)
    make_slot(open_teacher, is_booked=True)
    make_slot(suspended)
    db.add(TeacherConductState(teacher_id=suspended.id, strike_count=3, is_suspended=True))
    db.commit()

    response = client.get("/api/v1/slots/marketplace", headers=auth_headers(make_user()))

    assert response.status_code == 200
    body = response.json()
    assert body["total"] == 1
    assert body["page"] == 1
    assert body["has_next"] is False
    assert body["has_prev"] is False
    (entry,) = body["items"]
    assert entry["teacher_id"] == open_teacher.id
    assert entry["full_name"] == open_teacher.user.full_name
    assert entry["hourly_rate_cents"] == 4500
    assert [s["id"] for s in entry["slots"]] == [slot.id]


def test_marketplace_pages(client, auth_headers, make_teacher, make_user):
    for _ in range(3):
        make_teacher()

    body = client.get(
        "/api/v1/slots/marketplace", params={"page": 2, "per_page": 2}, headers=auth_headers(make_user())
    ).json()

    assert body["total"] == 3
    assert len(body["items"]) == 1
    assert body["has_prev"] is True
    assert body["has_next"] is False


def test_marketplace_rejects_oversized_page(client, auth_headers, make_user):
    response = client.get(
        "/api/v1/slots/marketplace", params={"per_page": 500}, headers=auth_headers(make_user())
    )
    assert response.status_code == 422


def test_marketplace_requires_authentication(client):
    assert client.get("/api/v1/slots/marketplace").status_code == 401
