"""HTTP tests for /api/v1/bookings."""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.integrations.hundredms_client import HundredMsError
from app.integrations.stripe_client import PaymentGatewayError
from app.models import Booking, PaymentStatus
from app.models.conduct import TeacherConductState
from app.services.booking_service import student_verification_code


@pytest.fixture
def parent(db, student):
    return student.parent


class TestCreateBooking:
    def test_parent_books_slot(self, client, auth_headers, parent, student, teacher, make_slot, fake_stripe):
        slot = make_slot(teacher)

        response = client.post(
            "/api/v1/bookings",
            json={"student_id": student.id, "slot_id": slot.id},
            headers=auth_headers(parent),
        )

        assert response.status_code == 201
        body = response.json()
        assert body["booking"]["slot_id"] == slot.id
        assert body["booking"]["payment_status"] == PaymentStatus.PENDING.value
        assert body["booking"]["amount_cents"] == 4000
        assert body["booking"]["platform_fee_cents"] == 1000
        assert body["payment_client_secret"]
        assert len(fake_stripe.calls_for("authorize")) == 1

    def test_second_booking_of_same_slot_conflicts(
        self, client, auth_headers, parent, student, teacher, make_slot
    ):
        slot = make_slot(teacher)
        body = {"student_id": student.id, "slot_id": slot.id}
        assert client.post("/api/v1/bookings", json=body, headers=auth_headers(parent)).status_code == 201

        response = client.post("/api/v1/bookings", json=body, headers=auth_headers(parent))

        assert response.status_code == 409
        assert response.headers["content-type"].startswith("application/problem+json")
        assert response.json()["code"] == "SLOT_UNAVAILABLE"

    def test_other_parents_student_is_forbidden(
        self, client, auth_headers, make_user, student, teacher, make_slot
    ):
        outsider = make_user()
        slot = make_slot(teacher)

        response = client.post(
            "/api/v1/bookings",
            json={"student_id": student.id, "slot_id": slot.id},
            headers=auth_headers(outsider),
        )

        assert response.status_code == 403

    def test_suspended_teacher_cannot_be_booked(
        self, client, auth_headers, db, parent, student, teacher, make_slot
    ):
        slot = make_slot(teacher)
        db.add(TeacherConductState(teacher_id=teacher.id, strike_count=3, is_suspended=True))
        db.commit()

        response = client.post(
            "/api/v1/bookings",
            json={"student_id": student.id, "slot_id": slot.id},
            headers=auth_headers(parent),
        )

        assert response.status_code == 422
        assert response.json()["code"] == "TEACHER_SUSPENDED"

    def test_payment_failure_is_bad_gateway(
        self, client, auth_headers, db, parent, student, teacher, make_slot, fake_stripe
    ):
        slot = make_slot(teacher)
        fake_stripe.set_error("authorize", PaymentGatewayError("card declined", code="card_declined"))

        response = client.post(
            "/api/v1/bookings",
            json={"student_id": student.id, "slot_id": slot.id},
            headers=auth_headers(parent),
        )

        assert response.status_code == 502
        assert "card declined" not in response.text

    def test_requires_authentication(self, client, student, teacher, make_slot):
        slot = make_slot(teacher)
        response = client.post("/api/v1/bookings", json={"student_id": student.id, "slot_id": slot.id})
        assert response.status_code == 401

    def test_malformed_ids_are_rejected(self, client, auth_headers, parent):
        response = client.post(
            "/api/v1/bookings",
            json={"student_id": "not-a-ulid", "slot_id": "also-bad"},
            headers=auth_headers(parent),
        )
        assert response.status_code == 422
        assert response.json()["code"] == "validation_error"

    def test_unknown_fields_are_rejected(self, client, auth_headers, parent, student, teacher, make_slot):
        slot = make_slot(teacher)
        response = client.post(
            "/api/v1/bookings",
            json={"student_id": student.id, "slot_id": slot.id, "amount_cents": 1},
            headers=auth_headers(parent),
        )
        assert response.status_code == 422


class TestCancelBooking:
    def test_parent_cancels_with_full_refund(self, client, auth_headers, booked, parent, fake_stripe):
        booking = booked(starts_in=timedelta(days=3))

        response = client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=auth_headers(parent))

        assert response.status_code == 200
        body = response.json()
        assert body["booking_id"] == booking.id
        assert body["initiator"] == "STUDENT"
        assert body["refund_percent"] == 100
        assert body["refund_cents"] == 4000
        assert body["settlement"] == "voided"
        assert body["strike_issued"] is False
        assert body["payment_status"] == PaymentStatus.REFUNDED.value
        assert len(fake_stripe.calls_for("cancel")) == 1

    def test_late_parent_cancellation_refunds_half(self, client, auth_headers, booked, parent):
        booking = booked(starts_in=timedelta(hours=5))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/cancel",
            json={"reason": "sick"},
            headers=auth_headers(parent),
        )

        body = response.json()
        assert body["refund_percent"] == 50
        assert body["refund_cents"] == 2000
        assert body["settlement"] == "partially_refunded"

    def test_teacher_cancellation_ignores_claimed_initiator(self, client, auth_headers, booked, teacher):
        booking = booked(starts_in=timedelta(days=2))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/cancel",
            json={"initiator": "STUDENT"},
            headers=auth_headers(teacher.user),
        )

        body = response.json()
        assert body["initiator"] == "TEACHER"
        assert body["refund_percent"] == 100
        assert body["strike_issued"] is False

    def test_teacher_relays_student_request_with_code(self, client, auth_headers, booked, teacher):
        booking = booked(starts_in=timedelta(days=2))

        response = client.post(
            f"/api/v1/bookings/{booking.id}/cancel",
            json={"student_verification_code": student_verification_code(booking.id)},
            headers=auth_headers(teacher.user),
        )

        assert response.status_code == 200
        assert response.json()["initiator"] == "STUDENT"
        assert response.json()["strike_issued"] is False

    def test_second_cancel_conflicts(self, client, auth_headers, booked, parent, db):
        booking = booked()
        client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=auth_headers(parent))

        response = client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=auth_headers(parent))

        assert response.status_code == 409
        db.expire_all()
        assert db.get(Booking, booking.id).cancelled_at is not None

    def test_outsider_is_forbidden(self, client, auth_headers, booked, make_user):
        booking = booked()
        response = client.post(f"/api/v1/bookings/{booking.id}/cancel", headers=auth_headers(make_user()))
        assert response.status_code == 403

    def test_bad_booking_id_is_validation_error(self, client, auth_headers, parent):
        response = client.post("/api/v1/bookings/123/cancel", headers=auth_headers(parent))
        assert response.status_code == 422


class TestVerificationCode:
    def test_parent_receives_code(self, client, auth_headers, booked, parent):
        booking = booked()

        response = client.post(f"/api/v1/bookings/{booking.id}/verification-code", headers=auth_headers(parent))

        assert response.status_code == 200
        assert response.json() == {"booking_id": booking.id, "code": student_verification_code(booking.id)}

    def test_teacher_cannot_request_code(self, client, auth_headers, booked, teacher):
        booking = booked()
        response = client.post(
            f"/api/v1/bookings/{booking.id}/verification-code", headers=auth_headers(teacher.user)
        )
        assert response.status_code == 403


class TestJoinClass:
    def test_teacher_joins_as_host_and_starts_recording(self, client, auth_headers, booked, teacher, fake_video):
        booking = booked(starts_in=timedelta(minutes=5))

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(teacher.user))

        assert response.status_code == 200
        body = response.json()
        assert body["role"] == "host"
        assert body["room_name"] == booking.id
        assert body["booking_id"] == booking.id
        assert body["expires_in_seconds"] == 5 * 60 + 60 * 60 + 300
        assert body["recording_started"] is True
        assert len(fake_video.calls_for("start_recording")) == 1

    def test_parent_joins_as_guest(self, client, auth_headers, booked, parent):
        booking = booked(starts_in=timedelta(minutes=5))

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(parent))

        assert response.status_code == 200
        assert response.json()["role"] == "guest"

    def test_second_join_does_not_restart_recording(
        self, client, auth_headers, booked, teacher, parent, fake_video
    ):
        booking = booked(starts_in=timedelta(minutes=5))
        client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(teacher.user))

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(parent))

        assert response.status_code == 200
        assert response.json()["recording_started"] is False
        assert len(fake_video.calls_for("start_recording")) == 1

    def test_too_early(self, client, auth_headers, booked, parent):
        booking = booked(starts_in=timedelta(hours=2))

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(parent))

        assert response.status_code == 422
        assert response.json()["code"] == "TOO_EARLY"

    def test_after_class_end(self, client, auth_headers, booked, parent, clock):
        booking = booked(starts_in=timedelta(minutes=5), minutes=30)
        clock.advance(hours=1)

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(parent))

        assert response.status_code == 422
        assert response.json()["code"] == "SESSION_ENDED"

    def test_video_outage_is_bad_gateway(self, client, auth_headers, booked, parent, fake_video):
        booking = booked(starts_in=timedelta(minutes=5))
        fake_video.set_error("mint_access_token", HundredMsError("down", status_code=503))

        response = client.post(f"/api/v1/bookings/{booking.id}/join", headers=auth_headers(parent))

        assert response.status_code == 502
