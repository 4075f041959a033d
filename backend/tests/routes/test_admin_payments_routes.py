"""HTTP tests for /api/v1/admin and /api/v1/payments."""

from __future__ import annotations

from datetime import timedelta

from app.integrations.stripe_client import PaymentGatewayError
from app.models.conduct import TeacherConductState


class TestResetStrikes:
    def test_admin_resets_and_lifts_suspension(self, client, auth_headers, db, admin, teacher):
        db.add(TeacherConductState(teacher_id=teacher.id, strike_count=3, is_suspended=True))
        db.commit()

        response = client.post(
            f"/api/v1/admin/teachers/{teacher.id}/reset-strikes", headers=auth_headers(admin)
        )

        assert response.status_code == 200
        assert response.json() == {"teacher_id": teacher.id, "strike_count": 0, "is_suspended": False}

    def test_non_admin_is_forbidden(self, client, auth_headers, teacher):
        response = client.post(
            f"/api/v1/admin/teachers/{teacher.id}/reset-strikes", headers=auth_headers(teacher.user)
        )
        assert response.status_code == 403

    def test_unknown_teacher(self, client, auth_headers, admin):
        response = client.post(
            "/api/v1/admin/teachers/01J00000000000000000000000/reset-strikes", headers=auth_headers(admin)
        )
        assert response.status_code == 404

class TestSuspendTeacher:
    def test_admin_suspends_teacher(self, client, auth_headers, db, admin, teacher):
        response = client.post(
            f"/api/v1/admin/teachers/{teacher.id}/suspend",
            json={"reason": "Repeated complaints"},
            headers=auth_headers(admin),
        )

        assert response.status_code == 200
        assert response.json() == {"teacher_id": teacher.id, "strike_count": 0, "is_suspended": True}
        db.expire_all()
        assert db.get(TeacherConductState, teacher.id).is_suspended is True

    def test_reason_is_required(self, client, auth_headers, admin, teacher):
        response = client.post(
            f"/api/v1/admin/teachers/{teacher.id}/suspend", json={"reason": ""}, headers=auth_headers(admin)
        )
        assert response.status_code == 422

    def test_non_admin_is_forbidden(self, client, auth_headers, teacher):
        response = client.post(
            f"/api/v1/admin/teachers/{teacher.id}/suspend",
            json={"reason": "self"},
            headers=auth_headers(teacher.user),
        )
        assert response.status_code == 403

    def test_unknown_teacher(self, client, auth_headers, admin):
        response = client.post(
            "/api/v1/admin/teachers/01J00000000000000000000000/suspend",
            json={"reason": "gone"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 404


class TestBookingRecording:
    def test_location_after_recording_finished(self, client, auth_headers, admin, booked, db):
        booking = booked()
        booking.recording_session_ref = "rec_session_1"
        booking.recording_location = "s3://recordings/a.mp4"
        db.commit()

        response = client.get(f"/api/v1/admin/bookings/{booking.id}/recording", headers=auth_headers(admin))

        assert response.status_code == 200
        assert response.json() == {
            "booking_id": booking.id,
            "recording_session_ref": "rec_session_1",
            "recording_location": "s3://recordings/a.mp4",
        }

    def test_not_recorded_yet(self, client, auth_headers, admin, booked):
        booking = booked()

        body = client.get(f"/api/v1/admin/bookings/{booking.id}/recording", headers=auth_headers(admin)).json()

        assert body["recording_location"] is None
        assert body["recording_session_ref"] is None

    def test_parent_is_forbidden(self, client, auth_headers, booked, student):
        booking = booked()
        response = client.get(
            f"/api/v1/admin/bookings/{booking.id}/recording", headers=auth_headers(student.parent)
        )
        assert response.status_code == 403

    def test_unknown_booking(self, client, auth_headers, admin):
        response = client.get(
            "/api/v1/admin/bookings/01J00000000000000000000000/recording", headers=auth_headers(admin)
        )
        assert response.status_code == 404



class TestNoShow:
    def test_no_show_refunds_in_full_and_strikes(self, client, auth_headers, admin, booked, clock, fake_stripe):
        booking = booked(starts_in=timedelta(minutes=30))
        clock.advance(minutes=45)

        response = client.post(f"/api/v1/admin/bookings/{booking.id}/no-show", headers=auth_headers(admin))

        assert response.status_code == 200
        body = response.json()
        assert body["initiator"] == "TEACHER"
        assert body["refund_percent"] == 100
        assert body["strike_issued"] is True
        assert len(fake_stripe.calls_for("cancel")) == 1

    def test_before_start_is_rejected(self, client, auth_headers, admin, booked):
        booking = booked(starts_in=timedelta(hours=2))

        response = client.post(f"/api/v1/admin/bookings/{booking.id}/no-show", headers=auth_headers(admin))

        assert response.status_code == 422
        assert response.json()["code"] == "CLASS_NOT_STARTED"

    def test_parent_cannot_record_no_show(self, client, auth_headers, booked, student):
        booking = booked()
        response = client.post(
            f"/api/v1/admin/bookings/{booking.id}/no-show", headers=auth_headers(student.parent)
        )
        assert response.status_code == 403


class TestPayoutOnboarding:
    def test_teacher_gets_onboarding_link(self, client, auth_headers, make_teacher):
        teacher = make_teacher(onboarded=False)

        response = client.post("/api/v1/payments/connect/onboarding", headers=auth_headers(teacher.user))

        assert response.status_code == 200
        body = response.json()
        assert body["account_id"].startswith("acct_fake_")
        assert body["onboarding_url"].endswith(body["account_id"])

    def test_status_reflects_provider(self, client, auth_headers, teacher, fake_stripe):
        fake_stripe.onboarded_accounts.add(teacher.stripe_account_id)

        response = client.post("/api/v1/payments/connect/status", headers=auth_headers(teacher.user))

        assert response.json() == {"account_id": teacher.stripe_account_id, "onboarded": True}

    def test_provider_failure_is_bad_gateway(self, client, auth_headers, teacher, fake_stripe):
        fake_stripe.set_error(
            "create_payout_onboarding_link", PaymentGatewayError("boom", operation="onboarding_link")
        )

        response = client.post("/api/v1/payments/connect/onboarding", headers=auth_headers(teacher.user))

        assert response.status_code == 502

    def test_parent_is_forbidden(self, client, auth_headers, make_user):
        response = client.post("/api/v1/payments/connect/onboarding", headers=auth_headers(make_user()))
        assert response.status_code == 403
