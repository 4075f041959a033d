"""Tests for VideoService.join_session."""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.exceptions import (
    ConflictException,
    ExternalServiceException,
    ForbiddenException,
    NotFoundException,
    SessionEndedException,
    TooEarlyException,
)
from app.integrations.hundredms_client import HundredMsError
from app.models import Booking
from app.services.video_service import VideoService


@pytest.fixture
def video_service(db, fake_video, clock) -> VideoService:
    return VideoService(db, fake_video, clock)


@pytest.fixture
def upcoming(booked):
    """A one-hour class starting in 30 minutes."""
    return booked(starts_in=timedelta(minutes=30))


class TestAdmissionWindow:
    def test_too_early_reports_minutes_until_open(self, video_service, upcoming, student):
        with pytest.raises(TooEarlyException) as exc:
            video_service.join_session(upcoming.id, student.parent_id)
        # opens 10 minutes before start
        assert exc.value.minutes_remaining == 20
        assert exc.value.code == "TOO_EARLY"

    def test_window_opens_ten_minutes_before_start(self, video_service, upcoming, student, clock):
        clock.advance(minutes=20)
        result = video_service.join_session(upcoming.id, student.parent_id)
        assert result.role == "guest"

    def test_end_instant_is_still_inside_window(self, video_service, upcoming, teacher, clock):
        clock.advance(minutes=90)
        result = video_service.join_session(upcoming.id, teacher.user_id)
        assert result.grant.expires_in_seconds == 300

    def test_after_end_is_rejected(self, video_service, upcoming, teacher, clock):
        clock.advance(minutes=90, seconds=1)
        with pytest.raises(SessionEndedException):
            video_service.join_session(upcoming.id, teacher.user_id)


class TestParticipants:
    def test_teacher_is_host_parent_is_guest(self, video_service, upcoming, teacher, student, clock, fake_video):
        clock.advance(minutes=30)

        host = video_service.join_session(upcoming.id, teacher.user_id)
        guest = video_service.join_session(upcoming.id, student.parent_id)

        assert host.role == "host"
        assert guest.role == "guest"
        assert host.grant.room_name == upcoming.id
        minted = fake_video.calls_for("mint_access_token")
        assert [call["identity"] for call in minted] == [teacher.user_id, student.parent_id]
        assert all(call["room_name"] == upcoming.id for call in minted)

    def test_token_lives_until_end_plus_grace(self, video_service, upcoming, teacher, clock):
        clock.advance(minutes=30)  # class start; ends in 60 minutes
        result = video_service.join_session(upcoming.id, teacher.user_id)
        assert result.grant.expires_in_seconds == 3600 + 300

    def test_outsider_is_forbidden(self, video_service, upcoming, admin, clock):
        clock.advance(minutes=30)
        with pytest.raises(ForbiddenException):
            video_service.join_session(upcoming.id, admin.id)

    def test_unknown_booking(self, video_service, teacher):
        with pytest.raises(NotFoundException):
            video_service.join_session("01J00000000000000000000000", teacher.user_id)

    def test_cancelled_booking_is_closed(self, video_service, upcoming, booking_service, student, clock):
        booking_service.cancel_booking(student.parent_id, upcoming.id)
        clock.advance(minutes=30)
        with pytest.raises(ConflictException) as exc:
            video_service.join_session(upcoming.id, student.parent_id)
        assert exc.value.code == "BOOKING_INACTIVE"

    def test_token_failure_is_external_error(self, video_service, upcoming, teacher, clock, fake_video):
        clock.advance(minutes=30)
        fake_video.set_error("mint_access_token", HundredMsError("boom", status_code=503))
        with pytest.raises(ExternalServiceException):
            video_service.join_session(upcoming.id, teacher.user_id)


class TestRecording:
    def test_recording_starts_once(self, video_service, upcoming, teacher, student, clock, fake_video, db):
        clock.advance(minutes=30)

        first = video_service.join_session(upcoming.id, teacher.user_id)
        second = video_service.join_session(upcoming.id, student.parent_id)

        assert first.recording_started is True
        assert second.recording_started is False
        assert len(fake_video.calls_for("start_recording")) == 1
        stored = db.get(Booking, upcoming.id)
        assert stored.recording_session_ref.startswith("fake_recording_")
        assert stored.recording_claim_id is None

    def test_recording_failure_does_not_block_join(self, video_service, upcoming, teacher, student, clock, fake_video, db):
        clock.advance(minutes=30)
        fake_video.set_error("start_recording", HundredMsError("recording unavailable", status_code=500))

        result = video_service.join_session(upcoming.id, teacher.user_id)

        assert result.recording_started is False
        assert result.grant.token
        stored = db.get(Booking, upcoming.id)
        assert stored.recording_session_ref is None
        assert stored.recording_claim_id is None

        # Claim was released, so the next participant retries the recording
        fake_video.clear_errors()
        retry = video_service.join_session(upcoming.id, student.parent_id)
        assert retry.recording_started is True
        assert len(fake_video.calls_for("start_recording")) == 2
