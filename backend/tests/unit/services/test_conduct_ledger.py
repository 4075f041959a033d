"""Tests for ConductLedgerService: strikes, suspension and the monthly count."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from app.core.exceptions import NotFoundException, TeacherSuspendedException
from app.models.conduct import CancellationEvent, CancellationInitiator
from app.services.conduct_ledger import ConductLedgerService
from app.services.refund_policy_engine import RefundDecision, StrikeDecision


@pytest.fixture
def conduct(db, clock) -> ConductLedgerService:
    return ConductLedgerService(db, clock)


def _record(conduct, teacher_id, *, initiator=CancellationInitiator.TEACHER, booking_id="01J00000000000000000000001"):
    return conduct.record_cancellation(
        booking_id=booking_id,
        teacher_id=teacher_id,
        initiator=initiator,
        hours_before_class=30.0,
        refund=RefundDecision(100, 4000, "test"),
        strike=StrikeDecision(False, 1, "test"),
    )


class TestStrikes:
    def test_new_teacher_starts_clean(self, conduct, teacher):
        state = conduct.get_state(teacher.id)
        assert state.strike_count == 0
        assert state.is_suspended is False
        assert conduct.is_suspended(teacher.id) is False

    def test_third_strike_suspends(self, conduct, teacher, db):
        first = conduct.issue_strike(teacher.id, reason="late")
        assert (first.strike_count, first.is_suspended) == (1, False)
        second = conduct.issue_strike(teacher.id, reason="late")
        assert (second.strike_count, second.is_suspended) == (2, False)
        third = conduct.issue_strike(teacher.id, reason="late")
        db.commit()

        assert third.strike_count == 3
        assert third.is_suspended is True
        with pytest.raises(TeacherSuspendedException):
            conduct.ensure_not_suspended(teacher.id)

    def test_strike_count_is_capped(self, conduct, teacher, db):
        for _ in range(5):
            state = conduct.issue_strike(teacher.id, reason="late")
        db.commit()
        assert state.strike_count == 3
        assert state.is_suspended is True

    def test_reset_clears_strikes_and_suspension(self, conduct, teacher, admin, db):
        for _ in range(3):
            conduct.issue_strike(teacher.id, reason="late")
        db.commit()

        state = conduct.reset_strikes(teacher.id, admin_user_id=admin.id)

        assert state.strike_count == 0
        assert state.is_suspended is False
        conduct.ensure_not_suspended(teacher.id)

    def test_reset_unknown_teacher(self, conduct, admin):
        with pytest.raises(NotFoundException):
            conduct.reset_strikes("01J00000000000000000000000", admin_user_id=admin.id)

    def test_admin_suspension_keeps_strikes_until_reset(self, conduct, teacher, admin, db):
        conduct.issue_strike(teacher.id, reason="late")
        db.commit()

        state = conduct.suspend_teacher(teacher.id, admin_user_id=admin.id, reason="complaints")

        assert state.is_suspended is True
        assert state.strike_count == 1
        with pytest.raises(TeacherSuspendedException):
            conduct.ensure_not_suspended(teacher.id)

        conduct.reset_strikes(teacher.id, admin_user_id=admin.id)
        conduct.ensure_not_suspended(teacher.id)

    def test_suspend_unknown_teacher(self, conduct, admin):
        with pytest.raises(NotFoundException):
            conduct.suspend_teacher("01J00000000000000000000000", admin_user_id=admin.id, reason="x")


class TestMonthlyCancellations:
    def test_counts_only_teacher_initiated(self, conduct, teacher, db):
        _record(conduct, teacher.id, booking_id="01J00000000000000000000001")
        _record(
            conduct,
            teacher.id,
            initiator=CancellationInitiator.STUDENT,
            booking_id="01J00000000000000000000002",
        )
        db.commit()

        assert conduct.teacher_cancellations_this_month(teacher.id) == 1

    def test_previous_month_does_not_count(self, conduct, teacher, clock, db):
        clock.set(datetime(2030, 2, 27, 12, 0, tzinfo=timezone.utc))
        _record(conduct, teacher.id)
        db.commit()

        clock.set(datetime(2030, 3, 1, 0, 0, tzinfo=timezone.utc))
        assert conduct.teacher_cancellations_this_month(teacher.id) == 0

    def test_event_is_persisted_with_decision(self, conduct, teacher, db):
        event = _record(conduct, teacher.id)
        db.commit()

        stored = db.get(CancellationEvent, event.id)
        assert stored.refund_percent == 100
        assert stored.refund_cents == 4000
        assert stored.strike_issued is False
        assert stored.initiator == CancellationInitiator.TEACHER.value


def test_free_quota_comes_from_settings(conduct):
    assert conduct.free_cancellations_per_month == 2
