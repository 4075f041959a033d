"""Tests for SlotLedgerService: publishing, moving and reserving slots."""

from __future__ import annotations

from datetime import timedelta

import pytest

from app.core.exceptions import (
    AvailabilityOverlapException,
    ConflictException,
    ForbiddenException,
    NotFoundException,
    SlotUnavailableException,
    TeacherSuspendedException,
    ValidationException,
)
from app.models import Slot, UserRole
from app.services.conduct_ledger import ConductLedgerService
from app.services.slot_ledger import SlotLedgerService


@pytest.fixture
def ledger(db, clock) -> SlotLedgerService:
    return SlotLedgerService(db, clock)


def _window(clock, starts_in: timedelta = timedelta(days=1), minutes: int = 60):
    start = clock() + starts_in
    return start, start + timedelta(minutes=minutes)


class TestCreateSlot:
    def test_creates_unbooked_slot(self, ledger, teacher, clock, db):
        start, end = _window(clock)

        slot = ledger.create_slot(teacher.user_id, start, end)

        stored = db.get(Slot, slot.id)
        assert stored is not None
        assert stored.teacher_id == teacher.id
        assert stored.is_booked is False
        assert stored.duration_minutes == 60

    def test_rejects_inverted_range(self, ledger, teacher, clock):
        start, end = _window(clock)
        with pytest.raises(ValidationException) as exc:
            ledger.create_slot(teacher.user_id, end, start)
        assert exc.value.code == "INVALID_SLOT_RANGE"

    def test_rejects_start_in_the_past_beyond_grace(self, ledger, teacher, clock):
        start, end = _window(clock, starts_in=-timedelta(minutes=6))
        with pytest.raises(ValidationException) as exc:
            ledger.create_slot(teacher.user_id, start, end)
        assert exc.value.code == "SLOT_IN_PAST"

    def test_allows_start_within_grace(self, ledger, teacher, clock):
        start, end = _window(clock, starts_in=-timedelta(minutes=4))
        slot = ledger.create_slot(teacher.user_id, start, end)
        assert slot.id

    @pytest.mark.parametrize(
        "minutes, code",
        [
            (29, "SLOT_TOO_SHORT"),
            (241, "SLOT_TOO_LONG"),
        ],
    )
    def test_duration_bounds(self, ledger, teacher, clock, minutes, code):
        start, end = _window(clock, minutes=minutes)
        with pytest.raises(ValidationException) as exc:
            ledger.create_slot(teacher.user_id, start, end)
        assert exc.value.code == code

    @pytest.mark.parametrize("minutes", [30, 240])
    def test_duration_bounds_are_inclusive(self, ledger, teacher, clock, minutes):
        start, end = _window(clock, minutes=minutes)
        assert ledger.create_slot(teacher.user_id, start, end).duration_minutes == minutes

    def test_rejects_overlap_with_own_slot(self, ledger, teacher, clock):
        start, end = _window(clock)
        ledger.create_slot(teacher.user_id, start, end)

        with pytest.raises(AvailabilityOverlapException):
            ledger.create_slot(
                teacher.user_id, start + timedelta(minutes=30), end + timedelta(minutes=30)
            )

    def test_touching_slots_do_not_overlap(self, ledger, teacher, clock):
        start, end = _window(clock)
        ledger.create_slot(teacher.user_id, start, end)

        follow_up = ledger.create_slot(teacher.user_id, end, end + timedelta(minutes=60))
        assert follow_up.start_at == end

    def test_other_teachers_slots_do_not_conflict(self, ledger, teacher, make_teacher, clock):
        other = make_teacher()
        start, end = _window(clock)
        ledger.create_slot(teacher.user_id, start, end)
        assert ledger.create_slot(other.user_id, start, end).teacher_id == other.id

    def test_caller_without_teacher_profile(self, ledger, make_user, clock):
        parent = make_user(UserRole.PARENT)
        start, end = _window(clock)
        with pytest.raises(NotFoundException):
            ledger.create_slot(parent.id, start, end)

    def test_suspended_teacher_cannot_publish(self, ledger, teacher, clock, db):
        conduct = ConductLedgerService(db, clock)
        for _ in range(3):
            conduct.issue_strike(teacher.id, reason="test")
        db.commit()

        start, end = _window(clock)
        with pytest.raises(TeacherSuspendedException):
            ledger.create_slot(teacher.user_id, start, end)


class TestUpdateSlot:
    def test_moves_unbooked_slot(self, ledger, teacher, clock):
        start, end = _window(clock)
        slot = ledger.create_slot(teacher.user_id, start, end)

        moved = ledger.update_slot(teacher.user_id, slot.id, end_at=end + timedelta(minutes=30))

        assert moved.duration_minutes == 90

    def test_only_owner_may_move(self, ledger, teacher, make_teacher, clock):
        other = make_teacher()
        start, end = _window(clock)
        slot = ledger.create_slot(teacher.user_id, start, end)

        with pytest.raises(ForbiddenException):
            ledger.update_slot(other.user_id, slot.id, start_at=start + timedelta(minutes=10))

    def test_booked_slot_is_frozen(self, ledger, teacher, make_slot):
        slot = make_slot(teacher, is_booked=True)
        with pytest.raises(ConflictException) as exc:
            ledger.update_slot(teacher.user_id, slot.id, end_at=slot.end_at + timedelta(minutes=15))
        assert exc.value.code == "SLOT_BOOKED"

    def test_update_ignores_its_own_range_for_overlap(self, ledger, teacher, clock):
        start, end = _window(clock)
        slot = ledger.create_slot(teacher.user_id, start, end)
        moved = ledger.update_slot(teacher.user_id, slot.id, start_at=start + timedelta(minutes=15))
        assert moved.duration_minutes == 45

    def test_update_rejects_overlap_with_sibling(self, ledger, teacher, clock):
        start, end = _window(clock)
        ledger.create_slot(teacher.user_id, start, end)
        later = ledger.create_slot(teacher.user_id, end, end + timedelta(minutes=60))

        with pytest.raises(AvailabilityOverlapException):
            ledger.update_slot(teacher.user_id, later.id, start_at=end - timedelta(minutes=15))

    def test_unknown_slot(self, ledger, teacher):
        with pytest.raises(NotFoundException):
            ledger.update_slot(teacher.user_id, "01J00000000000000000000000", end_at=None)


class TestReservation:
    def test_reserve_then_second_reserve_fails(self, ledger, teacher, make_slot, db):
        slot = make_slot(teacher)

        ledger.reserve(slot.id)
        db.commit()

        with pytest.raises(SlotUnavailableException) as exc:
            ledger.reserve(slot.id)
        assert exc.value.code == "SLOT_UNAVAILABLE"
        db.rollback()
        assert db.get(Slot, slot.id).is_booked is True

    def test_release_is_idempotent(self, ledger, teacher, make_slot, db):
        slot = make_slot(teacher, is_booked=True)

        ledger.release(slot.id)
        ledger.release(slot.id)
        db.commit()

        assert db.get(Slot, slot.id).is_booked is False
        ledger.reserve(slot.id)

    def test_reserve_unknown_slot(self, ledger):
        with pytest.raises(SlotUnavailableException):
            ledger.reserve("01J00000000000000000000000")


def test_list_teacher_slots_only_upcoming_in_order(ledger, teacher, make_slot):
    make_slot(teacher, starts_in=-timedelta(days=1))
    later = make_slot(teacher, starts_in=timedelta(days=3))
    sooner = make_slot(teacher, starts_in=timedelta(days=1))

    slots = ledger.list_teacher_slots(teacher.user_id)

    assert [s.id for s in slots] == [sooner.id, later.id]


class TestMarketplace:
    def test_lists_open_upcoming_slots_per_teacher(self, ledger, teacher, make_teacher, make_slot):
        other = make_teacher(hourly_rate_cents=5000)
        make_slot(teacher, starts_in=-timedelta(hours=1))
        make_slot(teacher, starts_in=timedelta(days=1), is_booked=True)
        later = make_slot(teacher, starts_in=timedelta(days=3))
        sooner = make_slot(teacher, starts_in=timedelta(days=2))
        theirs = make_slot(other, starts_in=timedelta(days=1))

        result = ledger.list_marketplace(page=1, per_page=20)

        assert result.total == 2
        by_teacher = {entry.teacher.id: [s.id for s in entry.slots] for entry in result.entries}
        assert by_teacher == {teacher.id: [sooner.id, later.id], other.id: [theirs.id]}

    def test_suspended_teachers_are_hidden(self, ledger, teacher, make_teacher, make_slot, admin, db, clock):
        hidden = make_teacher()
        make_slot(hidden)
        make_slot(teacher)
        ConductLedgerService(db, clock).suspend_teacher(hidden.id, admin_user_id=admin.id, reason="audit")

        result = ledger.list_marketplace(page=1, per_page=20)

        assert result.total == 1
        assert [entry.teacher.id for entry in result.entries] == [teacher.id]

    def test_slots_per_teacher_are_capped(self, ledger, teacher, make_slot):
        for day in range(1, 13):
            make_slot(teacher, starts_in=timedelta(days=day))

        (entry,) = ledger.list_marketplace(page=1, per_page=20).entries

        assert len(entry.slots) == 10

    def test_pagination(self, ledger, make_teacher):
        teachers = {make_teacher().id for _ in range(3)}

        first = ledger.list_marketplace(page=1, per_page=2)
        second = ledger.list_marketplace(page=2, per_page=2)

        assert first.total == second.total == 3
        assert len(first.entries) == 2
        assert len(second.entries) == 1
        assert {e.teacher.id for e in first.entries + second.entries} == teachers
        assert second.entries[0].slots == []
