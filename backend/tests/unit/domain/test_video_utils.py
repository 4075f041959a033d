"""Tests for video domain utilities."""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.video_utils import join_opens_at, minutes_until, token_ttl_seconds

START = datetime(2030, 3, 4, 16, 0, tzinfo=timezone.utc)


@pytest.mark.unit
class TestJoinOpensAt:
    def test_subtracts_lead(self) -> None:
        assert join_opens_at(START, 10) == START - timedelta(minutes=10)

    def test_naive_start_treated_as_utc(self) -> None:
        naive = START.replace(tzinfo=None)
        assert join_opens_at(naive, 0) == START


@pytest.mark.unit
class TestMinutesUntil:
    @pytest.mark.parametrize(
        "delta, expected",
        [
            (timedelta(minutes=20), 20),
            (timedelta(minutes=19, seconds=1), 20),  # rounds up
            (timedelta(seconds=5), 1),
            (timedelta(seconds=-30), 1),  # never below one
        ],
    )
    def test_rounding(self, delta: timedelta, expected: int) -> None:
        assert minutes_until(START - delta, START) == expected


@pytest.mark.unit
class TestTokenTtlSeconds:
    def test_until_end_plus_grace(self) -> None:
        now = START
        end = START + timedelta(hours=1)
        assert token_ttl_seconds(now, end, 300) == 3600 + 300

    def test_after_end_only_grace_remains(self) -> None:
        assert token_ttl_seconds(START + timedelta(minutes=5), START, 300) == 300
