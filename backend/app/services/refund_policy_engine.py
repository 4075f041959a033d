"""
Refund and conduct policy for cancellations.

Pure functions: no database, no clock, no settings lookups inside the
decision itself. The refund table and the strike rule are deliberately
separate so either can change without touching the other.

Refund table (hours = time from cancellation to class start):

    no-show by teacher   100%
    hours >= 24          100%
    2 <= hours < 24       50%
    hours < 2              0%

Strike rule: students never receive strikes. A teacher cancellation costs
one strike when it is beyond the free monthly quota or made with less than
2 hours notice.
"""

from __future__ import annotations

from dataclasses import dataclass

from app.core.constants import (
    FULL_REFUND_NOTICE_HOURS,
    PARTIAL_REFUND_NOTICE_HOURS,
    PARTIAL_REFUND_PERCENT,
)
from app.models.conduct import CancellationInitiator


@dataclass(frozen=True)
class RefundDecision:
    refund_percent: int
    refund_cents: int
    policy_basis: str

    @property
    def is_full(self) -> bool:
        return self.refund_percent == 100

    @property
    def is_none(self) -> bool:
        return self.refund_percent == 0

    def to_payload(self) -> dict[str, object]:
        return {
            "refund_percent": self.refund_percent,
            "refund_cents": self.refund_cents,
            "policy_basis": self.policy_basis,
        }


@dataclass(frozen=True)
class StrikeDecision:
    issue_strike: bool
    cancellation_ordinal: int
    policy_basis: str


def _percent_of(amount_cents: int, percent: int) -> int:
    """``amount * percent / 100`` rounded half-up to whole cents."""
    return (amount_cents * percent + 50) // 100


def calculate_refund(amount_cents: int, hours_before_class: float, is_no_show: bool) -> RefundDecision:
    """Apply the refund table to a booking amount."""
    if amount_cents < 0:
        raise ValueError("amount_cents must be non-negative")

    if is_no_show:
        return RefundDecision(100, amount_cents, "Teacher no-show: full refund")
    if hours_before_class >= FULL_REFUND_NOTICE_HOURS:
        return RefundDecision(100, amount_cents, ">=24 hours notice: full refund")
    if hours_before_class >= PARTIAL_REFUND_NOTICE_HOURS:
        return RefundDecision(
            PARTIAL_REFUND_PERCENT,
            _percent_of(amount_cents, PARTIAL_REFUND_PERCENT),
            "2-24 hours notice: 50% refund",
        )
    return RefundDecision(0, 0, "<2 hours notice: no refund")


def decide_strike(
    initiator: CancellationInitiator,
    hours_before_class: float,
    prior_teacher_cancellations_in_period: int,
    free_cancellations_per_period: int = 2,
) -> StrikeDecision:
    """
    Decide whether a cancellation costs the teacher a strike.

    ``prior_teacher_cancellations_in_period`` excludes the cancellation being
    decided; this one is ordinal ``prior + 1``.
    """
    if prior_teacher_cancellations_in_period < 0:
        raise ValueError("prior cancellation count must be non-negative")

    ordinal = prior_teacher_cancellations_in_period + 1
    if initiator != CancellationInitiator.TEACHER:
        return StrikeDecision(False, ordinal, "Student-initiated: no strike")

    if hours_before_class < PARTIAL_REFUND_NOTICE_HOURS:
        return StrikeDecision(True, ordinal, "Teacher cancellation with <2 hours notice")
    if ordinal > free_cancellations_per_period:
        return StrikeDecision(
            True,
            ordinal,
            f"Teacher cancellation #{ordinal} exceeds {free_cancellations_per_period} free per month",
        )
    return StrikeDecision(False, ordinal, "Within free monthly cancellation quota")
