"""Payout onboarding schemas."""

from typing import Optional

from ._strict_base import StrictModel


class PayoutOnboardingResponse(StrictModel):
    account_id: str
    onboarding_url: str


class PayoutStatusResponse(StrictModel):
    account_id: Optional[str] = None
    onboarded: bool
