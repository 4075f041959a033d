"""Stripe Payment Gateway client.

Thin wrapper over the Stripe SDK used by the booking core:

- authorize: manual-capture PaymentIntent routed to the teacher's Connect
  account with the platform fee held back as application fee
- capture / cancel / refund_partial on that intent
- Express account onboarding links and onboarding status

Every call that moves money takes an idempotency key so a retried job never
captures or refunds twice. All SDK errors surface as PaymentGatewayError.
"""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any, Optional
import uuid

from pydantic import SecretStr
import stripe

logger = logging.getLogger(__name__)


class PaymentGatewayError(RuntimeError):
    """Raised when Stripe rejects or fails a request."""

    def __init__(self, message: str, *, code: Optional[str] = None, operation: str = "") -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.operation = operation


@dataclass(frozen=True)
class PaymentAuthorization:
    intent_ref: str
    client_secret: Optional[str]
    status: str


@dataclass(frozen=True)
class OnboardingLink:
    account_id: str
    url: str


def _secret_value(secret: str | SecretStr | None) -> str:
    if secret is None:
        return ""
    return secret.get_secret_value() if isinstance(secret, SecretStr) else secret


class StripeClient:
    """Payment Gateway backed by the Stripe API."""

    def __init__(
        self,
        *,
        api_key: str | SecretStr,
        webhook_secret: str | SecretStr | None = None,
        currency: str = "usd",
    ) -> None:
        stripe.api_key = _secret_value(api_key)
        self._webhook_secret = _secret_value(webhook_secret)
        self._currency = currency

    def _wrap(self, operation: str, exc: stripe.StripeError) -> PaymentGatewayError:
        code = getattr(exc, "code", None)
        logger.error(
            "Stripe %s failed: %s",
            operation,
            str(exc),
            extra={"operation": operation, "stripe_code": code},
        )
        return PaymentGatewayError(str(exc), code=code, operation=operation)

    def authorize(
        self,
        *,
        amount_cents: int,
        application_fee_cents: int,
        destination_account_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentAuthorization:
        """Create a manual-capture PaymentIntent for a booking."""
        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_cents,
                currency=self._currency,
                capture_method="manual",
                application_fee_amount=application_fee_cents,
                transfer_data={"destination": destination_account_id},
                metadata=metadata,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._wrap("authorize", exc) from exc
        return PaymentAuthorization(
            intent_ref=intent.id,
            client_secret=getattr(intent, "client_secret", None),
            status=getattr(intent, "status", "requires_payment_method"),
        )

    def capture(self, intent_ref: str, *, idempotency_key: str) -> str:
        try:
            intent = stripe.PaymentIntent.capture(intent_ref, idempotency_key=idempotency_key)
        except stripe.StripeError as exc:
            raise self._wrap("capture", exc) from exc
        return str(getattr(intent, "status", "succeeded"))

    def cancel(self, intent_ref: str, *, idempotency_key: str) -> str:
        """Void an uncaptured authorization (full refund before capture)."""
        try:
            intent = stripe.PaymentIntent.cancel(intent_ref, idempotency_key=idempotency_key)
        except stripe.StripeError as exc:
            raise self._wrap("cancel", exc) from exc
        return str(getattr(intent, "status", "canceled"))

    def refund_partial(self, intent_ref: str, *, amount_cents: int, idempotency_key: str) -> str:
        """
        Refund part of a captured intent.

        ``reverse_transfer`` pulls the teacher's share back proportionally and
        ``refund_application_fee`` does the same for the platform fee.
        """
        if amount_cents <= 0:
            raise ValueError("amount_cents must be positive")
        try:
            refund = stripe.Refund.create(
                payment_intent=intent_ref,
                amount=amount_cents,
                reverse_transfer=True,
                refund_application_fee=True,
                idempotency_key=idempotency_key,
            )
        except stripe.StripeError as exc:
            raise self._wrap("refund_partial", exc) from exc
        return str(refund.id)

    def create_payout_onboarding_link(
        self,
        *,
        teacher_id: str,
        email: str,
        existing_account_id: Optional[str],
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLink:
        """Create (if needed) an Express account and an onboarding link for it."""
        try:
            account_id = existing_account_id
            if not account_id:
                account = stripe.Account.create(
                    type="express",
                    email=email,
                    capabilities={"transfers": {"requested": True}},
                    metadata={"teacher_id": teacher_id},
                )
                account_id = account.id
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )
        except stripe.StripeError as exc:
            raise self._wrap("onboarding_link", exc) from exc
        return OnboardingLink(account_id=str(account_id), url=str(link.url))

    def is_account_onboarded(self, account_id: str) -> bool:
        try:
            account = stripe.Account.retrieve(account_id)
        except stripe.StripeError as exc:
            raise self._wrap("account_status", exc) from exc
        charges_enabled = bool(getattr(account, "charges_enabled", False))
        details_submitted = bool(getattr(account, "details_submitted", False))
        return charges_enabled and details_submitted

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        if not self._webhook_secret:
            logger.warning("Stripe webhook secret not configured")
            return False
        try:
            stripe.Webhook.construct_event(payload, signature, self._webhook_secret)
            return True
        except (stripe.SignatureVerificationError, ValueError):
            logger.warning("Invalid Stripe webhook signature")
            return False


class FakeStripeClient:
    """In-memory Payment Gateway for tests and local development."""

    def __init__(self, **kwargs: Any) -> None:
        self._calls: list[dict[str, Any]] = []
        self._errors: dict[str, PaymentGatewayError] = {}
        self.intents: dict[str, dict[str, Any]] = {}
        self._idempotency: dict[str, Any] = {}
        self.onboarded_accounts: set[str] = set()

    def set_error(self, method: str, error: Optional[PaymentGatewayError] = None) -> None:
        self._errors[method] = error or PaymentGatewayError(
            f"fake {method} failure", code="fake_error", operation=method
        )

    def clear_errors(self) -> None:
        self._errors.clear()

    def calls_for(self, method: str) -> list[dict[str, Any]]:
        return [call for call in self._calls if call["method"] == method]

    def _record(self, method: str, **fields: Any) -> None:
        self._calls.append({"method": method, **fields})
        error = self._errors.get(method)
        if error is not None:
            raise error

    def authorize(
        self,
        *,
        amount_cents: int,
        application_fee_cents: int,
        destination_account_id: str,
        metadata: dict[str, str],
        idempotency_key: str,
    ) -> PaymentAuthorization:
        self._record(
            "authorize",
            amount_cents=amount_cents,
            application_fee_cents=application_fee_cents,
            destination_account_id=destination_account_id,
            metadata=metadata,
            idempotency_key=idempotency_key,
        )
        if idempotency_key in self._idempotency:
            return self._idempotency[idempotency_key]
        intent_ref = f"pi_fake_{uuid.uuid4().hex[:16]}"
        self.intents[intent_ref] = {
            "amount": amount_cents,
            "application_fee": application_fee_cents,
            "destination": destination_account_id,
            "status": "requires_capture",
            "refunded": 0,
        }
        result = PaymentAuthorization(intent_ref, f"{intent_ref}_secret", "requires_capture")
        self._idempotency[idempotency_key] = result
        return result

    def capture(self, intent_ref: str, *, idempotency_key: str) -> str:
        self._record("capture", intent_ref=intent_ref, idempotency_key=idempotency_key)
        intent = self.intents.setdefault(intent_ref, {"status": "requires_capture", "refunded": 0})
        intent["status"] = "succeeded"
        return "succeeded"

    def cancel(self, intent_ref: str, *, idempotency_key: str) -> str:
        self._record("cancel", intent_ref=intent_ref, idempotency_key=idempotency_key)
        intent = self.intents.setdefault(intent_ref, {"status": "requires_capture", "refunded": 0})
        intent["status"] = "canceled"
        return "canceled"

    def refund_partial(self, intent_ref: str, *, amount_cents: int, idempotency_key: str) -> str:
        self._record(
            "refund_partial",
            intent_ref=intent_ref,
            amount_cents=amount_cents,
            idempotency_key=idempotency_key,
        )
        if idempotency_key in self._idempotency:
            return self._idempotency[idempotency_key]
        intent = self.intents.setdefault(intent_ref, {"status": "succeeded", "refunded": 0})
        intent["refunded"] = intent.get("refunded", 0) + amount_cents
        refund_id = f"re_fake_{uuid.uuid4().hex[:16]}"
        self._idempotency[idempotency_key] = refund_id
        return refund_id

    def create_payout_onboarding_link(
        self,
        *,
        teacher_id: str,
        email: str,
        existing_account_id: Optional[str],
        refresh_url: str,
        return_url: str,
    ) -> OnboardingLink:
        self._record("create_payout_onboarding_link", teacher_id=teacher_id, email=email)
        account_id = existing_account_id or f"acct_fake_{teacher_id[-10:].lower()}"
        return OnboardingLink(
            account_id=account_id,
            url=f"https://connect.stripe.test/setup/{account_id}",
        )

    def is_account_onboarded(self, account_id: str) -> bool:
        self._record("is_account_onboarded", account_id=account_id)
        return account_id in self.onboarded_accounts

    def verify_webhook_signature(self, payload: bytes, signature: str) -> bool:
        return bool(signature)
