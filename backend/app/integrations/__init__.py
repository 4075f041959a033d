"""External service integrations for the Lumexa booking core."""

from .hundredms_client import (
    FakeHundredMsClient,
    HundredMsClient,
    HundredMsError,
    VideoAccessGrant,
)
from .stripe_client import (
    FakeStripeClient,
    OnboardingLink,
    PaymentAuthorization,
    PaymentGatewayError,
    StripeClient,
)

__all__ = [
    "FakeHundredMsClient",
    "FakeStripeClient",
    "HundredMsClient",
    "HundredMsError",
    "OnboardingLink",
    "PaymentAuthorization",
    "PaymentGatewayError",
    "StripeClient",
    "VideoAccessGrant",
]
