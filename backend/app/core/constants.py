"""Application-wide constants for the Lumexa booking core."""

from __future__ import annotations

BRAND_NAME = "Lumexa"

# Text constraints
MAX_REASON_LENGTH = 500

# Refund table thresholds (hours before class start)
FULL_REFUND_NOTICE_HOURS = 24
PARTIAL_REFUND_NOTICE_HOURS = 2
PARTIAL_REFUND_PERCENT = 50

# Background job types
JOB_CAPTURE_PAYMENT = "payments.capture"
JOB_CANCELLATION_SETTLEMENT = "payments.cancellation_settlement"
JOB_RECORDING_ENDED = "webhooks.recording_ended"

ULID_PATTERN = r"[0-9A-HJKMNP-TV-Z]{26}"
ULID_PATH_PATTERN = rf"^{ULID_PATTERN}$"

# Conduct ledger
MAX_STRIKES = 3

# Marketplace listing
MARKETPLACE_SLOTS_PER_TEACHER = 10
MARKETPLACE_DEFAULT_PER_PAGE = 20
MARKETPLACE_MAX_PER_PAGE = 100

API_VERSION = "1.0.0"
API_TITLE = f"{BRAND_NAME} Booking Core API"
API_DESCRIPTION = "Slots, bookings, class admission and payment settlement for live tutoring."
