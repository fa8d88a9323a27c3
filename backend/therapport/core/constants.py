"""Application-wide constants for the Therapport platform."""

from __future__ import annotations

from datetime import time

BRAND_NAME = "Therapport"

# Opening hours shared by every location
OPENING_TIME = time(8, 0)
CLOSING_TIME = time(22, 0)
AFTERNOON_START = time(15, 0)

# Hourly slot grid exposed by the availability endpoint
SLOT_LENGTH_MINUTES = 60

# Webhook ledger source names
WEBHOOK_SOURCE_STRIPE = "stripe"

# Invoice line description Stripe uses for the prorated first month
PRORATED_LINE_MARKER = "Prorated current month"

# Text constraints
MAX_REASON_LENGTH = 255
MAX_DESCRIPTION_LENGTH = 255

# Query limits
DEFAULT_QUERY_LIMIT = 100
