"""Application-wide constants for BookBetter."""

from __future__ import annotations

BRAND_NAME = "BookBetter"

API_TITLE = f"{BRAND_NAME} API"
API_DESCRIPTION = "Availability computation and booking reservation for BookBetter tenants"
API_VERSION = "1.0.0"

# Wall-clock bounds for working-hour templates (minutes of day)
MINUTES_PER_DAY = 24 * 60

# Days of week follow the JavaScript convention used by the booking UI: 0 = Sunday
SUNDAY = 0
SATURDAY = 6

# Resource key prefix for solo businesses that have no staff accounts
TENANT_RESOURCE_PREFIX = "tenant:"

# Text constraints
MAX_REASON_LENGTH = 500
MAX_CLIENT_NOTES_LENGTH = 1000
