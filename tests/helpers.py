"""Shared constants for the test suite."""

from datetime import datetime, timezone

# Monday 2026-03-02 12:00 UTC
NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)

CUSTOMER = "+15550100"
