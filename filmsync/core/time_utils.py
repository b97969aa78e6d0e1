from __future__ import annotations

import time
from datetime import UTC, datetime


def utc_now() -> datetime:
    """Return a timezone-aware UTC datetime."""
    return datetime.now(UTC)


def monotonic() -> float:
    """Monotonic clock used for sync throttling."""
    return time.monotonic()
