"""
Clock
=====

Single source of "now" for services. Everything in the core takes an
injectable clock so time-based rules are deterministic under test.
"""

from datetime import datetime, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)
