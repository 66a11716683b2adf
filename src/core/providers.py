"""
Runtime Providers
=================

Injectable clock and identifier sources.

Services receive these as constructor arguments so tests can freeze time
and produce predictable identifiers.
"""

from datetime import datetime, timezone
from typing import Callable
from uuid import uuid4

Clock = Callable[[], datetime]
IdFactory = Callable[[], str]


def utc_now() -> datetime:
    """Current wall-clock time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Random UUID4 rendered as a string."""
    return str(uuid4())
