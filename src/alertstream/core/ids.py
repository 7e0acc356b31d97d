"""Canonical ID and timestamp factories for the platform.

Timestamp Rule
--------------
All timestamps are ``datetime`` with ``tzinfo=timezone.utc``, never naive.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone


def new_id() -> str:
    """Generate a new UUID v4 string.  Use for event ids."""
    return str(uuid.uuid4())


def new_uuid() -> uuid.UUID:
    """Generate a new UUID v4.  Use for alert and note identities."""
    return uuid.uuid4()


def utc_now() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(timezone.utc)


def parse_uuid(value: uuid.UUID | str) -> uuid.UUID:
    """Coerce *value* to a :class:`uuid.UUID`."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
