"""Shared utility functions used across dealflow modules."""
from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

_MISSING = object()


def json_parse(value: str | None, default: Any = _MISSING) -> Any:
    """Safely parse a JSON string, returning *default* on failure.

    If no default is given, returns ``{}`` on parse error.
    """
    try:
        return json.loads(value or "")
    except (json.JSONDecodeError, TypeError):
        return {} if default is _MISSING else default


def json_dump(value: Any) -> str:
    """Serialize to JSON, rendering datetimes and other leftovers as strings."""
    return json.dumps(value, default=str)


def utcnow() -> datetime:
    """Current time as a naive UTC datetime (the storage convention)."""
    return datetime.now(UTC).replace(tzinfo=None)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; SQLite hands them back without a zone."""
    return value.replace(tzinfo=UTC) if value.tzinfo is None else value
