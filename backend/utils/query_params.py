"""Shared query parameter parsing utilities."""

import uuid
from datetime import datetime, timezone

from fastapi import HTTPException


def parse_sync_id(sync_id: str | None) -> str | None:
    """Validate an optional sync run id.

    Raises:
        HTTPException: 400 if the id is not a valid UUID.
    """
    if not sync_id:
        return None
    sync_id = sync_id.strip()
    try:
        uuid.UUID(sync_id)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid sync ID format: {sync_id}",
        )
    return sync_id


def parse_timestamp(value: str | None, name: str) -> datetime | None:
    """Parse an ISO-8601 / RFC 3339 timestamp query parameter.

    A trailing ``Z`` is accepted. Naive values are taken as UTC.

    Args:
        value: Raw query string value, or None.
        name: Parameter name, for the error message.

    Raises:
        HTTPException: 400 if the value is not a valid timestamp.
    """
    if not value:
        return None
    raw = value.strip()
    if raw.endswith(("Z", "z")):
        raw = raw[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        raise HTTPException(
            status_code=400,
            detail=f"Invalid '{name}' timestamp, expected ISO-8601: {value}",
        )
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
