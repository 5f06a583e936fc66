"""Timestamp normalization for values read back from the document store."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Any, Mapping, Optional

logger = logging.getLogger(__name__)

_MONTH_NAMES = (
    "January",
    "February",
    "March",
    "April",
    "May",
    "June",
    "July",
    "August",
    "September",
    "October",
    "November",
    "December",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime) -> str:
    """Serialize an instant as ISO-8601 with a ``Z`` suffix."""

    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _from_epoch(
    value: float, *, divisor: float = 1, nanos: float = 0
) -> Optional[datetime]:
    try:
        return datetime.fromtimestamp(value / divisor + nanos / 1e9, tz=timezone.utc)
    except (OverflowError, OSError, ValueError) as exc:
        logger.warning("Timestamp %r is out of range: %s", value, exc)
        return None


def _from_epoch_parts(seconds: Any, nanos: Any) -> Optional[datetime]:
    if not isinstance(seconds, (int, float)) or isinstance(seconds, bool):
        return None
    extra = nanos if isinstance(nanos, (int, float)) else 0
    return _from_epoch(seconds, nanos=extra)



def normalize_timestamp(value: Any) -> Optional[datetime]:
    """Coerce the timestamp shapes seen at the storage boundary.

    Accepts aware or naive ``datetime`` values (naive ones are treated as
    UTC), ``{"seconds", "nanoseconds"}`` and ``{"_seconds", "_nanoseconds"}``
    mappings, ISO-8601 strings and epoch numbers in milliseconds. Returns an
    aware UTC ``datetime`` or ``None`` when the value is empty or unreadable.
    """

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, Mapping):
        if "seconds" in value:
            return _from_epoch_parts(value.get("seconds"), value.get("nanoseconds"))
        if "_seconds" in value:
            return _from_epoch_parts(
                value.get("_seconds"), value.get("_nanoseconds")
            )
        logger.warning("Unrecognized timestamp mapping: %s", dict(value))
        return None
    if isinstance(value, bool):
        logger.warning("Ignoring boolean timestamp value: %s", value)
        return None
    if isinstance(value, (int, float)):
        if not math.isfinite(value):
            return None
        return _from_epoch(value, divisor=1000)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError:
            logger.warning("Unable to parse timestamp string: %s", value)
            return None
        return normalize_timestamp(parsed)
    logger.warning("Received timestamp in an unexpected format: %r", value)
    return None


def format_timestamp(value: Any) -> str:
    """Render a timestamp as ``18 October 2026, 14:05`` (UTC)."""

    if value is None or value == "":
        return "Not available"
    moment = normalize_timestamp(value)
    if moment is None:
        return "Invalid date format"
    month = _MONTH_NAMES[moment.month - 1]
    return f"{moment.day} {month} {moment.year}, {moment:%H:%M}"
