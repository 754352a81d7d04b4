"""
auth/filters.py -- Directory filter parsing for GET /getallusers.

The ?filter= query parameter is a JSON object. Each supported key maps to one
frozen dataclass (a tagged variant); UserStore turns each variant into a SQL
predicate through a fixed builder. Unknown keys are rejected with
InvalidFilter rather than silently ignored.

Supported keys:
  name       substring of first or last name (case-insensitive)
  email      substring of email (case-insensitive)
  date       account creation day: "YYYY-MM-DD" or {"from": ..., "to": ...}
  device     "Mobile" | "Tablet" | "Desktop" -- users with any such device
  lastLogin  same date shape, applied to the user's most recent login session

Layer rule: no imports from api/.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import date, timedelta
from typing import Union

from auth.devices import DEVICE_TYPES
from auth.errors import InvalidFilter


@dataclass(frozen=True)
class DateRange:
    """Inclusive day range. Either bound may be None (open-ended)."""

    start: date | None = None
    end: date | None = None

    def lower_bound(self) -> str | None:
        return self.start.isoformat() if self.start else None

    def upper_bound(self) -> str | None:
        """Exclusive upper bound: the day after end, as an ISO date string.

        Timestamps are stored as ISO 8601 text, so "2024-05-02" sorts after
        every timestamp on 2024-05-01 and before any on 2024-05-02.
        """
        return (self.end + timedelta(days=1)).isoformat() if self.end else None


@dataclass(frozen=True)
class NameFilter:
    value: str


@dataclass(frozen=True)
class EmailFilter:
    value: str


@dataclass(frozen=True)
class CreatedDateFilter:
    range: DateRange


@dataclass(frozen=True)
class DeviceFilter:
    name: str


@dataclass(frozen=True)
class LastLoginFilter:
    range: DateRange


UserFilter = Union[NameFilter, EmailFilter, CreatedDateFilter, DeviceFilter, LastLoginFilter]


# ---------------------------------------------------------------------------
# Per-key parsers
# ---------------------------------------------------------------------------


def _invalid(key: str, message: str) -> InvalidFilter:
    return InvalidFilter([{"field": f"filter.{key}", "message": message}])


def _parse_text(key: str, value) -> str:
    if not isinstance(value, str) or not value.strip():
        raise _invalid(key, "Must be a non-empty string.")
    return value.strip()


def _parse_day(key: str, value) -> date:
    if not isinstance(value, str):
        raise _invalid(key, "Dates must be strings in YYYY-MM-DD format.")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise _invalid(key, f"{value[:20]!r} is not a valid YYYY-MM-DD date.") from exc


def _parse_range(key: str, value) -> DateRange:
    if isinstance(value, str):
        day = _parse_day(key, value)
        return DateRange(start=day, end=day)
    if isinstance(value, dict):
        unknown = set(value) - {"from", "to"}
        if unknown:
            raise _invalid(key, f"Unknown range keys: {', '.join(sorted(unknown))}.")
        start = _parse_day(key, value["from"]) if value.get("from") is not None else None
        end = _parse_day(key, value["to"]) if value.get("to") is not None else None
        if start is None and end is None:
            raise _invalid(key, "Range needs at least one of 'from' or 'to'.")
        if start and end and start > end:
            raise _invalid(key, "'from' must not be after 'to'.")
        return DateRange(start=start, end=end)
    raise _invalid(key, 'Expected "YYYY-MM-DD" or {"from": ..., "to": ...}.')


def _parse_device(key: str, value) -> DeviceFilter:
    name = _parse_text(key, value).capitalize()
    if name not in DEVICE_TYPES:
        raise _invalid(key, f"Must be one of: {', '.join(DEVICE_TYPES)}.")
    return DeviceFilter(name=name)


_PARSERS = {
    "name": lambda k, v: NameFilter(_parse_text(k, v)),
    "email": lambda k, v: EmailFilter(_parse_text(k, v).lower()),
    "date": lambda k, v: CreatedDateFilter(_parse_range(k, v)),
    "device": _parse_device,
    "lastLogin": lambda k, v: LastLoginFilter(_parse_range(k, v)),
}

SUPPORTED_KEYS = tuple(_PARSERS)


def parse_filters(raw: str | None) -> list[UserFilter]:
    """Parse the raw ?filter= value into tagged filter variants.

    Returns an empty list for a missing or blank parameter. Raises
    InvalidFilter (400) for malformed JSON, a non-object payload, unknown keys,
    or bad values. Every unknown key is reported, not just the first.
    """
    if raw is None or not raw.strip():
        return []
    try:
        payload = json.loads(raw)
    except ValueError as exc:
        raise InvalidFilter([{"field": "filter", "message": "Filter must be valid JSON."}]) from exc
    if not isinstance(payload, dict):
        raise InvalidFilter([{"field": "filter", "message": "Filter must be a JSON object."}])

    unknown = sorted(set(payload) - set(_PARSERS))
    if unknown:
        raise InvalidFilter(
            [{"field": f"filter.{k}", "message": f"Unsupported filter key. Use one of: {', '.join(SUPPORTED_KEYS)}."} for k in unknown]
        )
    return [_PARSERS[key](key, value) for key, value in payload.items()]
