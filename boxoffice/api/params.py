"""Query-string helpers shared by the list endpoints."""

from __future__ import annotations

import re
from datetime import date, datetime, time, timezone

from boxoffice.errors import InvalidArgument

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_time_bound(value: str | None, *, name: str, end_of_day: bool = False) -> datetime | None:
    """Parse an ISO date or datetime filter.

    A bare ``YYYY-MM-DD`` upper bound covers the whole day.
    """

    if value is None or not value.strip():
        return None
    raw = value.strip()
    try:
        if _DATE_ONLY.match(raw):
            day = date.fromisoformat(raw)
            moment = datetime.combine(day, time.max if end_of_day else time.min)
        else:
            moment = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError as exc:
        raise InvalidArgument(f"{name} must be an ISO date or datetime") from exc
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment
