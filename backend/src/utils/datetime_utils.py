"""
Datetime utilities for consistent timezone handling across the application.

All business logic runs in the clinic's local timezone (UTC+8). Rebates are
bucketed by the calendar day a transaction happened on in that timezone, so a
transaction entered at 00:30 local time belongs to that day even though it is
still the previous day in UTC.
"""

import logging
from datetime import datetime, timezone, timedelta, date
from typing import Optional

from core.config import BUSINESS_TIMEZONE_OFFSET_HOURS

logger = logging.getLogger(__name__)

BUSINESS_TZ = timezone(timedelta(hours=BUSINESS_TIMEZONE_OFFSET_HOURS))


def business_now() -> datetime:
    """
    Get current datetime in the business timezone.

    Returns:
        Current timezone-aware datetime (UTC+8 by default)
    """
    return datetime.now(BUSINESS_TZ)


def ensure_business_tz(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is timezone-aware in the business timezone.

    Naive datetimes are assumed to already be business-local time.

    Args:
        dt: Datetime to localize or convert

    Returns:
        Timezone-aware datetime in the business timezone, or None if input is None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.replace(tzinfo=BUSINESS_TZ)
    return dt.astimezone(BUSINESS_TZ)


def to_rebate_date(value: datetime | date) -> date:
    """
    Get the rebate aggregation bucket (calendar day) for a transaction date.

    Args:
        value: Transaction timestamp, or an already-bucketed date

    Returns:
        Calendar date in the business timezone
    """
    # Business-local day, not the UTC day; see "Rebate date" in DESIGN.md
    if isinstance(value, datetime):
        local_datetime = ensure_business_tz(value)
        assert local_datetime is not None
        return local_datetime.date()
    return value


def month_bounds(month: int, year: int) -> tuple[date, date]:
    """
    Get the first and last day of a calendar month.

    Raises:
        ValueError: If month is not between 1 and 12
    """
    if month < 1 or month > 12:
        raise ValueError(f"Invalid month: {month}")
    start = date(year, month, 1)
    if month == 12:
        end = date(year + 1, 1, 1) - timedelta(days=1)
    else:
        end = date(year, month + 1, 1) - timedelta(days=1)
    return start, end
