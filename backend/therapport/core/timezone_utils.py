"""
Timezone utilities for the Therapport platform.

All booking rules (weekend pricing, "today", notice windows) are evaluated in
the business's civil timezone, never in UTC.
"""

import calendar
from datetime import date, datetime, time, timedelta

import pytz

from .config import settings


def get_business_timezone() -> pytz.BaseTzInfo:
    """Return the configured business timezone (Europe/London by default)."""
    return pytz.timezone(settings.business_timezone)


def business_now() -> datetime:
    """Current aware datetime in the business timezone."""
    return datetime.now(get_business_timezone())


def business_today() -> date:
    """'Today' as seen by the practice."""
    return business_now().date()


def localize(day: date, at: time) -> datetime:
    """
    Build an aware datetime for a wall-clock time on a calendar day.

    Uses pytz ``localize`` so the offset reflects DST on that day.
    """
    return get_business_timezone().localize(datetime.combine(day, at))


def end_of_month(day: date) -> date:
    """Last calendar day of the month containing ``day``."""
    return day.replace(day=calendar.monthrange(day.year, day.month)[1])


def add_months(day: date, months: int) -> date:
    """
    Shift a date by whole calendar months.

    The day of month is clamped, so 31 January + 1 month is the last day of
    February.
    """
    month_index = day.month - 1 + months
    year = day.year + month_index // 12
    month = month_index % 12 + 1
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day.day, last_day))


def end_of_next_month(day: date) -> date:
    """Last calendar day of the month after ``day``'s month."""
    return end_of_month(end_of_month(day) + timedelta(days=1))


def days_in_month(day: date) -> int:
    return calendar.monthrange(day.year, day.month)[1]


def to_business_date(dt: datetime) -> date:
    """Convert an aware (or naive UTC) datetime to a business-local date."""
    if dt.tzinfo is None:
        dt = pytz.UTC.localize(dt)
    return dt.astimezone(get_business_timezone()).date()
