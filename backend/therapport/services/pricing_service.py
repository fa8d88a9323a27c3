"""
Room pricing.

Pure functions with no I/O: the same (location, date, span) always yields the
same price, which makes retried booking requests idempotent.

Weekdays have a morning band [08:00, 15:00) and an afternoon band
[15:00, 22:00); weekends use one flat rate. A span is walked in segments split
at 15:00, each segment contributes ``rate × hours``, and the total is rounded
half-up to the penny once at the end.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, time
from decimal import Decimal
import re
from typing import Dict, List, Union

from ..core.constants import AFTERNOON_START, CLOSING_TIME, OPENING_TIME
from ..core.enums import LocationName
from ..core.exceptions import ValidationException
from ..utils.money import round_half_up

TimeInput = Union[str, time]

SECONDS_PER_HOUR = 3600
END_OF_DAY_SECONDS = 24 * SECONDS_PER_HOUR

_TIME_PATTERN = re.compile(r"^(\d{2}):(\d{2})(?::(\d{2}))?$")


@dataclass(frozen=True)
class RateCard:
    """Hourly rates for one location, in pence."""

    weekday_morning: int
    weekday_afternoon: int
    weekend: int


RATE_CARDS: Dict[LocationName, RateCard] = {
    LocationName.KENSINGTON: RateCard(weekday_morning=1900, weekday_afternoon=2300, weekend=1400),
    LocationName.PIMLICO: RateCard(weekday_morning=1500, weekday_afternoon=2000, weekend=1300),
}


@dataclass(frozen=True)
class PriceSegment:
    start_seconds: int
    end_seconds: int
    rate_pence: int

    @property
    def hours(self) -> Decimal:
        return Decimal(self.end_seconds - self.start_seconds) / SECONDS_PER_HOUR

    @property
    def amount(self) -> Decimal:
        """Unrounded pence for this segment."""
        return Decimal(self.rate_pence) * self.hours


@dataclass(frozen=True)
class PriceQuote:
    total_pence: int
    price_per_hour_pence: int
    duration_seconds: int
    segments: List[PriceSegment] = field(default_factory=list)

    @property
    def duration_hours(self) -> Decimal:
        return Decimal(self.duration_seconds) / SECONDS_PER_HOUR

    @property
    def duration_minutes(self) -> int:
        return self.duration_seconds // 60


def _seconds_of(value: time) -> int:
    return value.hour * SECONDS_PER_HOUR + value.minute * 60 + value.second


OPENING_SECONDS = _seconds_of(OPENING_TIME)
CLOSING_SECONDS = _seconds_of(CLOSING_TIME)
AFTERNOON_SECONDS = _seconds_of(AFTERNOON_START)


def parse_time(value: TimeInput) -> int:
    """
    Parse ``HH:MM`` or ``HH:MM:SS`` into seconds since midnight.

    ``24:00`` / ``24:00:00`` is accepted (end of day) so it can be rejected by
    the opening-hours check with a clearer message.

    Raises:
        ValidationException: For anything else
    """
    if isinstance(value, time):
        return _seconds_of(value)

    match = _TIME_PATTERN.match(str(value).strip())
    if not match:
        raise ValidationException(
            f"Invalid time format: {value!r}. Expected HH:MM or HH:MM:SS",
            code="INVALID_TIME_FORMAT",
        )
    hours, minutes, seconds = int(match.group(1)), int(match.group(2)), int(match.group(3) or 0)
    if hours == 24 and minutes == 0 and seconds == 0:
        return END_OF_DAY_SECONDS
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValidationException(
            f"Invalid time value: {value!r}",
            code="INVALID_TIME_FORMAT",
        )
    return hours * SECONDS_PER_HOUR + minutes * 60 + seconds


def seconds_to_time(seconds: int) -> time:
    return time(seconds // SECONDS_PER_HOUR, (seconds % SECONDS_PER_HOUR) // 60, seconds % 60)


def normalize_time(value: TimeInput) -> time:
    """Parse a time input into a ``datetime.time`` inside the bookable day."""
    seconds = parse_time(value)
    if seconds >= END_OF_DAY_SECONDS:
        raise ValidationException("Bookings must end by 22:00", code="OUTSIDE_OPENING_HOURS")
    return seconds_to_time(seconds)


def resolve_location(location: Union[str, LocationName]) -> LocationName:
    try:
        return LocationName(location)
    except ValueError:
        raise ValidationException(f"Unknown location: {location}", code="UNKNOWN_LOCATION") from None


def is_weekend(day: date) -> bool:
    return day.weekday() >= 5


def validate_span(start_seconds: int, end_seconds: int) -> None:
    if start_seconds < OPENING_SECONDS or end_seconds > CLOSING_SECONDS:
        raise ValidationException(
            "Bookings must be between 08:00 and 22:00",
            code="OUTSIDE_OPENING_HOURS",
        )
    if end_seconds <= start_seconds:
        raise ValidationException(
            "End time must be after start time",
            code="INVALID_TIME_RANGE",
        )


def build_segments(
    location: LocationName, day: date, start_seconds: int, end_seconds: int
) -> List[PriceSegment]:
    card = RATE_CARDS[location]
    if is_weekend(day):
        return [PriceSegment(start_seconds, end_seconds, card.weekend)]

    segments: List[PriceSegment] = []
    if start_seconds < AFTERNOON_SECONDS:
        segments.append(
            PriceSegment(start_seconds, min(end_seconds, AFTERNOON_SECONDS), card.weekday_morning)
        )
    if end_seconds > AFTERNOON_SECONDS:
        segments.append(
            PriceSegment(max(start_seconds, AFTERNOON_SECONDS), end_seconds, card.weekday_afternoon)
        )
    return segments


def quote_price(
    location: Union[str, LocationName],
    day: date,
    start: TimeInput,
    end: TimeInput,
) -> PriceQuote:
    """
    Price a same-day span at a location.

    Raises:
        ValidationException: Malformed times, span outside 08:00-22:00, or end <= start
    """
    loc = resolve_location(location)
    start_seconds = parse_time(start)
    end_seconds = parse_time(end)
    validate_span(start_seconds, end_seconds)

    segments = build_segments(loc, day, start_seconds, end_seconds)
    total_pence = round_half_up(sum((segment.amount for segment in segments), Decimal(0)))

    duration_seconds = end_seconds - start_seconds
    per_hour = round_half_up(Decimal(total_pence) * SECONDS_PER_HOUR / duration_seconds)
    return PriceQuote(
        total_pence=total_pence,
        price_per_hour_pence=per_hour,
        duration_seconds=duration_seconds,
        segments=segments,
    )


def calculate_price(
    location: Union[str, LocationName],
    day: date,
    start: TimeInput,
    end: TimeInput,
) -> int:
    """Total price of the span in pence."""
    return quote_price(location, day, start, end).total_pence


def calculate_price_per_hour(location: Union[str, LocationName], day: date, at: TimeInput) -> int:
    """Hourly rate in pence in force at a given instant. 22:00 is not a billable start."""
    loc = resolve_location(location)
    seconds = parse_time(at)
    if seconds < OPENING_SECONDS or seconds >= CLOSING_SECONDS:
        raise ValidationException(
            "Time must be between 08:00 and 22:00",
            code="OUTSIDE_OPENING_HOURS",
        )
    card = RATE_CARDS[loc]
    if is_weekend(day):
        return card.weekend
    return card.weekday_morning if seconds < AFTERNOON_SECONDS else card.weekday_afternoon
