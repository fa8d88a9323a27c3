# backend/tests/unit/services/test_pricing_service.py
"""
Unit tests for the pure pricing functions.

Rates: Kensington 19/23/14 and Pimlico 15/20/13 pounds per hour
(weekday morning, weekday afternoon from 15:00, weekend).
"""

from datetime import date, time

import pytest

from therapport.core.enums import LocationName
from therapport.core.exceptions import ValidationException
from therapport.services.pricing_service import (
    END_OF_DAY_SECONDS,
    calculate_price,
    calculate_price_per_hour,
    normalize_time,
    parse_time,
    quote_price,
)

WEEKDAY = date(2026, 3, 10)  # Tuesday
SATURDAY = date(2026, 3, 14)
SUNDAY = date(2026, 3, 15)


class TestParseTime:
    def test_hours_and_minutes(self):
        assert parse_time("09:30") == 9 * 3600 + 30 * 60

    def test_with_seconds(self):
        assert parse_time("14:05:09") == 14 * 3600 + 5 * 60 + 9

    def test_time_object_passthrough(self):
        assert parse_time(time(15, 0)) == 15 * 3600

    def test_midnight_end_of_day_is_accepted(self):
        assert parse_time("24:00") == END_OF_DAY_SECONDS

    @pytest.mark.parametrize("value", ["9:30", "25:00", "12:60", "noon", "", "12:00:61"])
    def test_rejects_malformed(self, value):
        with pytest.raises(ValidationException) as exc_info:
            parse_time(value)
        assert exc_info.value.code == "INVALID_TIME_FORMAT"

    def test_normalize_rejects_end_of_day(self):
        with pytest.raises(ValidationException):
            normalize_time("24:00")


class TestCalculatePrice:
    def test_kensington_weekday_straddling_afternoon(self):
        """One morning hour at £19 plus one afternoon hour at £23."""
        assert calculate_price(LocationName.KENSINGTON, WEEKDAY, "14:00", "16:00") == 4200

    def test_kensington_weekday_morning_only(self):
        assert calculate_price("Kensington", WEEKDAY, "10:15", "11:45") == 2850

    def test_pimlico_weekday_afternoon_only(self):
        assert calculate_price(LocationName.PIMLICO, WEEKDAY, "18:00", "22:00") == 8000

    @pytest.mark.parametrize("day", [SATURDAY, SUNDAY])
    def test_weekend_flat_rate_ignores_afternoon_boundary(self, day):
        assert calculate_price(LocationName.PIMLICO, day, "10:00", "12:30") == 3250
        assert calculate_price(LocationName.KENSINGTON, day, "14:00", "16:00") == 2800

    def test_partial_segments_round_once_half_up(self):
        # 5 min at £15/h (125p) + 5 min at £20/h (166.67p) = 291.67p
        assert calculate_price(LocationName.PIMLICO, WEEKDAY, "14:55", "15:05") == 292

    def test_full_opening_day(self):
        # 7h at £19 + 7h at £23
        assert calculate_price(LocationName.KENSINGTON, WEEKDAY, "08:00", "22:00") == 29400

    @pytest.mark.parametrize(
        "start,end,code",
        [
            ("07:30", "09:00", "OUTSIDE_OPENING_HOURS"),
            ("21:00", "22:30", "OUTSIDE_OPENING_HOURS"),
            ("21:00", "24:00", "OUTSIDE_OPENING_HOURS"),
            ("12:00", "12:00", "INVALID_TIME_RANGE"),
            ("13:00", "12:00", "INVALID_TIME_RANGE"),
        ],
    )
    def test_rejects_invalid_spans(self, start, end, code):
        with pytest.raises(ValidationException) as exc_info:
            calculate_price(LocationName.KENSINGTON, WEEKDAY, start, end)
        assert exc_info.value.code == code

    def test_unknown_location(self):
        with pytest.raises(ValidationException) as exc_info:
            calculate_price("Mayfair", WEEKDAY, "10:00", "11:00")
        assert exc_info.value.code == "UNKNOWN_LOCATION"

    @pytest.mark.parametrize("location", list(LocationName))
    @pytest.mark.parametrize("day", [WEEKDAY, SATURDAY])
    @pytest.mark.parametrize(
        "start,end", [("08:00", "22:00"), ("14:00", "16:00"), ("14:20", "15:40")]
    )
    def test_repeated_calls_agree(self, location, day, start, end):
        prices = {calculate_price(location, day, start, end) for _ in range(3)}
        assert len(prices) == 1

    @pytest.mark.parametrize("location", list(LocationName))
    @pytest.mark.parametrize(
        "day,start,split,end",
        [
            (WEEKDAY, "14:00", "15:00", "16:00"),
            (WEEKDAY, "08:00", "15:00", "22:00"),
            (WEEKDAY, "10:00", "12:00", "13:00"),
            (SATURDAY, "09:00", "15:00", "18:00"),
        ],
    )
    def test_whole_hour_spans_are_additive(self, location, day, start, split, end):
        whole = calculate_price(location, day, start, end)
        parts = calculate_price(location, day, start, split) + calculate_price(
            location, day, split, end
        )
        assert whole == parts


class TestQuotePrice:
    def test_segments_and_effective_hourly_rate(self):
        quote = quote_price(LocationName.KENSINGTON, WEEKDAY, "14:00", "16:00")

        assert quote.total_pence == 4200
        assert quote.price_per_hour_pence == 2100
        assert quote.duration_minutes == 120
        assert [(s.start_seconds, s.end_seconds, s.rate_pence) for s in quote.segments] == [
            (14 * 3600, 15 * 3600, 1900),
            (15 * 3600, 16 * 3600, 2300),
        ]

    def test_single_segment_when_span_ends_at_boundary(self):
        quote = quote_price(LocationName.PIMLICO, WEEKDAY, "13:00", "15:00")
        assert len(quote.segments) == 1
        assert quote.total_pence == 3000


class TestCalculatePricePerHour:
    def test_boundary_belongs_to_afternoon(self):
        assert calculate_price_per_hour(LocationName.KENSINGTON, WEEKDAY, "14:59") == 1900
        assert calculate_price_per_hour(LocationName.KENSINGTON, WEEKDAY, "15:00") == 2300

    def test_weekend(self):
        assert calculate_price_per_hour(LocationName.PIMLICO, SATURDAY, "09:00") == 1300

    @pytest.mark.parametrize("at", ["07:59", "22:00"])
    def test_outside_opening_hours(self, at):
        with pytest.raises(ValidationException):
            calculate_price_per_hour(LocationName.PIMLICO, WEEKDAY, at)
