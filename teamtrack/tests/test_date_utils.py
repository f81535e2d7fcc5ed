import unittest
from datetime import date

from teamtrack.date_utils import (
    FixedClock,
    compare_dates,
    day_span,
    format_date,
    normalize_date,
    parse_date,
)
from teamtrack.errors import InvalidDateFormat, ValidationError


class DaySpanTests(unittest.TestCase):
    def test_counts_whole_days_between_dates(self) -> None:
        self.assertEqual(day_span("01/01/2024", "08/01/2024"), 7)
        self.assertEqual(day_span("28/02/2024", "01/03/2024"), 2)  # leap year

    def test_is_order_independent(self) -> None:
        self.assertEqual(day_span("15/01/2024", "01/01/2024"), 14)
        self.assertEqual(day_span("01/01/2024", "15/01/2024"), 14)

    def test_same_day_is_zero(self) -> None:
        self.assertEqual(day_span("05/05/2023", "5/5/2023"), 0)

    def test_unparsable_dates_raise_invalid_date_format(self) -> None:
        for bad in ("2024-01-01", "32/01/2024", "29/02/2023", "", "01/01", None):
            with self.subTest(value=bad):
                with self.assertRaises(InvalidDateFormat):
                    day_span(bad, "01/01/2024")

    def test_invalid_date_format_is_a_validation_error(self) -> None:
        with self.assertRaises(ValidationError):
            parse_date("tomorrow")


class DateFormattingTests(unittest.TestCase):
    def test_normalize_pads_day_and_month(self) -> None:
        self.assertEqual(normalize_date("1/2/2024"), "01/02/2024")
        self.assertEqual(format_date(date(2024, 12, 31)), "31/12/2024")

    def test_compare_dates(self) -> None:
        self.assertEqual(compare_dates("02/01/2024", "01/01/2024"), 1)
        self.assertEqual(compare_dates("01/01/2024", "02/01/2024"), -1)
        self.assertEqual(compare_dates(date(2024, 1, 1), "01/01/2024"), 0)


class ClockTests(unittest.TestCase):
    def test_fixed_clock_moves_when_set(self) -> None:
        clock = FixedClock("01/01/2024")
        self.assertEqual(clock.today(), date(2024, 1, 1))
        clock.set("09/01/2024")
        self.assertEqual(clock.today(), date(2024, 1, 9))
        self.assertEqual(clock.timestamp(), "00:00:00 09/01/2024")


if __name__ == "__main__":
    unittest.main()
