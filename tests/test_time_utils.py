from __future__ import annotations

import unittest
from datetime import datetime, timezone

from ingestion.time_utils import parse_utc, period_start


class ParseUtcTests(unittest.TestCase):
    def test_z_suffix_and_offsets(self) -> None:
        self.assertEqual(
            parse_utc("2026-01-02T08:00:00Z"),
            datetime(2026, 1, 2, 8, 0, tzinfo=timezone.utc),
        )
        self.assertEqual(
            parse_utc("2026-01-02T08:00:00-05:00"),
            datetime(2026, 1, 2, 13, 0, tzinfo=timezone.utc),
        )

    def test_blank_and_invalid(self) -> None:
        self.assertIsNone(parse_utc(None))
        self.assertIsNone(parse_utc("   "))
        self.assertIsNone(parse_utc("3pm"))
        with self.assertRaises(ValueError):
            parse_utc("3pm", strict=True)


class PeriodStartTests(unittest.TestCase):
    def setUp(self) -> None:
        self.now = datetime(2026, 3, 31, 12, 0, tzinfo=timezone.utc)

    def test_days(self) -> None:
        self.assertEqual(period_start("7d", self.now), datetime(2026, 3, 24, 12, 0, tzinfo=timezone.utc))

    def test_months_clamp_to_month_end(self) -> None:
        self.assertEqual(period_start("1m", self.now), datetime(2026, 2, 28, 12, 0, tzinfo=timezone.utc))
        self.assertEqual(period_start("3m", self.now), datetime(2025, 12, 31, 12, 0, tzinfo=timezone.utc))

    def test_years(self) -> None:
        self.assertEqual(period_start("1y", self.now), datetime(2025, 3, 31, 12, 0, tzinfo=timezone.utc))

    def test_invalid_period(self) -> None:
        for period in ("30", "d30", "2w", ""):
            with self.assertRaises(ValueError):
                period_start(period, self.now)


if __name__ == "__main__":
    unittest.main()
