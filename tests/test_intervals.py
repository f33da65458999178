import unittest
from datetime import timedelta

from adstxt_updater.core.intervals import DEFAULT_UPDATE_INTERVAL, parse_update_interval


def _ms(value: timedelta) -> int:
    return int(value.total_seconds() * 1000)


class ParseUpdateIntervalTests(unittest.TestCase):
    def test_units(self) -> None:
        cases = {
            "3s": 3_000,
            "60s": 60_000,
            "2m": 120_000,
            "2h": 7_200_000,
            "2d": 172_800_000,
        }
        for value, expected in cases.items():
            with self.subTest(value=value):
                self.assertEqual(_ms(parse_update_interval(value)), expected)

    def test_missing_or_empty_defaults_to_one_day(self) -> None:
        self.assertEqual(_ms(parse_update_interval(None)), 86_400_000)
        self.assertEqual(_ms(parse_update_interval("")), 86_400_000)
        self.assertEqual(DEFAULT_UPDATE_INTERVAL, timedelta(hours=24))

    def test_unparsable_defaults_to_one_day(self) -> None:
        for value in ("soon", "12", "h", "5 minutes", "0s"):
            with self.subTest(value=value):
                self.assertEqual(parse_update_interval(value), DEFAULT_UPDATE_INTERVAL)

    def test_trailing_garbage_is_ignored(self) -> None:
        self.assertEqual(parse_update_interval("15mins"), timedelta(minutes=15))
        self.assertEqual(parse_update_interval("every 6h please"), timedelta(hours=6))


if __name__ == "__main__":
    unittest.main()
