from datetime import datetime, timedelta, timezone

import pytest

from cadence.application.utils.time import ensure_utc, format_interval, to_days


@pytest.mark.parametrize(
    ("delta", "expected"),
    [
        (timedelta(seconds=5), "1m"),
        (timedelta(minutes=10), "10m"),
        (timedelta(hours=3), "3h"),
        (timedelta(days=1), "1d"),
        (timedelta(days=12), "12d"),
        (timedelta(days=60), "2mo"),
        (timedelta(days=45), "1.5mo"),
        (timedelta(days=730), "2y"),
        (timedelta(days=-3), "1m"),
    ],
)
def test_format_interval(delta, expected):
    assert format_interval(delta) == expected


def test_ensure_utc():
    naive = datetime(2025, 1, 1, 12, 0)
    assert ensure_utc(naive).tzinfo is timezone.utc

    plus_two = datetime(2025, 1, 1, 12, 0, tzinfo=timezone(timedelta(hours=2)))
    assert ensure_utc(plus_two).hour == 10


def test_to_days():
    assert to_days(timedelta(hours=36)) == 1.5
