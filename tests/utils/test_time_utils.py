from datetime import datetime, timedelta, timezone

import pytest
from freezegun import freeze_time

from utils.time_utils import (
    datetime_to_unix,
    format_timestamp,
    get_current_unix_utc,
    parse_unix_seconds,
)


def test_datetime_to_unix():
    dt_obj = datetime(2023, 1, 1, tzinfo=timezone.utc)
    assert datetime_to_unix(dt_obj) == 1672531200


def test_datetime_to_unix_naive_is_utc():
    assert datetime_to_unix(datetime(2023, 1, 1)) == 1672531200


def test_datetime_to_unix_converts_offsets():
    dt_obj = datetime(2023, 1, 1, 2, tzinfo=timezone(timedelta(hours=2)))
    assert datetime_to_unix(dt_obj) == 1672531200


@freeze_time("2025-02-14 00:00:00")
def test_get_current_unix_utc():
    assert get_current_unix_utc() == 1739491200


def test_format_timestamp():
    assert format_timestamp(1739487600) == "2025-02-13 23:00:00 UTC"


@pytest.mark.parametrize("value,expected", [("1700000000", 1700000000), (42, 42), (" 7 ", 7)])
def test_parse_unix_seconds(value, expected):
    assert parse_unix_seconds(value) == expected


@pytest.mark.parametrize("value", [None, "", "abc", "1.5", True])
def test_parse_unix_seconds_rejects_bad_values(value):
    with pytest.raises(ValueError):
        parse_unix_seconds(value)
