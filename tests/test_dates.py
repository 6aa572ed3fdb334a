from datetime import date, datetime

import pytest

from basma_clinic.utils.dates import calculate_age, format_date, format_date_for_input, parse_date


def test_parse_date_shapes():
    assert parse_date("2020-05-17") == date(2020, 5, 17)
    assert parse_date("2020-05-17T10:30:00") == date(2020, 5, 17)
    assert parse_date(datetime(2020, 5, 17, 23, 0)) == date(2020, 5, 17)
    assert parse_date(date(2020, 5, 17)) == date(2020, 5, 17)
    # epoch milliseconds from older records
    assert parse_date(0) == date(1970, 1, 1)
    assert parse_date(None) is None
    assert parse_date("") is None


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("not a date")
    with pytest.raises(ValueError):
        parse_date(True)


def test_calculate_age_counts_completed_months():
    born = date(2015, 6, 20)
    assert calculate_age(born, today=date(2024, 6, 19)) == (8, 11)
    assert calculate_age(born, today=date(2024, 6, 20)) == (9, 0)
    assert calculate_age("2015-06-20", today=date(2015, 8, 1)) == (0, 1)


def test_calculate_age_missing_or_future():
    assert calculate_age(None) is None
    assert calculate_age("garbage") is None
    assert calculate_age(date(2030, 1, 1), today=date(2024, 1, 1)) is None


def test_format_date():
    assert format_date("2024-01-05") == "Jan 05, 2024"
    assert format_date_for_input(date(2024, 1, 5)) == "2024-01-05"
    assert format_date(None) == ""
    assert format_date("garbage") == ""
