from __future__ import annotations

from datetime import date, datetime, timezone

import pytest

from earlysleep.core.dates import (
    format_date_key,
    normalize_date_key,
    normalize_hm,
    normalize_tz_offset,
    parse_date_key,
    quantize_slot_key,
    today_from_offset,
    yesterday,
)


def test_format_and_parse_date_key() -> None:
    assert format_date_key(date(2024, 1, 2)) == "20240102"
    assert parse_date_key("20240102") == date(2024, 1, 2)


@pytest.mark.parametrize("value", ["2024-01-02", "20240230", "", "abc"])
def test_parse_date_key_rejects_non_strict_input(value: str) -> None:
    with pytest.raises(ValueError):
        parse_date_key(value)


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("20240102", "20240102"),
        ("2024-01-02", "20240102"),
        (" 2024/01/02 ", "20240102"),
        ("20240230", None),
        ("2024-1-2", None),
        (20240102, None),
        (None, None),
    ],
)
def test_normalize_date_key(value: object, expected: str | None) -> None:
    assert normalize_date_key(value) == expected


def test_yesterday_crosses_month_and_year_boundaries() -> None:
    assert yesterday("20240301") == "20240229"
    assert yesterday("20240101") == "20231231"


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("22:29", "22:00"),
        ("22:30", "22:30"),
        ("23:59", "23:30"),
        ("00:00", "00:00"),
        ("bad", "22:00"),
    ],
)
def test_quantize_slot_key(value: str, expected: str) -> None:
    assert quantize_slot_key(value) == expected


def test_normalize_hm_clamps_and_falls_back() -> None:
    assert normalize_hm("25:61") == "23:59"
    assert normalize_hm("7:30") == "22:00"
    assert normalize_hm(None, "22:30") == "22:30"


def test_normalize_tz_offset_clamps_range() -> None:
    assert normalize_tz_offset(480) == 480
    assert normalize_tz_offset(2000) == 840
    assert normalize_tz_offset(-2000) == -720
    assert normalize_tz_offset(True) == 480
    assert normalize_tz_offset("60") == 480
    assert normalize_tz_offset(float("nan")) == 480


def test_today_from_offset_uses_local_calendar_day() -> None:
    now_utc = datetime(2024, 1, 1, 17, 0, tzinfo=timezone.utc)
    assert today_from_offset(480, now_utc) == "20240102"
    assert today_from_offset(0, now_utc) == "20240101"
    assert today_from_offset(-600, datetime(2024, 1, 1, 5, 0, tzinfo=timezone.utc)) == "20231231"
