"""Unit tests for auth/filters.py -- ?filter= parsing.

Covers:
- blank/missing filter means no filters
- each supported key produces its tagged variant
- date accepts a single day or a from/to range
- unknown keys, bad JSON, non-object payloads and bad values raise InvalidFilter
"""

import json
from datetime import date

import pytest

from auth.errors import InvalidFilter
from auth.filters import (
    CreatedDateFilter,
    DateRange,
    DeviceFilter,
    EmailFilter,
    LastLoginFilter,
    NameFilter,
    parse_filters,
)


@pytest.mark.parametrize("raw", [None, "", "   "])
def test_blank_filter_is_empty(raw):
    assert parse_filters(raw) == []


def test_every_supported_key():
    raw = json.dumps(
        {
            "name": "ada",
            "email": "Example.COM",
            "date": "2024-05-01",
            "device": "mobile",
            "lastLogin": {"from": "2024-06-01", "to": "2024-06-30"},
        }
    )
    assert parse_filters(raw) == [
        NameFilter("ada"),
        EmailFilter("example.com"),
        CreatedDateFilter(DateRange(date(2024, 5, 1), date(2024, 5, 1))),
        DeviceFilter("Mobile"),
        LastLoginFilter(DateRange(date(2024, 6, 1), date(2024, 6, 30))),
    ]


def test_open_ended_range():
    [f] = parse_filters('{"date": {"from": "2024-01-01"}}')
    assert f.range == DateRange(start=date(2024, 1, 1))
    assert f.range.upper_bound() is None


def test_range_upper_bound_is_exclusive_next_day():
    assert DateRange(end=date(2024, 2, 28)).upper_bound() == "2024-02-29"


def test_unknown_keys_are_all_reported():
    with pytest.raises(InvalidFilter) as exc_info:
        parse_filters('{"name": "ada", "role": "admin", "age": 3}')
    fields = [f["field"] for f in exc_info.value.fields]
    assert fields == ["filter.age", "filter.role"]
    assert exc_info.value.code == "invalid_filter"
    assert exc_info.value.status_code == 400


@pytest.mark.parametrize(
    "raw",
    [
        "{not json",
        '["name"]',
        '{"name": ""}',
        '{"email": 5}',
        '{"device": "Watch"}',
        '{"date": "2024-13-01"}',
        '{"date": {"from": "2024-06-02", "to": "2024-06-01"}}',
        '{"date": {}}',
        '{"lastLogin": {"since": "2024-01-01"}}',
        '{"lastLogin": 20240101}',
    ],
)
def test_invalid_filters_rejected(raw):
    with pytest.raises(InvalidFilter):
        parse_filters(raw)
