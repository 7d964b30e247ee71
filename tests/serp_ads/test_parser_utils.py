"""Tests for parser utilities."""

from datetime import datetime, timezone

import pytest

from src.serp_ads.parser_utils import (
    absolute_url,
    clean_text,
    ensure_list,
    hostname_of,
    is_absolute_url,
    looks_like_url,
    normalize_timestamp,
    parse_timestamp,
    split_csv,
    starts_with_scheme,
)


def test_clean_text_collapses_whitespace():
    assert clean_text("  Acme \n\t Plumbing  ") == "Acme Plumbing"
    assert clean_text(None) == ""


@pytest.mark.parametrize(
    "text,expected",
    [
        ("https://example.com", True),
        ("http://example.com/path", True),
        ("www.example.com", True),
        ("example.co.uk", True),
        ("example.co.uk/services", True),
        ("Boiler Repair", False),
        ("v1.2", False),
        ("", False),
    ],
)
def test_looks_like_url(text, expected):
    assert looks_like_url(text) is expected


def test_starts_with_scheme():
    assert starts_with_scheme("https://example.com is great")
    assert not starts_with_scheme("Visit https://example.com")


def test_hostname_of():
    assert hostname_of("https://WWW.Example.com/path?q=1") == "www.example.com"
    assert hostname_of("not a url") == ""
    assert hostname_of("http://[broken") == ""
    assert hostname_of("") == ""


def test_absolute_url():
    base = "https://www.google.co.uk/search?q=plumber"
    assert absolute_url(base, "/aclk?sa=l") == "https://www.google.co.uk/aclk?sa=l"
    assert absolute_url(base, "https://a.com/") == "https://a.com/"
    assert absolute_url("", "/relative") == "/relative"
    assert absolute_url(base, None) == ""


def test_normalize_timestamp_iso8601():
    """Normalize timestamp should convert to ISO8601 UTC format with Z suffix."""
    assert normalize_timestamp("2026-03-02T08:00:00+00:00") == "2026-03-02T08:00:00Z"
    assert normalize_timestamp("2026-03-02T09:00:00+01:00") == "2026-03-02T08:00:00Z"


def test_normalize_timestamp_datetime_drops_microseconds():
    value = datetime(2026, 3, 2, 8, 0, 0, 123456, tzinfo=timezone.utc)
    assert normalize_timestamp(value) == "2026-03-02T08:00:00Z"


def test_parse_timestamp_invalid():
    assert parse_timestamp("not a date") is None
    assert parse_timestamp(None) is None
    assert normalize_timestamp("") is None


def test_ensure_list():
    assert ensure_list(None) == []
    assert ensure_list("one") == ["one"]
    assert ensure_list(("a", "b")) == ["a", "b"]


def test_split_csv():
    assert split_csv("plumber, emergency plumber ,,boiler") == ["plumber", "emergency plumber", "boiler"]
    assert split_csv(["a,b", " c "]) == ["a", "b", "c"]
    assert split_csv(None) == []


def test_is_absolute_url():
    assert is_absolute_url("https://www.example.com/landing")
    assert not is_absolute_url("/aclk?sa=l")
    assert not is_absolute_url("www.example.com")
    assert not is_absolute_url("http://[broken")
    assert not is_absolute_url("")
