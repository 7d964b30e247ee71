"""Tests for zero-ad page structure diagnostics."""

import logging
from pathlib import Path

from src.serp_ads.diagnostics import describe_page_structure, log_page_structure

FIXTURES = Path(__file__).parent / "fixtures"


def read_fixture(name: str) -> str:
    return (FIXTURES / name).read_text(encoding="utf-8")


def test_describe_text_ad_page():
    structure = describe_page_structure(read_fixture("serp_text_ads.html"), "https://www.google.co.uk/search?q=plumber")

    assert structure["title"] == "plumber - Google Search"
    assert structure["url"] == "https://www.google.co.uk/search?q=plumber"
    assert structure["regions"] == []
    assert structure["hasTopAds"] is True
    assert structure["hasBottomAds"] is True
    assert structure["textAdCount"] == 5
    assert structure["topAds"]["childCount"] == 4
    assert structure["topAds"]["h3Count"] == 1
    assert structure["topAds"]["linkCount"] == 8
    assert structure["topAds"]["text"].startswith("Acme Plumbing - 24h Emergency Plumbers")
    assert structure["bottomAds"] == {
        "childCount": 1,
        "h3Count": 1,
        "text": "DrainMasters Blocked Drains Blocked drain specialists serving North London with no call out charge.",
    }
    assert 'data-text-ad="1"' in structure["firstAdHtml"]
    assert structure["hasSponsored"] is True
    assert "Sponsored results" in structure["sponsoredContext"]


def test_describe_region_page():
    structure = describe_page_structure(read_fixture("serp_region_ads.html"))

    assert structure["regions"] == ["Top stories", "Sponsored"]
    assert structure["hasTopAds"] is False
    assert structure["topAds"] is None
    assert structure["bottomAds"] is None
    assert structure["textAdCount"] == 0
    assert structure["firstAdHtml"] is None


def test_describe_region_without_heading():
    structure = describe_page_structure('<div role="region"><p>No label here</p></div>')

    assert structure["regions"] == ["(no heading)"]


def test_describe_detects_ad_label():
    structure = describe_page_structure("<html><body><span>Ad ·</span> shop.example.com</body></html>")

    assert structure["adLabel"] == "Ad ·"
    assert structure["hasSponsored"] is False
    assert structure["sponsoredContext"] is None


def test_describe_empty_page():
    structure = describe_page_structure("")

    assert structure["title"] == ""
    assert structure["regions"] == []
    assert structure["textAdCount"] == 0
    assert structure["hasSponsored"] is False


def test_log_page_structure(caplog):
    structure = describe_page_structure(read_fixture("serp_text_ads.html"))

    with caplog.at_level(logging.INFO, logger="serp_ads"):
        log_page_structure("plumber", structure)

    assert 'No ads for "plumber"' in caplog.text
    assert "[data-text-ad]: 5" in caplog.text
    assert "#tads content: 4 children, 1 h3s, 8 links" in caplog.text
