"""Tests for ad extraction from rendered result pages."""

from datetime import datetime, timezone
from pathlib import Path

import pytest
from bs4 import BeautifulSoup

from src.serp_ads.config import ExtractionSettings
from src.serp_ads.extraction import AdExtractor, extract_ads, first_success
from src.serp_ads.models import RenderedPage, SiteLink

FIXTURES = Path(__file__).parent / "fixtures"
CAPTURED_AT = datetime(2026, 3, 2, 9, 30, tzinfo=timezone.utc)


def load_page(name: str, url: str = "https://www.google.co.uk/search?q=plumber") -> RenderedPage:
    html = (FIXTURES / name).read_text(encoding="utf-8")
    return RenderedPage(html=html, url=url, captured_at=CAPTURED_AT)


@pytest.fixture
def extractor():
    return AdExtractor()


@pytest.fixture
def text_ads(extractor):
    return extractor.extract(load_page("serp_text_ads.html"), "plumber")


def test_first_success_returns_first_truthy_strategy():
    strategies = [
        ("empty", lambda value: None),
        ("blank", lambda value: []),
        ("double", lambda value: value * 2),
        ("triple", lambda value: value * 3),
    ]

    assert first_success(strategies, 4) == ("double", 8)
    assert first_success(strategies[:2], 4) == (None, None)


def test_extract_text_ads_skips_duplicates_and_labels(text_ads):
    assert [ad.title for ad in text_ads] == [
        "Acme Plumbing - 24h Emergency Plumbers",
        "QuickFix Plumbing Services",
        "DrainMasters Blocked Drains",
    ]


def test_extract_positions_are_dense_per_block(text_ads):
    assert [(ad.block_position, ad.position) for ad in text_ads] == [
        ("top", 1),
        ("top", 2),
        ("bottom", 1),
    ]


def test_extract_prefers_clean_destination(text_ads):
    acme = text_ads[0]

    assert acme.destination_url == "https://www.acmeplumbing.co.uk/"
    assert acme.domain == "www.acmeplumbing.co.uk"
    assert acme.displayed_url == "www.acmeplumbing.co.uk"
    assert acme.description == (
        "Fixed prices from £49. Local, Gas Safe registered engineers across London."
    )
    assert acme.site_links == (
        SiteLink("Boiler Repair", "https://www.acmeplumbing.co.uk/boilers"),
        SiteLink("Contact Us", "https://www.acmeplumbing.co.uk/contact"),
    )
    assert acme.extensions == ("Open 24 hours",)
    assert acme.keyword == "plumber"
    assert acme.captured_at == CAPTURED_AT


def test_extract_click_tracking_anchor_and_fallback_sitelinks(text_ads):
    quickfix = text_ads[1]

    assert quickfix.destination_url == "https://www.quickfix.com/landing?utm=ads"
    assert quickfix.domain == "www.quickfix.com"
    assert quickfix.displayed_url == "quickfix.com/plumbing"
    assert quickfix.description.startswith("Trusted by 500+ clients.")
    assert [link.label for link in quickfix.site_links] == ["Read Reviews", "Pricing"]
    assert quickfix.extensions == ()


def test_extract_resolves_relative_links_against_page_url(text_ads):
    drains = text_ads[2]

    assert drains.destination_url == (
        "https://www.google.co.uk/aclk?sa=l&ai=xyz&adurl=https://www.drainmasters.co.uk/"
    )
    assert drains.domain == "www.google.co.uk"
    assert drains.site_links == ()
    assert drains.displayed_url == ""


def test_extract_labelled_region_uses_vertical_offset(extractor):
    ads = extractor.extract(load_page("serp_region_ads.html"), "home care kent")

    assert [(ad.title, ad.block_position, ad.position) for ad in ads] == [
        ("Alpha Home Care Services", "top", 1),
        ("Beta Care At Home", "bottom", 1),
    ]
    assert ads[0].domain == "www.alphacare.co.uk"
    assert ads[0].displayed_url == "alphacare.co.uk"
    assert ads[0].description == "CQC registered home care with 20 years experience across Kent."
    assert ads[1].domain == "www.betacare.com"


def test_extract_offset_threshold_is_configurable():
    settings = ExtractionSettings(bottom_offset_threshold=1000)
    ads = AdExtractor(settings).extract(load_page("serp_region_ads.html"), "home care kent")

    assert [ad.block_position for ad in ads] == ["top", "top"]
    assert [ad.position for ad in ads] == [1, 2]


def test_extract_heading_scan_ignores_organic_results(extractor):
    ads = extractor.extract(load_page("serp_heading_scan.html"), "boiler service")

    assert [ad.title for ad in ads] == ["Gamma Plumbing Ltd", "Delta Heating Engineers"]
    assert [ad.position for ad in ads] == [1, 2]
    assert all(ad.block_position == "top" for ad in ads)
    assert ads[1].destination_url == "https://www.deltaheat.co.uk/offer"
    assert ads[1].description == (
        "Delta Heating provides fast boiler installs with a ten year guarantee included."
    )


def test_locate_containers_reports_strategy(extractor):
    html = (FIXTURES / "serp_heading_scan.html").read_text(encoding="utf-8")
    strategy, containers = extractor.locate_containers(BeautifulSoup(html, "lxml"))

    assert strategy == "heading-scan"
    assert len(containers) == 2


@pytest.mark.parametrize("page", [None, "", "   ", "<<<not html at all>>>", 42, RenderedPage(html="")])
def test_extract_is_total_on_unusable_input(extractor, page):
    assert extractor.extract(page, "plumber") == []


def test_extract_accepts_raw_html_string():
    html = """
    <div id="tads">
      <div data-text-ad>
        <a href="https://shop.example.org/offer"><h3>Example Shop Offer</h3></a>
      </div>
    </div>
    """
    ads = extract_ads(html, "shop")

    assert len(ads) == 1
    assert ads[0].domain == "shop.example.org"
    assert ads[0].description == ""
    assert ads[0].captured_at is not None


def test_extract_skips_containers_without_title(extractor):
    html = """
    <div data-text-ad><span>An advert block with no heading of any kind inside it.</span></div>
    <div data-text-ad><div role="heading">Valid Heading Advert</div></div>
    """
    ads = extractor.extract(html, "kw")

    assert [ad.title for ad in ads] == ["Valid Heading Advert"]
    assert ads[0].destination_url == ""
    assert ads[0].domain == ""


def test_extract_handles_malformed_destination(extractor):
    html = """
    <div data-text-ad>
      <a href="http://[broken"><h3>Broken Link Advert</h3></a>
    </div>
    """
    ads = extractor.extract(html, "kw")

    assert len(ads) == 1
    assert ads[0].domain == ""


def test_extract_description_prefers_longest_below_cutoff():
    settings = ExtractionSettings(description_max_chars=80)
    html = """
    <div data-text-ad>
      <h3>Cutoff Advert</h3>
      <span>This sentence is comfortably longer than forty characters.</span>
      <span>This sentence is also longer than forty characters but it keeps going well past eighty.</span>
    </div>
    """
    ads = AdExtractor(settings).extract(html, "kw")

    assert ads[0].description == "This sentence is comfortably longer than forty characters."


def test_extract_description_falls_back_to_longest_when_all_exceed_cutoff():
    settings = ExtractionSettings(description_max_chars=45)
    html = """
    <div data-text-ad>
      <h3>Long Copy Advert</h3>
      <span>Every candidate sentence here runs past the configured cutoff.</span>
      <span>This one is longer still, so it is the description that gets picked in the end.</span>
    </div>
    """
    ads = AdExtractor(settings).extract(html, "kw")

    assert ads[0].description == (
        "This one is longer still, so it is the description that gets picked in the end."
    )


def test_extract_flat_wrapper_layout():
    html = """
    <div id="tads">
      <h3>Alpha Heating Engineers</h3>
      <span>Alpha fit and repair boilers across the county with same day visits.</span>
      <h3>Beta Boiler Repairs</h3>
      <span>Beta Boiler Repairs offer fixed prices on every repair and annual service.</span>
    </div>
    """
    ads = extract_ads(html, "boiler repair")

    assert [ad.title for ad in ads] == ["Alpha Heating Engineers", "Beta Boiler Repairs"]
    assert [(ad.block_position, ad.position) for ad in ads] == [("top", 1), ("top", 2)]
    assert ads[1].description == (
        "Beta Boiler Repairs offer fixed prices on every repair and annual service."
    )


def test_extract_flat_region_with_title_anchors():
    html = """
    <div role="region">
      <h2>Sponsored</h2>
      <a href="https://www.alpha.example.com/"><div role="heading">Alpha Care Services</div></a>
      <div>Alpha Care provides home visits seven days a week across the region.</div>
      <a href="https://www.beta.example.com/"><div role="heading">Beta Care At Home</div></a>
      <div>Beta Care At Home offers live in carers and respite care at short notice.</div>
    </div>
    """
    ads = extract_ads(html, "home care")

    assert [ad.domain for ad in ads] == ["www.alpha.example.com", "www.beta.example.com"]
    assert ads[0].description.startswith("Alpha Care provides home visits")


def test_extract_container_that_is_itself_a_heading():
    html = '<div data-text-ad role="heading">Heading Only Advert</div>'

    ads = extract_ads(html, "kw")

    assert [ad.title for ad in ads] == ["Heading Only Advert"]


def test_extract_ignores_relative_links_without_page_url():
    html = """
    <div data-text-ad>
      <a href="/aclk?sa=l&adurl=https://x.example.com/"><h3>Relative Link Advert</h3></a>
    </div>
    """
    ads = extract_ads(html, "kw")

    assert ads[0].destination_url == ""
    assert ads[0].domain == ""


def test_extract_relative_link_falls_through_to_absolute_url():
    html = """
    <div data-text-ad>
      <a href="/aclk?sa=l"><h3>Mixed Link Advert</h3></a>
      <a href="https://landing.example.com/offer">Visit the landing page</a>
    </div>
    """
    ads = extract_ads(RenderedPage(html=html, url=""), "kw")

    assert ads[0].destination_url == "https://landing.example.com/offer"
    assert ads[0].domain == "landing.example.com"


def test_extract_absolute_url_strategy():
    html = """
    <div data-text-ad>
      <h3>Plain Anchor Advert</h3>
      <a href="https://www.plain.example.org/landing">Book a visit today</a>
    </div>
    """
    ads = extract_ads(html, "kw")

    assert ads[0].destination_url == "https://www.plain.example.org/landing"
    assert ads[0].domain == "www.plain.example.org"


def test_extract_role_list_sitelinks_skip_long_items():
    long_label = "An unusually long sitelink label that runs well past sixty chars"
    html = f"""
    <div data-text-ad>
      <a href="https://www.sites.example.com/"><h3>Sitelink Advert</h3></a>
      <div role="list">
        <div role="listitem"><a href="https://www.sites.example.com/prices">Prices</a></div>
        <div role="listitem"><a href="https://www.sites.example.com/long">{long_label}</a></div>
        <div role="listitem"><a href="https://www.sites.example.com/contact">Contact us</a></div>
      </div>
    </div>
    """
    ads = extract_ads(html, "kw")

    assert len(long_label) >= 60
    assert ads[0].site_links == (
        SiteLink("Prices", "https://www.sites.example.com/prices"),
        SiteLink("Contact us", "https://www.sites.example.com/contact"),
    )


class FailingDescriptionExtractor(AdExtractor):
    def _description(self, container, title):
        if container.has_attr("data-broken"):
            raise RuntimeError("unexpected markup")
        return super()._description(container, title)


def test_failed_container_does_not_claim_title_or_position():
    html = """
    <div id="tads">
      <div data-text-ad data-broken><a href="https://www.one.example.com/"><h3>Repeated Advert</h3></a></div>
      <div data-text-ad><a href="https://www.two.example.com/"><h3>Repeated Advert</h3></a></div>
      <div data-text-ad><a href="https://www.three.example.com/"><h3>Third Advert</h3></a></div>
    </div>
    """
    ads = FailingDescriptionExtractor().extract(html, "kw")

    assert [(ad.title, ad.position, ad.domain) for ad in ads] == [
        ("Repeated Advert", 1, "www.two.example.com"),
        ("Third Advert", 2, "www.three.example.com"),
    ]
