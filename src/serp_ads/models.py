"""Data models for the SERP ads monitor.

Records are immutable once created. The ``to_dict`` helpers produce the exact
JSON shapes written to the raw and structured output files.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Optional, Tuple

from .parser_utils import normalize_timestamp, parse_timestamp

BLOCK_TOP = "top"
BLOCK_BOTTOM = "bottom"
BLOCK_POSITIONS = (BLOCK_TOP, BLOCK_BOTTOM)


@dataclass(frozen=True)
class SiteLink:
    """A sitelink shown under an ad."""

    label: str
    url: str = ""

    def to_dict(self) -> Dict[str, str]:
        return {"label": self.label, "url": self.url}


@dataclass(frozen=True)
class AdRecord:
    """One advertisement observed for one search term at one point in time."""

    keyword: str
    position: int
    block_position: str
    title: str
    destination_url: str = ""
    domain: str = ""
    displayed_url: str = ""
    description: str = ""
    site_links: Tuple[SiteLink, ...] = ()
    extensions: Tuple[str, ...] = ()
    captured_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the raw JSON record shape."""
        return {
            "keyword": self.keyword,
            "position": self.position,
            "blockPosition": self.block_position,
            "title": self.title,
            "destinationUrl": self.destination_url,
            "domain": self.domain,
            "displayedUrl": self.displayed_url,
            "description": self.description,
            "siteLinks": [link.to_dict() for link in self.site_links],
            "extensions": list(self.extensions),
            "capturedAt": normalize_timestamp(self.captured_at),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "AdRecord":
        """Rebuild a record from its raw JSON shape."""
        block_position = data.get("blockPosition") or BLOCK_TOP
        if block_position not in BLOCK_POSITIONS:
            block_position = BLOCK_TOP

        site_links = tuple(
            SiteLink(label=str(item.get("label", "")), url=str(item.get("url", "")))
            for item in data.get("siteLinks") or []
            if isinstance(item, Mapping)
        )
        try:
            position = int(data.get("position") or 0)
        except (TypeError, ValueError):
            position = 0

        return cls(
            keyword=str(data.get("keyword", "")),
            position=position,
            block_position=block_position,
            title=str(data.get("title", "")),
            destination_url=str(data.get("destinationUrl", "")),
            domain=str(data.get("domain", "")),
            displayed_url=str(data.get("displayedUrl", "")),
            description=str(data.get("description", "")),
            site_links=site_links,
            extensions=tuple(str(ext) for ext in data.get("extensions") or []),
            captured_at=parse_timestamp(data.get("capturedAt")),
        )


@dataclass(frozen=True)
class Market:
    """A supported search market in the static country table."""

    search_domain: str
    region_code: str
    locale: str
    timezone_id: str
    subregion_timezones: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Market":
        return cls(
            search_domain=data["search_domain"],
            region_code=data["region_code"],
            locale=data["locale"],
            timezone_id=data["timezone_id"],
            subregion_timezones=dict(data.get("subregion_timezones") or {}),
        )


@dataclass(frozen=True)
class LocationProfile:
    """Resolved geo-targeting configuration for one run."""

    country_key: str
    search_domain: str
    region_code: str
    locale: str
    timezone_id: str
    location_token: Optional[str] = None
    raw_location: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "countryKey": self.country_key,
            "searchDomain": self.search_domain,
            "regionCode": self.region_code,
            "locale": self.locale,
            "timezoneId": self.timezone_id,
            "locationToken": self.location_token,
            "rawLocationString": self.raw_location,
        }


@dataclass(frozen=True)
class CompetitorAggregate:
    """Per-advertiser-domain rollup of ad records."""

    domain: str
    total_ads: int
    keywords_targeted: int
    average_position: float
    titles: Tuple[str, ...] = ()
    descriptions: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalAds": self.total_ads,
            "keywordsTargeted": self.keywords_targeted,
            "averagePosition": self.average_position,
            "titles": list(self.titles),
            "descriptions": list(self.descriptions),
        }


@dataclass(frozen=True)
class PatternMatch:
    """A messaging-pattern classifier hit across competitor ad copy."""

    name: str
    examples: Tuple[str, ...]
    domains: Tuple[str, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "pattern": self.name,
            "examples": list(self.examples),
            "domains": list(self.domains),
        }


@dataclass(frozen=True)
class KeywordFailure:
    """A keyword whose page could not be fetched."""

    keyword: str
    error: str

    def to_dict(self) -> Dict[str, str]:
        return {"keyword": self.keyword, "error": self.error}


@dataclass
class RenderedPage:
    """Snapshot of a rendered results page handed to the extractor."""

    html: str
    url: str = ""
    captured_at: Optional[datetime] = None


@dataclass
class AggregationResult:
    """Grouped ad records with per-domain statistics for one run."""

    competitors: Dict[str, List[AdRecord]]
    keywords: Dict[str, List[AdRecord]]
    statistics: Dict[str, CompetitorAggregate]
    generated_at: datetime
    source: str = "playwright"

    @property
    def total_ads(self) -> int:
        return sum(len(records) for records in self.competitors.values())

    @property
    def unique_domains(self) -> int:
        return len(self.competitors)

    @property
    def unique_keywords(self) -> int:
        return len(self.keywords)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the structured JSON document."""
        return {
            "metadata": {
                "generatedAt": normalize_timestamp(self.generated_at),
                "source": self.source,
                "totalAds": self.total_ads,
                "uniqueDomains": self.unique_domains,
                "uniqueKeywords": self.unique_keywords,
            },
            "competitors": {
                domain: [record.to_dict() for record in records]
                for domain, records in self.competitors.items()
            },
            "keywords": {
                keyword: [record.to_dict() for record in records]
                for keyword, records in self.keywords.items()
            },
            "statistics": {
                "totalAds": self.total_ads,
                "uniqueDomains": self.unique_domains,
                "uniqueKeywords": self.unique_keywords,
                "competitors": {
                    domain: aggregate.to_dict()
                    for domain, aggregate in self.statistics.items()
                },
            },
        }
