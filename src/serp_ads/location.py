"""Geo-targeting resolution for search requests.

Maps a canonical "City,Region,Country" location string onto the search
market parameters (domain, region code, locale, timezone) and encodes the
location token the search provider accepts for location-specific results.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional

from .logging_config import get_logger
from .models import LocationProfile, Market

logger = get_logger("location")

TOKEN_ALPHABET = "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_"
TOKEN_PREFIX = "w+CAIQICI"

DEFAULT_COUNTRY = "United Kingdom"

US_STATE_TIMEZONES = MappingProxyType({
    "California": "America/Los_Angeles",
    "Oregon": "America/Los_Angeles",
    "Washington": "America/Los_Angeles",
    "Nevada": "America/Los_Angeles",
    "Arizona": "America/Phoenix",
    "Colorado": "America/Denver",
    "Utah": "America/Denver",
    "Texas": "America/Chicago",
    "Illinois": "America/Chicago",
    "Minnesota": "America/Chicago",
    "Missouri": "America/Chicago",
    "New York": "America/New_York",
    "Florida": "America/New_York",
    "Georgia": "America/New_York",
    "North Carolina": "America/New_York",
    "Ohio": "America/New_York",
    "Pennsylvania": "America/New_York",
    "Maryland": "America/New_York",
    "Massachusetts": "America/New_York",
    "Hawaii": "Pacific/Honolulu",
    "Alaska": "America/Anchorage",
})

UK_NATION_TIMEZONES = MappingProxyType({
    "England": "Europe/London",
    "Scotland": "Europe/London",
    "Wales": "Europe/London",
    "Northern Ireland": "Europe/London",
})

AU_STATE_TIMEZONES = MappingProxyType({
    "New South Wales": "Australia/Sydney",
    "Victoria": "Australia/Melbourne",
    "Queensland": "Australia/Brisbane",
    "South Australia": "Australia/Adelaide",
    "Western Australia": "Australia/Perth",
    "Tasmania": "Australia/Hobart",
    "Northern Territory": "Australia/Darwin",
    "Australian Capital Territory": "Australia/Sydney",
})

CA_PROVINCE_TIMEZONES = MappingProxyType({
    "Ontario": "America/Toronto",
    "Quebec": "America/Toronto",
    "British Columbia": "America/Vancouver",
    "Alberta": "America/Edmonton",
    "Manitoba": "America/Winnipeg",
    "Saskatchewan": "America/Regina",
    "Nova Scotia": "America/Halifax",
    "New Brunswick": "America/Moncton",
    "Newfoundland and Labrador": "America/St_Johns",
})

DEFAULT_MARKETS: Mapping[str, Market] = MappingProxyType({
    "United Kingdom": Market(
        search_domain="google.co.uk",
        region_code="uk",
        locale="en-GB",
        timezone_id="Europe/London",
        subregion_timezones=UK_NATION_TIMEZONES,
    ),
    "United States": Market(
        search_domain="google.com",
        region_code="us",
        locale="en-US",
        timezone_id="America/New_York",
        subregion_timezones=US_STATE_TIMEZONES,
    ),
    "Australia": Market(
        search_domain="google.com.au",
        region_code="au",
        locale="en-AU",
        timezone_id="Australia/Sydney",
        subregion_timezones=AU_STATE_TIMEZONES,
    ),
    "Canada": Market(
        search_domain="google.ca",
        region_code="ca",
        locale="en-CA",
        timezone_id="America/Toronto",
        subregion_timezones=CA_PROVINCE_TIMEZONES,
    ),
})

# Canonical location names, usable as quick-select presets.
COMMON_LOCATIONS = (
    "London,England,United Kingdom",
    "Manchester,England,United Kingdom",
    "Birmingham,England,United Kingdom",
    "Edinburgh,Scotland,United Kingdom",
    "New York,New York,United States",
    "Los Angeles,California,United States",
    "Chicago,Illinois,United States",
    "Houston,Texas,United States",
    "Sydney,New South Wales,Australia",
    "Melbourne,Victoria,Australia",
    "Toronto,Ontario,Canada",
    "Vancouver,British Columbia,Canada",
)


def encode_location_token(location: str) -> str:
    """Encode a canonical location name into the provider's location token.

    The length marker is the alphabet symbol at index ``len(location)``,
    or the last symbol for names of 64 characters or more.
    """
    length = len(location)
    marker = TOKEN_ALPHABET[length] if length < len(TOKEN_ALPHABET) else TOKEN_ALPHABET[-1]
    return f"{TOKEN_PREFIX}{marker}{location}"


class LocationResolver:
    """Resolves location strings against a table of supported markets."""

    def __init__(
        self,
        markets: Optional[Mapping[str, Market]] = None,
        *,
        default_country: str = DEFAULT_COUNTRY,
    ) -> None:
        self.markets: Mapping[str, Market] = MappingProxyType(
            dict(markets if markets is not None else DEFAULT_MARKETS)
        )
        if default_country not in self.markets:
            raise ValueError(f"Default country {default_country!r} is not a supported market")
        self.default_country = default_country

    def resolve(self, location: Optional[str]) -> Optional[LocationProfile]:
        """Resolve a location string, or return None when it is unusable."""
        if not isinstance(location, str) or not location.strip():
            return None

        token = encode_location_token(location)

        segments = [segment.strip() for segment in location.split(",")]
        country = segments[-1]
        region = segments[-2] if len(segments) >= 2 else None

        market = self.markets.get(country)
        if market is None:
            logger.debug(f"Unsupported country {country!r} in location {location!r}")
            return None

        timezone_id = market.timezone_id
        if region and region in market.subregion_timezones:
            timezone_id = market.subregion_timezones[region]

        return LocationProfile(
            country_key=country,
            search_domain=market.search_domain,
            region_code=market.region_code,
            locale=market.locale,
            timezone_id=timezone_id,
            location_token=token,
            raw_location=location,
        )

    def default_profile(self) -> LocationProfile:
        """Return the fixed fallback profile, without a location token."""
        market = self.markets[self.default_country]
        return LocationProfile(
            country_key=self.default_country,
            search_domain=market.search_domain,
            region_code=market.region_code,
            locale=market.locale,
            timezone_id=market.timezone_id,
        )

    def resolve_or_default(self, location: Optional[str]) -> LocationProfile:
        profile = self.resolve(location)
        if profile is None:
            if location:
                logger.warning(f"Could not resolve location {location!r}, using {self.default_country}")
            return self.default_profile()
        return profile
