"""Parsing utilities shared by the extractor, aggregator and report."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Union
from urllib.parse import urljoin, urlparse

from dateutil import parser as date_parser
from dateutil import tz

_WHITESPACE = re.compile(r"\s+")
_URL_SCHEME = re.compile(r"^[a-z][a-z0-9+.-]*://", re.IGNORECASE)
_BARE_DOMAIN = re.compile(
    r"^(?:[a-z0-9](?:[a-z0-9-]*[a-z0-9])?\.)+[a-z]{2,}(?:[/?#]\S*)?$",
    re.IGNORECASE,
)


def clean_text(value: Optional[str]) -> str:
    """Collapse runs of whitespace and strip the ends."""
    if not value:
        return ""
    return _WHITESPACE.sub(" ", value).strip()


def starts_with_scheme(text: str) -> bool:
    return bool(_URL_SCHEME.match(text))


def looks_like_url(text: Optional[str]) -> bool:
    """Return True for absolute URLs, ``www.`` hosts and bare domains."""
    if not text:
        return False
    candidate = text.strip()
    lowered = candidate.lower()
    if lowered.startswith(("http://", "https://", "www.")):
        return True
    return bool(_BARE_DOMAIN.match(candidate))


def hostname_of(url: Optional[str]) -> str:
    """Return the lower-cased host of ``url`` or an empty string."""
    if not url:
        return ""
    try:
        return urlparse(url).hostname or ""
    except ValueError:
        return ""


def absolute_url(base_url: Optional[str], href: Optional[str]) -> str:
    """Resolve ``href`` against ``base_url`` when the page URL is known."""
    if not href:
        return ""
    href = href.strip()
    if not base_url:
        return href
    try:
        return urljoin(base_url, href)
    except ValueError:
        return href


def is_absolute_url(url: Optional[str]) -> bool:
    """True when ``url`` carries both a scheme and a host."""
    if not url:
        return False
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return bool(parsed.scheme and parsed.netloc)


def normalize_timestamp(
    value: Optional[Union[str, datetime]],
    *,
    default_timezone: Union[str, tz.tzfile, None] = "UTC",
) -> Optional[str]:
    """Normalize timestamps to ISO8601 UTC format with Z suffix."""
    dt = parse_timestamp(value, default_timezone=default_timezone)
    if dt is None:
        return None

    iso = dt.replace(microsecond=0).isoformat()
    if iso.endswith("+00:00"):
        iso = iso[:-6] + "Z"
    return iso


def parse_timestamp(
    value: Optional[Union[str, datetime]],
    *,
    default_timezone: Union[str, tz.tzfile, None] = "UTC",
) -> Optional[datetime]:
    """Parse a timestamp into an aware UTC datetime, or None if unparseable."""
    if value is None or value == "":
        return None

    if isinstance(value, datetime):
        dt = value
    else:
        try:
            dt = date_parser.parse(value)
        except (ValueError, OverflowError):
            return None

    if dt.tzinfo is None:
        tzinfo = tz.gettz(default_timezone) if isinstance(default_timezone, str) else default_timezone
        if tzinfo is None:
            tzinfo = timezone.utc
        dt = dt.replace(tzinfo=tzinfo)

    return dt.astimezone(timezone.utc)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_list(value: Optional[Union[str, Sequence[str]]]) -> List[str]:
    """Ensure input is a list of strings."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def split_csv(value: Optional[Union[str, Sequence[str]]]) -> List[str]:
    """Split comma separated values, trimming and dropping empty entries."""
    parts: List[str] = []
    for item in ensure_list(value):
        parts.extend(part.strip() for part in item.split(","))
    return [part for part in parts if part]
