"""Paid-search ad extraction from rendered result pages.

Result-page markup drifts without notice, so every field is located through
an ordered list of named strategies. Each strategy returns a value or None
and ``first_success`` picks the first hit:

  Containers: ad-marker -> labelled-region -> heading-scan
  Title:      role-heading -> h3 -> container-heading
  Block:      wrapper-ancestry -> vertical-offset
  Link:       clean-destination -> click-tracking-attribute -> title-anchor
              -> click-tracking-url -> absolute-url
  Displayed:  citation -> url-like-fragment
  Sitelinks:  list-structure -> short-anchors

Container strategies are never merged: the first one that finds anything
defines the ads of the page.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Callable, List, Optional, Sequence, Tuple, TypeVar, Union

from bs4 import BeautifulSoup
from bs4.element import Tag

from .config import ExtractionSettings
from .logging_config import get_logger
from .models import BLOCK_BOTTOM, BLOCK_TOP, AdRecord, RenderedPage, SiteLink
from .parser_utils import (
    absolute_url,
    clean_text,
    hostname_of,
    is_absolute_url,
    looks_like_url,
    starts_with_scheme,
    utc_now,
)

logger = get_logger("extraction")

T = TypeVar("T")
Strategy = Tuple[str, Callable[..., Optional[T]]]

# Set by the browser on ad markers and headings before the snapshot is taken.
OFFSET_ATTRIBUTE = "data-serp-offset-top"

TOP_WRAPPER_ID = "tads"
BOTTOM_WRAPPER_ID = "bottomads"

SKIP_TITLES = frozenset({
    "",
    "ads",
    "sponsored",
    "sponsored results",
    "sponsored result",
    "hide sponsored results",
    "hide sponsored result",
})

AD_REGION_LABELS = frozenset({"ads", "ad", "sponsored", "sponsored results", "sponsored result"})

DISCLOSURE_MARKERS = ("Why this ad", "Hide sponsored")

_WHITESPACE = re.compile(r"\s")


def first_success(strategies: Sequence[Strategy], *args: Any) -> Tuple[Optional[str], Optional[T]]:
    """Run strategies in order and return ``(name, value)`` of the first hit."""
    for name, strategy in strategies:
        value = strategy(*args)
        if value:
            return name, value
    return None, None


def _is_heading(tag: Tag) -> bool:
    return tag.name == "h3" or tag.get("role") == "heading"


def _within_heading(tag: Tag) -> bool:
    if _is_heading(tag):
        return True
    return any(_is_heading(parent) for parent in tag.parents if isinstance(parent, Tag))


def _contains_heading(tag: Tag) -> bool:
    return tag.find(_is_heading) is not None


def _text(tag: Optional[Tag]) -> str:
    if tag is None:
        return ""
    return clean_text(tag.get_text())


def _ancestors_below(tag: Tag, root: Tag) -> List[Tag]:
    ancestors = []
    for parent in tag.parents:
        if parent is root:
            break
        ancestors.append(parent)
    return ancestors


def _headings_in(root: Tag, exclude: Optional[Tag] = None) -> List[Tag]:
    """Top-level title headings under ``root``, skipping ``exclude``."""
    headings = []
    for tag in root.find_all(_is_heading):
        ancestors = _ancestors_below(tag, root)
        if exclude is not None and (tag is exclude or any(p is exclude for p in ancestors)):
            continue
        if any(_is_heading(parent) for parent in ancestors):
            continue
        headings.append(tag)
    return headings


def _document_of(tag: Tag) -> Optional[BeautifulSoup]:
    for parent in tag.parents:
        if isinstance(parent, BeautifulSoup):
            return parent
    return None


def _group_with_siblings(block: Tag, exclude: Optional[Tag]) -> Tag:
    """Wrap a bare heading and the siblings up to the next heading in one block.

    Flat layouts put every title and its copy side by side under the same
    parent, so there is no ancestor to widen into.
    """
    document = _document_of(block)
    if document is None:
        return block
    members = []
    for sibling in block.next_siblings:
        if isinstance(sibling, Tag) and (
            sibling is exclude or _is_heading(sibling) or _contains_heading(sibling)
        ):
            break
        members.append(sibling)
    wrapper = block.wrap(document.new_tag("div"))
    for member in members:
        wrapper.append(member.extract())
    return wrapper


def _split_blocks(boundary: Tag, exclude: Optional[Tag] = None) -> List[Tag]:
    """Widen each heading to its largest ancestor holding no other heading."""
    blocks: List[Tag] = []
    for heading in _headings_in(boundary, exclude):
        block = heading
        while (
            block.parent is not None
            and block.parent is not boundary
            and len(_headings_in(block.parent, exclude)) <= 1
        ):
            block = block.parent
        if block is heading or block.name == "a":
            block = _group_with_siblings(block, exclude)
        if not any(existing is block for existing in blocks):
            blocks.append(block)
    return blocks


# ---------------------------------------------------------------------------
# Container strategies
# ---------------------------------------------------------------------------


def _containers_by_ad_marker(soup: BeautifulSoup) -> Optional[List[Tag]]:
    markers = soup.select("[data-text-ad]")
    outermost = [
        tag for tag in markers
        if not any(isinstance(p, Tag) and p.has_attr("data-text-ad") for p in tag.parents)
    ]
    return outermost or None


def _containers_by_labelled_region(soup: BeautifulSoup) -> Optional[List[Tag]]:
    containers: List[Tag] = []
    for region in soup.select('[role="region"]'):
        label = region.find(["h1", "h2"])
        if label is None or _text(label).lower() not in AD_REGION_LABELS:
            continue
        containers.extend(_split_blocks(region, exclude=label))
    return containers or None


def _containers_by_heading_scan(soup: BeautifulSoup) -> Optional[List[Tag]]:
    containers: List[Tag] = []
    for wrapper_id in (TOP_WRAPPER_ID, BOTTOM_WRAPPER_ID):
        wrapper = soup.find(id=wrapper_id)
        if isinstance(wrapper, Tag):
            containers.extend(_split_blocks(wrapper))
    return containers or None


CONTAINER_STRATEGIES: List[Strategy] = [
    ("ad-marker", _containers_by_ad_marker),
    ("labelled-region", _containers_by_labelled_region),
    ("heading-scan", _containers_by_heading_scan),
]


# ---------------------------------------------------------------------------
# Field strategies
# ---------------------------------------------------------------------------

TITLE_STRATEGIES: List[Strategy] = [
    ("role-heading", lambda container: container.select_one('[role="heading"]')),
    ("h3", lambda container: container.find("h3")),
    ("container-heading", lambda container: container if _is_heading(container) else None),
]


def _block_by_ancestry(container: Tag, heading: Tag, settings: ExtractionSettings) -> Optional[str]:
    for node in [container, *container.parents]:
        if not isinstance(node, Tag):
            continue
        node_id = node.get("id")
        if node_id == BOTTOM_WRAPPER_ID:
            return BLOCK_BOTTOM
        if node_id == TOP_WRAPPER_ID:
            return BLOCK_TOP
    return None


def _vertical_offset(tag: Tag) -> Optional[float]:
    raw = tag.get(OFFSET_ATTRIBUTE)
    if raw is None:
        return None
    try:
        return float(raw)
    except (TypeError, ValueError):
        return None


def _block_by_offset(container: Tag, heading: Tag, settings: ExtractionSettings) -> Optional[str]:
    offset = _vertical_offset(container)
    if offset is None:
        offset = _vertical_offset(heading)
    if offset is None:
        return None
    return BLOCK_BOTTOM if offset > settings.bottom_offset_threshold else BLOCK_TOP


BLOCK_STRATEGIES: List[Strategy] = [
    ("wrapper-ancestry", _block_by_ancestry),
    ("vertical-offset", _block_by_offset),
]


def _anchor_link(anchor: Optional[Tag], base_url: str, attribute: str = "href") -> Optional[Tuple[Tag, str]]:
    if anchor is None:
        return None
    url = absolute_url(base_url, anchor.get(attribute) or anchor.get("href"))
    return (anchor, url) if is_absolute_url(url) else None


def _enclosing_anchor(heading: Tag) -> Optional[Tag]:
    for node in [heading, *heading.parents]:
        if isinstance(node, Tag) and node.name == "a" and node.get("href"):
            return node
    return None


LINK_STRATEGIES: List[Strategy] = [
    ("clean-destination",
     lambda c, h, base: _anchor_link(c.select_one("a[data-pcu]"), base, "data-pcu")),
    ("click-tracking-attribute",
     lambda c, h, base: _anchor_link(c.select_one("a[data-rw]"), base)),
    ("title-anchor",
     lambda c, h, base: _anchor_link(_enclosing_anchor(h), base)),
    ("click-tracking-url",
     lambda c, h, base: _anchor_link(c.select_one('a[href*="aclk"]'), base)),
    ("absolute-url",
     lambda c, h, base: _anchor_link(c.select_one('a[href^="http"]'), base)),
]


def _displayed_by_citation(container: Tag, settings: ExtractionSettings) -> Optional[str]:
    return _text(container.find("cite")) or None


def _displayed_by_fragment(container: Tag, settings: ExtractionSettings) -> Optional[str]:
    for span in container.find_all("span"):
        text = span.get_text().strip()
        if (
            text
            and len(text) < settings.displayed_url_max_chars
            and not _WHITESPACE.search(text)
            and looks_like_url(text)
        ):
            return text
    return None


DISPLAYED_URL_STRATEGIES: List[Strategy] = [
    ("citation", _displayed_by_citation),
    ("url-like-fragment", _displayed_by_fragment),
]


def _sitelinks_from_list(
    container: Tag, title: str, destination: Optional[Tag], base_url: str, settings: ExtractionSettings
) -> Optional[List[SiteLink]]:
    listing = container.select_one('ul, [role="list"]')
    if listing is None:
        return None
    items = listing.select('li, [role="listitem"]') or listing.find_all("a")
    links: List[SiteLink] = []
    for item in items:
        label = _text(item)
        if not label or len(label) >= settings.sitelink_max_chars or label == title:
            continue
        anchor = item if item.name == "a" else item.find("a", href=True)
        url = absolute_url(base_url, anchor.get("href")) if anchor is not None else ""
        links.append(SiteLink(label=label, url=url))
    return links or None


def _sitelinks_from_anchors(
    container: Tag, title: str, destination: Optional[Tag], base_url: str, settings: ExtractionSettings
) -> Optional[List[SiteLink]]:
    links: List[SiteLink] = []
    for anchor in container.find_all("a", href=True):
        if anchor is destination:
            continue
        label = _text(anchor)
        if not (settings.fallback_sitelink_min_chars <= len(label) < settings.fallback_sitelink_max_chars):
            continue
        if label == title or looks_like_url(label):
            continue
        links.append(SiteLink(label=label, url=absolute_url(base_url, anchor.get("href"))))
    return links or None


SITELINK_STRATEGIES: List[Strategy] = [
    ("list-structure", _sitelinks_from_list),
    ("short-anchors", _sitelinks_from_anchors),
]


class AdExtractor:
    """Extracts normalized ad records from one rendered results page."""

    def __init__(self, settings: Optional[ExtractionSettings] = None) -> None:
        self.settings = settings or ExtractionSettings()

    def extract(self, page: Union[RenderedPage, str, None], keyword: str) -> List[AdRecord]:
        """Return the ads found on ``page`` for ``keyword``.

        Never raises for malformed markup: unusable containers are skipped
        and missing fields come back empty.
        """
        if isinstance(page, RenderedPage):
            html, base_url, captured_at = page.html, page.url, page.captured_at
        else:
            html, base_url, captured_at = page, "", None
        captured_at = captured_at or utc_now()

        if not isinstance(html, str) or not html.strip():
            return []

        soup = BeautifulSoup(html, "lxml")
        strategy, containers = self.locate_containers(soup)
        if not containers:
            logger.debug(f"No ad containers found for keyword {keyword!r}")
            return []
        logger.debug(f"Found {len(containers)} ad containers via {strategy} for {keyword!r}")

        records: List[AdRecord] = []
        seen_titles: set[str] = set()
        next_position = {BLOCK_TOP: 1, BLOCK_BOTTOM: 1}

        for container in containers:
            try:
                record = self._parse_container(
                    container,
                    keyword=keyword,
                    base_url=base_url or "",
                    captured_at=captured_at,
                    seen_titles=seen_titles,
                    next_position=next_position,
                )
            except Exception as exc:
                logger.warning(f"Skipping unparseable ad container for {keyword!r}: {exc}")
                continue
            # Only complete records claim a title and a position.
            if record is not None:
                seen_titles.add(record.title)
                next_position[record.block_position] += 1
                records.append(record)

        return records

    def locate_containers(self, soup: BeautifulSoup) -> Tuple[Optional[str], Optional[List[Tag]]]:
        return first_success(CONTAINER_STRATEGIES, soup)

    def _parse_container(
        self,
        container: Tag,
        *,
        keyword: str,
        base_url: str,
        captured_at: datetime,
        seen_titles: set[str],
        next_position: dict,
    ) -> Optional[AdRecord]:
        _, heading = first_success(TITLE_STRATEGIES, container)
        if heading is None:
            return None
        title = _text(heading)
        if title.lower() in SKIP_TITLES or title in seen_titles:
            return None

        _, block = first_success(BLOCK_STRATEGIES, container, heading, self.settings)
        block = block or BLOCK_TOP
        position = next_position[block]

        link_strategy, link = first_success(LINK_STRATEGIES, container, heading, base_url)
        destination_anchor, destination_url = link if link else (None, "")
        if link_strategy:
            logger.debug(f"Link for {title!r} via {link_strategy}")

        _, displayed_url = first_success(DISPLAYED_URL_STRATEGIES, container, self.settings)
        _, site_links = first_success(
            SITELINK_STRATEGIES, container, title, destination_anchor, base_url, self.settings
        )

        return AdRecord(
            keyword=keyword,
            position=position,
            block_position=block,
            title=title,
            destination_url=destination_url,
            domain=hostname_of(destination_url),
            displayed_url=displayed_url or "",
            description=self._description(container, title),
            site_links=tuple(site_links or ()),
            extensions=tuple(self._extensions(container, title)),
            captured_at=captured_at,
        )

    def _description(self, container: Tag, title: str) -> str:
        candidates = []
        for node in container.find_all(["div", "span"]):
            text = _text(node)
            if len(text) <= self.settings.description_min_chars or text == title:
                continue
            if starts_with_scheme(text) or any(marker in text for marker in DISCLOSURE_MARKERS):
                continue
            if _within_heading(node) or _contains_heading(node):
                continue
            candidates.append(text)

        if not candidates:
            return ""
        # Very long candidates are usually wrappers around the whole ad.
        candidates.sort(key=len, reverse=True)
        for candidate in candidates:
            if len(candidate) < self.settings.description_max_chars:
                return candidate
        return candidates[0]

    def _extensions(self, container: Tag, title: str) -> List[str]:
        extensions: List[str] = []
        if not self.settings.extension_selectors:
            return extensions
        for node in container.select(", ".join(self.settings.extension_selectors)):
            text = _text(node)
            if text and len(text) < self.settings.extension_max_chars and text != title:
                extensions.append(text)
        return extensions


def extract_ads(
    page: Union[RenderedPage, str, None],
    keyword: str,
    settings: Optional[ExtractionSettings] = None,
) -> List[AdRecord]:
    """Extract ads from a rendered page with the given (or default) settings."""
    return AdExtractor(settings).extract(page, keyword)
