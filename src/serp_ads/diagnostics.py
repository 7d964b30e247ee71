"""Page structure diagnostics for results pages that yielded no ads.

When extraction comes back empty the markup has usually drifted. The
summary built here records what the ad wrappers and sponsored regions looked
like in the snapshot so selectors can be fixed without re-running the scrape.
"""

from __future__ import annotations

import re
from typing import Any, Dict, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from .extraction import BOTTOM_WRAPPER_ID, TOP_WRAPPER_ID
from .logging_config import get_logger
from .parser_utils import clean_text

logger = get_logger("diagnostics")

NO_HEADING_LABEL = "(no heading)"
WRAPPER_HTML_CHARS = 800
WRAPPER_TEXT_CHARS = 400
FIRST_AD_HTML_CHARS = 2000
SPONSORED_CONTEXT_BEFORE = 20
SPONSORED_CONTEXT_AFTER = 60

_AD_LABEL = re.compile(r"\bAd\b\s?[·•]")


def _wrapper_info(wrapper: Optional[Tag], *, detailed: bool) -> Optional[Dict[str, Any]]:
    if wrapper is None:
        return None
    info: Dict[str, Any] = {
        "childCount": len(wrapper.find_all(True, recursive=False)),
        "h3Count": len(wrapper.find_all("h3")),
        "text": clean_text(wrapper.get_text(" "))[:WRAPPER_TEXT_CHARS],
    }
    if detailed:
        info["linkCount"] = len(wrapper.find_all("a"))
        info["divCount"] = len(wrapper.find_all("div"))
        info["html"] = wrapper.decode_contents()[:WRAPPER_HTML_CHARS]
    return info


def describe_page_structure(html: Optional[str], url: str = "") -> Dict[str, Any]:
    """Summarize the ad-relevant structure of a rendered results page."""
    soup = BeautifulSoup(html or "", "lxml")

    regions = []
    for region in soup.select('[role="region"]'):
        label = region.find(["h1", "h2"])
        regions.append(clean_text(label.get_text()) if label is not None else NO_HEADING_LABEL)

    top = soup.find(id=TOP_WRAPPER_ID)
    bottom = soup.find(id=BOTTOM_WRAPPER_ID)
    markers = soup.select("[data-text-ad]")

    body = soup.body
    body_text = clean_text(body.get_text(" ")) if body is not None else ""
    sponsored_at = body_text.lower().find("sponsored")
    sponsored_context = None
    if sponsored_at != -1:
        start = max(0, sponsored_at - SPONSORED_CONTEXT_BEFORE)
        sponsored_context = body_text[start:sponsored_at + SPONSORED_CONTEXT_AFTER]
    ad_label = _AD_LABEL.search(body_text)

    return {
        "title": clean_text(soup.title.get_text()) if soup.title is not None else "",
        "url": url,
        "regions": regions,
        "hasTopAds": top is not None,
        "hasBottomAds": bottom is not None,
        "textAdCount": len(markers),
        "hasSponsored": sponsored_at != -1,
        "sponsoredContext": sponsored_context,
        "adLabel": ad_label.group(0) if ad_label else None,
        "topAds": _wrapper_info(top, detailed=True),
        "bottomAds": _wrapper_info(bottom, detailed=False),
        "firstAdHtml": str(markers[0])[:FIRST_AD_HTML_CHARS] if markers else None,
    }


def log_page_structure(keyword: str, structure: Dict[str, Any]) -> None:
    """Log a page structure summary at warning/info level."""
    logger.warning(f'No ads for "{keyword}" on page "{structure["title"]}"')
    logger.info(f"  regions: [{', '.join(structure['regions'])}]")
    logger.info(
        f"  #{TOP_WRAPPER_ID}: {structure['hasTopAds']} | #{BOTTOM_WRAPPER_ID}: {structure['hasBottomAds']}"
        f" | [data-text-ad]: {structure['textAdCount']}"
    )
    context = structure["sponsoredContext"]
    logger.info(f'  "Sponsored" found: {structure["hasSponsored"]}' + (f' ({context!r})' if context else ""))
    logger.info(f'  "Ad" label: {structure["adLabel"] or "none"}')

    top = structure["topAds"]
    if top:
        logger.info(
            f"  #{TOP_WRAPPER_ID} content: {top['childCount']} children, {top['h3Count']} h3s,"
            f" {top['linkCount']} links, {top['divCount']} divs"
        )
        logger.info(f"  #{TOP_WRAPPER_ID} text: {top['text'][:200]!r}")
        if top["h3Count"] == 0:
            logger.debug(f"  #{TOP_WRAPPER_ID} HTML: {top['html'][:500]}")
    bottom = structure["bottomAds"]
    if bottom:
        logger.info(f"  #{BOTTOM_WRAPPER_ID}: {bottom['childCount']} children, {bottom['h3Count']} h3s")
        logger.info(f"  #{BOTTOM_WRAPPER_ID} text: {bottom['text'][:200]!r}")
    if structure["firstAdHtml"]:
        logger.debug(f"  first [data-text-ad] HTML: {structure['firstAdHtml']}")
