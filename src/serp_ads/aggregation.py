"""Aggregation of extracted ad records into competitor statistics.

Everything here is recomputed from the full record collection on each call;
nothing is cached or mutated between calls.
"""

from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from .models import AdRecord, AggregationResult, CompetitorAggregate
from .parser_utils import utc_now

_ONE_DECIMAL = Decimal("0.1")


def average_position(positions: Sequence[int]) -> float:
    """Arithmetic mean of ``positions`` rounded half-up to one decimal."""
    if not positions:
        return 0.0
    mean = Decimal(sum(positions)) / Decimal(len(positions))
    return float(mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def group_records(records: Iterable[AdRecord], key: str) -> Dict[str, List[AdRecord]]:
    """Group records by an attribute, keeping first-seen group order."""
    groups: Dict[str, List[AdRecord]] = {}
    for record in records:
        groups.setdefault(getattr(record, key), []).append(record)
    return groups


def summarize_competitor(domain: str, records: Sequence[AdRecord]) -> CompetitorAggregate:
    return CompetitorAggregate(
        domain=domain,
        total_ads=len(records),
        keywords_targeted=len({record.keyword for record in records}),
        average_position=average_position([record.position for record in records]),
        titles=tuple(record.title for record in records),
        descriptions=tuple(record.description for record in records if record.description),
    )


def aggregate(
    records: Iterable[AdRecord],
    *,
    generated_at: Optional[datetime] = None,
    source: str = "playwright",
) -> AggregationResult:
    """Group ad records by domain and keyword and derive per-domain stats.

    Records without a domain form their own group under the empty string.
    """
    records = list(records)
    competitors = group_records(records, "domain")
    keywords = group_records(records, "keyword")
    statistics = {
        domain: summarize_competitor(domain, domain_records)
        for domain, domain_records in competitors.items()
    }
    return AggregationResult(
        competitors=competitors,
        keywords=keywords,
        statistics=statistics,
        generated_at=generated_at or utc_now(),
        source=source,
    )


def rank_competitors(
    statistics: Mapping[str, CompetitorAggregate],
) -> List[Tuple[str, CompetitorAggregate]]:
    """Order competitors by ad count, ties kept in insertion order."""
    return sorted(statistics.items(), key=lambda item: item[1].total_ads, reverse=True)
