"""Messaging-pattern detection for competitor ad copy.

Scans the titles and descriptions of every competitor against a fixed,
ordered set of classifiers and reports which ones appear, with examples and
the advertisers using them.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Mapping, Optional, Pattern, Tuple

from .aggregation import rank_competitors
from .logging_config import get_logger
from .models import CompetitorAggregate, PatternMatch

logger = get_logger("patterns")


class PatternDetector:
    """Detects marketing-message categories in ad text."""

    PATTERN_PRICING = "Pricing/cost"
    PATTERN_URGENCY = "Urgency/speed"
    PATTERN_SOCIAL_PROOF = "Social proof"
    PATTERN_REGULATION = "Regulation/credentials"
    PATTERN_LOCAL = "Local/geographic"

    ALL_PATTERNS = [
        PATTERN_PRICING,
        PATTERN_URGENCY,
        PATTERN_SOCIAL_PROOF,
        PATTERN_REGULATION,
        PATTERN_LOCAL,
    ]

    MAX_EXAMPLES = 2
    EXAMPLE_LENGTH = 60

    def __init__(self, custom_rules: Optional[Dict[str, Any]] = None) -> None:
        self.custom_rules = custom_rules or {}
        self._init_rules()

    def _init_rules(self) -> None:
        """Initialise classifier rules, extended by any custom patterns."""
        self.rules: Dict[str, List[str]] = {
            self.PATTERN_PRICING: [
                r"£|\$|€",
                r"\bfrom\b.*\d",
                r"price|cost|free",
            ],
            self.PATTERN_URGENCY: [
                r"urgent|emergency|immediate",
                r"24.?h|today|quick|fast",
            ],
            self.PATTERN_SOCIAL_PROOF: [
                r"\d+\+?\s*(carer|year|review|client|star|rated|award|trust)",
            ],
            self.PATTERN_REGULATION: [
                r"cqc|regulat|registered|inspected|verified",
            ],
            self.PATTERN_LOCAL: [
                r"\blocal\b|near me|\bnearby\b",
            ],
        }

        for name, patterns in self.custom_rules.items():
            if name not in self.rules:
                logger.warning(f"Ignoring patterns for unknown classifier {name!r}")
                continue
            self.rules[name].extend(patterns)

        self._compiled: Dict[str, List[Pattern[str]]] = {
            name: [re.compile(pattern, re.IGNORECASE) for pattern in patterns]
            for name, patterns in self.rules.items()
        }

    def matches(self, name: str, text: Optional[str]) -> bool:
        if not text:
            return False
        return any(regex.search(text) for regex in self._compiled[name])

    def classify(self, text: Optional[str]) -> List[str]:
        """Return the names of all classifiers matching ``text``, in order."""
        return [name for name in self.ALL_PATTERNS if self.matches(name, text)]

    def detect(self, statistics: Mapping[str, CompetitorAggregate]) -> List[PatternMatch]:
        """Scan every competitor title and description against each classifier.

        Classifiers with no matching text are left out of the result.
        """
        texts: List[Tuple[str, str]] = []
        for domain, stats in rank_competitors(statistics):
            texts.extend((domain, title) for title in stats.titles)
            texts.extend((domain, description) for description in stats.descriptions)

        findings: List[PatternMatch] = []
        for name in self.ALL_PATTERNS:
            hits = [(domain, text) for domain, text in texts if self.matches(name, text)]
            if not hits:
                continue
            findings.append(
                PatternMatch(
                    name=name,
                    examples=tuple(text[: self.EXAMPLE_LENGTH] for _, text in hits[: self.MAX_EXAMPLES]),
                    domains=tuple(sorted({domain for domain, _ in hits})),
                )
            )
        return findings
