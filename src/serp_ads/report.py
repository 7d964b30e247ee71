"""Markdown report composer for SERP ads runs.

Turns an aggregation result and the messaging-pattern findings into the
human-readable ``ads_summary`` document using a Jinja2 template. Formatting
only: every number shown here comes from the aggregation result.
"""

from __future__ import annotations

import csv
import io
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Sequence, Union

from jinja2 import Environment, FileSystemLoader, select_autoescape

from .aggregation import rank_competitors
from .models import AdRecord, AggregationResult, KeywordFailure, LocationProfile, PatternMatch
from .parser_utils import clean_text, normalize_timestamp

UNKNOWN_DOMAIN_LABEL = "(unknown)"

DEFAULT_TITLE_FORMAT = "{client} - Google Ads Scrape"
DEFAULT_SOURCE_LABEL = "Playwright"
DEFAULT_FOOTER = "Generated by serp-ads-monitor"


@dataclass
class ReportConfig:
    """Configuration for report generation."""

    title_format: str = DEFAULT_TITLE_FORMAT
    source_label: str = DEFAULT_SOURCE_LABEL
    footer: str = DEFAULT_FOOTER

    @classmethod
    def from_env(cls) -> "ReportConfig":
        """Load configuration from environment variables."""
        return cls(
            title_format=os.environ.get("SERP_ADS_REPORT_TITLE_FORMAT", DEFAULT_TITLE_FORMAT),
            source_label=os.environ.get("SERP_ADS_REPORT_SOURCE_LABEL", DEFAULT_SOURCE_LABEL),
            footer=os.environ.get("SERP_ADS_REPORT_FOOTER", DEFAULT_FOOTER),
        )


def table_cell(value: Any) -> str:
    """Flatten a value onto one line and escape the table column separator."""
    return clean_text(str(value)).replace("|", "\\|")


def format_position(value: float) -> str:
    return f"{value:g}"


def domain_label(domain: str) -> str:
    return domain or UNKNOWN_DOMAIN_LABEL


class ReportComposer:
    """Builds the markdown summary of one run."""

    TEMPLATE_NAME = "ads_summary.md.j2"

    def __init__(
        self,
        config: Optional[ReportConfig] = None,
        template_dir: Optional[Union[str, Path]] = None,
    ) -> None:
        self.config = config or ReportConfig()

        if template_dir is None:
            template_dir = Path(__file__).parent / "templates"
        else:
            template_dir = Path(template_dir)

        self.template_dir = template_dir
        self.jinja_env = Environment(
            loader=FileSystemLoader(str(template_dir)),
            autoescape=select_autoescape(["html", "xml"]),
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=True,
        )
        self.jinja_env.filters["cell"] = table_cell

    def build_report_data(
        self,
        result: AggregationResult,
        findings: Sequence[PatternMatch],
        *,
        client: str,
        keywords: Sequence[str],
        profile: LocationProfile,
        failures: Sequence[KeywordFailure] = (),
    ) -> Dict[str, Any]:
        """Build the template context for one run.

        Args:
            result: Aggregated records and per-domain statistics
            findings: Messaging-pattern matches, in classifier order
            client: Client name used in the title
            keywords: Keywords requested for the run, in order
            profile: Location profile the run used
            failures: Keywords whose pages could not be fetched

        Returns:
            Dictionary consumed by the report template
        """
        competitors = [
            {
                "domain": domain_label(domain),
                "total_ads": stats.total_ads,
                "keywords_targeted": stats.keywords_targeted,
                "average_position": format_position(stats.average_position),
            }
            for domain, stats in rank_competitors(result.statistics)
        ]

        keyword_sections = [
            {
                "keyword": keyword,
                "ads": [self._format_ad(record) for record in records],
            }
            for keyword, records in result.keywords.items()
        ]

        patterns = [
            {
                "name": finding.name,
                "examples": ", ".join(f'"{example}"' for example in finding.examples),
                "domains": ", ".join(domain_label(domain) for domain in finding.domains),
            }
            for finding in findings
        ]

        return {
            "title": self.config.title_format.format(client=client),
            "date": result.generated_at.strftime("%Y-%m-%d"),
            "source": f"{self.config.source_label} ({profile.search_domain})",
            "location": profile.raw_location or "default",
            "keywords": list(keywords),
            "total_ads": result.total_ads,
            "unique_domains": result.unique_domains,
            "unique_keywords": result.unique_keywords,
            "competitors": competitors,
            "keyword_sections": keyword_sections,
            "patterns": patterns,
            "failures": [failure.to_dict() for failure in failures],
            "footer": self.config.footer,
        }

    def _format_ad(self, record: AdRecord) -> Dict[str, Any]:
        return {
            "position": record.position,
            "block_position": record.block_position,
            "domain": domain_label(record.domain),
            "title": clean_text(record.title),
            "description": clean_text(record.description),
            "extensions": [clean_text(extension) for extension in record.extensions],
            "site_links": [clean_text(link.label) for link in record.site_links],
        }

    def render_markdown(self, report_data: Dict[str, Any]) -> str:
        """Render the markdown document from report data."""
        template = self.jinja_env.get_template(self.TEMPLATE_NAME)
        return template.render(**report_data)

    def compose(
        self,
        result: AggregationResult,
        findings: Sequence[PatternMatch],
        *,
        client: str,
        keywords: Sequence[str],
        profile: LocationProfile,
        failures: Sequence[KeywordFailure] = (),
    ) -> str:
        report_data = self.build_report_data(
            result,
            findings,
            client=client,
            keywords=keywords,
            profile=profile,
            failures=failures,
        )
        return self.render_markdown(report_data)

    def export_to_csv(self, records: Iterable[AdRecord]) -> str:
        """Export ad records to CSV format."""
        output = io.StringIO()
        fieldnames = [
            "keyword",
            "block_position",
            "position",
            "domain",
            "title",
            "description",
            "destination_url",
            "displayed_url",
            "site_links",
            "extensions",
            "captured_at",
        ]
        writer = csv.DictWriter(output, fieldnames=fieldnames)
        writer.writeheader()

        for record in records:
            writer.writerow(
                {
                    "keyword": record.keyword,
                    "block_position": record.block_position,
                    "position": record.position,
                    "domain": record.domain,
                    "title": record.title,
                    "description": record.description,
                    "destination_url": record.destination_url,
                    "displayed_url": record.displayed_url,
                    "site_links": ";".join(link.label for link in record.site_links),
                    "extensions": ";".join(record.extensions),
                    "captured_at": normalize_timestamp(record.captured_at) or "",
                }
            )

        return output.getvalue()
