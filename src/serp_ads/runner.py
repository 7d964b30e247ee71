"""SERP ads pipeline runner.

Orchestrates a scrape for one client: location resolution, page collection
one keyword at a time, extraction, aggregation, pattern detection and report
output. Supports dry-run mode, rebuilding outputs from a saved raw file, and
per-keyword failure tracking.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import random
import re
import sys
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from pathlib import Path
from typing import (
    Any,
    AsyncContextManager,
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Protocol,
    Sequence,
    Tuple,
    Union,
)

from .aggregation import aggregate
from .browser import BrowserPageSource, BrowserSettings, debug_file_stem
from .config import ConfigError, SerpAdsConfig
from .diagnostics import describe_page_structure, log_page_structure
from .extraction import AdExtractor
from .location import COMMON_LOCATIONS, LocationResolver
from .logging_config import get_logger, setup_logging
from .models import AdRecord, AggregationResult, KeywordFailure, LocationProfile, RenderedPage
from .parser_utils import split_csv, utc_now
from .patterns import PatternDetector
from .report import ReportComposer, ReportConfig

logger = get_logger("runner")

PROJECTS_FILE = "projects_list.json"
_RAW_FILE_DATE = re.compile(r"raw_ads_(\d{4}-\d{2}-\d{2})\.json$")


class PageSource(Protocol):
    async def fetch(self, keyword: str) -> RenderedPage:
        ...

    async def capture_debug(self, keyword: str, debug_dir: Path) -> Any:
        ...


PageSourceFactory = Callable[[LocationProfile], AsyncContextManager[PageSource]]


@dataclass(frozen=True)
class RunAccumulator:
    """Records and failures gathered so far in a keyword loop."""

    records: Tuple[AdRecord, ...] = ()
    failures: Tuple[KeywordFailure, ...] = ()

    def with_records(self, records: Iterable[AdRecord]) -> "RunAccumulator":
        return replace(self, records=self.records + tuple(records))

    def with_failure(self, keyword: str, error: str) -> "RunAccumulator":
        return replace(self, failures=self.failures + (KeywordFailure(keyword, error),))


@dataclass
class RunSummary:
    """Summary of a pipeline run."""

    client: str
    started_at: str
    completed_at: str = ""
    keywords: List[str] = field(default_factory=list)
    location: Optional[str] = None
    search_domain: str = ""
    dry_run: bool = False
    total_ads: int = 0
    unique_domains: int = 0
    failed_keywords: List[KeywordFailure] = field(default_factory=list)
    output_paths: Dict[str, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)

    def exit_code(self) -> int:
        """Return appropriate exit code based on run status."""
        if self.errors:
            return 1
        if self.failed_keywords:
            return 2
        return 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert summary to dictionary for JSON serialization."""
        return {
            "client": self.client,
            "started_at": self.started_at,
            "completed_at": self.completed_at,
            "keywords": self.keywords,
            "location": self.location,
            "search_domain": self.search_domain,
            "dry_run": self.dry_run,
            "total_ads": self.total_ads,
            "unique_domains": self.unique_domains,
            "failed_keywords": [failure.to_dict() for failure in self.failed_keywords],
            "output_paths": self.output_paths,
            "errors": self.errors,
            "exit_code": self.exit_code(),
        }


def _timestamp() -> str:
    return utc_now().strftime("%Y-%m-%dT%H:%M:%SZ")


class SerpAdsRunner:
    """Main pipeline orchestrator for SERP ad scraping."""

    def __init__(
        self,
        config: Optional[SerpAdsConfig] = None,
        *,
        page_source_factory: Optional[PageSourceFactory] = None,
        browser_settings: Optional[BrowserSettings] = None,
        report_config: Optional[ReportConfig] = None,
        delay_range: Optional[Tuple[float, float]] = None,
    ) -> None:
        self.config = config or SerpAdsConfig()
        self.resolver = LocationResolver(
            self.config.markets(),
            default_country=self.config.default_country,
        )
        self.extractor = AdExtractor(self.config.extraction_settings())
        self.detector = PatternDetector(self.config.pattern_rules())
        self.composer = ReportComposer(report_config or ReportConfig.from_env())

        if delay_range is None:
            delay_range = (
                float(self.config.get_setting("delay_min_seconds", 3.0)),
                float(self.config.get_setting("delay_max_seconds", 5.0)),
            )
        self.delay_range = delay_range
        self.debug_screenshots = bool(self.config.get_setting("debug_screenshots", True))

        if page_source_factory is None:
            settings = browser_settings or BrowserSettings.from_config(self.config, Path.cwd())

            def page_source_factory(profile: LocationProfile) -> BrowserPageSource:
                return BrowserPageSource(profile, settings)

        self.page_source_factory = page_source_factory

    def resolve_profile(self, location: Optional[str]) -> LocationProfile:
        return self.resolver.resolve_or_default(location)

    def _next_delay(self) -> float:
        low, high = self.delay_range
        return random.uniform(low, max(low, high))

    async def collect(
        self,
        keywords: Sequence[str],
        profile: LocationProfile,
        *,
        debug_dir: Optional[Path] = None,
    ) -> RunAccumulator:
        """Fetch and extract every keyword in order, one page at a time.

        A keyword whose page cannot be fetched is recorded as a failure;
        records gathered for other keywords are kept.
        """
        accumulator = RunAccumulator()
        async with self.page_source_factory(profile) as source:
            for index, keyword in enumerate(keywords):
                logger.info(f'[{index + 1}/{len(keywords)}] "{keyword}"')
                accumulator = await self._collect_keyword(source, keyword, accumulator, debug_dir)
                if index < len(keywords) - 1:
                    await asyncio.sleep(self._next_delay())
        return accumulator

    async def _collect_keyword(
        self,
        source: PageSource,
        keyword: str,
        accumulator: RunAccumulator,
        debug_dir: Optional[Path],
    ) -> RunAccumulator:
        try:
            page = await source.fetch(keyword)
        except Exception as e:
            logger.error(f'Keyword "{keyword}" failed: {e}')
            return accumulator.with_failure(keyword, str(e))

        records = self.extractor.extract(page, keyword)
        logger.info(f'"{keyword}": {len(records)} ads found')

        if not records:
            structure = describe_page_structure(page.html, page.url)
            log_page_structure(keyword, structure)
            if debug_dir is not None:
                self._save_structure(keyword, structure, debug_dir)

        if not records and debug_dir is not None and self.debug_screenshots:
            try:
                saved = await source.capture_debug(keyword, debug_dir)
                logger.info(f"Saved debug screenshots: {saved}")
            except Exception as e:
                logger.warning(f'Debug capture failed for "{keyword}": {e}')

        return accumulator.with_records(records)

    def _save_structure(self, keyword: str, structure: Dict[str, Any], debug_dir: Path) -> Optional[Path]:
        path = debug_dir / f"{debug_file_stem(keyword)}_structure.json"
        try:
            debug_dir.mkdir(parents=True, exist_ok=True)
            path.write_text(json.dumps(structure, indent=2, ensure_ascii=False), encoding="utf-8")
        except OSError as e:
            logger.warning(f'Could not save page structure for "{keyword}": {e}')
            return None
        logger.info(f"Saved page structure: {path}")
        return path

    async def run(
        self,
        client: str,
        keywords: Sequence[str],
        location: Optional[str] = None,
        *,
        output_root: Optional[Path] = None,
        dry_run: bool = False,
    ) -> RunSummary:
        """Execute the full scrape pipeline for one client.

        Args:
            client: Client name, used for the output directory and report title
            keywords: Search terms, processed in order
            location: Canonical "City,Region,Country" location string
            output_root: Project root; outputs go to clients/<client>/ads/
            dry_run: If True, resolve and log the run plan without a browser

        Returns:
            RunSummary with execution metrics and status
        """
        output_root = Path(output_root) if output_root else Path.cwd()
        summary = RunSummary(
            client=client,
            started_at=_timestamp(),
            keywords=list(keywords),
            location=location,
            dry_run=dry_run,
        )

        try:
            profile = self.resolve_profile(location)
            summary.search_domain = profile.search_domain
            self._log_plan(client, keywords, location, profile)

            if dry_run:
                logger.info("Dry run - no browser launched")
                summary.completed_at = _timestamp()
                return summary

            ads_dir = output_root / "clients" / client / "ads"
            accumulator = await self.collect(keywords, profile, debug_dir=ads_dir / "debug")
            summary.failed_keywords = list(accumulator.failures)

            if not accumulator.records:
                logger.warning("No ads found; writing empty outputs for the record")

            result = aggregate(accumulator.records)
            summary.output_paths = self._write_outputs(
                client,
                keywords,
                profile,
                accumulator,
                result,
                ads_dir,
            )
            summary.total_ads = result.total_ads
            summary.unique_domains = result.unique_domains

            for failure in accumulator.failures:
                logger.warning(f'Failed keyword "{failure.keyword}": {failure.error}')

        except Exception as e:
            error_msg = f"Pipeline failed: {e}"
            logger.exception(error_msg)
            summary.errors.append(error_msg)

        summary.completed_at = _timestamp()
        logger.info(f"Run completed: {summary.exit_code()} exit code")
        return summary

    def rebuild(
        self,
        raw_path: Path,
        client: str,
        *,
        keywords: Optional[Sequence[str]] = None,
        location: Optional[str] = None,
    ) -> RunSummary:
        """Re-derive structured data and the report from a saved raw file.

        Outputs are written beside the raw file; the raw file itself is left
        untouched.
        """
        raw_path = Path(raw_path)
        summary = RunSummary(client=client, started_at=_timestamp(), location=location)

        try:
            with open(raw_path, "r", encoding="utf-8") as f:
                raw = json.load(f)
            if not isinstance(raw, list):
                raise ValueError(f"Raw ads file must contain a list: {raw_path}")

            records = [AdRecord.from_dict(item) for item in raw if isinstance(item, dict)]
            if keywords is None:
                keywords = list(dict.fromkeys(record.keyword for record in records))
            summary.keywords = list(keywords)

            profile = self.resolve_profile(location)
            summary.search_domain = profile.search_domain

            match = _RAW_FILE_DATE.search(raw_path.name)
            generated_at = None
            if match:
                generated_at = datetime.strptime(match.group(1), "%Y-%m-%d").replace(tzinfo=timezone.utc)

            result = aggregate(records, generated_at=generated_at)
            summary.output_paths = self._write_outputs(
                client,
                keywords,
                profile,
                RunAccumulator(records=tuple(records)),
                result,
                raw_path.parent,
                write_raw=False,
            )
            summary.total_ads = result.total_ads
            summary.unique_domains = result.unique_domains
            logger.info(f"Rebuilt outputs from {raw_path}")

        except (OSError, ValueError) as e:
            error_msg = f"Rebuild failed: {e}"
            logger.error(error_msg)
            summary.errors.append(error_msg)

        summary.completed_at = _timestamp()
        return summary

    def _log_plan(
        self,
        client: str,
        keywords: Sequence[str],
        location: Optional[str],
        profile: LocationProfile,
    ) -> None:
        logger.info(f"Client:   {client}")
        logger.info(f"Keywords: {', '.join(keywords)}")
        logger.info(f"Location: {location or 'default (' + profile.country_key + ')'}")
        logger.info(f"Domain:   {profile.search_domain}")
        logger.info(f"Locale:   {profile.locale} | TZ: {profile.timezone_id} | gl={profile.region_code}")
        if profile.location_token:
            logger.debug(f"Location token: {profile.location_token}")

    def _write_outputs(
        self,
        client: str,
        keywords: Sequence[str],
        profile: LocationProfile,
        accumulator: RunAccumulator,
        result: AggregationResult,
        ads_dir: Path,
        *,
        write_raw: bool = True,
    ) -> Dict[str, str]:
        """Write raw records, structured data, the markdown report and a CSV export."""
        ads_dir.mkdir(parents=True, exist_ok=True)
        date_str = result.generated_at.strftime("%Y-%m-%d")
        paths: Dict[str, str] = {}

        if write_raw:
            raw_path = ads_dir / f"raw_ads_{date_str}.json"
            raw_path.write_text(
                json.dumps([record.to_dict() for record in accumulator.records], indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
            paths["raw"] = str(raw_path)
            logger.info(f"Wrote raw ads: {raw_path}")

        data = result.to_dict()
        data["metadata"]["location"] = profile.to_dict()
        data["metadata"]["failures"] = [failure.to_dict() for failure in accumulator.failures]
        data_path = ads_dir / f"ads_data_{date_str}.json"
        data_path.write_text(json.dumps(data, indent=2, ensure_ascii=False), encoding="utf-8")
        paths["data"] = str(data_path)
        logger.info(f"Wrote structured data: {data_path}")

        findings = self.detector.detect(result.statistics)
        report = self.composer.compose(
            result,
            findings,
            client=client,
            keywords=keywords,
            profile=profile,
            failures=accumulator.failures,
        )
        summary_path = ads_dir / f"ads_summary_{date_str}.md"
        summary_path.write_text(report, encoding="utf-8")
        paths["summary"] = str(summary_path)
        logger.info(f"Wrote summary report: {summary_path}")

        csv_path = ads_dir / f"ads_{date_str}.csv"
        csv_path.write_text(self.composer.export_to_csv(accumulator.records), encoding="utf-8", newline="")
        paths["csv"] = str(csv_path)
        logger.info(f"Wrote CSV export: {csv_path}")

        return paths


def load_project(root: Path, project_id: str) -> Optional[Dict[str, Any]]:
    """Look up a project entry by id in the root's projects list."""
    projects_path = root / PROJECTS_FILE
    if not projects_path.exists():
        return None
    with open(projects_path, "r", encoding="utf-8") as f:
        data = json.load(f)
    for project in data.get("projects", []):
        if project.get("id") == project_id:
            return project
    return None


def resolve_run_inputs(
    client: str,
    config: SerpAdsConfig,
    root: Path,
    *,
    keywords: Optional[Union[str, Sequence[str]]] = None,
    location: Optional[str] = None,
    project_id: Optional[str] = None,
) -> Tuple[List[str], Optional[str]]:
    """Pick keywords and location: explicit flags, then project, then preset."""
    resolved_keywords = split_csv(keywords)
    resolved_location = location

    if project_id:
        project = load_project(root, project_id)
        if project is None:
            raise ConfigError(f'Project "{project_id}" not found in {PROJECTS_FILE}')
        logger.info(f"Loaded project: {project.get('name', project_id)}")
        if not resolved_keywords:
            resolved_keywords = split_csv(project.get("keywords"))
        if not resolved_location:
            resolved_location = project.get("location")

    preset = config.get_preset(client)
    if preset is not None:
        if not resolved_keywords:
            resolved_keywords = list(preset.keywords)
        if not resolved_location:
            resolved_location = preset.location

    return resolved_keywords, resolved_location


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="SERP ads scraper - collects paid search ads and builds competitor reports",
        epilog="Example locations: " + "; ".join(COMMON_LOCATIONS),
    )

    parser.add_argument("client", help="Client name (output goes to clients/<client>/ads/)")

    parser.add_argument(
        "--keywords",
        help='Comma separated keywords, e.g. "kw1,kw2" (overrides project and preset)',
    )

    parser.add_argument(
        "--location",
        help='Geo target as "City,Region,Country" (overrides project and preset)',
    )

    parser.add_argument(
        "--project",
        help=f"Load keywords and location from {PROJECTS_FILE} by project id",
    )

    parser.add_argument(
        "--proxy",
        help="Route browser traffic through a proxy, e.g. socks5://host:port",
    )

    parser.add_argument(
        "--root",
        type=Path,
        help="Project root for outputs and projects list (default: current directory)",
    )

    parser.add_argument(
        "--config",
        type=Path,
        help="Path to YAML configuration (default: <root>/config/serp_ads.yaml)",
    )

    parser.add_argument(
        "--from-raw",
        type=Path,
        help="Rebuild structured data and report from an existing raw ads file",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show the run plan without launching a browser",
    )

    parser.add_argument(
        "--json",
        action="store_true",
        help="Output summary as JSON",
    )

    parser.add_argument(
        "--log-file",
        type=Path,
        help="Write logs to file",
    )

    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose logging",
    )

    args = parser.parse_args(argv)

    setup_logging(
        log_file=args.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
        client=args.client,
    )

    root = (args.root or Path.cwd()).resolve()

    try:
        config = SerpAdsConfig(args.config or root / SerpAdsConfig.DEFAULT_CONFIG_PATH)
        runner = SerpAdsRunner(
            config,
            browser_settings=BrowserSettings.from_config(config, root, args.proxy),
        )

        if args.from_raw:
            summary = runner.rebuild(
                args.from_raw,
                args.client,
                keywords=split_csv(args.keywords) or None,
                location=args.location,
            )
        else:
            keywords, location = resolve_run_inputs(
                args.client,
                config,
                root,
                keywords=args.keywords,
                location=args.location,
                project_id=args.project,
            )
            if not keywords:
                logger.error(
                    f'No keywords - pass --keywords "kw1,kw2", --project <id>, '
                    f'or add a preset for "{args.client}"'
                )
                presets = config.preset_names()
                logger.info(f"Presets: {', '.join(presets) if presets else '(none)'}")
                return 1

            summary = asyncio.run(
                runner.run(
                    args.client,
                    keywords,
                    location,
                    output_root=root,
                    dry_run=args.dry_run,
                )
            )

        if args.json:
            print(json.dumps(summary.to_dict(), indent=2))
        else:
            logger.info(f"Done - {summary.total_ads} ads from {summary.unique_domains} competitors")
            for name, path in summary.output_paths.items():
                logger.info(f"  {name}: {path}")
            if summary.failed_keywords:
                logger.warning(f"{len(summary.failed_keywords)} keyword(s) failed")
            if summary.errors:
                logger.error(f"Errors: {len(summary.errors)}")

        return summary.exit_code()

    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
