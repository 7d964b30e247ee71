"""SERP ads monitor package namespace."""

from importlib import import_module
from typing import Any

__all__ = [
    "AdExtractor",
    "extract_ads",
    "LocationResolver",
    "encode_location_token",
    "aggregate",
    "describe_page_structure",
    "PatternDetector",
    "ReportComposer",
    "ReportConfig",
    "SerpAdsConfig",
    "SerpAdsRunner",
]


def __getattr__(name: str) -> Any:
    if name in ("AdExtractor", "extract_ads"):
        module = import_module("src.serp_ads.extraction")
        return getattr(module, name)
    elif name in ("LocationResolver", "encode_location_token"):
        module = import_module("src.serp_ads.location")
        return getattr(module, name)
    elif name == "aggregate":
        module = import_module("src.serp_ads.aggregation")
        return getattr(module, name)
    elif name == "describe_page_structure":
        module = import_module("src.serp_ads.diagnostics")
        return getattr(module, name)
    elif name == "PatternDetector":
        module = import_module("src.serp_ads.patterns")
        return getattr(module, name)
    elif name in ("ReportComposer", "ReportConfig"):
        module = import_module("src.serp_ads.report")
        return getattr(module, name)
    elif name == "SerpAdsConfig":
        module = import_module("src.serp_ads.config")
        return getattr(module, name)
    elif name == "SerpAdsRunner":
        module = import_module("src.serp_ads.runner")
        return getattr(module, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")


def __dir__() -> list[str]:
    return sorted(__all__)
