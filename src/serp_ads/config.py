"""Configuration loader for the SERP ads monitor."""

from __future__ import annotations

from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple

import yaml

from .location import DEFAULT_COUNTRY, DEFAULT_MARKETS
from .models import Market
from .parser_utils import ensure_list, split_csv


class ConfigError(ValueError):
    """Raised when the configuration file has an unusable structure."""


@dataclass(frozen=True)
class ExtractionSettings:
    """Tunable thresholds for ad extraction.

    The description cutoff and the bottom-block offset were tuned against a
    single observed page layout.
    """

    description_min_chars: int = 40
    description_max_chars: int = 500
    bottom_offset_threshold: float = 600.0
    displayed_url_max_chars: int = 120
    sitelink_max_chars: int = 60
    fallback_sitelink_min_chars: int = 4
    fallback_sitelink_max_chars: int = 50
    extension_max_chars: int = 80
    extension_selectors: Tuple[str, ...] = ('[role="listitem"]', ".YhemCb")

    @classmethod
    def from_dict(cls, data: Optional[Mapping[str, Any]]) -> "ExtractionSettings":
        if not data:
            return cls()
        known = {f.name: f for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in data.items():
            if key not in known:
                continue
            if key == "extension_selectors":
                values[key] = tuple(ensure_list(value))
            elif key == "bottom_offset_threshold":
                values[key] = float(value)
            else:
                values[key] = int(value)
        return cls(**values)


class ClientPreset:
    """Keywords and location preset for a single client."""

    def __init__(self, client: str, data: Dict[str, Any]) -> None:
        self.client = client
        self.keywords: List[str] = split_csv(data.get("keywords"))
        self.location: Optional[str] = data.get("location")
        self.description = data.get("description", "")


class SerpAdsConfig:
    """Central configuration container backed by a YAML file."""

    DEFAULT_CONFIG_PATH = Path("config/serp_ads.yaml")

    def __init__(self, config_path: Optional[Path | str] = None) -> None:
        path = Path(config_path) if config_path else self.DEFAULT_CONFIG_PATH
        if not path.is_absolute():
            path = Path.cwd() / path
        self.config_path = path
        self._data = self._load_config()

    def _load_config(self) -> Dict[str, Any]:
        if not self.config_path.exists():
            return {"settings": {}, "extraction": {}, "markets": {}, "presets": {}, "patterns": {}}
        with open(self.config_path, "r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle) or {}
        if not isinstance(data, dict):
            raise ConfigError(f"Configuration root must be a mapping: {self.config_path}")
        return data

    def _section(self, name: str) -> Dict[str, Any]:
        section = self._data.get(name) or {}
        if not isinstance(section, dict):
            raise ConfigError(f"Configuration section {name!r} must be a mapping")
        return section

    def get_setting(self, key: str, default: Any = None) -> Any:
        return self._section("settings").get(key, default)

    @property
    def default_country(self) -> str:
        return self.get_setting("default_country", DEFAULT_COUNTRY)

    def extraction_settings(self) -> ExtractionSettings:
        return ExtractionSettings.from_dict(self._section("extraction"))

    def markets(self) -> Dict[str, Market]:
        """Return the default market table merged with configured entries."""
        merged: Dict[str, Market] = dict(DEFAULT_MARKETS)
        for country, market_data in self._section("markets").items():
            try:
                merged[country] = Market.from_dict(market_data)
            except (KeyError, TypeError) as exc:
                raise ConfigError(f"Invalid market entry {country!r}: missing {exc}") from exc
        return merged

    def get_preset(self, client: str) -> Optional[ClientPreset]:
        presets = self._section("presets")
        if client not in presets:
            return None
        return ClientPreset(client, presets[client] or {})

    def preset_names(self) -> List[str]:
        return sorted(self._section("presets"))

    def pattern_rules(self) -> Dict[str, List[str]]:
        return {
            name: ensure_list(patterns)
            for name, patterns in self._section("patterns").items()
        }
