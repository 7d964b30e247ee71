from pathlib import Path

import pytest

from src.serp_ads.config import ConfigError, ExtractionSettings, SerpAdsConfig

REPO_CONFIG = Path(__file__).parent.parent.parent / "config" / "serp_ads.yaml"


def test_repo_config_loads_settings():
    config = SerpAdsConfig(REPO_CONFIG)

    assert config.default_country == "United Kingdom"
    assert config.get_setting("navigation_timeout_ms") == 20000
    assert config.get_setting("headless") is False
    assert config.get_setting("missing", "fallback") == "fallback"


def test_repo_config_presets():
    config = SerpAdsConfig(REPO_CONFIG)

    preset = config.get_preset("acme-plumbing")
    assert preset is not None
    assert preset.keywords == ["plumber near me", "emergency plumber", "boiler repair"]
    assert preset.location == "London,England,United Kingdom"
    assert config.get_preset("nobody") is None
    assert "acme-plumbing" in config.preset_names()


def test_repo_config_markets_merge_defaults():
    markets = SerpAdsConfig(REPO_CONFIG).markets()

    assert markets["Ireland"].search_domain == "google.ie"
    assert markets["United Kingdom"].search_domain == "google.co.uk"


def test_repo_config_pattern_rules():
    rules = SerpAdsConfig(REPO_CONFIG).pattern_rules()

    assert rules["Regulation/credentials"] == ["gas safe"]


def test_missing_file_uses_defaults(tmp_path):
    config = SerpAdsConfig(tmp_path / "absent.yaml")

    assert config.default_country == "United Kingdom"
    assert config.extraction_settings() == ExtractionSettings()
    assert config.preset_names() == []
    assert config.pattern_rules() == {}
    assert set(config.markets()) == {"United Kingdom", "United States", "Australia", "Canada"}


def test_extraction_overrides(tmp_path):
    path = tmp_path / "serp_ads.yaml"
    path.write_text(
        "extraction:\n"
        "  description_max_chars: 300\n"
        "  bottom_offset_threshold: 750\n"
        "  extension_selectors: .ext\n"
        "  unknown_key: 5\n",
        encoding="utf-8",
    )

    settings = SerpAdsConfig(path).extraction_settings()

    assert settings.description_max_chars == 300
    assert settings.bottom_offset_threshold == 750.0
    assert settings.extension_selectors == (".ext",)
    assert settings.description_min_chars == 40


def test_preset_keywords_accept_lists(tmp_path):
    path = tmp_path / "serp_ads.yaml"
    path.write_text(
        "presets:\n"
        "  carehome:\n"
        "    keywords: [home care, ' live in care ', '']\n",
        encoding="utf-8",
    )

    preset = SerpAdsConfig(path).get_preset("carehome")

    assert preset.keywords == ["home care", "live in care"]
    assert preset.location is None


def test_non_mapping_root_is_rejected(tmp_path):
    path = tmp_path / "serp_ads.yaml"
    path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        SerpAdsConfig(path)


def test_invalid_market_entry(tmp_path):
    path = tmp_path / "serp_ads.yaml"
    path.write_text("markets:\n  Ireland:\n    search_domain: google.ie\n", encoding="utf-8")

    with pytest.raises(ConfigError):
        SerpAdsConfig(path).markets()
