from datetime import timedelta
from pathlib import Path

import pytest

from georank.errors import ConfigError
from georank.settings import load_settings


@pytest.fixture(autouse=True)
def _clear_geocoder_env(monkeypatch):
    for name in ("GEORANK_GEOCODER_URL", "GEORANK_GEOCODER_USER_AGENT", "GEORANK_GEOCODER_ENABLED"):
        monkeypatch.delenv(name, raising=False)


def test_missing_file_yields_defaults(tmp_path):
    settings = load_settings(tmp_path / "absent.toml")
    assert settings.geocoder.enabled is False
    assert settings.cache.ttl == timedelta(days=30)
    assert settings.region.bounds().contains(30.0444, 31.2357)
    assert settings.ranking.concurrency == 8


def test_repository_settings_load():
    settings = load_settings(Path("config/settings.toml"))
    assert settings.cache.dir == Path("data/cache")
    assert settings.region.anchor().latitude == 30.0444


def test_toml_values_override_defaults(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text(
        "[region]\nmin_lat = 24.0\nmax_lat = 26.5\nmin_lon = 51.0\nmax_lon = 56.5\n"
        "anchor_lat = 25.2048\nanchor_lon = 55.2708\n"
        "[cache]\nttl_days = 7\n"
        "[geocoder]\ncountry_codes = [\"ae\"]\n",
        encoding="utf-8",
    )
    settings = load_settings(path)
    assert settings.region.bounds().contains(25.2, 55.27)
    assert not settings.region.bounds().contains(30.0444, 31.2357)
    assert settings.cache.ttl == timedelta(days=7)
    assert settings.geocoder.country_codes == ["ae"]


def test_environment_overrides_geocoder(tmp_path, monkeypatch):
    monkeypatch.setenv("GEORANK_GEOCODER_URL", "http://nominatim.internal:8080")
    monkeypatch.setenv("GEORANK_GEOCODER_USER_AGENT", "crm-ranker/2.0")
    monkeypatch.setenv("GEORANK_GEOCODER_ENABLED", "true")
    settings = load_settings(tmp_path / "absent.toml")
    assert settings.geocoder.base_url == "http://nominatim.internal:8080"
    assert settings.geocoder.user_agent == "crm-ranker/2.0"
    assert settings.geocoder.enabled is True


def test_inverted_region_rejected(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[region]\nmin_lat = 32.0\nmax_lat = 22.0\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)


def test_unparsable_toml_rejected(tmp_path):
    path = tmp_path / "settings.toml"
    path.write_text("[region\n", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_settings(path)
