"""Configuration loading for georank.

Settings live in `config/settings.toml`. The geocoder endpoint and user agent
can be overridden through `GEORANK_GEOCODER_URL` / `GEORANK_GEOCODER_USER_AGENT`
(and toggled with `GEORANK_GEOCODER_ENABLED`), which is how deployments point
at a self-hosted Nominatim without editing the file.
"""
from __future__ import annotations

import os
import tomllib
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, ValidationError, model_validator

from georank.errors import ConfigError
from georank.geo.bounds import RegionBounds
from georank.geo.coordinates import Coordinate, CoordinateSource
from georank.geocode.nominatim import DEFAULT_BASE_URL


class AppSettings(BaseModel):
    data_root: Path = Path("data")
    metrics_dir: Path = Path("data/metrics")


class RegionSettings(BaseModel):
    """Operating region box plus the anchor used for procedural defaults."""

    min_lat: float = Field(default=22.0, ge=-90, le=90)
    max_lat: float = Field(default=32.0, ge=-90, le=90)
    min_lon: float = Field(default=25.0, ge=-180, le=180)
    max_lon: float = Field(default=37.0, ge=-180, le=180)
    anchor_lat: float = Field(default=30.0444, ge=-90, le=90)
    anchor_lon: float = Field(default=31.2357, ge=-180, le=180)

    @model_validator(mode="after")
    def _check_box(self) -> "RegionSettings":
        if self.min_lat > self.max_lat or self.min_lon > self.max_lon:
            raise ValueError("region minimums must not exceed maximums")
        return self

    def bounds(self) -> RegionBounds:
        return RegionBounds(min_lat=self.min_lat, max_lat=self.max_lat, min_lon=self.min_lon, max_lon=self.max_lon)

    def anchor(self) -> Coordinate:
        return Coordinate(latitude=self.anchor_lat, longitude=self.anchor_lon, source=CoordinateSource.CITY_DEFAULT)


class GeocoderSettings(BaseModel):
    enabled: bool = False
    base_url: str = DEFAULT_BASE_URL
    user_agent: str = "georank/0.1"
    country_codes: List[str] = Field(default_factory=lambda: ["eg"])
    timeout_seconds: float = Field(default=5.0, gt=0)
    min_interval_seconds: float = Field(default=1.0, ge=0)


class CacheSettings(BaseModel):
    dir: Path = Path("data/cache")
    ttl_days: float = Field(default=30, gt=0)

    @property
    def ttl(self) -> timedelta:
        return timedelta(days=self.ttl_days)


class LocationSettings(BaseModel):
    timeout_seconds: float = Field(default=5.0, gt=0)


class RankingSettings(BaseModel):
    concurrency: int = Field(default=8, gt=0)
    named_locations_path: Optional[Path] = None


class Settings(BaseModel):
    app: AppSettings = Field(default_factory=AppSettings)
    region: RegionSettings = Field(default_factory=RegionSettings)
    geocoder: GeocoderSettings = Field(default_factory=GeocoderSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    location: LocationSettings = Field(default_factory=LocationSettings)
    ranking: RankingSettings = Field(default_factory=RankingSettings)


def _apply_env_overrides(raw: Dict[str, Any]) -> Dict[str, Any]:
    geocoder = dict(raw.get("geocoder", {}))
    if url := os.getenv("GEORANK_GEOCODER_URL"):
        geocoder["base_url"] = url
    if agent := os.getenv("GEORANK_GEOCODER_USER_AGENT"):
        geocoder["user_agent"] = agent
    if enabled := os.getenv("GEORANK_GEOCODER_ENABLED"):
        geocoder["enabled"] = enabled.strip().lower() in {"1", "true", "yes", "y"}
    if geocoder:
        raw = {**raw, "geocoder": geocoder}
    return raw


def load_settings(path: Path) -> Settings:
    """Read and validate the TOML configuration file; a missing file means defaults."""
    raw: Dict[str, Any] = {}
    if path.exists():
        try:
            with path.open("rb") as handle:
                raw = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Cannot parse {path}: {exc}") from exc
    try:
        return Settings.model_validate(_apply_env_overrides(raw))
    except ValidationError as exc:
        raise ConfigError(f"Invalid settings in {path}: {exc}") from exc
