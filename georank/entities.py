"""Locatable CRM records and loaders for JSON/CSV exports."""
from __future__ import annotations

import csv
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Union

import orjson
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator


class Area(BaseModel):
    """Area/region reference as joined onto a property row."""

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: Optional[Union[int, str]] = None
    name: Optional[str] = Field(default=None, alias="area_name")
    latitude: Any = None
    longitude: Any = None

    @field_validator("name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class LocatableEntity(BaseModel):
    """Any record carrying partial location signals.

    Unknown CRM columns (price, bedrooms, ...) are preserved as extra fields so
    ranked output can be rendered without a second lookup.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True, frozen=True)

    id: Optional[Union[int, str]] = None
    title: Optional[str] = None
    latitude: Any = None
    longitude: Any = None
    area: Optional[Area] = Field(default=None, alias="areas")
    address: Optional[str] = None
    area_name: Optional[str] = None

    @field_validator("address", "area_name", mode="before")
    @classmethod
    def _blank_to_none(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    def area_label(self) -> str:
        """Best available area/city name, or an empty string."""
        if self.area is not None and self.area.name:
            return self.area.name
        return self.area_name or ""

    def to_record(self) -> Dict[str, object]:
        return self.model_dump(by_alias=True, exclude_none=True)


def _prepare_csv_row(row: Dict[str, str]) -> Dict[str, object]:
    mapped: Dict[str, object] = {}
    for key, value in row.items():
        if key is None:
            continue
        cleaned = value.strip() if isinstance(value, str) else value
        mapped[key.strip()] = cleaned if cleaned != "" else None
    area_lat = mapped.pop("area_latitude", None)
    area_lon = mapped.pop("area_longitude", None)
    area_name = mapped.get("area_name")
    if area_lat is not None or area_lon is not None:
        mapped["areas"] = {"area_name": area_name, "latitude": area_lat, "longitude": area_lon}
    return mapped


def parse_entities(records: Iterable[Dict[str, object]]) -> List[LocatableEntity]:
    """Validate raw records, failing loudly with the offending row index."""
    entities: List[LocatableEntity] = []
    for idx, record in enumerate(records):
        try:
            entities.append(LocatableEntity.model_validate(record))
        except ValidationError as exc:
            raise ValueError(f"Invalid entity row {idx}: {exc}") from exc
    return entities


def load_entities(path: Path) -> List[LocatableEntity]:
    """Load entities from a JSON array (or `{"properties": [...]}`) or a CSV export."""
    if path.suffix.lower() == ".csv":
        with path.open("r", encoding="utf-8", newline="") as handle:
            reader = csv.DictReader(handle)
            return parse_entities(_prepare_csv_row(row) for row in reader if row)
    try:
        payload = orjson.loads(path.read_bytes())
    except orjson.JSONDecodeError as exc:
        raise ValueError(f"Cannot parse entities file {path}: {exc}") from exc
    if isinstance(payload, dict):
        payload = payload.get("properties", [])
    if not isinstance(payload, list):
        raise ValueError(f"Entities file {path} must hold a list of records")
    return parse_entities(payload)
