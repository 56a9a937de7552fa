"""Country boundary lookups backed by a Natural Earth admin-0 GeoJSON.

The dataset is parsed once into a ``BoundaryStore`` that indexes every
feature under its English, admin and Spanish names plus ISO-2/ISO-3 codes,
all lowercased. The store is never mutated after construction.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Dict, List, Optional, Union

from shapely.errors import ShapelyError
from shapely.geometry import MultiPolygon, Polygon, shape

from geotap.core.config import get_settings
from geotap.geo.grid import BBox
from geotap.vendors import nominatim

logger = logging.getLogger(__name__)

_KEY_PROPERTIES = ("NAME", "ADMIN", "NAME_ES", "ISO_A2", "ISO_A3")


class NotFoundError(LookupError):
    """Raised when a country, region or the boundary dataset itself cannot be found."""


@dataclass(frozen=True)
class CountryEntry:
    name: str
    name_es: str = ""
    iso2: str = ""
    iso3: str = ""


@dataclass(frozen=True)
class CountryFeature:
    name: str
    properties: dict
    geometry: Union[Polygon, MultiPolygon]


class BoundaryStore:
    """Read-only index of country features keyed by every name and code variant."""

    def __init__(self, features: List[CountryFeature]):
        index: Dict[str, CountryFeature] = {}
        for feature in features:
            for prop in _KEY_PROPERTIES:
                value = feature.properties.get(prop)
                if isinstance(value, str) and value:
                    index[value.lower()] = feature
        self._index = index
        self._features = tuple(features)

    def __len__(self) -> int:
        return len(self._features)

    def _lookup(self, country: str) -> Optional[CountryFeature]:
        return self._index.get(country.strip().lower())

    def validate_country(self, text: str) -> Optional[str]:
        """Return the canonical country name for ``text``, or None if unknown."""
        feature = self._lookup(text)
        return feature.name if feature else None

    def country_polygon(self, country: str) -> MultiPolygon:
        feature = self._lookup(country)
        if feature is None:
            raise NotFoundError(f"country {country!r} not found in boundaries")
        geometry = feature.geometry
        if isinstance(geometry, Polygon):
            return MultiPolygon([geometry])
        return geometry

    def country_bounds(self, country: str) -> BBox:
        feature = self._lookup(country)
        if feature is None:
            raise NotFoundError(f"country {country!r} not found")
        min_lng, min_lat, max_lng, max_lat = feature.geometry.bounds
        return min_lat, min_lng, max_lat, max_lng

    def list_countries(self) -> List[str]:
        return sorted({feature.name for feature in self._features if feature.name})

    def list_country_entries(self) -> List[CountryEntry]:
        entries: Dict[str, CountryEntry] = {}
        for feature in self._features:
            if not feature.name or feature.name in entries:
                continue
            props = feature.properties
            entries[feature.name] = CountryEntry(
                name=feature.name,
                name_es=props.get("NAME_ES") or "",
                iso2=props.get("ISO_A2") or "",
                iso3=props.get("ISO_A3") or "",
            )
        return sorted(entries.values(), key=lambda entry: entry.name)


def load_boundaries(path: Optional[Path] = None) -> BoundaryStore:
    """Parse a GeoJSON FeatureCollection of countries into a ``BoundaryStore``."""
    path = Path(path) if path is not None else get_settings().boundaries_path
    try:
        with path.open("r", encoding="utf-8") as fh:
            collection = json.load(fh)
    except (OSError, ValueError) as exc:
        raise NotFoundError(f"reading boundary dataset {path}: {exc}") from exc

    if not isinstance(collection, dict) or not isinstance(collection.get("features"), list):
        raise NotFoundError(f"parsing boundary dataset {path}: not a FeatureCollection")

    features: List[CountryFeature] = []
    for raw in collection["features"]:
        if not isinstance(raw, dict):
            continue
        props = raw.get("properties") or {}
        try:
            geometry = shape(raw["geometry"])
        except (KeyError, TypeError, ValueError, AttributeError, ShapelyError) as exc:
            logger.debug("Skipping feature %s without usable geometry: %s", props.get("NAME"), exc)
            continue
        if not isinstance(geometry, (Polygon, MultiPolygon)):
            logger.debug("Skipping feature %s with %s geometry", props.get("NAME"), geometry.geom_type)
            continue
        features.append(CountryFeature(name=props.get("NAME") or "", properties=props, geometry=geometry))

    logger.info("Loaded %d country boundaries from %s", len(features), path)
    return BoundaryStore(features)


@lru_cache(maxsize=1)
def get_boundary_store() -> BoundaryStore:
    """Build the process-wide store on first use; ``cache_clear()`` tears it down."""
    return load_boundaries()


def resolve_bounds(country: str, region: str = "", boundaries: Optional[BoundaryStore] = None) -> BBox:
    """Bounding box for a country, or for a region within it via the geocoder.

    The geocoder call is made once and never retried here.
    """
    if region:
        try:
            return nominatim.geocode_region(region, country)
        except nominatim.RegionNotFound as exc:
            raise NotFoundError(str(exc)) from exc

    store = boundaries if boundaries is not None else get_boundary_store()
    return store.country_bounds(country)
