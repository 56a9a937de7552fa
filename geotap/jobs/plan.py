"""Turn a SearchParams target into the sector list a crawl will walk."""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional

from geotap.core.config import ConfigError
from geotap.geo.boundaries import BoundaryStore, NotFoundError, get_boundary_store, resolve_bounds
from geotap.geo.grid import filter_to_land, generate_grid, generate_radius_grid
from geotap.models import SearchParams, Sector

logger = logging.getLogger(__name__)

COORD_MODE_ZOOM = 13
COUNTRY_MODE_ZOOM = 10


def resolve_zoom(params: SearchParams) -> SearchParams:
    """Fill in the mode's default zoom when the caller left it at 0."""
    if params.zoom:
        return params
    zoom = COORD_MODE_ZOOM if params.is_coord_mode else COUNTRY_MODE_ZOOM
    return dataclasses.replace(params, zoom=zoom)


@dataclasses.dataclass(frozen=True)
class SessionPlan:
    params: SearchParams
    sectors: List[Sector]
    polygon: Optional[object] = None  # shapely MultiPolygon in country mode

    @property
    def total_jobs(self) -> int:
        return len(self.sectors) * len(self.params.queries)


def plan_sectors(params: SearchParams, boundaries: Optional[BoundaryStore] = None) -> SessionPlan:
    """Build the sectors for ``params`` and the polygon to filter results by.

    The returned params carry the trimmed queries and the resolved zoom.

    Raises ``ConfigError`` before any network activity when the target is
    incomplete, and when the plan ends up with nothing to crawl. An unknown
    country raises ``NotFoundError``, also before any region is geocoded.
    The polygon is None in coordinate mode.
    """
    queries = [q.strip() for q in params.queries if q and q.strip()]
    if not queries:
        raise ConfigError("at least one search query is required")
    if not params.is_coord_mode and not params.country:
        raise ConfigError("either a country or lat/lng coordinates are required")

    params = resolve_zoom(dataclasses.replace(params, queries=tuple(queries)))

    if params.is_coord_mode:
        sectors = generate_radius_grid(params.lat, params.lng, params.radius_km, params.zoom)
        logger.info(
            "Coordinate mode (%.4f, %.4f, r=%.1fkm): %d sectors within radius",
            params.lat,
            params.lng,
            params.radius_km,
            len(sectors),
        )
        polygon = None
    else:
        store = boundaries if boundaries is not None else get_boundary_store()
        if store.validate_country(params.country) is None:
            raise NotFoundError(f"country {params.country!r} not found in boundaries")
        min_lat, min_lng, max_lat, max_lng = resolve_bounds(params.country, params.region, boundaries=store)
        logger.info("Bounds for %s: [%.2f, %.2f] - [%.2f, %.2f]", params.region or params.country, min_lat, min_lng, max_lat, max_lng)

        all_sectors = generate_grid(min_lat, min_lng, max_lat, max_lng, params.zoom)
        polygon = store.country_polygon(params.country)
        sectors = filter_to_land(all_sectors, polygon)
        if all_sectors:
            ocean_pct = 100.0 * (len(all_sectors) - len(sectors)) / len(all_sectors)
            logger.info("GeoFilter: %d land sectors of %d (%.1f%% ocean removed)", len(sectors), len(all_sectors), ocean_pct)

    if not sectors:
        raise ConfigError("no sectors to process")
    return SessionPlan(params=params, sectors=sectors, polygon=polygon)
