"""Grid generation utilities for geographic sector coverage.

Tiles a bounding box (or a circle around a point) into fixed-size sectors
whose span follows the search zoom level.
"""

from __future__ import annotations

import logging
import math
from typing import List, Tuple

from shapely.geometry import Point
from shapely.prepared import prep

from geotap.models import Sector

logger = logging.getLogger(__name__)

# Type alias for bounding boxes: (min_lat, min_lng, max_lat, max_lng)
BBox = Tuple[float, float, float, float]

EARTH_RADIUS_KM = 6371.0
KM_PER_DEGREE = 111.0


def span_degrees(zoom: int) -> float:
    """Angular span of one sector at ``zoom``.

    A map tile covers ``360 / 2**zoom`` degrees; a sector is the 60px slice of
    a 256px tile.
    """
    tile_span = 360.0 / math.pow(2, zoom)
    return tile_span * 60.0 / 256.0


def generate_grid(min_lat: float, min_lng: float, max_lat: float, max_lng: float, zoom: int) -> List[Sector]:
    """Create a grid of sectors covering the given bounding box.

    Rows advance south to north, columns west to east, each sector centered
    mid-cell. The longitude step widens by ``1/cos(lat)`` per row to offset
    Mercator distortion.
    """
    span = span_degrees(zoom)

    sectors: List[Sector] = []
    row = 0
    lat = min_lat + span / 2
    while lat < max_lat:
        lng_span = span / math.cos(math.radians(lat))
        col = 0
        lng = min_lng + lng_span / 2
        while lng < max_lng:
            sectors.append(Sector(lat=lat, lng=lng, span=span, row=row, col=col))
            col += 1
            lng += lng_span
        row += 1
        lat += span

    return sectors


def generate_radius_grid(center_lat: float, center_lng: float, radius_km: float, zoom: int) -> List[Sector]:
    """Create the sectors whose centers lie within ``radius_km`` of a point.

    Generates a grid over the enclosing equirectangular box, then prunes by
    great-circle distance.
    """
    lat_deg = radius_km / KM_PER_DEGREE
    lng_deg = radius_km / (KM_PER_DEGREE * math.cos(math.radians(center_lat)))

    candidates = generate_grid(
        center_lat - lat_deg,
        center_lng - lng_deg,
        center_lat + lat_deg,
        center_lng + lng_deg,
        zoom,
    )
    sectors = [s for s in candidates if haversine_km(center_lat, center_lng, s.lat, s.lng) <= radius_km]
    logger.debug("Radius grid kept %d of %d sectors (r=%.1fkm, zoom=%d)", len(sectors), len(candidates), radius_km, zoom)
    return sectors


def haversine_km(lat1: float, lng1: float, lat2: float, lng2: float) -> float:
    d_lat = math.radians(lat2 - lat1)
    d_lng = math.radians(lng2 - lng1)
    a = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(lat1)) * math.cos(math.radians(lat2)) * math.sin(d_lng / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))


def filter_to_land(sectors: List[Sector], polygon) -> List[Sector]:
    """Keep sectors whose center falls inside ``polygon`` (shapely, lng/lat order)."""
    prepared = prep(polygon)
    return [s for s in sectors if prepared.contains(Point(s.lng, s.lat))]
