"""Client utilities for the OSM Nominatim geocoder."""

import logging
from typing import Tuple

import requests

from geotap.core.config import get_settings

logger = logging.getLogger(__name__)
_SESSION = requests.Session()


class GeocodingError(RuntimeError):
    """Raised when the geocoder cannot be reached or answers with an error."""


class RegionNotFound(LookupError):
    """Raised when the geocoder has no match for the requested region."""


def geocode_region(region: str, country: str = "") -> Tuple[float, float, float, float]:
    """Return ``(min_lat, min_lng, max_lat, max_lng)`` for a region.

    Makes exactly one request; callers decide whether a failure is worth
    retrying.
    """
    settings = get_settings()
    query = f"{region}, {country}" if country else region
    params = {"q": query, "format": "json", "limit": "1"}
    headers = {"User-Agent": settings.geocoder_user_agent}

    try:
        response = _SESSION.get(settings.geocoder_url, params=params, headers=headers, timeout=settings.geocoder_timeout)
    except requests.RequestException as exc:
        raise GeocodingError(f"geocoding request failed: {exc}") from exc

    if response.status_code != 200:
        logger.error("geocode_region failed: status=%s query=%s", response.status_code, query)
        raise GeocodingError(f"geocoding returned status {response.status_code}")

    try:
        results = response.json()
    except ValueError as exc:
        raise GeocodingError(f"decoding geocoding response: {exc}") from exc

    if not results:
        raise RegionNotFound(f"region {query!r} not found")

    # Nominatim orders the box as [minLat, maxLat, minLng, maxLng], as strings.
    bbox = results[0].get("boundingbox") or []
    if len(bbox) < 4:
        raise GeocodingError("invalid bounding box from geocoder")
    try:
        min_lat, max_lat, min_lng, max_lng = (float(value) for value in bbox[:4])
    except (TypeError, ValueError) as exc:
        raise GeocodingError(f"invalid bounding box from geocoder: {bbox!r}") from exc

    logger.info("Geocoded %s to %s", query, results[0].get("display_name", ""))
    return min_lat, min_lng, max_lat, max_lng
