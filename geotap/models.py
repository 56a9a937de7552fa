"""Core data models shared by the grid, client, parser and crawl layers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Tuple


@dataclass(frozen=True, slots=True)
class Sector:
    """One grid cell to search, centered on (lat, lng) and covering `span` degrees."""

    lat: float
    lng: float
    span: float
    row: int
    col: int


@dataclass(frozen=True)
class SearchParams:
    """Configuration snapshot for one crawl session.

    Two targeting modes exist: country/region (``country`` plus optional
    ``region``) and coordinate+radius (``lat``/``lng``/``radius_km``). A zero
    zoom means "pick a default for the mode", see ``geotap.jobs.plan``.
    """

    queries: Tuple[str, ...] = ()
    country: str = ""
    region: str = ""
    lat: float = 0.0
    lng: float = 0.0
    radius_km: float = 10.0
    zoom: int = 0
    concurrency: int = 10
    max_pages: int = 1
    min_rating: float = 0.0  # 0 = no filter
    max_rating: float = 0.0  # 0 = no filter
    lang: str = "en"
    proxy_url: str = ""
    debug: bool = False
    db_path: str = ""

    @property
    def is_coord_mode(self) -> bool:
        return self.lat != 0 or self.lng != 0


@dataclass(slots=True)
class Business:
    """A business record recovered from one map-search result entry."""

    name: str
    query: str = ""
    rating: float = 0.0
    review_count: int = 0
    category: str = ""
    categories: str = ""
    address: str = ""
    price_range: str = ""
    lat: float = 0.0
    lng: float = 0.0
    cid: str = ""
    phone: str = ""
    website: str = ""
    google_url: str = ""
    description: str = ""
    place_id: str = ""
    open_hours: str = ""
    thumbnail: str = ""
    city: str = ""
    postal_code: str = ""
    country_code: str = ""
