"""Process-level configuration helpers.

Everything tunable at the process level comes from the environment (optionally
seeded from a ``.env`` file). Session-level choices such as queries, zoom and
concurrency live in ``SearchParams`` instead.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

DEFAULT_BOUNDARIES_PATH = Path(__file__).resolve().parents[1] / "geodata" / "ne_110m_countries.geojson"


class ConfigError(RuntimeError):
    """Raised when configuration is missing or malformed."""


@dataclass(frozen=True)
class Settings:
    boundaries_path: Path = DEFAULT_BOUNDARIES_PATH
    request_timeout: float = 15.0
    geocoder_url: str = "https://nominatim.openstreetmap.org/search"
    geocoder_user_agent: str = "geotap/0.1 (geographic data scanner)"
    geocoder_timeout: float = 10.0
    default_lang: str = "en"
    default_concurrency: int = 10
    default_max_pages: int = 1


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be numeric, got {raw!r}") from exc


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ConfigError(f"{name} must be an integer, got {raw!r}") from exc


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings from environment variables with sensible defaults."""
    load_dotenv()

    boundaries_raw = os.getenv("GEOTAP_BOUNDARIES_PATH")
    boundaries_path = Path(boundaries_raw).expanduser() if boundaries_raw else DEFAULT_BOUNDARIES_PATH
    if not boundaries_path.exists():
        logger.warning(
            "Boundary dataset %s not found; country mode will fail until GEOTAP_BOUNDARIES_PATH points "
            "at a Natural Earth admin-0 GeoJSON.",
            boundaries_path,
        )

    return Settings(
        boundaries_path=boundaries_path,
        request_timeout=_env_float("GEOTAP_REQUEST_TIMEOUT", 15.0),
        geocoder_url=os.getenv("GEOTAP_GEOCODER_URL") or "https://nominatim.openstreetmap.org/search",
        geocoder_user_agent=os.getenv("GEOTAP_GEOCODER_USER_AGENT") or "geotap/0.1 (geographic data scanner)",
        geocoder_timeout=_env_float("GEOTAP_GEOCODER_TIMEOUT", 10.0),
        default_lang=os.getenv("GEOTAP_LANG") or "en",
        default_concurrency=_env_int("GEOTAP_CONCURRENCY", 10),
        default_max_pages=_env_int("GEOTAP_MAX_PAGES", 1),
    )
