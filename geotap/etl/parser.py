"""Utilities for turning ``tbm=map`` response bodies into Business records.

The payload is an undocumented tree of nested arrays addressed purely by
index. Every lookup goes through ``safe_get`` so that a missing or mistyped
path element drops one field instead of the whole record.
"""

import json
import logging
import math
from decimal import Decimal
from typing import Any, List, Optional, Tuple, Union

from geotap.models import Business
from geotap.vendors.pb import PAGE_SIZE

logger = logging.getLogger(__name__)

PLACE_URL_PREFIX = "https://www.google.com/maps/place/?q=place_id:"

# root[0][1] holds the result list; entry 0 is search metadata.
_RESULTS_PATH = (0, 1)
_ENTRY_INDEX = 14


def parse_map_response(body: Union[bytes, str], query: str) -> Tuple[List[Business], bool]:
    """Extract businesses from a map search body.

    Returns ``(businesses, has_more)``. ``has_more`` only means the page came
    back full, so one more page is worth trying.
    """
    raw = _decode(body)
    if raw is None:
        return [], False

    items = safe_list(safe_get(raw, *_RESULTS_PATH))
    if not items:
        return [], False

    businesses: List[Business] = []
    for item in items[1:]:
        entry = safe_list(safe_get(item, _ENTRY_INDEX))
        if not entry:
            continue
        business = _to_business(entry, query)
        if business is not None:
            businesses.append(business)

    return businesses, len(businesses) >= PAGE_SIZE


def _decode(body: Union[bytes, str]) -> Optional[list]:
    if isinstance(body, bytes):
        body = body.decode("utf-8", errors="replace")
    # Anti-XSSI prefix line, e.g. ")]}'"
    newline = body.find("\n")
    if 0 <= newline < 10:
        body = body[newline + 1:]
    try:
        raw = json.loads(body, parse_float=Decimal)
    except ValueError:
        logger.debug("Map response is not JSON (%d chars)", len(body))
        return None
    return raw if isinstance(raw, list) else None


def _to_business(entry: list, query: str) -> Optional[Business]:
    name = safe_str(safe_get(entry, 11))
    if not name:
        return None

    categories = [s for s in (safe_str(c) for c in safe_list(safe_get(entry, 13))) if s]

    hours = safe_get(entry, 203, 0)
    if hours is None:
        hours = safe_get(entry, 34, 1)
    open_hours = json.dumps(hours, separators=(",", ":"), default=_json_default) if hours is not None else ""

    place_id = safe_str(safe_get(entry, 78))
    return Business(
        name=name,
        query=query,
        rating=safe_float(safe_get(entry, 4, 7)),
        review_count=safe_int(safe_get(entry, 4, 8)),
        category=safe_str(safe_get(entry, 13, 0)),
        categories=", ".join(categories),
        address=safe_str(safe_get(entry, 18)),
        price_range=safe_str(safe_get(entry, 4, 2)),
        lat=safe_float(safe_get(entry, 9, 2)),
        lng=safe_float(safe_get(entry, 9, 3)),
        cid=safe_str(safe_get(entry, 10)),
        website=safe_str(safe_get(entry, 7, 0)),
        phone=safe_str(safe_get(entry, 178, 0, 0)),
        google_url=build_place_url(place_id),
        description=safe_str(safe_get(entry, 32, 1, 1)),
        place_id=place_id,
        open_hours=open_hours,
        thumbnail=safe_str(safe_get(entry, 157)),
        city=safe_str(safe_get(entry, 183, 1, 3)),
        postal_code=safe_str(safe_get(entry, 183, 1, 4)),
        country_code=safe_str(safe_get(entry, 183, 1, 6)),
    )


def build_place_url(place_id: str) -> str:
    if not place_id:
        return ""
    return PLACE_URL_PREFIX + place_id


def safe_get(data: Any, *path: int) -> Any:
    """Follow ``path`` through nested lists; None if any step is missing."""
    current = data
    for index in path:
        if not isinstance(current, list) or index < 0 or index >= len(current):
            return None
        current = current[index]
    return current


def safe_list(data: Any) -> list:
    return data if isinstance(data, list) else []


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, Decimal)) and not isinstance(value, bool)


def safe_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if _is_number(value):
        number = Decimal(repr(value)) if isinstance(value, float) else value
        if isinstance(number, Decimal):
            if not number.is_finite():
                return ""
            if number == number.to_integral_value():
                return str(int(number))
            return format(number.normalize(), "f")
        return str(number)
    return ""


def safe_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    if _is_number(value):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 0.0


def safe_int(value: Any) -> int:
    number = safe_float(value)
    if not math.isfinite(number):
        return 0
    return int(number)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return int(value) if value == value.to_integral_value() else float(value)
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")
