import json
import sys
from pathlib import Path

import pytest

# Ensure the `geotap` package is importable when running pytest from a checkout.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from geotap.core import config  # noqa: E402


@pytest.fixture(autouse=True)
def clear_settings_cache():
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()


def _build_entry(
    name="Cafe Central",
    rating=4.5,
    reviews=120,
    lat=40.4168,
    lng=-3.7038,
    cid="1234567890",
    place_id="ChIJ-test",
    categories=("Cafe", "Bakery"),
    address="Calle Mayor 1, Madrid",
    website="https://cafecentral.example",
    phone="+34 910 000 000",
):
    entry = [None] * 204
    stats = [None] * 9
    stats[2] = "$$"
    stats[7] = rating
    stats[8] = reviews
    entry[4] = stats
    entry[7] = [website]
    entry[9] = [None, None, lat, lng]
    entry[10] = cid
    entry[11] = name
    entry[13] = list(categories)
    entry[18] = address
    entry[32] = [None, [None, "Neighbourhood coffee house"]]
    entry[78] = place_id
    entry[157] = "https://thumb.example/cafe.jpg"
    entry[178] = [[phone]]
    entry[183] = [None, [None, None, None, "Madrid", "28013", None, "ES"]]
    entry[203] = [[["Monday", "8AM-8PM"]]]
    return entry


def _build_payload(entries, prefix=True):
    items = [["search metadata"]]
    for entry in entries:
        item = [None] * 14 + [entry]
        items.append(item)
    root = [[None, items]]
    body = json.dumps(root)
    if prefix:
        body = ")]}'\n" + body
    return body.encode("utf-8")


@pytest.fixture
def make_entry():
    return _build_entry


@pytest.fixture
def make_payload():
    return _build_payload


def _square(min_lng, min_lat, max_lng, max_lat):
    return [[
        [min_lng, min_lat],
        [max_lng, min_lat],
        [max_lng, max_lat],
        [min_lng, max_lat],
        [min_lng, min_lat],
    ]]


@pytest.fixture
def boundaries_file(tmp_path):
    """Two synthetic countries: a square 'Testland' and a two-part 'Islandia'."""
    collection = {
        "type": "FeatureCollection",
        "features": [
            {
                "type": "Feature",
                "properties": {
                    "NAME": "Testland",
                    "ADMIN": "Republic of Testland",
                    "NAME_ES": "Tierra de Prueba",
                    "ISO_A2": "TL",
                    "ISO_A3": "TST",
                },
                "geometry": {"type": "Polygon", "coordinates": _square(0.0, 0.0, 1.0, 1.0)},
            },
            {
                "type": "Feature",
                "properties": {
                    "NAME": "Islandia",
                    "ADMIN": "Islandia",
                    "NAME_ES": "Islandia",
                    "ISO_A2": "IA",
                    "ISO_A3": "ISA",
                },
                "geometry": {
                    "type": "MultiPolygon",
                    "coordinates": [_square(10.0, 10.0, 10.5, 10.5), _square(11.0, 11.0, 11.5, 11.5)],
                },
            },
            {
                "type": "Feature",
                "properties": {"NAME": "Pointland"},
                "geometry": {"type": "Point", "coordinates": [5.0, 5.0]},
            },
        ],
    }
    path = tmp_path / "countries.geojson"
    path.write_text(json.dumps(collection), encoding="utf-8")
    return path
