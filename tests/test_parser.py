import json

from geotap.etl import parser


def test_parse_extracts_positional_fields(make_entry, make_payload):
    body = make_payload([make_entry()])

    businesses, has_more = parser.parse_map_response(body, "cafe")

    assert has_more is False
    assert len(businesses) == 1
    b = businesses[0]
    assert b.name == "Cafe Central"
    assert b.query == "cafe"
    assert b.rating == 4.5
    assert b.review_count == 120
    assert b.category == "Cafe"
    assert b.categories == "Cafe, Bakery"
    assert b.address == "Calle Mayor 1, Madrid"
    assert b.price_range == "$$"
    assert b.lat == 40.4168
    assert b.lng == -3.7038
    assert b.cid == "1234567890"
    assert b.website == "https://cafecentral.example"
    assert b.phone == "+34 910 000 000"
    assert b.description == "Neighbourhood coffee house"
    assert b.place_id == "ChIJ-test"
    assert b.google_url == "https://www.google.com/maps/place/?q=place_id:ChIJ-test"
    assert b.thumbnail == "https://thumb.example/cafe.jpg"
    assert b.city == "Madrid"
    assert b.postal_code == "28013"
    assert b.country_code == "ES"
    assert json.loads(b.open_hours) == [["Monday", "8AM-8PM"]]


def test_missing_rating_and_reviews_default_to_zero(make_entry, make_payload):
    entry = make_entry()
    entry[4] = None

    businesses, _ = parser.parse_map_response(make_payload([entry]), "cafe")

    assert businesses[0].rating == 0.0
    assert businesses[0].review_count == 0
    assert businesses[0].price_range == ""


def test_full_page_signals_more_results(make_entry, make_payload):
    full = [make_entry(name=f"Place {i}", cid=str(i)) for i in range(20)]
    short = full[:19]

    businesses, has_more = parser.parse_map_response(make_payload(full), "q")
    assert len(businesses) == 20
    assert has_more is True

    businesses, has_more = parser.parse_map_response(make_payload(short), "q")
    assert len(businesses) == 19
    assert has_more is False


def test_body_without_prefix_line_is_accepted(make_entry, make_payload):
    businesses, _ = parser.parse_map_response(make_payload([make_entry()], prefix=False), "cafe")
    assert [b.name for b in businesses] == ["Cafe Central"]


def test_entries_without_name_are_skipped(make_entry, make_payload):
    nameless = make_entry(name="")
    businesses, _ = parser.parse_map_response(make_payload([nameless, make_entry(name="Kept")]), "q")
    assert [b.name for b in businesses] == ["Kept"]


def test_malformed_bodies_yield_nothing():
    assert parser.parse_map_response(b"<html>blocked</html>", "q") == ([], False)
    assert parser.parse_map_response(b")]}'\n{\"not\": \"a list\"}", "q") == ([], False)
    assert parser.parse_map_response(b")]}'\n[[null, \"oops\"]]", "q") == ([], False)
    assert parser.parse_map_response(b"", "q") == ([], False)


def test_wrongly_typed_fields_are_dropped_individually(make_entry, make_payload):
    entry = make_entry()
    entry[9] = "not-a-list"
    entry[13] = {"unexpected": True}
    entry[178] = [["+1 555"], "extra"]

    businesses, _ = parser.parse_map_response(make_payload([entry]), "q")

    b = businesses[0]
    assert b.lat == 0.0 and b.lng == 0.0
    assert b.category == "" and b.categories == ""
    assert b.phone == "+1 555"


def test_hours_fall_back_to_legacy_slot(make_entry, make_payload):
    entry = make_entry()
    entry[203] = None
    entry[34] = [None, [["Tuesday", [1, 2.5]]]]

    businesses, _ = parser.parse_map_response(make_payload([entry]), "q")

    assert businesses[0].open_hours == '[["Tuesday",[1,2.5]]]'


def test_numeric_identifiers_render_without_decimals(make_entry, make_payload):
    entry = make_entry(cid=987654321012)
    businesses, _ = parser.parse_map_response(make_payload([entry]), "q")
    assert businesses[0].cid == "987654321012"


def test_safe_helpers():
    data = [1, [2, [3]]]
    assert parser.safe_get(data, 1, 1, 0) == 3
    assert parser.safe_get(data, 5) is None
    assert parser.safe_get(data, 0, 0) is None
    assert parser.safe_get(None, 0) is None
    assert parser.safe_str(None) == ""
    assert parser.safe_str(True) == ""
    assert parser.safe_str(12.0) == "12"
    assert parser.safe_str(1.25) == "1.25"
    assert parser.safe_float("3.5") == 3.5
    assert parser.safe_float("nope") == 0.0
    assert parser.safe_float(False) == 0.0
    assert parser.safe_int(float("inf")) == 0
    assert parser.safe_list("x") == []


def test_build_place_url():
    assert parser.build_place_url("") == ""
    assert parser.build_place_url("abc").endswith("place_id:abc")
