import math

import pytest

from geotap.vendors import pb


def test_altitude_matches_viewport_formula():
    expected = 2 * math.pi * 6371010.0 * 768 / (512 * 2 ** 13)
    assert pb.altitude(0.0, 13) == pytest.approx(expected)
    assert pb.altitude(60.0, 13) == pytest.approx(expected * 0.5)


def test_altitude_halves_per_zoom_level():
    assert pb.altitude(40.0, 14) == pytest.approx(pb.altitude(40.0, 13) / 2)


def test_build_pb_layout():
    value = pb.build_pb(40.4168, -3.7038, 13, 20)

    alt = pb.altitude(40.4168, 13)
    assert value.startswith(f"!4m12!1m3!1d{alt:.4f}!2d-3.7038000!3d40.4168000!2m3!1f0!2f0!3f0")
    assert "!3m2!1i1024!2i768!4f13.1" in value
    assert "!7i20!8i20!10b1" in value
    assert value.endswith("!19m4!2m3!1i360!2i120!4i8")


def test_build_pb_offsets():
    assert "!8i0!" in pb.build_pb(1.0, 1.0, 12, 0)
    assert "!8i60!" in pb.build_pb(1.0, 1.0, 12, 60)
