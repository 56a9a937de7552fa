"""Builder for the positional ``pb`` parameter of ``tbm=map`` searches.

The grammar is fixed by the backend: every ``!<field><type><value>`` token and
its position must match exactly, including the opaque constant flags.
"""

import math

VIEWPORT_WIDTH = 1024
VIEWPORT_HEIGHT = 768
PAGE_SIZE = 20
EARTH_RADIUS_M = 6371010.0

_PB_TEMPLATE = (
    "!4m12!1m3!1d{alt:.4f}!2d{lng:.7f}!3d{lat:.7f}!2m3!1f0!2f0!3f0!3m2!1i{width}!2i{height}!4f13.1"
    "!7i{page_size}!8i{offset}!10b1"
    "!12m22!1m3!18b1!30b1!34e1!2m3!5m1!6e2!20e3!4b0!10b1!12b1!13b1!16b1!17m1!3e1!20m3!5e2!6b1!14b1!46m1!1b0!96b1"
    "!19m4!2m3!1i360!2i120!4i8"
)


def altitude(lat: float, zoom: int) -> float:
    """Camera altitude in meters for the ``!1d`` field.

    Ground distance spanned by the viewport height at ``zoom``:
    ``2*pi*R*height*cos(lat) / (512 * 2**zoom)``.
    """
    return (2 * math.pi * EARTH_RADIUS_M * VIEWPORT_HEIGHT * math.cos(math.radians(lat))) / (512 * math.pow(2, zoom))


def build_pb(lat: float, lng: float, zoom: int, offset: int) -> str:
    return _PB_TEMPLATE.format(
        alt=altitude(lat, zoom),
        lng=lng,
        lat=lat,
        width=VIEWPORT_WIDTH,
        height=VIEWPORT_HEIGHT,
        page_size=PAGE_SIZE,
        offset=offset,
    )
