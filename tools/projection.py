"""
tools/projection.py — WGS84 → Israel Transverse Mercator

The map expects ITM (EPSG:2039) meters while Google returns WGS84
longitude/latitude. Pure transverse Mercator on the GRS80 ellipsoid,
no datum shift; accurate to a few meters, plenty for centering a map.
"""

from __future__ import annotations

import math
from typing import Optional

_SEMI_MAJOR = 6378137.0
_SEMI_MINOR = 6356752.31414
_CENTRAL_MERIDIAN = math.radians(35.20451694444444)
_LAT_OF_ORIGIN = math.radians(31.73439361111111)
_SCALE = 1.0000067
_FALSE_EASTING = 219529.584
_FALSE_NORTHING = 626907.39

_FLATTENING = (_SEMI_MAJOR - _SEMI_MINOR) / _SEMI_MAJOR
_E2 = 2 * _FLATTENING - _FLATTENING ** 2
_EP2 = _E2 / (1 - _E2)


def _meridional_arc(lat: float) -> float:
    e2, e4, e6 = _E2, _E2 ** 2, _E2 ** 3
    return _SEMI_MAJOR * (
        (1 - e2 / 4 - 3 * e4 / 64 - 5 * e6 / 256) * lat
        - (3 * e2 / 8 + 3 * e4 / 32 + 45 * e6 / 1024) * math.sin(2 * lat)
        + (15 * e4 / 256 + 45 * e6 / 1024) * math.sin(4 * lat)
        - (35 * e6 / 3072) * math.sin(6 * lat)
    )


_ARC_AT_ORIGIN = _meridional_arc(_LAT_OF_ORIGIN)


def wgs84_to_itm(lon: float, lat: float) -> Optional[dict[str, float]]:
    """Convert degrees to {"x": easting, "y": northing}; None for non-finite input."""
    if not (isinstance(lon, (int, float)) and isinstance(lat, (int, float))):
        return None
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return None

    phi = math.radians(lat)
    lam = math.radians(lon)
    sin_phi, cos_phi, tan_phi = math.sin(phi), math.cos(phi), math.tan(phi)

    n = _SEMI_MAJOR / math.sqrt(1 - _E2 * sin_phi ** 2)
    t = tan_phi ** 2
    c = _EP2 * cos_phi ** 2
    a = (lam - _CENTRAL_MERIDIAN) * cos_phi
    m = _meridional_arc(phi)

    easting = _FALSE_EASTING + _SCALE * n * (
        a
        + (1 - t + c) * a ** 3 / 6
        + (5 - 18 * t + t ** 2 + 72 * c - 58 * _EP2) * a ** 5 / 120
    )
    northing = _FALSE_NORTHING + _SCALE * (
        m - _ARC_AT_ORIGIN
        + n * tan_phi * (
            a ** 2 / 2
            + (5 - t + 9 * c + 4 * c ** 2) * a ** 4 / 24
            + (61 - 58 * t + t ** 2 + 600 * c - 330 * _EP2) * a ** 6 / 720
        )
    )
    return {"x": easting, "y": northing}
