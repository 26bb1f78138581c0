from __future__ import annotations

import math

KAABA_LATITUDE = 21.4225
KAABA_LONGITUDE = 39.8262


def qibla_direction(latitude: float, longitude: float) -> float:
    """Initial great-circle bearing from the given point to the Kaaba, in degrees from north."""
    d_lon = math.radians(KAABA_LONGITUDE - longitude)
    lat1 = math.radians(latitude)
    lat2 = math.radians(KAABA_LATITUDE)
    y = math.sin(d_lon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(d_lon)
    return (math.degrees(math.atan2(y, x)) + 360) % 360
