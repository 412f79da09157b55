"""Proximity and schedule filters over missions.

Pure functions, no registry state.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Iterable

from campus_courier.models.mission import Location, Mission

EARTH_RADIUS_KM = 6371.0088


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Great-circle distance between two points, in kilometres."""
    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(a)))


def within_radius(location: Location, latitude: float, longitude: float, radius_km: float) -> bool:
    return haversine_km(location.latitude, location.longitude, latitude, longitude) <= radius_km


def within_box(location: Location, latitude: float, longitude: float, delta_deg: float) -> bool:
    """Axis-aligned lat/lon delta test; an approximation, not a distance."""
    return (
        abs(location.latitude - latitude) < delta_deg
        and abs(location.longitude - longitude) < delta_deg
    )


def upcoming(missions: Iterable[Mission], now: datetime, window_days: int) -> list[Mission]:
    """Scheduled missions starting within [now, now + window_days], soonest first.

    Missions with no schedule never qualify.
    """
    horizon = now + timedelta(days=window_days)
    scheduled = [
        m for m in missions
        if m.scheduled_for_utc is not None and now <= m.scheduled_for_utc <= horizon
    ]
    return sorted(scheduled, key=lambda m: m.scheduled_for_utc)
