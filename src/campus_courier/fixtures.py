"""Demo mission generator for seeding a fresh registry.

Not part of the production contract. Output is fully determined by the
``random.Random`` passed in, so seeded runs reproduce exactly. Generated
missions respect the mission invariants: available missions have no
courier, and only completed missions carry a completion time.
"""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Optional

from campus_courier.models.mission import Location, Mission, MissionStatus, MissionType

CAMPUS_LOCATIONS: tuple[Location, ...] = (
    Location("King Saud University, Riyadh", 24.7136, 46.6753),
    Location("King Abdulaziz University, Jeddah", 21.4858, 39.1925),
    Location("King Fahd University, Dhahran", 26.3069, 50.1444),
    Location("Imam University, Riyadh", 24.8138, 46.6398),
    Location("Umm Al-Qura University, Makkah", 21.4225, 39.8262),
)

MISSION_TITLES: tuple[str, ...] = (
    "Deliver textbooks",
    "Collect graduation project",
    "Deliver a meal",
    "Collect official papers",
    "Deliver lab equipment",
    "Collect certificates",
    "Deliver study supplies",
)

_STATUSES = (
    MissionStatus.AVAILABLE,
    MissionStatus.ACCEPTED,
    MissionStatus.IN_PROGRESS,
    MissionStatus.COMPLETED,
)


def generate_missions(
    rng: random.Random,
    count: int = 25,
    now: Optional[datetime] = None,
) -> list[Mission]:
    """Generate ``count`` demo missions created within the last week."""
    if now is None:
        now = datetime.now(timezone.utc)
    missions: list[Mission] = []
    for i in range(count):
        status = rng.choice(_STATUSES)
        created = now - timedelta(days=rng.randrange(7), minutes=rng.randrange(24 * 60))
        destination = rng.choice(CAMPUS_LOCATIONS) if rng.random() > 0.3 else None
        courier_id = None
        if status != MissionStatus.AVAILABLE:
            courier_id = f"courier_{rng.randint(1, 5)}"
        scheduled = None
        if status == MissionStatus.AVAILABLE and rng.random() > 0.5:
            scheduled = now + timedelta(days=rng.randrange(10), hours=rng.randrange(24))

        missions.append(Mission(
            mission_id=f"mission_fixture_{i:03d}",
            title=rng.choice(MISSION_TITLES),
            description="Campus delivery or pickup for university students",
            mission_type=rng.choice(list(MissionType)),
            location=rng.choice(CAMPUS_LOCATIONS),
            destination=destination,
            reward=Decimal(15 + rng.randrange(35)),
            estimated_duration_minutes=30 + rng.randrange(90),
            requester_id=f"user_{rng.randint(1, 10)}",
            status=status,
            courier_id=courier_id,
            created_utc=created,
            updated_utc=created,
            completed_utc=now if status == MissionStatus.COMPLETED else None,
            scheduled_for_utc=scheduled,
        ))
    return missions
