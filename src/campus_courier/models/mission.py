"""Mission models: a unit of paid peer work.

Mission lifecycle:
    AVAILABLE → ACCEPTED → IN_PROGRESS → COMPLETED
    AVAILABLE / ACCEPTED / IN_PROGRESS → CANCELLED

Invariants enforced by the registry:
- courier_id is unset while AVAILABLE and fixed once ACCEPTED.
- completed_utc is set iff status is COMPLETED.
- version increases by one on every mutation.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional


class MissionType(str, enum.Enum):
    DELIVERY = "delivery"
    PICKUP = "pickup"
    ERRAND = "errand"


class MissionStatus(str, enum.Enum):
    """Lifecycle state of a mission."""
    AVAILABLE = "available"
    ACCEPTED = "accepted"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Location:
    address: str
    latitude: float
    longitude: float


@dataclass
class Mission:
    mission_id: str
    title: str
    description: str
    mission_type: MissionType
    location: Location
    reward: Decimal
    estimated_duration_minutes: int
    requester_id: str
    status: MissionStatus = MissionStatus.AVAILABLE
    destination: Optional[Location] = None
    courier_id: Optional[str] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None
    completed_utc: Optional[datetime] = None
    # Optional schedule; only scheduled missions appear in "upcoming".
    scheduled_for_utc: Optional[datetime] = None
    version: int = 0


@dataclass(frozen=True)
class MissionStats:
    """Per-courier aggregate over missions the courier holds."""
    total: int
    completed: int
    in_progress: int
    total_earnings: Decimal
