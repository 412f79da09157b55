"""Peer rating models.

At most one Rating exists per (from_user_id, to_user_id, mission_id,
direction). Scores are whole stars, 1 to 5.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Optional


class RatingDirection(str, enum.Enum):
    STUDENT_TO_COURIER = "student_to_courier"
    COURIER_TO_STUDENT = "courier_to_student"


class RatingRole(str, enum.Enum):
    """Which side of a rating a user is on, for listing queries."""
    RECEIVED = "received"
    GIVEN = "given"


@dataclass
class Rating:
    rating_id: str
    from_user_id: str
    to_user_id: str
    mission_id: str
    score: int
    direction: RatingDirection
    comment: Optional[str] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None

    def key(self) -> tuple[str, str, str, RatingDirection]:
        return (self.from_user_id, self.to_user_id, self.mission_id, self.direction)


@dataclass(frozen=True)
class CreateRatingRequest:
    to_user_id: str
    mission_id: str
    score: int
    direction: RatingDirection
    comment: Optional[str] = None


@dataclass(frozen=True)
class RatingStats:
    average: Decimal
    total: int
    distribution: dict[int, int] = field(
        default_factory=lambda: {1: 0, 2: 0, 3: 0, 4: 0, 5: 0}
    )
    recent: list[Rating] = field(default_factory=list)


@dataclass(frozen=True)
class RankedUser:
    user_id: str
    average: Decimal
    total: int
