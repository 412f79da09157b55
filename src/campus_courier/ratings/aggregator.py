"""Rating aggregator: peer ratings and per-user statistics.

Uniqueness: at most one rating per (rater, ratee, mission, direction).
The check is a scan under the aggregator lock, performed in the same
critical section as the insert, so concurrent duplicates cannot both
land. ``can_rate`` exposes the same check as a pure predicate for the
caller to consult before offering a rating control.

Averages are Decimals rounded half-up to one decimal place.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional
from uuid import uuid4

from campus_courier.models.rating import (
    CreateRatingRequest,
    RankedUser,
    Rating,
    RatingDirection,
    RatingRole,
    RatingStats,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult

logger = logging.getLogger(__name__)

_ONE_DECIMAL = Decimal("0.1")


def _valid_score(score: object) -> bool:
    return isinstance(score, int) and not isinstance(score, bool) and 1 <= score <= 5


def average(scores: Iterable[int]) -> Decimal:
    """Mean of the scores rounded half-up to one decimal; 0 when empty."""
    values = list(scores)
    if not values:
        return Decimal("0")
    mean = Decimal(sum(values)) / Decimal(len(values))
    return mean.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP)


class RatingAggregator:
    """In-memory store of peer ratings."""

    def __init__(
        self,
        resolver: PolicyResolver,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._messages = messages or MessageCatalog()
        self._event_log = event_log
        # Insertion-ordered; ties on timestamp break by insertion order.
        self._ratings: dict[str, Rating] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        from_user_id: str,
        request: CreateRatingRequest,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        if not _valid_score(request.score):
            return self._fail(ErrorKind.VALIDATION_ERROR, "rating.invalid_score")
        if from_user_id == request.to_user_id:
            return self._fail(ErrorKind.VALIDATION_ERROR, "rating.self")

        try:
            direction = RatingDirection(request.direction)
        except ValueError:
            logger.warning(
                "Rating by %s with unknown direction %r", from_user_id, request.direction,
            )
            return self._fail(ErrorKind.VALIDATION_ERROR, "rating.invalid_direction")
        with self._lock:
            if self._find(from_user_id, request.to_user_id, request.mission_id, direction):
                logger.warning(
                    "Duplicate rating by %s for %s on mission %s (%s)",
                    from_user_id, request.to_user_id, request.mission_id, direction.value,
                )
                return self._fail(ErrorKind.DUPLICATE_RATING, "rating.duplicate")

            if now is None:
                now = datetime.now(timezone.utc)
            rating = Rating(
                rating_id=f"rating_{uuid4().hex[:12]}",
                from_user_id=from_user_id,
                to_user_id=request.to_user_id,
                mission_id=request.mission_id,
                score=request.score,
                direction=direction,
                comment=request.comment,
                created_utc=now,
                updated_utc=now,
            )
            self._ratings[rating.rating_id] = rating
            self._record(EventKind.RATING_CREATED, from_user_id, {
                "rating_id": rating.rating_id,
                "to_user_id": rating.to_user_id,
                "mission_id": rating.mission_id,
                "score": rating.score,
                "direction": direction.value,
            }, now)
            snapshot = copy.deepcopy(rating)

        logger.info(
            "%s rated %s %d/5 on mission %s",
            from_user_id, snapshot.to_user_id, snapshot.score, snapshot.mission_id,
        )
        return ServiceResult.ok(snapshot, self._messages.get("rating.created"))

    def update(
        self,
        rating_id: str,
        score: Optional[int] = None,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Change a rating's score and/or comment."""
        if score is not None and not _valid_score(score):
            return self._fail(ErrorKind.VALIDATION_ERROR, "rating.invalid_score")
        with self._lock:
            rating = self._ratings.get(rating_id)
            if rating is None:
                return self._fail(ErrorKind.NOT_FOUND, "rating.not_found")
            if now is None:
                now = datetime.now(timezone.utc)
            if score is not None:
                rating.score = score
            if comment is not None:
                rating.comment = comment
            rating.updated_utc = now
            self._record(EventKind.RATING_UPDATED, rating.from_user_id, {
                "rating_id": rating_id,
                "score": rating.score,
            }, now)
            snapshot = copy.deepcopy(rating)
        return ServiceResult.ok(snapshot, self._messages.get("rating.updated"))

    def delete(self, rating_id: str, now: Optional[datetime] = None) -> ServiceResult:
        with self._lock:
            rating = self._ratings.pop(rating_id, None)
            if rating is None:
                return self._fail(ErrorKind.NOT_FOUND, "rating.not_found")
            self._record(EventKind.RATING_DELETED, rating.from_user_id, {
                "rating_id": rating_id,
            }, now or datetime.now(timezone.utc))
        logger.info("Rating %s deleted", rating_id)
        return ServiceResult.ok(copy.deepcopy(rating), self._messages.get("rating.deleted"))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def can_rate(
        self,
        from_user_id: str,
        to_user_id: str,
        mission_id: str,
        direction: RatingDirection,
    ) -> bool:
        try:
            direction = RatingDirection(direction)
        except ValueError:
            return False
        with self._lock:
            return self._find(from_user_id, to_user_id, mission_id, direction) is None

    def user_ratings(
        self, user_id: str, role: Optional[RatingRole] = None,
    ) -> ServiceResult:
        """Ratings received, given, or both (default), newest first."""
        if role == RatingRole.RECEIVED:
            def match(r: Rating) -> bool:
                return r.to_user_id == user_id
        elif role == RatingRole.GIVEN:
            def match(r: Rating) -> bool:
                return r.from_user_id == user_id
        else:
            def match(r: Rating) -> bool:
                return user_id in (r.to_user_id, r.from_user_id)
        with self._lock:
            data = self._newest_first(r for r in self._ratings.values() if match(r))
        return ServiceResult.ok(data, self._messages.get("rating.fetched"))

    def mission_ratings(self, mission_id: str) -> ServiceResult:
        with self._lock:
            data = self._newest_first(
                r for r in self._ratings.values() if r.mission_id == mission_id
            )
        return ServiceResult.ok(data, self._messages.get("rating.fetched"))

    def stats(self, user_id: str) -> ServiceResult:
        """Average, count, 1–5 histogram and most recent received ratings."""
        with self._lock:
            received = [r for r in self._ratings.values() if r.to_user_id == user_id]
            distribution = {star: 0 for star in range(1, 6)}
            for r in received:
                distribution[r.score] += 1
            stats = RatingStats(
                average=average(r.score for r in received),
                total=len(received),
                distribution=distribution,
                recent=self._newest_first(received)[:self._resolver.recent_ratings_count()],
            )
        return ServiceResult.ok(stats, self._messages.get("rating.stats"))

    def top_rated(self, limit: int = 10) -> ServiceResult:
        """Users ranked by average received rating, among those with enough ratings."""
        minimum = self._resolver.top_rated_min_ratings()
        with self._lock:
            by_user: dict[str, list[int]] = {}
            for r in self._ratings.values():
                by_user.setdefault(r.to_user_id, []).append(r.score)
        ranked = [
            RankedUser(user_id=uid, average=average(scores), total=len(scores))
            for uid, scores in by_user.items()
            if len(scores) >= minimum
        ]
        ranked.sort(key=lambda u: u.average, reverse=True)
        return ServiceResult.ok(ranked[:max(limit, 0)], self._messages.get("rating.fetched"))

    def average_for(self, user_id: str) -> Decimal:
        with self._lock:
            return average(r.score for r in self._ratings.values() if r.to_user_id == user_id)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _find(
        self,
        from_user_id: str,
        to_user_id: str,
        mission_id: str,
        direction: RatingDirection,
    ) -> Optional[Rating]:
        key = (from_user_id, to_user_id, mission_id, direction)
        return next((r for r in self._ratings.values() if r.key() == key), None)

    def _newest_first(self, ratings: Iterable[Rating]) -> list[Rating]:
        order = {rid: i for i, rid in enumerate(self._ratings)}
        ordered = sorted(
            ratings,
            key=lambda r: (r.created_utc, order.get(r.rating_id, -1)),
            reverse=True,
        )
        return [copy.deepcopy(r) for r in ordered]

    def _fail(self, kind: ErrorKind, key: str, data: object = None) -> ServiceResult:
        return ServiceResult.fail(kind, self._messages.get(key), data)

    def _record(self, kind: EventKind, actor_id: str, payload: dict, now: datetime) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now)
