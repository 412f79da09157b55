"""Mission registry: owns missions and their lifecycle.

Every mutating operation checks its preconditions and applies the change
while holding the registry lock, so two concurrent ``accept`` calls on
the same mission cannot both observe AVAILABLE. Callers that hold an
older copy may pass ``expected_version``; a stale version fails with
CONFLICT and changes nothing.

Check order for transitions: existence, version, authorization, state.
Returned missions are copies; the store is never exposed.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Optional
from uuid import uuid4

from campus_courier.missions import geo
from campus_courier.missions.state_machine import MissionStateMachine
from campus_courier.models.mission import (
    Location,
    Mission,
    MissionStats,
    MissionStatus,
    MissionType,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult

logger = logging.getLogger(__name__)

# Message keys per target state: (unauthorized, invalid state, success)
_TRANSITION_MESSAGES: dict[MissionStatus, tuple[str, str, str]] = {
    MissionStatus.ACCEPTED: ("", "mission.not_available", "mission.accepted"),
    MissionStatus.IN_PROGRESS: (
        "mission.start_unauthorized", "mission.cannot_start", "mission.started",
    ),
    MissionStatus.COMPLETED: (
        "mission.complete_unauthorized", "mission.not_in_progress", "mission.completed",
    ),
    MissionStatus.CANCELLED: (
        "mission.cancel_unauthorized", "mission.cannot_cancel", "mission.cancelled",
    ),
}


class MissionRegistry:
    """In-memory mission store with an explicit state machine.

    Usage:
        registry = MissionRegistry(resolver)
        result = registry.create("req_1", "Deliver books", ..., reward=Decimal("20"))
        mission_id = result.data.mission_id
        registry.accept(mission_id, "courier_1")
        registry.start(mission_id, "courier_1")
        registry.complete(mission_id, "courier_1")
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._messages = messages or MessageCatalog()
        self._event_log = event_log
        self._missions: dict[str, Mission] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create(
        self,
        requester_id: str,
        title: str,
        description: str,
        mission_type: MissionType,
        location: Location,
        reward: Decimal,
        estimated_duration_minutes: int,
        destination: Optional[Location] = None,
        scheduled_for: Optional[datetime] = None,
        mission_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Create a new mission in AVAILABLE state."""
        reward = Decimal(str(reward))
        try:
            mission_type = MissionType(mission_type)
        except ValueError:
            logger.warning("Rejected mission from %s: unknown type %r", requester_id, mission_type)
            return self._fail(ErrorKind.VALIDATION_ERROR, "mission.invalid_type")
        if (
            not requester_id
            or not title.strip()
            or reward <= 0
            or estimated_duration_minutes <= 0
        ):
            logger.warning("Rejected mission from %s: invalid details", requester_id)
            return self._fail(ErrorKind.VALIDATION_ERROR, "mission.invalid")

        if now is None:
            now = datetime.now(timezone.utc)
        if mission_id is None:
            mission_id = f"mission_{uuid4().hex[:12]}"

        mission = Mission(
            mission_id=mission_id,
            title=title,
            description=description,
            mission_type=mission_type,
            location=location,
            destination=destination,
            reward=reward,
            estimated_duration_minutes=estimated_duration_minutes,
            requester_id=requester_id,
            status=MissionStatus.AVAILABLE,
            created_utc=now,
            updated_utc=now,
            scheduled_for_utc=scheduled_for,
        )
        with self._lock:
            if mission_id in self._missions:
                raise ValueError(f"Mission ID already exists: {mission_id}")
            self._missions[mission_id] = mission
            self._record(EventKind.MISSION_CREATED, requester_id, {
                "mission_id": mission_id,
                "reward": str(reward),
                "status": mission.status.value,
            }, now)
            snapshot = copy.deepcopy(mission)

        logger.info("Mission %s created by %s", mission_id, requester_id)
        return ServiceResult.ok(snapshot, self._messages.get("mission.created"))

    def seed(self, missions: Iterable[Mission]) -> int:
        """Load fixture missions as-is, bypassing the state machine."""
        count = 0
        with self._lock:
            for mission in missions:
                self._missions[mission.mission_id] = copy.deepcopy(mission)
                count += 1
        logger.debug("Seeded %d fixture missions", count)
        return count

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def accept(
        self,
        mission_id: str,
        courier_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """AVAILABLE → ACCEPTED; the courier becomes the fixed holder."""
        return self._transition(
            mission_id, courier_id, MissionStatus.ACCEPTED,
            authorized=None, expected_version=expected_version, now=now,
        )

    def start(
        self,
        mission_id: str,
        courier_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """ACCEPTED → IN_PROGRESS, by the holding courier only."""
        return self._transition(
            mission_id, courier_id, MissionStatus.IN_PROGRESS,
            authorized=lambda m: m.courier_id == courier_id,
            expected_version=expected_version, now=now,
        )

    def complete(
        self,
        mission_id: str,
        courier_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """IN_PROGRESS → COMPLETED, by the holding courier only."""
        return self._transition(
            mission_id, courier_id, MissionStatus.COMPLETED,
            authorized=lambda m: m.courier_id == courier_id,
            expected_version=expected_version, now=now,
        )

    def cancel(
        self,
        mission_id: str,
        user_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Any non-terminal state → CANCELLED, by requester or courier."""
        return self._transition(
            mission_id, user_id, MissionStatus.CANCELLED,
            authorized=lambda m: user_id in (m.courier_id, m.requester_id),
            expected_version=expected_version, now=now,
        )

    def _transition(
        self,
        mission_id: str,
        actor_id: str,
        target: MissionStatus,
        authorized: Optional[Callable[[Mission], bool]],
        expected_version: Optional[int],
        now: Optional[datetime],
    ) -> ServiceResult:
        unauthorized_key, invalid_key, success_key = _TRANSITION_MESSAGES[target]
        with self._lock:
            mission = self._missions.get(mission_id)
            if mission is None:
                return self._fail(ErrorKind.NOT_FOUND, "mission.not_found")

            if expected_version is not None and expected_version != mission.version:
                logger.warning(
                    "Stale version for mission %s: expected %d, current %d",
                    mission_id, expected_version, mission.version,
                )
                return self._fail(
                    ErrorKind.CONFLICT, "mission.conflict", copy.deepcopy(mission),
                )

            if authorized is not None and not authorized(mission):
                logger.warning(
                    "%s not authorized to move mission %s to %s",
                    actor_id, mission_id, target.value,
                )
                return self._fail(
                    ErrorKind.UNAUTHORIZED, unauthorized_key, copy.deepcopy(mission),
                )

            errors = MissionStateMachine.validate_transition(mission, target)
            if errors:
                logger.warning("Mission %s: %s", mission_id, errors[0])
                return self._fail(
                    ErrorKind.INVALID_STATE_TRANSITION, invalid_key,
                    copy.deepcopy(mission),
                )

            if now is None:
                now = datetime.now(timezone.utc)
            previous = mission.status
            mission.status = target
            if target == MissionStatus.ACCEPTED:
                mission.courier_id = actor_id
            elif target == MissionStatus.COMPLETED:
                mission.completed_utc = now
            mission.updated_utc = now
            mission.version += 1

            self._record(EventKind.MISSION_TRANSITION, actor_id, {
                "mission_id": mission_id,
                "from": previous.value,
                "to": target.value,
                "version": mission.version,
            }, now)
            snapshot = copy.deepcopy(mission)

        logger.info(
            "Mission %s: %s → %s by %s", mission_id, previous.value, target.value, actor_id,
        )
        return ServiceResult.ok(snapshot, self._messages.get(success_key))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, mission_id: str) -> ServiceResult:
        with self._lock:
            mission = self._missions.get(mission_id)
            if mission is None:
                return self._fail(ErrorKind.NOT_FOUND, "mission.not_found")
            return ServiceResult.ok(copy.deepcopy(mission), self._messages.get("mission.fetched"))

    def available(self) -> ServiceResult:
        return self.by_status(MissionStatus.AVAILABLE)

    def by_status(self, status: MissionStatus) -> ServiceResult:
        return self._query(lambda m: m.status == status)

    def for_participant(self, user_id: str) -> ServiceResult:
        """Missions where the user is the courier or the requester."""
        return self._query(lambda m: user_id in (m.courier_id, m.requester_id))

    def near(
        self,
        latitude: float,
        longitude: float,
        radius_km: Optional[float] = None,
    ) -> ServiceResult:
        """Available missions whose origin is near the given point.

        In ``haversine`` mode the radius is a great-circle distance; in
        ``bounding_box`` mode the configured degree delta applies and the
        radius is ignored.
        """
        if radius_km is None:
            radius_km = self._resolver.default_radius_km()
        if self._resolver.proximity_mode() == "bounding_box":
            delta = self._resolver.bounding_box_delta()

            def close(m: Mission) -> bool:
                return geo.within_box(m.location, latitude, longitude, delta)
        else:
            def close(m: Mission) -> bool:
                return geo.within_radius(m.location, latitude, longitude, radius_km)

        return self._query(lambda m: m.status == MissionStatus.AVAILABLE and close(m))

    def upcoming(self, now: Optional[datetime] = None) -> ServiceResult:
        """Scheduled missions in the forward window, soonest first."""
        if now is None:
            now = datetime.now(timezone.utc)
        with self._lock:
            found = geo.upcoming(
                self._missions.values(), now, self._resolver.upcoming_window_days(),
            )
            data = [copy.deepcopy(m) for m in found]
        return ServiceResult.ok(data, self._messages.get("mission.fetched"))

    def stats(self, courier_id: str) -> ServiceResult:
        with self._lock:
            held = [m for m in self._missions.values() if m.courier_id == courier_id]
            completed = [m for m in held if m.status == MissionStatus.COMPLETED]
            stats = MissionStats(
                total=len(held),
                completed=len(completed),
                in_progress=sum(1 for m in held if m.status == MissionStatus.IN_PROGRESS),
                total_earnings=sum((m.reward for m in completed), Decimal("0")),
            )
        return ServiceResult.ok(stats, self._messages.get("mission.stats"))

    def count_by_status(self) -> dict[str, int]:
        counts: dict[str, int] = {}
        with self._lock:
            for m in self._missions.values():
                counts[m.status.value] = counts.get(m.status.value, 0) + 1
        return counts

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _query(self, predicate: Callable[[Mission], bool]) -> ServiceResult:
        with self._lock:
            data = [copy.deepcopy(m) for m in self._missions.values() if predicate(m)]
        return ServiceResult.ok(data, self._messages.get("mission.fetched"))

    def _fail(self, kind: ErrorKind, key: str, data: object = None) -> ServiceResult:
        return ServiceResult.fail(kind, self._messages.get(key), data)

    def _record(self, kind: EventKind, actor_id: str, payload: dict, now: datetime) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now)
