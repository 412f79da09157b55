"""Mission state machine: enforces valid lifecycle transitions.

Mission lifecycle:
    AVAILABLE → ACCEPTED → IN_PROGRESS → COMPLETED
    Any non-terminal state → CANCELLED

State semantics:
- AVAILABLE: posted by a requester, visible to couriers, no courier.
- ACCEPTED: exactly one courier holds the mission.
- IN_PROGRESS: the holding courier has started the work.
- COMPLETED: terminal, work delivered, completion time stamped.
- CANCELLED: terminal, withdrawn by the requester or the courier.

Fail-closed: any transition not listed is rejected. There are no
implicit transitions.
"""

from __future__ import annotations

from campus_courier.models.mission import Mission, MissionStatus


# Valid transitions: {from_state: {allowed_to_states}}
_TRANSITIONS: dict[MissionStatus, set[MissionStatus]] = {
    MissionStatus.AVAILABLE: {MissionStatus.ACCEPTED, MissionStatus.CANCELLED},
    MissionStatus.ACCEPTED: {MissionStatus.IN_PROGRESS, MissionStatus.CANCELLED},
    MissionStatus.IN_PROGRESS: {MissionStatus.COMPLETED, MissionStatus.CANCELLED},
    # Terminal states have no outgoing transitions
    MissionStatus.COMPLETED: set(),
    MissionStatus.CANCELLED: set(),
}


class MissionStateMachine:
    """Validates mission status transitions.

    Pure computation: validates transitions only. Side effects
    (timestamps, courier assignment, audit events) belong to the registry.
    """

    @staticmethod
    def validate_transition(
        mission: Mission,
        target: MissionStatus,
    ) -> list[str]:
        """Check if a transition is valid. Returns errors (empty = OK)."""
        current = mission.status
        allowed = _TRANSITIONS.get(current, set())

        if target not in allowed:
            allowed_str = ", ".join(s.value for s in sorted(allowed, key=lambda x: x.value))
            return [
                f"Invalid mission transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def is_terminal(status: MissionStatus) -> bool:
        """Check if a status is terminal (no further transitions)."""
        return status in (MissionStatus.COMPLETED, MissionStatus.CANCELLED)

    @staticmethod
    def valid_transitions(status: MissionStatus) -> set[MissionStatus]:
        """Return the set of valid target states from the given state."""
        return set(_TRANSITIONS.get(status, set()))
