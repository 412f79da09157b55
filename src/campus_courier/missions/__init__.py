"""Courier missions: registry, state machine and proximity filters."""

from campus_courier.missions.registry import MissionRegistry
from campus_courier.missions.state_machine import MissionStateMachine

__all__ = ["MissionRegistry", "MissionStateMachine"]
