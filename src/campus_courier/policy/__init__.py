"""Policy parameters for the campus courier core."""

from campus_courier.policy.resolver import PolicyResolver

__all__ = ["PolicyResolver"]
