"""Audit trail for the campus courier core."""

from campus_courier.persistence.event_log import EventKind, EventLog, EventRecord

__all__ = ["EventKind", "EventLog", "EventRecord"]
