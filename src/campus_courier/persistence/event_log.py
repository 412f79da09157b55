"""Append-only audit log: every successful mutation leaves a record.

Each state change in the core (mission transition, wallet credit or debit,
subscription change, rating, report, safety-score change) produces an
immutable event record appended here. The log is in-memory by default and
can mirror itself to a JSONL file; it is an audit trail, not a durable
store the registries reload from.
"""

from __future__ import annotations

import enum
import hashlib
import itertools
import json
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional


class EventKind(str, enum.Enum):
    """Classification of audit events."""
    MISSION_CREATED = "mission_created"
    MISSION_TRANSITION = "mission_transition"
    WALLET_CREATED = "wallet_created"
    EARNING_CREDITED = "earning_credited"
    WITHDRAWAL_REQUESTED = "withdrawal_requested"
    WITHDRAWAL_SETTLED = "withdrawal_settled"
    WITHDRAWAL_REJECTED = "withdrawal_rejected"
    SUBSCRIPTION_CREATED = "subscription_created"
    SUBSCRIPTION_ACTIVATED = "subscription_activated"
    SUBSCRIPTION_PAYMENT_FAILED = "subscription_payment_failed"
    SUBSCRIPTION_PAYMENT_REFUNDED = "subscription_payment_refunded"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"
    SUBSCRIPTION_AUTO_RENEW = "subscription_auto_renew"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    RATING_CREATED = "rating_created"
    RATING_UPDATED = "rating_updated"
    RATING_DELETED = "rating_deleted"
    REPORT_CREATED = "report_created"
    REPORT_STATUS_CHANGED = "report_status_changed"
    REPORT_DELETED = "report_deleted"
    SAFETY_SCORE_CHANGED = "safety_score_changed"


def _canonical_hash(
    event_id: str,
    event_kind: str,
    timestamp_utc: str,
    actor_id: str,
    payload: dict[str, Any],
) -> str:
    canonical = json.dumps(
        {
            "event_id": event_id,
            "event_kind": event_kind,
            "timestamp_utc": timestamp_utc,
            "actor_id": actor_id,
            "payload": payload,
        },
        sort_keys=True,
        ensure_ascii=False,
        default=str,
    ).encode("utf-8")
    return f"sha256:{hashlib.sha256(canonical).hexdigest()}"


@dataclass(frozen=True)
class EventRecord:
    """A single immutable audit event.

    The event_hash is computed at creation time over the canonical JSON
    form of the other fields.
    """
    event_id: str
    event_kind: EventKind
    timestamp_utc: str
    actor_id: str
    payload: dict[str, Any]
    event_hash: str

    @staticmethod
    def create(
        event_id: str,
        event_kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Create a new event record with computed hash."""
        ts = timestamp_utc or datetime.now(timezone.utc)
        ts_str = ts.strftime("%Y-%m-%dT%H:%M:%SZ")
        return EventRecord(
            event_id=event_id,
            event_kind=event_kind,
            timestamp_utc=ts_str,
            actor_id=actor_id,
            payload=payload,
            event_hash=_canonical_hash(
                event_id, event_kind.value, ts_str, actor_id, payload,
            ),
        )


class EventLog:
    """Append-only, thread-safe event log with optional JSONL mirror.

    Events can only be appended, never modified or deleted.
    """

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._events: list[EventRecord] = []
        self._event_ids: set[str] = set()
        self._storage_path = storage_path
        self._lock = threading.Lock()
        self._counter = itertools.count(1)

    def record(
        self,
        kind: EventKind,
        actor_id: str,
        payload: dict[str, Any],
        timestamp_utc: Optional[datetime] = None,
    ) -> EventRecord:
        """Build and append an event with the next sequential id."""
        with self._lock:
            event_id = f"evt_{next(self._counter):08d}"
            event = EventRecord.create(event_id, kind, actor_id, payload, timestamp_utc)
            self._append_locked(event)
        return event

    def append(self, event: EventRecord) -> None:
        """Append an event to the log.

        Raises ValueError if event_id is a duplicate (replay protection).
        """
        with self._lock:
            self._append_locked(event)

    def _append_locked(self, event: EventRecord) -> None:
        if event.event_id in self._event_ids:
            raise ValueError(f"Duplicate event ID: {event.event_id}")
        self._events.append(event)
        self._event_ids.add(event.event_id)
        if self._storage_path:
            self._append_to_file(event)

    def events(self, kind: Optional[EventKind] = None) -> list[EventRecord]:
        """Return events, optionally filtered by kind."""
        with self._lock:
            if kind is None:
                return list(self._events)
            return [e for e in self._events if e.event_kind == kind]

    @property
    def count(self) -> int:
        return len(self._events)

    @property
    def last_event(self) -> Optional[EventRecord]:
        return self._events[-1] if self._events else None

    def _append_to_file(self, event: EventRecord) -> None:
        record = {
            "event_id": event.event_id,
            "event_kind": event.event_kind.value,
            "timestamp_utc": event.timestamp_utc,
            "actor_id": event.actor_id,
            "payload": event.payload,
            "event_hash": event.event_hash,
        }
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record, sort_keys=True, ensure_ascii=False, default=str) + "\n")

    @staticmethod
    def verify_file(path: Path) -> int:
        """Re-hash every record in a JSONL mirror; return the record count.

        Fail-closed: raises ValueError on a tampered record or a
        duplicate event id.
        """
        seen: set[str] = set()
        count = 0
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                data = json.loads(line)
                event_id = data["event_id"]
                if event_id in seen:
                    raise ValueError(
                        f"Duplicate event ID (line {line_num}): {event_id}"
                    )
                expected = _canonical_hash(
                    event_id,
                    data["event_kind"],
                    data["timestamp_utc"],
                    data["actor_id"],
                    data["payload"],
                )
                if data["event_hash"] != expected:
                    raise ValueError(
                        f"Integrity check failed (line {line_num}): event {event_id} "
                        f"stored hash {data['event_hash']} != computed {expected}"
                    )
                seen.add(event_id)
                count += 1
        return count
