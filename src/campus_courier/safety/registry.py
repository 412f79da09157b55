"""Safety report registry: abuse/fraud reports and per-user safety scores.

Report creation has a side effect on a second aggregate: naming a user
costs that user trust. Both the report insert and the score change happen
under one lock, so no reader ever sees the report without the penalty.
Resolving a report against a user costs trust a second time, once per
report.

Priority is derived from the report type, never supplied by the caller.
Listings for triage sort by priority (urgent first), then newest first.
"""

from __future__ import annotations

import copy
import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, Optional
from uuid import uuid4

from campus_courier.models.safety import (
    PRIORITY_RANK,
    CreateReportRequest,
    Report,
    ReportPriority,
    ReportRole,
    ReportStats,
    ReportStatus,
    ReportType,
    SafetyEvent,
    TrustLevel,
    UserSafetyScore,
)
from campus_courier.persistence.event_log import EventKind, EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult
from campus_courier.safety.engine import SafetyScoreEngine

logger = logging.getLogger(__name__)

_CLOSED = (ReportStatus.RESOLVED, ReportStatus.DISMISSED)


class SafetyReportRegistry:
    """In-memory store of reports and the safety scores they drive."""

    def __init__(
        self,
        resolver: PolicyResolver,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
    ) -> None:
        self._resolver = resolver
        self._engine = SafetyScoreEngine(resolver)
        self._messages = messages or MessageCatalog()
        self._event_log = event_log
        self._reports: dict[str, Report] = {}
        self._scores: dict[str, UserSafetyScore] = {}
        self._lock = threading.RLock()

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    def create(
        self,
        reporter_id: str,
        request: CreateReportRequest,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """File a report; a named user is penalised in the same step."""
        try:
            report_type = ReportType(request.report_type)
        except ValueError:
            logger.warning("Report by %s with unknown type %r", reporter_id, request.report_type)
            return self._fail(ErrorKind.VALIDATION_ERROR, "report.invalid_type")
        if (
            report_type != ReportType.OTHER
            and not request.reported_user_id
            and not request.reported_mission_id
        ):
            return self._fail(ErrorKind.VALIDATION_ERROR, "report.no_target")
        if request.reported_user_id and request.reported_user_id == reporter_id:
            return self._fail(ErrorKind.VALIDATION_ERROR, "report.self")

        if now is None:
            now = datetime.now(timezone.utc)
        report = Report(
            report_id=f"report_{uuid4().hex[:12]}",
            reporter_id=reporter_id,
            report_type=report_type,
            category=request.category,
            description=request.description,
            priority=ReportPriority(self._resolver.priority_for(report_type.value)),
            status=ReportStatus.PENDING,
            reported_user_id=request.reported_user_id,
            reported_mission_id=request.reported_mission_id,
            evidence=request.evidence,
            created_utc=now,
            updated_utc=now,
        )
        with self._lock:
            self._reports[report.report_id] = report
            self._record(EventKind.REPORT_CREATED, reporter_id, {
                "report_id": report.report_id,
                "type": report_type.value,
                "priority": report.priority.value,
                "reported_user_id": report.reported_user_id,
                "reported_mission_id": report.reported_mission_id,
            }, now)
            if report.reported_user_id:
                self._apply(report.reported_user_id, SafetyEvent.REPORT_RECEIVED, now)
            snapshot = copy.deepcopy(report)

        logger.info(
            "Report %s (%s, %s) filed by %s",
            snapshot.report_id, report_type.value, snapshot.priority.value, reporter_id,
        )
        return ServiceResult.ok(snapshot, self._messages.get("report.created"))

    def update_status(
        self,
        report_id: str,
        status: ReportStatus,
        admin_id: Optional[str] = None,
        admin_notes: Optional[str] = None,
        resolution: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Move a report to ``status``; resolution stamps who and when."""
        try:
            status = ReportStatus(status)
        except ValueError:
            logger.warning("Report %s: unknown status %r", report_id, status)
            return self._fail(ErrorKind.VALIDATION_ERROR, "report.invalid_status")
        with self._lock:
            report = self._reports.get(report_id)
            if report is None:
                return self._fail(ErrorKind.NOT_FOUND, "report.not_found")
            if now is None:
                now = datetime.now(timezone.utc)

            previous = report.status
            report.status = status
            report.updated_utc = now
            if admin_notes:
                report.admin_notes = admin_notes
            if resolution:
                report.resolution = resolution
            if status in _CLOSED:
                report.resolved_utc = now
                report.resolved_by = admin_id
            else:
                report.resolved_utc = None
                report.resolved_by = None
            self._record(EventKind.REPORT_STATUS_CHANGED, admin_id or "system", {
                "report_id": report_id,
                "from": previous.value,
                "to": status.value,
            }, now)
            if (
                status == ReportStatus.RESOLVED
                and report.reported_user_id
                and not report.penalty_applied
            ):
                report.penalty_applied = True
                self._apply(report.reported_user_id, SafetyEvent.REPORT_RESOLVED, now)
            snapshot = copy.deepcopy(report)

        logger.info("Report %s: %s → %s", report_id, previous.value, status.value)
        return ServiceResult.ok(snapshot, self._messages.get("report.updated"))

    def delete_report(self, report_id: str, now: Optional[datetime] = None) -> ServiceResult:
        """Remove a report. Score changes it already caused are kept."""
        with self._lock:
            report = self._reports.pop(report_id, None)
            if report is None:
                return self._fail(ErrorKind.NOT_FOUND, "report.not_found")
            self._record(EventKind.REPORT_DELETED, "system", {
                "report_id": report_id,
            }, now or datetime.now(timezone.utc))
        logger.info("Report %s deleted", report_id)
        return ServiceResult.ok(copy.deepcopy(report), self._messages.get("report.deleted"))

    def list_reports(self, status: Optional[ReportStatus] = None) -> ServiceResult:
        """Reports in triage order, optionally filtered by status."""
        with self._lock:
            found = [
                r for r in self._reports.values()
                if status is None or r.status == status
            ]
            data = self._triage_order(found)
        return ServiceResult.ok(data, self._messages.get("report.fetched"))

    def user_reports(
        self, user_id: str, role: Optional[ReportRole] = None,
    ) -> ServiceResult:
        """Reports filed by, against, or involving (default) a user, newest first."""
        if role == ReportRole.REPORTED_BY:
            def match(r: Report) -> bool:
                return r.reporter_id == user_id
        elif role == ReportRole.REPORTED_AGAINST:
            def match(r: Report) -> bool:
                return r.reported_user_id == user_id
        else:
            def match(r: Report) -> bool:
                return user_id in (r.reporter_id, r.reported_user_id)
        with self._lock:
            data = self._newest_first(r for r in self._reports.values() if match(r))
        return ServiceResult.ok(data, self._messages.get("report.fetched"))

    def report_stats(self) -> ServiceResult:
        with self._lock:
            reports = list(self._reports.values())
        by_type: dict[str, int] = {}
        by_priority: dict[str, int] = {}
        for r in reports:
            by_type[r.report_type.value] = by_type.get(r.report_type.value, 0) + 1
            by_priority[r.priority.value] = by_priority.get(r.priority.value, 0) + 1
        hours = [
            (r.resolved_utc - r.created_utc).total_seconds() / 3600
            for r in reports
            if r.resolved_utc is not None and r.created_utc is not None
        ]
        stats = ReportStats(
            total_reports=len(reports),
            pending_reports=sum(1 for r in reports if r.status == ReportStatus.PENDING),
            resolved_reports=sum(1 for r in reports if r.status == ReportStatus.RESOLVED),
            by_type=by_type,
            by_priority=by_priority,
            average_resolution_hours=round(sum(hours) / len(hours), 1) if hours else 0.0,
        )
        return ServiceResult.ok(stats, self._messages.get("report.stats"))

    # ------------------------------------------------------------------
    # Safety scores
    # ------------------------------------------------------------------

    def safety_score(self, user_id: str) -> ServiceResult:
        """The user's score record, created at the initial score on first read."""
        with self._lock:
            record = self._score_for(user_id)
            return ServiceResult.ok(copy.deepcopy(record), self._messages.get("safety.fetched"))

    def is_safe_to_interact(self, user_id: str) -> bool:
        with self._lock:
            return self._engine.is_safe(self._score_for(user_id))

    def record_positive_interaction(
        self, user_id: str, now: Optional[datetime] = None,
    ) -> ServiceResult:
        with self._lock:
            record = self._apply(
                user_id, SafetyEvent.POSITIVE_INTERACTION, now or datetime.now(timezone.utc),
            )
            return ServiceResult.ok(copy.deepcopy(record), self._messages.get("safety.updated"))

    def flagged_users(self) -> ServiceResult:
        """Flagged and suspended users, lowest score first."""
        with self._lock:
            found = [
                copy.deepcopy(s) for s in self._scores.values()
                if s.trust_level in (TrustLevel.FLAGGED, TrustLevel.SUSPENDED)
            ]
        found.sort(key=lambda s: s.safety_score)
        return ServiceResult.ok(found, self._messages.get("safety.fetched"))

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _score_for(self, user_id: str) -> UserSafetyScore:
        record = self._scores.get(user_id)
        if record is None:
            record = self._engine.initial(user_id)
            self._scores[user_id] = record
        return record

    def _apply(self, user_id: str, event: SafetyEvent, now: datetime) -> UserSafetyScore:
        """Apply a score event; caller holds the lock."""
        before = self._score_for(user_id)
        after = self._engine.apply(before, event, now)
        self._scores[user_id] = after
        self._record(EventKind.SAFETY_SCORE_CHANGED, user_id, {
            "event": event.value,
            "previous_score": before.safety_score,
            "new_score": after.safety_score,
            "trust_level": after.trust_level.value,
        }, now)
        if after.trust_level != before.trust_level:
            logger.warning(
                "User %s trust level %s → %s (score %d)",
                user_id, before.trust_level.value, after.trust_level.value,
                after.safety_score,
            )
        return after

    def _triage_order(self, reports: list[Report]) -> list[Report]:
        order = {rid: i for i, rid in enumerate(self._reports)}
        ordered = sorted(
            reports,
            key=lambda r: (
                PRIORITY_RANK[r.priority], r.created_utc, order.get(r.report_id, -1),
            ),
            reverse=True,
        )
        return [copy.deepcopy(r) for r in ordered]

    def _newest_first(self, reports: Iterable[Report]) -> list[Report]:
        order = {rid: i for i, rid in enumerate(self._reports)}
        ordered = sorted(
            reports,
            key=lambda r: (r.created_utc, order.get(r.report_id, -1)),
            reverse=True,
        )
        return [copy.deepcopy(r) for r in ordered]

    def _fail(self, kind: ErrorKind, key: str, data: object = None) -> ServiceResult:
        return ServiceResult.fail(kind, self._messages.get(key), data)

    def _record(self, kind: EventKind, actor_id: str, payload: dict, now: datetime) -> None:
        if self._event_log is not None:
            self._event_log.record(kind, actor_id, payload, now)
