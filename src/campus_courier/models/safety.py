"""Trust & safety models: reports and per-user safety scores.

Report lifecycle: PENDING → UNDER_REVIEW → RESOLVED / DISMISSED
(administrators may set any status; resolution is stamped on entry to
RESOLVED or DISMISSED).

Safety score: integer in [0, 100], starts at 100. The trust level is a
step function of the current score and is recomputed on every change.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


class ReportType(str, enum.Enum):
    USER = "user"
    MISSION = "mission"
    INAPPROPRIATE_CONTENT = "inappropriate_content"
    FRAUD = "fraud"
    HARASSMENT = "harassment"
    OTHER = "other"


class ReportStatus(str, enum.Enum):
    PENDING = "pending"
    UNDER_REVIEW = "under_review"
    RESOLVED = "resolved"
    DISMISSED = "dismissed"


class ReportPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


# Triage rank; higher sorts first.
PRIORITY_RANK: dict[ReportPriority, int] = {
    ReportPriority.URGENT: 4,
    ReportPriority.HIGH: 3,
    ReportPriority.MEDIUM: 2,
    ReportPriority.LOW: 1,
}


class ReportRole(str, enum.Enum):
    REPORTED_BY = "reported_by"
    REPORTED_AGAINST = "reported_against"


class TrustLevel(str, enum.Enum):
    NEW = "new"
    TRUSTED = "trusted"
    VERIFIED = "verified"
    FLAGGED = "flagged"
    SUSPENDED = "suspended"


class SafetyEvent(str, enum.Enum):
    REPORT_RECEIVED = "report_received"
    REPORT_RESOLVED = "report_resolved"
    POSITIVE_INTERACTION = "positive_interaction"


@dataclass(frozen=True)
class ReportEvidence:
    screenshots: tuple[str, ...] = ()
    messages: tuple[str, ...] = ()
    additional_info: Optional[str] = None


@dataclass(frozen=True)
class CreateReportRequest:
    report_type: ReportType
    category: str
    description: str
    reported_user_id: Optional[str] = None
    reported_mission_id: Optional[str] = None
    evidence: Optional[ReportEvidence] = None


@dataclass
class Report:
    report_id: str
    reporter_id: str
    report_type: ReportType
    category: str
    description: str
    priority: ReportPriority
    status: ReportStatus = ReportStatus.PENDING
    reported_user_id: Optional[str] = None
    reported_mission_id: Optional[str] = None
    evidence: Optional[ReportEvidence] = None
    admin_notes: Optional[str] = None
    resolution: Optional[str] = None
    created_utc: Optional[datetime] = None
    updated_utc: Optional[datetime] = None
    resolved_utc: Optional[datetime] = None
    resolved_by: Optional[str] = None
    # Set once the resolution penalty has been applied to the reported user.
    penalty_applied: bool = False


@dataclass
class UserSafetyScore:
    user_id: str
    safety_score: int
    trust_level: TrustLevel = TrustLevel.NEW
    reports_against: int = 0
    reports_resolved: int = 0
    last_incident_utc: Optional[datetime] = None


@dataclass(frozen=True)
class ReportStats:
    total_reports: int
    pending_reports: int
    resolved_reports: int
    by_type: dict[str, int] = field(default_factory=dict)
    by_priority: dict[str, int] = field(default_factory=dict)
    average_resolution_hours: float = 0.0
