"""Safety score engine: applies score events and derives the trust tier.

Score model:
  score starts at initial_score (100) and moves by a fixed delta per event:
    report_received       -10, reports_against += 1, last_incident = now
    report_resolved        -5, reports_resolved += 1
    positive_interaction   +1

Invariants enforced:
- Score is clamped to [score_min, score_max] after every event.
- Trust level is recomputed from the new score on every event, so it is
  never stale relative to the score.
- Tier is a step function: >=90 verified, >=70 trusted, >=50 new,
  >=30 flagged, otherwise suspended.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone
from typing import Optional

from campus_courier.models.safety import SafetyEvent, TrustLevel, UserSafetyScore
from campus_courier.policy.resolver import PolicyResolver


class SafetyScoreEngine:
    """Computes safety score changes. Pure: never mutates its inputs."""

    def __init__(self, resolver: PolicyResolver) -> None:
        self._resolver = resolver

    def initial(self, user_id: str) -> UserSafetyScore:
        """A fresh record: initial score, NEW tier regardless of score."""
        return UserSafetyScore(
            user_id=user_id,
            safety_score=self._resolver.initial_safety_score(),
            trust_level=TrustLevel.NEW,
        )

    def trust_level(self, score: int) -> TrustLevel:
        for tier, minimum in self._resolver.tier_thresholds():
            if score >= minimum:
                return TrustLevel(tier)
        return TrustLevel.SUSPENDED

    def clamp(self, score: int) -> int:
        lo, hi = self._resolver.safety_score_bounds()
        return max(lo, min(hi, score))

    def apply(
        self,
        record: UserSafetyScore,
        event: SafetyEvent,
        now: Optional[datetime] = None,
    ) -> UserSafetyScore:
        """Return a new record with ``event`` applied."""
        if now is None:
            now = datetime.now(timezone.utc)
        score = self.clamp(record.safety_score + self._resolver.safety_delta(event.value))
        updated = replace(record, safety_score=score, trust_level=self.trust_level(score))
        if event == SafetyEvent.REPORT_RECEIVED:
            updated.reports_against += 1
            updated.last_incident_utc = now
        elif event == SafetyEvent.REPORT_RESOLVED:
            updated.reports_resolved += 1
        return updated

    def is_safe(self, record: UserSafetyScore) -> bool:
        return (
            record.trust_level != TrustLevel.SUSPENDED
            and record.safety_score >= self._resolver.safe_min_score()
        )
