"""Campus service: unified facade for the courier core.

This is the primary interface for programmatic access to the core.
It owns one instance of each subsystem:
- Missions (create, accept, start, complete, cancel, queries)
- Wallet ledger (earnings, withdrawals, settlement)
- Subscriptions (plans, two-phase payment settlement)
- Ratings (peer ratings, statistics, ranking)
- Safety (reports, safety scores, trust tiers)

All subsystems share one policy resolver, one message catalog and one
audit event log. Subsystems never call each other; the few operations
that span two aggregates are composed here.
"""

from __future__ import annotations

import logging
import random
from datetime import datetime
from typing import Any, Optional

from campus_courier import fixtures
from campus_courier.missions.registry import MissionRegistry
from campus_courier.models.mission import MissionStatus
from campus_courier.persistence.event_log import EventLog
from campus_courier.policy.resolver import PolicyResolver
from campus_courier.ratings.aggregator import RatingAggregator
from campus_courier.result import MessageCatalog, ServiceResult
from campus_courier.safety.registry import SafetyReportRegistry
from campus_courier.subscriptions.manager import SubscriptionManager
from campus_courier.subscriptions.settlement import SettlementScheduler
from campus_courier.wallet.ledger import WalletLedger

logger = logging.getLogger(__name__)

__version__ = "0.1.0"


class CampusService:
    """Courier core facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = CampusService(resolver, scheduler=ManualScheduler())

        mission = service.missions.create("r1", "Deliver books", ...).data
        service.missions.accept(mission.mission_id, "c1")
        service.missions.start(mission.mission_id, "c1")
        service.complete_mission_and_pay(mission.mission_id, "c1")

        service.wallet.get_wallet("c1").data.balance

    Construct one per process (or one per test); there is no global
    instance.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        scheduler: Optional[SettlementScheduler] = None,
        messages: Optional[MessageCatalog] = None,
        event_log: Optional[EventLog] = None,
        seed_fixtures: bool = False,
        rng: Optional[random.Random] = None,
    ) -> None:
        self._resolver = resolver
        self._messages = messages or MessageCatalog()
        self._event_log = event_log if event_log is not None else EventLog()

        self._missions = MissionRegistry(resolver, self._messages, self._event_log)
        self._wallet = WalletLedger(resolver, self._messages, self._event_log)
        self._subscriptions = SubscriptionManager(
            resolver, scheduler, self._messages, self._event_log,
        )
        self._ratings = RatingAggregator(resolver, self._messages, self._event_log)
        self._safety = SafetyReportRegistry(resolver, self._messages, self._event_log)

        if seed_fixtures:
            seeded = self._missions.seed(
                fixtures.generate_missions(rng if rng is not None else random.Random()),
            )
            logger.info("Seeded %d demo missions", seeded)

    # ------------------------------------------------------------------
    # Subsystems
    # ------------------------------------------------------------------

    @property
    def resolver(self) -> PolicyResolver:
        return self._resolver

    @property
    def event_log(self) -> EventLog:
        return self._event_log

    @property
    def missions(self) -> MissionRegistry:
        return self._missions

    @property
    def wallet(self) -> WalletLedger:
        return self._wallet

    @property
    def subscriptions(self) -> SubscriptionManager:
        return self._subscriptions

    @property
    def ratings(self) -> RatingAggregator:
        return self._ratings

    @property
    def safety(self) -> SafetyReportRegistry:
        return self._safety

    # ------------------------------------------------------------------
    # Cross-aggregate operations
    # ------------------------------------------------------------------

    def complete_mission_and_pay(
        self,
        mission_id: str,
        courier_id: str,
        expected_version: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> ServiceResult:
        """Complete a mission and credit its reward to the courier's wallet.

        The earning is credited only when completion succeeds. Returns the
        completion envelope on failure; on success ``data`` holds the
        completed mission and the earning transaction.
        """
        completed = self._missions.complete(
            mission_id, courier_id, expected_version=expected_version, now=now,
        )
        if not completed.success:
            return completed

        mission = completed.data
        earning = self._wallet.add_earning(
            courier_id, mission.reward, mission.title, mission.mission_id, now=now,
        )
        if not earning.success:
            # Only reachable for seeded missions with a non-positive reward.
            logger.error(
                "Mission %s completed but earning was rejected: %s",
                mission_id, earning.message,
            )
            return earning

        logger.info(
            "Mission %s paid %s to %s", mission_id, mission.reward, courier_id,
        )
        return ServiceResult.ok(
            {"mission": mission, "transaction": earning.data},
            completed.message,
        )

    def mission_stats(self, courier_id: str) -> ServiceResult:
        """Per-courier mission counts, earnings and average received rating."""
        stats = self._missions.stats(courier_id).data
        return ServiceResult.ok(
            {
                "total": stats.total,
                "completed": stats.completed,
                "in_progress": stats.in_progress,
                "total_earnings": stats.total_earnings,
                "average_rating": self._ratings.average_for(courier_id),
            },
            self._messages.get("mission.stats"),
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def status(self) -> dict[str, Any]:
        """Return a system-wide status summary."""
        by_status = self._missions.count_by_status()
        return {
            "version": __version__,
            "currency": self._resolver.currency(),
            "missions": {
                "total": sum(by_status.values()),
                "by_status": by_status,
                "available": by_status.get(MissionStatus.AVAILABLE.value, 0),
            },
            "reports": {
                "pending": self._safety.report_stats().data.pending_reports,
            },
            "events": self._event_log.count,
        }

    def shutdown(self) -> None:
        """Drop pending subscription settlements."""
        self._subscriptions.shutdown()
        logger.info("Campus service shut down")
