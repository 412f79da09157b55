"""Policy resolver: typed access to the core's tunable constants.

All thresholds, penalties, catalog entries and timings live in
``core_params.json``, shipped as package data under ``campus_courier/config``. The resolver validates the file on load and
fails closed: a malformed policy raises ``ValueError`` at construction
rather than producing surprising behaviour later.

Environment overrides (read from the process environment, or a ``.env``
file via python-dotenv):
    CAMPUS_CONFIG_DIR                 directory holding a replacement core_params.json
    CAMPUS_SETTLEMENT_DELAY_SECONDS   subscription settlement delay
"""

from __future__ import annotations

import copy
import json
import logging
import os
from decimal import Decimal, InvalidOperation
from importlib import resources
from pathlib import Path
from typing import Any, Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

PARAMS_FILE = "core_params.json"

# Tier order from most to least trusted; thresholds must strictly descend.
TIER_ORDER = ("verified", "trusted", "new", "flagged")
PROXIMITY_MODES = ("haversine", "bounding_box")
PRIORITIES = ("low", "medium", "high", "urgent")


def _read_params(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as handle:
        params = json.load(handle)
    logger.debug("Loaded core policy from %s", path)
    return params


def _packaged_params() -> dict[str, Any]:
    resource = resources.files("campus_courier") / "config" / PARAMS_FILE
    params = json.loads(resource.read_text(encoding="utf-8"))
    logger.debug("Loaded packaged core policy")
    return params


class PolicyResolver:
    """Read-only view over the core policy parameters."""

    def __init__(self, params: dict[str, Any]) -> None:
        self._params = copy.deepcopy(params)
        errors = self._validate(self._params)
        if errors:
            raise ValueError("Invalid core policy: " + "; ".join(errors))

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        return cls(_read_params(Path(config_dir) / PARAMS_FILE))

    @classmethod
    def from_environment(cls, env_file: Optional[Path] = None) -> PolicyResolver:
        """Build a resolver honouring ``CAMPUS_*`` environment overrides.

        Without ``CAMPUS_CONFIG_DIR`` the packaged policy is used.
        """
        load_dotenv(env_file)
        config_dir = os.getenv("CAMPUS_CONFIG_DIR")
        if config_dir:
            params = _read_params(Path(config_dir) / PARAMS_FILE)
        else:
            params = _packaged_params()
        delay = os.getenv("CAMPUS_SETTLEMENT_DELAY_SECONDS")
        if delay is not None:
            params.setdefault("subscriptions", {})["settlement_delay_seconds"] = float(delay)
        return cls(params)

    @classmethod
    def default(cls) -> PolicyResolver:
        """The policy shipped with the package, without overrides."""
        return cls(_packaged_params())

    # ------------------------------------------------------------------
    # General
    # ------------------------------------------------------------------

    def currency(self) -> str:
        return self._params["currency"]

    # ------------------------------------------------------------------
    # Missions
    # ------------------------------------------------------------------

    def proximity_mode(self) -> str:
        return self._params["missions"]["proximity_mode"]

    def default_radius_km(self) -> float:
        return float(self._params["missions"]["default_radius_km"])

    def bounding_box_delta(self) -> float:
        return float(self._params["missions"]["bounding_box_delta_deg"])

    def upcoming_window_days(self) -> int:
        return int(self._params["missions"]["upcoming_window_days"])

    # ------------------------------------------------------------------
    # Wallet
    # ------------------------------------------------------------------

    def min_withdrawal(self) -> Decimal:
        return Decimal(str(self._params["wallet"]["min_withdrawal"]))

    def default_history_limit(self) -> int:
        return int(self._params["wallet"]["default_history_limit"])

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def settlement_delay_seconds(self) -> float:
        return float(self._params["subscriptions"]["settlement_delay_seconds"])

    def plan_catalog(self) -> list[dict[str, Any]]:
        return copy.deepcopy(self._params["subscriptions"]["plans"])

    # ------------------------------------------------------------------
    # Ratings
    # ------------------------------------------------------------------

    def top_rated_min_ratings(self) -> int:
        return int(self._params["ratings"]["top_rated_min_ratings"])

    def recent_ratings_count(self) -> int:
        return int(self._params["ratings"]["recent_ratings"])

    # ------------------------------------------------------------------
    # Safety
    # ------------------------------------------------------------------

    def initial_safety_score(self) -> int:
        return int(self._params["safety"]["initial_score"])

    def safety_score_bounds(self) -> tuple[int, int]:
        s = self._params["safety"]
        return int(s["score_min"]), int(s["score_max"])

    def safety_delta(self, event: str) -> int:
        return int(self._params["safety"]["deltas"][event])

    def tier_thresholds(self) -> list[tuple[str, int]]:
        """Return (tier, minimum score) pairs, most trusted first."""
        thresholds = self._params["safety"]["tier_thresholds"]
        return [(tier, int(thresholds[tier])) for tier in TIER_ORDER]

    def safe_min_score(self) -> int:
        return int(self._params["safety"]["safe_min_score"])

    def priority_for(self, report_type: str) -> str:
        s = self._params["safety"]
        return s["priority_by_type"].get(report_type, s["default_priority"])

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(params: dict[str, Any]) -> list[str]:
        errors: list[str] = []
        for section in ("missions", "wallet", "subscriptions", "ratings", "safety"):
            if section not in params:
                errors.append(f"missing section: {section}")
        if errors:
            return errors

        missions = params["missions"]
        if missions.get("proximity_mode") not in PROXIMITY_MODES:
            errors.append(
                f"missions.proximity_mode must be one of {list(PROXIMITY_MODES)}"
            )
        if float(missions.get("default_radius_km", 0)) <= 0:
            errors.append("missions.default_radius_km must be > 0")

        try:
            if Decimal(str(params["wallet"]["min_withdrawal"])) <= 0:
                errors.append("wallet.min_withdrawal must be > 0")
        except (KeyError, InvalidOperation):
            errors.append("wallet.min_withdrawal must be a decimal amount")

        subs = params["subscriptions"]
        if float(subs.get("settlement_delay_seconds", -1)) < 0:
            errors.append("subscriptions.settlement_delay_seconds must be >= 0")
        seen: set[str] = set()
        for plan in subs.get("plans", []):
            pid = plan.get("plan_id", "")
            if not pid or pid in seen:
                errors.append(f"plan id missing or duplicated: {pid!r}")
            seen.add(pid)
            try:
                if Decimal(str(plan["price"])) <= 0:
                    errors.append(f"plan {pid}: price must be > 0")
            except (KeyError, InvalidOperation):
                errors.append(f"plan {pid}: price must be a decimal amount")
            if int(plan.get("duration_days", 0)) <= 0:
                errors.append(f"plan {pid}: duration_days must be > 0")

        safety = params["safety"]
        lo, hi = int(safety["score_min"]), int(safety["score_max"])
        if not lo < hi:
            errors.append("safety.score_min must be < score_max")
        if not lo <= int(safety["initial_score"]) <= hi:
            errors.append("safety.initial_score must lie within score bounds")
        thresholds = safety.get("tier_thresholds", {})
        missing = [t for t in TIER_ORDER if t not in thresholds]
        if missing:
            errors.append(f"safety.tier_thresholds missing: {missing}")
        else:
            values = [int(thresholds[t]) for t in TIER_ORDER]
            if any(a <= b for a, b in zip(values, values[1:])):
                errors.append("safety.tier_thresholds must strictly descend")
        for event in ("report_received", "report_resolved", "positive_interaction"):
            if event not in safety.get("deltas", {}):
                errors.append(f"safety.deltas missing: {event}")
        for priority in list(safety.get("priority_by_type", {}).values()) + [
            safety.get("default_priority")
        ]:
            if priority not in PRIORITIES:
                errors.append(f"unknown report priority: {priority!r}")
        return errors
