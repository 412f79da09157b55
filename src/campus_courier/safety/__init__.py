"""Safety: abuse reports, safety scores and trust tiers."""

from campus_courier.safety.engine import SafetyScoreEngine
from campus_courier.safety.registry import SafetyReportRegistry

__all__ = ["SafetyReportRegistry", "SafetyScoreEngine"]
