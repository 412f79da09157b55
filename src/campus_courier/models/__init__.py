"""Core data models for the campus courier core."""

from campus_courier.models.mission import (
    Location,
    Mission,
    MissionStats,
    MissionStatus,
    MissionType,
)
from campus_courier.models.wallet import (
    TransactionStatus,
    TransactionType,
    Wallet,
    WalletStats,
    WalletTransaction,
    WithdrawalRequest,
    WithdrawalStatus,
)
from campus_courier.models.subscription import (
    PaymentMethod,
    PaymentStatus,
    SubscriptionPayment,
    SubscriptionPlan,
    SubscriptionStats,
    SubscriptionStatus,
    UserSubscription,
)
from campus_courier.models.rating import (
    CreateRatingRequest,
    RankedUser,
    Rating,
    RatingDirection,
    RatingRole,
    RatingStats,
)
from campus_courier.models.safety import (
    CreateReportRequest,
    Report,
    ReportEvidence,
    ReportPriority,
    ReportRole,
    ReportStats,
    ReportStatus,
    ReportType,
    SafetyEvent,
    TrustLevel,
    UserSafetyScore,
)

__all__ = [
    "Location",
    "Mission",
    "MissionStats",
    "MissionStatus",
    "MissionType",
    "TransactionStatus",
    "TransactionType",
    "Wallet",
    "WalletStats",
    "WalletTransaction",
    "WithdrawalRequest",
    "WithdrawalStatus",
    "PaymentMethod",
    "PaymentStatus",
    "SubscriptionPayment",
    "SubscriptionPlan",
    "SubscriptionStats",
    "SubscriptionStatus",
    "UserSubscription",
    "CreateRatingRequest",
    "RankedUser",
    "Rating",
    "RatingDirection",
    "RatingRole",
    "RatingStats",
    "CreateReportRequest",
    "Report",
    "ReportEvidence",
    "ReportPriority",
    "ReportRole",
    "ReportStats",
    "ReportStatus",
    "ReportType",
    "SafetyEvent",
    "TrustLevel",
    "UserSafetyScore",
]
