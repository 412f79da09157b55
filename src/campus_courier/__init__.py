"""Campus Courier: in-process domain core for a student courier app.

Missions, wallet ledger, subscriptions, peer ratings and safety reports,
each an in-memory registry returning ``ServiceResult`` envelopes, composed
by ``CampusService``.
"""

from campus_courier.policy.resolver import PolicyResolver
from campus_courier.result import ErrorKind, MessageCatalog, ServiceResult
from campus_courier.service import CampusService, __version__
from campus_courier.subscriptions.settlement import ManualScheduler, ThreadingScheduler

__all__ = [
    "CampusService",
    "ErrorKind",
    "ManualScheduler",
    "MessageCatalog",
    "PolicyResolver",
    "ServiceResult",
    "ThreadingScheduler",
    "__version__",
]
