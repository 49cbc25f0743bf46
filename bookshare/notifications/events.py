from enum import Enum


class TrustEvent(str, Enum):
    CANCELLATION_REQUESTED = "cancellation_requested"
    CANCELLATION_APPROVED = "cancellation_approved"
    CANCELLATION_REJECTED = "cancellation_rejected"
    CANCELLATION_AUTO_APPROVED = "cancellation_auto_approved"
    CANCELLATION_EXPIRED = "cancellation_expired"

    REPORT_PENALTY = "report_penalty"
    REPORT_VIOLATION = "report_violation"
    APPEAL_RESOLVED = "appeal_resolved"
