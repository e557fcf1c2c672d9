import enum


class ActorRole(str, enum.Enum):
    OPERATOR = "OPERATOR"
    CUSTOMER = "CUSTOMER"
    PROVIDER = "PROVIDER"


class DisputeStatus(str, enum.Enum):
    OPEN = "OPEN"
    ASSIGNED = "ASSIGNED"
    UNDER_REVIEW = "UNDER_REVIEW"
    RESOLVED = "RESOLVED"
    ESCALATED = "ESCALATED"
    CLOSED = "CLOSED"


ACTIVE_DISPUTE_STATUSES = (
    DisputeStatus.OPEN,
    DisputeStatus.ASSIGNED,
    DisputeStatus.UNDER_REVIEW,
    DisputeStatus.ESCALATED,
)


class DisputeType(str, enum.Enum):
    SERVICE_NOT_DELIVERED = "SERVICE_NOT_DELIVERED"
    POOR_QUALITY = "POOR_QUALITY"
    LATE_ARRIVAL = "LATE_ARRIVAL"
    NO_SHOW = "NO_SHOW"
    PROPERTY_DAMAGE = "PROPERTY_DAMAGE"
    PAYMENT_ISSUE = "PAYMENT_ISSUE"
    COMMUNICATION_ISSUE = "COMMUNICATION_ISSUE"
    SAFETY_CONCERN = "SAFETY_CONCERN"
    OTHER = "OTHER"


class DisputeResolution(str, enum.Enum):
    FULL_REFUND_CUSTOMER = "FULL_REFUND_CUSTOMER"
    PARTIAL_REFUND = "PARTIAL_REFUND"
    NO_REFUND = "NO_REFUND"
    SPLIT_FUNDS = "SPLIT_FUNDS"
    PROVIDER_PENALTY = "PROVIDER_PENALTY"
    CUSTOMER_WARNING = "CUSTOMER_WARNING"
    MUTUAL_CANCELLATION = "MUTUAL_CANCELLATION"
    ESCALATED_TO_LEGAL = "ESCALATED_TO_LEGAL"


class DisputeAction(str, enum.Enum):
    FILE = "file"
    ASSIGN = "assign"
    START_REVIEW = "start_review"
    RESOLVE = "resolve"
    ESCALATE = "escalate"
    CLOSE = "close"
    POST_MESSAGE = "post_message"


class PenaltyType(str, enum.Enum):
    PROVIDER_PENALTY = "PROVIDER_PENALTY"
    CUSTOMER_WARNING = "CUSTOMER_WARNING"


class SettlementStatus(str, enum.Enum):
    PENDING = "PENDING"
    SUBMITTED = "SUBMITTED"
    REJECTED = "REJECTED"
