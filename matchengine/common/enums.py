import enum


class Urgency(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RequestStatus(str, enum.Enum):
    PENDING = "pending"
    MATCHED = "matched"
    ROUTED = "routed"
    FULFILLED = "fulfilled"
    CLOSED = "closed"


class CandidateStatus(str, enum.Enum):
    PENDING = "pending"
    ROUTED = "routed"
    ACCEPTED = "accepted"
    DECLINED = "declined"
    SKIPPED = "skipped"


class RoutingStatus(str, enum.Enum):
    ROUTED = "routed"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class RoutingMethod(str, enum.Enum):
    AUTOMATIC = "automatic"
    MANUAL = "manual"


class Decision(str, enum.Enum):
    ACCEPT = "accept"
    DECLINE = "decline"


class MatchReasonCode(str, enum.Enum):
    BUDGET_MIN_MET = "budget_min_met"
    BUDGET_WITHIN_MAX = "budget_within_max"
    LOCATION_SERVED = "location_served"
    LOCATION_OUTSIDE_AREA = "location_outside_area"
    URGENT_PRIORITY = "urgent_priority"
    HIGHLY_RATED = "highly_rated"
