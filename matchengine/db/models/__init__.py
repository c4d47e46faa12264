from matchengine.db.models.match import MatchCandidate, MatchRouting, VendorDecision
from matchengine.db.models.request import ServiceRequest
from matchengine.db.models.vendor import Vendor, VendorRule

__all__ = [
    "MatchCandidate",
    "MatchRouting",
    "ServiceRequest",
    "Vendor",
    "VendorDecision",
    "VendorRule",
]
