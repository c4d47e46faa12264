"""Rule scoring for a single (request, vendor rule) pair.

Pure functions only: no store access. The selector supplies the vendor's
live in-flight count when checking eligibility.
"""

from decimal import Decimal

from matchengine.common.enums import MatchReasonCode, Urgency
from matchengine.config import settings
from matchengine.core.matching.schemas import MatchReason, ScoreResult, VendorMeta
from matchengine.db.models.request import ServiceRequest
from matchengine.db.models.vendor import VendorRule

MIN_SCORE = 0
MAX_SCORE = 100

BUDGET_MIN_BONUS = 10
BUDGET_MAX_BONUS = 10
LOCATION_BONUS = 15
LOCATION_PENALTY = -20
URGENCY_BONUS = 5
RATING_BONUS = 5
RATING_THRESHOLD = 4.0


def base_priority(rule: VendorRule) -> int:
    if rule.priority_score is None:
        return settings.DEFAULT_PRIORITY_SCORE
    return rule.priority_score


def _clamp(value: int) -> int:
    return max(MIN_SCORE, min(MAX_SCORE, value))


def _normalize_location(location: str) -> str:
    return location.strip().lower()


def score_rule(request: ServiceRequest, rule: VendorRule, vendor_meta: VendorMeta) -> ScoreResult:
    score = base_priority(rule)
    reasons: list[MatchReason] = []

    # Budget
    if request.budget is not None:
        budget = Decimal(request.budget)
        if rule.min_budget is not None and budget >= Decimal(rule.min_budget):
            score += BUDGET_MIN_BONUS
            reasons.append(MatchReason(code=MatchReasonCode.BUDGET_MIN_MET, params={"min_budget": str(rule.min_budget)}))
        if rule.max_budget is not None and budget <= Decimal(rule.max_budget):
            score += BUDGET_MAX_BONUS
            reasons.append(MatchReason(code=MatchReasonCode.BUDGET_WITHIN_MAX, params={"max_budget": str(rule.max_budget)}))

    # Location: out-of-territory is a penalty, not just a missing bonus
    restrictions = {_normalize_location(loc) for loc in rule.location_restrictions or []}
    if restrictions and request.location:
        if _normalize_location(request.location) in restrictions:
            score += LOCATION_BONUS
            reasons.append(MatchReason(code=MatchReasonCode.LOCATION_SERVED, params={"location": request.location}))
        else:
            score += LOCATION_PENALTY
            reasons.append(
                MatchReason(code=MatchReasonCode.LOCATION_OUTSIDE_AREA, params={"location": request.location})
            )

    if request.urgency == Urgency.HIGH.value:
        score += URGENCY_BONUS
        reasons.append(MatchReason(code=MatchReasonCode.URGENT_PRIORITY))

    if vendor_meta.rating > RATING_THRESHOLD:
        score += RATING_BONUS
        reasons.append(MatchReason(code=MatchReasonCode.HIGHLY_RATED, params={"rating": vendor_meta.rating}))

    return ScoreResult(score=_clamp(score), reasons=reasons)


def is_eligible(result: ScoreResult, in_flight_count: int, capacity_limit: int) -> bool:
    return result.score >= settings.MATCH_MIN_SCORE and in_flight_count < capacity_limit


def ranking_key(candidate) -> tuple:
    """Score desc, then rule priority desc, then vendor id asc."""
    return (-candidate.match_score, -candidate.priority_score, str(candidate.vendor_id))
