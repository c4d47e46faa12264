import uuid
from typing import Any

from pydantic import BaseModel, Field

from matchengine.common.enums import MatchReasonCode


class MatchReason(BaseModel):
    code: MatchReasonCode
    params: dict[str, Any] = Field(default_factory=dict)


class ScoreResult(BaseModel):
    score: int
    reasons: list[MatchReason]


class VendorMeta(BaseModel):
    name: str = ""
    rating: float = 0.0
    response_time_avg: str | None = None


class RankedCandidate(BaseModel):
    vendor_id: uuid.UUID
    vendor_rule_id: uuid.UUID
    vendor_name: str
    priority_score: int
    match_score: int
    match_reasons: list[MatchReason]
    estimated_response_time: str
    rank: int = 0
    candidate_id: uuid.UUID | None = None
