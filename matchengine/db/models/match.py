import uuid
from datetime import datetime

from sqlalchemy import DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from matchengine.common.enums import CandidateStatus, Decision, RoutingMethod, RoutingStatus
from matchengine.db.base import BaseModel, utcnow


class MatchCandidate(BaseModel):
    __tablename__ = "match_candidates"
    __table_args__ = (UniqueConstraint("request_id", "vendor_id", name="uq_match_candidates_request_vendor"),)

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("service_requests.id"), nullable=False, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    vendor_rule_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendor_rules.id"), nullable=False
    )
    rank: Mapped[int] = mapped_column(Integer, nullable=False)
    match_score: Mapped[int] = mapped_column(Integer, nullable=False)
    # [{"code": MatchReasonCode, "params": {...}}, ...] in scoring order
    match_reasons: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    status: Mapped[CandidateStatus] = mapped_column(
        String(20), nullable=False, default=CandidateStatus.PENDING.value, index=True
    )

    # Relationships
    request = relationship("ServiceRequest", back_populates="candidates")
    vendor = relationship("Vendor", lazy="selectin")
    rule = relationship("VendorRule", lazy="selectin")
    routings = relationship(
        "MatchRouting", back_populates="candidate", order_by="MatchRouting.routed_at"
    )


class MatchRouting(BaseModel):
    __tablename__ = "match_routings"

    match_candidate_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("match_candidates.id"), nullable=False, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    routing_method: Mapped[RoutingMethod] = mapped_column(
        String(20), nullable=False, default=RoutingMethod.AUTOMATIC.value
    )
    routed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    vendor_response_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[RoutingStatus] = mapped_column(
        String(20), nullable=False, default=RoutingStatus.ROUTED.value, index=True
    )

    # Relationships
    candidate = relationship("MatchCandidate", back_populates="routings")
    decisions = relationship("VendorDecision", back_populates="routing", order_by="VendorDecision.decided_at")


class VendorDecision(BaseModel):
    __tablename__ = "vendor_decisions"

    routing_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("match_routings.id"), nullable=False, index=True
    )
    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False
    )
    decision: Mapped[Decision] = mapped_column(String(10), nullable=False)
    response_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    estimated_delivery: Mapped[str | None] = mapped_column(String(100), nullable=True)
    decided_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    # Relationships
    routing = relationship("MatchRouting", back_populates="decisions")
