import uuid
from decimal import Decimal

from sqlalchemy import Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from matchengine.common.enums import RequestStatus, Urgency
from matchengine.db.base import BaseModel


class ServiceRequest(BaseModel):
    __tablename__ = "service_requests"

    requester_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False, index=True)
    service_category: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    urgency: Mapped[Urgency] = mapped_column(String(10), nullable=False, default=Urgency.MEDIUM.value)
    location: Mapped[str | None] = mapped_column(String(255), nullable=True)
    extra_requirements: Mapped[dict | None] = mapped_column(JSONB, nullable=True, default=dict)
    status: Mapped[RequestStatus] = mapped_column(
        String(20), nullable=False, default=RequestStatus.PENDING.value, index=True
    )
    # Id of the routing currently awaiting a vendor decision; set and cleared by conditional updates
    open_routing_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Relationships
    candidates = relationship(
        "MatchCandidate", back_populates="request", order_by="MatchCandidate.rank"
    )
