import uuid
from decimal import Decimal

from sqlalchemy import Boolean, CheckConstraint, Float, ForeignKey, Integer, Numeric, String
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from matchengine.db.base import BaseModel


class Vendor(BaseModel):
    __tablename__ = "vendors"
    __table_args__ = (CheckConstraint("in_flight_count >= 0", name="ck_vendors_in_flight_non_negative"),)

    name: Mapped[str] = mapped_column(String(500), nullable=False)
    email: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    rating: Mapped[float] = mapped_column(Float, default=0.0)
    response_time_avg: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    # Candidates of this vendor currently routed or accepted; moved only by conditional updates
    in_flight_count: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    # Relationships
    rules = relationship("VendorRule", back_populates="vendor", lazy="selectin")


class VendorRule(BaseModel):
    __tablename__ = "vendor_rules"
    __table_args__ = (CheckConstraint("capacity_limit >= 1", name="ck_vendor_rules_capacity_positive"),)

    vendor_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True), ForeignKey("vendors.id"), nullable=False, index=True
    )
    service_categories: Mapped[list] = mapped_column(JSONB, nullable=False, default=list)
    min_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    max_budget: Mapped[Decimal | None] = mapped_column(Numeric(14, 2), nullable=True)
    location_restrictions: Mapped[list | None] = mapped_column(JSONB, nullable=True, default=list)
    capacity_limit: Mapped[int] = mapped_column(Integer, nullable=False, default=1)
    priority_score: Mapped[int | None] = mapped_column(Integer, nullable=True, default=50)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Relationships
    vendor = relationship("Vendor", back_populates="rules")
