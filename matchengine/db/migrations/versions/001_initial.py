"""Initial schema - vendors, rules, requests, candidates, routings, decisions

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
    ]


def upgrade() -> None:
    # Vendors
    op.create_table(
        "vendors",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("name", sa.String(500), nullable=False),
        sa.Column("email", sa.String(255), nullable=False, index=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("rating", sa.Float, server_default=sa.text("0.0")),
        sa.Column("response_time_avg", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        sa.Column("in_flight_count", sa.Integer, nullable=False, server_default=sa.text("0")),
        *_timestamps(),
        sa.CheckConstraint("in_flight_count >= 0", name="ck_vendors_in_flight_non_negative"),
    )

    # Vendor rules
    op.create_table(
        "vendor_rules",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False, index=True),
        sa.Column("service_categories", postgresql.JSONB, nullable=False),
        sa.Column("min_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("max_budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("location_restrictions", postgresql.JSONB, nullable=True),
        sa.Column("capacity_limit", sa.Integer, nullable=False, server_default=sa.text("1")),
        sa.Column("priority_score", sa.Integer, nullable=True, server_default=sa.text("50")),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.text("true")),
        *_timestamps(),
        sa.CheckConstraint("capacity_limit >= 1", name="ck_vendor_rules_capacity_positive"),
    )

    # Service requests
    op.create_table(
        "service_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column("requester_id", postgresql.UUID(as_uuid=True), nullable=False, index=True),
        sa.Column("service_category", sa.String(100), nullable=False, index=True),
        sa.Column("budget", sa.Numeric(14, 2), nullable=True),
        sa.Column("urgency", sa.String(10), nullable=False, server_default="medium"),
        sa.Column("location", sa.String(255), nullable=True),
        sa.Column("extra_requirements", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        *_timestamps(),
    )

    # Match candidates
    op.create_table(
        "match_candidates",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "request_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("service_requests.id"), nullable=False, index=True
        ),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False, index=True),
        sa.Column("vendor_rule_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendor_rules.id"), nullable=False),
        sa.Column("rank", sa.Integer, nullable=False),
        sa.Column("match_score", sa.Integer, nullable=False),
        sa.Column("match_reasons", postgresql.JSONB, nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending", index=True),
        *_timestamps(),
        sa.UniqueConstraint("request_id", "vendor_id", name="uq_match_candidates_request_vendor"),
    )

    # Match routings
    op.create_table(
        "match_routings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "match_candidate_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("match_candidates.id"),
            nullable=False,
            index=True,
        ),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False, index=True),
        sa.Column("routing_method", sa.String(20), nullable=False, server_default="automatic"),
        sa.Column("routed_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("vendor_response_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="routed", index=True),
        *_timestamps(),
    )

    # Vendor decisions
    op.create_table(
        "vendor_decisions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True),
        sa.Column(
            "routing_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("match_routings.id"), nullable=False, index=True
        ),
        sa.Column("vendor_id", postgresql.UUID(as_uuid=True), sa.ForeignKey("vendors.id"), nullable=False),
        sa.Column("decision", sa.String(10), nullable=False),
        sa.Column("response_message", sa.Text, nullable=True),
        sa.Column("estimated_delivery", sa.String(100), nullable=True),
        sa.Column("decided_at", sa.DateTime(timezone=True), nullable=False),
        *_timestamps(),
    )


def downgrade() -> None:
    op.drop_table("vendor_decisions")
    op.drop_table("match_routings")
    op.drop_table("match_candidates")
    op.drop_table("service_requests")
    op.drop_table("vendor_rules")
    op.drop_table("vendors")
