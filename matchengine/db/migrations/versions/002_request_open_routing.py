"""Per-request open routing claim

Revision ID: 002
Revises: 001
Create Date: 2026-10-16
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

revision: str = "002"
down_revision: str | None = "001"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    op.add_column(
        "service_requests",
        sa.Column("open_routing_id", postgresql.UUID(as_uuid=True), nullable=True),
    )
    # Backfill from routings still awaiting a decision
    op.execute(
        """
        UPDATE service_requests AS r
        SET open_routing_id = mr.id
        FROM match_routings AS mr
        JOIN match_candidates AS mc ON mc.id = mr.match_candidate_id
        WHERE mc.request_id = r.id AND mr.status = 'routed'
        """
    )


def downgrade() -> None:
    op.drop_column("service_requests", "open_routing_id")
