"""Initial schema — consultants, counters, assignments, reassignment log, schedules.

Revision ID: 001
Revises: None
Create Date: 2026-10-16
"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import ARRAY

from alembic import op

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Consultants
    op.create_table(
        "consultants",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(200), nullable=False),
        sa.Column("email", sa.String(200), nullable=True),
        sa.Column("phone", sa.String(50), nullable=True),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column(
            "capabilities", ARRAY(sa.String(50)), nullable=False, server_default="{}"
        ),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("idx_consultants_active", "consultants", ["is_active"])

    # Allocation counters (written only by the ledger)
    op.create_table(
        "allocation_counters",
        sa.Column(
            "consultant_id", sa.Integer,
            sa.ForeignKey("consultants.id", ondelete="CASCADE"), primary_key=True,
        ),
        sa.Column("allocation_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("current_load", sa.Integer, nullable=False, server_default="0"),
        sa.Column("last_allocated_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), nullable=False,
            server_default=sa.func.now(),
        ),
        sa.CheckConstraint("current_load >= 0", name="ck_counters_load_non_negative"),
        sa.CheckConstraint("allocation_count >= 0", name="ck_counters_count_non_negative"),
    )

    # Assignments
    op.create_table(
        "assignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("agent_id", sa.Integer, nullable=False),
        sa.Column(
            "consultant_id", sa.Integer, sa.ForeignKey("consultants.id"), nullable=False
        ),
        sa.Column("external_reference_id", sa.String(255), nullable=False),
        sa.Column("external_reference_name", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("method", sa.String(30), nullable=False, server_default="fair_rotation"),
        sa.Column("capability_requirements", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("match_score", sa.Float, nullable=True),
        sa.Column("fallback_used", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("manual_reason", sa.Text, nullable=True),
        sa.Column("reassignment_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("assigned_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("bound_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("released_at", sa.DateTime(timezone=True), nullable=True),
    )
    op.create_index("idx_assignments_consultant", "assignments", ["consultant_id"])
    op.create_index("idx_assignments_agent_status", "assignments", ["agent_id", "status"])
    op.create_index("idx_assignments_bound_at", "assignments", ["bound_at"])

    # Reassignment log (append-only)
    op.create_table(
        "assignment_reassignments",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "assignment_id", sa.Integer,
            sa.ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("sequence_number", sa.Integer, nullable=False),
        sa.Column(
            "from_consultant_id", sa.Integer, sa.ForeignKey("consultants.id"), nullable=False
        ),
        sa.Column(
            "to_consultant_id", sa.Integer, sa.ForeignKey("consultants.id"), nullable=True
        ),
        sa.Column("reason", sa.String(500), nullable=True),
        sa.Column("source", sa.String(30), nullable=False, server_default="agent_request"),
        sa.Column("previous_match_score", sa.Float, nullable=True),
        sa.Column("new_match_score", sa.Float, nullable=True),
        sa.Column("excluded_consultant_ids", sa.JSON, nullable=False, server_default="[]"),
        sa.Column("processing_duration_ms", sa.Integer, nullable=False, server_default="0"),
        sa.Column("success", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("error_detail", sa.Text, nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "idx_reassignments_assignment", "assignment_reassignments", ["assignment_id"]
    )
    op.create_index(
        "uq_reassignments_success_sequence",
        "assignment_reassignments",
        ["assignment_id", "sequence_number"],
        unique=True,
        postgresql_where=sa.text("success"),
    )

    # Weekly schedule (0 = Sunday)
    op.create_table(
        "consultant_availability",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "consultant_id", sa.Integer,
            sa.ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("day_of_week", sa.Integer, nullable=False),
        sa.Column("start_time", sa.Time, nullable=False),
        sa.Column("end_time", sa.Time, nullable=False),
        sa.Column("is_available", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint("day_of_week BETWEEN 0 AND 6", name="ck_availability_day"),
    )
    op.create_index(
        "idx_availability_consultant", "consultant_availability", ["consultant_id"]
    )

    # Time off
    op.create_table(
        "consultant_timeoff",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column(
            "consultant_id", sa.Integer,
            sa.ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False,
        ),
        sa.Column("start_date", sa.Date, nullable=False),
        sa.Column("end_date", sa.Date, nullable=False),
        sa.Column("reason", sa.String(200), nullable=True),
        sa.Column("is_approved", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_timeoff_consultant", "consultant_timeoff", ["consultant_id"])


def downgrade() -> None:
    op.drop_table("consultant_timeoff")
    op.drop_table("consultant_availability")
    op.drop_table("assignment_reassignments")
    op.drop_table("assignments")
    op.drop_table("allocation_counters")
    op.drop_table("consultants")
