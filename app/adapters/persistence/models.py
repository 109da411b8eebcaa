"""SQLAlchemy ORM models — maps to PostgreSQL tables."""

from datetime import date, datetime, time

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
    func,
    text,
)
from sqlalchemy.dialects.postgresql import ARRAY
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.adapters.persistence.database import Base


class ConsultantModel(Base):
    __tablename__ = "consultants"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    email: Mapped[str | None] = mapped_column(String(200), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    capabilities: Mapped[list[str]] = mapped_column(ARRAY(String(50)), nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )

    counter: Mapped["AllocationCounterModel | None"] = relationship(
        back_populates="consultant", uselist=False
    )

    __table_args__ = (Index("idx_consultants_active", "is_active"),)


class AllocationCounterModel(Base):
    """The only shared mutable state; written exclusively by the ledger."""

    __tablename__ = "allocation_counters"

    consultant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultants.id", ondelete="CASCADE"), primary_key=True
    )
    allocation_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    current_load: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_allocated_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now()
    )

    consultant: Mapped["ConsultantModel"] = relationship(back_populates="counter")


class AssignmentModel(Base):
    __tablename__ = "assignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    agent_id: Mapped[int] = mapped_column(Integer, nullable=False)
    consultant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultants.id"), nullable=False
    )
    external_reference_id: Mapped[str] = mapped_column(String(255), nullable=False)
    external_reference_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")
    method: Mapped[str] = mapped_column(String(30), nullable=False, default="fair_rotation")
    capability_requirements: Mapped[list[dict]] = mapped_column(JSON, nullable=False, default=list)
    match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    fallback_used: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    manual_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    reassignment_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    bound_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    released_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    reassignments: Mapped[list["ReassignmentRecordModel"]] = relationship(
        back_populates="assignment", order_by="ReassignmentRecordModel.id"
    )

    __table_args__ = (
        Index("idx_assignments_consultant", "consultant_id"),
        Index("idx_assignments_agent_status", "agent_id", "status"),
        Index("idx_assignments_bound_at", "bound_at"),
    )


class ReassignmentRecordModel(Base):
    """Append-only lineage log; rows are never updated or deleted by the engine."""

    __tablename__ = "assignment_reassignments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    assignment_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("assignments.id", ondelete="CASCADE"), nullable=False
    )
    sequence_number: Mapped[int] = mapped_column(Integer, nullable=False)
    from_consultant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultants.id"), nullable=False
    )
    to_consultant_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("consultants.id"), nullable=True
    )
    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)
    source: Mapped[str] = mapped_column(String(30), nullable=False, default="agent_request")
    previous_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    new_match_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    excluded_consultant_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    processing_duration_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    assignment: Mapped["AssignmentModel"] = relationship(back_populates="reassignments")

    __table_args__ = (
        Index("idx_reassignments_assignment", "assignment_id"),
        Index(
            "uq_reassignments_success_sequence",
            "assignment_id",
            "sequence_number",
            unique=True,
            postgresql_where=text("success"),
        ),
    )


class ConsultantAvailabilityModel(Base):
    __tablename__ = "consultant_availability"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    consultant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False
    )
    day_of_week: Mapped[int] = mapped_column(Integer, nullable=False)  # 0 = Sunday
    start_time: Mapped[time] = mapped_column(Time, nullable=False)
    end_time: Mapped[time] = mapped_column(Time, nullable=False)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (Index("idx_availability_consultant", "consultant_id"),)


class ConsultantTimeOffModel(Base):
    __tablename__ = "consultant_timeoff"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    consultant_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("consultants.id", ondelete="CASCADE"), nullable=False
    )
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    is_approved: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (Index("idx_timeoff_consultant", "consultant_id"),)
