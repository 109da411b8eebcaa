"""Dependency wiring — builds the engine use cases from settings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from app.adapters.audit.logging_sink import LoggingAuditSink
from app.adapters.availability.always_available import AlwaysAvailable
from app.adapters.availability.schedule_adapter import SqlScheduleAvailability
from app.adapters.persistence.cached_consultant_repo import CachedConsultantRepository
from app.adapters.persistence.database import async_session_factory
from app.adapters.persistence.ledger import SqlAllocationLedger
from app.adapters.persistence.repositories import (
    SqlAssignmentRepository,
    SqlConsultantRepository,
)
from app.application.ports.availability_port import AvailabilityPort
from app.application.ports.consultant_repo import ConsultantRepository
from app.application.use_cases.allocate_consultant import AllocateConsultantUseCase
from app.application.use_cases.assignment_history import AssignmentHistoryUseCase
from app.application.use_cases.pipeline import AssignmentPipeline
from app.application.use_cases.reassign_consultant import ReassignConsultantUseCase
from app.application.use_cases.release_assignment import ReleaseAssignmentUseCase
from app.config import Settings, settings
from app.domain.policies.fairness import FairnessWeights

logger = logging.getLogger(__name__)

# Ledger and audit sink hold no per-request state
_ledger = SqlAllocationLedger(async_session_factory, settings.commit_lock_timeout_ms)
_audit = LoggingAuditSink()


@dataclass
class EngineServices:
    allocate: AllocateConsultantUseCase
    reassign: ReassignConsultantUseCase
    history: AssignmentHistoryUseCase
    release: ReleaseAssignmentUseCase


def fairness_weights(cfg: Settings = settings) -> FairnessWeights:
    return FairnessWeights(
        recent_allocation=cfg.fairness_recent_weight,
        active_load=cfg.fairness_load_weight,
        idle_bonus_cap=cfg.fairness_idle_cap,
        new_consultant_bonus=cfg.fairness_new_bonus,
    )


def availability_for(session: AsyncSession, cfg: Settings = settings) -> AvailabilityPort:
    if not cfg.schedules_enabled:
        return AlwaysAvailable()
    return SqlScheduleAvailability(session, cfg.schedule_timezone)


def build_services(session: AsyncSession, cfg: Settings = settings) -> EngineServices:
    """Wire the use cases around one read session."""
    consultant_repo: ConsultantRepository = SqlConsultantRepository(session)
    if cfg.read_cache_ttl_seconds > 0:
        consultant_repo = CachedConsultantRepository(consultant_repo, cfg.read_cache_ttl_seconds)
    assignment_repo = SqlAssignmentRepository(session)

    pipeline = AssignmentPipeline(
        consultant_repo,
        assignment_repo,
        availability_for(session, cfg),
        _audit,
        max_active_load=cfg.max_active_load,
        cooldown=timedelta(hours=cfg.cooldown_hours),
        weights=fairness_weights(cfg),
        emergency_fallback=cfg.emergency_fallback_enabled,
    )
    if cfg.emergency_fallback_enabled:
        logger.info("Emergency fallback is enabled")

    return EngineServices(
        allocate=AllocateConsultantUseCase(pipeline, _ledger, consultant_repo),
        reassign=ReassignConsultantUseCase(pipeline, assignment_repo, _ledger),
        history=AssignmentHistoryUseCase(assignment_repo),
        release=ReleaseAssignmentUseCase(_ledger, _audit),
    )
