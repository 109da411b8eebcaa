"""Tests for the eligibility filter."""

from datetime import datetime, timedelta, timezone

import pytest

from app.domain.entities.assignment import Assignment
from app.domain.entities.consultant import Consultant
from app.domain.errors import NoEligibleResourceError
from app.domain.policies.eligibility import cooldown_consultant_ids, filter_eligible
from app.domain.value_objects.enums import AssignmentStatus, RejectionReason

NOW = datetime(2026, 2, 10, 12, 0, tzinfo=timezone.utc)


def _c(cid: int, load: int = 0, active: bool = True) -> Consultant:
    return Consultant(id=cid, name=f"C{cid}", active=active, current_load=load)


def _paired(consultant_id: int, hours_ago: float, status=AssignmentStatus.ACTIVE) -> Assignment:
    at = NOW - timedelta(hours=hours_ago)
    return Assignment(
        id=consultant_id, agent_id=1, consultant_id=consultant_id,
        external_reference_id="x", status=status, assigned_at=at, bound_at=at,
    )


def test_all_rules_pass():
    result = filter_eligible([_c(1), _c(2)], NOW)
    assert result.eligible_ids == [1, 2]
    assert result.rejected == {}


def test_each_rule_reports_its_reason():
    result = filter_eligible(
        [_c(1, active=False), _c(2, load=3), _c(3), _c(4), _c(5), _c(6)],
        NOW,
        agent_assignments=[_paired(4, hours_ago=2)],
        availability={5: False},
        exclude={3},
    )
    assert result.eligible_ids == [6]
    assert result.rejected == {
        1: RejectionReason.INACTIVE,
        2: RejectionReason.AT_CAPACITY,
        3: RejectionReason.EXCLUDED,
        4: RejectionReason.COOLDOWN,
        5: RejectionReason.UNAVAILABLE,
    }


def test_load_limit_is_configurable():
    result = filter_eligible([_c(1, load=1)], NOW, max_active_load=1)
    assert result.rejected == {1: RejectionReason.AT_CAPACITY}


def test_cooldown_expires():
    assert cooldown_consultant_ids([_paired(1, hours_ago=25)], NOW) == set()
    assert cooldown_consultant_ids([_paired(1, hours_ago=23)], NOW) == {1}


def test_cooldown_ignores_closed_assignments():
    closed = _paired(1, hours_ago=1, status=AssignmentStatus.COMPLETED)
    assert cooldown_consultant_ids([closed], NOW) == set()


def test_missing_availability_verdict_counts_as_available():
    result = filter_eligible([_c(1)], NOW, availability={})
    assert result.eligible_ids == [1]


def test_soft_rules_can_be_relaxed_but_hard_rules_cannot():
    result = filter_eligible(
        [_c(1, active=False), _c(2, load=3), _c(3), _c(4), _c(5)],
        NOW,
        agent_assignments=[_paired(4, hours_ago=1)],
        availability={5: False},
        exclude={3},
        enforce_soft_rules=False,
    )
    assert result.eligible_ids == [4, 5]


def test_empty_result_raises_typed_error():
    result = filter_eligible([_c(1, active=False)], NOW)
    with pytest.raises(NoEligibleResourceError, match="inactive"):
        result.ensure_not_empty()


def test_empty_pool_raises_typed_error():
    with pytest.raises(NoEligibleResourceError):
        filter_eligible([], NOW).ensure_not_empty()
