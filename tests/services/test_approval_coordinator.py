"""
Tests for ApprovalCoordinator: one terminal decision per visit.
"""

import pytest

from visit_kernel.domain.collaborators import NotificationKind, Recipient
from visit_kernel.domain.requests import DecideByName, DecideByRole, DecisionOutcome
from visit_kernel.domain.roles import Capability, default_role_policy
from visit_kernel.domain.visit import ApprovalStatus, NotificationFlag, VisitStatus
from visit_kernel.exceptions import (
    ForbiddenError,
    InvalidStateError,
    TransitionConflictError,
)
from visit_kernel.services.approval_coordinator import (
    ApprovalCoordinator,
    append_note,
)
from visit_kernel.services.visit_store import VisitStore

from tests.factories import BUILDING, visit_model


@pytest.fixture
def store(session, deterministic_clock):
    return VisitStore(session, deterministic_clock)


@pytest.fixture
def approvals(store):
    return ApprovalCoordinator(store, default_role_policy())


@pytest.fixture
def pending(store, deterministic_clock):
    return store.add(visit_model(deterministic_clock.now()))


def _decision(visit, outcome, **kw):
    return DecideByRole(BUILDING, str(visit.id), outcome, **kw)


class TestAppendNote:
    def test_first_note(self):
        assert append_note(None, "a") == "a"

    def test_appends_on_new_line(self):
        assert append_note("a", "b") == "a\nb"

    def test_empty_note_keeps_existing(self):
        assert append_note("a", None) == "a"


class TestRequiredCapability:
    def test_by_role(self, pending):
        decision = _decision(pending, DecisionOutcome.APPROVED)
        assert ApprovalCoordinator.required_capability(decision) == Capability.DECIDE_VISIT

    def test_by_name(self, pending):
        decision = DecideByName(BUILDING, str(pending.id), "Ravi")
        assert ApprovalCoordinator.required_capability(decision) == Capability.APPROVE_BY_NAME


class TestDecide:
    def test_approve_plans_host_and_admin_notices(
        self, approvals, pending, security_actor,
    ):
        result = approvals.decide(
            pending, security_actor, _decision(pending, DecisionOutcome.APPROVED),
        )

        assert result.visit.approval_status == ApprovalStatus.APPROVED
        assert result.visit.status == VisitStatus.SCHEDULED
        assert [(n.kind, n.recipient, n.flag) for n in result.notifications] == [
            (NotificationKind.VISIT_APPROVED, Recipient.HOST, NotificationFlag.HOST),
            (NotificationKind.VISIT_APPROVED, Recipient.ADMIN, NotificationFlag.ADMIN),
        ]

    def test_cancel_plans_host_notice_only(self, approvals, pending, admin_actor):
        result = approvals.decide(
            pending, admin_actor, _decision(pending, DecisionOutcome.CANCELLED),
        )

        assert result.visit.status == VisitStatus.CANCELLED
        assert [n.kind for n in result.notifications] == [NotificationKind.VISIT_CANCELLED]

    def test_cancel_keeps_its_reason(self, approvals, pending, admin_actor):
        result = approvals.decide(
            pending,
            admin_actor,
            _decision(pending, DecisionOutcome.CANCELLED, reason="Host travelling"),
        )

        assert result.visit.rejection_reason == "Host travelling"
        (notice,) = result.notifications
        assert notice.payload["rejection_reason"] == "Host travelling"

    def test_cancel_without_reason_leaves_it_empty(self, approvals, pending, admin_actor):
        result = approvals.decide(
            pending, admin_actor, _decision(pending, DecisionOutcome.CANCELLED),
        )

        assert result.visit.rejection_reason is None
        assert "rejection_reason" not in result.notifications[0].payload

    def test_notes_accumulate(self, approvals, store, deterministic_clock, security_actor):
        visit = store.add(
            visit_model(deterministic_clock.now(), security_notes="Arrived early")
        )

        result = approvals.decide(
            visit,
            security_actor,
            _decision(visit, DecisionOutcome.APPROVED, security_notes="Host confirmed"),
        )
        assert result.visit.security_notes == "Arrived early\nHost confirmed"

    def test_terminal_visit_raises(self, approvals, store, pending, security_actor):
        approvals.decide(
            pending, security_actor,
            _decision(pending, DecisionOutcome.REJECTED, reason="No ID"),
        )
        refreshed = store.load(pending.id)

        with pytest.raises(InvalidStateError, match="already REJECTED"):
            approvals.decide(
                refreshed, security_actor, _decision(refreshed, DecisionOutcome.APPROVED),
            )

    def test_stale_snapshot_loses_the_race(self, approvals, store, pending, security_actor):
        approvals.decide(
            pending, security_actor, _decision(pending, DecisionOutcome.CANCELLED),
        )

        with pytest.raises(TransitionConflictError) as exc_info:
            approvals.decide(
                pending, security_actor, _decision(pending, DecisionOutcome.APPROVED),
            )
        assert isinstance(exc_info.value, InvalidStateError)
        assert store.load(pending.id).approval_status == ApprovalStatus.CANCELLED

    def test_capability_enforced(self, approvals, pending, resident_actor):
        with pytest.raises(ForbiddenError):
            approvals.decide(
                pending, resident_actor, _decision(pending, DecisionOutcome.APPROVED),
            )
