"""
Tests for Visit Domain Types (``visit_kernel.domain.visit``).

Covers the approval sub-state machine, the credential validity window,
the frozen Visit projection and pagination arithmetic.
"""

from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from visit_kernel.domain.visit import (
    APPROVAL_TRANSITIONS,
    TERMINAL_APPROVAL_STATUSES,
    ApprovalStatus,
    Credential,
    Visit,
    VisitPage,
    VisitStatus,
    VisitType,
    can_transition,
    generate_visit_code,
    initial_approval_status,
)

NOON = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)


def _visit(**overrides) -> Visit:
    fields = dict(
        id=uuid4(),
        code="VISIT_20240101120000_ABCDEF01",
        building_id="bldg-1",
        visitor_ref="visitor-1",
        purpose="Parcel delivery",
        visit_type=VisitType.WALK_IN,
        approval_status=ApprovalStatus.PENDING,
        status=VisitStatus.SCHEDULED,
        created_at=NOON,
        updated_at=NOON,
    )
    fields.update(overrides)
    return Visit(**fields)


# =========================================================================
# Approval sub-state machine
# =========================================================================


class TestApprovalTransitions:
    """APPROVAL_TRANSITIONS is the only source of legal approval moves."""

    def test_every_status_has_entry(self):
        for status in ApprovalStatus:
            assert status in APPROVAL_TRANSITIONS

    def test_pending_reaches_every_terminal_state(self):
        assert APPROVAL_TRANSITIONS[ApprovalStatus.PENDING] == TERMINAL_APPROVAL_STATUSES

    @pytest.mark.parametrize("terminal", sorted(TERMINAL_APPROVAL_STATUSES))
    def test_terminal_states_have_no_exits(self, terminal):
        assert APPROVAL_TRANSITIONS[terminal] == frozenset()
        for target in ApprovalStatus:
            assert not can_transition(terminal, target)

    def test_pending_cannot_stay_pending(self):
        assert not can_transition(ApprovalStatus.PENDING, ApprovalStatus.PENDING)


class TestInitialApprovalStatus:
    def test_pre_approved_starts_approved(self):
        assert initial_approval_status(VisitType.PRE_APPROVED) == ApprovalStatus.APPROVED

    @pytest.mark.parametrize("visit_type", [VisitType.WALK_IN, VisitType.SCHEDULED])
    def test_other_types_start_pending(self, visit_type):
        assert initial_approval_status(visit_type) == ApprovalStatus.PENDING


class TestVisitCode:
    def test_code_embeds_creation_instant(self):
        code = generate_visit_code(NOON)
        assert code.startswith("VISIT_20240101120000_")
        assert len(code.rsplit("_", 1)[1]) == 8

    def test_codes_differ_for_same_instant(self):
        codes = {generate_visit_code(NOON) for _ in range(50)}
        assert len(codes) == 50


# =========================================================================
# Credential window
# =========================================================================


class TestCredential:
    """Validity ends at expires_at inclusive."""

    def _credential(self) -> Credential:
        return Credential(
            token="t" * 64, issued_at=NOON, expires_at=NOON + timedelta(hours=24),
        )

    def test_valid_before_expiry(self):
        assert not self._credential().is_expired(NOON + timedelta(hours=23))

    def test_boundary_instant_is_still_valid(self):
        credential = self._credential()
        assert not credential.is_expired(credential.expires_at)

    def test_expired_one_microsecond_later(self):
        credential = self._credential()
        assert credential.is_expired(credential.expires_at + timedelta(microseconds=1))


# =========================================================================
# Visit projection
# =========================================================================


class TestVisit:
    def test_frozen(self):
        visit = _visit()
        with pytest.raises(FrozenInstanceError):
            visit.status = VisitStatus.COMPLETED

    def test_no_credential_without_token(self):
        visit = _visit()
        assert visit.credential is None
        assert not visit.credential_expired(NOON + timedelta(days=30))

    def test_credential_assembled_from_columns(self):
        visit = _visit(
            credential_token="abc",
            credential_issued_at=NOON,
            credential_expires_at=NOON + timedelta(hours=1),
        )
        assert visit.credential == Credential("abc", NOON, NOON + timedelta(hours=1))
        assert visit.credential_expired(NOON + timedelta(hours=2))

    def test_presence_flags(self):
        visit = _visit(check_in_time=NOON)
        assert visit.is_checked_in
        assert not visit.is_checked_out

    def test_overdue_after_expected_duration(self):
        visit = _visit(
            approval_status=ApprovalStatus.APPROVED,
            status=VisitStatus.IN_PROGRESS,
            check_in_time=NOON,
            expected_duration_minutes=30,
        )
        assert not visit.is_overdue(NOON + timedelta(minutes=30))
        assert visit.is_overdue(NOON + timedelta(minutes=31))

    def test_not_overdue_once_checked_out(self):
        visit = _visit(
            check_in_time=NOON,
            check_out_time=NOON + timedelta(hours=5),
            expected_duration_minutes=30,
        )
        assert not visit.is_overdue(NOON + timedelta(hours=6))

    def test_not_overdue_without_expected_duration(self):
        assert not _visit(check_in_time=NOON).is_overdue(NOON + timedelta(days=1))


class TestVisitPage:
    def test_total_pages_rounds_up(self):
        page = VisitPage(visits=(), page=1, limit=10, total=21)
        assert page.total_pages == 3
        assert page.has_next_page
        assert not page.has_prev_page

    def test_last_page(self):
        page = VisitPage(visits=(), page=3, limit=10, total=21)
        assert not page.has_next_page
        assert page.has_prev_page

    def test_empty_listing(self):
        page = VisitPage(visits=(), page=1, limit=10, total=0)
        assert page.total_pages == 0
        assert not page.has_next_page
