"""
Tests for CredentialManager: single issuance and scan-time validation.

Validation order is fixed: unknown token, then expiry, then prior use.
"""

from datetime import timedelta

import pytest

from visit_kernel.domain.credential import CredentialPolicy
from visit_kernel.domain.visit import ApprovalStatus
from visit_kernel.exceptions import (
    CredentialAlreadyIssuedError,
    CredentialExhaustedError,
    CredentialExpiredError,
    CredentialNotFoundError,
    InvalidStateError,
)
from visit_kernel.services.credential_manager import CredentialManager
from visit_kernel.services.visit_store import VisitStore

from tests.factories import BUILDING, OTHER_BUILDING, TEST_SECRET, visit_model


@pytest.fixture
def store(session, deterministic_clock):
    return VisitStore(session, deterministic_clock)


@pytest.fixture
def credentials(store):
    return CredentialManager(store, CredentialPolicy(secret=TEST_SECRET))


@pytest.fixture
def issued(store, credentials, deterministic_clock):
    """An approved visit holding a fresh credential."""
    visit = store.add(
        visit_model(
            deterministic_clock.now(),
            approval_status=ApprovalStatus.APPROVED.value,
        )
    )
    credentials.issue(visit)
    return store.load(visit.id)


class TestIssue:
    def test_binds_credential_to_visit(self, issued, deterministic_clock):
        assert len(issued.credential_token) == 64
        assert issued.credential_issued_at == deterministic_clock.now()
        assert issued.credential_expires_at == deterministic_clock.now() + timedelta(hours=24)

    def test_never_reissued(self, credentials, issued):
        with pytest.raises(CredentialAlreadyIssuedError):
            credentials.issue(issued)

    def test_stale_snapshot_cannot_reissue(self, store, credentials, deterministic_clock):
        visit = store.add(visit_model(deterministic_clock.now()))
        credentials.issue(visit)

        with pytest.raises(CredentialAlreadyIssuedError):
            credentials.issue(visit)

    def test_issuance_logged(self, store, credentials, deterministic_clock, captured_logs):
        visit = store.add(visit_model(deterministic_clock.now()))
        credentials.issue(visit)

        record = next(r for r in captured_logs() if r["message"] == "credential_issued")
        assert record["visit_id"] == str(visit.id)
        assert "credential_token" not in record


class TestValidate:
    def test_fresh_token_resolves(self, credentials, issued):
        assert credentials.validate(issued.credential_token, BUILDING).id == issued.id

    def test_unknown_token(self, credentials, issued):
        with pytest.raises(CredentialNotFoundError):
            credentials.validate("0" * 64, BUILDING)

    def test_token_from_other_building(self, credentials, issued):
        with pytest.raises(CredentialNotFoundError):
            credentials.validate(issued.credential_token, OTHER_BUILDING)

    def test_expired(self, credentials, issued, deterministic_clock):
        deterministic_clock.advance_minutes(24 * 60)
        deterministic_clock.advance(1)

        with pytest.raises(CredentialExpiredError) as exc_info:
            credentials.validate(issued.credential_token, BUILDING)
        assert exc_info.value.expires_at == issued.credential_expires_at

    def test_expiry_reported_before_prior_use(
        self, store, credentials, issued, deterministic_clock,
    ):
        store.conditional_update(
            issued.id,
            expected={"check_in_time": None},
            values={"check_in_time": deterministic_clock.now(), "status": "IN_PROGRESS"},
        )
        deterministic_clock.advance_minutes(25 * 60)

        with pytest.raises(CredentialExpiredError):
            credentials.validate(issued.credential_token, BUILDING)

    def test_exhausted_after_check_in(self, store, credentials, issued, deterministic_clock):
        store.conditional_update(
            issued.id,
            expected={"check_in_time": None},
            values={"check_in_time": deterministic_clock.now(), "status": "IN_PROGRESS"},
        )

        with pytest.raises(CredentialExhaustedError):
            credentials.validate(issued.credential_token, BUILDING)

    def test_ensure_fresh_without_credential(self, store, credentials, deterministic_clock):
        visit = store.add(visit_model(deterministic_clock.now()))

        with pytest.raises(InvalidStateError, match="no credential on file"):
            credentials.ensure_fresh(visit)
