"""
CredentialManager -- issue and validate time-bounded entry credentials.

Responsibility:
    Binds exactly one credential to a visit at creation and answers the
    scan-time question "may this token admit someone right now?".

Architecture position:
    Kernel > Services.  Writes through ``VisitStore``; flushes only.

Invariants enforced:
    - A credential is never re-issued: issuance is a conditional update on
      ``credential_token IS NULL``.
    - An expired credential is never reported fresh.  Expiry is a pure
      function of the stored ``credential_expires_at`` and the injected
      clock, so retries cannot change the answer.

Failure modes:
    - CredentialAlreadyIssuedError on re-issuance.
    - CredentialNotFoundError when no visit in the building holds the token.
    - CredentialExpiredError when now > credential_expires_at.
    - CredentialExhaustedError when the visit is already checked in.
"""

from __future__ import annotations

from visit_kernel.domain.clock import Clock
from visit_kernel.domain.credential import CredentialPolicy, build_credential
from visit_kernel.domain.visit import Credential, Visit
from visit_kernel.exceptions import (
    CredentialAlreadyIssuedError,
    CredentialExhaustedError,
    CredentialExpiredError,
    CredentialNotFoundError,
    InvalidStateError,
)
from visit_kernel.logging_config import get_logger
from visit_kernel.services.base import BaseService
from visit_kernel.services.visit_store import VisitStore

logger = get_logger("services.credential_manager")


class CredentialManager(BaseService):
    """Issues, binds and validates the opaque entry credential."""

    def __init__(
        self,
        store: VisitStore,
        policy: CredentialPolicy,
        clock: Clock | None = None,
    ):
        super().__init__(store.session, clock or store.clock)
        self._store = store
        self._policy = policy

    def issue(self, visit: Visit) -> Credential:
        """Mint a credential valid from now for the configured window."""
        if visit.credential_token is not None:
            raise CredentialAlreadyIssuedError(str(visit.id))

        credential = build_credential(
            self._policy,
            visit_id=visit.id,
            visitor_ref=visit.visitor_ref,
            building_id=visit.building_id,
            issued_at=self.clock.now(),
        )
        bound = self._store.conditional_update(
            visit.id,
            expected={"credential_token": None},
            values={
                "credential_token": credential.token,
                "credential_issued_at": credential.issued_at,
                "credential_expires_at": credential.expires_at,
            },
        )
        if not bound:
            raise CredentialAlreadyIssuedError(str(visit.id))

        logger.info(
            "credential_issued",
            extra={
                "visit_id": str(visit.id),
                "expires_at": credential.expires_at,
            },
        )
        return credential

    def validate(self, token: str, building_id: str) -> Visit:
        """
        Resolve a scanned token to its visit and check it can still admit.

        Checks run in a fixed order: existence, expiry, prior use.
        """
        visit = self._store.find_by_token(token, building_id)
        if visit is None:
            logger.warning(
                "credential_rejected",
                extra={"reason": "not_found", "building_id": building_id},
            )
            raise CredentialNotFoundError(building_id)

        self.ensure_fresh(visit)

        if visit.check_in_time is not None:
            logger.warning(
                "credential_rejected",
                extra={"reason": "exhausted", "visit_id": str(visit.id)},
            )
            raise CredentialExhaustedError(str(visit.id), visit.check_in_time)

        return visit

    def ensure_fresh(self, visit: Visit) -> None:
        """Expiry-only check; used where no scan takes place."""
        credential = visit.credential
        if credential is None:
            raise InvalidStateError(str(visit.id), "no credential on file")
        now = self.clock.now()
        if credential.is_expired(now):
            logger.warning(
                "credential_rejected",
                extra={
                    "reason": "expired",
                    "visit_id": str(visit.id),
                    "expires_at": credential.expires_at,
                },
            )
            raise CredentialExpiredError(str(visit.id), credential.expires_at, now)
