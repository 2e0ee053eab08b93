"""
PresenceCoordinator -- records physical arrival and departure.

Responsibility:
    Check-in (after a scan or directly after approval) and check-out, with
    the visit duration computed once at departure.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - check_in_time is only set on an APPROVED visit, and only once
      (``WHERE check_in_time IS NULL AND approval_status = 'APPROVED'``).
    - check_out_time is only set after check-in, only once, and never
      before check_in_time.
    - actual_duration_minutes is written in the same update as
      check_out_time.

Failure modes:
    - ForbiddenError if the actor lacks CHECK_IN / CHECK_OUT.
    - InvalidStateError on any violated precondition.
    - TransitionConflictError if a concurrent request won the race.
    - CredentialExpiredError from the post-approval admission path.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from visit_kernel.domain.clock import Clock
from visit_kernel.domain.collaborators import (
    NotificationKind,
    NotificationPriority,
    PlannedNotification,
    Recipient,
    TransitionResult,
)
from visit_kernel.domain.roles import Actor, Capability, RolePolicy
from visit_kernel.domain.visit import (
    ApprovalStatus,
    NotificationFlag,
    Visit,
    VisitStatus,
)
from visit_kernel.exceptions import InvalidStateError, TransitionConflictError
from visit_kernel.logging_config import get_logger
from visit_kernel.services.approval_coordinator import append_note
from visit_kernel.services.base import BaseService
from visit_kernel.services.credential_manager import CredentialManager
from visit_kernel.services.visit_store import NOT_NULL, VisitStore

logger = get_logger("services.presence_coordinator")

_MINUTE_US = 60_000_000


def duration_minutes(check_in: datetime, check_out: datetime) -> int:
    """Whole minutes between the two instants, halves rounded up."""
    micros = (check_out - check_in) // timedelta(microseconds=1)
    return (micros + _MINUTE_US // 2) // _MINUTE_US


def _presence_notices(
    visit: Visit,
    kind: NotificationKind,
    host_flag: NotificationFlag,
) -> tuple[PlannedNotification, ...]:
    payload = {
        "visit_code": visit.code,
        "visitor_ref": visit.visitor_ref,
        "check_in_time": visit.check_in_time,
        "check_out_time": visit.check_out_time,
        "actual_duration_minutes": visit.actual_duration_minutes,
    }
    return (
        PlannedNotification(
            kind=kind,
            recipient=Recipient.HOST,
            priority=NotificationPriority.MEDIUM,
            flag=host_flag,
            payload=payload,
        ),
        PlannedNotification(
            kind=kind,
            recipient=Recipient.ADMIN,
            priority=NotificationPriority.LOW,
            flag=NotificationFlag.ADMIN,
            payload=payload,
        ),
    )


class PresenceCoordinator(BaseService):
    """Check-in / check-out recording."""

    def __init__(
        self,
        store: VisitStore,
        credentials: CredentialManager,
        role_policy: RolePolicy,
        clock: Clock | None = None,
    ):
        super().__init__(store.session, clock or store.clock)
        self._store = store
        self._credentials = credentials
        self._policy = role_policy

    def check_in(
        self,
        visit: Visit,
        actor: Actor,
        evidence_ref: str | None = None,
        security_notes: str | None = None,
    ) -> TransitionResult:
        self._policy.authorize(actor, Capability.CHECK_IN, visit.building_id)
        return self._admit(visit, actor, evidence_ref, security_notes)

    def admit_after_approval(self, visit: Visit, actor: Actor) -> TransitionResult:
        """
        Admission triggered by an approval, without a scan.

        The deciding actor was already authorized for the decision; only
        credential expiry is re-checked here.
        """
        self._credentials.ensure_fresh(visit)
        return self._admit(visit, actor, None, None)

    def _admit(
        self,
        visit: Visit,
        actor: Actor,
        evidence_ref: str | None,
        security_notes: str | None,
    ) -> TransitionResult:
        if visit.approval_status != ApprovalStatus.APPROVED:
            raise InvalidStateError(
                str(visit.id),
                f"cannot check in: approval is {visit.approval_status.value}",
            )
        if visit.check_in_time is not None:
            raise InvalidStateError(str(visit.id), "already checked in")
        if visit.status != VisitStatus.SCHEDULED:
            raise InvalidStateError(
                str(visit.id), f"cannot check in a {visit.status.value} visit"
            )

        now = self.clock.now()
        values = {
            "check_in_time": now,
            "status": VisitStatus.IN_PROGRESS.value,
            "verified_by": actor.actor_id,
            "verified_at": now,
            "updated_at": now,
        }
        if evidence_ref is not None:
            values["entry_evidence_ref"] = evidence_ref
        notes = append_note(visit.security_notes, security_notes)
        if notes != visit.security_notes:
            values["security_notes"] = notes

        won = self._store.conditional_update(
            visit.id,
            expected={
                "check_in_time": None,
                "approval_status": ApprovalStatus.APPROVED.value,
                "status": VisitStatus.SCHEDULED.value,
            },
            values=values,
        )
        if not won:
            raise TransitionConflictError(str(visit.id), "check-in")

        admitted = self._store.load(visit.id)
        logger.info(
            "visit_checked_in",
            extra={
                "visit_id": str(visit.id),
                "verified_by": actor.actor_id,
                "check_in_time": now,
            },
        )
        return TransitionResult(
            visit=admitted,
            notifications=_presence_notices(
                admitted, NotificationKind.VISITOR_ARRIVAL, NotificationFlag.CHECK_IN,
            ),
        )

    def check_out(
        self,
        visit: Visit,
        actor: Actor,
        evidence_ref: str | None = None,
        security_notes: str | None = None,
    ) -> TransitionResult:
        self._policy.authorize(actor, Capability.CHECK_OUT, visit.building_id)

        if visit.check_in_time is None:
            raise InvalidStateError(str(visit.id), "not checked in")
        if visit.check_out_time is not None:
            raise InvalidStateError(str(visit.id), "already checked out")
        now = self.clock.now()
        if now < visit.check_in_time:
            raise InvalidStateError(
                str(visit.id), "check-out time precedes check-in time"
            )

        duration = duration_minutes(visit.check_in_time, now)
        values = {
            "check_out_time": now,
            "status": VisitStatus.COMPLETED.value,
            "actual_duration_minutes": duration,
            "updated_at": now,
        }
        if evidence_ref is not None:
            values["exit_evidence_ref"] = evidence_ref
        notes = append_note(visit.security_notes, security_notes)
        if notes != visit.security_notes:
            values["security_notes"] = notes

        won = self._store.conditional_update(
            visit.id,
            expected={"check_out_time": None, "check_in_time": NOT_NULL},
            values=values,
        )
        if not won:
            raise TransitionConflictError(str(visit.id), "check-out")

        departed = self._store.load(visit.id)
        logger.info(
            "visit_checked_out",
            extra={
                "visit_id": str(visit.id),
                "actual_duration_minutes": duration,
            },
        )
        return TransitionResult(
            visit=departed,
            notifications=_presence_notices(
                departed, NotificationKind.VISITOR_DEPARTURE, NotificationFlag.CHECK_OUT,
            ),
        )
