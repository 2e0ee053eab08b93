"""
ApprovalCoordinator -- owns the approval sub-state machine.

Responsibility:
    Moves a PENDING visit to exactly one terminal approval outcome and plans
    the notifications that outcome calls for.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Only transitions listed in ``APPROVAL_TRANSITIONS`` are applied.
    - At most one decision succeeds per visit: the write is guarded by
      ``WHERE approval_status = 'PENDING'``.
    - Re-deciding a terminal visit raises; it is never a silent no-op.

Failure modes:
    - ForbiddenError if the actor lacks the decision capability.
    - InvalidStateError("already <STATUS>") if the visit is not PENDING.
    - TransitionConflictError if a concurrent decision won the race.
"""

from __future__ import annotations

from visit_kernel.domain.clock import Clock
from visit_kernel.domain.collaborators import (
    NotificationKind,
    NotificationPriority,
    PlannedNotification,
    Recipient,
    TransitionResult,
)
from visit_kernel.domain.requests import DecideByName, DecideByRole, DecisionOutcome
from visit_kernel.domain.roles import Actor, Capability, RolePolicy
from visit_kernel.domain.visit import (
    ApprovalStatus,
    NotificationFlag,
    Visit,
    VisitStatus,
    can_transition,
)
from visit_kernel.exceptions import InvalidStateError, TransitionConflictError
from visit_kernel.logging_config import get_logger
from visit_kernel.services.base import BaseService
from visit_kernel.services.visit_store import VisitStore

logger = get_logger("services.approval_coordinator")

_HOST_NOTICE = {
    DecisionOutcome.APPROVED: (
        NotificationKind.VISIT_APPROVED, NotificationPriority.MEDIUM,
    ),
    DecisionOutcome.REJECTED: (
        NotificationKind.VISIT_REJECTED, NotificationPriority.HIGH,
    ),
    DecisionOutcome.CANCELLED: (
        NotificationKind.VISIT_CANCELLED, NotificationPriority.MEDIUM,
    ),
}


def append_note(existing: str | None, note: str | None) -> str | None:
    """Security notes accumulate, one entry per line."""
    if not note:
        return existing
    if not existing:
        return note
    return f"{existing}\n{note}"


class ApprovalCoordinator(BaseService):
    """Applies approve / reject / cancel decisions."""

    def __init__(
        self,
        store: VisitStore,
        role_policy: RolePolicy,
        clock: Clock | None = None,
    ):
        super().__init__(store.session, clock or store.clock)
        self._store = store
        self._policy = role_policy

    @staticmethod
    def required_capability(decision: DecideByRole | DecideByName) -> Capability:
        if isinstance(decision, DecideByName):
            return Capability.APPROVE_BY_NAME
        return Capability.DECIDE_VISIT

    def decide(
        self,
        visit: Visit,
        actor: Actor,
        decision: DecideByRole | DecideByName,
    ) -> TransitionResult:
        self._policy.authorize(
            actor, self.required_capability(decision), visit.building_id,
        )

        target = decision.outcome.approval_status
        if visit.approval_status != ApprovalStatus.PENDING:
            raise InvalidStateError(
                str(visit.id), f"already {visit.approval_status.value}"
            )
        if not can_transition(visit.approval_status, target):
            raise InvalidStateError(
                str(visit.id),
                f"cannot move from {visit.approval_status.value} to {target.value}",
            )

        now = self.clock.now()
        values = {
            "approval_status": target.value,
            "approved_at": now,
            "updated_at": now,
        }
        if isinstance(decision, DecideByName):
            values["approved_by_name"] = decision.approved_by_name
        else:
            values["approved_by"] = actor.actor_id
            if decision.outcome != DecisionOutcome.APPROVED and decision.reason:
                values["rejection_reason"] = decision.reason
            notes = append_note(visit.security_notes, decision.security_notes)
            if notes != visit.security_notes:
                values["security_notes"] = notes
        if target != ApprovalStatus.APPROVED:
            values["status"] = VisitStatus.CANCELLED.value

        won = self._store.conditional_update(
            visit.id,
            expected={"approval_status": ApprovalStatus.PENDING.value},
            values=values,
        )
        if not won:
            raise TransitionConflictError(str(visit.id), "decision")

        decided = self._store.load(visit.id)
        logger.info(
            "visit_decided",
            extra={
                "visit_id": str(visit.id),
                "outcome": target.value,
                "by_name": isinstance(decision, DecideByName),
            },
        )
        return TransitionResult(
            visit=decided,
            notifications=self._plan(decided, decision),
        )

    def _plan(
        self,
        visit: Visit,
        decision: DecideByRole | DecideByName,
    ) -> tuple[PlannedNotification, ...]:
        outcome = decision.outcome
        payload = {
            "visit_code": visit.code,
            "visitor_ref": visit.visitor_ref,
            "approval_status": visit.approval_status.value,
        }
        if outcome != DecisionOutcome.APPROVED and visit.rejection_reason:
            payload["rejection_reason"] = visit.rejection_reason

        kind, priority = _HOST_NOTICE[outcome]
        planned = [
            PlannedNotification(
                kind=kind,
                recipient=Recipient.HOST,
                priority=priority,
                flag=NotificationFlag.HOST,
                payload=payload,
            ),
        ]
        if outcome == DecisionOutcome.APPROVED:
            planned.append(
                PlannedNotification(
                    kind=NotificationKind.VISIT_APPROVED,
                    recipient=Recipient.ADMIN,
                    priority=NotificationPriority.LOW,
                    flag=NotificationFlag.ADMIN,
                    payload=payload,
                )
            )
        return tuple(planned)
