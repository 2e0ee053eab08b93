"""
Visit Lifecycle Orchestrator - entry point of the engine.

The Orchestrator ties together:
- VisitStore: persistence and guarded updates
- CredentialManager: credential issuance and scan-time validation
- ApprovalCoordinator: the approval sub-state machine
- PresenceCoordinator: check-in / check-out
- NotificationGateway: best-effort fan-out after commit

Transaction boundary: every write operation commits on success and rolls
back on failure (``auto_commit=True``).  Coordinators only flush, so an
approval and the admission it triggers land in one transaction.
Notifications go out after the commit; recording which ones were delivered
is a separate write whose failure is logged and swallowed.
"""

from __future__ import annotations

import time
from dataclasses import replace
from datetime import datetime
from typing import Callable, TypeVar
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from visit_kernel.domain.clock import Clock, SystemClock
from visit_kernel.domain.collaborators import (
    DirectoryLookup,
    NotificationDispatcher,
    NotificationKind,
    NotificationPriority,
    PlannedNotification,
    Recipient,
    TransitionResult,
)
from visit_kernel.domain.credential import CredentialPolicy
from visit_kernel.domain.requests import (
    CheckOutRequest,
    CreateVisitRequest,
    DecideByName,
    DecideByRole,
    DecisionOutcome,
    ScanCredentialRequest,
    VisitQuery,
)
from visit_kernel.domain.roles import (
    Actor,
    Capability,
    RolePolicy,
    default_role_policy,
)
from visit_kernel.domain.validation import (
    FieldLimits,
    validate_check_out,
    validate_create,
    validate_decision,
    validate_query,
    validate_scan,
)
from visit_kernel.domain.visit import (
    ApprovalStatus,
    Credential,
    NotificationFlag,
    Visit,
    VisitPage,
    VisitStats,
    VisitStatus,
    VisitType,
    generate_visit_code,
    initial_approval_status,
)
from visit_kernel.exceptions import (
    InternalError,
    InvalidReferenceError,
    InvalidStateError,
    VisitKernelError,
)
from visit_kernel.logging_config import LogContext, get_logger
from visit_kernel.models.visit import VisitModel
from visit_kernel.services.approval_coordinator import ApprovalCoordinator
from visit_kernel.services.credential_manager import CredentialManager
from visit_kernel.services.notification_gateway import NotificationGateway
from visit_kernel.services.presence_coordinator import PresenceCoordinator
from visit_kernel.services.visit_store import VisitStore

logger = get_logger("services.visit_orchestrator")

T = TypeVar("T")


class VisitLifecycleOrchestrator:
    """
    Composes the coordinators for each visit operation.

    Set ``auto_commit=False`` to leave commit/rollback to the caller (tests
    that inspect uncommitted state, or a host application that batches
    several operations in one transaction).
    """

    def __init__(
        self,
        session: Session,
        directory: DirectoryLookup,
        dispatcher: NotificationDispatcher,
        role_policy: RolePolicy | None = None,
        credential_policy: CredentialPolicy | None = None,
        field_limits: FieldLimits | None = None,
        clock: Clock | None = None,
        auto_commit: bool = True,
    ):
        """
        Initialize the orchestrator.

        Args:
            session: SQLAlchemy session; one per request or per thread.
            directory: Resolves visitor, host and building identities.
            dispatcher: Notification transport.
            role_policy: Role -> capability table. Defaults to the stock table.
            credential_policy: Credential validity and signing key.
            field_limits: Request field limits.
            clock: Clock for every timestamp. Defaults to SystemClock.
            auto_commit: If True (default), commits on success and rolls
                back on failure.
        """
        self._session = session
        self._directory = directory
        self._clock = clock or SystemClock()
        self._policy = role_policy or default_role_policy()
        self._limits = field_limits or FieldLimits()
        self._auto_commit = auto_commit

        self._store = VisitStore(session, self._clock)
        self._credentials = CredentialManager(
            self._store, credential_policy or CredentialPolicy(),
        )
        self._approvals = ApprovalCoordinator(self._store, self._policy)
        self._presence = PresenceCoordinator(
            self._store, self._credentials, self._policy,
        )
        self._notifier = NotificationGateway(dispatcher, directory)

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def create_visit(self, actor: Actor, request: CreateVisitRequest) -> Visit:
        """Register a visit, seed its approval state and issue its credential."""

        def work() -> TransitionResult:
            req = validate_create(request, self._limits)
            self._policy.authorize(actor, Capability.CREATE_VISIT, req.building_id)
            host_flat_number = self._resolve_references(req)

            now = self._clock.now()
            schedule = req.schedule
            model = VisitModel(
                code=generate_visit_code(now),
                building_id=req.building_id,
                visitor_ref=req.visitor_ref,
                host_ref=req.host_ref,
                host_flat_number=host_flat_number,
                purpose=req.purpose,
                visit_type=req.visit_type.value,
                approval_status=initial_approval_status(req.visit_type).value,
                status=VisitStatus.SCHEDULED.value,
                created_by=actor.actor_id,
                scheduled_date=schedule.scheduled_date if schedule else None,
                scheduled_time=(
                    schedule.scheduled_time.strip().upper()
                    if schedule and schedule.scheduled_time else None
                ),
                expected_duration_minutes=req.expected_duration_minutes,
                vehicle_number=req.vehicle.number if req.vehicle else None,
                vehicle_type=req.vehicle.vehicle_type.value if req.vehicle else None,
                created_at=now,
                updated_at=now,
            )
            visit = self._store.add(model)
            LogContext.set(visit_id=str(visit.id))
            self._credentials.issue(visit)
            visit = self._store.load(visit.id)

            logger.info(
                "visit_created",
                extra={
                    "visit_code": visit.code,
                    "visit_type": visit.visit_type,
                    "approval_status": visit.approval_status,
                },
            )

            notices: tuple[PlannedNotification, ...] = ()
            if visit.host_ref and visit.visit_type != VisitType.PRE_APPROVED:
                notices = (
                    PlannedNotification(
                        kind=NotificationKind.VISIT_APPROVAL_REQUEST,
                        recipient=Recipient.HOST,
                        priority=NotificationPriority.MEDIUM,
                        flag=NotificationFlag.HOST,
                        payload={
                            "visit_code": visit.code,
                            "visitor_ref": visit.visitor_ref,
                            "purpose": visit.purpose,
                            "visit_type": visit.visit_type.value,
                        },
                    ),
                )
            return TransitionResult(visit=visit, notifications=notices)

        return self._transition("create_visit", actor, request.building_id, work)

    def decide(self, actor: Actor, decision: DecideByRole | DecideByName) -> Visit:
        """
        Approve, reject or cancel a PENDING visit.

        An approval admits the visitor in the same transaction, using the
        credential already on file.
        """

        def work() -> TransitionResult:
            dec = validate_decision(decision, self._limits)
            self._policy.authorize(
                actor,
                ApprovalCoordinator.required_capability(dec),
                dec.building_id,
            )
            visit = self._store.require(dec.visit_key, dec.building_id)
            LogContext.set(visit_id=str(visit.id))
            if (
                dec.outcome == DecisionOutcome.APPROVED
                and visit.approval_status == ApprovalStatus.PENDING
            ):
                self._credentials.ensure_fresh(visit)

            decided = self._approvals.decide(visit, actor, dec)
            if dec.outcome != DecisionOutcome.APPROVED:
                return decided

            admitted = self._presence.admit_after_approval(decided.visit, actor)
            logger.info(
                "visit_auto_admitted",
                extra={
                    "approved_by": actor.actor_id,
                    "by_name": isinstance(dec, DecideByName),
                },
            )
            return TransitionResult(
                visit=admitted.visit,
                notifications=decided.notifications + admitted.notifications,
            )

        return self._transition("decide", actor, decision.building_id, work)

    def scan_credential(self, actor: Actor, request: ScanCredentialRequest) -> Visit:
        """Validate a presented credential and check the visitor in."""

        def work() -> TransitionResult:
            req = validate_scan(request, self._limits)
            self._policy.authorize(actor, Capability.SCAN_CREDENTIAL, req.building_id)
            visit = self._credentials.validate(req.token, req.building_id)
            LogContext.set(visit_id=str(visit.id))
            return self._presence.check_in(
                visit, actor, req.evidence_ref, req.security_notes,
            )

        return self._transition("scan_credential", actor, request.building_id, work)

    def check_out(self, actor: Actor, request: CheckOutRequest) -> Visit:
        def work() -> TransitionResult:
            req = validate_check_out(request, self._limits)
            self._policy.require_building(actor, req.building_id)
            visit = self._store.require(req.visit_key, req.building_id)
            LogContext.set(visit_id=str(visit.id))
            return self._presence.check_out(
                visit, actor, req.evidence_ref, req.security_notes,
            )

        return self._transition("check_out", actor, request.building_id, work)

    def expire_stale_visits(self, building_id: str | None = None) -> list[UUID]:
        """
        Maintenance sweep: mark lapsed, never-admitted visits EXPIRED.

        Invoked by an external scheduler; approval state is not touched.
        """
        with LogContext.bind(
            correlation_id=str(uuid4()),
            building_id=building_id,
            operation="expire_stale_visits",
        ):
            expired = self._run(
                "expire_stale_visits",
                lambda: self._store.expire_stale(building_id),
                writes=True,
            )
            logger.info("visits_expired", extra={"count": len(expired)})
            return expired

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_visit(self, actor: Actor, building_id: str, visit_key: str) -> Visit:
        def work() -> Visit:
            self._policy.authorize(actor, Capability.VIEW_VISITS, building_id)
            visit = self._store.require(visit_key, building_id)
            LogContext.set(visit_id=str(visit.id))
            return visit

        return self._read("get_visit", actor, building_id, work)

    def get_credential(
        self, actor: Actor, building_id: str, visit_key: str
    ) -> Credential:
        """Token and expiry of an approved visit's credential."""

        def work() -> Credential:
            self._policy.authorize(actor, Capability.VIEW_CREDENTIAL, building_id)
            visit = self._store.require(visit_key, building_id)
            LogContext.set(visit_id=str(visit.id))
            if visit.approval_status != ApprovalStatus.APPROVED:
                raise InvalidStateError(
                    str(visit.id),
                    "credential is only available once approved "
                    f"(approval is {visit.approval_status.value})",
                )
            credential = visit.credential
            if credential is None:
                raise InvalidStateError(str(visit.id), "no credential on file")
            return credential

        return self._read("get_credential", actor, building_id, work)

    def list_visits(self, actor: Actor, query: VisitQuery) -> VisitPage:
        def work() -> VisitPage:
            q = validate_query(query, self._limits)
            self._policy.authorize(actor, Capability.VIEW_VISITS, q.building_id)
            return self._store.list_visits(q)

        return self._read("list_visits", actor, query.building_id, work)

    def visit_stats(
        self,
        actor: Actor,
        building_id: str,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> VisitStats:
        def work() -> VisitStats:
            self._policy.authorize(actor, Capability.VIEW_STATS, building_id)
            return self._store.stats(building_id, start, end)

        return self._read("visit_stats", actor, building_id, work)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _resolve_references(self, request: CreateVisitRequest) -> str | None:
        """Check visitor, building and host exist in the building.

        Returns the host's flat number (request value first, then the
        directory's).
        """
        building = self._directory.find_building(request.building_id)
        if building is None:
            raise InvalidReferenceError("building", request.building_id)

        visitor = self._directory.find_visitor(request.visitor_ref)
        if visitor is None or visitor.building_id != request.building_id:
            raise InvalidReferenceError(
                "visitor", request.visitor_ref, request.building_id,
            )

        if request.host_ref is None:
            return request.host_flat_number
        host = self._directory.find_host(request.host_ref)
        if host is None or host.building_id != request.building_id:
            raise InvalidReferenceError(
                "host", request.host_ref, request.building_id,
            )
        return request.host_flat_number or host.flat_number

    def _transition(
        self,
        operation: str,
        actor: Actor,
        building_id: str,
        work: Callable[[], TransitionResult],
    ) -> Visit:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.actor_id,
            building_id=building_id,
            operation=operation,
        ):
            t0 = time.monotonic()
            result = self._run(operation, work, writes=True)
            visit = self._publish(result)
            logger.info(
                "visit_operation_completed",
                extra={
                    "visit_id": str(visit.id),
                    "approval_status": visit.approval_status,
                    "status": visit.status,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )
            return visit

    def _read(
        self,
        operation: str,
        actor: Actor,
        building_id: str,
        work: Callable[[], T],
    ) -> T:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            actor_id=actor.actor_id,
            building_id=building_id,
            operation=operation,
        ):
            return self._run(operation, work, writes=False)

    def _run(self, operation: str, work: Callable[[], T], *, writes: bool) -> T:
        """Execute ``work`` inside the transaction boundary.

        Kernel errors propagate unchanged; anything else is a collaborator
        failure and surfaces as InternalError.  Either way the transaction
        is rolled back first.
        """
        try:
            result = work()
            if writes:
                if self._auto_commit:
                    self._session.commit()
                else:
                    self._session.flush()
            elif self._auto_commit:
                # SQLite holds the write lock from BEGIN until the transaction ends.
                self._session.rollback()
            return result
        except VisitKernelError as exc:
            self._rollback()
            logger.warning(
                "visit_operation_rejected",
                extra={"error_code": exc.code, "error": str(exc)},
            )
            raise
        except Exception as exc:
            self._rollback()
            logger.error("visit_operation_failed", exc_info=True)
            raise InternalError(operation, f"{type(exc).__name__}: {exc}") from exc

    def _rollback(self) -> None:
        if self._auto_commit:
            self._session.rollback()

    def _publish(self, result: TransitionResult) -> Visit:
        """Send planned notifications and record the delivered flags."""
        visit = result.visit
        if not result.notifications:
            return visit

        delivered = self._notifier.publish(visit, result.notifications)
        new_flags = delivered - visit.notifications_sent
        if not new_flags:
            return visit

        try:
            self._store.mark_notified(visit.id, new_flags)
            if self._auto_commit:
                self._session.commit()
        except Exception:
            self._rollback()
            logger.warning(
                "notification_flags_not_recorded",
                extra={"visit_id": str(visit.id), "flags": new_flags},
                exc_info=True,
            )
            return visit
        return replace(visit, notifications_sent=visit.notifications_sent | new_flags)
